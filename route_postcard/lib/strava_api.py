#!/usr/bin/env python3
"""
Strava API Client

This module provides a wrapper for the Strava API calls the postcard
renderer needs: activity records, photos and GPS streams.
"""

import json
import hashlib
import logging
import threading
import time
import requests
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .models import GpsStream

logger = logging.getLogger(__name__)

STREAM_KEYS = "latlng,time,distance,altitude"

# Rate limited (429) and transient server errors are retried after 2s, 4s, 8s
RETRY_STATUSES = (429, 500, 502, 503, 504)
RETRY_ATTEMPTS = 3
RETRY_BACKOFF_FACTOR = 2.0


def create_session(backoff_factor: float = RETRY_BACKOFF_FACTOR) -> requests.Session:
    """HTTP session that retries rate-limited and failed Strava calls with exponential backoff."""
    retry = Retry(
        total=RETRY_ATTEMPTS,
        backoff_factor=backoff_factor,
        status_forcelist=list(RETRY_STATUSES),
        allowed_methods=["GET", "POST"],
        respect_retry_after_header=True,
        raise_on_status=False,
    )
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


class StravaAPIError(Exception):
    """Raised when a Strava API call fails."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class StravaAuthError(StravaAPIError):
    """Raised when Strava rejects our credentials (HTTP 401)."""


class StravaCache:
    """Disk-based cache for Strava API responses with a time-to-live"""

    # API responses are considered fresh for 48 hours
    DEFAULT_TTL_SECONDS = 48 * 60 * 60

    def __init__(self, cache_dir: Path, athlete_id: Optional[int] = None,
                 ttl_seconds: Optional[float] = None):
        self.cache_dir = Path(cache_dir)
        self.athlete_id = athlete_id
        self.ttl_seconds = self.DEFAULT_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _get_cache_path(self, cache_type: str, key: str = "") -> Path:
        """Get the path to a cache file"""
        if self.athlete_id:
            filename = f"{self.athlete_id}_{cache_type}"
        else:
            filename = cache_type
        if key:
            # Hash the key for safe filenames
            key_hash = hashlib.md5(str(key).encode()).hexdigest()[:12]
            filename = f"{filename}_{key_hash}"
        return self.cache_dir / f"{filename}.json"

    def get(self, cache_type: str, key: str = "") -> Optional[Any]:
        """Get data from cache, dropping entries older than the TTL"""
        cache_path = self._get_cache_path(cache_type, key)
        if not cache_path.exists():
            return None

        age = time.time() - cache_path.stat().st_mtime
        if age > self.ttl_seconds:
            logger.debug(f"Cache entry expired: {cache_path.name}")
            cache_path.unlink(missing_ok=True)
            return None

        try:
            with open(cache_path, 'r') as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError):
            return None

    def set(self, cache_type: str, data: Any, key: str = "") -> None:
        """Save data to cache"""
        cache_path = self._get_cache_path(cache_type, key)
        try:
            with open(cache_path, 'w') as f:
                json.dump(data, f)
        except IOError as e:
            logger.warning(f"⚠️  Could not write cache file {cache_path.name}: {e}")

    def clear(self, cache_type: Optional[str] = None) -> int:
        """Clear cache files for this athlete (optionally one type). Returns number of files deleted."""
        prefix = f"{self.athlete_id}_" if self.athlete_id else ""
        pattern = f"{prefix}{cache_type}*.json" if cache_type else f"{prefix}*.json"
        count = 0
        for cache_file in self.cache_dir.glob(pattern):
            try:
                cache_file.unlink()
                count += 1
            except IOError as e:
                logger.warning(f"⚠️  Could not delete cache file {cache_file.name}: {e}")
        return count


class StreamCache:
    """
    Holds the GPS stream of the currently selected activity

    Selecting a different activity drops the cached stream. Writes are
    serialised so concurrent requests for the same activity fetch once.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._activity_id = None
        self._stream: Optional[GpsStream] = None
        self._loaded = False

    @property
    def activity_id(self):
        return self._activity_id

    def select(self, activity_id) -> None:
        """Make ``activity_id`` current, invalidating any other activity's stream."""
        with self._lock:
            if activity_id != self._activity_id:
                self._activity_id = activity_id
                self._stream = None
                self._loaded = False

    def invalidate(self) -> None:
        with self._lock:
            self._stream = None
            self._loaded = False

    def get_or_fetch(self, activity_id, fetch: Callable[[Any], Optional[GpsStream]]) -> Optional[GpsStream]:
        """
        Return the cached stream for ``activity_id``, fetching on a miss

        Fetch errors are logged and give None (the overlay is then drawn
        without stops); a failed fetch is not cached so a later call retries.
        """
        with self._lock:
            if activity_id != self._activity_id:
                self._activity_id = activity_id
                self._stream = None
                self._loaded = False
            if self._loaded:
                return self._stream

            try:
                stream = fetch(activity_id)
            except (StravaAPIError, requests.exceptions.RequestException, ValueError) as e:
                logger.warning(f"⚠️  Could not fetch streams for activity {activity_id}: {e}")
                return None

            self._stream = stream
            self._loaded = True
            return stream


class StravaAPI:
    """Wrapper for Strava API interactions"""

    BASE_URL = "https://www.strava.com/api/v3"
    TOKEN_URL = "https://www.strava.com/oauth/token"

    def __init__(self, client_id, client_secret, refresh_token, cache: Optional[StravaCache] = None,
                 timeout: float = 15.0, session: Optional[requests.Session] = None):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.access_token = None
        self.cache = cache
        self.timeout = timeout
        self.session = session or create_session()

    def get_access_token(self):
        """Exchange refresh token for access token"""
        payload = {
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'refresh_token': self.refresh_token,
            'grant_type': 'refresh_token'
        }

        try:
            response = self.session.post(self.TOKEN_URL, data=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise StravaAPIError(f"Error getting access token: {e}") from e

        if response.status_code == 401:
            raise StravaAuthError(
                "401 Unauthorized when exchanging refresh token "
                "(expired/revoked token or wrong client credentials)",
                status_code=401,
            )
        if not response.ok:
            raise StravaAPIError(f"Token exchange failed: HTTP {response.status_code}",
                                 status_code=response.status_code)

        data = response.json()
        if 'access_token' not in data:
            raise StravaAPIError("No access_token in token exchange response")

        self.access_token = data['access_token']
        # Strava may rotate the refresh token
        self.refresh_token = data.get('refresh_token', self.refresh_token)
        logger.info("✅ Access token obtained")
        return self.access_token

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None):
        if not self.access_token:
            self.get_access_token()

        headers = {'Authorization': f'Bearer {self.access_token}'}
        url = f"{self.BASE_URL}{path}"
        logger.debug(f"GET {url} params={params}")

        try:
            response = self.session.get(url, headers=headers, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise StravaAPIError(f"Request to {path} failed: {e}") from e

        if response.status_code == 401:
            raise StravaAuthError(f"401 Unauthorized for {path}", status_code=401)
        return response

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None):
        response = self._get(path, params)
        if not response.ok:
            raise StravaAPIError(f"HTTP {response.status_code} for {path}", status_code=response.status_code)
        return response.json()

    def get_activities(self, per_page=30, page=1, use_cache=True) -> List[Dict[str, Any]]:
        """
        Fetch the athlete's most recent activities

        Args:
            per_page: Number of activities to fetch (max 200)
            page: Page number, starting at 1
            use_cache: Whether to use cached data if available

        Returns:
            List of activity summaries
        """
        cache_key = f"{per_page}_{page}"
        if use_cache and self.cache:
            cached = self.cache.get("activities", cache_key)
            if cached is not None:
                logger.debug(f"✓ Using cached activities ({len(cached)} activities)")
                return cached

        activities = self._get_json('/athlete/activities',
                                    {'per_page': min(per_page, 200), 'page': page})

        if self.cache:
            self.cache.set("activities", activities, cache_key)
        return activities

    def get_activity_by_id(self, activity_id, use_cache=True) -> Dict[str, Any]:
        """
        Fetch a specific activity by ID

        Args:
            activity_id: The Strava activity ID
            use_cache: Whether to use cached data if available

        Returns:
            Activity dict
        """
        cache_key = str(activity_id)
        if use_cache and self.cache:
            cached = self.cache.get("activity_detail", cache_key)
            if cached is not None:
                logger.debug(f"✓ Using cached activity detail for {activity_id}")
                return cached

        data = self._get_json(f'/activities/{activity_id}')

        if self.cache:
            self.cache.set("activity_detail", data, cache_key)
        return data

    def get_activity_streams(self, activity_id, use_cache=True) -> Optional[GpsStream]:
        """
        Fetch the GPS, time, distance and altitude streams of an activity

        Returns:
            GpsStream, or None when the activity has no GPS data
        """
        cache_key = str(activity_id)
        data = None
        if use_cache and self.cache:
            data = self.cache.get("activity_streams", cache_key)
            if data is not None:
                logger.debug(f"✓ Using cached streams for activity {activity_id}")

        if data is None:
            response = self._get(
                f'/activities/{activity_id}/streams',
                {'keys': STREAM_KEYS, 'key_by_type': 'true',
                 'resolution': 'high', 'series_type': 'time'},
            )
            if response.status_code == 404:
                # Indoor activity or manual entry; cache the empty result to avoid repeat calls
                logger.info(f"📍 No GPS data available for activity {activity_id}")
                data = {}
            elif not response.ok:
                raise StravaAPIError(f"HTTP {response.status_code} fetching streams for {activity_id}",
                                     status_code=response.status_code)
            else:
                data = response.json()
            if self.cache:
                self.cache.set("activity_streams", data, cache_key)

        stream = GpsStream.from_strava_streams(data)
        if stream is not None:
            logger.info(f"✅ Streams for activity {activity_id}: {len(stream)} points")
        return stream

    def get_activity_photos(self, activity_id, size=2048) -> List[Dict[str, Any]]:
        """
        Fetch photos for a specific activity

        Args:
            activity_id: The Strava activity ID
            size: Requested photo size in pixels

        Returns:
            List of photo dicts with urls and metadata, empty on failure
        """
        try:
            return self._get_json(f'/activities/{activity_id}/photos',
                                  {'size': size, 'photo_sources': 'true'})
        except StravaAuthError:
            raise
        except StravaAPIError as e:
            logger.debug(f"No photos for activity {activity_id}: {e}")
            return []

    def clear_cache(self, cache_type: Optional[str] = None) -> int:
        """
        Clear cached data for this user.

        Returns:
            Number of cache files deleted
        """
        if self.cache:
            count = self.cache.clear(cache_type)
            logger.info(f"🧹 Cleared {count} cache files")
            return count
        return 0
