#!/usr/bin/env python3
"""
Location utilities for distance calculations and place searches
"""

import logging
import math
from typing import Any, Dict, List, Optional

import requests

from .models import BoundingBox, GeoPoint

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000.0

NOMINATIM_SEARCH_URL = "https://nominatim.openstreetmap.org/search"
DEFAULT_USER_AGENT = "RoutePostcard/1.0 (Strava activity postcards)"


class LocationUtils:
    """Utilities for location-based operations"""

    @staticmethod
    def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """
        Calculate the great circle distance between two points on Earth
        using the Haversine formula

        Args:
            lat1, lon1: Coordinates of first point (in degrees)
            lat2, lon2: Coordinates of second point (in degrees)

        Returns:
            Distance in meters
        """
        lat1_rad = math.radians(lat1)
        lat2_rad = math.radians(lat2)
        dlat = lat2_rad - lat1_rad
        dlon = math.radians(lon2 - lon1)

        a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
        c = 2 * math.asin(min(1.0, math.sqrt(a)))

        return EARTH_RADIUS_M * c

    @staticmethod
    def distance_between(a: GeoPoint, b: GeoPoint) -> float:
        """Haversine distance in meters between two GeoPoints"""
        return LocationUtils.haversine_distance(a.lat, a.lng, b.lat, b.lng)


class PlaceSearch:
    """
    Nominatim (OpenStreetMap) search restricted to a bounding box

    Each call is a single HTTP request; callers are responsible for spacing
    requests out to respect the public instance's usage policy.
    """

    def __init__(self, base_url: str = NOMINATIM_SEARCH_URL,
                 user_agent: str = DEFAULT_USER_AGENT,
                 timeout: float = 10.0, limit: int = 50,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url
        self.user_agent = user_agent
        self.timeout = timeout
        self.limit = limit
        self.session = session or requests.Session()

    def search(self, query: str, box: BoundingBox) -> List[Dict[str, Any]]:
        """
        Search for places matching ``query`` inside ``box``

        Args:
            query: Free-text query, e.g. a place type keyword like "suburb"
            box: Area to search; results outside it are excluded by Nominatim

        Returns:
            Raw Nominatim records (``name``, ``class``, ``type``, ``lat``,
            ``lon``, ``address``)

        Raises:
            requests.exceptions.RequestException: On network or HTTP errors
        """
        params = {
            'q': query,
            'format': 'json',
            'viewbox': box.as_viewbox(),
            'bounded': 1,
            'addressdetails': 1,
            'limit': self.limit,
        }
        headers = {
            'User-Agent': self.user_agent,
            'Accept-Language': 'en',
        }

        logger.debug(f"Searching places: q={query!r} viewbox={params['viewbox']}")
        response = self.session.get(self.base_url, params=params, headers=headers, timeout=self.timeout)
        response.raise_for_status()

        results = response.json()
        if not isinstance(results, list):
            logger.warning(f"⚠️  Unexpected place search payload for {query!r}: {type(results).__name__}")
            return []
        return results
