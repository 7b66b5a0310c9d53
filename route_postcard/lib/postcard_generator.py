"""High-level utilities for generating activity postcards programmatically."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .. import config
from .location_utils import PlaceSearch
from .place_labeler import PlaceLabeler
from .postcard import ImageProcessor, PostcardComposer, PostcardResult, Slot, SlotKind, photo_url
from .route_overlay import RouteOverlayRenderer
from .stop_detector import StopDetectionConfig, StopDetector
from .strava_api import StravaAPI, StravaCache, StreamCache

logger = logging.getLogger(__name__)


@dataclass
class PostcardRequest:
    """Parameters describing one postcard render."""

    activity_id: int
    format_key: str = "square"
    slot: SlotKind = SlotKind.ROUTE_OVERLAY
    photo_index: Optional[int] = 0  # None = gradient background
    include_places: bool = True


def build_strava_client() -> StravaAPI:
    """Create a StravaAPI from the configured credentials."""

    if not (config.STRAVA_CLIENT_ID and config.STRAVA_CLIENT_SECRET and config.STRAVA_REFRESH_TOKEN):
        raise ValueError(
            "Strava credentials missing: set STRAVA_CLIENT_ID, STRAVA_CLIENT_SECRET "
            "and STRAVA_REFRESH_TOKEN"
        )
    cache = StravaCache(config.CACHE_DIR, ttl_seconds=config.API_CACHE_TTL_SECONDS)
    return StravaAPI(
        config.STRAVA_CLIENT_ID,
        config.STRAVA_CLIENT_SECRET,
        config.STRAVA_REFRESH_TOKEN,
        cache=cache,
    )


def build_stop_detector() -> StopDetector:
    return StopDetector(StopDetectionConfig(
        min_duration_minutes=config.STOP_MIN_DURATION_MINUTES,
        max_stop_radius_m=config.STOP_RADIUS_METERS,
        min_movement_threshold_m=config.STOP_MOVEMENT_THRESHOLD_METERS,
    ))


def build_place_labeler() -> PlaceLabeler:
    search = PlaceSearch(base_url=config.NOMINATIM_URL, user_agent=config.NOMINATIM_USER_AGENT)
    return PlaceLabeler(search, query_delay=config.PLACE_QUERY_DELAY_SECONDS)


def build_renderer(strava: Optional[StravaAPI], stream_cache: Optional[StreamCache] = None,
                   include_places: bool = True) -> RouteOverlayRenderer:
    """Wire a renderer whose streams come from ``strava`` through ``stream_cache``."""

    stream_provider = None
    if strava is not None:
        cache = stream_cache or StreamCache()

        def stream_provider(activity_id):
            return cache.get_or_fetch(activity_id, strava.get_activity_streams)

    return RouteOverlayRenderer(
        place_labeler=build_place_labeler() if include_places else None,
        stop_detector=build_stop_detector(),
        stream_provider=stream_provider,
    )


def _load_photo(strava: StravaAPI, activity: Dict[str, Any], index: Optional[int]):
    if index is None or not activity.get("total_photo_count", 1):
        return None
    photos = strava.get_activity_photos(activity["id"])
    if not photos:
        return None
    photo = photos[min(max(index, 0), len(photos) - 1)]
    url = photo_url(photo)
    if not url:
        return None
    return ImageProcessor.download_image(url)


def generate_postcard(strava: StravaAPI, request: PostcardRequest,
                      composer: Optional[PostcardComposer] = None,
                      stream_cache: Optional[StreamCache] = None) -> PostcardResult:
    """Fetch an activity (and its photo) and compose the requested slot."""

    activity = strava.get_activity_by_id(request.activity_id)
    if stream_cache is not None:
        stream_cache.select(request.activity_id)

    if composer is None:
        composer = PostcardComposer(build_renderer(strava, stream_cache, request.include_places))

    photo = _load_photo(strava, activity, request.photo_index)

    logger.info(
        f"🖼️  Composing {request.slot.value} slot ({request.format_key}) "
        f"for '{activity.get('name', 'Unnamed')}'"
    )
    return composer.compose(request.format_key, Slot(request.slot, photo), activity)
