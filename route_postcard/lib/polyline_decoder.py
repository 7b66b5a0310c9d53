"""
Google encoded polyline decoding for Strava activity maps
"""

import logging
from typing import Any, Dict, List, Sequence

import polyline

from .models import GeoPoint

logger = logging.getLogger(__name__)

PRECISION = 5


class PolylineDecodeError(ValueError):
    """Raised when an encoded polyline string is malformed."""


def decode_polyline(encoded: str) -> List[GeoPoint]:
    """
    Decode a Google encoded polyline into an ordered list of points

    Args:
        encoded: Polyline string (1e-5 degree precision, as returned by Strava)

    Returns:
        List of GeoPoint, empty for an empty string

    Raises:
        PolylineDecodeError: If the string ends mid-chunk or holds
            characters outside the encoding alphabet
    """
    if not encoded:
        return []
    try:
        decoded = polyline.decode(encoded, PRECISION)
        return [GeoPoint(float(lat), float(lng)) for lat, lng in decoded]
    except (IndexError, ValueError, TypeError) as exc:
        raise PolylineDecodeError(f"Unable to decode polyline: {exc}") from exc


def encode_polyline(points: Sequence[GeoPoint]) -> str:
    """Encode points back to a polyline string."""
    return polyline.encode([p.as_pair() for p in points], PRECISION)


def route_points(activity: Dict[str, Any]) -> List[GeoPoint]:
    """
    Extract the decoded route of an activity record

    Prefers ``map.summary_polyline`` and falls back to the full-resolution
    ``map.polyline`` that detailed activity responses carry. Returns an empty
    list when the activity has no map.
    """
    activity_map = activity.get("map") or {}
    encoded = activity_map.get("summary_polyline") or activity_map.get("polyline")
    if not encoded:
        logger.debug(f"Activity {activity.get('id')} has no polyline")
        return []
    return decode_polyline(encoded)
