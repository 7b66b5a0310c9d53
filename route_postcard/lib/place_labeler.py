"""Find nearby place names and lay them out without collisions."""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import requests

from .location_utils import PlaceSearch
from .models import BoundingBox, GeoPoint, PlaceLabel, PlacedLabel, TextBox, place_priority

logger = logging.getLogger(__name__)

SEARCH_KEYWORDS = ("suburb", "locality", "neighbourhood", "town", "city", "village")

PLACE_CATEGORIES = frozenset({"place", "boundary", "landuse", "highway"})
PLACE_TYPES = frozenset({
    "city", "town", "village", "hamlet", "suburb", "quarter",
    "neighbourhood", "locality", "administrative", "residential",
})

# Address sub-fields preferred over the raw record name, in order
DISPLAY_NAME_FIELDS = ("suburb", "neighbourhood", "town", "city")

MAX_CANDIDATES = 15

MeasureFn = Callable[[str], Tuple[float, float]]
ProjectFn = Callable[[GeoPoint], Tuple[float, float]]


def display_name(record: Dict[str, Any]) -> str:
    """Prefer structured address names over the raw place name."""
    address = record.get("address") or {}
    for key in DISPLAY_NAME_FIELDS:
        value = address.get(key)
        if value:
            return str(value)
    return str(record.get("name") or "")


def _record_point(record: Dict[str, Any]) -> Optional[GeoPoint]:
    try:
        lat = float(record["lat"])
        lng = float(record["lon"])
    except (KeyError, TypeError, ValueError):
        return None
    if math.isnan(lat) or math.isnan(lng):
        return None
    try:
        return GeoPoint(lat, lng)
    except ValueError:
        return None


def to_place_label(record: Dict[str, Any]) -> Optional[PlaceLabel]:
    """
    Convert a raw search record into a PlaceLabel, or None if it is not a
    usable place (wrong category or type, missing name or coordinates).
    """
    category = record.get("class") or record.get("category")
    place_type = record.get("type")
    name = record.get("name")
    if category not in PLACE_CATEGORIES or place_type not in PLACE_TYPES:
        return None
    if not name:
        return None
    point = _record_point(record)
    if point is None:
        return None
    return PlaceLabel(
        name=str(name),
        point=point,
        priority=place_priority(place_type),
        place_type=place_type,
        display_name=display_name(record),
    )


def select_places(records: Iterable[Dict[str, Any]], limit: int = MAX_CANDIDATES) -> List[PlaceLabel]:
    """Filter, dedupe by name (first wins), sort by priority and truncate."""
    seen = set()
    places = []
    for record in records:
        label = to_place_label(record)
        if label is None or label.name in seen:
            continue
        seen.add(label.name)
        places.append(label)

    # sorted() is stable so equal priorities keep encounter order
    places = sorted(places, key=lambda p: p.priority)
    return places[:limit]


def layout_labels(places: Sequence[PlaceLabel], project: ProjectFn, measure: MeasureFn,
                  padding: float = 6.0) -> List[PlacedLabel]:
    """
    Greedily place labels in priority order

    Each label's text box is centred on its projected point and grown by
    ``padding``; a label whose box overlaps any already accepted box is
    skipped. Labels are expected in ascending priority (see select_places).
    """
    accepted: List[PlacedLabel] = []
    for place in places:
        text = place.text
        if not text:
            continue
        x, y = project(place.point)
        text_width, text_height = measure(text)
        box = TextBox(x - text_width / 2, y - text_height / 2, text_width, text_height).padded(padding)

        if any(box.overlaps(other.box) for other in accepted):
            logger.debug(f"Label '{text}' collides, skipped")
            continue
        accepted.append(PlacedLabel(label=place, x=x, y=y, box=box))
    return accepted


class PlaceLabeler:
    """Query a place search over a route's area and resolve label positions."""

    def __init__(self, search: Optional[PlaceSearch] = None, query_delay: float = 1.0,
                 keywords: Sequence[str] = SEARCH_KEYWORDS, max_candidates: int = MAX_CANDIDATES,
                 padding: float = 6.0, sleep: Callable[[float], None] = time.sleep):
        self.search = search or PlaceSearch()
        self.query_delay = query_delay
        self.keywords = tuple(keywords)
        self.max_candidates = max_candidates
        self.padding = padding
        self._sleep = sleep

    def find_places(self, box: BoundingBox) -> List[PlaceLabel]:
        """Run one search per keyword and merge the usable results."""
        records: List[Dict[str, Any]] = []
        for index, keyword in enumerate(self.keywords):
            if index and self.query_delay > 0:
                self._sleep(self.query_delay)
            try:
                results = self.search.search(keyword, box)
            except requests.exceptions.RequestException as e:
                logger.warning(f"⚠️  Place search for '{keyword}' failed: {e}")
                continue
            except ValueError as e:
                # Non-JSON body
                logger.warning(f"⚠️  Could not parse place search response for '{keyword}': {e}")
                continue
            records.extend(results)

        places = select_places(records, self.max_candidates)
        logger.info(f"📍 {len(places)} place candidates from {len(records)} search results")
        return places

    def layout(self, places: Sequence[PlaceLabel], project: ProjectFn, measure: MeasureFn) -> List[PlacedLabel]:
        return layout_labels(places, project, measure, padding=self.padding)
