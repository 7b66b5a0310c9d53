"""Data types shared by the route overlay pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple


# Lower rank draws first and wins label collisions
PLACE_PRIORITY = {
    "city": 1,
    "town": 2,
    "suburb": 3,
    "locality": 4,
    "neighbourhood": 5,
    "village": 6,
    "hamlet": 7,
}
DEFAULT_PLACE_PRIORITY = 8


def place_priority(place_type: Optional[str]) -> int:
    """Return the drawing priority for an OSM place type."""
    return PLACE_PRIORITY.get((place_type or "").lower(), DEFAULT_PLACE_PRIORITY)


@dataclass(frozen=True)
class GeoPoint:
    """A WGS84 coordinate in decimal degrees."""

    lat: float
    lng: float

    def __post_init__(self):
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"Latitude out of range: {self.lat}")
        if not -180.0 <= self.lng <= 180.0:
            raise ValueError(f"Longitude out of range: {self.lng}")

    @classmethod
    def from_pair(cls, pair: Sequence[float]) -> "GeoPoint":
        return cls(float(pair[0]), float(pair[1]))

    def as_pair(self) -> Tuple[float, float]:
        return (self.lat, self.lng)


@dataclass
class GpsStream:
    """
    Parallel GPS sample arrays for one activity.

    ``timestamps`` are seconds relative to the activity start. ``distances``
    and ``altitudes`` are optional; when present every array has the same
    length as ``coordinates``.
    """

    coordinates: List[GeoPoint]
    timestamps: List[float] = field(default_factory=list)
    distances: Optional[List[float]] = None
    altitudes: Optional[List[float]] = None

    def __post_init__(self):
        expected = len(self.coordinates)
        for name in ("timestamps", "distances", "altitudes"):
            values = getattr(self, name)
            if values is None or (name == "timestamps" and not values):
                continue
            if len(values) != expected:
                raise ValueError(
                    f"Stream '{name}' has {len(values)} samples, expected {expected}"
                )

    def __len__(self):
        return len(self.coordinates)

    @property
    def has_timestamps(self) -> bool:
        return bool(self.timestamps) and len(self.timestamps) == len(self.coordinates)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "GpsStream":
        """Build a stream from the processed ``{coordinates, timestamps, ...}`` shape."""
        coordinates = [GeoPoint.from_pair(pair) for pair in payload.get("coordinates") or []]
        return cls(
            coordinates=coordinates,
            timestamps=[float(t) for t in payload.get("timestamps") or []],
            distances=_optional_floats(payload.get("distances")),
            altitudes=_optional_floats(payload.get("altitudes")),
        )

    @classmethod
    def from_strava_streams(cls, streams: Dict[str, Any]) -> Optional["GpsStream"]:
        """
        Build a stream from a Strava ``key_by_type`` streams response

        Returns None when the response carries no GPS samples (indoor or
        manual activities).
        """
        latlng = (streams.get("latlng") or {}).get("data")
        if not latlng:
            return None
        return cls.from_payload({
            "coordinates": latlng,
            "timestamps": (streams.get("time") or {}).get("data"),
            "distances": (streams.get("distance") or {}).get("data"),
            "altitudes": (streams.get("altitude") or {}).get("data"),
        })

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "coordinates": [list(p.as_pair()) for p in self.coordinates],
            "timestamps": list(self.timestamps),
        }
        if self.distances is not None:
            payload["distances"] = list(self.distances)
        if self.altitudes is not None:
            payload["altitudes"] = list(self.altitudes)
        return payload


def _optional_floats(values):
    if values is None:
        return None
    return [float(v) for v in values]


@dataclass(frozen=True)
class Stop:
    """A dwell period detected in a GPS stream."""

    point: GeoPoint
    start_time: float
    end_time: float
    duration_seconds: float
    support_point_count: int
    movement_before_m: float
    movement_after_m: float

    @property
    def duration_minutes(self) -> float:
        return self.duration_seconds / 60.0


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    @property
    def lat_span(self) -> float:
        return self.max_lat - self.min_lat

    @property
    def lng_span(self) -> float:
        return self.max_lng - self.min_lng

    @property
    def center(self) -> GeoPoint:
        return GeoPoint((self.min_lat + self.max_lat) / 2, (self.min_lng + self.max_lng) / 2)

    def padded(self, factor: float) -> "BoundingBox":
        """
        Grow the box on every side by ``factor`` times its larger range.

        Both axes get the same absolute pad so a long thin route still gets
        breathing room across its narrow side.
        """
        pad = max(self.lat_span, self.lng_span) * factor
        return BoundingBox(
            self.min_lat - pad,
            self.max_lat + pad,
            self.min_lng - pad,
            self.max_lng + pad,
        )

    def contains(self, point: GeoPoint) -> bool:
        return (self.min_lat <= point.lat <= self.max_lat
                and self.min_lng <= point.lng <= self.max_lng)

    def as_viewbox(self) -> str:
        """Nominatim ``viewbox`` parameter (left,top,right,bottom)."""
        return f"{self.min_lng},{self.max_lat},{self.max_lng},{self.min_lat}"


@dataclass(frozen=True)
class Projection:
    """Affine lat/lng -> pixel mapping, valid only for ``box``."""

    scale: float
    offset_x: float
    offset_y: float
    box: BoundingBox
    width: int
    height: int

    def project(self, point: GeoPoint) -> Tuple[float, float]:
        x = self.offset_x + (point.lng - self.box.min_lng) * self.scale
        # Flip Y so north is up
        y = self.height - (self.offset_y + (point.lat - self.box.min_lat) * self.scale)
        return (x, y)


@dataclass(frozen=True)
class PlaceLabel:
    name: str
    point: GeoPoint
    priority: int
    place_type: str = ""
    display_name: str = ""

    @property
    def text(self) -> str:
        return self.display_name or self.name


@dataclass(frozen=True)
class TextBox:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def padded(self, margin: float) -> "TextBox":
        return TextBox(self.x - margin, self.y - margin,
                       self.width + 2 * margin, self.height + 2 * margin)

    def overlaps(self, other: "TextBox") -> bool:
        # Touching edges do not count as overlap
        return (self.x < other.right and other.x < self.right
                and self.y < other.bottom and other.y < self.bottom)


@dataclass(frozen=True)
class PlacedLabel:
    label: PlaceLabel
    x: float
    y: float
    box: TextBox
