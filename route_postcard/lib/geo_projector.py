"""
Bounding boxes and lat/lng -> pixel projection for route overlays
"""

from typing import Sequence, Tuple

import numpy as np

from .models import BoundingBox, GeoPoint, Projection

# Widen the place search so names just outside the route are found
QUERY_PAD = 0.3
# Keep the drawn route off the canvas edges
RENDER_PAD = 0.1
# Smallest span in degrees, used when every point is identical
MIN_SPAN_DEG = 0.001


def compute_bounds(points: Sequence[GeoPoint]) -> BoundingBox:
    """
    Get the bounding box of a set of points

    Args:
        points: Route points

    Returns:
        BoundingBox over all points

    Raises:
        ValueError: If ``points`` is empty
    """
    if not points:
        raise ValueError("Cannot compute bounds of an empty point set")

    coords = np.array([p.as_pair() for p in points], dtype=float)
    min_lat, min_lng = coords.min(axis=0)
    max_lat, max_lng = coords.max(axis=0)
    return BoundingBox(float(min_lat), float(max_lat), float(min_lng), float(max_lng))


def _ensure_span(box: BoundingBox) -> BoundingBox:
    if box.lat_span > 0 or box.lng_span > 0:
        return box
    half = MIN_SPAN_DEG / 2
    return BoundingBox(box.min_lat - half, box.max_lat + half,
                       box.min_lng - half, box.max_lng + half)


def projection_for(box: BoundingBox, width: int, height: int) -> Projection:
    """
    Fit ``box`` into a ``width`` x ``height`` canvas without stretching

    Uses a single scale for both axes (the smaller of the two fits) and
    centres the projected extent on the canvas.
    """
    box = _ensure_span(box)
    lat_span = box.lat_span
    lng_span = box.lng_span

    if lng_span <= 0:
        scale = height / lat_span
    elif lat_span <= 0:
        scale = width / lng_span
    else:
        scale = min(width / lng_span, height / lat_span)

    offset_x = (width - lng_span * scale) / 2
    offset_y = (height - lat_span * scale) / 2
    return Projection(scale=scale, offset_x=offset_x, offset_y=offset_y,
                      box=box, width=width, height=height)


def project(box: BoundingBox, width: int, height: int, point: GeoPoint) -> Tuple[float, float]:
    """Project a single point onto the canvas for ``box``."""
    return projection_for(box, width, height).project(point)


class GeoProjector:
    """Shared bounds and projection for one render of a route."""

    def __init__(self, points: Sequence[GeoPoint], width: int, height: int,
                 query_pad: float = QUERY_PAD, render_pad: float = RENDER_PAD):
        self.width = width
        self.height = height
        self.bounds = _ensure_span(compute_bounds(points))
        self.query_box = self.bounds.padded(query_pad)
        self.render_box = self.bounds.padded(render_pad)
        self.projection = projection_for(self.render_box, width, height)

    def project(self, point: GeoPoint) -> Tuple[float, float]:
        return self.projection.project(point)

    def project_all(self, points: Sequence[GeoPoint]):
        return [self.projection.project(p) for p in points]
