"""Route overlay renderer: place names, zones, route line and numbered markers."""

from __future__ import annotations

import enum
import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .geo_projector import GeoProjector
from .models import GeoPoint, GpsStream, PlacedLabel
from .place_labeler import PlaceLabeler
from .polyline_decoder import PolylineDecodeError, route_points
from .stop_detector import StopDetector
from .surface import Color, RenderSurface, hex_to_rgba, load_font

logger = logging.getLogger(__name__)

Point = Tuple[float, float]
StreamProvider = Callable[[Any], Optional[GpsStream]]


class RenderState(enum.Enum):
    IDLE = "idle"
    RENDERING = "rendering"


class RenderOutcome(enum.Enum):
    DRAWN = "drawn"
    SKIPPED = "skipped"  # no usable route
    DROPPED = "dropped"  # another render was in flight
    FAILED = "failed"


@dataclass
class OverlayStyle:
    """Sizes are fractions of the canvas width so every format looks alike."""

    route_color: str = '#FC4C02'
    route_width: float = 0.006
    start_zone_color: Color = (46, 204, 113, 90)
    end_zone_color: Color = (231, 76, 60, 90)
    zone_radius: float = 0.035
    marker_color: str = '#FF4FA3'
    marker_text_color: Color = (255, 255, 255, 255)
    marker_radius: float = 0.014
    label_color: Color = (255, 255, 255, 153)  # ~60% opacity
    label_shadow: Color = (0, 0, 0, 170)
    label_font_size: float = 0.024
    # End zone is dropped when start/end are closer than this share of the zone diameter
    end_overlap_ratio: float = 0.8

    def px(self, fraction: float, width: int, minimum: float = 1.0) -> float:
        return max(minimum, fraction * width)


@dataclass(frozen=True)
class Marker:
    number: int
    center: Point
    kind: str


def number_markers(start: Point, end: Optional[Point], stop_centers: Sequence[Point]) -> List[Marker]:
    """Start is 1, stops count up from 2, the end (if shown) follows the last stop."""
    markers = [Marker(1, start, 'start')]
    markers += [Marker(n, center, 'stop') for n, center in enumerate(stop_centers, start=2)]
    if end is not None:
        markers.append(Marker(len(stop_centers) + 2, end, 'end'))
    return markers


class RenderGuard:
    """IDLE -> RENDERING -> IDLE state machine; a busy guard rejects entry."""

    def __init__(self):
        self._lock = threading.Lock()
        self._state = RenderState.IDLE

    @property
    def state(self) -> RenderState:
        return self._state

    def try_enter(self) -> bool:
        with self._lock:
            if self._state is RenderState.RENDERING:
                return False
            self._state = RenderState.RENDERING
            return True

    def leave(self):
        with self._lock:
            self._state = RenderState.IDLE


class RouteOverlayRenderer:
    """
    Draws a route overlay for one activity onto a RenderSurface

    Layers, back to front: place labels, start/end zones, route line,
    numbered markers. A render that fails part way leaves whatever layers
    were already drawn.
    """

    def __init__(self, place_labeler: Optional[PlaceLabeler] = None,
                 stop_detector: Optional[StopDetector] = None,
                 stream_provider: Optional[StreamProvider] = None,
                 style: Optional[OverlayStyle] = None,
                 loading_indicator: Optional[Callable[[bool], None]] = None):
        self.place_labeler = place_labeler
        self.stop_detector = stop_detector or StopDetector()
        self.stream_provider = stream_provider
        self.style = style or OverlayStyle()
        self.loading_indicator = loading_indicator
        self.guard = RenderGuard()

    @property
    def busy(self) -> bool:
        return self.guard.state is RenderState.RENDERING

    def render(self, surface: RenderSurface, width: int, height: int,
               activity: Dict[str, Any], stream: Optional[GpsStream] = None) -> RenderOutcome:
        """
        Render the overlay for ``activity``

        A call made while another render is in flight is dropped, not queued;
        the caller may retry once the first one settles.
        """
        if not self.guard.try_enter():
            logger.info("⏳ Route overlay render already in progress, skipping")
            return RenderOutcome.DROPPED

        self._set_loading(True)
        try:
            return self._render(surface, width, height, activity, stream)
        except Exception as e:
            logger.error(f"❌ Route overlay render failed for activity {activity.get('id')}: {e}")
            logger.debug("Route overlay failure", exc_info=True)
            return RenderOutcome.FAILED
        finally:
            self._set_loading(False)
            self.guard.leave()

    def _set_loading(self, on: bool):
        if self.loading_indicator is None:
            return
        try:
            self.loading_indicator(on)
        except Exception as e:
            logger.warning(f"⚠️  Loading indicator callback failed: {e}")

    def _render(self, surface: RenderSurface, width: int, height: int,
                activity: Dict[str, Any], stream: Optional[GpsStream]) -> RenderOutcome:
        try:
            route = route_points(activity)
        except PolylineDecodeError as e:
            logger.debug(f"Skipping overlay, bad polyline: {e}")
            return RenderOutcome.SKIPPED
        if len(route) < 2:
            logger.debug(f"Skipping overlay for activity {activity.get('id')}: no route")
            return RenderOutcome.SKIPPED

        if stream is None:
            stream = self._fetch_stream(activity)
        stops = self.stop_detector.detect(stream) if stream is not None else []

        projector = GeoProjector(route, width, height)
        placed = self._place_labels(surface, projector)

        start = projector.project(route[0])
        end = projector.project(route[-1])

        self._draw_labels(surface, width, placed)
        show_end = self._draw_zones(surface, width, start, end)
        self._draw_route(surface, width, projector, route)
        self._draw_markers(surface, width, start, end if show_end else None,
                           [projector.project(stop.point) for stop in stops])

        logger.info(
            f"🗺️  Route overlay drawn: {len(route)} points, {len(stops)} stops, {len(placed)} labels"
        )
        return RenderOutcome.DRAWN

    def _fetch_stream(self, activity: Dict[str, Any]) -> Optional[GpsStream]:
        if self.stream_provider is None:
            return None
        try:
            return self.stream_provider(activity.get('id'))
        except Exception as e:
            logger.warning(f"⚠️  Could not fetch GPS stream, drawing without stops: {e}")
            return None

    def _label_font(self, width: int):
        return load_font(int(self.style.px(self.style.label_font_size, width, 10)))

    def _place_labels(self, surface: RenderSurface, projector: GeoProjector) -> List[PlacedLabel]:
        if self.place_labeler is None:
            return []
        places = self.place_labeler.find_places(projector.query_box)
        if not places:
            return []
        font = self._label_font(projector.width)
        return self.place_labeler.layout(
            places, projector.project, lambda text: surface.measure_text(text, font)
        )

    # Layers ------------------------------------------------------------

    def _draw_labels(self, surface: RenderSurface, width: int, placed: Sequence[PlacedLabel]):
        if not placed:
            return
        surface.draw_texts_with_shadow(
            [((p.x, p.y), p.label.text) for p in placed],
            self._label_font(width),
            self.style.label_color,
            shadow=self.style.label_shadow,
        )

    def end_is_suppressed(self, start: Point, end: Point, width: int) -> bool:
        """True when start and end are close enough to read as one point."""
        diameter = 2 * self.style.px(self.style.zone_radius, width, 6)
        return math.dist(start, end) < self.style.end_overlap_ratio * diameter

    def _draw_zones(self, surface: RenderSurface, width: int, start: Point, end: Point) -> bool:
        """Draw the zone circles; returns whether the end zone was drawn."""
        style = self.style
        radius = style.px(style.zone_radius, width, 6)
        surface.fill_circle(start, radius, style.start_zone_color)

        if self.end_is_suppressed(start, end, width):
            logger.debug("Start and end overlap, drawing a single zone")
            return False

        surface.fill_circle(end, radius, style.end_zone_color)
        return True

    def _draw_route(self, surface: RenderSurface, width: int, projector: GeoProjector,
                    route: Sequence[GeoPoint]):
        line_width = int(round(self.style.px(self.style.route_width, width, 2)))
        surface.stroke_polyline(projector.project_all(route), hex_to_rgba(self.style.route_color), line_width)

    def _draw_markers(self, surface: RenderSurface, width: int, start: Point,
                      end: Optional[Point], stop_centers: Sequence[Point]):
        style = self.style
        radius = style.px(style.marker_radius, width, 8)
        font = load_font(max(8, int(radius * 1.2)), 'bold')
        fill = hex_to_rgba(style.marker_color)

        for marker in number_markers(start, end, stop_centers):
            surface.fill_circle(marker.center, radius, fill, outline=(255, 255, 255, 255),
                                outline_width=max(1, int(radius / 6)))
            surface.draw_centered_numeral(marker.center, str(marker.number), font, style.marker_text_color)
