"""Detect dwell periods ("stops") in a GPS + time stream."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .location_utils import LocationUtils
from .models import GeoPoint, GpsStream, Stop

logger = logging.getLogger(__name__)


@dataclass
class StopDetectionConfig:
    """Tuning knobs for stop detection.

    The radius and movement threshold were tuned by inspection on running and
    cycling activities; treat them as defaults rather than physics.
    """

    min_duration_minutes: float = 5.0
    max_stop_radius_m: float = 50.0
    min_movement_threshold_m: float = 50.0
    trim_fraction: float = 0.02
    movement_lookaround: int = 10
    max_stops: int = 9


class StopDetector:
    """Scan a stream for clustered, time-bounded stationary windows."""

    def __init__(self, config: Optional[StopDetectionConfig] = None):
        self.config = config or StopDetectionConfig()

    def detect(self, stream: GpsStream, min_duration_minutes: Optional[float] = None) -> List[Stop]:
        """Return stops in chronological order, capped at ``config.max_stops``.

        A window starting at point ``i`` grows while every point stays within
        ``max_stop_radius_m`` of point ``i``. Windows lasting at least the
        minimum duration become candidates, and a candidate is kept only when
        there was real movement just before arriving or just after leaving.
        """
        cfg = self.config
        if min_duration_minutes is None:
            min_duration_minutes = cfg.min_duration_minutes
        min_duration_s = min_duration_minutes * 60.0

        if not stream.has_timestamps:
            logger.debug("Stream has no timestamps, skipping stop detection")
            return []

        points = stream.coordinates
        times = stream.timestamps
        n = len(points)

        # GPS is noisy while the device is still indoors or being stowed
        trim = int(n * cfg.trim_fraction)
        start, end = trim, n - trim
        if end - start < 2:
            return []

        stops: List[Stop] = []
        i = start
        while i < end:
            anchor = points[i]
            j = i + 1
            while j < end and LocationUtils.distance_between(anchor, points[j]) <= cfg.max_stop_radius_m:
                j += 1
            stationary_end = j - 1

            if stationary_end > i and times[stationary_end] - times[i] >= min_duration_s:
                stop = self._accept_candidate(points, times, i, stationary_end)
                if stop is not None:
                    stops.append(stop)
                    logger.debug(
                        f"Stop at ({stop.point.lat:.5f}, {stop.point.lng:.5f}) "
                        f"for {stop.duration_minutes:.1f} min"
                    )
                i = stationary_end + 1
            else:
                i += 1

        if len(stops) > cfg.max_stops:
            logger.info(f"Keeping first {cfg.max_stops} of {len(stops)} stops")
            stops = stops[:cfg.max_stops]

        return stops

    def _accept_candidate(self, points: List[GeoPoint], times: List[float],
                          first: int, last: int) -> Optional[Stop]:
        cfg = self.config
        before_idx = max(0, first - cfg.movement_lookaround)
        after_idx = min(len(points) - 1, last + cfg.movement_lookaround)

        movement_before = LocationUtils.distance_between(points[before_idx], points[first])
        movement_after = LocationUtils.distance_between(points[last], points[after_idx])

        # Stationary runs with no travel around them are drift or a paused recording
        if (movement_before <= cfg.min_movement_threshold_m
                and movement_after <= cfg.min_movement_threshold_m):
            return None

        window = np.array([p.as_pair() for p in points[first:last + 1]], dtype=float)
        mean_lat, mean_lng = window.mean(axis=0)

        return Stop(
            point=GeoPoint(float(mean_lat), float(mean_lng)),
            start_time=times[first],
            end_time=times[last],
            duration_seconds=times[last] - times[first],
            support_point_count=last - first + 1,
            movement_before_m=movement_before,
            movement_after_m=movement_after,
        )
