"""Shared pytest fixtures: synthetic GPS streams and fake HTTP plumbing.

Adds the project root to the path so the package imports without install.
"""
from __future__ import annotations

import json
import math
import os
import sys

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from route_postcard.lib.models import GeoPoint, GpsStream
from route_postcard.lib.polyline_decoder import encode_polyline

BASE_LAT = 37.77
BASE_LNG = -122.42
# Metres per degree of latitude for the haversine Earth radius
M_PER_DEG_LAT = 6371000.0 * math.pi / 180.0


def offset(north_m, east_m=0.0, lat=BASE_LAT, lng=BASE_LNG):
    """GeoPoint ``north_m``/``east_m`` metres away from (lat, lng)."""
    dlat = north_m / M_PER_DEG_LAT
    dlng = east_m / (M_PER_DEG_LAT * math.cos(math.radians(lat)))
    return GeoPoint(lat + dlat, lng + dlng)


class StreamBuilder:
    """Build a northbound stream sample by sample, 10 s apart."""

    def __init__(self, interval=10.0):
        self.interval = interval
        self.points = []
        self.times = []
        self.position = 0.0
        self.stop_starts = []

    def _add(self, point):
        self.times.append(len(self.points) * self.interval)
        self.points.append(point)

    def move(self, steps, step_m=100.0):
        for _ in range(steps):
            self.position += step_m
            self._add(offset(self.position))
        return self

    def dwell(self, samples, jitter_m=2.0):
        # The last moving sample is the arrival point of the stop
        self.stop_starts.append((len(self.points) - 1) * self.interval)
        for k in range(samples):
            # Small deterministic east/west wobble around the stop
            east = jitter_m if k % 2 else -jitter_m
            self._add(offset(self.position, east))
        return self

    def build(self):
        return GpsStream(coordinates=list(self.points), timestamps=list(self.times))


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def stream_builder():
    return StreamBuilder


@pytest.fixture
def one_stop_stream():
    """Ride north, stand still for exactly 10 minutes, ride on."""
    return StreamBuilder().move(30).dwell(60).move(30).build()


@pytest.fixture
def moving_stream():
    return StreamBuilder().move(120).build()


@pytest.fixture
def route_activity():
    """Activity record with an L-shaped 3 km route."""
    points = [offset(n * 250.0) for n in range(9)] + [offset(2000.0, e * 250.0) for e in range(1, 5)]
    return {
        "id": 42,
        "name": "Morning Ride",
        "distance": 3000.0,
        "moving_time": 900,
        "total_elevation_gain": 35.0,
        "map": {"summary_polyline": encode_polyline(points)},
    }


@pytest.fixture
def loop_activity():
    """Route that finishes where it started."""
    points = [offset(0), offset(1000), offset(1000, 1000), offset(0, 1000), offset(0)]
    return {"id": 7, "name": "Loop", "map": {"summary_polyline": encode_polyline(points)}}


class FakeResp:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code=200, data=None):
        self.status_code = status_code
        self._data = data if data is not None else []

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if isinstance(self._data, Exception):
            raise self._data
        return self._data

    @property
    def content(self):
        return json.dumps(self._data).encode()

    def raise_for_status(self):
        if self.status_code >= 400:
            import requests

            raise requests.exceptions.HTTPError(f"HTTP {self.status_code}", response=self)


class FakeSession:
    """Records calls and answers GETs through ``routes(url, params)``."""

    def __init__(self, routes=None, token_status=200):
        self.routes = routes or (lambda url, params: FakeResp(404, {}))
        self.token_status = token_status
        self.gets = []
        self.posts = []

    def post(self, url, data=None, timeout=None):
        self.posts.append((url, data))
        if self.token_status != 200:
            return FakeResp(self.token_status, {"message": "Authorization Error"})
        return FakeResp(200, {"access_token": "access-1", "refresh_token": "refresh-2"})

    def get(self, url, headers=None, params=None, timeout=None):
        self.gets.append((url, dict(params or {}), dict(headers or {})))
        return self.routes(url, params or {})


@pytest.fixture
def fake_resp():
    return FakeResp


@pytest.fixture
def fake_session():
    return FakeSession


class FakePlaceSearch:
    """Returns canned Nominatim records per keyword."""

    def __init__(self, records_by_keyword=None, failing=()):
        self.records_by_keyword = records_by_keyword or {}
        self.failing = set(failing)
        self.queries = []

    def search(self, query, box):
        import requests

        self.queries.append((query, box))
        if query in self.failing:
            raise requests.exceptions.ConnectionError(f"{query} unreachable")
        return list(self.records_by_keyword.get(query, []))


@pytest.fixture
def fake_place_search():
    return FakePlaceSearch


def place_record(name, place_type, lat, lon, category="place", address=None):
    return {
        "name": name,
        "class": category,
        "type": place_type,
        "lat": str(lat),
        "lon": str(lon),
        "address": address or {},
    }


@pytest.fixture
def make_place_record():
    return place_record
