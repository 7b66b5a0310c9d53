import pytest

from route_postcard.lib.models import GeoPoint
from route_postcard.lib.polyline_decoder import (
    PolylineDecodeError,
    decode_polyline,
    encode_polyline,
    route_points,
)

GOOGLE_EXAMPLE = "_p~iF~ps|U_ulLnnqC_mqNvxq`@"


def test_decodes_documented_example():
    points = decode_polyline(GOOGLE_EXAMPLE)
    assert points == [
        GeoPoint(38.5, -120.2),
        GeoPoint(40.7, -120.95),
        GeoPoint(43.252, -126.453),
    ]


def test_empty_string_is_empty_route():
    assert decode_polyline("") == []


def test_truncated_chunk_raises():
    # Trailing '_' carries the continuation bit with nothing after it
    with pytest.raises(PolylineDecodeError):
        decode_polyline("_p~iF~ps|U_")


def test_decode_error_is_a_value_error():
    assert issubclass(PolylineDecodeError, ValueError)


def test_encode_matches_documented_example():
    points = [GeoPoint(38.5, -120.2), GeoPoint(40.7, -120.95), GeoPoint(43.252, -126.453)]
    assert encode_polyline(points) == GOOGLE_EXAMPLE


def test_route_points_prefers_summary_polyline():
    activity = {"map": {"summary_polyline": GOOGLE_EXAMPLE, "polyline": encode_polyline([GeoPoint(1, 1)])}}
    assert len(route_points(activity)) == 3


def test_route_points_falls_back_to_full_polyline():
    activity = {"map": {"summary_polyline": None, "polyline": GOOGLE_EXAMPLE}}
    assert route_points(activity)[0] == GeoPoint(38.5, -120.2)


def test_route_points_without_map():
    assert route_points({"id": 1}) == []
    assert route_points({"id": 1, "map": None}) == []
