from route_postcard.lib.location_utils import LocationUtils
from route_postcard.lib.models import GpsStream
from route_postcard.lib.stop_detector import StopDetectionConfig, StopDetector

from conftest import offset


def test_single_ten_minute_stop(one_stop_stream):
    stops = StopDetector().detect(one_stop_stream)

    assert len(stops) == 1
    stop = stops[0]
    assert stop.duration_minutes == 10
    assert stop.start_time == 290
    assert stop.end_time == 890
    assert stop.support_point_count == 61
    assert stop.movement_before_m > 200
    assert stop.movement_after_m > 200
    # Mean of the window sits on the stop, jitter cancels out
    assert LocationUtils.distance_between(stop.point, offset(3000.0)) < 1.0


def test_continuous_movement_has_no_stops(moving_stream):
    assert StopDetector().detect(moving_stream) == []


def test_stationary_recording_without_travel_is_rejected(stream_builder):
    # Twenty minutes parked with the recorder running, never moving
    stream = stream_builder().dwell(120).build()
    assert StopDetector().detect(stream) == []


def test_stop_at_end_of_recording(stream_builder):
    # Arrived and stopped the recorder ten minutes later without moving on
    stops = StopDetector().detect(stream_builder().move(30).dwell(60).build())

    assert len(stops) == 1
    assert stops[0].start_time == 290
    assert stops[0].movement_before_m > 200
    assert stops[0].movement_after_m < 50


def test_stop_at_start_of_recording(stream_builder):
    # Started the recorder, waited ten minutes, then rode off
    stops = StopDetector().detect(stream_builder().dwell(60).move(30).build())

    assert len(stops) == 1
    assert stops[0].movement_before_m < 50
    assert stops[0].movement_after_m > 200


def test_short_pause_is_not_a_stop(stream_builder):
    stream = stream_builder().move(30).dwell(20).move(30).build()
    assert StopDetector().detect(stream) == []


def test_min_duration_override(stream_builder):
    stream = stream_builder().move(30).dwell(20).move(30).build()
    stops = StopDetector().detect(stream, min_duration_minutes=3)
    assert len(stops) == 1


def test_capped_at_nine_in_chronological_order(stream_builder):
    builder = stream_builder().move(30)
    for _ in range(15):
        builder.dwell(36).move(5)
    builder.move(30)
    stream = builder.build()

    stops = StopDetector().detect(stream)

    assert len(stops) == 9
    assert [s.start_time for s in stops] == builder.stop_starts[:9]
    assert all(a.end_time < b.start_time for a, b in zip(stops, stops[1:]))


def test_cap_is_configurable(stream_builder):
    builder = stream_builder().move(30)
    for _ in range(4):
        builder.dwell(36).move(5)
    builder.move(30)

    stops = StopDetector(StopDetectionConfig(max_stops=2)).detect(builder.build())
    assert [s.start_time for s in stops] == builder.stop_starts[:2]


def test_stream_without_timestamps(one_stop_stream):
    stream = GpsStream(coordinates=one_stop_stream.coordinates)
    assert StopDetector().detect(stream) == []


def test_tiny_stream():
    stream = GpsStream(coordinates=[offset(0), offset(1)], timestamps=[0.0, 1.0])
    assert StopDetector().detect(stream) == []


def test_haversine_one_degree_of_latitude():
    assert round(LocationUtils.haversine_distance(0.0, 0.0, 1.0, 0.0)) == 111195
    assert LocationUtils.haversine_distance(45.0, 7.0, 45.0, 7.0) == 0
