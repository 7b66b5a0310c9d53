import io
import threading
import time

import pytest
from PIL import Image

from route_postcard.app import create_app
from route_postcard.lib import postcard_generator
from route_postcard.lib.models import GpsStream
from route_postcard.lib.postcard import PostcardComposer
from route_postcard.lib.route_overlay import RouteOverlayRenderer
from route_postcard.lib.strava_api import StravaAPIError

from conftest import offset


class FakeStrava:
    def __init__(self, activity, stream=None, fail_with=None):
        self.activity = activity
        self.stream = stream
        self.fail_with = fail_with
        self.cleared = 0

    def get_activities(self, per_page=30, page=1):
        return [self.activity][:per_page]

    def get_activity_by_id(self, activity_id):
        if self.fail_with:
            raise self.fail_with
        return dict(self.activity, id=activity_id)

    def get_activity_photos(self, activity_id):
        return []

    def get_activity_streams(self, activity_id):
        return self.stream

    def clear_cache(self, cache_type=None):
        self.cleared += 1
        return 3


def make_client(strava, renderer=None):
    composers = {"square": PostcardComposer(renderer or RouteOverlayRenderer())}
    app = create_app(strava=strava, composers=composers)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def stream():
    return GpsStream([offset(0), offset(100)], [0.0, 10.0])


def test_list_activities(route_activity):
    client = make_client(FakeStrava(route_activity))
    response = client.get("/api/activities?per_page=1")
    assert response.status_code == 200
    assert response.get_json()[0]["name"] == "Morning Ride"


def test_activity_detail(route_activity):
    client = make_client(FakeStrava(route_activity))
    response = client.get("/api/activities/77")
    assert response.get_json()["id"] == 77


def test_streams_endpoint(route_activity, stream):
    client = make_client(FakeStrava(route_activity, stream=stream))
    payload = client.get("/api/activities/42/streams").get_json()
    assert payload["timestamps"] == [0.0, 10.0]
    assert len(payload["coordinates"]) == 2


def test_streams_endpoint_without_gps(route_activity):
    client = make_client(FakeStrava(route_activity, stream=None))
    assert client.get("/api/activities/42/streams").status_code == 404


def test_postcard_png(route_activity):
    client = make_client(FakeStrava(route_activity))
    response = client.get("/api/activities/42/postcard/square/route.png?gradient=1")

    assert response.status_code == 200
    assert response.mimetype == "image/png"
    image = Image.open(io.BytesIO(response.data))
    assert image.size == (1080, 1080)


@pytest.mark.parametrize("path", [
    "/api/activities/42/postcard/poster/route.png",
    "/api/activities/42/postcard/square/map.png",
])
def test_unknown_format_or_slot(route_activity, path):
    client = make_client(FakeStrava(route_activity))
    assert client.get(path).status_code == 400


def test_concurrent_render_gets_conflict(route_activity):
    renderer = RouteOverlayRenderer()
    client = make_client(FakeStrava(route_activity), renderer)
    # Simulate a render already in flight for this format
    renderer.guard.try_enter()

    response = client.get("/api/activities/42/postcard/square/route.png?gradient=1")
    assert response.status_code == 409

    renderer.guard.leave()
    assert client.get("/api/activities/42/postcard/square/route.png?gradient=1").status_code == 200


def test_title_slot_ignores_render_guard(route_activity):
    renderer = RouteOverlayRenderer()
    client = make_client(FakeStrava(route_activity), renderer)
    renderer.guard.try_enter()
    assert client.get("/api/activities/42/postcard/square/title.png?gradient=1").status_code == 200


def test_strava_error_is_bad_gateway(route_activity):
    strava = FakeStrava(route_activity, fail_with=StravaAPIError("HTTP 503", status_code=503))
    client = make_client(strava)
    assert client.get("/api/activities/42").status_code == 502
    assert client.get("/api/activities/42/postcard/square/route.png").status_code == 502


def test_clear_cache(route_activity):
    strava = FakeStrava(route_activity)
    client = make_client(strava)
    response = client.delete("/api/cache")
    assert response.get_json() == {"success": True, "cleared": 3}
    assert strava.cleared == 1


def test_first_requests_share_one_renderer_per_format(route_activity, monkeypatch):
    built = []

    def slow_build_renderer(strava, stream_cache=None):
        built.append(strava)
        # Keep the first builder busy so the second request arrives meanwhile
        time.sleep(0.2)
        return postcard_generator.build_renderer(strava, stream_cache, include_places=False)

    monkeypatch.setattr("route_postcard.app.build_renderer", slow_build_renderer)
    app = create_app(strava=FakeStrava(route_activity))
    app.config["TESTING"] = True
    statuses = []

    def fetch():
        response = app.test_client().get("/api/activities/42/postcard/square/title.png?gradient=1")
        statuses.append(response.status_code)

    threads = [threading.Thread(target=fetch) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert statuses == [200, 200]
    assert len(built) == 1
