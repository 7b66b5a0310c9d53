import pytest
from PIL import Image

from route_postcard.lib.postcard import (
    FORMATS,
    ImageProcessor,
    PostcardComposer,
    Slot,
    SlotKind,
    activity_stats,
    format_time,
    photo_url,
)
from route_postcard.lib.postcard_generator import PostcardRequest, generate_postcard
from route_postcard.lib.route_overlay import RenderOutcome, RouteOverlayRenderer
from route_postcard.lib.strava_api import StreamCache


def test_format_time():
    assert format_time(45) == "45s"
    assert format_time(125) == "2m 5s"
    assert format_time(3 * 3600 + 600) == "3h 10m"


def test_activity_stats_skips_missing_values():
    stats = activity_stats({"distance": 21100.0, "moving_time": 5400, "total_elevation_gain": 0})
    assert stats == [("Time", "1h 30m"), ("Distance", "21.10 km")]


def test_photo_url_picks_largest():
    assert photo_url({"urls": {"100": "small.jpg", "2048": "big.jpg"}}) == "big.jpg"
    assert photo_url({}) is None


def test_gradient_runs_from_start_to_end_colour():
    img = ImageProcessor.gradient_background(300, 200)
    assert img.size == (300, 200)
    r, g, b = img.getpixel((0, 0))
    assert abs(r - 0x66) <= 2 and abs(g - 0x7E) <= 2 and abs(b - 0xEA) <= 2
    r, g, b = img.getpixel((299, 199))
    assert abs(r - 0x76) <= 2 and abs(g - 0x4B) <= 2 and abs(b - 0xA2) <= 2


def test_gradient_is_halfway_on_the_anti_diagonal():
    img = ImageProcessor.gradient_background(101, 101)
    halfway = ((0x66 + 0x76) / 2, (0x7E + 0x4B) / 2, (0xEA + 0xA2) / 2)
    assert img.mode == "RGB"
    assert img.getpixel((100, 0)) == img.getpixel((0, 100))
    for channel, expected in zip(img.getpixel((50, 50)), halfway):
        assert abs(channel - expected) <= 1


def test_gallery_slot_is_background_only(route_activity):
    result = PostcardComposer(RouteOverlayRenderer()).compose("square", Slot(SlotKind.GALLERY), route_activity)
    assert result.overlay is None
    assert result.image.tobytes() == ImageProcessor.gradient_background(1080, 1080).tobytes()


@pytest.mark.parametrize("size", [(4000, 3000), (1000, 3000), (500, 500)])
def test_fit_image_to_canvas_covers_exactly(size):
    photo = Image.new("RGB", size, (10, 20, 30))
    fitted = ImageProcessor.fit_image_to_canvas(photo, 1080, 1350)
    assert fitted.size == (1080, 1350)


@pytest.mark.parametrize("format_key", sorted(FORMATS))
def test_every_slot_renders_at_format_size(format_key, route_activity):
    composer = PostcardComposer(RouteOverlayRenderer())
    for kind in SlotKind:
        result = composer.compose(format_key, Slot(kind), route_activity)
        assert result.image.size == FORMATS[format_key]
        assert result.image.mode == "RGB"
        assert result.slot is kind


def test_route_slot_reports_overlay_outcome(route_activity):
    composer = PostcardComposer(RouteOverlayRenderer())
    result = composer.compose("square", Slot(SlotKind.ROUTE_OVERLAY), route_activity)
    assert result.overlay is RenderOutcome.DRAWN

    result = composer.compose("square", Slot(SlotKind.TITLE), route_activity)
    assert result.overlay is None


def test_route_slot_without_route_still_gives_background():
    composer = PostcardComposer(RouteOverlayRenderer())
    result = composer.compose("story", Slot(SlotKind.ROUTE_OVERLAY), {"id": 1, "name": "Treadmill"})
    assert result.overlay is RenderOutcome.SKIPPED
    assert result.image.size == (1080, 1920)


def test_photo_background_is_used(route_activity):
    photo = Image.new("RGB", (800, 600), (0, 200, 0))
    composer = PostcardComposer(RouteOverlayRenderer())
    result = composer.compose("square", Slot(SlotKind.GALLERY, photo), route_activity)
    r, g, b = result.image.getpixel((5, 5))
    assert g > r and g > b


def test_title_slot_draws_text(route_activity):
    composer = PostcardComposer(RouteOverlayRenderer())
    plain = composer.compose("square", Slot(SlotKind.GALLERY), route_activity).image
    titled = composer.compose("square", Slot(SlotKind.TITLE), route_activity).image
    assert plain.tobytes() != titled.tobytes()


def test_unknown_format_is_rejected(route_activity):
    with pytest.raises(ValueError):
        PostcardComposer().compose("poster", Slot(SlotKind.TITLE), route_activity)


class FakeStrava:
    def __init__(self, activity, photos=()):
        self.activity = activity
        self.photos = list(photos)
        self.stream_requests = []

    def get_activity_by_id(self, activity_id):
        return dict(self.activity, id=activity_id)

    def get_activity_photos(self, activity_id):
        return self.photos

    def get_activity_streams(self, activity_id):
        self.stream_requests.append(activity_id)
        return None


def test_generate_postcard_without_photos(route_activity):
    strava = FakeStrava(route_activity)
    cache = StreamCache()
    request = PostcardRequest(activity_id=42, format_key="landscape", include_places=False)

    result = generate_postcard(strava, request, stream_cache=cache)

    assert result.image.size == (1080, 566)
    assert result.overlay is RenderOutcome.DRAWN
    assert cache.activity_id == 42
    assert strava.stream_requests == [42]
