#!/usr/bin/env python3
"""
Route Postcard CLI

Render one slot of an activity postcard to a PNG: the title card, the
route overlay (route, stops, place names) or the photo gallery background.
Works against the Strava API (--id) or offline from an encoded polyline.
"""

import argparse
import json
import logging
import sys

import requests

from route_postcard import config
from route_postcard.lib.models import GpsStream
from route_postcard.lib.postcard import (
    FORMATS,
    ImageProcessor,
    PostcardComposer,
    Slot,
    SlotKind,
)
from route_postcard.lib.postcard_generator import (
    PostcardRequest,
    build_place_labeler,
    build_renderer,
    build_stop_detector,
    build_strava_client,
    generate_postcard,
)
from route_postcard.lib.route_overlay import RenderOutcome, RouteOverlayRenderer
from route_postcard.lib.strava_api import StravaAPIError

logger = logging.getLogger('route_postcard')


def load_stream_file(path):
    """
    Read a GPS stream from JSON

    Accepts either the processed ``{"coordinates": [...], "timestamps": [...]}``
    shape or a raw Strava ``key_by_type`` streams response.
    """
    with open(path, 'r', encoding='utf-8') as f:
        payload = json.load(f)
    if 'latlng' in payload:
        return GpsStream.from_strava_streams(payload)
    return GpsStream.from_payload(payload)


def render_offline(args):
    """Render from --polyline (and optional --streams) without touching Strava."""
    activity = {
        'id': None,
        'name': args.name or '',
        'map': {'summary_polyline': args.polyline},
    }
    stream = load_stream_file(args.streams) if args.streams else None

    renderer = RouteOverlayRenderer(
        place_labeler=None if args.no_places else build_place_labeler(),
        stop_detector=build_stop_detector(),
    )
    photo = ImageProcessor.download_image(args.photo) if args.photo else None
    composer = PostcardComposer(renderer)
    return composer.compose(args.format, Slot(SlotKind(args.slot), photo), activity, stream)


def render_from_strava(args):
    strava = build_strava_client()
    if args.photo:
        # Explicit photo URL replaces the activity's own photos
        activity = strava.get_activity_by_id(args.id)
        photo = ImageProcessor.download_image(args.photo)
        composer = PostcardComposer(build_renderer(strava, include_places=not args.no_places))
        return composer.compose(args.format, Slot(SlotKind(args.slot), photo), activity)

    request = PostcardRequest(
        activity_id=args.id,
        format_key=args.format,
        slot=SlotKind(args.slot),
        photo_index=None if args.gradient else args.photo_index,
        include_places=not args.no_places,
    )
    return generate_postcard(strava, request)


def main():
    """Parse arguments, render the slot and save it."""
    parser = argparse.ArgumentParser(
        description='Render Strava activity postcards with a route overlay',
        epilog='Examples:\n'
               '  %(prog)s --id 1234567890 --format story --slot route -o route.png\n'
               '  %(prog)s --polyline "_p~iF~ps|U_ulLnnqC" --no-places -o offline.png\n'
               '  %(prog)s --polyline "..." --streams streams.json --slot route\n',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    source_group = parser.add_argument_group('activity source')
    source = source_group.add_mutually_exclusive_group(required=True)
    source.add_argument('--id', type=int,
                        help='Strava activity ID (needs credentials in .env)')
    source.add_argument('--polyline',
                        help='Encoded route polyline, rendered without calling Strava')
    source_group.add_argument('--streams', metavar='FILE',
                              help='JSON GPS stream used for stop detection with --polyline')
    source_group.add_argument('--name', help='Activity title for --polyline renders')

    postcard_group = parser.add_argument_group('postcard')
    postcard_group.add_argument('--format', '-f', default='square', choices=sorted(FORMATS),
                                help='Canvas format (default: square)')
    postcard_group.add_argument('--slot', '-s', default=SlotKind.ROUTE_OVERLAY.value,
                                choices=[kind.value for kind in SlotKind],
                                help='Slot to render (default: route)')
    postcard_group.add_argument('--output', '-o', default='postcard.png',
                                help='Output PNG path (default: postcard.png)')
    postcard_group.add_argument('--photo', metavar='URL',
                                help='Background photo URL')
    postcard_group.add_argument('--photo-index', type=int, default=0,
                                help="Which of the activity's photos to use (default: 0)")
    postcard_group.add_argument('--gradient', action='store_true',
                                help='Use the gradient background instead of a photo')
    postcard_group.add_argument('--no-places', action='store_true',
                                help='Skip place name lookup')

    parser.add_argument('--debug', action='store_true', help='Enable debug output')

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO,
                        format=config.LOG_FORMAT)

    if args.streams and not args.polyline:
        parser.error('--streams is only used with --polyline')

    try:
        if args.polyline:
            result = render_offline(args)
        else:
            result = render_from_strava(args)
    except StravaAPIError as e:
        print(f"❌ Strava error: {e}")
        sys.exit(1)
    except (ValueError, OSError, requests.exceptions.RequestException) as e:
        print(f"❌ Error: {e}")
        if args.debug:
            logger.exception("Render failed")
        sys.exit(1)

    if result.overlay is RenderOutcome.SKIPPED:
        print("⚠️  Activity has no usable route, overlay not drawn")
    elif result.overlay is RenderOutcome.FAILED:
        print("⚠️  Route overlay failed part way, see log for details")

    result.image.save(args.output, 'PNG')
    print(f"✅ Saved {result.slot.value} slot ({result.format_key}) to {args.output}")


if __name__ == '__main__':
    main()
