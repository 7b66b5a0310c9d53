#!/usr/bin/env python3
"""
Route Postcard Web Application

Flask application serving Strava activities, their GPS streams and rendered
postcard slots (title, route overlay, photo gallery) as PNG images.
"""

import io
import logging
import threading
import traceback

from flask import Flask, jsonify, request, send_file

from route_postcard import config
from route_postcard.lib.postcard import FORMATS, PostcardComposer, SlotKind
from route_postcard.lib.postcard_generator import (
    PostcardRequest,
    build_renderer,
    build_strava_client,
    generate_postcard,
)
from route_postcard.lib.route_overlay import RenderOutcome
from route_postcard.lib.strava_api import StravaAPIError, StravaAuthError, StreamCache

# Configure logging
logging.basicConfig(level=logging.INFO, format=config.LOG_FORMAT)
logger = logging.getLogger(__name__)


def create_app(strava=None, composers=None):
    """
    Build the Flask app

    Args:
        strava: StravaAPI to use (default: built from environment credentials
            on first use)
        composers: Optional dict of format -> PostcardComposer; one composer
            (and so one render guard) per canvas format
    """
    app = Flask(__name__)
    state = {'strava': strava}
    stream_cache = StreamCache()
    composer_by_format = dict(composers or {})
    # Lazily built client and composers are shared by all request threads
    init_lock = threading.RLock()

    def get_strava_client():
        with init_lock:
            if state['strava'] is None:
                logger.info("🔌 Initializing Strava API client...")
                state['strava'] = build_strava_client()
            return state['strava']

    def get_composer(format_key):
        with init_lock:
            if format_key not in composer_by_format:
                renderer = build_renderer(get_strava_client(), stream_cache)
                composer_by_format[format_key] = PostcardComposer(renderer)
            return composer_by_format[format_key]

    @app.errorhandler(StravaAuthError)
    def handle_auth_error(e):
        logger.error(f"❌ Strava rejected our credentials: {e}")
        return jsonify({'error': 'Strava authorization failed'}), 401

    @app.errorhandler(StravaAPIError)
    def handle_strava_error(e):
        logger.error(f"❌ Strava API error: {e}")
        return jsonify({'error': str(e)}), 502

    @app.route('/api/activities')
    def list_activities():
        """Recent activities (summary records with map polylines)."""
        per_page = request.args.get('per_page', 30, type=int)
        activities = get_strava_client().get_activities(per_page=per_page)
        return jsonify(activities)

    @app.route('/api/activities/<int:activity_id>')
    def get_activity(activity_id):
        stream_cache.select(activity_id)
        return jsonify(get_strava_client().get_activity_by_id(activity_id))

    @app.route('/api/activities/<int:activity_id>/streams')
    def get_streams(activity_id):
        """GPS coordinates, timestamps, distances and altitudes."""
        strava = get_strava_client()
        stream = stream_cache.get_or_fetch(activity_id, strava.get_activity_streams)
        if stream is None:
            return jsonify({'error': 'No GPS data available for this activity'}), 404
        return jsonify(stream.to_payload())

    @app.route('/api/activities/<int:activity_id>/postcard/<format_key>/<slot_name>.png')
    def get_postcard(activity_id, format_key, slot_name):
        """Render one postcard slot as PNG."""
        if format_key not in FORMATS:
            return jsonify({'error': f"Unknown format '{format_key}'"}), 400
        try:
            slot = SlotKind(slot_name)
        except ValueError:
            return jsonify({'error': f"Unknown slot '{slot_name}'"}), 400

        photo = request.args.get('photo', 0, type=int)
        if request.args.get('gradient') == '1':
            photo = None

        try:
            postcard_request = PostcardRequest(
                activity_id=activity_id,
                format_key=format_key,
                slot=slot,
                photo_index=photo,
            )
            result = generate_postcard(get_strava_client(), postcard_request,
                                       composer=get_composer(format_key),
                                       stream_cache=stream_cache)
        except (StravaAPIError, StravaAuthError):
            raise
        except ValueError as e:
            logger.error(f"❌ ValueError: {str(e)}")
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            logger.error(f"❌ Exception occurred: {str(e)}")
            logger.error(f"Traceback:\n{traceback.format_exc()}")
            return jsonify({'error': f'Internal error: {str(e)}'}), 500

        if result.overlay is RenderOutcome.DROPPED:
            return jsonify({'error': 'A render for this format is already in progress'}), 409

        buffer = io.BytesIO()
        result.image.save(buffer, 'PNG')
        buffer.seek(0)
        return send_file(buffer, mimetype='image/png')

    @app.route('/api/cache', methods=['DELETE'])
    def clear_cache():
        stream_cache.invalidate()
        count = get_strava_client().clear_cache()
        return jsonify({'success': True, 'cleared': count})

    return app


app = create_app()
