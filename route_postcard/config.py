"""
Environment configuration

Values come from the process environment, with a ``.env`` file in the
working directory loaded first.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_float(name, default):
    value = os.getenv(name, '').strip()
    return float(value) if value else default


PROJECT_ROOT = Path(__file__).parent.parent

# Strava credentials - create an app at https://www.strava.com/settings/api
STRAVA_CLIENT_ID = os.getenv('STRAVA_CLIENT_ID', '').strip()
STRAVA_CLIENT_SECRET = os.getenv('STRAVA_CLIENT_SECRET', '').strip()
STRAVA_REFRESH_TOKEN = os.getenv('STRAVA_REFRESH_TOKEN', '').strip()

CACHE_DIR = Path(os.getenv('CACHE_DIR', str(PROJECT_ROOT / '.cache')))
API_CACHE_TTL_SECONDS = _env_float('API_CACHE_TTL_SECONDS', 48 * 60 * 60)

# Place names come from Nominatim (OpenStreetMap); the public instance
# allows about one request per second
NOMINATIM_URL = os.getenv('NOMINATIM_URL', 'https://nominatim.openstreetmap.org/search')
NOMINATIM_USER_AGENT = os.getenv('NOMINATIM_USER_AGENT', 'RoutePostcard/1.0 (Strava activity postcards)')
PLACE_QUERY_DELAY_SECONDS = _env_float('PLACE_QUERY_DELAY_SECONDS', 1.0)

STOP_MIN_DURATION_MINUTES = _env_float('STOP_MIN_DURATION_MINUTES', 5.0)
STOP_RADIUS_METERS = _env_float('STOP_RADIUS_METERS', 50.0)
STOP_MOVEMENT_THRESHOLD_METERS = _env_float('STOP_MOVEMENT_THRESHOLD_METERS', 50.0)

FLASK_DEBUG = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'
PORT = int(os.getenv('PORT', '5555'))

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
