#!/usr/bin/env python3
"""
Run the Route Postcard web app
"""

from route_postcard import config
from route_postcard.app import app

if __name__ == '__main__':
    app.run(debug=config.FLASK_DEBUG, host='0.0.0.0', port=config.PORT)
