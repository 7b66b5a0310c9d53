"""Strava activity postcards with route overlays."""

__version__ = "1.0.0"
