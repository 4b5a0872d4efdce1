"""Watch real-estate search pages and announce listings that are new since the last scan."""

__version__ = "0.1.0"
