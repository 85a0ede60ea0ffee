"""searchbox: chat and web-search front-end with per-user usage accounting."""

__version__ = "0.3.0"
