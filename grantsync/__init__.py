"""Government support program catalog sync and customer matching."""

__version__ = "0.1.0"
