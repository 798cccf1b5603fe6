"""wardwatch — ward boundary import and report clustering API."""

__version__ = "0.1.0"
