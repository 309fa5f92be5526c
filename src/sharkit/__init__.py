"""Shell archive creation and safe extraction."""

__version__ = "1.0.0"
