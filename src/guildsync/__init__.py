"""Keep guild script folders in sync with their baseline and stream script logs."""

__version__ = "0.3.0"
