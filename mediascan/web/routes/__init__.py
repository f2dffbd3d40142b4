"""Route modules for the MediaScan API."""

from . import catalog, scan

__all__ = [
    "catalog",
    "scan",
]
