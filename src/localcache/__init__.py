"""localcache - local cache and offline dictionary synchronization."""

__version__ = "0.1.0"
