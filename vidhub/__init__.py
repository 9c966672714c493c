"""VidHub: configuration and session backend for a browser video aggregator."""

__version__ = "1.0.0"
