"""Video manual backend: frame extraction and step synchronization for screen-recording manuals."""

__version__ = "1.0.0"
