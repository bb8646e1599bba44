"""Public Presence blog content pipeline."""

__version__ = "0.1.0"
