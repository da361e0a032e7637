"""Terminal client for the DuckDuckGo AI chat backend."""

__version__ = "0.1.0"
