"""Page Relay: stream AI-generated HTML pages through an SSE relay."""

__version__ = "0.1.0"
