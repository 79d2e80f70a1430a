"""LaterLink: save YouTube links and get quick speculative summaries."""

__version__ = "0.1.0"
