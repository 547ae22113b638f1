"""Conversational mode router for the streamer agency chat assistant."""

from .__version__ import __version__

__all__ = ["__version__"]
