"""Prebuilt native extension resolver with a local build fallback."""

__version__ = "0.4.0"
