"""Prediction Arena - stock prediction contest engine and API."""

__version__ = "1.0.0"
