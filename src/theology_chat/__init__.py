"""Theology guide chat client: conversation sync over a document store and Gemini."""

__version__ = "0.1.0"
