"""Keepsake: a chat assistant that remembers personal facts."""

__version__ = "0.1.0"
