"""Roast - plugin manager for Lightning Network node daemons."""

__version__ = "0.1.0"
