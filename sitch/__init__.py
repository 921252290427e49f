"""Sitch - check followed channels, feeds and catalogs for updates."""

__version__ = "0.1.0"
