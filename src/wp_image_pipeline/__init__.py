"""Batch image metadata and scrambling pipeline for WordPress content."""

__version__ = "0.1.0"
