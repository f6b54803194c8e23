"""Comparable property discovery and enrichment for Cook County tax appeals."""

__version__ = "0.1.0"
