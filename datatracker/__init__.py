"""
DataTracker
===========
Background network-usage tracker with daily, per-network aggregates.
"""

__version__ = "1.0.0"
