"""Synthetic-traffic load harness for the ddash deployment-event service."""

__version__ = "0.1.0"
