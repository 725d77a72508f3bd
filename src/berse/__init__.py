"""Berse points expiry and badge award service."""

__version__ = "0.1.0"
