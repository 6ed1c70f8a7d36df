"""Lifecycle controller for directory server installations."""

__version__ = "0.1.0"
