"""Command line interface for dsctl."""
