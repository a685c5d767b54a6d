"""Command-line workers."""
