"""Command-line interface for lockbot."""
