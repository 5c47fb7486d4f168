"""Command line interface for PSKAlert."""
