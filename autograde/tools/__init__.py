"""Command-line tools for autograde."""
