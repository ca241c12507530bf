"""Command-line entry points for crossbuild."""
