"""Detached background command runner with a persistent process registry."""

__version__ = "0.1.0"
