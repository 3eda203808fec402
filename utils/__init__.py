"""Shared helpers: logging, formatting, process info."""
