"""Process resource figures for status reports."""

import psutil


def memory_usage() -> int:
    """Current resident set size of this process, in bytes."""
    return psutil.Process().memory_info().rss
