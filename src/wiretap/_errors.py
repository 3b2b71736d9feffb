"""Wiretap error hierarchy.

All wiretap-specific errors inherit from WiretapError for easy catching.
None of them ever reaches the instrumented program through a capture path.
"""


class WiretapError(Exception):
    """Base error for all wiretap operations."""


class ConfigError(WiretapError):
    """Invalid or unreadable configuration."""


class CaptureError(WiretapError):
    """Failure while building or recording a captured event."""


class BroadcastError(WiretapError):
    """The observer server could not bind or serve."""
