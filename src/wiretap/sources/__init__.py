"""Capture sources — producers that turn host activity into records.

- ``LoggingSource``: stdlib ``logging`` records
- ``StreamSource``: lines written to ``sys.stdout`` / ``sys.stderr``
- ``HttpClientSource``: outbound ``http.client`` calls, via ``NetworkTracker``

Every source is fail-open: a failure inside capture code is recorded on the
source and dropped, never raised into the host program.
"""

from wiretap.sources.base import CaptureSource, capturing, in_capture
from wiretap.sources.logs import LoggingSource, emit_log, level_for
from wiretap.sources.network import HttpClientSource, NetworkTracker
from wiretap.sources.streams import StreamSource, TeeStream

__all__ = [
    "CaptureSource",
    "HttpClientSource",
    "LoggingSource",
    "NetworkTracker",
    "StreamSource",
    "TeeStream",
    "capturing",
    "emit_log",
    "in_capture",
    "level_for",
]
