"""Observer broadcast — the WebSocket side of wiretap.

``BroadcastHub`` replays history to each new observer and streams live
changes; ``wiretap.broadcast.protocol`` defines the messages.
"""

from wiretap.broadcast.hub import BroadcastHub, ObserverConnection
from wiretap.broadcast.protocol import (
    ClearCommand,
    ControlCommand,
    encode,
    parse_inbound,
)

__all__ = [
    "BroadcastHub",
    "ClearCommand",
    "ControlCommand",
    "ObserverConnection",
    "encode",
    "parse_inbound",
]
