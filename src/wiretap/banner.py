"""Startup banner and diagnostics — status output on the original stderr.

Everything here writes to ``sys.__stderr__`` rather than ``sys.stderr``:
while a session is active ``sys.stderr`` may be wiretap's own tee, and
diagnostics must never be captured and broadcast as host output.
Detects ``NO_COLOR`` / ``TERM`` for safe fallback.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from wiretap.config import WiretapConfig


def _stream() -> TextIO | None:
    return sys.__stderr__


# ---------------------------------------------------------------------------
# Colors (disabled under NO_COLOR or TERM=dumb)
# ---------------------------------------------------------------------------

def _supports_color() -> bool:
    """Whether the original stderr is a color-capable terminal."""
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("TERM") == "dumb":
        return False
    stream = _stream()
    return stream is not None and hasattr(stream, "isatty") and stream.isatty()


_COLOR = _supports_color()

_RESET = "\033[0m" if _COLOR else ""
_BOLD = "\033[1m" if _COLOR else ""
_DIM = "\033[2m" if _COLOR else ""
_CYAN = "\033[36m" if _COLOR else ""
_GREEN = "\033[32m" if _COLOR else ""
_YELLOW = "\033[33m" if _COLOR else ""


def _emit(text: str) -> None:
    stream = _stream()
    if stream is None:
        return
    try:
        print(text, file=stream, flush=True)
    except (OSError, ValueError):
        pass  # closed or broken stderr


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def print_warning(message: str) -> None:
    """Print a one-line ``[wiretap]`` warning."""
    _emit(f"{_YELLOW}[wiretap]{_RESET} {message}")


def format_banner(
    config: WiretapConfig,
    *,
    listening: bool,
    sources: list[str],
    warnings: list[str] | None = None,
) -> str:
    """Build the banner text shown when a session starts."""
    lines: list[str] = [""]
    lines.append(f"  {_BOLD}wiretap{_RESET} {_DIM}live capture{_RESET}")
    lines.append("")

    if listening:
        url = f"ws://{config.host}:{config.port}"
        lines.append(f"  {_GREEN}✔{_RESET} Observers    {_BOLD}{_CYAN}{url}{_RESET}")
    else:
        lines.append(f"  {_YELLOW}!{_RESET} Observers    {_DIM}unavailable{_RESET}")

    captured = ", ".join(sources) if sources else "none"
    lines.append(f"  {_GREEN}✔{_RESET} Capturing    {captured}")
    lines.append(
        f"  {_DIM}  history      {config.max_logs:,} logs / "
        f"{config.max_requests:,} requests{_RESET}"
    )

    # -- warnings --
    if warnings:
        lines.append("")
        lines.extend(f"  {_YELLOW}!{_RESET} {w}" for w in warnings)

    lines.append("")
    return "\n".join(lines)


def print_banner(
    config: WiretapConfig,
    *,
    listening: bool,
    sources: list[str],
    warnings: list[str] | None = None,
) -> None:
    """Print the startup banner to the original stderr.

    Args:
        config: The session configuration.
        listening: Whether the observer server is bound.
        sources: Names of the installed capture sources.
        warnings: Optional list of warning messages to display.

    """
    _emit(format_banner(config, listening=listening, sources=sources, warnings=warnings))
