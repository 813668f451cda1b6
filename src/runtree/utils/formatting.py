"""Shared formatters for console output.

This module provides the small set of text helpers the execution engine uses:
- ANSI styling (``style``/``strip_ansi``)
- Context-identifier prefixes (``format_context_prefix``)
- Wall-clock and duration rendering

Example:
    from runtree.utils.formatting import style

    print(style("> make build", "bg_blue", "bold", "white", enabled=True))
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from runtree.context import ContextId

__all__ = [
    "COLORS",
    "CONTEXT_COLORS",
    "ANSIColors",
    "format_context_prefix",
    "format_duration",
    "format_time_prefix",
    "plain_context_path",
    "strip_ansi",
    "style",
]


# =============================================================================
# ANSI Colors
# =============================================================================


@dataclass(frozen=True)
class ANSIColors:
    """ANSI color codes for terminal output."""

    reset: str = "\033[0m"
    bold: str = "\033[1m"
    dim: str = "\033[2m"
    green: str = "\033[32m"
    yellow: str = "\033[33m"
    red: str = "\033[31m"
    blue: str = "\033[34m"
    cyan: str = "\033[36m"
    magenta: str = "\033[35m"
    white: str = "\033[37m"
    gray: str = "\033[90m"
    bg_red: str = "\033[41m"
    bg_green: str = "\033[42m"
    bg_blue: str = "\033[44m"


COLORS = ANSIColors()

# Palette cycled by fork id to tell concurrent branches apart.
CONTEXT_COLORS: tuple[str, ...] = ("magenta", "green", "yellow", "red", "blue")

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


def style(text: str, *styles: str, enabled: bool = True) -> str:
    """Apply several ANSI styles (e.g. ``"bold", "red"``) at once."""
    if not enabled or not text:
        return text
    codes = "".join(getattr(COLORS, s, "") for s in styles)
    if not codes:
        return text
    return f"{codes}{text}{COLORS.reset}"


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


# =============================================================================
# Prefixes
# =============================================================================


def format_time_prefix(show: bool, enabled: bool = True) -> str:
    """Render ``[HH:MM:SS] `` when ``show`` is set, else an empty string."""
    if not show:
        return ""
    return style(f"[{datetime.now().strftime('%H:%M:%S')}]", "bold", "gray", enabled=enabled) + " "


def format_context_prefix(
    id_stack: Iterable[ContextId],
    *,
    show_time: bool = False,
    enabled: bool = True,
) -> str:
    """Render the line prefix for a context, e.g. ``build/0/test/1  ``."""
    separator = style("/", "bold", "gray", enabled=enabled)
    parts = [style(cid.label, "bold", cid.color, enabled=enabled) for cid in id_stack]
    return format_time_prefix(show_time, enabled) + separator.join(parts) + "  "


def plain_context_path(id_stack: Iterable[ContextId]) -> str:
    """Uncolored ``a/b/c`` path used for error attribution and log extras."""
    return "/".join(cid.label for cid in id_stack)


# =============================================================================
# Durations
# =============================================================================


def format_duration(ms: float) -> str:
    """Format duration in milliseconds to human-readable string."""
    if ms < 1000:
        return f"{ms:.0f}ms"
    seconds = ms / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours = minutes // 60
    mins = minutes % 60
    return f"{hours}h {mins}m"
