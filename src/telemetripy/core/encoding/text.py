"""Human readable single-line log formatting."""

import json

from telemetripy.core.encoding.ndjson import format_iso8601
from telemetripy.core.models import LogEntry

LEVEL_COLORS = {
    "debug": "\033[36m",
    "info": "\033[32m",
    "warn": "\033[33m",
    "error": "\033[31m",
    "fatal": "\033[35m",
}
RESET = "\033[0m"


class TextFormatter:
    """Formats entries as ``<time> [LEVEL] message [req:.. user:.. comp:.. dur:..ms]``.

    Args:
        colors: Wrap the level tag in ANSI colors.
        include_context: Append the context as compact JSON.
    """

    def __init__(self, colors: bool = False, include_context: bool = True) -> None:
        self.colors = colors
        self.include_context = include_context

    def format(self, entry: LogEntry) -> str:
        level = f"[{entry.level.upper()}]"
        if self.colors:
            level = f"{LEVEL_COLORS.get(entry.level, '')}{level}{RESET}"
        line = f"{format_iso8601(entry.timestamp)} {level} {entry.message}"

        meta = entry.metadata
        parts = []
        if meta.request_id:
            parts.append(f"req:{meta.request_id}")
        if meta.user_id:
            parts.append(f"user:{meta.user_id}")
        if meta.component:
            parts.append(f"comp:{meta.component}")
        if meta.duration is not None:
            parts.append(f"dur:{meta.duration:g}ms")
        if parts:
            line += f" [{' '.join(parts)}]"

        if self.include_context and entry.context:
            line += " " + json.dumps(entry.context, default=str, sort_keys=True)
        if entry.error is not None:
            line += f"\n  {entry.error.name}: {entry.error.message}"
            if entry.error.stack:
                line += "\n" + entry.error.stack.rstrip()
        return line
