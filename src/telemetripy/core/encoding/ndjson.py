"""JSON log formatting and the NDJSON encoder for log entries."""

import json
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from telemetripy.core.models import LogEntry


def format_iso8601(timestamp: float) -> str:
    """Render a Unix timestamp as ``2024-01-01T12:00:00.000Z``."""
    moment = datetime.fromtimestamp(timestamp, tz=UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _drop_empty(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value not in (None, (), [], {})}


class JSONFormatter:
    """Formats entries as JSON-ready mappings.

    Output keys: ``@timestamp``, ``level``, ``message``, the entry id, the
    non-empty metadata fields, plus ``context`` and ``error`` when present.
    """

    def format(self, entry: LogEntry) -> dict[str, Any]:
        document: dict[str, Any] = {
            "@timestamp": format_iso8601(entry.timestamp),
            "level": entry.level,
            "message": entry.message,
            "id": entry.id,
        }
        metadata = _drop_empty(entry.metadata.to_dict())
        if "tags" in metadata:
            metadata["tags"] = list(metadata["tags"])
        document.update(metadata)
        if entry.context:
            document["context"] = entry.context
        if entry.error is not None:
            document["error"] = _drop_empty(entry.error.to_dict())
        return document


_formatter = JSONFormatter()


def encode_logs(entries: Iterable[LogEntry]) -> str:
    """Encode log entries to newline-delimited JSON.

    Args:
        entries: An iterable of LogEntry objects.

    Returns:
        NDJSON string with one JSON object per line.
        Empty string if no entries.
    """
    lines = [json.dumps(_formatter.format(entry), default=str) for entry in entries]

    if not lines:
        return ""

    return "\n".join(lines) + "\n"
