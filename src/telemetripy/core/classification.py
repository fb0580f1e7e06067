"""Coercion of reported errors and the default type/severity heuristic."""

import traceback
from collections.abc import Mapping
from typing import Any

from telemetripy.core.models import SEVERITIES, ErrorType, RawError, Severity

VALIDATION_NAMES = frozenset({"ValidationError"})
NETWORK_NAMES = frozenset(
    {
        "NetworkError",
        "ConnectionError",
        "ConnectionRefusedError",
        "ConnectionResetError",
        "TimeoutError",
        "ConnectError",
        "ReadTimeout",
        "ConnectTimeout",
    }
)
SECURITY_NAMES = frozenset({"SecurityError", "PermissionError"})
PROGRAMMING_NAMES = frozenset({"TypeError", "ReferenceError", "NameError", "AttributeError"})
BUSINESS_CODE_PREFIX = "BUSINESS_"


def _safe_str(value: Any) -> str:
    try:
        return str(value)
    except Exception:
        return f"<unprintable {type(value).__name__}>"


def _coerce_status(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _coerce_code(value: Any) -> str | None:
    if value is None:
        return None
    return _safe_str(value)


def _coerce_severity(value: Any) -> Severity | None:
    if isinstance(value, str) and value.lower() in SEVERITIES:
        return value.lower()  # type: ignore[return-value]
    return None


def _exception_status(exc: BaseException) -> int | None:
    for attr in ("status", "status_code"):
        status = _coerce_status(getattr(exc, attr, None))
        if status is not None:
            return status
    # httpx.HTTPStatusError and similar carry the response
    response = getattr(exc, "response", None)
    return _coerce_status(getattr(response, "status_code", None))


def coerce_error(raw: Any) -> RawError:
    """Turn whatever a caller reported into a ``RawError``.

    Exceptions keep their class name, message, formatted traceback and any
    ``status``/``status_code``/``code``/``severity`` attributes. Mappings are
    read by key. Anything else becomes a generic ``Error`` with ``str(raw)``
    as its message.
    """
    if isinstance(raw, RawError):
        return raw
    if isinstance(raw, BaseException):
        stack = None
        if raw.__traceback__ is not None:
            stack = "".join(traceback.format_exception(raw))
        return RawError(
            name=type(raw).__name__,
            message=_safe_str(raw) or type(raw).__name__,
            stack=stack,
            status=_exception_status(raw),
            code=_coerce_code(getattr(raw, "code", None)),
            severity=_coerce_severity(getattr(raw, "severity", None)),
        )
    if isinstance(raw, Mapping):
        message = raw.get("message")
        return RawError(
            name=_safe_str(raw.get("name") or "Error"),
            message=_safe_str(message) if message is not None else _safe_str(dict(raw)),
            stack=_safe_str(raw["stack"]) if raw.get("stack") else None,
            status=_coerce_status(raw.get("status")),
            code=_coerce_code(raw.get("code")),
            severity=_coerce_severity(raw.get("severity")),
        )
    return RawError(name="Error", message=_safe_str(raw))


class DefaultErrorClassifier:
    """Infers error type and severity from status, name and code."""

    def classify(self, raw: RawError) -> tuple[ErrorType, Severity]:
        return self.error_type(raw), self.severity(raw)

    def error_type(self, raw: RawError) -> ErrorType:
        if raw.status:
            return "api"
        if raw.name in VALIDATION_NAMES:
            return "validation"
        if raw.name in NETWORK_NAMES:
            return "network"
        if raw.name in SECURITY_NAMES:
            return "security"
        if raw.code and raw.code.startswith(BUSINESS_CODE_PREFIX):
            return "business"
        return "javascript"

    def severity(self, raw: RawError) -> Severity:
        if raw.severity:
            return raw.severity
        if raw.status is not None:
            if raw.status >= 500:
                return "critical"
            if raw.status >= 400:
                return "high"
        if raw.name == "SecurityError":
            return "critical"
        if raw.name in PROGRAMMING_NAMES:
            return "high"
        return "medium"
