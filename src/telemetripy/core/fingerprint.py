"""Error fingerprinting.

A fingerprint is a short, stable hash that groups occurrences of the same
error. It ignores the parts that vary between occurrences: digit runs in the
message (ids, counters, retry numbers) and line/column numbers in the stack.
"""

import re

from telemetripy.core.models import TrackedError


STACK_FRAMES = 3

_DIGIT_RUN = re.compile(r"\d+")
_LINE_COLUMN = re.compile(r":\d+:\d+")
_PYTHON_LINE = re.compile(r"line \d+")
_PYTHON_FRAME = re.compile(r'^File "')
_JS_FRAME = re.compile(r"^at\s")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def normalize_message(message: str) -> str:
    """Replace every run of digits with ``N``."""
    return _DIGIT_RUN.sub("N", message)


def stack_signature(stack: str | None, frames: int = STACK_FRAMES) -> str:
    """Reduce a stack trace to its innermost frames with positions blanked.

    Python tracebacks list the raising frame last, so they are reversed.
    JavaScript-style ``at fn (file:1:2)`` stacks are taken top-down. A
    stack with no recognizable frame lines falls back to its first
    non-empty lines with every digit run normalized.

    Args:
        stack: Formatted stack trace.
        frames: Number of frames to keep.

    Returns:
        The selected frames joined with ``|``, or ``""`` without a stack.
    """
    if not stack:
        return ""
    lines = [line.strip() for line in stack.splitlines() if line.strip()]
    python_frames = [line for line in lines if _PYTHON_FRAME.match(line)]
    if python_frames:
        selected = list(reversed(python_frames))[:frames]
    else:
        js_frames = [line for line in lines if _JS_FRAME.match(line)]
        if js_frames:
            selected = js_frames[:frames]
        else:
            selected = [normalize_message(line) for line in lines[:frames]]
    return "|".join(
        _PYTHON_LINE.sub("line N", _LINE_COLUMN.sub(":N:N", line)) for line in selected
    )


def rolling_hash(text: str) -> str:
    """Hash ``text`` with a 32-bit ``h * 31 + unit`` rolling hash.

    Iterates UTF-16 code units, wraps to a signed 32-bit integer and returns
    the absolute value in base 36.
    """
    value = 0
    data = text.encode("utf-16-le")
    for index in range(0, len(data), 2):
        unit = data[index] | (data[index + 1] << 8)
        value = (value * 31 + unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return _to_base36(abs(value))


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def fingerprint(
    error_type: str,
    message: str,
    status: int | None = None,
    code: str | None = None,
    stack: str | None = None,
) -> str:
    """Compute the fingerprint for an error.

    Args:
        error_type: Classified error type.
        message: Error message; digit runs are normalized.
        status: HTTP status, if any.
        code: Application error code, if any.
        stack: Stack trace, if any.

    Returns:
        Base-36 fingerprint string.
    """
    components = [
        error_type,
        normalize_message(message),
        str(status) if status is not None else "",
        code or "",
        stack_signature(stack),
    ]
    return rolling_hash("|".join(components))

def fingerprint_error(error: TrackedError) -> str:
    """Recompute the fingerprint of an existing record."""
    return fingerprint(error.type, error.message, error.status, error.code, error.stack)
