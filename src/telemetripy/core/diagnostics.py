"""Standard library logging helpers for telemetripy's own diagnostics.

The structured pipeline never reports its own failures through itself.
Failed transports, failed alert actions and broken listeners are written to
stdlib loggers under the ``telemetripy`` hierarchy instead.
"""

import logging

ROOT_LOGGER_NAME = "telemetripy"

logging.getLogger(ROOT_LOGGER_NAME).addHandler(logging.NullHandler())

_logger = logging.getLogger(ROOT_LOGGER_NAME)


def get_logger(name: str) -> logging.Logger:
    """Return a standard library logger.

    Args:
        name: Logger name, usually ``__name__``.

    Returns:
        The ``logging.Logger`` for that name.
    """
    return logging.getLogger(name)


def log_exception(message: str, logger: logging.Logger | None = None) -> None:
    """Log ``message`` with the active exception's traceback.

    Must be called from inside an ``except`` block.

    Args:
        message: Description of what failed.
        logger: Logger to use; defaults to the package root logger.
    """
    (logger or _logger).exception(message)


def is_internal_logger(name: str) -> bool:
    """Return True for loggers that belong to telemetripy itself."""
    return name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + ".")
