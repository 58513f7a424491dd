"""
Structured logging for the aidflow SDK.

Thin layer over the standard library ``logging`` module. Every module
obtains its logger with ``get_logger(__name__)`` and logs with an
``extra`` dict; the default formatter appends those fields as
``key=value`` pairs so step ids, senders and transaction hashes end up
on the same line as the message.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

ROOT_LOGGER_NAME = "aidflow"

# Attributes present on every LogRecord; anything else came in via ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


class KeyValueFormatter(logging.Formatter):
    """Formatter that renders ``extra`` fields as trailing ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = {
            key: value
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if not extras:
            return base
        fields = " ".join(f"{key}={value}" for key, value in sorted(extras.items()))
        return f"{base} | {fields}"


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the ``aidflow`` namespace.

    Args:
        name: Module name (usually ``__name__``)

    Returns:
        Logger instance
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def configure_logging(
    level: Union[int, str] = logging.INFO,
    handler: Optional[logging.Handler] = None,
) -> logging.Logger:
    """
    Configure the ``aidflow`` root logger.

    Safe to call more than once; previously installed handlers are replaced.

    Args:
        level: Log level (name or number)
        handler: Optional handler (defaults to a stderr StreamHandler)

    Returns:
        The configured root logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = handler or logging.StreamHandler()
    handler.setFormatter(
        KeyValueFormatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s")
    )
    root.addHandler(handler)
    root.setLevel(level)
    return root


__all__ = ["get_logger", "configure_logging", "KeyValueFormatter", "ROOT_LOGGER_NAME"]
