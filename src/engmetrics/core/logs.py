"""Structured logging helpers built on the standard library logging module."""

import logging
import sys
from collections.abc import Mapping, MutableMapping
from typing import Any

FieldValue = str | int | float | bool | None


class StructuredLogger(logging.LoggerAdapter):
    """Logger adapter carrying structured key-value fields.

    Fields are passed to handlers through ``extra`` and appended to the
    message as ``key=value`` pairs so they survive plain text formatters.

    Example:
        ```python
        logger = get_logger(__name__)
        logger.with_fields(metric="dora.deployment_frequency").warning("empty")
        ```
    """

    def __init__(
        self, logger: logging.Logger, fields: Mapping[str, FieldValue] | None = None
    ) -> None:
        super().__init__(logger, dict(fields or {}))

    @property
    def fields(self) -> dict[str, FieldValue]:
        return dict(self.extra or {})

    def with_fields(self, **fields: FieldValue) -> "StructuredLogger":
        """Return a new adapter with additional fields bound."""
        return StructuredLogger(self.logger, {**self.fields, **fields})

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        fields = self.fields
        if not fields:
            return msg, kwargs
        kwargs["extra"] = {**fields, **kwargs.get("extra", {})}
        rendered = " ".join(f"{key}={value}" for key, value in fields.items())
        return f"{msg} {rendered}", kwargs


def get_logger(name: str) -> StructuredLogger:
    """Return a structured logger for the given module name."""
    return StructuredLogger(logging.getLogger(name))


def log_exception(
    message: str,
    logger: StructuredLogger | logging.Logger | None = None,
) -> None:
    """Log message at ERROR level with the exception currently being handled.

    Args:
        message: The log message.
        logger: Logger to use. Defaults to the engmetrics root logger.
    """
    target = logger or logging.getLogger("engmetrics")
    target.error(message, exc_info=sys.exc_info())
