"""Standard library logging setup for engmetrics.

``configure_logging`` installs a single stream handler on the ``engmetrics``
logger. ``CapturingHandler`` keeps records in memory with their structured
fields split out, for tests and for embedding applications that forward
soft-failure warnings elsewhere.
"""

import logging
import sys
from dataclasses import dataclass, field
from typing import TextIO

DEFAULT_FORMAT = "%(asctime)s - %(levelname)-8s - [%(name)s] %(message)s"
ROOT_LOGGER = "engmetrics"

# Standard LogRecord attributes that should not be treated as extra fields
_STANDARD_LOGRECORD_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)


def record_fields(record: logging.LogRecord) -> dict[str, str | int | float | bool]:
    """Scalar extra fields attached to a record via ``extra=``."""
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _STANDARD_LOGRECORD_ATTRS
        and isinstance(value, (str, int, float, bool))
    }


def configure_logging(
    level: str | int = "INFO",
    fmt: str = DEFAULT_FORMAT,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Install one stream handler on the engmetrics logger.

    Calling it again replaces the handler instead of adding a second one.

    Args:
        level: Level name or number.
        fmt: Format string for ``logging.Formatter``.
        stream: Output stream. Defaults to stderr.

    Returns:
        The configured ``engmetrics`` logger.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        if getattr(handler, "_engmetrics_managed", False):
            logger.removeHandler(handler)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(fmt))
    handler._engmetrics_managed = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    return logger


@dataclass(frozen=True)
class CapturedLog:
    level: str
    logger: str
    message: str
    fields: dict[str, str | int | float | bool] = field(default_factory=dict)


class CapturingHandler(logging.Handler):
    """Logging handler that keeps records in memory.

    Example:
        ```python
        handler = CapturingHandler()
        logging.getLogger("engmetrics").addHandler(handler)
        ...
        assert handler.records_at("WARNING")
        ```
    """

    def __init__(self, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.records: list[CapturedLog] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(
            CapturedLog(
                level=record.levelname,
                logger=record.name,
                message=record.getMessage(),
                fields=record_fields(record),
            )
        )

    def records_at(self, level: str) -> list[CapturedLog]:
        return [record for record in self.records if record.level == level.upper()]

    def clear(self) -> None:
        self.records.clear()
