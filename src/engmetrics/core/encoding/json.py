"""JSON encoding for cached reports and metrics.

Reports are plain dicts whose leaves may include enums and dates; these are
rendered as strings so a cached report decodes to the same shape a fresh
computation returns.
"""

import json
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

from engmetrics.core.models import Metric


def _default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_report(report: dict[str, Any]) -> str:
    """Encode a report dict as compact JSON."""
    return json.dumps(report, default=_default, separators=(",", ":"))


def decode_report(payload: str) -> dict[str, Any]:
    """Decode a cached report.

    Raises:
        ValueError: If the payload is not a JSON object.
    """
    decoded = json.loads(payload)
    if not isinstance(decoded, dict):
        raise ValueError("cached report is not a JSON object")
    return decoded


def encode_metric(metric: Metric) -> str:
    """Encode a single metric as one JSON object."""
    return json.dumps(
        {
            "id": metric.id,
            "name": metric.name,
            "value": metric.value,
            "source": metric.source,
            "timestamp": metric.timestamp,
            "dimensions": metric.dimensions,
        },
        separators=(",", ":"),
    )


def decode_metric(payload: str) -> Metric:
    data = json.loads(payload)
    return Metric(
        id=data.get("id"),
        name=data["name"],
        value=data["value"],
        source=data["source"],
        timestamp=data["timestamp"],
        dimensions=data.get("dimensions") or {},
    )
