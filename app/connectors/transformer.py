"""Staylytics - Shared Normalization Helpers.

Pure functions used by every source's transformer. Upstream payloads are
duck-typed: fields may be camelCase or snake_case, strings or numbers,
missing or null. Everything numeric comes out as a finite float.
"""

import math
import re
from typing import Any, Dict, Iterable, Mapping, Optional

from app.core.logging import get_logger
from app.core.metric_registry import unknown_metrics
from app.models.normalized_models import MetricRecord

logger = get_logger("connectors.transformer")

SHORTS_MAX_SECONDS = 60

_ISO_DURATION = re.compile(
    r"^P(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$"
)


def safe_float(value: Any) -> float:
    """Safely convert a value to float; NaN and garbage become 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def safe_int(value: Any) -> int:
    return int(safe_float(value))


def safe_divide(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def ratio_to_percent(value: Any) -> float:
    """0.1234 -> 12.34"""
    return safe_float(value) * 100


def micros_to_units(value: Any) -> float:
    return safe_float(value) / 1_000_000


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def pick(data: Any, *paths: str, default: Any = None) -> Any:
    """First non-null value among dotted ``paths``.

    Each path segment is tried as written and in snake_case, so
    ``pick(row, "metrics.costMicros")`` also finds ``metrics.cost_micros``.
    """
    for path in paths:
        node = data
        for part in path.split("."):
            if not isinstance(node, Mapping):
                node = None
                break
            value = node.get(part)
            if value is None:
                value = node.get(_snake(part))
            node = value
        if node is not None:
            return node
    return default


def parse_iso8601_duration(value: Optional[str]) -> int:
    """``PT1H2M3S`` -> 3723 seconds. Unparseable input is 0."""
    if not value:
        return 0
    match = _ISO_DURATION.match(value.strip())
    if not match:
        return 0
    parts = {k: float(v) for k, v in match.groupdict().items() if v}
    return int(
        parts.get("days", 0) * 86400
        + parts.get("hours", 0) * 3600
        + parts.get("minutes", 0) * 60
        + parts.get("seconds", 0)
    )


def encode_duration(seconds: Any) -> Dict[str, int]:
    """Up to a minute: ``{"seconds": s}``; longer: ``{"minutes": m, "seconds": s}``."""
    total = max(safe_int(seconds), 0)
    if total <= 60:
        return {"seconds": total}
    return {"minutes": total // 60, "seconds": total % 60}


def classify_video(duration_seconds: Any) -> str:
    return "shorts" if safe_float(duration_seconds) <= SHORTS_MAX_SECONDS else "video"


def build_record(
    label: str,
    values: Mapping[str, Any],
    measures: Iterable[str],
    dimensions: Optional[Mapping[str, Any]] = None,
    attributes: Optional[Mapping[str, Any]] = None,
) -> MetricRecord:
    """MetricRecord with every declared measure present (absent ones are 0)."""
    names = list(measures)
    unknown = unknown_metrics(names)
    if unknown:
        logger.warning(f"Unregistered measures in record '{label}': {unknown}")
    return MetricRecord(
        label=label,
        dimensions=dict(dimensions or {}),
        measures={name: safe_float(values.get(name)) for name in names},
        attributes=dict(attributes or {}),
    )


def zero_record(label: str, measures: Iterable[str]) -> MetricRecord:
    """Overview returned when the upstream has no rows for the window."""
    return build_record(label, {}, measures)
