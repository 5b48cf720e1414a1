"""Staylytics - Meta Ads Raw → Normalized Transformer.

Insight rows carry plain numeric fields plus ``actions`` / ``action_values``
lists keyed by action type. Purchases are reported under several
overlapping action types, so only the first present type is counted.
"""

from typing import Any, Dict, List, Sequence

from app.connectors.transformer import build_record, safe_divide, safe_float, zero_record
from app.models.normalized_models import MetricRecord

# Direct-map fields from Meta insight response
DIRECT_METRICS = [
    "impressions",
    "reach",
    "clicks",
    "unique_clicks",
    "spend",
    "frequency",
    "ctr",
    "cpc",
    "cpm",
    "cpp",
]

ACTION_MEASURES = {
    "link_click": "link_clicks",
    "post_engagement": "post_engagement",
    "page_engagement": "page_engagement",
    "like": "likes",
    "comment": "comments",
    "post": "shares",
    "video_view": "video_views",
}

# Same purchase events under different attribution names; most specific first
PURCHASE_ACTIONS = (
    "omni_purchase",
    "purchase",
    "offsite_conversion.fb_pixel_purchase",
)

OVERVIEW_MEASURES = [
    "impressions",
    "reach",
    "clicks",
    "unique_clicks",
    "spend",
    "frequency",
    "ctr",
    "cpc",
    "cpm",
    "link_clicks",
    "post_engagement",
    "video_views",
    "conversions",
    "purchase_value",
    "roas",
    "video_p25_watched",
    "video_p50_watched",
    "video_p75_watched",
    "video_p100_watched",
]
LEVEL_MEASURES = [
    "impressions",
    "reach",
    "clicks",
    "spend",
    "ctr",
    "cpc",
    "cpm",
    "conversions",
    "purchase_value",
    "roas",
]
DAILY_MEASURES = ["impressions", "clicks", "spend", "conversions", "purchase_value"]


def _by_action_type(entries: Any) -> Dict[str, float]:
    totals: Dict[str, float] = {}
    for entry in entries or []:
        action_type = entry.get("action_type", "")
        totals[action_type] = totals.get(action_type, 0.0) + safe_float(entry.get("value"))
    return totals


def _first_present(totals: Dict[str, float], candidates: Sequence[str]) -> float:
    for action_type in candidates:
        if action_type in totals:
            return totals[action_type]
    return 0.0


def extract_action_metrics(row: Dict[str, Any]) -> Dict[str, float]:
    """Extract action-based metrics (conversions, engagement, video completion)."""
    metrics: Dict[str, float] = {}
    actions = _by_action_type(row.get("actions"))
    for action_type, measure in ACTION_MEASURES.items():
        if action_type in actions:
            metrics[measure] = actions[action_type]
    metrics["conversions"] = _first_present(actions, PURCHASE_ACTIONS)
    metrics["purchase_value"] = _first_present(
        _by_action_type(row.get("action_values")), PURCHASE_ACTIONS
    )

    for pct in ("25", "50", "75", "100"):
        watched = _by_action_type(row.get(f"video_p{pct}_watched_actions"))
        if "video_view" in watched:
            metrics[f"video_p{pct}_watched"] = watched["video_view"]
    return metrics


def row_measures(row: Dict[str, Any]) -> Dict[str, float]:
    values = {m: safe_float(row.get(m)) for m in DIRECT_METRICS if m in row}
    values.update(extract_action_metrics(row))
    values["roas"] = safe_divide(values.get("purchase_value", 0.0), values.get("spend", 0.0))
    return values


def entity_info(row: Dict[str, Any], level: str) -> tuple[str, str]:
    """(entity_id, entity_name) for an insight row at ``level``."""
    if level in ("ad", "adset", "campaign"):
        entity_id = str(row.get(f"{level}_id", ""))
        return entity_id, row.get(f"{level}_name") or entity_id
    return str(row.get("account_id", "")), row.get("account_name") or "Account"


def transform_overview(rows: Sequence[Dict[str, Any]]) -> MetricRecord:
    if not rows:
        return zero_record("overview", OVERVIEW_MEASURES)
    return build_record("overview", row_measures(rows[0]), OVERVIEW_MEASURES)


def transform_level(rows: Sequence[Dict[str, Any]], level: str) -> List[MetricRecord]:
    records: List[MetricRecord] = []
    for row in rows:
        entity_id, name = entity_info(row, level)
        records.append(
            build_record(
                name,
                row_measures(row),
                LEVEL_MEASURES,
                dimensions={f"{level}_id": entity_id},
            )
        )
    return sorted(records, key=lambda r: r.measure("spend"), reverse=True)


def transform_daily(rows: Sequence[Dict[str, Any]]) -> List[MetricRecord]:
    records = [
        build_record(
            row.get("date_start", ""),
            row_measures(row),
            DAILY_MEASURES,
            dimensions={"date": row.get("date_start", "")},
        )
        for row in rows
    ]
    return sorted(records, key=lambda r: r.label)
