"""Staylytics - Google Ads Raw → Normalized Transformer.

GAQL rows arrive per segment; totals are summed per entity before the
ratio measures are derived, so ratios are never averaged.
"""

from typing import Any, Callable, Dict, Iterable, List, Sequence, Tuple

from app.connectors.transformer import (
    build_record,
    micros_to_units,
    pick,
    safe_divide,
    safe_float,
)
from app.models.normalized_models import MetricRecord

# geoTargetConstants criterion id → country
COUNTRY_CRITERIA = {
    "2840": "United States",
    "2826": "United Kingdom",
    "2124": "Canada",
    "2036": "Australia",
    "2356": "India",
    "2276": "Germany",
    "2250": "France",
    "2392": "Japan",
    "2076": "Brazil",
    "2484": "Mexico",
    "2724": "Spain",
    "2380": "Italy",
    "2528": "Netherlands",
    "2784": "United Arab Emirates",
    "2702": "Singapore",
}

DEVICE_NAMES = {
    "MOBILE": "Mobile",
    "DESKTOP": "Desktop",
    "TABLET": "Tablet",
    "CONNECTED_TV": "Connected TV",
    "OTHER": "Other",
    "UNKNOWN": "Unknown",
}

TOTAL_FIELDS = (
    "impressions",
    "clicks",
    "cost",
    "conversions",
    "conversion_value",
    "interactions",
)


def row_totals(row: Dict[str, Any]) -> Dict[str, float]:
    """Additive metrics from one GAQL row; cost converted from micros."""
    return {
        "impressions": safe_float(pick(row, "metrics.impressions")),
        "clicks": safe_float(pick(row, "metrics.clicks")),
        "cost": micros_to_units(pick(row, "metrics.costMicros")),
        "conversions": safe_float(pick(row, "metrics.conversions")),
        "conversion_value": safe_float(pick(row, "metrics.conversionsValue")),
        "interactions": safe_float(pick(row, "metrics.interactions")),
    }


def with_derived(totals: Dict[str, float]) -> Dict[str, float]:
    values = dict(totals)
    impressions = totals.get("impressions", 0.0)
    clicks = totals.get("clicks", 0.0)
    cost = totals.get("cost", 0.0)
    conversions = totals.get("conversions", 0.0)
    interactions = totals.get("interactions", 0.0)
    values.update(
        {
            "ctr": safe_divide(clicks, impressions) * 100,
            "average_cpc": safe_divide(cost, clicks),
            "average_cpm": safe_divide(cost, impressions) * 1000,
            "cost_per_conversion": safe_divide(cost, conversions),
            "conversion_rate": safe_divide(conversions, clicks) * 100,
            "interaction_rate": safe_divide(interactions, impressions) * 100,
        }
    )
    return values


def aggregate(
    rows: Iterable[Dict[str, Any]],
    key_fn: Callable[[Dict[str, Any]], Tuple[str, str, Dict[str, Any]]],
) -> Dict[str, Tuple[str, Dict[str, Any], Dict[str, float]]]:
    """Sum totals per key. ``key_fn`` returns (key, label, dimensions)."""
    grouped: Dict[str, Tuple[str, Dict[str, Any], Dict[str, float]]] = {}
    for row in rows:
        key, label, dimensions = key_fn(row)
        if key not in grouped:
            grouped[key] = (label, dimensions, {f: 0.0 for f in TOTAL_FIELDS})
        totals = grouped[key][2]
        for name, value in row_totals(row).items():
            totals[name] += value
    return grouped


def transform_overview(
    rows: Sequence[Dict[str, Any]], measures: Sequence[str]
) -> MetricRecord:
    totals = {f: 0.0 for f in TOTAL_FIELDS}
    for row in rows:
        for name, value in row_totals(row).items():
            totals[name] += value
    return build_record("overview", with_derived(totals), measures)


def transform_grouped(
    rows: Sequence[Dict[str, Any]],
    key_fn: Callable[[Dict[str, Any]], Tuple[str, str, Dict[str, Any]]],
    measures: Sequence[str],
) -> List[MetricRecord]:
    return [
        build_record(label, with_derived(totals), measures, dimensions=dims)
        for label, dims, totals in aggregate(rows, key_fn).values()
    ]


# ── Grouping keys ──


def campaign_key(row: Dict[str, Any]) -> Tuple[str, str, Dict[str, Any]]:
    campaign_id = str(pick(row, "campaign.id", default=""))
    name = pick(row, "campaign.name", default="") or f"Campaign {campaign_id}"
    return (
        campaign_id,
        name,
        {
            "campaign_id": campaign_id,
            "status": pick(row, "campaign.status", default=""),
            "channel_type": pick(row, "campaign.advertisingChannelType", default=""),
        },
    )


def device_key(row: Dict[str, Any]) -> Tuple[str, str, Dict[str, Any]]:
    device = str(pick(row, "segments.device", default="UNKNOWN"))
    return device, DEVICE_NAMES.get(device, device.title()), {"device": device}


def location_key(row: Dict[str, Any]) -> Tuple[str, str, Dict[str, Any]]:
    criterion = str(pick(row, "geographicView.countryCriterionId", default=""))
    name = COUNTRY_CRITERIA.get(criterion, f"Location {criterion}")
    return criterion, name, {"country_criterion_id": criterion}


def transform_keywords(
    rows: Sequence[Dict[str, Any]], measures: Sequence[str]
) -> List[MetricRecord]:
    records: List[MetricRecord] = []
    for row in rows:
        values = with_derived(row_totals(row))
        values["quality_score"] = safe_float(
            pick(row, "adGroupCriterion.qualityInfo.qualityScore")
        )
        records.append(
            build_record(
                pick(row, "adGroupCriterion.keyword.text", default="") or "(not set)",
                values,
                measures,
                dimensions={
                    "match_type": pick(row, "adGroupCriterion.keyword.matchType", default=""),
                    "ad_group": pick(row, "adGroup.name", default=""),
                    "campaign": pick(row, "campaign.name", default=""),
                },
            )
        )
    return records
