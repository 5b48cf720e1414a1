"""Staylytics - Search Console Raw → Normalized Transformer."""

from typing import Any, Dict, List, Sequence
from urllib.parse import urlparse

from app.connectors.transformer import build_record, ratio_to_percent, safe_float, zero_record
from app.models.normalized_models import MetricRecord

MEASURES = ["clicks", "impressions", "ctr", "position"]

# Search Console reports ISO 3166-1 alpha-3, lower case
COUNTRIES = {
    "usa": ("US", "United States"),
    "gbr": ("GB", "United Kingdom"),
    "can": ("CA", "Canada"),
    "aus": ("AU", "Australia"),
    "ind": ("IN", "India"),
    "deu": ("DE", "Germany"),
    "fra": ("FR", "France"),
    "jpn": ("JP", "Japan"),
    "bra": ("BR", "Brazil"),
    "mex": ("MX", "Mexico"),
    "esp": ("ES", "Spain"),
    "ita": ("IT", "Italy"),
    "nld": ("NL", "Netherlands"),
    "are": ("AE", "United Arab Emirates"),
    "sgp": ("SG", "Singapore"),
    "chn": ("CN", "China"),
    "kor": ("KR", "South Korea"),
    "rus": ("RU", "Russia"),
    "zaf": ("ZA", "South Africa"),
    "nzl": ("NZ", "New Zealand"),
}


def row_measures(row: Dict[str, Any]) -> Dict[str, float]:
    """CTR arrives as a ratio; position is kept as reported."""
    return {
        "clicks": safe_float(row.get("clicks")),
        "impressions": safe_float(row.get("impressions")),
        "ctr": ratio_to_percent(row.get("ctr")),
        "position": safe_float(row.get("position")),
    }


def transform_overview(rows: Sequence[Dict[str, Any]]) -> MetricRecord:
    if not rows:
        return zero_record("overview", MEASURES)
    return build_record("overview", row_measures(rows[0]), MEASURES)


def transform_keyed(rows: Sequence[Dict[str, Any]], dimension: str) -> List[MetricRecord]:
    records: List[MetricRecord] = []
    for row in rows:
        key = str((row.get("keys") or [""])[0])
        label, attributes = key, {}
        if dimension == "page":
            path = urlparse(key).path or "/"
            label, attributes = path, {"full_url": key}
        elif dimension == "country":
            iso2, name = COUNTRIES.get(key.lower(), (key.upper(), key.upper()))
            label, attributes = name, {"country_code": iso2}
        elif dimension == "device":
            label = key.title()
        records.append(
            build_record(
                label or "(not set)",
                row_measures(row),
                MEASURES,
                dimensions={dimension: key},
                attributes=attributes,
            )
        )
    return records
