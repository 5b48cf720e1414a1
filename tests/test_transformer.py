"""Tests for the shared normalization helpers."""

import pytest

from app.connectors.transformer import (
    build_record,
    classify_video,
    encode_duration,
    micros_to_units,
    parse_iso8601_duration,
    pick,
    ratio_to_percent,
    safe_divide,
    safe_float,
    zero_record,
)
from app.models.normalized_models import MetricRecord


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, 0.0),
        ("abc", 0.0),
        ("NaN", 0.0),
        (float("inf"), 0.0),
        ("12.5", 12.5),
        (7, 7.0),
    ],
)
def test_safe_float(value, expected):
    assert safe_float(value) == expected


def test_safe_divide_by_zero():
    assert safe_divide(10, 0) == 0.0
    assert safe_divide(10, 4) == 2.5


def test_unit_conversions():
    assert ratio_to_percent("0.1234") == pytest.approx(12.34)
    assert micros_to_units(1_500_000) == 1.5


class TestDurations:
    def test_under_a_minute_is_seconds_only(self):
        assert encode_duration(45) == {"seconds": 45}

    def test_exactly_a_minute_is_seconds_only(self):
        assert encode_duration(60) == {"seconds": 60}

    def test_over_a_minute_splits(self):
        assert encode_duration(90) == {"minutes": 1, "seconds": 30}
        assert encode_duration(3723) == {"minutes": 62, "seconds": 3}

    @pytest.mark.parametrize(
        "raw,seconds",
        [
            ("PT45S", 45),
            ("PT1M", 60),
            ("PT1H2M3S", 3723),
            ("P1D", 86400),
            ("P1DT1S", 86401),
            ("bogus", 0),
            ("", 0),
            (None, 0),
        ],
    )
    def test_iso8601(self, raw, seconds):
        assert parse_iso8601_duration(raw) == seconds

    def test_classification_boundary(self):
        assert classify_video(60) == "shorts"
        assert classify_video(61) == "video"
        assert classify_video(None) == "shorts"


class TestPick:
    def test_dotted_path(self):
        assert pick({"a": {"b": 3}}, "a.b") == 3

    def test_snake_case_fallback(self):
        row = {"metrics": {"cost_micros": "100"}}
        assert pick(row, "metrics.costMicros") == "100"

    def test_first_present_path_and_default(self):
        assert pick({"b": 2}, "a", "b") == 2
        assert pick({}, "a.b", default="x") == "x"
        assert pick({"a": "not a mapping"}, "a.b") is None


def test_build_record_zero_fills_declared_measures():
    record = build_record("overview", {"clicks": "4", "cost": float("nan")}, ["clicks", "cost", "impressions"])
    assert record.measures == {"clicks": 4.0, "cost": 0.0, "impressions": 0.0}


def test_zero_record():
    record = zero_record("overview", ["sessions", "total_users"])
    assert record.label == "overview"
    assert set(record.measures) == {"sessions", "total_users"}
    assert not any(record.measures.values())


def test_metric_record_coerces_measures_and_dimensions():
    record = MetricRecord(label="x", measures={"a": None, "b": "2"}, dimensions={"d": None, "n": 3})
    assert record.measures == {"a": 0.0, "b": 2.0}
    assert record.dimensions == {"d": "", "n": "3"}
    assert record.measure("missing") == 0.0
