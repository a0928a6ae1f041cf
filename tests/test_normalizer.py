"""Unit tests for the value normalizer."""

import math

import pytest

from metricsnap.core.field_schema import AD_INSIGHTS_SCHEMA, FINANCE_SCHEMA
from metricsnap.pipeline.normalizer import (
    ValueKind,
    normalize_row,
    normalize_value,
    to_number,
)


class TestNormalizeValue:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("12,345.67", 12345.67),
            (" 500 ", 500.0),
            ("1,000", 1000.0),
            (42, 42.0),
            (2.5, 2.5),
        ],
    )
    def test_numeric_inputs_become_floats(self, raw, expected) -> None:
        result = normalize_value(raw)
        assert isinstance(result, float)
        assert result == expected

    @pytest.mark.parametrize(
        "raw",
        ["Could not retrieve", "1,,2", "3.", "", "--", "No Data", "-5", "1.2.3", None],
    )
    def test_non_numeric_inputs_pass_through_unchanged(self, raw) -> None:
        assert normalize_value(raw) == raw

    def test_bool_is_not_a_number(self) -> None:
        assert normalize_value(True) is True

    def test_passthrough_kind_never_parses(self) -> None:
        assert normalize_value("1,500", ValueKind.PASSTHROUGH) == "1,500"

    def test_percent_only_parsed_when_requested(self) -> None:
        assert normalize_value("12.34%") == "12.34%"
        assert normalize_value("12.34%", percent=True) == 12.34
        assert normalize_value("-8.5%", percent=True) == -8.5


class TestNormalizeRow:
    def test_row_follows_schema_order(self) -> None:
        raw = {
            "account_name": "Alpha",
            "pod": "North",
            "ad_spend_timeframe": "1,500",
            "shopify_revenue_timeframe": "Could not retrieve",
            "orders_timeframe": 12,
        }
        values = normalize_row(raw, FINANCE_SCHEMA)

        assert len(values) == len(FINANCE_SCHEMA)
        assert values[FINANCE_SCHEMA.index("account_name")] == "Alpha"
        assert values[FINANCE_SCHEMA.index("ad_spend_timeframe")] == 1500.0
        assert values[FINANCE_SCHEMA.index("shopify_revenue_timeframe")] == "Could not retrieve"
        assert values[FINANCE_SCHEMA.index("orders_timeframe")] == 12.0
        assert values[FINANCE_SCHEMA.index("roas_rebill")] is None

    def test_identity_fields_are_not_parsed(self) -> None:
        values = normalize_row({"account_name": "1234"}, FINANCE_SCHEMA)
        assert values[FINANCE_SCHEMA.index("account_name")] == "1234"

    def test_percent_rates_in_ad_insights(self) -> None:
        values = normalize_row({"hook_rate": "25.5%", "ctr": "1.2"}, AD_INSIGHTS_SCHEMA)
        assert values[AD_INSIGHTS_SCHEMA.index("hook_rate")] == 25.5
        assert values[AD_INSIGHTS_SCHEMA.index("ctr")] == 1.2


class TestToNumber:
    def test_numbers_and_numeric_strings(self) -> None:
        assert to_number(3) == 3.0
        assert to_number("2,000.5") == 2000.5

    def test_non_numeric_is_none(self) -> None:
        assert to_number("error") is None
        assert to_number(None) is None
        assert to_number(False) is None

    def test_nan_is_none(self) -> None:
        assert to_number(math.nan) is None
