"""Unit tests for sorting and the TOTAL/AVG row."""

from datetime import date

from metricsnap.core.field_schema import FINANCE_SCHEMA
from metricsnap.pipeline.aggregator import (
    NOT_APPLICABLE,
    TOTALS_LABEL,
    aggregate,
    compute_totals,
    is_totals_row,
    sort_rows,
    strip_totals,
)
from metricsnap.pipeline.refresh import build_rows

TODAY = date(2026, 10, 16)
S = FINANCE_SCHEMA


def rows_from(*raw_rows):
    return build_rows(list(raw_rows), S)


def col(row, name):
    return row.values[S.index(name)]


class TestTotals:
    def test_additive_sum_skips_non_numeric(self) -> None:
        rows = rows_from(
            {"account_name": "A", "ad_spend_timeframe": 100},
            {"account_name": "B", "ad_spend_timeframe": "error"},
            {"account_name": "C", "ad_spend_timeframe": 50},
        )
        totals = compute_totals(rows, S)
        assert totals.sums["ad_spend_timeframe"] == 150
        assert totals.counts["ad_spend_timeframe"] == 2

    def test_rate_average_is_unweighted_over_valid_values(self) -> None:
        rows = rows_from(
            {"account_name": "A", "roas_timeframe": 2.0, "ad_spend_timeframe": 10_000},
            {"account_name": "B", "roas_timeframe": "error"},
            {"account_name": "C", "roas_timeframe": 4.0, "ad_spend_timeframe": 1},
        )
        totals = compute_totals(rows, S)
        assert totals.averages["roas_timeframe"] == 3.0
        assert totals.counts["roas_timeframe"] == 2

    def test_rate_average_without_values_is_zero(self) -> None:
        totals = compute_totals(rows_from({"account_name": "A"}), S)
        assert totals.averages["roas_rebill"] == 0.0


class TestSorting:
    def test_non_numeric_primary_sorts_last_regardless_of_secondary(self) -> None:
        rows = rows_from(
            {"account_name": "Huge spend", "shopify_revenue_timeframe": "Could not retrieve",
             "ad_spend_timeframe": 1_000_000},
            {"account_name": "Small", "shopify_revenue_timeframe": 1, "ad_spend_timeframe": 0},
        )
        ordered = sort_rows(rows, S)
        assert [col(r, "account_name") for r in ordered] == ["Small", "Huge spend"]

    def test_secondary_key_breaks_ties(self) -> None:
        rows = rows_from(
            {"account_name": "Low", "shopify_revenue_timeframe": 500, "ad_spend_timeframe": 10},
            {"account_name": "High", "shopify_revenue_timeframe": 500, "ad_spend_timeframe": 90},
        )
        ordered = sort_rows(rows, S)
        assert [col(r, "account_name") for r in ordered] == ["High", "Low"]


class TestAggregate:
    def test_roster_scenario(self) -> None:
        """A and C succeed, B lacks permissions on both fields."""
        rows = rows_from(
            {"account_name": "A", "ad_spend_timeframe": "1,000",
             "shopify_revenue_timeframe": "3,000"},
            {"account_name": "B", "ad_spend_timeframe": "Missing Permissions",
             "shopify_revenue_timeframe": "Missing Permissions"},
            {"account_name": "C", "ad_spend_timeframe": "500",
             "shopify_revenue_timeframe": "100"},
        )
        display, totals = aggregate(rows, S, TODAY)

        assert [col(r, "account_name") for r in display] == ["A", "C", "B", TOTALS_LABEL]
        assert totals.sums["ad_spend_timeframe"] == 1500
        assert totals.sums["shopify_revenue_timeframe"] == 3100

        b = display[2]
        assert b.is_error is True
        assert b.error_detail.error_count == 2

    def test_totals_row_rendering(self) -> None:
        rows = rows_from(
            {"account_name": "A", "ad_spend_timeframe": 1000, "roas_timeframe": 2},
            {"account_name": "C", "ad_spend_timeframe": 500.5, "roas_timeframe": 4},
        )
        display, _ = aggregate(rows, S, TODAY)
        totals_row = display[-1]

        assert totals_row.is_totals
        assert col(totals_row, "account_name") == TOTALS_LABEL
        assert col(totals_row, "pod") == "Fri Oct 16 2026"
        assert col(totals_row, "ad_spend_timeframe") == "1,500.5"
        assert col(totals_row, "roas_timeframe") == "3.00"
        assert col(totals_row, "is_monitored") == NOT_APPLICABLE
        assert col(totals_row, "rebill_status") == NOT_APPLICABLE
        assert col(totals_row, "last_rebill_date") == NOT_APPLICABLE

    def test_reaggregating_does_not_double_count_totals(self) -> None:
        display, first = aggregate(rows_from({"account_name": "A", "orders_timeframe": 5}), S, TODAY)
        again, second = aggregate(display, S, TODAY)
        assert len(again) == 2
        assert second.sums == first.sums

    def test_strip_totals(self) -> None:
        display, _ = aggregate(rows_from({"account_name": "A"}), S, TODAY)
        stripped = strip_totals(display, S)
        assert len(stripped) == 1
        assert not any(is_totals_row(r, S) for r in stripped)
