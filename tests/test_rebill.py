"""Unit tests for rebill status classification."""

from datetime import date

import pytest

from metricsnap.pipeline.rebill import (
    MISSING_REBILL_DATE,
    NOT_APPLICABLE,
    next_rebill_date,
    parse_rebill_date,
    rebill_status,
    upcoming_rebill,
)

TODAY = date(2026, 10, 16)


class TestRebillStatus:
    @pytest.mark.parametrize(
        "revenue, spend, roas",
        [("Could not retrieve", 5000, 3.0), (12000, 0, 3.0), (12000, 5000, None)],
    )
    def test_missing_or_zero_inputs(self, revenue, spend, roas) -> None:
        assert rebill_status(revenue, spend, roas, "2026-10-01", TODAY) == NOT_APPLICABLE

    def test_first_tier_before_next_date(self) -> None:
        # Next rebill on 2026-11-01
        assert rebill_status(10000, 3001, 2.7, "2026-10-01", TODAY) == "rebillable next date"

    def test_second_tier_qualifies_with_lower_roas(self) -> None:
        assert rebill_status(20000, 3500, 2.3, "2026-10-01", TODAY) == "rebillable next date"

    def test_due_today(self) -> None:
        assert rebill_status("15,000", "4,000", "3.1", "2026-09-15", TODAY) == "rebillable"

    def test_overdue(self) -> None:
        assert rebill_status(15000, 4000, 3.1, "2026-08-01", TODAY) == "overdue"

    def test_spend_must_exceed_minimum(self) -> None:
        assert rebill_status(15000, 3000, 3.1, "2026-10-01", TODAY) == "soon to be"

    def test_soon_to_be_and_not_rebillable(self) -> None:
        assert rebill_status(6601, 1000, 1.5, "2026-10-01", TODAY) == "soon to be"
        assert rebill_status(6600, 1000, 1.5, "2026-10-01", TODAY) == "not rebillable"

    def test_qualifying_account_without_rebill_date(self) -> None:
        assert rebill_status(15000, 4000, 3.1, None, TODAY) == MISSING_REBILL_DATE


class TestDates:
    def test_parse(self) -> None:
        assert parse_rebill_date("2026-09-15") == date(2026, 9, 15)
        assert parse_rebill_date("2026-09-15T00:00:00Z") == date(2026, 9, 15)
        assert parse_rebill_date("not a date") is None
        assert parse_rebill_date(None) is None

    def test_cycle_is_31_days(self) -> None:
        assert next_rebill_date(date(2026, 9, 15)) == TODAY

    def test_upcoming_rebill_only_while_waiting(self) -> None:
        assert upcoming_rebill("rebillable next date", "2026-10-01") == "2026-11-01"
        assert upcoming_rebill("rebillable", "2026-09-15") == ""
        assert upcoming_rebill("overdue", "2026-08-01") == ""
        assert upcoming_rebill("rebillable next date", None) == ""
