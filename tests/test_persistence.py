"""Tests for the metrics store and spreadsheet writes."""

from datetime import date

from sqlalchemy.exc import OperationalError
from sqlmodel import select

from metricsnap.core.field_schema import AD_INSIGHTS_SCHEMA, FINANCE_SCHEMA
from metricsnap.models.snapshot_models import SnapshotMetric
from metricsnap.pipeline.aggregator import TOTALS_LABEL, aggregate
from metricsnap.pipeline.refresh import build_rows
from metricsnap.snapshots.persistence import PersistenceAdapter, row_to_metric
from metricsnap.snapshots.state_machine import SnapshotStateMachine

TODAY = date(2026, 10, 16)


def finance_rows(*raw_rows):
    rows, _ = aggregate(build_rows(list(raw_rows), FINANCE_SCHEMA), FINANCE_SCHEMA, TODAY)
    return rows


def stored(session, snapshot_id):
    return session.exec(
        select(SnapshotMetric).where(SnapshotMetric.snapshot_id == snapshot_id)
    ).all()


class TestRowToMetric:
    def test_finance_columns(self) -> None:
        (row, _totals) = finance_rows(
            {
                "is_monitored": "Yes",
                "account_name": "Alpha",
                "pod": "North",
                "ad_spend_timeframe": "1,000",
                "shopify_revenue_timeframe": "Could not retrieve",
                "rebill_status": "overdue",
                "last_rebill_date": "2026-09-01",
                "next_rebill_date": "",
            }
        )
        metric = row_to_metric("snap-1", row, FINANCE_SCHEMA)

        assert metric.is_monitored is True
        assert metric.account_name == "Alpha"
        assert metric.pod == "North"
        assert metric.ad_spend_timeframe == 1000.0
        assert metric.shopify_revenue_timeframe is None
        assert metric.rebill_status == "overdue"
        assert metric.last_rebill_date == "2026-09-01"
        assert metric.next_rebill_date is None
        assert metric.is_error is True
        assert metric.error_detail["errors"][0]["field"] == "shopify_revenue_timeframe"

    def test_placeholder_rebill_date_is_not_stored(self) -> None:
        (row, _totals) = finance_rows(
            {"account_name": "Alpha", "last_rebill_date": "Missing rebill date"}
        )
        assert row_to_metric("snap-1", row, FINANCE_SCHEMA).last_rebill_date is None

    def test_next_rebill_date_is_stored(self) -> None:
        (row, _totals) = finance_rows(
            {
                "account_name": "Alpha",
                "rebill_status": "rebillable next date",
                "last_rebill_date": "2026-10-01",
                "next_rebill_date": "2026-11-01",
            }
        )
        assert row_to_metric("snap-1", row, FINANCE_SCHEMA).next_rebill_date == "2026-11-01"

    def test_ad_insight_columns(self) -> None:
        row = build_rows(
            [{"account_name": "Alpha", "cpc": "0.52", "hook_rate": "31.2%",
              "quality_ranking": "AVERAGE"}],
            AD_INSIGHTS_SCHEMA,
        )[0]
        metric = row_to_metric("snap-1", row, AD_INSIGHTS_SCHEMA)
        assert metric.cpc == 0.52
        assert metric.hook_rate == 31.2
        assert metric.quality_ranking == "AVERAGE"
        assert metric.is_monitored is False


class TestSaveMetrics:
    def test_totals_row_is_never_stored(self, session, clock) -> None:
        snapshot_id = SnapshotStateMachine(session, clock).start_refresh(1, "financialx").snapshot_id
        rows = finance_rows({"account_name": "A"}, {"account_name": "B"})

        result = PersistenceAdapter(session).save_metrics(snapshot_id, rows, FINANCE_SCHEMA)

        assert result.saved == 2
        assert result.error is None
        names = [m.account_name for m in stored(session, snapshot_id)]
        assert sorted(names) == ["A", "B"]
        assert TOTALS_LABEL not in names

    def test_duplicate_accounts_keep_last(self, session, clock) -> None:
        snapshot_id = SnapshotStateMachine(session, clock).start_refresh(1, "financialx").snapshot_id
        rows = build_rows(
            [
                {"account_name": "A", "ad_spend_timeframe": 1},
                {"account_name": "A", "ad_spend_timeframe": 2},
            ],
            FINANCE_SCHEMA,
        )
        PersistenceAdapter(session).save_metrics(snapshot_id, rows, FINANCE_SCHEMA)

        metrics = stored(session, snapshot_id)
        assert len(metrics) == 1
        assert metrics[0].ad_spend_timeframe == 2.0

    def test_save_replaces_previous_rows(self, session, clock) -> None:
        snapshot_id = SnapshotStateMachine(session, clock).start_refresh(1, "financialx").snapshot_id
        adapter = PersistenceAdapter(session)
        adapter.save_metrics(snapshot_id, finance_rows({"account_name": "A"}), FINANCE_SCHEMA)
        adapter.save_metrics(snapshot_id, finance_rows({"account_name": "B"}), FINANCE_SCHEMA)

        assert [m.account_name for m in stored(session, snapshot_id)] == ["B"]

    def test_store_error_is_reported_not_raised(self, session, clock, monkeypatch) -> None:
        snapshot_id = SnapshotStateMachine(session, clock).start_refresh(1, "financialx").snapshot_id

        def broken_commit():
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(session, "commit", broken_commit)
        result = PersistenceAdapter(session).save_metrics(
            snapshot_id, finance_rows({"account_name": "A"}), FINANCE_SCHEMA
        )

        assert result.saved == 0
        assert "disk I/O error" in result.error


class TestExportRows:
    async def test_totals_row_is_exported(self, session, sink) -> None:
        rows = finance_rows({"account_name": "A"})
        error = await PersistenceAdapter(session, sink).export_rows("sheet-1", rows)

        assert error is None
        sink_id, written = sink.writes[0]
        assert sink_id == "sheet-1"
        assert written[-1][FINANCE_SCHEMA.index("account_name")] == TOTALS_LABEL

    async def test_export_failure_is_returned(self, session, failing_sink) -> None:
        error = await PersistenceAdapter(session, failing_sink).export_rows(
            "sheet-1", finance_rows({"account_name": "A"})
        )
        assert error == "sheet is read-only"

    async def test_no_sink_is_a_no_op(self, session) -> None:
        assert await PersistenceAdapter(session).export_rows("sheet-1", []) is None
