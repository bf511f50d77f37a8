"""Tests for aging bucket classification and the refresh job."""

from datetime import date

import pytest

from arcollect.aging import (
    AgingBucketRefresher,
    bucket_for_days,
    bucket_index,
    clamped_days_past_due,
    days_past_due,
    is_escalation,
)
from arcollect.backend import BackendError
from arcollect.models import AgingBucket


class TestBucketForDays:
    """Tests for days-past-due classification."""

    @pytest.mark.parametrize(
        "dpd,expected",
        [
            (-10, AgingBucket.CURRENT),
            (0, AgingBucket.CURRENT),
            (1, AgingBucket.DPD_1_30),
            (30, AgingBucket.DPD_1_30),
            (31, AgingBucket.DPD_31_60),
            (60, AgingBucket.DPD_31_60),
            (61, AgingBucket.DPD_61_90),
            (90, AgingBucket.DPD_61_90),
            (91, AgingBucket.DPD_91_120),
            (120, AgingBucket.DPD_91_120),
            (121, AgingBucket.DPD_121_150),
            (150, AgingBucket.DPD_121_150),
            (151, AgingBucket.DPD_150_PLUS),
            (900, AgingBucket.DPD_150_PLUS),
        ],
    )
    def test_bucket_boundaries(self, dpd, expected):
        """Test each bucket boundary is inclusive at its upper end."""
        assert bucket_for_days(dpd) == expected


class TestDaysPastDue:
    """Tests for day arithmetic."""

    def test_whole_days_from_iso_string(self):
        """Test timestamps are truncated to their date."""
        assert days_past_due("2026-03-01T23:59:00Z", date(2026, 3, 15)) == 14

    def test_future_due_date_is_negative(self):
        """Test invoices not yet due have negative DPD."""
        assert days_past_due(date(2026, 4, 1), date(2026, 3, 15)) == -17
        assert clamped_days_past_due(date(2026, 4, 1), date(2026, 3, 15)) == 0

    def test_missing_due_date_is_zero(self):
        """Test the helper treats a missing due date as not past due; the refresher skips such rows."""
        assert days_past_due(None, date(2026, 3, 15)) == 0


class TestEscalation:
    """Tests for bucket severity ordering."""

    def test_moving_to_older_bucket_is_escalation(self):
        """Test escalations only go toward older buckets."""
        assert is_escalation("dpd_1_30", "dpd_31_60")
        assert is_escalation(None, "dpd_1_30")
        assert not is_escalation("dpd_61_90", "dpd_1_30")
        assert not is_escalation("dpd_61_90", "dpd_61_90")

    def test_unknown_bucket_ranks_as_current(self):
        """Test unknown bucket values do not break ordering."""
        assert bucket_index("legacy_bucket") == 0


class TestAgingBucketRefresher:
    """Tests for the refresh job."""

    @pytest.mark.asyncio
    async def test_updates_changed_buckets_only(self, make_backend, today):
        """Test only invoices whose bucket changed are written."""
        backend = make_backend(
            {
                "invoices": [
                    {"id": "a", "due_date": "2026-03-10", "aging_bucket": "current", "status": "Open"},
                    {"id": "b", "due_date": "2026-03-10", "aging_bucket": "dpd_1_30", "status": "Open"},
                    {"id": "c", "due_date": "2026-01-01", "aging_bucket": "dpd_31_60", "status": "InPaymentPlan"},
                    {"id": "d", "due_date": "2025-01-01", "aging_bucket": None, "status": "Paid"},
                ]
            }
        )

        result = await AgingBucketRefresher(backend).run(today)

        assert result.invoices_updated == 2
        assert result.escalations == 2
        assert result.errors == 0
        rows = {r["id"]: r for r in backend.rows("invoices")}
        assert rows["a"]["aging_bucket"] == "dpd_1_30"
        assert rows["c"]["aging_bucket"] == "dpd_61_90"
        assert rows["d"]["aging_bucket"] is None
        assert "bucket_entered_at" in rows["a"]

    @pytest.mark.asyncio
    async def test_escalations_trigger_workflow_assignment(self, make_backend, today):
        """Test workflow reassignment runs once after escalations."""
        backend = make_backend(
            {"invoices": [{"id": "a", "due_date": "2026-01-01", "aging_bucket": "current", "status": "Open"}]}
        )

        await AgingBucketRefresher(backend).run(today)

        assert backend.function_calls == [("ensure-invoice-workflows", {})]

    @pytest.mark.asyncio
    async def test_no_escalation_no_workflow_call(self, make_backend, today):
        """Test de-escalations do not trigger reassignment."""
        backend = make_backend(
            {"invoices": [{"id": "a", "due_date": "2026-04-01", "aging_bucket": "dpd_1_30", "status": "Open"}]}
        )

        result = await AgingBucketRefresher(backend).run(today)

        assert result.invoices_updated == 1
        assert result.escalations == 0
        assert backend.function_calls == []

    @pytest.mark.asyncio
    async def test_pages_through_all_invoices(self, make_backend, today):
        """Test batches are fetched until a short page."""
        invoices = [
            {"id": f"inv-{i:03d}", "due_date": "2026-02-01", "aging_bucket": "current", "status": "Open"}
            for i in range(7)
        ]
        backend = make_backend({"invoices": invoices})

        result = await AgingBucketRefresher(backend, batch_size=3).run(today)

        assert result.invoices_updated == 7
        assert all(r["aging_bucket"] == "dpd_31_60" for r in backend.rows("invoices"))

    @pytest.mark.asyncio
    async def test_update_failure_counted_not_raised(self, make_backend, today, backend_error):
        """Test a failing update is counted as an error."""
        backend = make_backend(
            {"invoices": [{"id": "a", "due_date": "2026-01-01", "aging_bucket": "current", "status": "Open"}]}
        )
        backend.fail[("update", "invoices")] = backend_error

        result = await AgingBucketRefresher(backend).run(today)

        assert result.errors == 1
        assert result.invoices_updated == 0
        assert backend.function_calls == []


    @pytest.mark.asyncio
    @pytest.mark.parametrize("due_date", [None, "", "not-a-date"])
    async def test_unusable_due_date_left_untouched(self, make_backend, today, due_date):
        """Test an invoice without a readable due date keeps its bucket and counts as an error."""
        backend = make_backend(
            {
                "invoices": [
                    {"id": "a", "due_date": due_date, "aging_bucket": "dpd_91_120", "status": "Open"},
                    {"id": "b", "due_date": "2026-03-01", "aging_bucket": "current", "status": "Open"},
                ]
            }
        )

        result = await AgingBucketRefresher(backend).run(today)

        rows = {r["id"]: r for r in backend.rows("invoices")}
        assert rows["a"]["aging_bucket"] == "dpd_91_120"
        assert "bucket_entered_at" not in rows["a"]
        assert rows["b"]["aging_bucket"] == "dpd_1_30"
        assert result.errors == 1
        assert result.invoices_updated == 1

    @pytest.mark.asyncio
    async def test_unexpected_invoice_failure_isolated(self, make_backend, today):
        """Test one malformed row does not stop the rest of the batch."""
        backend = make_backend(
            {
                "invoices": [
                    {"due_date": "2026-01-01", "aging_bucket": "current", "status": "Open"},
                    {"id": "b", "due_date": "2026-03-01", "aging_bucket": "current", "status": "Open"},
                ]
            }
        )

        result = await AgingBucketRefresher(backend).run(today)

        assert result.errors == 1
        assert result.invoices_updated == 1
        assert {r.get("id"): r["aging_bucket"] for r in backend.rows("invoices")}["b"] == "dpd_1_30"
    @pytest.mark.asyncio
    async def test_bucket_changes_summary(self, make_backend, today):
        """Test transitions are grouped with counts."""
        backend = make_backend(
            {
                "invoices": [
                    {"id": "a", "due_date": "2026-03-01", "aging_bucket": "current", "status": "Open"},
                    {"id": "b", "due_date": "2026-03-02", "aging_bucket": "current", "status": "Open"},
                ]
            }
        )

        result = await AgingBucketRefresher(backend).run(today)
        payload = result.to_dict()

        assert payload["bucketChanges"] == [{"from": "current", "to": "dpd_1_30", "count": 2}]
        assert payload["message"] == "Updated 2 invoices, 2 escalations"

    @pytest.mark.asyncio
    async def test_fetch_failure_propagates(self, make_backend, today, backend_error):
        """Test a failed batch fetch aborts the job."""
        backend = make_backend()
        backend.fail[("select", "invoices")] = backend_error

        with pytest.raises(BackendError):
            await AgingBucketRefresher(backend).run(today)
