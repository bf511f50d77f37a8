"""Aging bucket classification and the daily bucket refresh job."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

import structlog

from arcollect.backend import BackendClient, BackendError, eq, in_
from arcollect.models import AgingBucket, InvoiceStatus, to_date

logger = structlog.get_logger(__name__)

BUCKET_ORDER: tuple[AgingBucket, ...] = (
    AgingBucket.CURRENT,
    AgingBucket.DPD_1_30,
    AgingBucket.DPD_31_60,
    AgingBucket.DPD_61_90,
    AgingBucket.DPD_91_120,
    AgingBucket.DPD_121_150,
    AgingBucket.DPD_150_PLUS,
)

# Upper bound (inclusive) of each past-due bucket
_BUCKET_LIMITS: tuple[tuple[int, AgingBucket], ...] = (
    (0, AgingBucket.CURRENT),
    (30, AgingBucket.DPD_1_30),
    (60, AgingBucket.DPD_31_60),
    (90, AgingBucket.DPD_61_90),
    (120, AgingBucket.DPD_91_120),
    (150, AgingBucket.DPD_121_150),
)

REFRESH_STATUSES = (InvoiceStatus.OPEN.value, InvoiceStatus.IN_PAYMENT_PLAN.value)
BATCH_SIZE = 500
SAFETY_LIMIT = 100_000


def today_utc() -> date:
    return datetime.now(UTC).date()


def days_past_due(due_date: date | str | None, today: date | None = None) -> int:
    """Whole days between the due date and today; negative before the due date."""
    due = to_date(due_date)
    if due is None:
        return 0
    return ((today or today_utc()) - due).days


def clamped_days_past_due(due_date: date | str | None, today: date | None = None) -> int:
    return max(0, days_past_due(due_date, today))


def bucket_for_days(dpd: int) -> AgingBucket:
    """Classify a days-past-due count into its aging bucket."""
    for limit, bucket in _BUCKET_LIMITS:
        if dpd <= limit:
            return bucket
    return AgingBucket.DPD_150_PLUS


def bucket_index(bucket: str | AgingBucket | None) -> int:
    """Severity index of a bucket; unknown or missing buckets rank as current."""
    try:
        return BUCKET_ORDER.index(AgingBucket(bucket or AgingBucket.CURRENT))
    except ValueError:
        return 0


def is_escalation(old: str | AgingBucket | None, new: str | AgingBucket) -> bool:
    """True when an invoice moved into a strictly more severe bucket."""
    return bucket_index(new) > bucket_index(old)


@dataclass
class BucketChange:
    from_bucket: str | None
    to_bucket: str
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {"from": self.from_bucket, "to": self.to_bucket, "count": self.count}


@dataclass
class AgingRefreshResult:
    invoices_updated: int = 0
    escalations: int = 0
    errors: int = 0
    bucket_changes: list[BucketChange] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "invoicesUpdated": self.invoices_updated,
            "bucketChanges": [c.to_dict() for c in self.bucket_changes],
            "escalations": self.escalations,
            "errors": self.errors,
            "message": (
                f"Updated {self.invoices_updated} invoices, "
                f"{self.escalations} escalations"
            ),
        }


class AgingBucketRefresher:
    """Recomputes aging buckets for every open invoice."""

    def __init__(self, backend: BackendClient, batch_size: int = BATCH_SIZE):
        self._backend = backend
        self._batch_size = batch_size
        self._logger = logger.bind(job="aging_buckets")

    async def run(self, today: date | None = None) -> AgingRefreshResult:
        """Refresh buckets and trigger workflow reassignment on escalations.

        Raises:
            BackendError: If a batch of invoices cannot be fetched.
        """
        today = today or today_utc()
        result = AgingRefreshResult()
        changes: Counter[tuple[str | None, str]] = Counter()
        offset = 0
        processed = 0

        self._logger.info("aging_refresh_started", today=today.isoformat())

        while True:
            invoices = await self._backend.select(
                "invoices",
                columns="id, due_date, aging_bucket, user_id, status",
                filters=[in_("status", REFRESH_STATUSES)],
                order="due_date.asc",
                limit=self._batch_size,
                offset=offset,
            )
            self._logger.debug("aging_batch_fetched", offset=offset, count=len(invoices))
            if not invoices:
                break

            for invoice in invoices:
                await self._refresh_invoice(invoice, today, result, changes)
                processed += 1

            offset += self._batch_size
            if len(invoices) < self._batch_size:
                break
            if processed >= SAFETY_LIMIT:
                self._logger.warning("aging_safety_limit_reached", processed=processed)
                break

        result.bucket_changes = [
            BucketChange(from_bucket=old, to_bucket=new, count=count)
            for (old, new), count in changes.items()
        ]

        self._logger.info(
            "aging_refresh_completed",
            processed=processed,
            updated=result.invoices_updated,
            escalations=result.escalations,
            errors=result.errors,
        )

        if result.escalations > 0:
            await self._trigger_workflow_assignment()

        return result

    async def _refresh_invoice(
        self,
        invoice: dict[str, Any],
        today: date,
        result: AgingRefreshResult,
        changes: Counter[tuple[str | None, str]],
    ) -> None:
        try:
            due = to_date(invoice.get("due_date"))
            if due is None:
                self._logger.warning(
                    "invoice_due_date_invalid",
                    invoice_id=invoice.get("id"),
                    due_date=invoice.get("due_date"),
                )
                result.errors += 1
                return

            new_bucket = bucket_for_days(days_past_due(due, today)).value
            old_bucket = invoice.get("aging_bucket")
            if old_bucket == new_bucket:
                return

            await self._backend.update(
                "invoices",
                {
                    "aging_bucket": new_bucket,
                    "bucket_entered_at": datetime.now(UTC).isoformat(),
                },
                filters=[eq("id", invoice["id"])],
            )
        except Exception as e:
            self._logger.error("invoice_refresh_failed", invoice_id=invoice.get("id"), error=str(e))
            result.errors += 1
            return

        result.invoices_updated += 1
        changes[(old_bucket, new_bucket)] += 1
        if is_escalation(old_bucket, new_bucket):
            result.escalations += 1
            self._logger.info(
                "invoice_escalated",
                invoice_id=invoice.get("id"),
                from_bucket=old_bucket,
                to_bucket=new_bucket,
            )

    async def _trigger_workflow_assignment(self) -> None:
        try:
            response = await self._backend.invoke_function("ensure-invoice-workflows", {})
            self._logger.info("workflow_assignment_triggered", response=response)
        except BackendError as e:
            self._logger.error("workflow_assignment_failed", error=str(e))
