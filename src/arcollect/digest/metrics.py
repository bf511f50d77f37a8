"""Pure aggregations behind the daily collections digest.

Every function here takes rows already fetched from the backend and returns
plain dataclasses, so the runner owns all I/O.
"""

import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from arcollect.models import AgingBucket, outstanding_amount, to_date, to_decimal

HIGH_PRIORITY_LEVELS = ("high", "critical")
HIGH_PRIORITY_LIMIT = 5
HIGH_RISK_BUCKETS = (
    AgingBucket.DPD_61_90.value,
    AgingBucket.DPD_91_120.value,
    AgingBucket.DPD_121_150.value,
    AgingBucket.DPD_150_PLUS.value,
)
PAYMENT_TRANSACTION_TYPES = ("payment", "credit")
PAYMENT_TRENDS = ("Improving", "Stable", "Declining")


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values, unlike ``round``."""
    return math.floor(value + 0.5)


@dataclass
class TaskMetrics:
    open_tasks_count: int = 0
    overdue_tasks_count: int = 0
    tasks_created_today: int = 0
    high_priority_tasks: list[dict[str, Any]] = field(default_factory=list)


def select_high_priority_tasks(tasks: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """First five high or critical tasks, in backend order."""
    picked = [t for t in tasks if t.get("priority") in HIGH_PRIORITY_LEVELS]
    return picked[:HIGH_PRIORITY_LIMIT]


def compute_task_metrics(
    tasks: list[dict[str, Any]],
    today: date,
    debtor_names: dict[str, str] | None = None,
) -> TaskMetrics:
    """Count open work and enrich the high-priority tasks for the email."""
    debtor_names = debtor_names or {}
    overdue = 0
    created_today = 0
    for task in tasks:
        due = to_date(task.get("due_date"))
        if due is not None and due < today:
            overdue += 1
        created = to_date(task.get("created_at"))
        if created is not None and created >= today:
            created_today += 1

    enriched = [
        {
            "summary": task.get("summary") or "Collection Task",
            "priority": task.get("priority"),
            "debtorName": debtor_names.get(task.get("debtor_id") or "", "Unknown Account"),
            "taskType": task.get("task_type") or "follow_up",
            "dueDate": task.get("due_date"),
        }
        for task in select_high_priority_tasks(tasks)
    ]
    return TaskMetrics(
        open_tasks_count=len(tasks),
        overdue_tasks_count=overdue,
        tasks_created_today=created_today,
        high_priority_tasks=enriched,
    )


@dataclass
class ARMetrics:
    """Outstanding balance split by aging bucket."""

    total: Decimal = Decimal("0")
    current: Decimal = Decimal("0")
    dpd_1_30: Decimal = Decimal("0")
    dpd_31_60: Decimal = Decimal("0")
    dpd_61_90: Decimal = Decimal("0")
    dpd_91_120: Decimal = Decimal("0")
    dpd_120_plus: Decimal = Decimal("0")


_BUCKET_FIELDS = {
    AgingBucket.CURRENT.value: "current",
    AgingBucket.DPD_1_30.value: "dpd_1_30",
    AgingBucket.DPD_31_60.value: "dpd_31_60",
    AgingBucket.DPD_61_90.value: "dpd_61_90",
    AgingBucket.DPD_91_120.value: "dpd_91_120",
    AgingBucket.DPD_121_150.value: "dpd_120_plus",
    AgingBucket.DPD_150_PLUS.value: "dpd_120_plus",
}


def compute_ar_metrics(invoices: list[dict[str, Any]]) -> ARMetrics:
    """Sum outstanding balances per bucket.

    Invoices without a known bucket still count toward the total.
    """
    metrics = ARMetrics()
    for invoice in invoices:
        amount = outstanding_amount(invoice)
        metrics.total += amount
        name = _BUCKET_FIELDS.get(invoice.get("aging_bucket") or "")
        if name:
            setattr(metrics, name, getattr(metrics, name) + amount)
    return metrics


@dataclass
class PaymentMetrics:
    collected_today: Decimal = Decimal("0")
    collected_last_7_days: Decimal = Decimal("0")
    collected_prev_7_days: Decimal = Decimal("0")
    trend: str = "flat"


def payment_window_start(today: date) -> date:
    """Earliest transaction date the payment metrics look at."""
    return today - timedelta(days=14)


def collection_trend(last_7: Decimal, prev_7: Decimal) -> str:
    if last_7 > prev_7 * Decimal("1.1"):
        return "up"
    if last_7 < prev_7 * Decimal("0.9"):
        return "down"
    return "flat"


def compute_payment_metrics(transactions: list[dict[str, Any]], today: date) -> PaymentMetrics:
    """Bucket payment and credit transactions into today and two 7-day windows.

    The last-7-days window includes today; the previous window is the seven
    days before it.
    """
    last_start = today - timedelta(days=7)
    prev_start = payment_window_start(today)
    metrics = PaymentMetrics()

    for txn in transactions:
        if txn.get("transaction_type") not in PAYMENT_TRANSACTION_TYPES:
            continue
        txn_date = to_date(txn.get("transaction_date"))
        if txn_date is None:
            continue
        amount = to_decimal(txn.get("amount"))
        if txn_date >= today:
            metrics.collected_today += amount
        if txn_date >= last_start:
            metrics.collected_last_7_days += amount
        elif txn_date >= prev_start:
            metrics.collected_prev_7_days += amount

    metrics.trend = collection_trend(metrics.collected_last_7_days, metrics.collected_prev_7_days)
    return metrics


@dataclass
class HighRiskMetrics:
    customers_count: int = 0
    ar_outstanding: Decimal = Decimal("0")


def compute_high_risk(invoices: list[dict[str, Any]]) -> HighRiskMetrics:
    """Debtors with any invoice 61+ days past due, and that invoice balance."""
    risky = [inv for inv in invoices if inv.get("aging_bucket") in HIGH_RISK_BUCKETS]
    debtors = {inv["debtor_id"] for inv in risky if inv.get("debtor_id")}
    return HighRiskMetrics(
        customers_count=len(debtors),
        ar_outstanding=sum((outstanding_amount(inv) for inv in risky), Decimal("0")),
    )


@dataclass
class PaydexPortfolio:
    avg_score: int | None = None
    avg_rating: str | None = None
    prompt_payers: int = 0
    slow_payers: int = 0
    delinquent: int = 0
    avg_payment_trend: str = "Stable"
    total_credit_limit_recommended: Decimal = Decimal("0")
    summary: dict[str, Any] | None = None


def paydex_rating(score: int) -> str:
    if score >= 80:
        return "Prompt"
    if score >= 70:
        return "Slow 1-15"
    if score >= 60:
        return "Slow 16-30"
    if score >= 50:
        return "Slow 31-60"
    if score >= 40:
        return "Slow 61-90"
    if score >= 20:
        return "Slow 91+"
    return "Severely Delinquent"


def _majority_trend(debtors: list[dict[str, Any]]) -> str:
    counts = Counter(
        d.get("payment_trend") for d in debtors if d.get("payment_trend") in PAYMENT_TRENDS
    )
    declining, improving, stable = counts["Declining"], counts["Improving"], counts["Stable"]
    if declining > improving and declining > stable:
        return "Declining"
    if improving > declining and improving > stable:
        return "Improving"
    return "Stable"


def compute_paydex_portfolio(debtors: list[dict[str, Any]]) -> PaydexPortfolio:
    """Portfolio view over debtors that carry a PAYDEX score."""
    scored = [d for d in debtors if d.get("paydex_score") is not None]
    if not scored:
        return PaydexPortfolio()

    total = len(scored)
    avg_score = round_half_up(sum(float(d["paydex_score"]) for d in scored) / total)
    portfolio = PaydexPortfolio(
        avg_score=avg_score,
        avg_rating=paydex_rating(avg_score),
        avg_payment_trend=_majority_trend(scored),
    )

    ar_at_risk = Decimal("0")
    for debtor in scored:
        score = float(debtor["paydex_score"])
        if score >= 80:
            portfolio.prompt_payers += 1
        elif score >= 50:
            portfolio.slow_payers += 1
        else:
            portfolio.delinquent += 1
            ar_at_risk += to_decimal(debtor.get("total_open_balance"))
        portfolio.total_credit_limit_recommended += to_decimal(
            debtor.get("credit_limit_recommendation")
        )

    portfolio.summary = {
        "total_accounts_scored": total,
        "prompt_payers_pct": round_half_up(portfolio.prompt_payers / total * 100),
        "slow_payers_pct": round_half_up(portfolio.slow_payers / total * 100),
        "delinquent_pct": round_half_up(portfolio.delinquent / total * 100),
        "avg_score": avg_score,
        "rating": portfolio.avg_rating,
        "trend": portfolio.avg_payment_trend,
        "total_ar_at_risk": float(ar_at_risk),
    }
    return portfolio
