"""Debtor payment score: a 0-100 rating of payment behaviour with a breakdown."""

from dataclasses import asdict, dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

import structlog

from arcollect.aging import days_past_due, today_utc
from arcollect.backend import BackendClient, eq
from arcollect.models import InvoiceStatus, to_date, to_decimal

logger = structlog.get_logger(__name__)

BASE_SCORE = 80
EMPTY_HISTORY_SCORE = 50


class DebtorNotFoundError(LookupError):
    """The debtor does not exist on the caller's account."""


# (max average days to pay, points, label); past the last row is -30 "very poor"
_DAYS_TO_PAY_BANDS: tuple[tuple[float, int, str], ...] = (
    (5, 10, "excellent"),
    (15, 0, "good"),
    (30, -10, "fair"),
    (60, -20, "poor"),
)


@dataclass
class AgingMix:
    """Share of the open balance per bucket, in percent."""

    current_pct: float = 0.0
    dpd_1_30_pct: float = 0.0
    dpd_31_60_pct: float = 0.0
    dpd_61_90_pct: float = 0.0
    dpd_91_120_pct: float = 0.0
    dpd_121_plus_pct: float = 0.0


@dataclass
class PaymentScore:
    debtor_id: str
    payment_score: int
    payment_risk_tier: str
    avg_days_to_pay: float | None
    max_days_past_due: int
    open_invoices_count: int
    disputed_invoices_count: int
    in_payment_plan_invoices_count: int
    written_off_invoices_count: int
    aging_mix: AgingMix = field(default_factory=AgingMix)
    breakdown: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_debtor_update(self) -> dict[str, Any]:
        """Column values written back onto the debtor row."""
        mix = self.aging_mix
        return {
            "payment_score": self.payment_score,
            "payment_risk_tier": self.payment_risk_tier,
            "avg_days_to_pay": self.avg_days_to_pay,
            "max_days_past_due": self.max_days_past_due,
            "open_invoices_count": self.open_invoices_count,
            "disputed_invoices_count": self.disputed_invoices_count,
            "in_payment_plan_invoices_count": self.in_payment_plan_invoices_count,
            "written_off_invoices_count": self.written_off_invoices_count,
            "aging_mix_current_pct": mix.current_pct,
            "aging_mix_1_30_pct": mix.dpd_1_30_pct,
            "aging_mix_31_60_pct": mix.dpd_31_60_pct,
            "aging_mix_61_90_pct": mix.dpd_61_90_pct,
            "aging_mix_91_120_pct": mix.dpd_91_120_pct,
            "aging_mix_121_plus_pct": mix.dpd_121_plus_pct,
            "payment_score_last_calculated": datetime.now(UTC).isoformat(),
        }


def risk_tier(score: int) -> str:
    if score >= 80:
        return "low"
    if score >= 50:
        return "medium"
    return "high"


def _aging_mix(open_invoices: list[dict[str, Any]], today: date) -> tuple[AgingMix, int]:
    totals = {
        "current": Decimal("0"),
        "dpd_1_30": Decimal("0"),
        "dpd_31_60": Decimal("0"),
        "dpd_61_90": Decimal("0"),
        "dpd_91_120": Decimal("0"),
        "dpd_121_plus": Decimal("0"),
    }
    max_dpd = 0
    for invoice in open_invoices:
        dpd = days_past_due(invoice.get("due_date"), today)
        max_dpd = max(max_dpd, dpd)
        amount = to_decimal(invoice.get("amount"))
        if dpd < 0:
            totals["current"] += amount
        elif dpd <= 30:
            totals["dpd_1_30"] += amount
        elif dpd <= 60:
            totals["dpd_31_60"] += amount
        elif dpd <= 90:
            totals["dpd_61_90"] += amount
        elif dpd <= 120:
            totals["dpd_91_120"] += amount
        else:
            totals["dpd_121_plus"] += amount

    outstanding = sum(totals.values(), Decimal("0"))
    if outstanding <= 0:
        return AgingMix(), max_dpd

    def pct(key: str) -> float:
        return float(totals[key] / outstanding * 100)

    return (
        AgingMix(
            current_pct=pct("current"),
            dpd_1_30_pct=pct("dpd_1_30"),
            dpd_31_60_pct=pct("dpd_31_60"),
            dpd_61_90_pct=pct("dpd_61_90"),
            dpd_91_120_pct=pct("dpd_91_120"),
            dpd_121_plus_pct=pct("dpd_121_plus"),
        ),
        max_dpd,
    )


def calculate_payment_score(
    debtor_id: str, invoices: list[dict[str, Any]], today: date | None = None
) -> PaymentScore:
    """Score a debtor from its full invoice history.

    Starts at 80 and adjusts for average days to pay, the aging mix of the
    open balance, disputes, payment plans and write-offs. The result is
    clamped to 0-100.
    """
    today = today or today_utc()
    if not invoices:
        return PaymentScore(
            debtor_id=debtor_id,
            payment_score=EMPTY_HISTORY_SCORE,
            payment_risk_tier=risk_tier(EMPTY_HISTORY_SCORE),
            avg_days_to_pay=None,
            max_days_past_due=0,
            open_invoices_count=0,
            disputed_invoices_count=0,
            in_payment_plan_invoices_count=0,
            written_off_invoices_count=0,
            breakdown=["No invoice history available"],
        )

    score = BASE_SCORE
    breakdown: list[str] = []

    paid_delays = []
    for invoice in invoices:
        paid, due = to_date(invoice.get("paid_date")), to_date(invoice.get("due_date"))
        if invoice.get("status") == InvoiceStatus.PAID.value and paid and due:
            paid_delays.append((paid - due).days)

    avg_days_to_pay: float | None = None
    if paid_delays:
        avg_days_to_pay = sum(paid_delays) / len(paid_delays)
        for limit, points, label in _DAYS_TO_PAY_BANDS:
            if avg_days_to_pay <= limit:
                break
        else:
            points, label = -30, "very poor"
        score += points
        impact = "no impact" if points == 0 else f"{points:+d} points"
        breakdown.append(f"Average days to pay: {avg_days_to_pay:.1f} ({label} - {impact})")

    open_invoices = [
        inv
        for inv in invoices
        if inv.get("status") in (InvoiceStatus.OPEN.value, InvoiceStatus.IN_PAYMENT_PLAN.value)
    ]
    mix, max_dpd = _aging_mix(open_invoices, today)

    if mix.current_pct > 70:
        score += 10
        breakdown.append(f"{mix.current_pct:.0f}% of balance is current (+10 points)")
    mid_pct = mix.dpd_31_60_pct + mix.dpd_61_90_pct
    if mid_pct > 30:
        score -= 10
        breakdown.append(f"{mid_pct:.0f}% of balance is 31+ days past due (-10 points)")
    if mix.dpd_61_90_pct + mix.dpd_91_120_pct + mix.dpd_121_plus_pct > 50:
        score -= 20
        breakdown.append("Over 50% of balance is 61+ days past due (-20 points)")

    statuses = [inv.get("status") for inv in invoices]
    disputed = statuses.count(InvoiceStatus.DISPUTED.value)
    in_plan = statuses.count(InvoiceStatus.IN_PAYMENT_PLAN.value)
    written_off = statuses.count(InvoiceStatus.CANCELED.value)

    if disputed >= 2:
        score -= 10
        breakdown.append(f"{disputed} disputed invoices (-10 points)")
    elif disputed == 1:
        breakdown.append("1 disputed invoice (monitored)")
    if in_plan > 0:
        score += 5
        breakdown.append(f"{in_plan} invoice(s) in payment plan (+5 points)")
    if written_off > 0:
        score -= 15
        breakdown.append(f"{written_off} written-off invoice(s) (-15 points)")

    score = max(0, min(100, score))
    return PaymentScore(
        debtor_id=debtor_id,
        payment_score=round(score),
        payment_risk_tier=risk_tier(score),
        avg_days_to_pay=avg_days_to_pay,
        max_days_past_due=max_dpd,
        open_invoices_count=len(open_invoices),
        disputed_invoices_count=disputed,
        in_payment_plan_invoices_count=in_plan,
        written_off_invoices_count=written_off,
        aging_mix=mix,
        breakdown=breakdown,
    )


class PaymentScoreService:
    """Recalculates payment scores and stores them on debtor rows."""

    def __init__(self, backend: BackendClient):
        self._backend = backend

    async def recalculate(
        self,
        user_id: str,
        debtor_id: str | None = None,
        all_debtors: bool = False,
        today: date | None = None,
    ) -> list[PaymentScore]:
        """Score one debtor or every debtor of an account.

        Only debtors owned by ``user_id`` are read or written.

        Raises:
            ValueError: If neither a debtor nor ``all_debtors`` is given.
            DebtorNotFoundError: If ``debtor_id`` is not one of the account's debtors.
        """
        if all_debtors:
            rows = await self._backend.select(
                "debtors", columns="id", filters=[eq("user_id", user_id)]
            )
            debtor_ids = [row["id"] for row in rows]
        elif debtor_id:
            debtor = await self._backend.select_one(
                "debtors", columns="id", filters=[eq("id", debtor_id), eq("user_id", user_id)]
            )
            if debtor is None:
                raise DebtorNotFoundError(f"Debtor {debtor_id} not found")
            debtor_ids = [debtor["id"]]
        else:
            raise ValueError("Either debtor_id or recalculate_all must be provided")

        results = []
        for d_id in debtor_ids:
            invoices = await self._backend.select(
                "invoices", filters=[eq("debtor_id", d_id), eq("user_id", user_id)]
            )
            score = calculate_payment_score(d_id, invoices, today)
            await self._backend.update(
                "debtors",
                score.to_debtor_update(),
                filters=[eq("id", d_id), eq("user_id", user_id)],
            )
            results.append(score)

        logger.info("payment_scores_recalculated", user_id=user_id, debtors=len(results))
        return results
