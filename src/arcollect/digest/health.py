"""Collections health score: a weighted 0-100 rating of an AR portfolio.

Weights:
    40% aging concentration
    30% days-past-due distribution
    20% collection trend
    10% high-risk exposure
"""

from dataclasses import dataclass
from decimal import Decimal

from arcollect.digest.metrics import ARMetrics, HighRiskMetrics, PaymentMetrics, round_half_up

AGING_WEIGHT = 0.40
DPD_WEIGHT = 0.30
TREND_WEIGHT = 0.20
RISK_WEIGHT = 0.10

# Representative days past due for each bucket
_BUCKET_DPD = {
    "current": 0,
    "dpd_1_30": 15,
    "dpd_31_60": 45,
    "dpd_61_90": 75,
    "dpd_91_120": 105,
    "dpd_120_plus": 150,
}


@dataclass(frozen=True)
class HealthScore:
    score: int
    label: str
    aging_score: float
    dpd_score: float
    trend_score: float
    risk_score: float


def health_label(score: int) -> str:
    if score < 40:
        return "Critical"
    if score < 55:
        return "At Risk"
    if score < 70:
        return "Needs Attention"
    if score < 85:
        return "Caution"
    return "Healthy"


def aging_concentration_score(ar: ARMetrics) -> float:
    """100 minus up to 20 points each for 120+, 90+ and 60+ concentration."""
    score = 100.0
    total = float(ar.total)
    if total > 0:
        ar_120 = float(ar.dpd_120_plus)
        ar_90 = float(ar.dpd_91_120) + ar_120
        ar_60 = float(ar.dpd_61_90) + ar_90
        score -= min(20.0, ar_120 / total * 100 * 0.4)
        score -= min(20.0, ar_90 / total * 100 * 0.3)
        score -= min(20.0, ar_60 / total * 100 * 0.2)
    return max(0.0, score)


def dpd_distribution_score(ar: ARMetrics) -> float:
    """Falls linearly to 0 as the balance-weighted DPD reaches 150."""
    total = float(ar.total)
    if total <= 0:
        return 100.0
    weighted = sum(float(getattr(ar, name)) * dpd for name, dpd in _BUCKET_DPD.items()) / total
    return max(0.0, 100 - weighted / 150 * 100)


def collection_trend_score(payments: PaymentMetrics) -> float:
    last = payments.collected_last_7_days
    prev = payments.collected_prev_7_days
    if prev > 0:
        ratio = last / prev
        if ratio >= Decimal("1.2"):
            return 100.0
        if ratio >= 1:
            return 85.0
        if ratio >= Decimal("0.8"):
            return 60.0
        if ratio >= Decimal("0.5"):
            return 40.0
        return 20.0
    if last > 0:
        return 100.0
    return 70.0


def risk_exposure_score(ar: ARMetrics, high_risk: HighRiskMetrics) -> float:
    total = float(ar.total)
    if total <= 0:
        return 100.0
    return max(0.0, 100 - float(high_risk.ar_outstanding) / total * 100)


def compute_health_score(
    ar: ARMetrics, payments: PaymentMetrics, high_risk: HighRiskMetrics
) -> HealthScore:
    aging = aging_concentration_score(ar)
    dpd = dpd_distribution_score(ar)
    trend = collection_trend_score(payments)
    risk = risk_exposure_score(ar, high_risk)
    score = round_half_up(
        aging * AGING_WEIGHT + dpd * DPD_WEIGHT + trend * TREND_WEIGHT + risk * RISK_WEIGHT
    )
    return HealthScore(
        score=score,
        label=health_label(score),
        aging_score=aging,
        dpd_score=dpd,
        trend_score=trend,
        risk_score=risk,
    )
