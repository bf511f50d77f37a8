"""Daily collections digest: metrics, health score, email and the runner."""

from arcollect.digest.health import HealthScore, compute_health_score, health_label
from arcollect.digest.runner import DailyDigestRunner, DigestRunResult

__all__ = [
    "DailyDigestRunner",
    "DigestRunResult",
    "HealthScore",
    "compute_health_score",
    "health_label",
]
