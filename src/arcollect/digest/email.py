"""HTML rendering for the daily digest and welcome emails."""

from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache
from typing import Any

from jinja2 import Environment, PackageLoader, select_autoescape

from arcollect.drafting.templates import format_currency
from arcollect.models import to_date

WELCOME_SUBJECT = "Welcome aboard: your collections workspace is ready"

HEALTH_COLORS = {
    "Healthy": "#22c55e",
    "Caution": "#f59e0b",
    "Needs Attention": "#fb923c",
    "At Risk": "#f97316",
    "Critical": "#ef4444",
}


@dataclass
class DigestEmailData:
    name: str
    open_tasks_count: int
    overdue_tasks_count: int
    total_ar_outstanding: Decimal
    payments_collected_today: Decimal
    high_risk_ar_outstanding: Decimal
    high_risk_customers_count: int
    health_score: int
    health_label: str
    high_priority_tasks: list[dict[str, Any]] = field(default_factory=list)
    subscription_status: str | None = None
    plan_type: str | None = "free"
    trial_ends_at: str | None = None
    app_base_url: str = ""


def subscription_banner(
    status: str | None, plan_type: str | None, trial_ends_at: str | None
) -> str | None:
    """Which account-status banner the digest shows, if any."""
    if status == "past_due":
        return "past_due"
    if status == "canceled":
        return "canceled"
    if status == "expired" or (status == "inactive" and plan_type != "free"):
        return "expired"
    if status == "trialing" and to_date(trial_ends_at) is not None:
        return "trial"
    return None


def _currency(value: Any) -> str:
    return format_currency(value)


def _short_date(value: Any) -> str:
    parsed = to_date(value)
    if parsed is None:
        return "No due date"
    return f"{parsed.strftime('%b')} {parsed.day}"


def _long_date(value: Any) -> str:
    parsed = to_date(value)
    if parsed is None:
        return ""
    return f"{parsed.strftime('%b')} {parsed.day}, {parsed.year}"


@lru_cache
def _environment() -> Environment:
    env = Environment(
        loader=PackageLoader("arcollect", "templates"),
        autoescape=select_autoescape(["html", "j2"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["currency"] = _currency
    env.filters["short_date"] = _short_date
    env.filters["long_date"] = _long_date
    return env


def render_digest_email(data: DigestEmailData, today: date | None = None) -> str:
    template = _environment().get_template("digest_email.html.j2")
    return template.render(
        **asdict(data),
        banner=subscription_banner(data.subscription_status, data.plan_type, data.trial_ends_at),
        health_color=HEALTH_COLORS.get(data.health_label, HEALTH_COLORS["Critical"]),
        today=today,
    )


def render_welcome_email(display_name: str, app_base_url: str = "") -> str:
    template = _environment().get_template("welcome_email.html.j2")
    return template.render(name=display_name or "there", app_base_url=app_base_url)


def digest_subject(health_label: str, health_score: int, total_ar: Decimal | float) -> str:
    """Subject line with the AR total rounded to whole dollars."""
    whole = Decimal(str(total_ar)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    ar = f"${whole:,}"
    return f"Daily Collections Health: {health_label} ({health_score}/100) - {ar} AR Outstanding"

