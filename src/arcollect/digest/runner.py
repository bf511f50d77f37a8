"""Daily digest job: per-user collections metrics, health score and email."""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

import structlog

from arcollect.aging import today_utc
from arcollect.backend import BackendClient, BackendError, eq, gte, in_, not_null
from arcollect.config import FlatSettings, get_settings
from arcollect.digest.email import (
    WELCOME_SUBJECT,
    DigestEmailData,
    digest_subject,
    render_digest_email,
    render_welcome_email,
)
from arcollect.digest.health import HealthScore, compute_health_score
from arcollect.digest.metrics import (
    PAYMENT_TRANSACTION_TYPES,
    ARMetrics,
    HighRiskMetrics,
    PaydexPortfolio,
    PaymentMetrics,
    TaskMetrics,
    compute_ar_metrics,
    compute_high_risk,
    compute_paydex_portfolio,
    compute_payment_metrics,
    compute_task_metrics,
    payment_window_start,
    select_high_priority_tasks,
)
from arcollect.mail import EmailDeliveryError, ResendClient
from arcollect.models import ACTIVE_TASK_STATUSES, OUTSTANDING_STATUSES

logger = structlog.get_logger(__name__)

PROFILE_COLUMNS = (
    "id, email, name, welcome_email_sent_at, daily_digest_email_enabled, "
    "subscription_status, plan_type, trial_ends_at"
)


@dataclass
class DigestRunResult:
    digests_created: list[str] = field(default_factory=list)
    emails_sent: list[str] = field(default_factory=list)
    welcome_emails_sent: list[str] = field(default_factory=list)
    failed_users: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "digestsCreated": len(self.digests_created),
            "emailsSent": len(self.emails_sent),
            "welcomeEmailsSent": len(self.welcome_emails_sent),
        }


@dataclass
class DigestMetrics:
    tasks: TaskMetrics
    ar: ARMetrics
    payments: PaymentMetrics
    high_risk: HighRiskMetrics
    paydex: PaydexPortfolio
    health: HealthScore


def digest_row(user_id: str, digest_date: date, m: DigestMetrics) -> dict[str, Any]:
    """The ``daily_digests`` row for one user and day."""
    return {
        "user_id": user_id,
        "digest_date": digest_date.isoformat(),
        "open_tasks_count": m.tasks.open_tasks_count,
        "overdue_tasks_count": m.tasks.overdue_tasks_count,
        "tasks_created_today": m.tasks.tasks_created_today,
        "total_ar_outstanding": float(m.ar.total),
        "ar_current": float(m.ar.current),
        "ar_1_30": float(m.ar.dpd_1_30),
        "ar_31_60": float(m.ar.dpd_31_60),
        "ar_61_90": float(m.ar.dpd_61_90),
        "ar_91_120": float(m.ar.dpd_91_120),
        "ar_120_plus": float(m.ar.dpd_120_plus),
        "payments_collected_today": float(m.payments.collected_today),
        "payments_collected_last_7_days": float(m.payments.collected_last_7_days),
        "payments_collected_prev_7_days": float(m.payments.collected_prev_7_days),
        "collection_trend": m.payments.trend,
        "high_risk_customers_count": m.high_risk.customers_count,
        "high_risk_ar_outstanding": float(m.high_risk.ar_outstanding),
        "health_score": m.health.score,
        "health_label": m.health.label,
        "avg_paydex_score": m.paydex.avg_score,
        "avg_paydex_rating": m.paydex.avg_rating,
        "accounts_prompt_payers": m.paydex.prompt_payers,
        "accounts_slow_payers": m.paydex.slow_payers,
        "accounts_delinquent": m.paydex.delinquent,
        "avg_payment_trend": m.paydex.avg_payment_trend,
        "total_credit_limit_recommended": float(m.paydex.total_credit_limit_recommended),
        "portfolio_risk_summary": m.paydex.summary,
        "updated_at": datetime.now(UTC).isoformat(),
    }


class DailyDigestRunner:
    """Builds and emails each user's daily collections digest.

    Users are processed one at a time; a failure for one user is logged and
    does not stop the run. Without a mailer no emails are sent.
    """

    def __init__(
        self,
        backend: BackendClient,
        mailer: ResendClient | None = None,
        settings: FlatSettings | None = None,
    ):
        self._backend = backend
        self._mailer = mailer
        self._settings = settings or get_settings()
        self._logger = logger.bind(job="daily_digest")

    async def run(
        self,
        force: bool = False,
        user_id: str | None = None,
        skip_email: bool = False,
        today: date | None = None,
    ) -> DigestRunResult:
        """Generate digests for every user with an email, or just one user.

        Raises:
            BackendError: If the user list cannot be loaded.
        """
        today = today or today_utc()
        result = DigestRunResult()
        self._logger.info(
            "digest_run_started", force=force, user_id=user_id, skip_email=skip_email
        )

        filters = [not_null("email")]
        if user_id:
            filters.append(eq("id", user_id))
        users = await self._backend.select("profiles", columns=PROFILE_COLUMNS, filters=filters)
        self._logger.info("digest_users_found", count=len(users))

        for user in users:
            try:
                await self._process_user(user, today, force, skip_email, result)
            except Exception as e:
                result.failed_users.append(user["id"])
                self._logger.error("digest_user_failed", user_id=user.get("id"), error=str(e))

        self._logger.info(
            "digest_run_completed",
            digests_created=len(result.digests_created),
            emails_sent=len(result.emails_sent),
            welcome_emails_sent=len(result.welcome_emails_sent),
            failed=len(result.failed_users),
        )
        return result

    async def _effective_account_id(self, user_id: str) -> str:
        """Team members read their owner's data."""
        try:
            account_id = await self._backend.rpc(
                "get_effective_account_id", {"p_user_id": user_id}
            )
        except BackendError as e:
            self._logger.warning("effective_account_lookup_failed", user_id=user_id, error=str(e))
            return user_id
        return account_id if isinstance(account_id, str) and account_id else user_id

    async def _process_user(
        self,
        user: dict[str, Any],
        today: date,
        force: bool,
        skip_email: bool,
        result: DigestRunResult,
    ) -> None:
        user_id = user["id"]
        log = self._logger.bind(user_id=user_id)

        account_id = await self._effective_account_id(user_id)
        log.debug("effective_account_resolved", account_id=account_id)

        if user.get("email") and not user.get("welcome_email_sent_at"):
            if await self._send_welcome(user):
                result.welcome_emails_sent.append(user_id)

        existing = await self._backend.select_one(
            "daily_digests",
            columns="id, email_sent_at",
            filters=[eq("user_id", user_id), eq("digest_date", today.isoformat())],
        )
        if existing and not force:
            log.info("digest_exists_skipping")
            return

        metrics = await self.collect_metrics(account_id, today)
        row = digest_row(user_id, today, metrics)
        if existing:
            await self._backend.update("daily_digests", row, filters=[eq("id", existing["id"])])
            log.info("digest_updated", health_score=metrics.health.score)
        else:
            await self._backend.insert("daily_digests", row)
            log.info("digest_created", health_score=metrics.health.score)
        result.digests_created.append(user_id)

        email_enabled = user.get("daily_digest_email_enabled") is not False
        already_sent = bool(existing and existing.get("email_sent_at"))
        if not user.get("email") or not email_enabled or already_sent or skip_email:
            log.info(
                "digest_email_skipped",
                disabled=not email_enabled,
                already_sent=already_sent,
                skip_email=skip_email,
            )
            return
        if self._mailer is None:
            log.warning("digest_email_not_configured")
            return

        if await self._send_digest(user, metrics, today):
            result.emails_sent.append(user_id)

    async def collect_metrics(self, account_id: str, today: date) -> DigestMetrics:
        """Load one account's rows and compute every digest figure."""
        tasks = await self._backend.select(
            "collection_tasks",
            columns="id, due_date, created_at, priority, summary, debtor_id, task_type",
            filters=[eq("user_id", account_id), in_("status", ACTIVE_TASK_STATUSES)],
        )
        debtor_ids = sorted(
            {t["debtor_id"] for t in select_high_priority_tasks(tasks) if t.get("debtor_id")}
        )
        debtor_names: dict[str, str] = {}
        if debtor_ids:
            rows = await self._backend.select(
                "debtors", columns="id, company_name", filters=[in_("id", debtor_ids)]
            )
            debtor_names = {row["id"]: row.get("company_name") or "Unknown" for row in rows}

        invoices = await self._backend.select(
            "invoices",
            columns="amount, amount_outstanding, aging_bucket, debtor_id, status",
            filters=[eq("user_id", account_id), in_("status", OUTSTANDING_STATUSES)],
        )
        transactions = await self._backend.select(
            "invoice_transactions",
            columns="amount, transaction_type, transaction_date",
            filters=[
                eq("user_id", account_id),
                in_("transaction_type", PAYMENT_TRANSACTION_TYPES),
                gte("transaction_date", payment_window_start(today).isoformat()),
            ],
        )
        scored_debtors = await self._backend.select(
            "debtors",
            columns=(
                "id, company_name, paydex_score, paydex_rating, payment_trend, "
                "credit_limit_recommendation, total_open_balance"
            ),
            filters=[eq("user_id", account_id), not_null("paydex_score")],
        )

        ar = compute_ar_metrics(invoices)
        payments = compute_payment_metrics(transactions, today)
        high_risk = compute_high_risk(invoices)
        return DigestMetrics(
            tasks=compute_task_metrics(tasks, today, debtor_names),
            ar=ar,
            payments=payments,
            high_risk=high_risk,
            paydex=compute_paydex_portfolio(scored_debtors),
            health=compute_health_score(ar, payments, high_risk),
        )

    async def _send_welcome(self, user: dict[str, Any]) -> bool:
        if self._mailer is None:
            return False
        try:
            await self._mailer.send(
                self._settings.welcome_from_address,
                user["email"],
                WELCOME_SUBJECT,
                render_welcome_email(user.get("name") or "there", self._settings.app_base_url),
                reply_to=self._settings.welcome_reply_to,
            )
            await self._backend.update(
                "profiles",
                {"welcome_email_sent_at": datetime.now(UTC).isoformat()},
                filters=[eq("id", user["id"])],
            )
        except (EmailDeliveryError, BackendError) as e:
            self._logger.error("welcome_email_failed", user_id=user["id"], error=str(e))
            return False
        self._logger.info("welcome_email_sent", user_id=user["id"])
        return True

    async def _send_digest(self, user: dict[str, Any], m: DigestMetrics, today: date) -> bool:
        assert self._mailer is not None
        data = DigestEmailData(
            name=user.get("name") or "there",
            open_tasks_count=m.tasks.open_tasks_count,
            overdue_tasks_count=m.tasks.overdue_tasks_count,
            high_priority_tasks=m.tasks.high_priority_tasks,
            total_ar_outstanding=m.ar.total,
            payments_collected_today=m.payments.collected_today,
            high_risk_ar_outstanding=m.high_risk.ar_outstanding,
            high_risk_customers_count=m.high_risk.customers_count,
            health_score=m.health.score,
            health_label=m.health.label,
            subscription_status=user.get("subscription_status"),
            plan_type=user.get("plan_type") or "free",
            trial_ends_at=user.get("trial_ends_at"),
            app_base_url=self._settings.app_base_url,
        )
        try:
            await self._mailer.send(
                self._settings.digest_from_address,
                user["email"],
                digest_subject(m.health.label, m.health.score, m.ar.total),
                render_digest_email(data, today),
            )
        except EmailDeliveryError as e:
            self._logger.error("digest_email_failed", user_id=user["id"], error=str(e))
            return False

        try:
            await self._backend.update(
                "daily_digests",
                {"email_sent_at": datetime.now(UTC).isoformat()},
                filters=[eq("user_id", user["id"]), eq("digest_date", today.isoformat())],
            )
        except BackendError as e:
            self._logger.error(
                "digest_email_sent_not_recorded", user_id=user["id"], error=str(e)
            )
        self._logger.info("digest_email_sent", user_id=user["id"])
        return True
