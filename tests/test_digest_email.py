"""Tests for digest and welcome email rendering."""

from decimal import Decimal

import pytest

from arcollect.digest.email import (
    DigestEmailData,
    digest_subject,
    render_digest_email,
    render_welcome_email,
    subscription_banner,
)


@pytest.fixture
def email_data():
    """Digest email data for a typical account."""
    return DigestEmailData(
        name="Jordan",
        open_tasks_count=4,
        overdue_tasks_count=2,
        total_ar_outstanding=Decimal("12345.5"),
        payments_collected_today=Decimal("250"),
        high_risk_ar_outstanding=Decimal("500"),
        high_risk_customers_count=1,
        health_score=72,
        health_label="Caution",
        high_priority_tasks=[
            {
                "summary": "Call Acme AP",
                "priority": "critical",
                "debtorName": "Acme Corp",
                "taskType": "callback_required",
                "dueDate": "2026-03-10",
            },
            {
                "summary": "Send W9",
                "priority": "high",
                "debtorName": "Globex",
                "taskType": "w9_request",
                "dueDate": None,
            },
        ],
        subscription_status="active",
        plan_type="pro",
        app_base_url="https://app.test",
    )


class TestSubscriptionBanner:
    """Tests for banner selection."""

    @pytest.mark.parametrize(
        "status,plan,trial_ends,expected",
        [
            ("past_due", "pro", None, "past_due"),
            ("canceled", "pro", None, "canceled"),
            ("expired", "free", None, "expired"),
            ("inactive", "pro", None, "expired"),
            ("inactive", "free", None, None),
            ("trialing", "pro", "2026-03-20T00:00:00Z", "trial"),
            ("trialing", "pro", None, None),
            ("active", "pro", None, None),
            (None, "free", None, None),
        ],
    )
    def test_banner(self, status, plan, trial_ends, expected):
        """Test each subscription state."""
        assert subscription_banner(status, plan, trial_ends) == expected


class TestDigestSubject:
    """Tests for the subject line."""

    def test_rounds_to_whole_dollars(self):
        """Test the AR total is rounded half up with separators."""
        subject = digest_subject("Caution", 72, Decimal("12345.5"))
        assert subject == "Daily Collections Health: Caution (72/100) - $12,346 AR Outstanding"

    def test_zero_ar(self):
        """Test an empty book."""
        assert digest_subject("Healthy", 94, 0).endswith("- $0 AR Outstanding")


class TestRenderDigestEmail:
    """Tests for the digest HTML."""

    def test_core_figures(self, email_data, today):
        """Test greeting, health pill and metric tiles."""
        html = render_digest_email(email_data, today)

        assert "Hi Jordan," in html
        assert "Caution: 72/100" in html
        assert "#f59e0b" in html
        assert "$12,345.50" in html
        assert "$250.00" in html
        assert "$500.00" in html
        assert "1 account</p>" in html
        assert "2 overdue" in html
        assert "Mar 15, 2026" in html
        assert "https://app.test/daily-digest" in html

    def test_high_priority_tasks(self, email_data, today):
        """Test tasks are listed with priority, due date and overdue marker."""
        html = render_digest_email(email_data, today)

        assert "High-Priority Tasks" in html
        assert "CRITICAL" in html
        assert "Call Acme AP" in html
        assert "Acme Corp &middot; Due Mar 10" in html
        assert "(overdue)" in html
        assert "No due date" in html

    def test_no_tasks_section_when_empty(self, email_data, today):
        """Test the task list is omitted without tasks."""
        email_data.high_priority_tasks = []

        html = render_digest_email(email_data, today)

        assert "High-Priority Tasks" not in html
        assert "(overdue)" not in html

    def test_no_banner_for_active_subscription(self, email_data, today):
        """Test active accounts get no banner."""
        assert 'class="banner' not in render_digest_email(email_data, today)

    def test_trial_banner(self, email_data, today):
        """Test trial accounts see the end date."""
        email_data.subscription_status = "trialing"
        email_data.trial_ends_at = "2026-03-20T00:00:00Z"

        html = render_digest_email(email_data, today)

        assert "Free Trial Active" in html
        assert "Mar 20, 2026" in html
        assert "https://app.test/upgrade" in html

    def test_past_due_banner(self, email_data, today):
        """Test past-due accounts are sent to billing."""
        email_data.subscription_status = "past_due"

        html = render_digest_email(email_data, today)

        assert "Payment Past Due" in html
        assert "https://app.test/billing" in html

    def test_user_content_escaped(self, email_data, today):
        """Test names and task text are HTML escaped."""
        email_data.name = "<script>x</script>"

        html = render_digest_email(email_data, today)

        assert "<script>" not in html
        assert "&lt;script&gt;" in html


class TestRenderWelcomeEmail:
    """Tests for the welcome HTML."""

    def test_greeting_and_link(self):
        """Test the greeting and dashboard link."""
        html = render_welcome_email("Jordan", "https://app.test")

        assert "Hi Jordan," in html
        assert "https://app.test/dashboard" in html

    def test_defaults(self):
        """Test a missing name and base URL."""
        html = render_welcome_email("")

        assert "Hi there," in html
        assert "/dashboard" not in html
