"""Tests for drafting prompt construction."""

from arcollect.commands import ParsedCommand
from arcollect.drafting.prompts import (
    build_system_prompt,
    build_task_context,
    build_user_prompt,
    split_subject,
)
from arcollect.models import Channel, CommandAction
from arcollect.personas import get_persona


class TestSystemPrompt:
    """Tests for build_system_prompt."""

    def test_persona_identity_and_rules(self):
        """Test the prompt carries persona, business and DPD."""
        prompt = build_system_prompt(get_persona("katy"), "Bright Co", 75)

        assert prompt.startswith("You are Katy, an AI collections assistant representing Bright Co.")
        assert "Your tone is: Serious and focused" in prompt
        assert get_persona("katy").guidelines in prompt
        assert "appropriate for 75 days past due" in prompt
        assert "TONE INTENSITY ADJUSTMENT" not in prompt

    def test_tone_modifier_appended(self):
        """Test non-standard intensities add adjustment instructions."""
        prompt = build_system_prompt(get_persona("sam"), "Bright Co", 5, tone_intensity=1)
        assert "MUCH SOFTER" in prompt

    def test_open_tasks_included(self):
        """Test open debtor requests are listed."""
        tasks = [{"task_type": "w9_request", "summary": "Needs a W9", "recommended_action": "Send W9"}]

        prompt = build_system_prompt(get_persona("sam"), "Bright Co", 5, tasks)

        assert "- W9 tax form request: Needs a W9 (Recommended: Send W9)" in prompt
        assert "You MUST acknowledge" in prompt


class TestTaskContext:
    """Tests for build_task_context."""

    def test_empty(self):
        """Test no tasks produce no context."""
        assert build_task_context([]) == ""

    def test_unknown_type_and_defaults(self):
        """Test unknown task types fall back to their raw name."""
        context = build_task_context([{"task_type": "custom_thing"}, {}])

        assert "- custom_thing: Collection task" in context
        assert "- follow_up: Collection task" in context


class TestUserPrompt:
    """Tests for build_user_prompt."""

    def test_email_prompt(self):
        """Test the invoice facts and subject instruction."""
        parsed = ParsedCommand(action=CommandAction.REMIND_CUSTOMER, channel=Channel.EMAIL)
        invoice = {"invoice_number": "1042", "amount": 1500, "due_date": "2026-02-01"}
        debtor = {"company_name": "Acme Corp", "email": "ap@acme.test"}

        prompt = build_user_prompt(parsed, invoice, debtor, 42)

        lines = prompt.splitlines()
        assert lines[0] == "Generate a email message for:"
        assert "Invoice: #1042" in lines
        assert "Amount: $1,500.00" in lines
        assert "Due Date: February 1, 2026" in lines
        assert "Days Past Due: 42" in lines
        assert "Customer: Acme Corp" in lines
        assert "Email: ap@acme.test" in lines
        assert "Action requested: remind_customer" in lines
        assert lines[-1] == "Include a subject line."

    def test_sms_prompt(self):
        """Test SMS prompts ask for a short message."""
        parsed = ParsedCommand(action=CommandAction.DRAFT_MESSAGE, channel=Channel.SMS)

        prompt = build_user_prompt(parsed, {"invoice_number": "7"}, {}, 3)

        assert "Keep it under 160 characters for SMS." in prompt
        assert "Customer: Customer" in prompt
        assert "Email: unknown" in prompt


class TestSplitSubject:
    """Tests for split_subject."""

    def test_subject_extracted(self):
        """Test a leading subject line is split from the body."""
        subject, body = split_subject("Subject: Quick note\n\nHi Acme,\nPlease pay.", Channel.EMAIL)

        assert subject == "Quick note"
        assert body == "Hi Acme,\nPlease pay."

    def test_markdown_subject(self):
        """Test bolded subject labels."""
        subject, body = split_subject("**Subject:** Invoice 1042\nBody", Channel.EMAIL)

        assert subject == "Invoice 1042"
        assert body == "Body"

    def test_no_subject(self):
        """Test content without a subject line."""
        assert split_subject("  Just a body  ", Channel.EMAIL) == (None, "Just a body")

    def test_sms_never_has_subject(self):
        """Test SMS content is returned whole."""
        assert split_subject("Subject: x\nbody", Channel.SMS) == (None, "Subject: x\nbody")
