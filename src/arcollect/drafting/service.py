"""Turns a free-text persona command into a pending AI draft."""

from datetime import date
from typing import Any

import structlog

from arcollect.aging import clamped_days_past_due
from arcollect.backend import BackendClient, eq, in_
from arcollect.clients import LLMClient
from arcollect.commands import parse_command
from arcollect.drafting.prompts import build_system_prompt, build_user_prompt, split_subject
from arcollect.drafting.templates import TemplateContext, clean_and_replace, clean_subject_line
from arcollect.models import ACTIVE_TASK_STATUSES
from arcollect.personas import resolve_persona
from arcollect.rate_limit import RateLimiter, RateLimitResult

logger = structlog.get_logger(__name__)

DEFAULT_BUSINESS_NAME = "Your Business"


class CommandError(Exception):
    """A command failure that is reported back to the caller as-is."""

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        rate_limit: RateLimitResult | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.rate_limit = rate_limit


class PersonaCommandProcessor:
    """Drafts a collection message in a persona's voice for one invoice.

    The draft is stored as ``pending_approval``; nothing is sent.
    """

    def __init__(
        self,
        backend: BackendClient,
        llm: LLMClient,
        rate_limiter: RateLimiter,
        portal_base_url: str = "",
    ):
        self._backend = backend
        self._llm = llm
        self._rate_limiter = rate_limiter
        self._portal_base_url = portal_base_url

    async def process(
        self,
        user_id: str,
        command: str,
        context_invoice_id: str | None = None,
        context_type: str | None = None,
        tone_intensity: int = 3,
        today: date | None = None,
    ) -> dict[str, Any]:
        """Run a command end to end.

        Returns:
            ``{"success", "draft", "persona", "invoiceNumber"}``.

        Raises:
            CommandError: 429 when rate limited, 400 when no invoice is
                given, 404 when the invoice does not belong to the user.
            LLMError: If the model call fails.
            BackendError: If the draft cannot be stored.
        """
        log = logger.bind(user_id=user_id)

        limit = await self._rate_limiter.check(user_id, "ai_command")
        if not limit.allowed:
            log.warning("command_rate_limited", blocked_until=limit.blocked_until)
            raise CommandError(
                limit.message or "Rate limit exceeded. Please try again later.",
                status_code=429,
                rate_limit=limit,
            )

        if not 1 <= tone_intensity <= 5:
            raise CommandError("Tone intensity must be between 1 and 5")

        parsed = parse_command(command, context_invoice_id)
        log.info(
            "command_parsed",
            action=parsed.action.value,
            channel=parsed.channel.value,
            persona=parsed.persona_name,
            invoice_number=parsed.invoice_number,
        )
        if not parsed.invoice_number:
            raise CommandError("Please specify an invoice number or select an invoice")

        invoice = await self._backend.select_one(
            "invoices",
            filters=[eq("invoice_number", parsed.invoice_number), eq("user_id", user_id)],
        )
        if invoice is None:
            raise CommandError(f"Invoice #{parsed.invoice_number} not found", status_code=404)

        debtor: dict[str, Any] = {}
        if invoice.get("debtor_id"):
            debtor = (
                await self._backend.select_one(
                    "debtors",
                    columns="id, name, email, company_name",
                    filters=[eq("id", invoice["debtor_id"])],
                )
                or {}
            )

        dpd = clamped_days_past_due(invoice.get("due_date"), today)
        persona = resolve_persona(dpd, parsed.persona_name)

        profile = await self._backend.select_one(
            "profiles", columns="business_name, email", filters=[eq("id", user_id)]
        )
        business_name = (profile or {}).get("business_name") or DEFAULT_BUSINESS_NAME
        branding = (
            await self._backend.select_one("branding_settings", filters=[eq("user_id", user_id)])
            or {}
        )

        open_tasks = await self._backend.select(
            "collection_tasks",
            filters=[
                eq("user_id", user_id),
                eq("invoice_id", invoice["id"]),
                in_("status", ACTIVE_TASK_STATUSES),
            ],
            order="priority.desc",
        )

        system_prompt = build_system_prompt(
            persona, business_name, dpd, open_tasks, tone_intensity=tone_intensity
        )
        user_prompt = build_user_prompt(parsed, invoice, debtor, dpd)
        response = await self._llm.generate(
            system_prompt, [{"role": "user", "content": user_prompt}]
        )

        subject, body = split_subject(response.content, parsed.channel)
        ctx = TemplateContext(
            invoice=invoice,
            debtor=debtor,
            branding={"business_name": business_name, **branding},
            persona_name=persona.name,
            days_past_due=dpd,
            portal_base_url=self._portal_base_url,
        )
        body = clean_and_replace(body, ctx)
        if subject is not None:
            subject = clean_subject_line(subject, ctx)

        persona_row = await self._backend.select_one(
            "ai_agent_personas", columns="id", filters=[eq("name", persona.name)]
        )
        draft = await self._backend.insert(
            "ai_drafts",
            {
                "user_id": user_id,
                "invoice_id": invoice["id"],
                "channel": parsed.channel.value,
                "subject": subject,
                "message_body": body,
                "status": "pending_approval",
                "step_number": 1,
                "days_past_due": dpd,
                "agent_persona_id": (persona_row or {}).get("id"),
            },
        )

        await self._backend.insert(
            "ai_command_logs",
            {
                "user_id": user_id,
                "command_text": command,
                "persona_name": persona.name,
                "invoice_id": invoice["id"],
                "draft_id": draft.get("id"),
                "context_type": context_type,
            },
        )

        log.info(
            "draft_created",
            draft_id=draft.get("id"),
            persona=persona.name,
            invoice_number=invoice.get("invoice_number"),
            days_past_due=dpd,
        )
        return {
            "success": True,
            "draft": draft,
            "persona": persona.name,
            "invoiceNumber": invoice.get("invoice_number"),
        }
