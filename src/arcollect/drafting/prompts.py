"""Prompt construction for persona-drafted collection messages."""

import re
from typing import Any

from arcollect.commands import ParsedCommand
from arcollect.drafting.templates import format_currency, format_date
from arcollect.models import Channel
from arcollect.personas import Persona, tone_modifier

SMS_MAX_CHARS = 160

# Human wording for task types raised by debtors' replies
TASK_TYPE_LABELS: dict[str, str] = {
    "w9_request": "W9 tax form request",
    "payment_plan_needed": "payment arrangement request",
    "incorrect_po": "dispute about wrong PO number",
    "dispute_charges": "dispute about incorrect charges",
    "invoice_copy_request": "request to resend invoice",
    "billing_address_update": "billing address correction needed",
    "payment_method_update": "payment details update needed",
    "service_not_delivered": "claim that service/product not received",
    "overpayment_inquiry": "question about double charge or overpayment",
    "paid_verification": "claim that invoice already paid",
    "extension_request": "request for payment deadline extension",
    "callback_required": "request for phone call or meeting",
}

_SUBJECT_LINE = re.compile(r"^\s*\**Subject:\**\s*(.+?)\s*$", re.IGNORECASE | re.MULTILINE)


def build_task_context(tasks: list[dict[str, Any]]) -> str:
    """Describe the debtor's open requests so the message addresses them."""
    if not tasks:
        return ""
    lines = []
    for task in tasks:
        task_type = task.get("task_type") or "follow_up"
        label = TASK_TYPE_LABELS.get(task_type, task_type)
        line = f"- {label}: {task.get('summary') or 'Collection task'}"
        if task.get("recommended_action"):
            line += f" (Recommended: {task['recommended_action']})"
        lines.append(line)

    return (
        "\n\nIMPORTANT CONTEXT - Customer has made the following requests/raised "
        "these issues:\n"
        + "\n".join(lines)
        + "\n\nYou MUST acknowledge and address these open items in your message. "
        "Reference them naturally and provide appropriate responses or next steps."
    )


def build_system_prompt(
    persona: Persona,
    business_name: str,
    days_past_due: int,
    open_tasks: list[dict[str, Any]] | None = None,
    tone_intensity: int = 3,
) -> str:
    rules = [
        "Act in this persona's tone and style",
        "Write as the business, using its full white-label identity",
        "NEVER mention the collections software or imply third-party collection services",
        "NEVER use threats, legal intimidation, or harassment",
        f"Keep the message compliant, professional, and appropriate for "
        f"{days_past_due} days past due",
        "Include a call to action for payment",
        "Offer a polite way for the customer to reply or resolve disputes",
        "Be concise but personable",
        "If there are open customer requests or issues, acknowledge them "
        "professionally and address them",
    ]
    prompt = (
        f"You are {persona.name}, an AI collections assistant representing {business_name}.\n\n"
        f"Your tone is: {persona.tone}\n\n"
    )
    if persona.guidelines:
        prompt += f"{persona.guidelines}\n\n"
    prompt += "Rules:\n" + "\n".join(f"- {rule}" for rule in rules)

    modifier = tone_modifier(tone_intensity).modifier
    if modifier:
        prompt += f"\n\n{modifier}"
    return prompt + build_task_context(open_tasks or [])


def build_user_prompt(
    parsed: ParsedCommand,
    invoice: dict[str, Any],
    debtor: dict[str, Any],
    days_past_due: int,
) -> str:
    customer = debtor.get("company_name") or debtor.get("name") or "Customer"
    currency = invoice.get("currency") or "USD"
    if parsed.channel == Channel.EMAIL:
        format_note = "Include a subject line."
    else:
        format_note = f"Keep it under {SMS_MAX_CHARS} characters for SMS."

    return "\n".join(
        [
            f"Generate a {parsed.channel.value} message for:",
            f"Invoice: #{invoice.get('invoice_number')}",
            f"Amount: {format_currency(invoice.get('amount') or 0, currency)}",
            f"Due Date: {format_date(invoice.get('due_date'))}",
            f"Days Past Due: {days_past_due}",
            f"Customer: {customer}",
            f"Email: {debtor.get('email') or 'unknown'}",
            f"Action requested: {parsed.action.value}",
            format_note,
        ]
    )


def split_subject(content: str, channel: Channel) -> tuple[str | None, str]:
    """Pull a ``Subject:`` line out of generated email content."""
    if channel != Channel.EMAIL:
        return None, content.strip()
    match = _SUBJECT_LINE.search(content)
    if not match:
        return None, content.strip()
    subject = match.group(1).strip().strip("*").strip()
    body = (content[: match.start()] + content[match.end():]).strip()
    return subject, body
