"""Template variable replacement and cleanup for outbound collection drafts.

Every draft, AI generated or template based, passes through
``process_draft_content`` (or ``clean_and_replace``) so that no ``{{...}}``
placeholder ever reaches a debtor.

Recipient variables (``customer_*``, ``debtor_*``) describe who owes the
money; sender variables (``business_name``, ``company_name``, ``from_name``)
describe the business collecting it.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from arcollect.aging import clamped_days_past_due
from arcollect.models import to_date, to_decimal

_CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "CAD": "CA$",
    "AUD": "A$",
    "JPY": "¥",
}

_PLACEHOLDER = re.compile(r"\{\{[^}]+\}\}")
_URL = re.compile(r"https?://[^\s<>\"]+", re.IGNORECASE)
_BARE_AMOUNT = re.compile(
    r"\b(for|of|is|totaling|totals)\s+(\d{1,3}(?:,?\d{3})*(?:\.\d{2})?)\b(?!\.\d)",
    re.IGNORECASE,
)

DEFAULT_AGENT_NAME = "Collections Team"


def format_currency(amount: Any, currency: str = "USD") -> str:
    """Format an amount like ``$1,234.50`` (two decimals, thousands separators)."""
    value = to_decimal(amount).quantize(Decimal("0.01"))
    symbol = _CURRENCY_SYMBOLS.get(currency.upper())
    digits = f"{abs(value):,.2f}"
    sign = "-" if value < 0 else ""
    if symbol is None:
        return f"{sign}{currency.upper()} {digits}"
    return f"{sign}{symbol}{digits}"


def format_date(value: date | str | None) -> str:
    """Format a date like ``March 5, 2026``."""
    parsed = to_date(value)
    if parsed is None:
        return ""
    return f"{parsed.strftime('%B')} {parsed.day}, {parsed.year}"


@dataclass
class TemplateContext:
    """Everything a template may reference, as raw backend rows."""

    invoice: dict[str, Any]
    debtor: dict[str, Any] = field(default_factory=dict)
    branding: dict[str, Any] = field(default_factory=dict)
    contact_name: str | None = None
    persona_name: str | None = None
    days_past_due: int | None = None
    portal_base_url: str = ""

    @property
    def invoice_link(self) -> str:
        return (
            self.invoice.get("external_link")
            or self.invoice.get("stripe_hosted_url")
            or self.invoice.get("integration_url")
            or ""
        )

    @property
    def payment_link(self) -> str:
        return self.branding.get("stripe_payment_link") or ""

    @property
    def portal_link(self) -> str:
        token = self.branding.get("ar_page_public_token")
        if token and self.branding.get("ar_page_enabled") and self.portal_base_url:
            return f"{self.portal_base_url.rstrip('/')}/ar/{token}"
        return ""

    @property
    def business_name(self) -> str:
        return self.branding.get("business_name") or self.branding.get("from_name") or ""

    @property
    def agent_name(self) -> str:
        return self.persona_name or DEFAULT_AGENT_NAME


def _replacements(ctx: TemplateContext) -> dict[str, str]:
    invoice, debtor = ctx.invoice, ctx.debtor
    customer_name = (
        ctx.contact_name or debtor.get("name") or debtor.get("company_name") or "Valued Customer"
    )
    customer_company = debtor.get("company_name") or debtor.get("name") or "Customer"
    business_name = ctx.business_name
    from_name = ctx.branding.get("from_name") or business_name or DEFAULT_AGENT_NAME

    dpd = ctx.days_past_due
    if dpd is None:
        dpd = clamped_days_past_due(invoice.get("due_date"))

    currency = invoice.get("currency") or "USD"
    amount = format_currency(invoice.get("amount") or 0, currency)
    outstanding_raw = invoice.get("amount_outstanding")
    outstanding = format_currency(
        outstanding_raw if outstanding_raw is not None else invoice.get("amount") or 0,
        currency,
    )
    due_date = format_date(invoice.get("due_date"))
    invoice_number = str(invoice.get("invoice_number") or "")
    description = invoice.get("product_description") or ""

    groups: list[tuple[tuple[str, ...], str]] = [
        (("customer_name", "customer name", "debtor_name", "debtor name", "name",
          "contact_name"), customer_name),
        (("customer_company", "customer company", "debtor_company", "debtor company",
          "account_name"), customer_company),
        (("company_name", "company name", "business_name", "businessname",
          "sender_company", "your_company", "our_company"), business_name),
        (("from_name", "fromname", "sender_name"), from_name),
        (("invoice_number", "invoice number", "invoicenumber", "invoice_id"), invoice_number),
        (("amount", "total", "invoice_amount"), amount),
        (("balance", "amount_outstanding", "outstanding_balance", "amount_due"), outstanding),
        (("currency",), ""),
        (("due_date", "due date", "duedate"), due_date),
        (("days_past_due", "days past due", "dayspastdue", "dpd"), str(dpd)),
        (("payment_link", "payment link", "paymentlink", "pay_link", "stripe_link",
          "stripe_payment_link"), ctx.payment_link),
        (("invoice_link", "invoice link", "invoicelink", "external_link", "integration_url",
          "view_invoice"), ctx.invoice_link),
        (("ar_portal_link", "portal_link", "ar_page_link"), ctx.portal_link),
        (("product_description", "product description", "productdescription",
          "service_description", "description", "service", "product"), description),
        (("agent_name", "persona_name"), ctx.agent_name),
    ]
    return {alias: value for aliases, value in groups for alias in aliases}


def replace_template_variables(text: str, ctx: TemplateContext) -> str:
    """Replace every known ``{{variable}}`` (case-insensitive) with its value."""
    if not text:
        return text
    replacements = _replacements(ctx)

    def substitute(match: re.Match[str]) -> str:
        key = match.group(1).strip().lower()
        return replacements.get(key, match.group(0))

    return re.sub(r"\{\{([^}]+)\}\}", substitute, text)


def _format_bare_amount(match: re.Match[str]) -> str:
    preposition, number = match.group(1), match.group(2)
    value = Decimal(number.replace(",", ""))
    if value > 100:
        return f"{preposition} {format_currency(value)}"
    return match.group(0)


def cleanup_placeholders(text: str) -> str:
    """Remove leftover placeholders and repair the text around them."""
    if not text:
        return text
    result = _PLACEHOLDER.sub("", text)

    # Greetings whose name was removed: "Hi ," / "Hello ," / "Dear ,"
    result = re.sub(r"\bHi[ \t]+,", "Hi there,", result, flags=re.IGNORECASE)
    result = re.sub(r"\bHello[ \t]+,", "Hello,", result, flags=re.IGNORECASE)
    result = re.sub(r"\bDear[ \t]+,", "Dear Customer,", result, flags=re.IGNORECASE)

    result = re.sub(r"[ \t]{2,}", " ", result)

    result = re.sub(r"\bwith you at[ \t]*\.", "with you.", result, flags=re.IGNORECASE)
    result = re.sub(r"\brelationship with[ \t]*\.", "relationship.", result, flags=re.IGNORECASE)
    result = re.sub(r"\bat[ \t]+\.", "with your company.", result, flags=re.IGNORECASE)

    result = re.sub(r"\s*\bfrom Our Company\b", "", result, flags=re.IGNORECASE)
    result = re.sub(r"\bOur Company family\b", "our valued customers", result, flags=re.IGNORECASE)
    result = re.sub(r"\bOur Company\b", "our team", result, flags=re.IGNORECASE)

    return _BARE_AMOUNT.sub(_format_bare_amount, result)


def sanitize_subject_line(subject: str) -> str:
    """Strip URLs from a subject line; links belong in the body."""
    if not subject:
        return subject
    result = _URL.sub("", subject)
    result = re.sub(r"View your invoice:\s*", "", result, flags=re.IGNORECASE)
    return re.sub(r"\s+", " ", result).strip()


@dataclass
class DraftContent:
    body: str
    subject: str
    cleaned_body: str
    cleaned_subject: str


def _signature(ctx: TemplateContext) -> str:
    custom = ctx.branding.get("email_signature")
    if custom:
        return f"\n\n---\n{custom}"

    lines = ["", "", "---", "Best regards,", ctx.agent_name]
    if ctx.business_name:
        lines.append(ctx.business_name)
    if ctx.branding.get("escalation_contact_email"):
        lines.append(f"Email: {ctx.branding['escalation_contact_email']}")
    if ctx.branding.get("escalation_contact_phone"):
        lines.append(f"Phone: {ctx.branding['escalation_contact_phone']}")
    return "\n".join(lines)


def process_draft_content(
    template: str,
    ctx: TemplateContext,
    subject_template: str | None = None,
    include_invoice_link: bool = True,
    include_payment_link: bool = True,
    include_portal_link: bool = True,
    include_signature: bool = True,
) -> DraftContent:
    """Fill a draft template, append missing links and signature, then clean it."""
    body = replace_template_variables(template, ctx)
    if subject_template:
        subject = replace_template_variables(subject_template, ctx)
    else:
        subject = f"Invoice {ctx.invoice.get('invoice_number', '')} - Payment Reminder"

    if include_invoice_link and ctx.invoice_link and ctx.invoice_link not in body:
        body += f"\n\nView your invoice: {ctx.invoice_link}"
    if include_payment_link and ctx.payment_link and ctx.payment_link not in body:
        body += f"\n\nMake a payment: {ctx.payment_link}"
    if include_portal_link and ctx.portal_link and ctx.portal_link not in body:
        body += f"\n\nAccess your account portal: {ctx.portal_link}"

    if include_signature:
        signature = _signature(ctx)
        custom = ctx.branding.get("email_signature")
        if not custom or custom not in body:
            body += signature

    return DraftContent(
        body=body,
        subject=subject,
        cleaned_body=cleanup_placeholders(body),
        cleaned_subject=sanitize_subject_line(cleanup_placeholders(subject)),
    )


def clean_and_replace(text: str, ctx: TemplateContext) -> str:
    """Replace known variables in existing content and drop the rest."""
    return cleanup_placeholders(replace_template_variables(text, ctx))


def clean_subject_line(subject: str, ctx: TemplateContext) -> str:
    return sanitize_subject_line(clean_and_replace(subject, ctx))
