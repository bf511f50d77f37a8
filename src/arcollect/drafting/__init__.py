"""Persona-voiced collection message drafting."""

from arcollect.drafting.service import CommandError, PersonaCommandProcessor
from arcollect.drafting.templates import (
    DraftContent,
    TemplateContext,
    format_currency,
    format_date,
    process_draft_content,
)

__all__ = [
    "CommandError",
    "PersonaCommandProcessor",
    "DraftContent",
    "TemplateContext",
    "format_currency",
    "format_date",
    "process_draft_content",
]
