"""Keyword parsing of free-text persona commands.

Examples: "Have Katy send a reminder for #1042", "text them about 2211",
"follow up on this invoice" (with an invoice selected in the UI).
"""

import re
from dataclasses import dataclass

from arcollect.models import Channel, CommandAction
from arcollect.personas import Persona, get_personas

_INVOICE_NUMBER = re.compile(r"#?(\d+)")

# Checked in order; the first matching keyword group decides the action
_ACTION_KEYWORDS: tuple[tuple[CommandAction, tuple[str, ...]], ...] = (
    (CommandAction.REMIND_CUSTOMER, ("remind", "reminder")),
    (CommandAction.FOLLOW_UP, ("follow up", "follow-up")),
    (CommandAction.ESCALATE, ("escalate",)),
)
_SMS_KEYWORDS = ("sms", "text")


@dataclass(frozen=True)
class ParsedCommand:
    action: CommandAction
    channel: Channel
    persona_name: str | None = None
    invoice_number: str | None = None


def detect_persona(text: str, personas: tuple[Persona, ...] | None = None) -> str | None:
    lowered = text.lower()
    for persona in personas or get_personas():
        if persona.name.lower() in lowered:
            return persona.name
    return None


def detect_action(text: str) -> CommandAction:
    lowered = text.lower()
    for action, keywords in _ACTION_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return action
    return CommandAction.DRAFT_MESSAGE


def detect_channel(text: str) -> Channel:
    lowered = text.lower()
    return Channel.SMS if any(k in lowered for k in _SMS_KEYWORDS) else Channel.EMAIL


def parse_command(text: str, context_invoice_id: str | None = None) -> ParsedCommand:
    """Extract persona, action, channel and invoice number from a command."""
    match = _INVOICE_NUMBER.search(text)
    return ParsedCommand(
        action=detect_action(text),
        channel=detect_channel(text),
        persona_name=detect_persona(text),
        invoice_number=match.group(1) if match else context_invoice_id,
    )
