"""arcollect - AR collections engine: aging, personas, drafting, scoring and digests."""

__version__ = "0.1.0"

from arcollect.aging import AgingBucketRefresher, bucket_for_days
from arcollect.backend import BackendClient, BackendError
from arcollect.clients import ClaudeClient, OpenAIClient, create_llm_client
from arcollect.commands import ParsedCommand, parse_command
from arcollect.config import configure_logging, get_settings
from arcollect.digest import DailyDigestRunner
from arcollect.drafting import CommandError, PersonaCommandProcessor
from arcollect.mail import EmailDeliveryError, ResendClient
from arcollect.personas import Persona, get_personas, resolve_persona
from arcollect.scoring import PaymentScoreService, calculate_payment_score

__all__ = [
    # Version
    "__version__",
    # Jobs
    "AgingBucketRefresher",
    "DailyDigestRunner",
    "PaymentScoreService",
    # Drafting
    "PersonaCommandProcessor",
    "CommandError",
    "ParsedCommand",
    "parse_command",
    "Persona",
    "get_personas",
    "resolve_persona",
    # Pure helpers
    "bucket_for_days",
    "calculate_payment_score",
    # Clients
    "BackendClient",
    "BackendError",
    "ClaudeClient",
    "OpenAIClient",
    "create_llm_client",
    "ResendClient",
    "EmailDeliveryError",
    # Config
    "get_settings",
    "configure_logging",
]
