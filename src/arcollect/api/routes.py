"""HTTP routes mirroring the serverless functions."""

import json
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Request

from arcollect.aging import AgingBucketRefresher
from arcollect.api.dependencies import (
    get_backend,
    get_current_user,
    get_llm,
    get_mailer,
    get_rate_limiter,
)
from arcollect.api.models import DigestRunRequest, PaymentScoreRequest, PersonaCommandRequest
from arcollect.backend import BackendClient
from arcollect.clients import LLMClient
from arcollect.config import get_settings
from arcollect.digest import DailyDigestRunner
from arcollect.drafting import CommandError, PersonaCommandProcessor
from arcollect.mail import ResendClient
from arcollect.rate_limit import RateLimiter, client_ip, log_suspicious_activity
from arcollect.scoring import DebtorNotFoundError, PaymentScoreService

logger = structlog.get_logger(__name__)

router = APIRouter()

Backend = Annotated[BackendClient, Depends(get_backend)]
CurrentUser = Annotated[dict[str, Any], Depends(get_current_user)]


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}


@router.post("/functions/process-persona-command")
async def process_persona_command(
    body: PersonaCommandRequest,
    request: Request,
    user: CurrentUser,
    backend: Backend,
    llm: Annotated[LLMClient, Depends(get_llm)],
    rate_limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
) -> dict[str, Any]:
    processor = PersonaCommandProcessor(
        backend, llm, rate_limiter, portal_base_url=get_settings().app_base_url
    )
    try:
        return await processor.process(
            user["id"],
            body.command,
            context_invoice_id=body.context_invoice_id,
            context_type=body.context_type,
            tone_intensity=body.tone_intensity,
        )
    except CommandError as e:
        if e.status_code == 429:
            await log_suspicious_activity(
                backend,
                user["id"],
                client_ip(request.headers),
                "ai_command",
                {"reason": "rate_limit_exceeded", "command": body.command[:200]},
            )
        raise


async def _digest_request(request: Request) -> DigestRunRequest:
    """Parse the optional body field by field.

    Only a literal ``true`` enables ``force`` or ``skipEmail``, so a bad value
    in one field never discards the others. An unreadable body means defaults.
    """
    raw = await request.body()
    if not raw:
        return DigestRunRequest()
    try:
        data = json.loads(raw)
    except ValueError:
        logger.debug("digest_request_body_ignored")
        return DigestRunRequest()
    if not isinstance(data, dict):
        return DigestRunRequest()

    user_id = data.get("userId") or None
    return DigestRunRequest(
        force=data.get("force") is True,
        user_id=str(user_id) if user_id is not None else None,
        skip_email=data.get("skipEmail") is True,
    )


@router.post("/functions/daily-digest-runner")
async def daily_digest_runner(
    body: Annotated[DigestRunRequest, Depends(_digest_request)],
    backend: Backend,
    mailer: Annotated[ResendClient | None, Depends(get_mailer)],
) -> dict[str, Any]:
    result = await DailyDigestRunner(backend, mailer).run(
        force=body.force, user_id=body.user_id, skip_email=body.skip_email
    )
    return result.to_dict()


@router.post("/functions/calculate-aging-buckets")
async def calculate_aging_buckets(backend: Backend) -> dict[str, Any]:
    result = await AgingBucketRefresher(backend).run()
    return {"success": True, **result.to_dict()}


@router.post("/functions/calculate-payment-score")
async def calculate_payment_score(
    body: PaymentScoreRequest, user: CurrentUser, backend: Backend
) -> dict[str, Any]:
    try:
        scores = await PaymentScoreService(backend).recalculate(
            user["id"], debtor_id=body.debtor_id, all_debtors=body.recalculate_all
        )
    except DebtorNotFoundError as e:
        raise CommandError(str(e), status_code=404) from e
    return {"results": [score.to_dict() for score in scores]}
