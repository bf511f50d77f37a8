"""FastAPI dependency injection.

Shared clients live on ``app.state``. Anything not supplied to
``create_app`` is built from settings on first use and closed on shutdown.
"""

from typing import Annotated, Any

from fastapi import Depends, Header, Request

from arcollect.backend import AuthenticationError, BackendClient
from arcollect.clients import LLMClient, create_llm_client
from arcollect.config import get_settings
from arcollect.mail import ResendClient
from arcollect.rate_limit import BackendRateLimiter, RateLimiter


def get_backend(request: Request) -> BackendClient:
    state = request.app.state
    if state.backend is None:
        state.backend = BackendClient()
        state.owned.append(state.backend)
    return state.backend


def get_llm(request: Request) -> LLMClient:
    state = request.app.state
    if state.llm is None:
        state.llm = create_llm_client()
    return state.llm


def get_rate_limiter(
    request: Request, backend: Annotated[BackendClient, Depends(get_backend)]
) -> RateLimiter:
    state = request.app.state
    if state.rate_limiter is None:
        state.rate_limiter = BackendRateLimiter(backend)
    return state.rate_limiter


def get_mailer(request: Request) -> ResendClient | None:
    """The email client, or None when no Resend key is configured."""
    state = request.app.state
    if state.mailer is None and get_settings().resend_api_key is not None:
        state.mailer = ResendClient()
        state.owned.append(state.mailer)
    return state.mailer


async def get_current_user(
    backend: Annotated[BackendClient, Depends(get_backend)],
    authorization: Annotated[str | None, Header()] = None,
) -> dict[str, Any]:
    """Resolve the caller from its bearer access token."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthenticationError("User not authenticated", status_code=401)
    token = authorization[len("bearer ") :].strip()
    if not token:
        raise AuthenticationError("User not authenticated", status_code=401)
    return await backend.get_user(token)
