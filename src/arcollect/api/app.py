"""FastAPI application serving the collection functions."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from arcollect import __version__
from arcollect.api.routes import router
from arcollect.backend import AuthenticationError, BackendClient
from arcollect.clients import LLMClient
from arcollect.drafting import CommandError
from arcollect.mail import ResendClient
from arcollect.rate_limit import RateLimiter, retry_after_seconds

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("api_starting", version=__version__)
    yield
    for resource in app.state.owned:
        await resource.close()
    app.state.owned.clear()
    logger.info("api_stopped")


async def _command_error(request: Request, exc: CommandError) -> JSONResponse:
    headers = {}
    if exc.status_code == 429 and exc.rate_limit is not None:
        headers["Retry-After"] = str(retry_after_seconds(exc.rate_limit))
    return JSONResponse({"error": exc.message}, status_code=exc.status_code, headers=headers)


async def _authentication_error(request: Request, exc: AuthenticationError) -> JSONResponse:
    return JSONResponse({"error": "User not authenticated"}, status_code=401)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        {"error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
        status_code=400,
    )


async def _value_error(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=400)


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("request_failed", path=request.url.path, error=str(exc))
    return JSONResponse({"error": str(exc) or "Unknown error"}, status_code=500)


def create_app(
    backend: BackendClient | None = None,
    llm: LLMClient | None = None,
    mailer: ResendClient | None = None,
    rate_limiter: RateLimiter | None = None,
) -> FastAPI:
    """Build the app; clients not passed in are created from settings on demand."""
    app = FastAPI(title="arcollect", version=__version__, lifespan=lifespan)
    app.state.backend = backend
    app.state.llm = llm
    app.state.mailer = mailer
    app.state.rate_limiter = rate_limiter
    app.state.owned = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )

    app.add_exception_handler(CommandError, _command_error)
    app.add_exception_handler(AuthenticationError, _authentication_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(ValueError, _value_error)
    app.add_exception_handler(Exception, _unhandled_error)

    app.include_router(router)
    return app
