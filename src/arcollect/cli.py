"""Command-line entry point for the scheduled jobs and the HTTP server.

Usage:
    # Generate today's digests for every user (cron)
    arcollect digest

    # Regenerate one user's digest without emailing it
    arcollect digest --user-id=<uuid> --force --skip-email

    # Refresh aging buckets
    arcollect aging

    # Recalculate payment scores for all of a user's debtors
    arcollect payment-scores --user-id=<uuid>

    # Serve the function endpoints
    arcollect serve --port=8000
"""

import argparse
import asyncio
import json
import sys
from typing import Any

import structlog

from arcollect.aging import AgingBucketRefresher
from arcollect.backend import BackendClient
from arcollect.config import configure_logging, get_settings
from arcollect.digest import DailyDigestRunner
from arcollect.mail import ResendClient
from arcollect.scoring import PaymentScoreService

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="arcollect",
        description="AR collections engine: digests, aging, scoring and drafting API",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    digest = subparsers.add_parser("digest", help="Generate daily digests")
    digest.add_argument("--force", action="store_true", help="Regenerate existing digests")
    digest.add_argument("--user-id", help="Only process this user")
    digest.add_argument("--skip-email", action="store_true", help="Do not send digest emails")

    subparsers.add_parser("aging", help="Recalculate invoice aging buckets")

    scores = subparsers.add_parser("payment-scores", help="Recalculate debtor payment scores")
    scores.add_argument("--user-id", required=True, help="Account owning the debtors")
    scores.add_argument("--debtor-id", help="Only this debtor (default: all debtors)")

    serve = subparsers.add_parser("serve", help="Run the HTTP function server")
    serve.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")

    return parser


async def run_job(args: argparse.Namespace) -> dict[str, Any]:
    """Run one batch job and return its JSON-ready result."""
    async with BackendClient() as backend:
        if args.command == "digest":
            mailer = ResendClient() if get_settings().resend_api_key is not None else None
            try:
                result = await DailyDigestRunner(backend, mailer).run(
                    force=args.force, user_id=args.user_id, skip_email=args.skip_email
                )
            finally:
                if mailer is not None:
                    await mailer.close()
            return result.to_dict()

        if args.command == "aging":
            return (await AgingBucketRefresher(backend).run()).to_dict()

        if args.command == "payment-scores":
            scores = await PaymentScoreService(backend).recalculate(
                args.user_id,
                debtor_id=args.debtor_id,
                all_debtors=args.debtor_id is None,
            )
            return {"results": [score.to_dict() for score in scores]}

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)

    if args.command == "serve":
        import uvicorn

        from arcollect.api import create_app

        uvicorn.run(create_app(), host=args.host, port=args.port)
        return

    try:
        result = asyncio.run(run_job(args))
    except KeyboardInterrupt:
        logger.info("job_interrupted", command=args.command)
        sys.exit(130)
    except Exception as e:
        logger.exception("job_failed", command=args.command, error=str(e))
        sys.exit(1)

    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
