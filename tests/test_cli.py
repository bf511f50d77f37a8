"""Tests for the command-line entry point."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from arcollect.cli import build_parser, main, run_job


@pytest.fixture
def patched_backend(make_backend):
    """Patch BackendClient in the CLI with an in-memory backend."""
    backend = make_backend(
        {
            "invoices": [
                {"id": "a", "user_id": "u1", "debtor_id": "d1", "status": "Open", "due_date": "2024-01-01", "aging_bucket": "current", "amount": 100}
            ],
            "debtors": [{"id": "d1", "user_id": "u1"}],
        }
    )
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=backend)
    context.__aexit__ = AsyncMock(return_value=False)
    with patch("arcollect.cli.BackendClient", return_value=context):
        yield backend


class TestBuildParser:
    """Tests for argument parsing."""

    def test_digest_options(self):
        """Test digest flags."""
        args = build_parser().parse_args(["digest", "--force", "--user-id", "u1", "--skip-email"])

        assert args.command == "digest"
        assert args.force is True
        assert args.user_id == "u1"
        assert args.skip_email is True

    def test_payment_scores_requires_user(self):
        """Test payment-scores needs --user-id."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["payment-scores"])

    def test_serve_defaults(self):
        """Test serve host and port defaults."""
        args = build_parser().parse_args(["serve"])

        assert args.host == "0.0.0.0"
        assert args.port == 8000

    def test_command_required(self):
        """Test a subcommand must be given."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestRunJob:
    """Tests for the batch jobs."""

    @pytest.mark.asyncio
    async def test_aging_job(self, patched_backend):
        """Test the aging job returns the refresh summary."""
        result = await run_job(build_parser().parse_args(["aging"]))

        assert result["invoicesUpdated"] == 1
        assert patched_backend.rows("invoices")[0]["aging_bucket"] == "dpd_150_plus"

    @pytest.mark.asyncio
    async def test_payment_scores_all_debtors(self, patched_backend):
        """Test omitting --debtor-id scores every debtor."""
        result = await run_job(build_parser().parse_args(["payment-scores", "--user-id", "u1"]))

        assert [r["debtor_id"] for r in result["results"]] == ["d1"]

    @pytest.mark.asyncio
    async def test_digest_job_closes_mailer(self, patched_backend):
        """Test the digest job runs and closes its mailer."""
        mailer = MagicMock()
        mailer.close = AsyncMock()
        with patch("arcollect.cli.ResendClient", return_value=mailer):
            result = await run_job(build_parser().parse_args(["digest", "--skip-email"]))

        assert result == {"success": True, "digestsCreated": 0, "emailsSent": 0, "welcomeEmailsSent": 0}
        mailer.close.assert_awaited_once()


class TestMain:
    """Tests for main()."""

    def test_prints_job_result(self, capsys):
        """Test results are printed as JSON."""
        with patch("arcollect.cli.run_job", new=AsyncMock(return_value={"success": True})):
            main(["aging"])

        assert json.loads(capsys.readouterr().out) == {"success": True}

    def test_failure_exits_nonzero(self):
        """Test job failures exit with status 1."""
        with patch("arcollect.cli.run_job", new=AsyncMock(side_effect=RuntimeError("boom"))):
            with pytest.raises(SystemExit) as exc_info:
                main(["aging"])

        assert exc_info.value.code == 1

    def test_serve_runs_uvicorn(self):
        """Test serve hands the app to uvicorn."""
        with patch("uvicorn.run") as mock_run:
            main(["serve", "--port", "9000"])

        assert mock_run.call_args.kwargs == {"host": "0.0.0.0", "port": 9000}
