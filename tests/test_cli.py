"""Tests for CLI module."""

import json
from pathlib import Path
from typing import TypeAlias
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from review_sweep import cli as cli_module
from review_sweep.adapter import CommentAction, PlannedOperation, RateLimiter, SweepReport
from review_sweep.adapter_ado import AdoAdapter
from review_sweep.adapter_github import GitHubAdapter
from review_sweep.cli import (
    COMMENT_PREVIEW_LENGTH,
    _build_cli_options,
    build_adapter,
    build_findings_table,
    build_report_table,
    comment_preview,
    main,
)
from review_sweep.config import Settings
from review_sweep.fingerprint import DedupeKey, encode_marker
from review_sweep.resolution import (
    Platform,
    PostedComment,
    evaluate_comment_resolution,
)
from review_sweep.types import Finding, Severity

# Constants for CLI test values
KEYBOARD_INTERRUPT_EXIT_CODE = 130
TEST_PR_NUMBER = 42
TEST_MAX_CONCURRENCY = 8
COMMENT_ID = 1001
MARKER = "v1:aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa:src/app.py:10"
MARKER_KEY = DedupeKey(fingerprint="a" * 32, file="src/app.py", line=10)
INFO_LINE = 1
ERROR_LINE = 5

CliKwargs: TypeAlias = dict[str, str | int | bool | None]


@pytest.fixture
def findings_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Write a findings file and configure a GitHub target."""
    monkeypatch.chdir(tmp_path)
    for name in ("RSW_PLATFORM", "RSW_MAX_CONCURRENCY", "RSW_DRY_RUN", "RSW_DEBUG"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("RSW_PR_NUMBER", str(TEST_PR_NUMBER))
    monkeypatch.setenv("RSW_GITHUB_OWNER", "octo")
    monkeypatch.setenv("RSW_GITHUB_REPO", "repo")

    path = tmp_path / "findings.json"
    finding = {
        "severity": "error",
        "file": "src/other.py",
        "line": 3,
        "message": "Unused import",
        "sourceAgent": "semgrep",
    }
    path.write_text(json.dumps([finding]))
    return path


def _resolved_report(*, applied: bool) -> SweepReport:
    comment = PostedComment(COMMENT_ID, Platform.GITHUB, "body", thread_id="T1")
    decision = evaluate_comment_resolution(COMMENT_ID, [MARKER], {MARKER})
    operation = PlannedOperation(comment, decision, CommentAction.RESOLVE)
    return SweepReport(Platform.GITHUB, [operation], applied=applied)


@pytest.fixture
def fake_adapter(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    """Replace the platform adapter with a mock."""
    adapter = MagicMock()
    adapter.sweep.return_value = _resolved_report(applied=True)
    monkeypatch.setattr(cli_module, "build_adapter", lambda _settings, _limiter: adapter)
    return adapter


class TestCliMain:
    """Tests for CLI main command."""

    def test_cli_help(self) -> None:
        """Test that CLI help works."""
        runner = CliRunner()
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Resolve pull request comments whose findings are gone" in result.output
        assert "--findings" in result.output
        assert "--platform" in result.output
        assert "--dry-run" in result.output
        assert "--max-concurrency" in result.output

    def test_cli_version(self) -> None:
        """Test that CLI version works."""
        runner = CliRunner()
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0

    def test_findings_option_is_required(self) -> None:
        """Test that the findings file must be given."""
        runner = CliRunner()
        result = runner.invoke(main, [], env={"RSW_FINDINGS": None})
        assert result.exit_code != 0
        assert "--findings" in result.output

    def test_sweep_summary(self, findings_file: Path, fake_adapter: MagicMock) -> None:
        """Test a successful sweep prints the table and summary."""
        runner = CliRunner()
        result = runner.invoke(main, ["-f", str(findings_file)], catch_exceptions=False)

        assert result.exit_code == 0, result.output
        assert "1 resolved, 0 partially resolved, 0 unchanged" in result.output
        assert "github comments" in result.output
        assert "Findings not yet posted" in result.output
        fake_adapter.sweep.assert_called_once()
        assert fake_adapter.sweep.call_args.kwargs == {"dry_run": False}
        fake_adapter.close.assert_called_once()

    def test_dry_run_notice(self, findings_file: Path, fake_adapter: MagicMock) -> None:
        """Test that a dry run reports the operations it skipped."""
        fake_adapter.sweep.return_value = _resolved_report(applied=False)
        runner = CliRunner()

        result = runner.invoke(main, ["-f", str(findings_file), "--dry-run"])

        assert result.exit_code == 0, result.output
        assert "Dry run: 1 comment operation(s) were not applied." in result.output
        assert fake_adapter.sweep.call_args.kwargs == {"dry_run": True}


class TestBuildCliOptions:
    """Tests for _build_cli_options."""

    def test_all_options_set(self) -> None:
        """Test building CliOptions with every option."""
        kwargs: CliKwargs = {
            "platform": "ado",
            "pr_number": TEST_PR_NUMBER,
            "max_concurrency": TEST_MAX_CONCURRENCY,
            "dry_run": True,
            "debug": True,
        }
        options = _build_cli_options(kwargs)

        assert options.platform is Platform.ADO
        assert options.pr_number == TEST_PR_NUMBER
        assert options.max_concurrency == TEST_MAX_CONCURRENCY
        assert options.dry_run
        assert options.debug

    def test_no_options_set(self) -> None:
        """Test building CliOptions with nothing set."""
        options = _build_cli_options({})

        assert options.platform is None
        assert options.pr_number is None
        assert options.max_concurrency is None
        assert not options.dry_run
        assert not options.debug


class TestBuildAdapter:
    """Tests for build_adapter."""

    def test_github(self) -> None:
        """Test that the GitHub adapter targets the configured repository."""
        settings = Settings(pr_number=TEST_PR_NUMBER, github_owner="octo", github_repo="repo")
        adapter = build_adapter(settings, RateLimiter())

        assert isinstance(adapter, GitHubAdapter)
        assert adapter.target.owner == "octo"
        assert adapter.target.pr_number == TEST_PR_NUMBER

    def test_ado(self) -> None:
        """Test that the Azure DevOps adapter shares the limiter."""
        settings = Settings(
            platform=Platform.ADO,
            pr_number=TEST_PR_NUMBER,
            ado_organization="org",
            ado_project="proj",
            ado_repository="repo",
            ado_token="pat",
        )
        limiter = RateLimiter()
        adapter = build_adapter(settings, limiter)

        assert isinstance(adapter, AdoAdapter)
        assert adapter.limiter is limiter
        adapter.close()


class TestBuildReportTable:
    """Tests for build_report_table."""

    def test_title_and_rows(self) -> None:
        """Test the table title and one row per operation."""
        table = build_report_table(_resolved_report(applied=False))
        assert table.title == "github comments (not applied)"
        assert table.row_count == 1
        assert list(table.columns[-1].cells) == ["body"]


class TestCommentPreview:
    """Tests for comment_preview."""

    def test_markers_are_not_shown(self) -> None:
        """Test that the preview drops marker tokens and keeps the first line."""
        body = f"{encode_marker(MARKER_KEY)}\n🔴 Unused import\nmore text"
        assert comment_preview(body) == "🔴 Unused import"

    def test_long_line_is_shortened(self) -> None:
        """Test that a long first line is cut to the preview length."""
        preview = comment_preview("x" * (COMMENT_PREVIEW_LENGTH * 2))
        assert len(preview) == COMMENT_PREVIEW_LENGTH
        assert preview.endswith("...")


class TestBuildFindingsTable:
    """Tests for build_findings_table."""

    def test_most_severe_first(self) -> None:
        """Test that rows are ordered by severity, then file, then line."""
        findings = [
            Finding(Severity.INFO, "a.py", "Add a docstring", "pr_agent", line=INFO_LINE),
            Finding(Severity.ERROR, "b.py", "Unused import", "semgrep", line=ERROR_LINE),
            Finding(Severity.WARNING, "c.py", "Missing test", "opencode"),
        ]

        table = build_findings_table(findings)

        assert table.row_count == len(findings)
        assert list(table.columns[1].cells) == [f"b.py:{ERROR_LINE}", "c.py", f"a.py:{INFO_LINE}"]


class TestCliExceptions:
    """Tests for CLI exception handling."""

    def test_incomplete_target(self, findings_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that configuration errors exit with code 1."""
        monkeypatch.delenv("RSW_GITHUB_OWNER")

        result = CliRunner().invoke(main, ["-f", str(findings_file)], catch_exceptions=False)

        assert result.exit_code == 1
        assert "target is incomplete" in result.output

    def test_malformed_findings_file(self, findings_file: Path) -> None:
        """Test that an unreadable findings file exits with code 1."""
        findings_file.write_text("not json")

        result = CliRunner().invoke(main, ["-f", str(findings_file)], catch_exceptions=False)

        assert result.exit_code == 1
        assert "Failed to parse findings file" in result.output

    def test_keyboard_interrupt(self, findings_file: Path, fake_adapter: MagicMock) -> None:
        """Test CLI handles KeyboardInterrupt gracefully."""
        fake_adapter.sweep.side_effect = KeyboardInterrupt

        result = CliRunner().invoke(main, ["-f", str(findings_file)], catch_exceptions=False)

        assert result.exit_code == KEYBOARD_INTERRUPT_EXIT_CODE
        assert "Interrupted" in result.output
        fake_adapter.close.assert_called_once()

    def test_generic_exception(self, findings_file: Path, fake_adapter: MagicMock) -> None:
        """Test CLI handles generic exceptions."""
        fake_adapter.sweep.side_effect = RuntimeError("gh api graphql failed")

        result = CliRunner().invoke(main, ["-f", str(findings_file)], catch_exceptions=False)

        assert result.exit_code == 1
        assert "Unexpected error" in result.output

    def test_debug_mode_shows_traceback(
        self,
        findings_file: Path,
        fake_adapter: MagicMock,
    ) -> None:
        """Test that debug mode shows traceback for exceptions."""
        fake_adapter.sweep.side_effect = RuntimeError("gh api graphql failed")

        result = CliRunner().invoke(
            main,
            ["-f", str(findings_file), "--debug"],
            catch_exceptions=False,
        )

        assert result.exit_code == 1
        assert "Traceback" in result.output
