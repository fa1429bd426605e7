"""Command-line interface for review-sweep."""

import sys
import time
import traceback
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from review_sweep.adapter import CommentAction, PlatformAdapter, RateLimiter, SweepReport
from review_sweep.adapter_ado import AdoAdapter, AdoTarget
from review_sweep.adapter_github import GitHubAdapter, GitHubTarget
from review_sweep.config import CliOptions, Settings, get_settings
from review_sweep.dedup import count_by_severity, deduplicate_findings, sort_findings
from review_sweep.fingerprint import strip_own_markers
from review_sweep.grouping import filter_already_posted, group_for_rendering
from review_sweep.messages import (
    dry_run_notice,
    findings_loaded_message,
    skipped_agents_warning,
    sweep_summary_message,
    unposted_findings_message,
)
from review_sweep.render import SEVERITY_EMOJI, oneline
from review_sweep.resolution import Platform
from review_sweep.sanitize import TRUNCATION_SUFFIX
from review_sweep.types import Finding, load_findings
from review_sweep.utils import configure_logger, format_duration

console = Console()

ACTION_STYLES = {
    CommentAction.RESOLVE: "[green]resolved[/green]",
    CommentAction.UPDATE: "[yellow]partially resolved[/yellow]",
    CommentAction.NONE: "unchanged",
}

COMMENT_PREVIEW_LENGTH = 60


@click.command()
@click.option(
    "-f",
    "--findings",
    "findings_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON file with the current run's findings or agent results",
    envvar="RSW_FINDINGS",
)
@click.option(
    "-p",
    "--platform",
    type=click.Choice([platform.value for platform in Platform]),
    help="Code review platform (default: github)",
    envvar="RSW_PLATFORM",
)
@click.option(
    "--pr",
    "pr_number",
    type=int,
    help="Pull request number",
    envvar="RSW_PR_NUMBER",
)
@click.option(
    "--max-concurrency",
    type=int,
    help="Maximum comment operations in flight (default: 4)",
    envvar="RSW_MAX_CONCURRENCY",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Compute decisions without calling the platform",
    envvar="RSW_DRY_RUN",
)
@click.option(
    "-d",
    "--debug",
    is_flag=True,
    help="Enable verbose logging",
    envvar="RSW_DEBUG",
)
@click.version_option(package_name="review-sweep")
def main(findings_path: Path, **kwargs: str | int | bool | None) -> None:
    r"""Resolve pull request comments whose findings are gone.

    \f
    review-sweep reconciles the comments posted by earlier review runs with
    the findings of the current run:
    1. Loads the current findings and deduplicates them
    2. Fetches the open comments of the pull request
    3. Resolves comments whose every finding is gone
    4. Strikes through fixed findings in comments that stay open

    Environment variables:
      RSW_PLATFORM, RSW_PR_NUMBER, RSW_MAX_CONCURRENCY, RSW_MIN_CALL_INTERVAL_MS,
      RSW_GROUP_TOLERANCE_LINES, RSW_GITHUB_OWNER, RSW_GITHUB_REPO,
      RSW_ADO_ORGANIZATION, RSW_ADO_PROJECT, RSW_ADO_REPOSITORY, RSW_ADO_TOKEN,
      RSW_DRY_RUN, RSW_DEBUG

    Examples:
      # Sweep a GitHub pull request
      review-sweep --findings findings.json --pr 42

      # Preview decisions on Azure DevOps without changing anything
      review-sweep -f findings.json -p ado --pr 7 --dry-run

    """
    debug = bool(kwargs.get("debug", False))
    try:
        options = _build_cli_options(kwargs)
        _run_main(options, findings_path)

    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Unexpected error: {e}[/red]")
        if debug:
            console.print(traceback.format_exc())
        sys.exit(1)


def _build_cli_options(kwargs: dict[str, str | int | bool | None]) -> CliOptions:
    """Build CliOptions from Click's keyword arguments.

    Args:
        kwargs: Keyword arguments injected by Click decorators

    Returns:
        CliOptions with CLI-provided overrides

    """
    platform = kwargs.get("platform")
    pr_number = kwargs.get("pr_number")
    max_concurrency = kwargs.get("max_concurrency")

    return CliOptions(
        platform=Platform(str(platform)) if platform is not None else None,
        pr_number=int(pr_number) if pr_number is not None else None,
        max_concurrency=int(max_concurrency) if max_concurrency is not None else None,
        dry_run=bool(kwargs.get("dry_run", False)),
        debug=bool(kwargs.get("debug", False)),
    )


def build_adapter(settings: Settings, limiter: RateLimiter) -> PlatformAdapter:
    """Create the adapter for the configured platform.

    Args:
        settings: Validated settings
        limiter: Rate limiter for every comment operation

    Returns:
        GitHubAdapter or AdoAdapter

    """
    pr_number = int(settings.pr_number or 0)
    if settings.platform is Platform.ADO:
        target = AdoTarget(
            organization=str(settings.ado_organization),
            project=str(settings.ado_project),
            repository=str(settings.ado_repository),
            pr_number=pr_number,
        )
        return AdoAdapter(target, token=settings.ado_token, limiter=limiter)

    github_target = GitHubTarget(
        owner=str(settings.github_owner),
        repo=str(settings.github_repo),
        pr_number=pr_number,
    )
    return GitHubAdapter(github_target, limiter=limiter)


def comment_preview(body: str) -> str:
    """Return the first line of a comment body without its markers, shortened for a table."""
    text = strip_own_markers(body)
    first_line = oneline(text.split("\n", 1)[0])
    if len(first_line) > COMMENT_PREVIEW_LENGTH:
        return first_line[: COMMENT_PREVIEW_LENGTH - len(TRUNCATION_SUFFIX)] + TRUNCATION_SUFFIX
    return first_line


def build_report_table(report: SweepReport) -> Table:
    """Build the per-comment outcome table.

    Args:
        report: Report returned by the sweep

    Returns:
        Rich table with one row per comment carrying markers

    """
    title = f"{report.platform} comments" + ("" if report.applied else " (not applied)")
    table = Table(title=title)
    table.add_column("Comment", style="cyan")
    table.add_column("Markers", justify="right")
    table.add_column("Stale", justify="right")
    table.add_column("Malformed")
    table.add_column("Outcome")
    table.add_column("Text")

    for operation in report.operations:
        decision = operation.decision
        table.add_row(
            str(decision.comment_id),
            str(decision.fingerprint_count),
            str(decision.stale_count),
            "yes" if decision.has_malformed_marker else "",
            ACTION_STYLES[operation.action],
            escape(comment_preview(operation.comment.body)),
        )
    return table


def build_findings_table(findings: list[Finding]) -> Table:
    """Build the table of findings no posted comment covers yet, most severe first.

    Args:
        findings: Unposted findings

    Returns:
        Rich table with one row per finding

    """
    table = Table(title="Findings not yet posted")
    table.add_column("Severity")
    table.add_column("Location", style="cyan")
    table.add_column("Agent")
    table.add_column("Message")

    for finding in sort_findings(findings):
        location = finding.file if finding.line is None else f"{finding.file}:{finding.line}"
        table.add_row(
            f"{SEVERITY_EMOJI[finding.severity]} {finding.severity}",
            escape(location),
            escape(finding.source_agent),
            escape(oneline(finding.message)),
        )
    return table


def _run_main(options: CliOptions, findings_path: Path) -> None:
    """Run main application logic using CliOptions.

    Args:
        options: CLI options grouped into a dataclass
        findings_path: JSON file with the current run's findings

    """
    settings = get_settings(options)
    logger = configure_logger(debug=settings.debug)
    started = time.monotonic()

    collected = load_findings(findings_path)
    unique_findings = deduplicate_findings(collected.all_findings)
    logger.info(findings_loaded_message(collected, count_by_severity(unique_findings)))
    skipped_warning = skipped_agents_warning(collected)
    if skipped_warning:
        logger.warning(skipped_warning)

    limiter = RateLimiter(settings.max_concurrency, settings.min_call_interval_seconds)
    adapter = build_adapter(settings, limiter)
    try:
        report = adapter.sweep(collected.all_findings, dry_run=settings.dry_run)
    finally:
        adapter.close()

    posted_markers = [marker for decision in report.decisions for marker in decision.all_markers]
    unposted = filter_already_posted(unique_findings, posted_markers)
    groups = group_for_rendering(unposted, settings.group_tolerance_lines)
    logger.info(unposted_findings_message(len(unposted), len(groups)))

    if report.operations:
        console.print(build_report_table(report))
    if unposted:
        console.print(build_findings_table(unposted))

    pending = len(report.resolved_ids) + len(report.updated_ids)
    if settings.dry_run and pending:
        console.print(f"[yellow]{dry_run_notice(pending)}[/yellow]")

    console.print(
        sweep_summary_message(
            len(report.resolved_ids),
            len(report.updated_ids),
            len(report.untouched_ids),
            format_duration(int(time.monotonic() - started)),
        )
    )


if __name__ == "__main__":
    main()
