"""Message generators for user-facing output."""

from collections.abc import Mapping

from review_sweep.types import CollectedFindings, Severity


def findings_loaded_message(
    collected: CollectedFindings,
    severity_counts: Mapping[Severity, int],
) -> str:
    """Return the summary of the findings loaded for this run.

    Args:
        collected: Findings split by provenance
        severity_counts: Findings left after deduplication, per severity

    Returns:
        Summary message

    """
    breakdown = ", ".join(
        f"{severity_counts.get(severity, 0)} {severity}" for severity in Severity
    )
    return (
        f"Loaded {len(collected.complete)} complete and {len(collected.partial)} partial "
        f"finding(s); {sum(severity_counts.values())} after deduplication ({breakdown})."
    )


def skipped_agents_warning(collected: CollectedFindings) -> str:
    """Return a warning listing agents that did not complete.

    Args:
        collected: Findings split by provenance

    Returns:
        Warning message, or an empty string when every agent completed

    """
    if not collected.skipped:
        return ""
    names = ", ".join(f"{agent.agent_id} ({agent.reason})" for agent in collected.skipped)
    return f"{len(collected.skipped)} agent(s) did not complete: {names}"


def dry_run_notice(pending_count: int) -> str:
    """Return the notice shown when a dry run skips platform calls.

    Args:
        pending_count: Number of operations that would have been applied

    Returns:
        Notice message

    """
    return f"Dry run: {pending_count} comment operation(s) were not applied."


def unposted_findings_message(finding_count: int, comment_count: int) -> str:
    """Return the count of findings not yet covered by a posted comment.

    Args:
        finding_count: Findings with no posted marker nearby
        comment_count: Comments they would be rendered into

    Returns:
        Status message

    """
    if finding_count == 0:
        return "Every current finding is already covered by a posted comment."
    return (
        f"{finding_count} finding(s) not yet posted; they would render as "
        f"{comment_count} comment(s)."
    )


def sweep_summary_message(resolved: int, updated: int, untouched: int, duration: str) -> str:
    """Return the final summary of a sweep.

    Args:
        resolved: Comments resolved
        updated: Comments rewritten for partial resolution
        untouched: Comments left as they are
        duration: Formatted elapsed time

    Returns:
        Summary message

    """
    return (
        f"Sweep finished in {duration}: {resolved} resolved, {updated} partially resolved, "
        f"{untouched} unchanged."
    )
