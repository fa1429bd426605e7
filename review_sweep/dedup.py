"""Deduplication of findings reported by several agents.

Complete findings (from agents that finished) are merged when agents corroborate
the same issue. Partial findings (salvaged from agents that failed) are only
collapsed when they are exact repeats; a failed run is not trusted enough to
absorb another agent's report. The two groups are never deduplicated against
each other.
"""

import re
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from review_sweep.fingerprint import normalize_path
from review_sweep.proximity import LINE_PROXIMITY_THRESHOLD
from review_sweep.types import SEVERITY_ORDER, Finding, Provenance, Severity

CORROBORATED_BY_KEY = "corroboratedBy"

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_message(message: str) -> str:
    """Normalize a message for equivalence checks.

    Args:
        message: Raw finding message

    Returns:
        Case-folded message with collapsed whitespace and no trailing period

    """
    return _WHITESPACE_RE.sub(" ", message).strip().rstrip(".").casefold()


@dataclass
class _MergeEntry:
    """A representative finding and the agents merged into it."""

    finding: Finding
    agents: set[str] = field(default_factory=set)


def _can_merge(entry: _MergeEntry, finding: Finding, tolerance_lines: int) -> bool:
    """Check whether a complete finding corroborates a representative.

    The same agent reporting the same message on two different lines reports
    two issues; only other agents, or an exact repeat, are merged.
    """
    distance = abs(entry.finding.anchor_line - finding.anchor_line)
    if distance > tolerance_lines:
        return False
    return distance == 0 or finding.source_agent not in entry.agents


def _merged_finding(entry: _MergeEntry) -> Finding:
    """Build the representative finding for a merge entry."""
    others = sorted(entry.agents - {entry.finding.source_agent})
    if not others:
        return entry.finding
    metadata = dict(entry.finding.metadata)
    metadata[CORROBORATED_BY_KEY] = others
    return replace(entry.finding, metadata=metadata)


def deduplicate_complete(
    findings: Iterable[Finding],
    tolerance_lines: int = LINE_PROXIMITY_THRESHOLD,
) -> list[Finding]:
    """Merge complete findings that describe the same issue.

    Findings merge when they share file and equivalent message within line
    tolerance. The first finding seen is the representative; it takes the most
    severe severity of the group and lists the other agents under
    ``metadata["corroboratedBy"]``. Findings that are not complete pass through
    unchanged.

    Args:
        findings: Findings in report order
        tolerance_lines: Maximum line distance (inclusive)

    Returns:
        Deduplicated findings, in first-seen order

    """
    output: list[_MergeEntry | Finding] = []
    candidates: defaultdict[tuple[str, str], list[_MergeEntry]] = defaultdict(list)

    for finding in findings:
        if finding.provenance is not Provenance.COMPLETE:
            output.append(finding)
            continue

        key = (normalize_path(finding.file), normalize_message(finding.message))
        entry = next(
            (item for item in candidates[key] if _can_merge(item, finding, tolerance_lines)),
            None,
        )
        if entry is None:
            entry = _MergeEntry(finding=finding, agents={finding.source_agent})
            candidates[key].append(entry)
            output.append(entry)
            continue

        entry.agents.add(finding.source_agent)
        if SEVERITY_ORDER[finding.severity] < SEVERITY_ORDER[entry.finding.severity]:
            entry.finding = replace(entry.finding, severity=finding.severity)

    return [_merged_finding(item) if isinstance(item, _MergeEntry) else item for item in output]


def deduplicate_partial(findings: Iterable[Finding]) -> list[Finding]:
    """Drop exact repeats among partial findings.

    Only findings with identical file, line, message and agent collapse;
    different agents reporting the same apparent issue are all kept.

    Args:
        findings: Partial findings in report order

    Returns:
        Findings without exact repeats, in first-seen order

    """
    seen: set[tuple[str, int, str, str]] = set()
    unique: list[Finding] = []
    for finding in findings:
        key = (
            normalize_path(finding.file),
            finding.anchor_line,
            finding.message,
            finding.source_agent,
        )
        if key in seen:
            continue
        seen.add(key)
        unique.append(finding)
    return unique


def deduplicate_findings(findings: Iterable[Finding]) -> list[Finding]:
    """Deduplicate complete and partial findings separately.

    Args:
        findings: Findings of both provenances

    Returns:
        Deduplicated complete findings followed by deduplicated partial findings

    """
    complete: list[Finding] = []
    partial: list[Finding] = []
    for finding in findings:
        if finding.provenance is Provenance.PARTIAL:
            partial.append(finding)
        else:
            complete.append(finding)
    return [*deduplicate_complete(complete), *deduplicate_partial(partial)]


def sort_findings(findings: Iterable[Finding]) -> list[Finding]:
    """Sort findings by severity (error first), then file, then line."""
    return sorted(
        findings,
        key=lambda finding: (
            SEVERITY_ORDER[finding.severity],
            normalize_path(finding.file),
            finding.anchor_line,
        ),
    )


def group_by_file(findings: Iterable[Finding]) -> dict[str, list[Finding]]:
    """Group findings by normalized file path, keeping order within each file."""
    groups: dict[str, list[Finding]] = {}
    for finding in findings:
        groups.setdefault(normalize_path(finding.file), []).append(finding)
    return groups


def count_by_severity(findings: Iterable[Finding]) -> dict[Severity, int]:
    """Count findings per severity."""
    counts = dict.fromkeys(Severity, 0)
    for finding in findings:
        counts[finding.severity] += 1
    return counts
