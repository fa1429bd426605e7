"""Grouping of nearby findings into single rendered comments."""

from collections.abc import Iterable
from dataclasses import dataclass

from review_sweep.dedup import group_by_file
from review_sweep.fingerprint import (
    DedupeKey,
    build_fingerprint_marker,
    get_dedupe_key,
    normalize_path,
    parse_marker,
)
from review_sweep.proximity import Location, ProximityIndex
from review_sweep.render import SEVERITY_EMOJI, TemplateRow, get_agent_icon, render_template
from review_sweep.sanitize import sanitize_finding
from review_sweep.types import Finding

# Findings this close to each other in one file share a comment
DEFAULT_GROUP_TOLERANCE_LINES = 3


@dataclass(frozen=True)
class Group:
    """Findings rendered together as one comment."""

    file: str
    findings: tuple[Finding, ...]

    @property
    def start_line(self) -> int:
        """First line covered by the group."""
        return min(finding.anchor_line for finding in self.findings)

    @property
    def end_line(self) -> int:
        """Last line covered by the group."""
        return max(finding.end_line or finding.anchor_line for finding in self.findings)

    @property
    def is_grouped(self) -> bool:
        """True when the group renders more than one finding."""
        return len(self.findings) > 1

    @property
    def keys(self) -> list[DedupeKey]:
        """DedupeKeys of the findings, in render order."""
        return [get_dedupe_key(finding) for finding in self.findings]


def group_for_rendering(
    findings: Iterable[Finding],
    tolerance_lines: int = DEFAULT_GROUP_TOLERANCE_LINES,
) -> list[Group]:
    """Cluster findings of the same file that lie within tolerance of a neighbor.

    Grouping is transitive: findings at lines 10, 13 and 16 with a tolerance of
    3 form one group even though 10 and 16 are 6 lines apart. File-level
    findings (no line) are never grouped.

    Args:
        findings: Findings to render
        tolerance_lines: Maximum distance between neighbors (inclusive)

    Returns:
        Groups ordered by file (first appearance) then by start line

    """
    groups: list[Group] = []

    for file, file_findings in group_by_file(findings).items():
        file_level = [finding for finding in file_findings if finding.line is None]
        located = sorted(
            (finding for finding in file_findings if finding.line is not None),
            key=lambda finding: finding.anchor_line,
        )

        groups.extend(Group(file=file, findings=(finding,)) for finding in file_level)

        current: list[Finding] = []
        for finding in located:
            if current and finding.anchor_line - current[-1].anchor_line > tolerance_lines:
                groups.append(Group(file=file, findings=tuple(current)))
                current = []
            current.append(finding)
        if current:
            groups.append(Group(file=file, findings=tuple(current)))

    return groups


def _template_row(finding: Finding) -> TemplateRow:
    """Build the template variables for one finding."""
    return {
        "emoji": SEVERITY_EMOJI[finding.severity],
        "icon": get_agent_icon(finding.source_agent),
        "agent": finding.source_agent,
        "line": finding.anchor_line,
        "message": finding.message,
        "suggestion": finding.suggestion,
        "rule_id": finding.rule_id,
        "marker": build_fingerprint_marker(finding),
    }


def render_group(group: Group) -> str:
    """Render the comment body for a group.

    A single finding renders as an inline comment; several findings render as
    one block per finding followed by one marker per finding, in the same order.

    Args:
        group: Group to render

    Returns:
        Comment body in Markdown

    """
    rows = [_template_row(sanitize_finding(finding)) for finding in group.findings]
    if not group.is_grouped:
        return render_template("inline_comment.j2", **rows[0])
    return render_template("grouped_comment.j2", findings=rows)


def filter_already_posted(
    findings: Iterable[Finding],
    posted_markers: Iterable[str],
) -> list[Finding]:
    """Drop findings already covered by a posted marker within proximity.

    Args:
        findings: Findings of the current run
        posted_markers: Marker payloads extracted from existing comments

    Returns:
        Findings with no posted marker for the same fingerprint nearby

    """
    index = ProximityIndex()
    for marker in posted_markers:
        key = parse_marker(marker)
        if key is not None:
            index.add_location(key.fingerprint, Location(normalize_path(key.file), key.line))
    return [finding for finding in findings if not index.is_duplicate(finding)]
