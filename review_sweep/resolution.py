"""Comment resolution decisions for posted review comments.

A comment is resolved if and only if its deduplicated marker set is non-empty,
contains no malformed marker, and every marker is stale in the current run.
Decisions are made per comment, never per marker: a grouped comment stays open
while any one of its findings is still reported.

Everything here is pure and synchronous. A decision depends only on the
comment body and the explicit ResolutionContext, so decisions for different
comments can be computed in any order or in parallel.
"""

import json
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from collections.abc import Set as AbstractSet
from dataclasses import dataclass, field
from enum import StrEnum

from review_sweep.fingerprint import DedupeKey, extract_markers, parse_marker, unique_markers
from review_sweep.proximity import LINE_PROXIMITY_THRESHOLD, ProximityIndex
from review_sweep.render import SEVERITY_EMOJI
from review_sweep.stale import classify_against_index
from review_sweep.types import Finding
from review_sweep.utils import get_logger

RESOLUTION_EVENT = "comment_resolution"
RESOLUTION_WARNING_EVENT = "comment_resolution_warning"
MALFORMED_MARKER_REASON = "malformed_marker"

STRIKETHROUGH = "~~"
RESOLVED_BADGE = " ✅"
SUGGESTION_ICON = "💡"
FINDING_LINE_PREFIXES = tuple(f"{emoji} **Line " for emoji in SEVERITY_EMOJI.values())

CommentId = int | str


class Platform(StrEnum):
    """Code review platform a comment lives on."""

    GITHUB = "github"
    ADO = "ado"


class CommentState(StrEnum):
    """Lifecycle of a posted comment as seen by this engine."""

    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class PostedComment:
    """A comment (GitHub) or thread (Azure DevOps) created by an earlier run.

    Attributes:
        id: Comment id (GitHub) or thread id (Azure DevOps), used in logs
        platform: Platform the comment lives on
        body: Raw body, possibly edited by users
        thread_id: Thread to resolve (GraphQL node id or ADO thread id)
        body_comment_id: Comment carrying the body inside an ADO thread

    """

    id: CommentId
    platform: Platform
    body: str
    thread_id: str | int | None = None
    body_comment_id: int | None = None

    @property
    def markers(self) -> list[str]:
        """Deduplicated marker payloads found in the body."""
        return unique_markers(extract_markers(self.body))


@dataclass(frozen=True)
class ResolutionDecision:
    """Outcome for one comment in one run."""

    comment_id: CommentId
    all_markers: tuple[str, ...]
    stale_markers: tuple[str, ...]
    has_malformed_marker: bool
    resolved: bool
    partially_resolved_markers: tuple[str, ...] = ()

    @property
    def fingerprint_count(self) -> int:
        """Number of unique markers in the comment."""
        return len(self.all_markers)

    @property
    def stale_count(self) -> int:
        """Number of unique markers with no backing finding."""
        return len(self.stale_markers)

    @property
    def state(self) -> CommentState:
        """State the comment should be in after this run."""
        return CommentState.RESOLVED if self.resolved else CommentState.UNRESOLVED


@dataclass(frozen=True)
class ResolutionContext:
    """Read-only inputs shared by every decision of one run.

    Attributes:
        active_findings: Every finding reported in the current run
        tolerance_lines: Proximity tolerance used to match markers

    """

    active_findings: tuple[Finding, ...]
    tolerance_lines: int = LINE_PROXIMITY_THRESHOLD
    index: ProximityIndex = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Index the active findings once for all comments."""
        index = ProximityIndex(self.active_findings, self.tolerance_lines)
        object.__setattr__(self, "index", index)

    @classmethod
    def from_findings(cls, findings: Iterable[Finding]) -> "ResolutionContext":
        """Build a context from the current run's findings."""
        return cls(active_findings=tuple(findings))


def build_comment_to_markers_map(
    marker_occurrences: Mapping[str, CommentId] | Iterable[tuple[str, CommentId]],
) -> dict[CommentId, list[str]]:
    """Invert marker -> comment occurrences into per-comment marker lists.

    Args:
        marker_occurrences: Mapping of marker to comment id, or (marker, comment id) pairs

    Returns:
        Comment id -> deduplicated markers in first-seen order

    """
    if isinstance(marker_occurrences, Mapping):
        pairs = marker_occurrences.items()
    else:
        pairs = marker_occurrences
    grouped: dict[CommentId, list[str]] = {}
    for marker, comment_id in pairs:
        grouped.setdefault(comment_id, []).append(marker)
    return {comment_id: unique_markers(markers) for comment_id, markers in grouped.items()}


def has_malformed_markers(markers: Iterable[str]) -> bool:
    """Return True if any marker fails to parse."""
    return any(parse_marker(marker) is None for marker in markers)


def should_resolve_comment(
    all_markers_in_comment: Sequence[str],
    stale_markers: AbstractSet[str],
    *,
    has_malformed: bool,
) -> bool:
    """Decide whether a comment transitions to resolved.

    Args:
        all_markers_in_comment: Markers found in the comment (deduplicated here)
        stale_markers: Markers with no backing finding in the current run
        has_malformed: Whether the comment contains a malformed marker

    Returns:
        True only if there is at least one marker, none is malformed, and all are stale

    """
    markers = unique_markers(all_markers_in_comment)
    if not markers or has_malformed:
        return False
    return all(parse_marker(marker) is not None and marker in stale_markers for marker in markers)


def get_partially_resolved_markers(
    all_markers_in_comment: Sequence[str],
    stale_markers: AbstractSet[str],
) -> list[str]:
    """Return the valid markers of a comment that are individually stale.

    Args:
        all_markers_in_comment: Markers found in the comment
        stale_markers: Markers with no backing finding in the current run

    Returns:
        Stale markers, deduplicated, in comment order

    """
    return [
        marker
        for marker in unique_markers(all_markers_in_comment)
        if parse_marker(marker) is not None and marker in stale_markers
    ]


def find_stale_markers(markers: Iterable[str], context: ResolutionContext) -> list[str]:
    """Return the valid markers with no matching finding in the current run.

    Malformed markers are never reported as stale.

    Args:
        markers: Marker payloads of one comment
        context: Current run context

    Returns:
        Stale marker payloads, in input order

    """
    parsed: dict[DedupeKey, list[str]] = {}
    for marker in markers:
        key = parse_marker(marker)
        if key is not None:
            parsed.setdefault(key, []).append(marker)

    classification = classify_against_index(parsed, context.index)
    stale_keys = set(classification.stale)
    return [
        marker
        for key, key_markers in parsed.items()
        if key in stale_keys
        for marker in key_markers
    ]


def evaluate_comment_resolution(
    comment_id: CommentId,
    all_markers_in_comment: Sequence[str],
    stale_markers: AbstractSet[str],
) -> ResolutionDecision:
    """Combine the resolution rules into one decision.

    Args:
        comment_id: Comment or thread id
        all_markers_in_comment: Markers found in the comment
        stale_markers: Markers with no backing finding in the current run

    Returns:
        ResolutionDecision for the comment

    """
    markers = unique_markers(all_markers_in_comment)
    has_malformed = has_malformed_markers(markers)
    resolved = should_resolve_comment(markers, stale_markers, has_malformed=has_malformed)
    partially_resolved = [] if resolved else get_partially_resolved_markers(markers, stale_markers)

    return ResolutionDecision(
        comment_id=comment_id,
        all_markers=tuple(markers),
        stale_markers=tuple(marker for marker in markers if marker in stale_markers),
        has_malformed_marker=has_malformed,
        resolved=resolved,
        partially_resolved_markers=tuple(partially_resolved),
    )


def decide_comment(comment: PostedComment, context: ResolutionContext) -> ResolutionDecision:
    """Compute the resolution decision for a posted comment.

    Args:
        comment: Comment as fetched from the platform
        context: Current run context

    Returns:
        ResolutionDecision for the comment

    """
    markers = comment.markers
    stale = set(find_stale_markers(markers, context))
    return evaluate_comment_resolution(comment.id, markers, stale)


def _split_line_ending(line: str) -> tuple[str, str]:
    """Split a trailing carriage return off a line."""
    if line.endswith("\r"):
        return line[:-1], "\r"
    return line, ""


def _is_finding_line(line: str) -> bool:
    """Check whether a line opens a finding block in a grouped body."""
    content = line.removeprefix(STRIKETHROUGH)
    return content.startswith(FINDING_LINE_PREFIXES)


def _is_suggestion_line(line: str) -> bool:
    """Check whether a line is the suggestion line of a finding block."""
    return line.strip().removeprefix(STRIKETHROUGH).startswith(SUGGESTION_ICON)


def _strike_finding_line(line: str) -> str:
    """Strike through a finding line, leaving already-struck lines alone."""
    content, ending = _split_line_ending(line)
    if content.startswith(STRIKETHROUGH):
        return line
    return f"{STRIKETHROUGH}{content}{STRIKETHROUGH}{RESOLVED_BADGE}{ending}"


def _strike_suggestion_line(line: str) -> str:
    """Strike through a suggestion line, keeping its indentation."""
    content, ending = _split_line_ending(line)
    stripped = content.lstrip()
    if stripped.startswith(STRIKETHROUGH):
        return line
    indent = content[: len(content) - len(stripped)]
    return f"{indent}{STRIKETHROUGH}{stripped}{STRIKETHROUGH}{ending}"


def apply_partial_resolution_visual(body: str, resolved_markers: Sequence[str]) -> str:
    """Strike through the finding blocks of resolved markers in a grouped body.

    Finding blocks are paired with markers by position: the n-th finding line
    belongs to the n-th marker. Repeated marker tokens are collapsed when that
    makes the counts agree. When they still differ (the body was edited, or it
    is not a grouped body) the body is returned unchanged. Marker tokens and
    every line outside a resolved block are kept byte for byte.

    Args:
        body: Comment body
        resolved_markers: Marker payloads whose findings are fixed

    Returns:
        Body with resolved findings struck through

    """
    if not resolved_markers:
        return body

    markers = extract_markers(body)
    lines = body.split("\n")
    finding_indexes = [index for index, line in enumerate(lines) if _is_finding_line(line)]
    if len(finding_indexes) != len(markers):
        markers = unique_markers(markers)
    if not markers or len(finding_indexes) != len(markers):
        return body

    resolved_identities = {parse_marker(marker) or marker for marker in resolved_markers}
    for finding_index, marker in zip(finding_indexes, markers, strict=True):
        if (parse_marker(marker) or marker) not in resolved_identities:
            continue
        lines[finding_index] = _strike_finding_line(lines[finding_index])
        next_index = finding_index + 1
        if next_index < len(lines) and _is_suggestion_line(lines[next_index]):
            lines[next_index] = _strike_suggestion_line(lines[next_index])

    return "\n".join(lines)


def _emit(log_method: Callable[..., None], entry: dict[str, object]) -> None:
    """Emit one JSON log entry; logging is best-effort and never raises."""
    try:
        log_method(json.dumps(entry, ensure_ascii=False))
    except Exception:  # noqa: BLE001  # a failed log must not change the decision
        return


def emit_resolution_log(
    decision: ResolutionDecision,
    platform: Platform,
    logger: logging.Logger | None = None,
) -> None:
    """Emit the structured resolution event for one comment.

    Exactly one ``comment_resolution`` event is emitted, carrying only counts
    and the outcome (never marker contents). A comment holding a malformed
    marker also gets exactly one ``comment_resolution_warning``.

    Args:
        decision: Decision for the comment
        platform: Platform the comment lives on
        logger: Logger to use (defaults to the review_sweep.resolution logger)

    """
    log = logger or get_logger("resolution")
    _emit(
        log.info,
        {
            "event": RESOLUTION_EVENT,
            "platform": str(platform),
            "commentId": decision.comment_id,
            "fingerprintCount": decision.fingerprint_count,
            "staleCount": decision.stale_count,
            "resolved": decision.resolved,
        },
    )
    if decision.has_malformed_marker:
        _emit(
            log.warning,
            {
                "event": RESOLUTION_WARNING_EVENT,
                "platform": str(platform),
                "commentId": decision.comment_id,
                "reason": MALFORMED_MARKER_REASON,
            },
        )
