"""Classification of posted markers as active or stale."""

from collections.abc import Iterable
from dataclasses import dataclass

from review_sweep.fingerprint import DedupeKey
from review_sweep.proximity import LINE_PROXIMITY_THRESHOLD, Location, ProximityIndex
from review_sweep.types import Finding


@dataclass(frozen=True)
class MarkerClassification:
    """Markers split by whether a current finding still backs them."""

    active: tuple[DedupeKey, ...]
    stale: tuple[DedupeKey, ...]


def classify_against_index(
    markers: Iterable[DedupeKey],
    index: ProximityIndex,
) -> MarkerClassification:
    """Classify markers against a prebuilt index of current findings.

    Args:
        markers: Parsed markers of one comment
        index: Current findings indexed by (fingerprint, file)

    Returns:
        MarkerClassification in input order

    """
    active: list[DedupeKey] = []
    stale: list[DedupeKey] = []
    for marker in markers:
        if index.has_nearby(marker.fingerprint, Location(marker.file, marker.line)):
            active.append(marker)
        else:
            stale.append(marker)
    return MarkerClassification(active=tuple(active), stale=tuple(stale))


def classify_markers(
    all_markers: Iterable[DedupeKey],
    active_findings: Iterable[Finding],
    tolerance_lines: int = LINE_PROXIMITY_THRESHOLD,
) -> MarkerClassification:
    """Classify markers as active or stale.

    A marker is active when a current finding has the same fingerprint, the
    same file, and a line within tolerance of the marker's recorded line.
    Everything else is stale, including a marker whose file was renamed.

    Args:
        all_markers: Parsed markers of one comment
        active_findings: Findings of the current run
        tolerance_lines: Maximum line distance (inclusive)

    Returns:
        MarkerClassification in input order

    """
    return classify_against_index(all_markers, ProximityIndex(active_findings, tolerance_lines))
