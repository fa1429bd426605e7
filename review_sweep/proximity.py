"""Line-proximity matching of findings across runs.

Unrelated edits shift line numbers, so a finding is considered the "same" one
when it stays in the same file within a fixed line distance.
"""

from collections import defaultdict
from collections.abc import Iterable
from typing import NamedTuple

from review_sweep.fingerprint import finding_fingerprint, normalize_path
from review_sweep.types import Finding

# Inclusive: a shift of exactly 20 lines still matches
LINE_PROXIMITY_THRESHOLD = 20


class Location(NamedTuple):
    """A (file, line) pair."""

    file: str
    line: int

    @classmethod
    def of_finding(cls, finding: Finding) -> "Location":
        """Return the normalized location of a finding."""
        return cls(normalize_path(finding.file), finding.anchor_line)


def is_same_location(
    a: Location,
    b: Location,
    tolerance_lines: int = LINE_PROXIMITY_THRESHOLD,
) -> bool:
    """Check whether two locations refer to the same place.

    Args:
        a: First location
        b: Second location
        tolerance_lines: Maximum line distance (inclusive)

    Returns:
        True if both are in the same file and within tolerance

    """
    return normalize_path(a.file) == normalize_path(b.file) and abs(a.line - b.line) <= (
        tolerance_lines
    )


class ProximityIndex:
    """Index of known finding lines keyed by (fingerprint, file)."""

    def __init__(
        self,
        findings: Iterable[Finding] = (),
        tolerance_lines: int = LINE_PROXIMITY_THRESHOLD,
    ) -> None:
        """Initialize the index.

        Args:
            findings: Findings to index up front
            tolerance_lines: Maximum line distance (inclusive)

        """
        self.tolerance_lines = tolerance_lines
        self._lines: defaultdict[tuple[str, str], list[int]] = defaultdict(list)
        for finding in findings:
            self.add(finding)

    def __len__(self) -> int:
        """Return the number of distinct (fingerprint, file) entries."""
        return len(self._lines)

    def add(self, finding: Finding) -> None:
        """Record a finding's location."""
        self.add_location(finding_fingerprint(finding), Location.of_finding(finding))

    def add_location(self, fingerprint: str, location: Location) -> None:
        """Record a location for a fingerprint."""
        self._lines[(fingerprint, normalize_path(location.file))].append(location.line)

    def has_nearby(self, fingerprint: str, location: Location) -> bool:
        """Check whether a fingerprint is known within tolerance of a location.

        Args:
            fingerprint: Fingerprint to look up
            location: Location to compare against

        Returns:
            True if any indexed line for (fingerprint, file) is within tolerance

        """
        lines = self._lines.get((fingerprint, normalize_path(location.file)), [])
        return any(abs(line - location.line) <= self.tolerance_lines for line in lines)

    def is_duplicate(self, finding: Finding) -> bool:
        """Check whether a finding is already known within tolerance."""
        return self.has_nearby(finding_fingerprint(finding), Location.of_finding(finding))
