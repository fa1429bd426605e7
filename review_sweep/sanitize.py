"""Sanitization of finding text before it is rendered into a comment body."""

from dataclasses import replace

from review_sweep.fingerprint import finding_fingerprint
from review_sweep.types import Finding

MAX_MESSAGE_LENGTH = 4000
MAX_SUGGESTION_LENGTH = 2000
MAX_RULE_ID_LENGTH = 200
TRUNCATION_SUFFIX = "..."


def sanitize_text(text: str | None, max_length: int) -> str:
    """Sanitize text for safe posting.

    Removes NUL bytes, truncates to ``max_length`` and escapes ``&``, ``<`` and
    ``>``. Escaping also keeps agent output from smuggling a marker-shaped HTML
    comment into a body.

    Args:
        text: Raw text
        max_length: Maximum length before escaping

    Returns:
        Sanitized text (empty string for empty input)

    """
    if not text:
        return ""

    sanitized = text.replace("\0", "")
    if len(sanitized) > max_length:
        sanitized = sanitized[: max_length - len(TRUNCATION_SUFFIX)] + TRUNCATION_SUFFIX

    return sanitized.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def sanitize_finding(finding: Finding) -> Finding:
    """Return a copy of a finding with sanitized message, suggestion and rule id.

    The fingerprint is pinned from the raw text first, so sanitizing never
    changes a finding's identity.
    """
    return replace(
        finding,
        fingerprint=finding_fingerprint(finding),
        message=sanitize_text(finding.message, MAX_MESSAGE_LENGTH),
        suggestion=(
            sanitize_text(finding.suggestion, MAX_SUGGESTION_LENGTH) if finding.suggestion else None
        ),
        rule_id=sanitize_text(finding.rule_id, MAX_RULE_ID_LENGTH) if finding.rule_id else None,
    )


def sanitize_findings(findings: list[Finding]) -> list[Finding]:
    """Sanitize a list of findings."""
    return [sanitize_finding(finding) for finding in findings]
