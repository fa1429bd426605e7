"""Finding identity and the fingerprint markers embedded in comment bodies.

A marker is an HTML comment, invisible once the platform renders the body::

    <!-- review-sweep:fingerprint:v1:<fingerprint>:<file>:<line> -->

The file is percent-encoded, so the payload never contains a colon, a space or
``-->`` that could break the token. Parsing never raises: anything that looks
like one of our markers but does not parse is reported as ``None``.
"""

import hashlib
import re
from collections.abc import Iterable
from dataclasses import dataclass
from urllib.parse import quote, unquote

from review_sweep.types import Finding

MARKER_NAMESPACE = "review-sweep"
MARKER_VERSION = "v1"
FINGERPRINT_LENGTH = 32

# Characters left unescaped in the file part of a marker
_SAFE_PATH_CHARS = "/._-~+@"

# General shape of any of our markers, whatever its version or payload
_MARKER_TOKEN_RE = re.compile(
    rf"<!--[ \t]*{re.escape(MARKER_NAMESPACE)}:fingerprint:([^\n]*?)[ \t]*-->",
)
_MARKER_TOKEN_WITH_NEWLINE_RE = re.compile(
    rf"<!--[ \t]*{re.escape(MARKER_NAMESPACE)}:fingerprint:[^\n]*?[ \t]*-->\n?",
)
_PAYLOAD_RE = re.compile(
    rf"^{MARKER_VERSION}:([0-9a-f]{{{FINGERPRINT_LENGTH}}}):([^:\s]+):(0|[1-9][0-9]*)$",
)
_FINGERPRINT_RE = re.compile(rf"^[0-9a-f]{{{FINGERPRINT_LENGTH}}}$")


@dataclass(frozen=True, order=True)
class DedupeKey:
    """Stable identity of a finding: fingerprint plus recorded location."""

    fingerprint: str
    file: str
    line: int

    def __str__(self) -> str:
        """Return the canonical ``fingerprint:file:line`` form."""
        return f"{self.fingerprint}:{self.file}:{self.line}"

    @property
    def payload(self) -> str:
        """Marker payload for this key (the text after ``fingerprint:``)."""
        encoded_file = quote(self.file, safe=_SAFE_PATH_CHARS)
        return f"{MARKER_VERSION}:{self.fingerprint}:{encoded_file}:{self.line}"


def normalize_path(path: str) -> str:
    """Normalize a repository path for identity comparisons.

    Strips leading ``./`` and ``/`` so that platform conventions (Azure DevOps
    uses a leading slash) do not change a finding's identity.

    Args:
        path: File path as reported by an agent or a platform

    Returns:
        Normalized relative path

    """
    normalized = path.strip().replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.lstrip("/")


def generate_fingerprint(finding: Finding) -> str:
    """Generate a fingerprint from rule, message and file.

    The line number is deliberately not part of the hash so the fingerprint
    survives line drift between runs.

    Args:
        finding: Finding without a usable fingerprint

    Returns:
        32 lowercase hex characters

    """
    material = "\x1f".join(
        (finding.rule_id or "", finding.message.strip(), normalize_path(finding.file)),
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def is_valid_fingerprint(value: str | None) -> bool:
    """Return True if value has the fingerprint shape markers can carry."""
    return value is not None and _FINGERPRINT_RE.match(value) is not None


def finding_fingerprint(finding: Finding) -> str:
    """Return the effective fingerprint of a finding.

    Args:
        finding: Finding from the current run

    Returns:
        The upstream fingerprint when valid, a generated one otherwise

    """
    if is_valid_fingerprint(finding.fingerprint):
        return str(finding.fingerprint)
    return generate_fingerprint(finding)


def get_dedupe_key(finding: Finding) -> DedupeKey:
    """Build the DedupeKey of a finding."""
    return DedupeKey(
        fingerprint=finding_fingerprint(finding),
        file=normalize_path(finding.file),
        line=finding.anchor_line,
    )


def encode_marker(key: DedupeKey) -> str:
    """Render a DedupeKey as a marker token.

    Args:
        key: Identity to embed

    Returns:
        Single-line HTML comment token

    """
    return f"<!-- {MARKER_NAMESPACE}:fingerprint:{key.payload} -->"


def build_fingerprint_marker(finding: Finding) -> str:
    """Render the marker token for a finding."""
    return encode_marker(get_dedupe_key(finding))


def extract_markers(body: object) -> list[str]:
    """Extract every marker payload from a comment body, in order.

    Duplicates are kept; empty payloads are kept too and later fail to parse.

    Args:
        body: Raw comment body (anything that is not a string yields no markers)

    Returns:
        Marker payloads in order of appearance

    """
    if not isinstance(body, str):
        return []
    return [match.group(1) for match in _MARKER_TOKEN_RE.finditer(body)]


def parse_marker(token: str) -> DedupeKey | None:
    """Parse a marker payload (or a full marker token) into a DedupeKey.

    Args:
        token: Marker payload as returned by extract_markers, or a full token

    Returns:
        DedupeKey, or None when the marker is malformed

    """
    if not isinstance(token, str):
        return None

    payload = token.strip()
    if payload.startswith("<!--"):
        token_match = _MARKER_TOKEN_RE.fullmatch(payload)
        if token_match is None:
            return None
        payload = token_match.group(1)

    match = _PAYLOAD_RE.match(payload)
    if match is None:
        return None

    fingerprint, encoded_file, line = match.groups()
    try:
        file = unquote(encoded_file, errors="strict")
    except UnicodeDecodeError:
        return None

    if not file or any(ord(char) < ord(" ") for char in file):
        return None

    return DedupeKey(fingerprint=fingerprint, file=file, line=int(line))


def unique_markers(markers: Iterable[str]) -> list[str]:
    """Deduplicate marker payloads, keeping the first occurrence.

    Two payloads that parse to the same DedupeKey count once; malformed
    payloads are deduplicated by their raw text.

    Args:
        markers: Marker payloads, possibly repeated

    Returns:
        Unique marker payloads in first-seen order

    """
    seen: set[DedupeKey | str] = set()
    unique: list[str] = []
    for marker in markers:
        identity: DedupeKey | str = parse_marker(marker) or marker
        if identity in seen:
            continue
        seen.add(identity)
        unique.append(marker)
    return unique


def strip_own_markers(body: str) -> str:
    """Remove only review-sweep markers from a body, keeping other HTML comments.

    Args:
        body: Comment body

    Returns:
        Body without review-sweep markers

    """
    return _MARKER_TOKEN_WITH_NEWLINE_RE.sub("", body).strip()
