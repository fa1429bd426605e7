"""Finding and agent result types for review-sweep.

Agent results are a tagged union (success, failure, skipped). Every place that
consumes them matches all variants and ends in ``assert_never`` so that adding a
variant forces each consumer to be revisited.
"""

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum
from pathlib import Path
from typing import assert_never


class Severity(StrEnum):
    """Severity of a finding."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class Provenance(StrEnum):
    """Whether a finding came from a successful or a failed agent run."""

    COMPLETE = "complete"
    PARTIAL = "partial"


class FailureStage(StrEnum):
    """Stage at which an agent failed."""

    PREFLIGHT = "preflight"
    EXEC = "exec"
    POSTPROCESS = "postprocess"


SEVERITY_ORDER: dict[Severity, int] = {
    Severity.ERROR: 0,
    Severity.WARNING: 1,
    Severity.INFO: 2,
}


@dataclass(frozen=True)
class Finding:
    """One issue reported by one analysis agent."""

    severity: Severity
    file: str
    message: str
    source_agent: str
    line: int | None = None
    end_line: int | None = None
    rule_id: str | None = None
    fingerprint: str | None = None
    suggestion: str | None = None
    metadata: Mapping[str, object] = field(default_factory=dict, hash=False)
    provenance: Provenance = Provenance.COMPLETE

    @property
    def anchor_line(self) -> int:
        """Line used for identity and proximity (0 for file-level findings)."""
        return self.line or 0


@dataclass(frozen=True)
class AgentSuccess:
    """Agent finished and produced a complete finding list."""

    agent_id: str
    findings: tuple[Finding, ...] = ()


@dataclass(frozen=True)
class AgentFailure:
    """Agent failed; findings gathered before the failure are kept as partial."""

    agent_id: str
    error: str
    failure_stage: FailureStage = FailureStage.EXEC
    partial_findings: tuple[Finding, ...] = ()


@dataclass(frozen=True)
class AgentSkipped:
    """Agent did not run."""

    agent_id: str
    reason: str


AgentResult = AgentSuccess | AgentFailure | AgentSkipped


@dataclass(frozen=True)
class SkippedAgent:
    """Agent that contributed no complete findings, with the reason why."""

    agent_id: str
    reason: str


@dataclass(frozen=True)
class CollectedFindings:
    """Findings split by provenance, plus the agents that were skipped or failed."""

    complete: tuple[Finding, ...] = ()
    partial: tuple[Finding, ...] = ()
    skipped: tuple[SkippedAgent, ...] = ()

    @property
    def all_findings(self) -> list[Finding]:
        """Complete findings followed by partial findings."""
        return [*self.complete, *self.partial]


def collect_findings(results: Iterable[AgentResult]) -> CollectedFindings:
    """Stamp provenance on agent findings and split them by outcome.

    Args:
        results: Agent results from the execution phase

    Returns:
        CollectedFindings with complete and partial findings kept apart

    """
    complete: list[Finding] = []
    partial: list[Finding] = []
    skipped: list[SkippedAgent] = []

    for result in results:
        match result:
            case AgentSuccess():
                complete.extend(
                    replace(finding, provenance=Provenance.COMPLETE) for finding in result.findings
                )
            case AgentFailure():
                partial.extend(
                    replace(finding, provenance=Provenance.PARTIAL)
                    for finding in result.partial_findings
                )
                skipped.append(SkippedAgent(result.agent_id, result.error))
            case AgentSkipped():
                skipped.append(SkippedAgent(result.agent_id, result.reason))
            case _:
                assert_never(result)

    return CollectedFindings(tuple(complete), tuple(partial), tuple(skipped))


def _optional_str(payload: Mapping[str, object], *keys: str) -> str | None:
    """Return the first present string value among camelCase/snake_case keys."""
    for key in keys:
        value = payload.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            message = f"Invalid finding field {key!r}: expected string, got {type(value).__name__}"
            raise ValueError(message)
        return value
    return None


def _optional_int(payload: Mapping[str, object], *keys: str) -> int | None:
    """Return the first present integer value among camelCase/snake_case keys."""
    for key in keys:
        value = payload.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int):
            message = f"Invalid finding field {key!r}: expected integer, got {value!r}"
            raise ValueError(message)
        return value
    return None


def finding_from_dict(
    payload: Mapping[str, object],
    provenance: Provenance | None = None,
) -> Finding:
    """Build a Finding from a JSON object.

    Accepts both camelCase (``sourceAgent``) and snake_case (``source_agent``) keys.

    Args:
        payload: Decoded JSON object
        provenance: Provenance to force (otherwise read from the payload)

    Returns:
        Finding instance

    Raises:
        ValueError: If required fields are missing or have the wrong type

    """
    if not isinstance(payload, Mapping):
        error = f"Finding must be a JSON object, got {type(payload).__name__}"
        raise ValueError(error)

    file = _optional_str(payload, "file", "path")
    message = _optional_str(payload, "message")
    source_agent = _optional_str(payload, "sourceAgent", "source_agent")
    if file is None or message is None or source_agent is None:
        error = f"Finding is missing one of file, message, sourceAgent: {dict(payload)!r}"
        raise ValueError(error)

    try:
        severity = Severity(_optional_str(payload, "severity") or Severity.INFO)
        resolved_provenance = provenance or Provenance(
            _optional_str(payload, "provenance") or Provenance.COMPLETE,
        )
    except ValueError as exc:
        error = f"Invalid finding for {file}: {exc}"
        raise ValueError(error) from exc

    metadata = payload.get("metadata") or {}
    if not isinstance(metadata, Mapping):
        error = f"Invalid finding metadata for {file}: expected object"
        raise ValueError(error)

    return Finding(
        severity=severity,
        file=file,
        message=message,
        source_agent=source_agent,
        line=_optional_int(payload, "line"),
        end_line=_optional_int(payload, "endLine", "end_line"),
        rule_id=_optional_str(payload, "ruleId", "rule_id"),
        fingerprint=_optional_str(payload, "fingerprint"),
        suggestion=_optional_str(payload, "suggestion"),
        metadata=dict(metadata),
        provenance=resolved_provenance,
    )


def agent_result_from_dict(payload: Mapping[str, object]) -> AgentResult:
    """Build an AgentResult variant from a JSON object discriminated by ``status``.

    Args:
        payload: Decoded JSON object

    Returns:
        AgentSuccess, AgentFailure or AgentSkipped

    Raises:
        ValueError: If the status is unknown or fields are invalid

    """
    if not isinstance(payload, Mapping):
        error = f"Agent result must be a JSON object, got {type(payload).__name__}"
        raise ValueError(error)

    agent_id = _optional_str(payload, "agentId", "agent_id") or "unknown"
    status = payload.get("status")

    if status == "success":
        findings = payload.get("findings") or []
        if not isinstance(findings, list):
            error = f"Agent {agent_id}: findings must be a list"
            raise ValueError(error)
        return AgentSuccess(
            agent_id=agent_id,
            findings=tuple(finding_from_dict(item) for item in findings),
        )

    if status == "failure":
        partial = payload.get("partialFindings") or payload.get("partial_findings") or []
        if not isinstance(partial, list):
            error = f"Agent {agent_id}: partialFindings must be a list"
            raise ValueError(error)
        stage = _optional_str(payload, "failureStage", "failure_stage") or FailureStage.EXEC
        return AgentFailure(
            agent_id=agent_id,
            error=_optional_str(payload, "error") or "unknown error",
            failure_stage=FailureStage(stage),
            partial_findings=tuple(finding_from_dict(item) for item in partial),
        )

    if status == "skipped":
        return AgentSkipped(
            agent_id=agent_id,
            reason=_optional_str(payload, "reason") or "skipped",
        )

    error = f"Agent {agent_id}: unknown result status {status!r}"
    raise ValueError(error)


def load_findings(path: Path) -> CollectedFindings:
    """Load findings from a JSON file.

    The document is either a list of finding objects or an object with a
    ``results`` list of agent results.

    Args:
        path: Path to the JSON document

    Returns:
        CollectedFindings split by provenance

    Raises:
        ValueError: If the document cannot be decoded or is malformed

    """
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        message = f"Failed to parse findings file {path}: {exc}"
        raise ValueError(message) from exc

    if isinstance(document, dict) and isinstance(document.get("results"), list):
        return collect_findings(agent_result_from_dict(item) for item in document["results"])

    if isinstance(document, list):
        findings = [finding_from_dict(item) for item in document]
        return CollectedFindings(
            complete=tuple(f for f in findings if f.provenance is Provenance.COMPLETE),
            partial=tuple(f for f in findings if f.provenance is Provenance.PARTIAL),
        )

    message = f"Findings file {path} must contain a list of findings or a 'results' list"
    raise ValueError(message)
