"""Shared platform adapter logic.

Adapters only differ in how they fetch comments and apply mutations. Deciding
what to do with each comment lives here so GitHub and Azure DevOps always reach
the same outcome for the same markers and findings.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import StrEnum
from types import TracebackType

from review_sweep.fingerprint import extract_markers
from review_sweep.resolution import (
    CommentId,
    Platform,
    PostedComment,
    ResolutionContext,
    ResolutionDecision,
    apply_partial_resolution_visual,
    decide_comment,
    emit_resolution_log,
)
from review_sweep.types import Finding
from review_sweep.utils import get_logger

DEFAULT_MAX_CONCURRENCY = 4
DEFAULT_MIN_CALL_INTERVAL_SECONDS = 0.1


class PlatformError(RuntimeError):
    """A platform transport call failed."""


class RateLimiter:
    """Concurrency gate shared by every comment-level API operation.

    At most ``max_concurrency`` operations run at once, and two operations never
    start closer than ``min_interval_seconds`` apart.
    """

    def __init__(
        self,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        min_interval_seconds: float = DEFAULT_MIN_CALL_INTERVAL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the limiter.

        Args:
            max_concurrency: Maximum number of operations in flight
            min_interval_seconds: Minimum delay between two operation starts
            clock: Monotonic clock
            sleep: Sleep function

        """
        if max_concurrency <= 0:
            message = f"max_concurrency must be a positive integer (got {max_concurrency})"
            raise ValueError(message)
        if min_interval_seconds < 0:
            message = f"min_interval_seconds must not be negative (got {min_interval_seconds})"
            raise ValueError(message)

        self.max_concurrency = max_concurrency
        self.min_interval_seconds = min_interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._semaphore = threading.BoundedSemaphore(max_concurrency)
        self._lock = threading.Lock()
        self._next_start = 0.0

    def __enter__(self) -> "RateLimiter":
        """Wait for a free slot and for the minimum interval to elapse."""
        self._semaphore.acquire()
        try:
            self._wait_for_turn()
        except BaseException:
            self._semaphore.release()
            raise
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        """Release the slot."""
        self._semaphore.release()

    def _wait_for_turn(self) -> None:
        """Reserve the next start time and sleep until it arrives."""
        with self._lock:
            now = self._clock()
            start = max(now, self._next_start)
            self._next_start = start + self.min_interval_seconds
        delay = start - now
        if delay > 0:
            self._sleep(delay)


class CommentAction(StrEnum):
    """What the adapter does with a comment in this run."""

    RESOLVE = "resolve"
    UPDATE = "update"
    NONE = "none"


@dataclass(frozen=True)
class PlannedOperation:
    """A decision turned into (at most) one platform call."""

    comment: PostedComment
    decision: ResolutionDecision
    action: CommentAction
    new_body: str | None = None


@dataclass
class SweepReport:
    """Outcome of one sweep over a pull request's comments."""

    platform: Platform
    operations: list[PlannedOperation] = field(default_factory=list)
    applied: bool = False

    @property
    def decisions(self) -> list[ResolutionDecision]:
        """Decisions for every comment carrying markers."""
        return [operation.decision for operation in self.operations]

    def _ids(self, action: CommentAction) -> list[CommentId]:
        return [
            operation.comment.id for operation in self.operations if operation.action is action
        ]

    @property
    def resolved_ids(self) -> list[CommentId]:
        """Comments resolved (or to resolve, in a dry run)."""
        return self._ids(CommentAction.RESOLVE)

    @property
    def updated_ids(self) -> list[CommentId]:
        """Comments whose body was rewritten for partial resolution."""
        return self._ids(CommentAction.UPDATE)

    @property
    def untouched_ids(self) -> list[CommentId]:
        """Comments left as they are."""
        return self._ids(CommentAction.NONE)


def plan_operation(comment: PostedComment, decision: ResolutionDecision) -> PlannedOperation:
    """Turn a resolution decision into the single call to make for a comment.

    Args:
        comment: Comment the decision was made for
        decision: Resolution decision

    Returns:
        PlannedOperation; NONE when no API call is needed

    """
    if decision.resolved:
        return PlannedOperation(comment, decision, CommentAction.RESOLVE)

    if decision.partially_resolved_markers:
        new_body = apply_partial_resolution_visual(
            comment.body,
            decision.partially_resolved_markers,
        )
        if new_body != comment.body:
            return PlannedOperation(comment, decision, CommentAction.UPDATE, new_body)

    return PlannedOperation(comment, decision, CommentAction.NONE)


class PlatformAdapter(ABC):
    """Base class for platform adapters.

    Subclasses fetch comments and apply mutations; decisions and planning are
    shared.
    """

    platform: Platform

    def __init__(
        self,
        limiter: RateLimiter | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            limiter: Rate limiter shared with other comment-posting activity
            logger: Logger for progress messages

        """
        self.limiter = limiter or RateLimiter()
        self.logger = logger or get_logger(f"adapter.{self.platform}")
        self.resolution_logger = get_logger("resolution")

    @abstractmethod
    def fetch_comments(self) -> list[PostedComment]:
        """Fetch the open comments or threads of the pull request."""

    @abstractmethod
    def resolve_comment(self, comment: PostedComment) -> None:
        """Resolve a comment's thread on the platform."""

    @abstractmethod
    def update_comment_body(self, comment: PostedComment, body: str) -> None:
        """Replace a comment's body on the platform."""

    def close(self) -> None:
        """Release transport resources held by the adapter."""
        self.logger.debug("Closing %s adapter", self.platform)

    def plan(self, comment: PostedComment, decision: ResolutionDecision) -> PlannedOperation:
        """Plan the call for one comment.

        Args:
            comment: Comment the decision was made for
            decision: Resolution decision

        Returns:
            PlannedOperation for the comment

        """
        return plan_operation(comment, decision)

    def apply(self, operation: PlannedOperation) -> None:
        """Apply one planned operation through the rate limiter.

        Args:
            operation: Operation to apply

        """
        if operation.action is CommentAction.NONE:
            return

        with self.limiter:
            if operation.action is CommentAction.RESOLVE:
                self.logger.debug("Resolving comment %s", operation.comment.id)
                self.resolve_comment(operation.comment)
            elif operation.new_body is not None:
                self.logger.debug("Updating comment %s", operation.comment.id)
                self.update_comment_body(operation.comment, operation.new_body)

    def decide(
        self,
        comments: Iterable[PostedComment],
        context: ResolutionContext,
    ) -> list[PlannedOperation]:
        """Compute decisions for comments carrying markers and log each one.

        Comments with no marker token at all were not posted by this tool and
        are skipped silently.

        Args:
            comments: Comments fetched from the platform
            context: Current run context

        Returns:
            Planned operations in comment order

        """
        operations: list[PlannedOperation] = []
        for comment in comments:
            if not extract_markers(comment.body):
                continue
            decision = decide_comment(comment, context)
            emit_resolution_log(decision, self.platform, self.resolution_logger)
            operations.append(self.plan(comment, decision))
        return operations

    def sweep(self, findings: Iterable[Finding], *, dry_run: bool = False) -> SweepReport:
        """Reconcile posted comments with the current run's findings.

        All decisions are computed before any call is made. Calls then run on a
        worker pool bounded by the limiter; the first failed call is re-raised.

        Args:
            findings: Every finding reported in the current run
            dry_run: Compute decisions without calling the platform

        Returns:
            SweepReport with one operation per comment carrying markers

        """
        context = ResolutionContext.from_findings(findings)
        comments = self.fetch_comments()
        self.logger.info("Fetched %s open comment(s) from %s", len(comments), self.platform)

        report = SweepReport(platform=self.platform, operations=self.decide(comments, context))
        pending = [
            operation
            for operation in report.operations
            if operation.action is not CommentAction.NONE
        ]
        if dry_run or not pending:
            return report

        with ThreadPoolExecutor(max_workers=self.limiter.max_concurrency) as executor:
            futures = [executor.submit(self.apply, operation) for operation in pending]
            for future in futures:
                future.result()

        report.applied = True
        self.logger.info(
            "Resolved %s comment(s), updated %s comment(s)",
            len(report.resolved_ids),
            len(report.updated_ids),
        )
        return report
