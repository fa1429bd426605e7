"""GitHub adapter driven through the gh CLI.

This module handles GitHub operations including:
- Fetching review threads via GraphQL (with pagination)
- Resolving review threads
- Rewriting review comment bodies
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from review_sweep.adapter import PlatformAdapter, PlatformError, RateLimiter
from review_sweep.resolution import Platform, PostedComment
from review_sweep.utils import run_command

_THREADS_QUERY = """
    query($owner: String!, $repo: String!, $number: Int!, $cursor: String) {
        repository(owner: $owner, name: $repo) {
            pullRequest(number: $number) {
                reviewThreads(first: 100, after: $cursor) {
                    pageInfo {
                        hasNextPage
                        endCursor
                    }
                    nodes {
                        id
                        isResolved
                        path
                        comments(first: 1) {
                            nodes {
                                databaseId
                                body
                            }
                        }
                    }
                }
            }
        }
    }
"""

_RESOLVE_MUTATION = """
    mutation($threadId: ID!) {
        resolveReviewThread(input: {threadId: $threadId}) {
            thread {
                id
            }
        }
    }
"""


def _single_line(query: str) -> str:
    """Collapse a GraphQL document onto one line for the gh command line."""
    return " ".join(line.strip() for line in query.splitlines() if line.strip())


@dataclass(frozen=True)
class GitHubTarget:
    """Pull request the GitHub adapter works on."""

    owner: str
    repo: str
    pr_number: int


class GitHubAdapter(PlatformAdapter):
    """Resolves and rewrites review comments on a GitHub pull request."""

    platform = Platform.GITHUB

    def __init__(
        self,
        target: GitHubTarget,
        limiter: RateLimiter | None = None,
        logger: logging.Logger | None = None,
        cwd: Path | None = None,
    ) -> None:
        """Initialize the GitHub adapter.

        Args:
            target: Pull request to work on
            limiter: Shared rate limiter
            logger: Logger instance for output
            cwd: Working directory for gh invocations

        """
        super().__init__(limiter=limiter, logger=logger)
        self.target = target
        self.cwd = cwd

    def _gh(self, args: list[str]) -> str:
        """Run a gh command and return its stdout.

        Raises:
            PlatformError: If gh exits with a non-zero code

        """
        returncode, stdout, stderr = run_command(["gh", *args], cwd=self.cwd)
        if returncode != 0:
            message = f"gh {args[0]} {args[1]} failed ({returncode}): {stderr.strip()}"
            raise PlatformError(message)
        return stdout

    def _fetch_threads_page(self, cursor: str | None) -> dict:
        """Fetch one page of review threads.

        Args:
            cursor: End cursor of the previous page, or None for the first page

        Returns:
            The reviewThreads payload (pageInfo and nodes)

        """
        args = [
            "api",
            "graphql",
            "-f",
            f"query={_single_line(_THREADS_QUERY)}",
            "-F",
            f"owner={self.target.owner}",
            "-F",
            f"repo={self.target.repo}",
            "-F",
            f"number={self.target.pr_number}",
        ]
        if cursor is not None:
            args.extend(["-f", f"cursor={cursor}"])

        with self.limiter:
            output = self._gh(args)
        try:
            data = json.loads(output)
            return data["data"]["repository"]["pullRequest"]["reviewThreads"]
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            message = f"Unexpected reviewThreads payload from gh: {exc}"
            raise PlatformError(message) from exc

    @staticmethod
    def _comment_from_thread(thread: dict) -> PostedComment | None:
        """Build a PostedComment from an unresolved review thread.

        Args:
            thread: Review thread node from GraphQL

        Returns:
            PostedComment for the thread's first comment, or None if unusable

        """
        if thread.get("isResolved", True):
            return None

        comments = (thread.get("comments") or {}).get("nodes") or []
        if not comments or not isinstance(comments[0], dict):
            return None

        thread_id = thread.get("id")
        first = comments[0]
        comment_id = first.get("databaseId")
        body = first.get("body")
        if not isinstance(thread_id, str) or not isinstance(comment_id, int):
            return None
        if not isinstance(body, str):
            return None

        return PostedComment(
            id=comment_id,
            platform=Platform.GITHUB,
            body=body,
            thread_id=thread_id,
        )

    def fetch_comments(self) -> list[PostedComment]:
        """Fetch the first comment of every unresolved review thread.

        Returns:
            PostedComments in thread order

        """
        comments: list[PostedComment] = []
        cursor: str | None = None
        while True:
            page = self._fetch_threads_page(cursor)
            for thread in page.get("nodes") or []:
                comment = self._comment_from_thread(thread)
                if comment is not None:
                    comments.append(comment)

            page_info = page.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                return comments
            cursor = page_info.get("endCursor")
            if not cursor:
                return comments

    def resolve_comment(self, comment: PostedComment) -> None:
        """Resolve the comment's review thread.

        Args:
            comment: Comment whose thread to resolve

        """
        if comment.thread_id is None:
            message = f"Comment {comment.id} has no review thread to resolve"
            raise PlatformError(message)

        self.logger.info("Resolving PR thread %s via gh GraphQL", comment.thread_id)
        self._gh(
            [
                "api",
                "graphql",
                "-f",
                f"query={_single_line(_RESOLVE_MUTATION)}",
                "-F",
                f"threadId={comment.thread_id}",
            ]
        )

    def update_comment_body(self, comment: PostedComment, body: str) -> None:
        """Replace the body of a review comment.

        Args:
            comment: Comment to update
            body: New body

        """
        self.logger.info("Updating PR comment %s", comment.id)
        self._gh(
            [
                "api",
                "--method",
                "PATCH",
                f"repos/{self.target.owner}/{self.target.repo}/pulls/comments/{comment.id}",
                "-f",
                f"body={body}",
            ]
        )
