"""Azure DevOps adapter over the Git pull request threads REST API."""

import logging
from dataclasses import dataclass
from types import TracebackType
from urllib.parse import quote

import httpx

from review_sweep.adapter import PlatformAdapter, RateLimiter
from review_sweep.resolution import Platform, PostedComment

ADO_BASE_URL = "https://dev.azure.com"
ADO_API_VERSION = "7.1"
DEFAULT_TIMEOUT_SECONDS = 30.0

RESOLVED_THREAD_STATUS = "closed"
# Thread statuses still open for review; ADO serializes them as names or numbers
OPEN_THREAD_STATUSES = frozenset({"active", "pending", 1, 6})


@dataclass(frozen=True)
class AdoTarget:
    """Pull request the Azure DevOps adapter works on."""

    organization: str
    project: str
    repository: str
    pr_number: int

    @property
    def base_url(self) -> str:
        """REST root of the pull request."""
        return (
            f"{ADO_BASE_URL}/{quote(self.organization, safe='')}/{quote(self.project, safe='')}"
            f"/_apis/git/repositories/{quote(self.repository, safe='')}"
            f"/pullRequests/{self.pr_number}"
        )


class AdoAdapter(PlatformAdapter):
    """Closes and rewrites comment threads on an Azure DevOps pull request."""

    platform = Platform.ADO

    def __init__(
        self,
        target: AdoTarget,
        token: str | None = None,
        limiter: RateLimiter | None = None,
        logger: logging.Logger | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the Azure DevOps adapter.

        Args:
            target: Pull request to work on
            token: Personal access token (ignored when a client is given)
            limiter: Shared rate limiter
            logger: Logger instance for output
            client: Preconfigured HTTP client rooted at the pull request

        """
        super().__init__(limiter=limiter, logger=logger)
        self.target = target
        self._owns_client = client is None
        self.client = client or httpx.Client(
            base_url=target.base_url,
            auth=("", token or ""),
            timeout=DEFAULT_TIMEOUT_SECONDS,
        )

    def __enter__(self) -> "AdoAdapter":
        """Use the adapter as a context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        """Close the HTTP client."""
        self.close()

    def close(self) -> None:
        """Close the HTTP client if this adapter created it."""
        super().close()
        if self._owns_client:
            self.client.close()

    def _request(self, method: str, path: str, payload: dict | None = None) -> httpx.Response:
        """Send a request and raise on HTTP errors.

        Raises:
            httpx.HTTPStatusError: If the response status is 4xx or 5xx

        """
        response = self.client.request(
            method,
            path,
            params={"api-version": ADO_API_VERSION},
            json=payload,
        )
        response.raise_for_status()
        return response

    @staticmethod
    def _comment_from_thread(thread: dict) -> PostedComment | None:
        """Build a PostedComment from an open thread.

        Args:
            thread: Thread payload from the REST API

        Returns:
            PostedComment for the thread's first comment, or None if unusable

        """
        if thread.get("isDeleted") or thread.get("status") not in OPEN_THREAD_STATUSES:
            return None

        comments = [
            comment
            for comment in thread.get("comments") or []
            if isinstance(comment, dict) and not comment.get("isDeleted")
        ]
        if not comments:
            return None

        first = comments[0]
        thread_id = thread.get("id")
        comment_id = first.get("id")
        body = first.get("content")
        if not isinstance(thread_id, int) or not isinstance(comment_id, int):
            return None
        if not isinstance(body, str):
            return None

        return PostedComment(
            id=thread_id,
            platform=Platform.ADO,
            body=body,
            thread_id=thread_id,
            body_comment_id=comment_id,
        )

    def fetch_comments(self) -> list[PostedComment]:
        """Fetch the first comment of every active or pending thread.

        Returns:
            PostedComments in thread order

        """
        with self.limiter:
            payload = self._request("GET", "threads").json()
        threads = payload.get("value") if isinstance(payload, dict) else None
        if not isinstance(threads, list):
            return []
        comments = (
            self._comment_from_thread(thread) for thread in threads if isinstance(thread, dict)
        )
        return [comment for comment in comments if comment is not None]

    def resolve_comment(self, comment: PostedComment) -> None:
        """Close the comment's thread.

        Args:
            comment: Thread to close

        """
        self.logger.info("Closing PR thread %s", comment.thread_id)
        self._request(
            "PATCH",
            f"threads/{comment.thread_id}",
            payload={"status": RESOLVED_THREAD_STATUS},
        )

    def update_comment_body(self, comment: PostedComment, body: str) -> None:
        """Replace the content of the thread's first comment.

        Args:
            comment: Thread whose first comment to update
            body: New content

        """
        self.logger.info("Updating PR thread %s", comment.thread_id)
        self._request(
            "PATCH",
            f"threads/{comment.thread_id}/comments/{comment.body_comment_id}",
            payload={"content": body},
        )
