"""Tests for adapter_github module."""

import json
from unittest.mock import patch

import pytest

from review_sweep.adapter import PlatformError, RateLimiter
from review_sweep.adapter_github import GitHubAdapter, GitHubTarget
from review_sweep.resolution import Platform, PostedComment

OWNER = "octo"
REPO = "repo"
PR_NUMBER = 42
COMMENT_ID = 1001
SECOND_COMMENT_ID = 1002
THREAD_ID = "PRRT_kwDOA"
SECOND_THREAD_ID = "PRRT_kwDOB"
BODY = "🔴 🐺 **pr_agent**: Issue\n<!-- review-sweep:fingerprint:v1:abc -->"
END_CURSOR = "Y3Vyc29yOjE="
GH_FAILURE_RC = 1
INTERVAL_SECONDS = 0.5
THIRD_THREAD_ID = "PRRT_kwDOC"
THIRD_COMMENT_ID = 1003


def _thread(
    thread_id: str,
    comment_id: int,
    *,
    resolved: bool = False,
) -> dict:
    return {
        "id": thread_id,
        "isResolved": resolved,
        "path": "src/app.py",
        "comments": {"nodes": [{"databaseId": comment_id, "body": BODY}]},
    }


def _page(threads: list[dict], end_cursor: str | None = None) -> tuple[int, str, str]:
    payload = {
        "data": {
            "repository": {
                "pullRequest": {
                    "reviewThreads": {
                        "pageInfo": {
                            "hasNextPage": end_cursor is not None,
                            "endCursor": end_cursor,
                        },
                        "nodes": threads,
                    },
                },
            },
        },
    }
    return 0, json.dumps(payload), ""


@pytest.fixture
def adapter() -> GitHubAdapter:
    """Create a GitHub adapter for a fixed pull request."""
    return GitHubAdapter(GitHubTarget(OWNER, REPO, PR_NUMBER))


class TestFetchComments:
    """Tests for GitHubAdapter.fetch_comments."""

    def test_single_page(self, adapter: GitHubAdapter) -> None:
        """Test fetching unresolved threads and skipping resolved ones."""
        page = _page(
            [
                _thread(THREAD_ID, COMMENT_ID),
                _thread(SECOND_THREAD_ID, SECOND_COMMENT_ID, resolved=True),
            ],
        )
        with patch("review_sweep.adapter_github.run_command", return_value=page) as mock_run:
            comments = adapter.fetch_comments()

        assert comments == [
            PostedComment(COMMENT_ID, Platform.GITHUB, BODY, thread_id=THREAD_ID),
        ]
        args = mock_run.call_args.args[0]
        assert args[:3] == ["gh", "api", "graphql"]
        assert f"owner={OWNER}" in args
        assert f"number={PR_NUMBER}" in args
        assert not any(arg.startswith("cursor=") for arg in args)

    def test_paginates(self, adapter: GitHubAdapter) -> None:
        """Test following endCursor until the last page."""
        pages = [
            _page([_thread(THREAD_ID, COMMENT_ID)], END_CURSOR),
            _page([_thread(SECOND_THREAD_ID, SECOND_COMMENT_ID)]),
        ]
        with patch("review_sweep.adapter_github.run_command", side_effect=pages) as mock_run:
            comments = adapter.fetch_comments()

        assert [comment.id for comment in comments] == [COMMENT_ID, SECOND_COMMENT_ID]
        assert f"cursor={END_CURSOR}" in mock_run.call_args_list[1].args[0]

    def test_every_page_goes_through_the_limiter(self) -> None:
        """Test that each page request waits for its turn like any other call."""
        sleeps: list[float] = []
        limiter = RateLimiter(1, INTERVAL_SECONDS, clock=lambda: 0.0, sleep=sleeps.append)
        adapter = GitHubAdapter(GitHubTarget(OWNER, REPO, PR_NUMBER), limiter=limiter)
        pages = [
            _page([_thread(THREAD_ID, COMMENT_ID)], END_CURSOR),
            _page([_thread(SECOND_THREAD_ID, SECOND_COMMENT_ID)], END_CURSOR),
            _page([_thread(THIRD_THREAD_ID, THIRD_COMMENT_ID)]),
        ]
        with patch("review_sweep.adapter_github.run_command", side_effect=pages):
            comments = adapter.fetch_comments()

        assert len(comments) == len(pages)
        assert sleeps == pytest.approx([INTERVAL_SECONDS, 2 * INTERVAL_SECONDS])

    def test_thread_without_id_is_skipped(self, adapter: GitHubAdapter) -> None:
        """Test that a thread node missing its id yields nothing instead of failing."""
        thread = _thread(THREAD_ID, COMMENT_ID)
        del thread["id"]
        page = _page([thread, _thread(SECOND_THREAD_ID, SECOND_COMMENT_ID)])
        with patch("review_sweep.adapter_github.run_command", return_value=page):
            comments = adapter.fetch_comments()

        assert [comment.id for comment in comments] == [SECOND_COMMENT_ID]

    def test_thread_without_comments_is_skipped(self, adapter: GitHubAdapter) -> None:
        """Test that an empty thread yields nothing."""
        thread = _thread(THREAD_ID, COMMENT_ID)
        thread["comments"] = {"nodes": []}
        with patch("review_sweep.adapter_github.run_command", return_value=_page([thread])):
            assert adapter.fetch_comments() == []

    def test_gh_failure_raises(self, adapter: GitHubAdapter) -> None:
        """Test that a failing gh call raises PlatformError."""
        failure = (GH_FAILURE_RC, "", "HTTP 401: Bad credentials")
        with (
            patch("review_sweep.adapter_github.run_command", return_value=failure),
            pytest.raises(PlatformError, match="Bad credentials"),
        ):
            adapter.fetch_comments()

    def test_unexpected_payload_raises(self, adapter: GitHubAdapter) -> None:
        """Test that an unexpected payload raises PlatformError."""
        with (
            patch("review_sweep.adapter_github.run_command", return_value=(0, "not json", "")),
            pytest.raises(PlatformError, match="Unexpected reviewThreads payload"),
        ):
            adapter.fetch_comments()


class TestMutations:
    """Tests for resolving and updating comments."""

    def test_resolve_comment(self, adapter: GitHubAdapter) -> None:
        """Test resolving a review thread via GraphQL."""
        comment = PostedComment(COMMENT_ID, Platform.GITHUB, BODY, thread_id=THREAD_ID)
        with patch("review_sweep.adapter_github.run_command", return_value=(0, "{}", "")) as run:
            adapter.resolve_comment(comment)

        args = run.call_args.args[0]
        assert "resolveReviewThread" in args[4]
        assert args[-1] == f"threadId={THREAD_ID}"

    def test_resolve_without_thread_raises(self, adapter: GitHubAdapter) -> None:
        """Test that a comment without a thread cannot be resolved."""
        comment = PostedComment(COMMENT_ID, Platform.GITHUB, BODY)
        with (
            patch("review_sweep.adapter_github.run_command") as run,
            pytest.raises(PlatformError, match="no review thread"),
        ):
            adapter.resolve_comment(comment)
        run.assert_not_called()

    def test_update_comment_body(self, adapter: GitHubAdapter) -> None:
        """Test patching a review comment body via REST."""
        comment = PostedComment(COMMENT_ID, Platform.GITHUB, BODY, thread_id=THREAD_ID)
        with patch("review_sweep.adapter_github.run_command", return_value=(0, "{}", "")) as run:
            adapter.update_comment_body(comment, "new body")

        assert run.call_args.args[0] == [
            "gh",
            "api",
            "--method",
            "PATCH",
            f"repos/{OWNER}/{REPO}/pulls/comments/{COMMENT_ID}",
            "-f",
            "body=new body",
        ]
