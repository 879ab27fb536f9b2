"""Tests for rendering and publishing the combined review."""

from unittest.mock import MagicMock

from github import GithubException

from prpanel_core.diff.position import parse_diff
from prpanel_core.gh.pull_request import GitHubClient
from prpanel_core.gh.review import (
    COMMENT_MARKER,
    REVIEW_MARKER,
    build_review_body,
    delete_review_comments,
    determine_event,
    find_existing_review,
    format_inline_comment,
    prepare_review,
    publish,
)
from prpanel_core.models import ChangeContext, Finding, ReviewSummary, SynthesizedReview

HEAD = "c" * 40
CONTEXT = ChangeContext(
    owner="acme",
    repo="api",
    number=5,
    title="t",
    body="",
    author="dev",
    base_sha="a" * 40,
    head_sha=HEAD,
    base_ref="main",
    head_ref="topic",
)
DIFF = parse_diff(
    """\
--- a/src/db.py
+++ b/src/db.py
@@ -1,2 +1,3 @@
 import sqlite3
+query = f"SELECT * FROM users WHERE id={uid}"
 conn = sqlite3.connect()
"""
)

IN_DIFF = Finding(path="src/db.py", line=2, body="SQL injection", severity="critical", reviewers=("security",))
OUTSIDE = Finding(path="src/db.py", line=40, body="Unused helper", severity="info", reviewers=("quality",))


def _review(findings=(), passed=True, critical=0, infos=0):
    summary = ReviewSummary(total_reviewers=2, successful_reviewers=2, critical=critical, infos=infos)
    return SynthesizedReview(overview="## Overview\nSummary.", findings=list(findings), summary=summary, passed=passed)


def _client():
    client = GitHubClient(MagicMock(), "acme/api")
    pr = MagicMock()
    pr.url = "https://api.github.com/repos/acme/api/pulls/5"
    client.gh.get_repo.return_value.get_pull.return_value = pr
    client.gh.get_repo.return_value.url = "https://api.github.com/repos/acme/api"
    client.gh.requester.requestJsonAndCheck.return_value = ({}, {})
    return client, pr


def _gh_review(id, body):
    r = MagicMock()
    r.id = id
    r.body = body
    return r


def _gh_comment(id, review_id):
    c = MagicMock()
    c.id = id
    c.pull_request_review_id = review_id
    return c


class TestDetermineEvent:
    def test_failed_requests_changes(self):
        assert determine_event(_review(passed=False)) == "REQUEST_CHANGES"

    def test_passed_comments_by_default(self):
        assert determine_event(_review()) == "COMMENT"

    def test_approve_only_when_clean(self):
        assert determine_event(_review(), approve_on_pass=True) == "APPROVE"
        assert determine_event(_review([OUTSIDE], infos=1), approve_on_pass=True) == "COMMENT"


class TestReviewBody:
    def test_inline_comment_format(self):
        body = format_inline_comment(IN_DIFF)
        assert body.startswith("**[CRITICAL]** _security_")
        assert "SQL injection" in body
        assert body.endswith(COMMENT_MARKER)

    def test_body_carries_markers_and_summary(self):
        body = build_review_body(CONTEXT, _review([IN_DIFF], passed=False, critical=1), 1, [])
        assert body.startswith("## Overview")
        assert "> **Changes requested.** 1 critical finding(s). 2/2 reviewer(s) succeeded." in body
        assert "| `src/db.py` | 1 | - | - |" in body
        assert REVIEW_MARKER in body
        assert "*Reviewed by prpanel | 1 inline comments*" in body
        assert body.rstrip().endswith(f"<!-- prpanel-sha: {HEAD} -->")

    def test_clean_review(self):
        body = build_review_body(CONTEXT, _review(), 0, [])
        assert "> **Passed.** No issues found." in body
        assert "| File |" not in body


class TestPrepareReview:
    def test_splits_inline_and_unmapped(self):
        prepared = prepare_review(CONTEXT, _review([IN_DIFF, OUTSIDE], False, critical=1, infos=1), DIFF)
        assert prepared.event == "REQUEST_CHANGES"
        assert prepared.comments == [{"path": "src/db.py", "position": 2, "body": format_inline_comment(IN_DIFF)}]
        assert prepared.unmapped == [OUTSIDE]
        assert "### `src/db.py:40`" in prepared.body
        assert "Unused helper" in prepared.body


class TestFindExistingReview:
    def test_finds_marked_review_and_its_comments(self):
        client, pr = _client()
        pr.get_reviews.return_value = [_gh_review(1, "human review"), _gh_review(2, f"ours\n{REVIEW_MARKER}")]
        pr.get_review_comments.return_value = [_gh_comment(10, 2), _gh_comment(11, 1), _gh_comment(12, 2)]
        existing = find_existing_review(client, 5)
        assert existing.id == 2
        assert existing.comment_ids == [10, 12]

    def test_none_without_marker(self):
        client, pr = _client()
        pr.get_reviews.return_value = [_gh_review(1, None)]
        assert find_existing_review(client, 5) is None

    def test_api_error_is_treated_as_absent(self):
        client, pr = _client()
        pr.get_reviews.side_effect = GithubException(500, {"message": "boom"})
        assert find_existing_review(client, 5) is None


class TestDeleteReviewComments:
    def test_failures_are_skipped(self):
        client, _ = _client()
        client.gh.requester.requestJsonAndCheck.side_effect = [
            ({}, {}),
            GithubException(404, {"message": "Not Found"}),
            ({}, {}),
        ]
        assert delete_review_comments(client, [1, 2, 3]) == 2
        assert client.gh.requester.requestJsonAndCheck.call_count == 3


class TestPublish:
    def test_creates_review_when_none_exists(self):
        client, pr = _client()
        pr.get_reviews.return_value = []
        pr.create_review.return_value.id = 99

        result = publish(client, CONTEXT, _review([IN_DIFF], False, critical=1), DIFF)

        assert result.is_update is False
        assert result.review_id == 99
        assert result.review_url == "https://github.com/acme/api/pull/5#pullrequestreview-99"
        kwargs = pr.create_review.call_args.kwargs
        assert kwargs["event"] == "REQUEST_CHANGES"
        assert kwargs["comments"][0]["position"] == 2
        assert REVIEW_MARKER in kwargs["body"]
        client.gh.get_repo.return_value.get_commit.assert_called_once_with(HEAD)

    def test_updates_existing_review_in_place(self):
        client, pr = _client()
        pr.get_reviews.return_value = [_gh_review(42, f"old\n{REVIEW_MARKER}")]
        pr.get_review_comments.return_value = [_gh_comment(7, 42), _gh_comment(8, 42)]

        result = publish(client, CONTEXT, _review([IN_DIFF], False, critical=1), DIFF)

        assert result.is_update is True
        assert result.review_id == 42
        pr.create_review.assert_not_called()
        calls = [c.args for c in client.gh.requester.requestJsonAndCheck.call_args_list]
        verbs = [verb for verb, _ in calls]
        assert verbs == ["DELETE", "DELETE", "PUT", "POST"]
        assert calls[0][1].endswith("/pulls/comments/7")
        assert calls[2][1] == f"{pr.url}/reviews/42"
        post = client.gh.requester.requestJsonAndCheck.call_args_list[3].kwargs["input"]
        assert post["commit_id"] == HEAD
        assert post["position"] == 2

    def test_update_with_no_findings_posts_no_comments(self):
        client, pr = _client()
        pr.get_reviews.return_value = [_gh_review(42, REVIEW_MARKER)]
        pr.get_review_comments.return_value = []

        publish(client, CONTEXT, _review(), DIFF)

        verbs = [c.args[0] for c in client.gh.requester.requestJsonAndCheck.call_args_list]
        assert verbs == ["PUT"]
