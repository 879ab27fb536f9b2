"""Review-thread operations. These only exist in GitHub's GraphQL API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from prpanel_core.models import ReviewThread

if TYPE_CHECKING:
    from prpanel_core.gh.pull_request import GitHubClient

logger = logging.getLogger(__name__)

FETCH_REVIEW_THREADS = """
query GetReviewThreads($owner: String!, $repo: String!, $pr: Int!, $cursor: String) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $pr) {
      reviewThreads(first: 100, after: $cursor) {
        pageInfo { hasNextPage endCursor }
        nodes {
          id
          isResolved
          comments(first: 1) { nodes { databaseId } }
        }
      }
    }
  }
}
"""

ADD_REPLY = """
mutation AddReply($threadId: ID!, $body: String!) {
  addPullRequestReviewThreadReply(input: {pullRequestReviewThreadId: $threadId, body: $body}) {
    comment { id }
  }
}
"""

RESOLVE_THREAD = """
mutation ResolveThread($threadId: ID!) {
  resolveReviewThread(input: {threadId: $threadId}) {
    thread { isResolved }
  }
}
"""


def fetch_all_threads(client: GitHubClient, number: int) -> list[ReviewThread]:
    """Return every review thread on the PR, following the cursor until the last page."""
    threads: list[ReviewThread] = []
    cursor = None
    while True:
        data = client.graphql(
            FETCH_REVIEW_THREADS,
            {"owner": client.owner, "repo": client.name, "pr": number, "cursor": cursor},
        )
        page = data["repository"]["pullRequest"]["reviewThreads"]
        for node in page.get("nodes") or []:
            first = ((node.get("comments") or {}).get("nodes") or [{}])[0]
            threads.append(
                ReviewThread(
                    id=node["id"],
                    is_resolved=bool(node.get("isResolved")),
                    comment_database_id=first.get("databaseId"),
                )
            )
        if not page["pageInfo"]["hasNextPage"]:
            break
        cursor = page["pageInfo"]["endCursor"]

    logger.debug("Fetched %d review thread(s) for PR #%d", len(threads), number)
    return threads


def reply_to_thread(client: GitHubClient, thread_id: str, body: str) -> None:
    client.graphql(ADD_REPLY, {"threadId": thread_id, "body": body})


def resolve_thread(client: GitHubClient, thread_id: str) -> None:
    client.graphql(RESOLVE_THREAD, {"threadId": thread_id})


def reply_and_resolve(client: GitHubClient, thread_id: str, body: str) -> None:
    reply_to_thread(client, thread_id, body)
    resolve_thread(client, thread_id)
