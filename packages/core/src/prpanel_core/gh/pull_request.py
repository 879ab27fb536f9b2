from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass

from github import Auth, Github, GithubException

from prpanel_core.gh.review import SHA_MARKER_RE
from prpanel_core.models import ChangeContext, CommitInfo, FileChange

logger = logging.getLogger(__name__)

PR_QUERY = """
query($owner: String!, $repo: String!, $number: Int!) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $number) {
      title
      body
      author { login }
      baseRefName
      headRefName
      baseRefOid
      headRefOid
      createdAt
      additions
      deletions
      state
      commits(first: 100) {
        nodes {
          commit {
            oid
            message
            author { name email }
          }
        }
      }
      files(first: 100) {
        nodes { path additions deletions changeType }
      }
      comments(first: 100) {
        nodes { id databaseId body author { login } createdAt }
      }
      reviews(first: 100) {
        nodes { id databaseId author { login } body state submittedAt }
      }
    }
  }
}
"""

# GraphQL changeType -> REST-style file status
_CHANGE_TYPES = {"ADDED": "added", "DELETED": "removed", "RENAMED": "renamed"}


class GitHubClient:
    """One repository on GitHub, reachable over REST (PyGithub) and GraphQL.

    PyGithub has no wrappers for review threads or for editing a submitted
    review, so those go through its requester directly.
    """

    def __init__(self, gh: Github, full_name: str):
        if "/" not in full_name:
            raise ValueError(f"Repository must be in 'owner/name' form, got {full_name!r}")
        self.gh = gh
        self.full_name = full_name
        self.owner, self.name = full_name.split("/", 1)
        self._repo = None
        self._pulls: dict = {}

    @property
    def repo(self):
        if self._repo is None:
            self._repo = self.gh.get_repo(self.full_name)
        return self._repo

    def pull(self, number: int):
        if number not in self._pulls:
            self._pulls[number] = self.repo.get_pull(number)
        return self._pulls[number]

    def graphql(self, query: str, variables: dict) -> dict:
        """Run a GraphQL query and return its ``data`` object. Errors raise GithubException."""
        _, payload = self.gh.requester.graphql_query(query, variables)
        return payload.get("data") or {}

    def rest(self, verb: str, url: str, body: dict | None = None):
        """Issue a REST call PyGithub doesn't wrap. ``url`` may be absolute or API-relative."""
        _, data = self.gh.requester.requestJsonAndCheck(verb, url, input=body)
        return data


def get_client(token: str, full_name: str) -> GitHubClient:
    return GitHubClient(Github(auth=Auth.Token(token)), full_name)


def fetch_change_context(client: GitHubClient, number: int) -> ChangeContext:
    """Fetch title, refs, files, commits, comments and reviews of a PR in one GraphQL query."""
    data = client.graphql(PR_QUERY, {"owner": client.owner, "repo": client.name, "number": number})
    pr = (data.get("repository") or {}).get("pullRequest")
    if not pr:
        raise LookupError(f"PR #{number} not found in {client.full_name}")

    files = tuple(
        FileChange(
            path=node["path"],
            status=_CHANGE_TYPES.get(node.get("changeType", ""), "modified"),
            additions=node.get("additions") or 0,
            deletions=node.get("deletions") or 0,
        )
        for node in pr["files"]["nodes"]
    )
    commits = tuple(
        CommitInfo(
            sha=node["commit"]["oid"],
            message=node["commit"]["message"],
            author=(node["commit"].get("author") or {}).get("name") or "",
        )
        for node in pr["commits"]["nodes"]
    )
    comments = tuple(
        {
            "id": c["id"],
            "body": c.get("body") or "",
            "author": (c.get("author") or {}).get("login", ""),
            "created_at": c.get("createdAt"),
        }
        for c in pr["comments"]["nodes"]
    )
    reviews = tuple(
        {
            "id": int(r["databaseId"]) if r.get("databaseId") is not None else None,
            "author": (r.get("author") or {}).get("login", ""),
            "body": r.get("body") or "",
            "state": r.get("state"),
            "submitted_at": r.get("submittedAt"),
        }
        for r in pr["reviews"]["nodes"]
    )

    return ChangeContext(
        owner=client.owner,
        repo=client.name,
        number=number,
        title=pr["title"],
        body=pr.get("body") or "",
        # author is null for deleted ("ghost") accounts
        author=(pr.get("author") or {}).get("login", "ghost"),
        base_sha=pr["baseRefOid"],
        head_sha=pr["headRefOid"],
        base_ref=pr["baseRefName"],
        head_ref=pr["headRefName"],
        additions=pr.get("additions") or 0,
        deletions=pr.get("deletions") or 0,
        state=pr.get("state") or "OPEN",
        created_at=pr.get("createdAt") or "",
        files=files,
        commits=commits,
        comments=comments,
        reviews=reviews,
    )


def _file_section(changed) -> str:
    new_path = changed.filename
    old_path = changed.previous_filename or new_path
    from_header = "/dev/null" if changed.status == "added" else f"a/{old_path}"
    to_header = "/dev/null" if changed.status == "removed" else f"b/{new_path}"
    lines = [f"diff --git a/{old_path} b/{new_path}", f"--- {from_header}", f"+++ {to_header}"]
    if changed.patch:
        lines.append(changed.patch.rstrip("\n"))
    return "\n".join(lines)


def fetch_diff(client: GitHubClient, number: int) -> str:
    """Assemble a unified diff for the PR from its changed-file patches.

    Binary or oversized files have no patch and contribute headers only.
    """
    sections = [_file_section(f) for f in client.pull(number).get_files()]
    return "\n".join(sections) + "\n" if sections else ""


def fetch_file_content(client: GitHubClient, path: str, ref: str) -> str | None:
    """Return a file's text at ``ref``, or None if it is missing, a directory or unreadable."""
    try:
        contents = client.repo.get_contents(path, ref=ref)
    except GithubException as e:
        logger.debug("Could not fetch %s@%s: %s", path, ref[:7], e)
        return None
    if isinstance(contents, list):
        return None
    try:
        return contents.decoded_content.decode("utf-8", errors="replace")
    except (AssertionError, GithubException) as e:
        # decoded_content asserts on non-base64 encodings (files over 1 MB)
        logger.debug("Could not decode %s@%s: %s", path, ref[:7], e)
        return None


def get_last_reviewed_sha(pr) -> str | None:
    """Return the most recent HEAD SHA stored by prpanel in a review body, or None."""
    last_sha = None
    for review in pr.get_reviews():
        match = SHA_MARKER_RE.search(review.body or "")
        if match:
            last_sha = match.group(1)
    return last_sha


@dataclass(frozen=True)
class ActionsEvent:
    """The parts of a GitHub Actions event payload the CLI cares about."""

    repository: str
    number: int
    action: str | None = None
    comment_body: str | None = None


def pr_context_from_event(event_path: str | None = None, repository: str | None = None) -> ActionsEvent | None:
    """Read the PR number and trigger from ``GITHUB_EVENT_PATH``; None outside a PR event."""
    event_path = event_path or os.environ.get("GITHUB_EVENT_PATH")
    repository = repository or os.environ.get("GITHUB_REPOSITORY")
    if not event_path or not repository:
        return None

    try:
        with open(event_path) as f:
            event = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not read event payload %s: %s", event_path, e)
        return None

    if event.get("pull_request"):
        number = event["pull_request"].get("number")
    elif (event.get("issue") or {}).get("pull_request"):
        # issue_comment events on a PR
        number = event["issue"].get("number")
    else:
        return None
    if not isinstance(number, int):
        return None

    return ActionsEvent(
        repository=repository,
        number=number,
        action=event.get("action"),
        comment_body=(event.get("comment") or {}).get("body"),
    )
