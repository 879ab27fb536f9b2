"""Publish a synthesized review to a pull request, updating our previous review in place.

Reviews and inline comments owned by prpanel are recognised by HTML comment
markers in their bodies; GitHub keeps no other record of them.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from github import GithubException

from prpanel_core.diff.position import ParsedDiff, format_unmapped_findings, map_findings_to_positions
from prpanel_core.models import Finding, MappedFinding, PublishResult, SynthesizedReview

if TYPE_CHECKING:
    from prpanel_core.gh.pull_request import GitHubClient
    from prpanel_core.models import ChangeContext

logger = logging.getLogger(__name__)

REVIEW_MARKER = "<!-- prpanel-review -->"
COMMENT_MARKER = "<!-- prpanel-comment -->"
SHA_MARKER_RE = re.compile(r"<!-- prpanel-sha: ([0-9a-f]{40}) -->")

_SEVERITIES = ("critical", "warning", "info")


@dataclass
class ExistingReview:
    id: int
    comment_ids: list[int] = field(default_factory=list)


@dataclass
class PreparedReview:
    """Everything needed to post a review, computed without touching GitHub."""

    body: str
    event: str
    comments: list[dict]
    unmapped: list[Finding]


def sha_marker(head_sha: str) -> str:
    return f"<!-- prpanel-sha: {head_sha} -->"


def determine_event(review: SynthesizedReview, approve_on_pass: bool = False) -> str:
    """Choose the GitHub review event from the verdict."""
    if not review.passed:
        return "REQUEST_CHANGES"
    if approve_on_pass and not review.findings:
        return "APPROVE"
    return "COMMENT"


def format_inline_comment(finding: Finding) -> str:
    body = f"**[{finding.severity.upper()}]**"
    if finding.reviewers:
        body += f" _{', '.join(finding.reviewers)}_"
    return f"{body}\n\n{finding.body}\n\n{COMMENT_MARKER}"


def _severity_line(review: SynthesizedReview) -> str:
    s = review.summary
    if s.total_findings == 0:
        verdict = "No issues found."
    else:
        parts = [f"{n} {label}" for n, label in ((s.critical, "critical"), (s.warnings, "warning"), (s.infos, "info")) if n]
        verdict = ", ".join(parts) + " finding(s)."
    status = "Passed" if review.passed else "Changes requested"
    return f"> **{status}.** {verdict} {s.successful_reviewers}/{s.total_reviewers} reviewer(s) succeeded."


def _files_table(findings: list[Finding]) -> list[str]:
    counts: dict[str, Counter] = {}
    for f in findings:
        counts.setdefault(f.path, Counter())[f.severity] += 1
    if not counts:
        return []

    lines = ["| File | Critical | Warning | Info |", "|------|:--------:|:-------:|:----:|"]
    for path, c in sorted(counts.items(), key=lambda item: sum(item[1].values()), reverse=True):
        cells = " | ".join(str(c[s]) if c[s] else "-" for s in _SEVERITIES)
        lines.append(f"| `{path}` | {cells} |")
    return lines


def build_review_body(
    context: ChangeContext,
    review: SynthesizedReview,
    inline_count: int,
    unmapped: list[Finding],
) -> str:
    lines = [review.overview.rstrip(), "", _severity_line(review)]

    table = _files_table(review.findings)
    if table:
        lines += [""] + table

    notes = format_unmapped_findings(unmapped)
    if notes:
        lines.append(notes)

    lines += [
        "",
        REVIEW_MARKER,
        "---",
        f"*Reviewed by prpanel | {inline_count} inline comments*",
        sha_marker(context.head_sha),
    ]
    return "\n".join(lines)


def prepare_review(
    context: ChangeContext,
    review: SynthesizedReview,
    parsed_diff: ParsedDiff,
    approve_on_pass: bool = False,
) -> PreparedReview:
    """Map findings onto diff positions and render the review body.

    Findings outside the diff move into the body's "Additional Notes" block.
    """
    mapped, unmapped = map_findings_to_positions(parsed_diff, review.findings)
    if unmapped:
        logger.warning("%d finding(s) are outside the diff; moving them to the review body", len(unmapped))
    return PreparedReview(
        body=build_review_body(context, review, len(mapped), unmapped),
        event=determine_event(review, approve_on_pass),
        comments=[_api_comment(m) for m in mapped],
        unmapped=unmapped,
    )


def _api_comment(mapped: MappedFinding) -> dict:
    return {"path": mapped.finding.path, "position": mapped.position, "body": format_inline_comment(mapped.finding)}


def find_existing_review(client: GitHubClient, number: int) -> ExistingReview | None:
    """Return our earlier review on the PR (and its inline comment ids), if any."""
    pr = client.pull(number)
    try:
        ours = next((r for r in pr.get_reviews() if REVIEW_MARKER in (r.body or "")), None)
        if ours is None:
            return None
        comment_ids = [c.id for c in pr.get_review_comments() if c.pull_request_review_id == ours.id]
    except GithubException as e:
        logger.error("Error finding existing review on PR #%d: %s", number, e)
        return None
    return ExistingReview(id=ours.id, comment_ids=comment_ids)


def delete_review_comments(client: GitHubClient, comment_ids: list[int]) -> int:
    """Delete review comments one by one; failures are logged and skipped. Returns the number deleted."""
    deleted = 0
    for comment_id in comment_ids:
        try:
            client.rest("DELETE", f"{client.repo.url}/pulls/comments/{comment_id}")
            deleted += 1
        except GithubException as e:
            logger.warning("Failed to delete comment %d: %s", comment_id, e)
    return deleted


def update_review_body(client: GitHubClient, number: int, review_id: int, body: str) -> None:
    client.rest("PUT", f"{client.pull(number).url}/reviews/{review_id}", {"body": body})


def add_review_comments(client: GitHubClient, number: int, commit_id: str, comments: list[dict]) -> int:
    """Post standalone review comments; failures are logged and skipped. Returns the number added."""
    url = f"{client.pull(number).url}/comments"
    added = 0
    for comment in comments:
        try:
            client.rest("POST", url, {**comment, "commit_id": commit_id})
            added += 1
        except GithubException as e:
            logger.warning("Failed to add comment on %s:%s: %s", comment["path"], comment["position"], e)
    return added


def _review_url(context: ChangeContext, review_id: int) -> str:
    return f"https://github.com/{context.full_name}/pull/{context.number}#pullrequestreview-{review_id}"


def publish(
    client: GitHubClient,
    context: ChangeContext,
    review: SynthesizedReview,
    parsed_diff: ParsedDiff,
    approve_on_pass: bool = False,
) -> PublishResult:
    """Create the review, or rewrite our previous one in place.

    A submitted review cannot take new comments, so on update the old inline
    comments are deleted and the new ones are posted individually.
    """
    prepared = prepare_review(context, review, parsed_diff, approve_on_pass)
    existing = find_existing_review(client, context.number)

    if existing is not None:
        logger.info("Updating existing review %d on PR #%d", existing.id, context.number)
        if existing.comment_ids:
            delete_review_comments(client, existing.comment_ids)
        update_review_body(client, context.number, existing.id, prepared.body)
        if prepared.comments:
            add_review_comments(client, context.number, context.head_sha, prepared.comments)
        return PublishResult(review_id=existing.id, review_url=_review_url(context, existing.id), is_update=True)

    logger.info("Creating %s review with %d inline comment(s)", prepared.event, len(prepared.comments))
    created = client.pull(context.number).create_review(
        commit=client.repo.get_commit(context.head_sha),
        body=prepared.body,
        event=prepared.event,
        comments=prepared.comments,
    )
    return PublishResult(review_id=created.id, review_url=_review_url(context, created.id), is_update=False)
