"""When to re-check earlier review comments."""

from __future__ import annotations

PR_OPENED = "pr-opened"
PR_PUSH = "pr-push"
COMMENT_REQUEST = "comment-request"

_REQUEST_PHRASES = ("@prpanel review", "/prpanel review")


def is_review_request(body: str | None) -> bool:
    """True if a PR comment asks for a review (``@prpanel review`` or ``/prpanel review``)."""
    if not body:
        return False
    normalized = body.lower()
    return any(phrase in normalized for phrase in _REQUEST_PHRASES)


def detect_trigger_event(action: str | None, comment_body: str | None = None) -> str | None:
    if action == "opened":
        return PR_OPENED
    if action == "synchronize":
        return PR_PUSH
    if action == "created" and is_review_request(comment_body):
        return COMMENT_REQUEST
    return None


def should_run_resolution(trigger: str | None, policy: str) -> bool:
    """Decide whether a trigger warrants a resolution check under the configured policy.

    A freshly opened PR has nothing to resolve; an explicit request always
    runs; pushes only run under ``all-pushes``.
    """
    if trigger == COMMENT_REQUEST:
        return True
    if trigger == PR_PUSH:
        return policy == "all-pushes"
    return False
