"""Re-check earlier prpanel comments against the current head and close the ones that were fixed.

Flow: list our inline comments, map them to review threads, auto-resolve
those on deleted files, then ask the judgment once about everything else and
act on its verdicts. Every GitHub mutation passes through a MutationGate.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from prpanel_core.diff.position import iter_diff_lines
from prpanel_core.gh.pull_request import fetch_file_content
from prpanel_core.gh.review import COMMENT_MARKER
from prpanel_core.gh.threads import fetch_all_threads, reply_and_resolve, reply_to_thread
from prpanel_core.models import (
    FIXED,
    NOT_FIXED,
    PARTIALLY_FIXED,
    ResolutionResult,
    ResolutionVerdict,
    TrackedComment,
)
from prpanel_core.resolution.gate import MutationGate
from prpanel_core.resolution.judgment import CodeSnippet, ResolutionInput

if TYPE_CHECKING:
    from prpanel_core.gh.pull_request import GitHubClient
    from prpanel_core.models import ChangeContext

logger = logging.getLogger(__name__)

Judgment = Callable[[ResolutionInput], Awaitable[list[ResolutionVerdict]]]

MAX_CONCURRENCY = 5
SNIPPET_CONTEXT_LINES = 10
_MAX_DIFF_EXCERPT_CHARS = 20_000

REPLY_FIXED = "✅ This issue has been addressed in recent commits."
REPLY_FILE_DELETED = "📁 File was deleted — resolving."


def reply_partially_fixed(reason: str) -> str:
    return f"⚠️ Partially addressed: {reason}"


def fetch_tracked_comments(client: GitHubClient, number: int) -> list[TrackedComment]:
    """Return every inline comment on the PR that carries our comment marker."""
    tracked = []
    for c in client.pull(number).get_review_comments():
        if COMMENT_MARKER not in (c.body or ""):
            continue
        tracked.append(TrackedComment(id=c.id, path=c.path, line=c.line or c.original_line or 0, body=c.body))
    return tracked


def extract_snippet(content: str, line: int, context_lines: int = SNIPPET_CONTEXT_LINES) -> str:
    """Render the lines around ``line`` with line numbers, marking ``line`` with ``>``."""
    lines = content.split("\n")
    start = max(0, line - context_lines - 1)
    end = min(len(lines), line + context_lines)
    rendered = []
    for offset, text in enumerate(lines[start:end]):
        number = start + offset + 1
        marker = ">" if number == line else " "
        rendered.append(f"{marker}{number:>4}: {text}")
    return "\n".join(rendered)


def diff_excerpt(raw_diff: str, paths: set[str], limit: int = _MAX_DIFF_EXCERPT_CHARS) -> str:
    """Keep only the sections of a unified diff that touch ``paths``."""
    kept: list[str] = []
    keep = False
    for kind, line, _, _ in iter_diff_lines(raw_diff or ""):
        if kind == "file":
            keep = any(line.endswith(f" b/{p}") or f" a/{p} " in line for p in paths)
        if keep:
            kept.append(line)
    excerpt = "\n".join(kept)
    return excerpt[:limit]


async def _mutate(gate: MutationGate, label: str, func, *args) -> bool:
    async with gate:
        try:
            await asyncio.to_thread(func, *args)
        except Exception as e:
            # PyGithub lets transport errors from requests through unwrapped.
            logger.warning("Failed to %s: %s", label, e)
            return False
    return True


async def _fetch_snippets(
    client: GitHubClient, comments: list[TrackedComment], head_sha: str
) -> dict[int, CodeSnippet]:
    paths = sorted({c.path for c in comments})
    contents = await asyncio.gather(*(asyncio.to_thread(fetch_file_content, client, p, head_sha) for p in paths))
    by_path = dict(zip(paths, contents))

    snippets = {}
    for comment in comments:
        content = by_path.get(comment.path)
        if content is None:
            logger.warning("Skipping comment %d: %s not readable at %s", comment.id, comment.path, head_sha[:7])
            continue
        snippets[comment.id] = CodeSnippet(path=comment.path, line=comment.line, content=extract_snippet(content, comment.line))
    return snippets


async def check(
    client: GitHubClient,
    context: ChangeContext,
    diff: str,
    judgment: Judgment,
    max_concurrency: int = MAX_CONCURRENCY,
) -> ResolutionResult:
    """Check whether earlier prpanel comments have been addressed and act on the verdicts.

    ``checked`` counts every tracked comment, including those auto-resolved
    because their file was deleted. The judgment is called at most once, and
    not at all when nothing is left to evaluate.
    """
    comments = await asyncio.to_thread(fetch_tracked_comments, client, context.number)
    logger.info("Found %d prpanel comment(s) to check", len(comments))
    result = ResolutionResult(checked=len(comments))
    if not comments:
        return result

    threads = await asyncio.to_thread(fetch_all_threads, client, context.number)
    thread_by_comment = {t.comment_database_id: t for t in threads if t.comment_database_id is not None}

    open_comments: list[TrackedComment] = []
    for comment in comments:
        thread = thread_by_comment.get(comment.id)
        if thread is None:
            logger.warning("No thread found for comment %d", comment.id)
            continue
        if thread.is_resolved:
            logger.debug("Thread for comment %d is already resolved", comment.id)
            continue
        open_comments.append(dataclasses.replace(comment, thread_id=thread.id))

    gate = MutationGate(max_concurrency)
    removed = context.removed_paths()
    on_deleted = [c for c in open_comments if c.path in removed]
    remaining = [c for c in open_comments if c.path not in removed]

    resolved = await asyncio.gather(
        *(
            _mutate(gate, f"resolve comment {c.id} on deleted file", reply_and_resolve, client, c.thread_id, REPLY_FILE_DELETED)
            for c in on_deleted
        )
    )
    result.deleted_files = sum(resolved)
    if on_deleted:
        logger.info("Auto-resolved %d comment(s) on deleted files", result.deleted_files)

    if not remaining:
        return result

    snippets = await _fetch_snippets(client, remaining, context.head_sha)
    to_judge = [c for c in remaining if c.id in snippets]
    if not to_judge:
        return result

    data = ResolutionInput(
        title=context.title,
        description=context.body,
        comments=tuple(to_judge),
        snippets=tuple(snippets[c.id] for c in to_judge),
        commits=context.commits,
        diff_excerpt=diff_excerpt(diff, {c.path for c in to_judge}),
    )
    try:
        verdicts = await judgment(data)
    except Exception as e:
        logger.error("Resolution judgment failed: %s", e)
        return result

    by_id = {c.id: c for c in to_judge}

    async def apply(verdict: ResolutionVerdict) -> str | None:
        comment = by_id.get(verdict.comment_id)
        if comment is None:
            return None
        if verdict.status == FIXED:
            ok = await _mutate(gate, f"resolve comment {comment.id}", reply_and_resolve, client, comment.thread_id, REPLY_FIXED)
            return FIXED if ok else None
        if verdict.status == PARTIALLY_FIXED:
            ok = await _mutate(
                gate, f"reply to comment {comment.id}", reply_to_thread, client, comment.thread_id, reply_partially_fixed(verdict.reason)
            )
            return PARTIALLY_FIXED if ok else None
        return NOT_FIXED

    outcomes = await asyncio.gather(*(apply(v) for v in verdicts))
    result.fixed = outcomes.count(FIXED)
    result.partially_fixed = outcomes.count(PARTIALLY_FIXED)
    result.not_fixed = outcomes.count(NOT_FIXED)

    logger.info(
        "Resolution check complete: %d fixed, %d partial, %d not fixed, %d deleted files",
        result.fixed,
        result.partially_fixed,
        result.not_fixed,
        result.deleted_files,
    )
    return result
