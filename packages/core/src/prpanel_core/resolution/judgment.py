"""The model-backed judgment that decides whether old review comments were addressed."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from prpanel_core.models import RESOLUTION_STATUSES, CommitInfo, ResolutionVerdict, TrackedComment
from prpanel_core.prompts import build_resolution_prompt
from prpanel_core.runner import extract_json
from prpanel_core.utils.calls import call_maybe_async

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CodeSnippet:
    path: str
    line: int
    content: str


@dataclass(frozen=True)
class ResolutionInput:
    title: str
    description: str
    comments: tuple[TrackedComment, ...]
    snippets: tuple[CodeSnippet, ...]
    commits: tuple[CommitInfo, ...] = ()
    diff_excerpt: str = ""


def _comment_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def parse_verdicts(response: str, known_ids: Iterable[int] | None = None) -> list[ResolutionVerdict]:
    """Normalise the judgment model's answer into verdicts.

    Entries with an unknown comment id or status are dropped, as are repeats
    of an id already seen. An unparseable answer yields no verdicts.
    """
    try:
        parsed = extract_json(response)
    except ValueError:
        logger.warning("Failed to parse resolution response, no verdicts applied")
        return []

    if isinstance(parsed, dict):
        entries = parsed.get("results")
    else:
        entries = parsed
    if not isinstance(entries, list):
        logger.warning("Resolution response has no results list")
        return []

    allowed = set(known_ids) if known_ids is not None else None
    seen: set[int] = set()
    verdicts: list[ResolutionVerdict] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        comment_id = _comment_id(entry.get("commentId", entry.get("comment_id")))
        status = str(entry.get("status", "")).strip().upper()
        if comment_id is None or status not in RESOLUTION_STATUSES:
            logger.warning("Dropping malformed verdict: %.200s", entry)
            continue
        if (allowed is not None and comment_id not in allowed) or comment_id in seen:
            logger.warning("Dropping verdict for unexpected comment %d", comment_id)
            continue
        seen.add(comment_id)
        reason = entry.get("reason")
        verdicts.append(ResolutionVerdict(comment_id=comment_id, status=status, reason=reason if isinstance(reason, str) else ""))
    return verdicts


class ModelJudgment:
    """Ask a model, once, for a verdict on every remaining comment."""

    def __init__(self, model_caller: Callable[[str, str | None], Any], model_hint: str | None = None):
        self._model_caller = model_caller
        self._model_hint = model_hint

    async def __call__(self, data: ResolutionInput) -> list[ResolutionVerdict]:
        prompt = build_resolution_prompt(data)
        response = await call_maybe_async(self._model_caller, prompt, self._model_hint)
        return parse_verdicts(str(response), [c.id for c in data.comments])
