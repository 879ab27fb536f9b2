"""Run one reviewer persona against a pull request and normalise its answer.

Reviewer output is free text that may or may not contain the JSON we asked
for. All leniency lives in parse_reviewer_response: a response that cannot be
parsed is a degraded success (raw text overview, no findings), never a
failure. Only model errors and timeouts mark a run as failed.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from prpanel_core.config import load_prompt
from prpanel_core.models import (
    Finding,
    ReviewerOutput,
    ReviewerReview,
    ReviewerSpec,
    normalize_severity,
    normalize_side,
)
from prpanel_core.prompts import build_reviewer_prompt
from prpanel_core.utils.calls import call_maybe_async

if TYPE_CHECKING:
    from prpanel_core.models import ChangeContext
    from prpanel_core.utils.context import FileContextResult

logger = logging.getLogger(__name__)

ModelCaller = Callable[[str, "str | None"], Any]

DEFAULT_TIMEOUT_SECONDS = 180

_INT_RE = re.compile(r"^\d+$")
_RANGE_RE = re.compile(r"^(\d+)\s*-\s*(\d+)$")
_FENCE_START_RE = re.compile(r"^```(?:json)?\s*")
_FENCE_END_RE = re.compile(r"\s*```$")


def parse_line_value(value: Any) -> tuple[int, int | None] | None:
    """Normalise a reviewer's ``line`` value to ``(line, start_line)``.

    Accepts an integer, a numeric string, or a ``"start-end"`` range string
    (the range targets its end line). Returns None for anything else.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return (value, None) if value > 0 else None
    if isinstance(value, float):
        return (int(value), None) if value.is_integer() and value > 0 else None
    if not isinstance(value, str):
        return None

    text = value.strip()
    if _INT_RE.match(text):
        line = int(text)
        return (line, None) if line > 0 else None
    match = _RANGE_RE.match(text)
    if match:
        start, end = sorted((int(match.group(1)), int(match.group(2))))
        if start <= 0:
            return None
        return (end, start) if start != end else (end, None)
    return None


def extract_json(text: str) -> Any:
    """Return the first JSON value found in a model response.

    Tries the fenced ```json block first, then the whole response. The
    closing fence is searched from the end so code fences embedded in JSON
    string values do not cut the block short. Raises ValueError if nothing parses.
    """
    candidates: list[str] = []
    start = text.find("```json")
    if start != -1:
        body = text[start + len("```json") :]
        end = body.rfind("```")
        if end != -1:
            candidates.append(body[:end])
        lazy = re.search(r"```json\s*([\s\S]*?)\s*```", text)
        if lazy:
            candidates.append(lazy.group(1))
    stripped = _FENCE_END_RE.sub("", _FENCE_START_RE.sub("", text.strip()))
    candidates.append(stripped)

    for candidate in candidates:
        try:
            return json.loads(candidate.strip())
        except json.JSONDecodeError:
            continue
    raise ValueError("no JSON found in response")


def _parse_finding(raw: Any, reviewer: str) -> Finding | None:
    if not isinstance(raw, dict):
        return None
    path = raw.get("path")
    body = raw.get("body") or raw.get("comment")
    if not isinstance(path, str) or not path.strip() or not isinstance(body, str) or not body.strip():
        return None

    parsed_line = parse_line_value(raw.get("line"))
    if parsed_line is None:
        return None
    line, start_line = parsed_line

    explicit_start = parse_line_value(raw.get("start_line"))
    if explicit_start is not None:
        start_line = explicit_start[0]
    if start_line is not None and start_line >= line:
        start_line = None

    side = normalize_side(raw.get("side"))
    start_side = None
    if start_line is not None:
        start_side = normalize_side(raw.get("start_side") or side)

    return Finding(
        path=path.strip(),
        line=line,
        body=body.strip(),
        side=side,
        severity=normalize_severity(raw.get("severity")),
        start_line=start_line,
        start_side=start_side,
        reviewers=(reviewer,),
    )


def parse_reviewer_response(response: str, reviewer: str) -> ReviewerReview:
    """Normalise a reviewer's raw text into an overview plus findings."""
    try:
        parsed = extract_json(response)
    except ValueError:
        logger.warning("%s: failed to parse JSON response, using it as overview", reviewer)
        return ReviewerReview(overview=response.strip(), findings=[])

    if isinstance(parsed, list):
        overview, raw_comments = "", parsed
    elif isinstance(parsed, dict):
        overview = parsed.get("overview") if isinstance(parsed.get("overview"), str) else ""
        raw_comments = parsed.get("comments") if isinstance(parsed.get("comments"), list) else []
    else:
        logger.warning("%s: response JSON is not an object, using it as overview", reviewer)
        return ReviewerReview(overview=response.strip(), findings=[])

    findings: list[Finding] = []
    for raw in raw_comments:
        finding = _parse_finding(raw, reviewer)
        if finding is None:
            logger.warning("%s: dropping unparseable comment: %.200s", reviewer, raw)
            continue
        findings.append(finding)

    return ReviewerReview(overview=overview, findings=findings)


async def run_reviewer(
    context: ChangeContext,
    diff: str,
    spec: ReviewerSpec,
    model_caller: ModelCaller,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    file_context: FileContextResult | None = None,
    repo_root: str = ".",
) -> ReviewerOutput:
    """Run a single reviewer. Never raises: failures come back as ``success=False``."""
    start = time.monotonic()
    try:
        persona = load_prompt(spec, repo_root)
        prompt = build_reviewer_prompt(context, diff, persona, spec.name, file_context)
        response = await asyncio.wait_for(call_maybe_async(model_caller, prompt, spec.model), timeout)
    except asyncio.TimeoutError:
        elapsed = time.monotonic() - start
        logger.error("Reviewer %s timed out after %.1fs", spec.name, elapsed)
        return ReviewerOutput(
            name=spec.name,
            success=False,
            duration_seconds=elapsed,
            error=f"Timed out after {timeout:g}s",
        )
    except Exception as e:
        elapsed = time.monotonic() - start
        logger.error("Reviewer %s failed: %s", spec.name, e)
        return ReviewerOutput(name=spec.name, success=False, duration_seconds=elapsed, error=str(e) or type(e).__name__)

    review = parse_reviewer_response(response if isinstance(response, str) else str(response), spec.name)
    elapsed = time.monotonic() - start
    logger.info("Reviewer %s finished in %.1fs with %d finding(s)", spec.name, elapsed, len(review.findings))
    return ReviewerOutput(name=spec.name, success=True, duration_seconds=elapsed, review=review)
