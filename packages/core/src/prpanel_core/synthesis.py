"""Merge reviewer outputs into one review.

Inline findings are merged in code so their line references are never
rewritten by a model. A model is only asked to write the overview text, and
any failure there falls back to a deterministic overview.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Iterable
from typing import Any

from prpanel_core.models import (
    SEVERITY_RANK,
    Finding,
    ReviewerOutput,
    ReviewSummary,
    SynthesizedReview,
)
from prpanel_core.prompts import DEFAULT_VERIFIER_PROMPT, build_overview_prompt
from prpanel_core.runner import extract_json
from prpanel_core.utils.calls import call_maybe_async

logger = logging.getLogger(__name__)


def collect_findings(outputs: Iterable[ReviewerOutput]) -> list[Finding]:
    """Flatten the findings of every successful reviewer, tagging each with its reviewer."""
    findings: list[Finding] = []
    for output in outputs:
        if not output.success or output.review is None:
            continue
        for finding in output.review.findings:
            if not finding.reviewers:
                finding = dataclasses.replace(finding, reviewers=(output.name,))
            findings.append(finding)
    return findings


def _merged_body(parts: list[tuple[str, str]]) -> str:
    if len(parts) == 1:
        return parts[0][1]
    return "\n\n".join(f"**{label}:** {body}" for label, body in parts)


def deduplicate_findings(findings: Iterable[Finding]) -> list[Finding]:
    """Keep one finding per (path, line, side).

    The highest severity wins. When two reviewers report the same location
    at the same severity their bodies are combined with attribution. Output
    keeps the order in which each location was first seen, and running this
    on its own output changes nothing.
    """
    winners: dict[tuple[str, int, str], Finding] = {}
    bodies: dict[tuple[str, int, str], list[tuple[str, str]]] = {}
    reviewers: dict[tuple[str, int, str], list[str]] = {}

    for finding in findings:
        key = finding.key
        label = ", ".join(finding.reviewers) or "reviewer"
        existing = winners.get(key)

        if existing is None:
            winners[key] = finding
            bodies[key] = [(label, finding.body)]
            reviewers[key] = list(finding.reviewers)
            continue

        if finding.rank > existing.rank:
            winners[key] = finding
            bodies[key] = [(label, finding.body)]
            reviewers[key] = list(finding.reviewers)
        elif finding.rank == existing.rank:
            for name in finding.reviewers:
                if name not in reviewers[key]:
                    reviewers[key].append(name)
            if all(body != finding.body for _, body in bodies[key]):
                bodies[key].append((label, finding.body))

    return [
        dataclasses.replace(winner, body=_merged_body(bodies[key]), reviewers=tuple(reviewers[key]))
        for key, winner in winners.items()
    ]


def filter_by_severity(findings: Iterable[Finding], min_severity: str = "info") -> list[Finding]:
    minimum = SEVERITY_RANK[min_severity]
    return [f for f in findings if f.rank >= minimum]


def parse_overview_response(response: str) -> tuple[str, bool | None]:
    """Return ``(overview, passed)`` from the overview model's answer.

    ``passed`` is None unless the model returned an explicit boolean.
    """
    try:
        parsed = extract_json(response)
    except ValueError:
        return response.strip(), None
    if not isinstance(parsed, dict):
        return response.strip(), None

    overview = parsed.get("overview")
    if not isinstance(overview, str) or not overview.strip():
        overview = response.strip()
    passed = parsed.get("passed")
    return overview, passed if isinstance(passed, bool) else None


def basic_overview(outputs: Iterable[ReviewerOutput]) -> str:
    parts = ["## Review Summary", ""]
    failed = []
    for output in outputs:
        if not output.success:
            failed.append(output)
        elif output.review is not None and output.review.overview:
            parts.append(f"### {output.name}")
            parts.append(output.review.overview)
            parts.append("")
    for output in failed:
        parts.append(f"_Reviewer {output.name} failed: {output.error}_")
    return "\n".join(parts)


def summarize(outputs: list[ReviewerOutput], findings: list[Finding], filtered_out: int = 0) -> ReviewSummary:
    return ReviewSummary(
        total_reviewers=len(outputs),
        successful_reviewers=sum(1 for o in outputs if o.success),
        critical=sum(1 for f in findings if f.severity == "critical"),
        warnings=sum(1 for f in findings if f.severity == "warning"),
        infos=sum(1 for f in findings if f.severity == "info"),
        filtered_out=filtered_out,
    )


async def synthesize(
    outputs: list[ReviewerOutput],
    min_severity: str = "info",
    overview_caller: Callable[[str, str | None], Any] | None = None,
    overview_prompt: str = DEFAULT_VERIFIER_PROMPT,
    overview_model: str | None = None,
) -> SynthesizedReview:
    """Combine reviewer outputs into a single review with a pass/fail verdict.

    ``overview_caller`` is the optional model capability that writes the
    overview. Without it, or when it fails, the overview is the reviewers'
    own overviews concatenated.
    """
    merged = deduplicate_findings(collect_findings(outputs))
    findings = filter_by_severity(merged, min_severity)
    summary = summarize(outputs, findings, filtered_out=len(merged) - len(findings))

    overview = None
    passed_override = None
    if overview_caller is not None and outputs:
        try:
            logger.info("Running verifier to synthesize overview...")
            response = await call_maybe_async(
                overview_caller, build_overview_prompt(outputs, overview_prompt), overview_model
            )
            overview, passed_override = parse_overview_response(str(response))
        except Exception as e:
            logger.warning("Verifier failed, falling back to basic synthesis: %s", e)
            overview = None
            passed_override = None

    if overview is None:
        overview = basic_overview(outputs)

    passed = passed_override if passed_override is not None else summary.critical == 0
    logger.info(
        "Synthesized %d finding(s) (%d critical, %d warning, %d info, %d filtered out); passed=%s",
        summary.total_findings,
        summary.critical,
        summary.warnings,
        summary.infos,
        summary.filtered_out,
        passed,
    )
    return SynthesizedReview(overview=overview, findings=findings, summary=summary, passed=passed)
