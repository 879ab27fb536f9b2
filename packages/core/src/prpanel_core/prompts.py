"""Prompt text for reviewer personas, the overview verifier and the resolution judgment."""

from __future__ import annotations

from typing import TYPE_CHECKING

from prpanel_core.diff.annotate import annotate_diff

if TYPE_CHECKING:
    from prpanel_core.models import ChangeContext, ReviewerOutput
    from prpanel_core.resolution.judgment import ResolutionInput
    from prpanel_core.utils.context import FileContextResult

_RESPONSE_FORMAT = """Respond with JSON in this format:
{
  "overview": "Brief summary of your findings",
  "comments": [
    {
      "path": "src/file.py",
      "line": 42,
      "body": "Your comment here",
      "side": "RIGHT",
      "severity": "critical|warning|info"
    }
  ]
}"""

DEFAULT_QUALITY_PROMPT = f"""You are a code quality reviewer. Focus on:
- Code quality and best practices
- Potential bugs and edge cases
- Performance implications
- Maintainability and readability

Review the code changes and provide specific, actionable feedback.
Only flag issues that are genuinely problematic, not stylistic preferences.

{_RESPONSE_FORMAT}"""

DEFAULT_SECURITY_PROMPT = f"""You are a security reviewer. Focus on:
- Security vulnerabilities
- Authentication/authorization issues
- Input validation and sanitization
- Sensitive data exposure
- Injection risks (SQL, XSS, command)

Review the code changes for security concerns.
Only flag genuine security issues, not hypothetical scenarios.

{_RESPONSE_FORMAT}"""

DEFAULT_LEGACY_PROMPT = f"""You are a senior code reviewer. Review this pull request thoroughly.
Focus on: bugs, security, performance, readability, best practices.
Be constructive and specific.

{_RESPONSE_FORMAT}"""

DEFAULT_VERIFIER_PROMPT = """You are synthesizing review findings into a single overview.

Given the following reviewer summaries, write a unified overview that:
1. Highlights the most important findings
2. Groups related issues
3. Provides a clear recommendation (approve/request changes)

DO NOT rewrite or modify the inline comments - they are handled separately.
Only produce the overview text.

Respond with JSON:
{
  "overview": "Your synthesized overview here",
  "passed": true
}

Set "passed" to true only if there are no critical issues."""

RESOLUTION_PROMPT = """You are checking whether earlier code review comments have been addressed.

For every comment below, compare the issue it raised with the current code
and the commit history, then classify it:
- FIXED: the issue is no longer present
- PARTIALLY_FIXED: some of the issue was addressed, some remains
- NOT_FIXED: the issue is still present

Respond with JSON only:
{
  "results": [
    {"commentId": 123, "status": "FIXED|PARTIALLY_FIXED|NOT_FIXED", "reason": "one sentence"}
  ]
}"""


def format_change_summary(context: ChangeContext) -> str:
    return "\n".join(
        [
            f"**Title:** {context.title}",
            f"**Author:** {context.author}",
            f"**Branch:** {context.head_ref} -> {context.base_ref}",
            f"**Changes:** +{context.additions}/-{context.deletions} lines",
            "",
            "### Description",
            context.body or "*No description provided*",
        ]
    )


def format_files_table(context: ChangeContext) -> str:
    rows = ["| File | Changes | Type |", "|------|---------|------|"]
    for f in context.files:
        rows.append(f"| {f.path} | +{f.additions}/-{f.deletions} | {f.status} |")
    return "\n".join(rows)


def format_file_context(file_context: FileContextResult | None) -> str:
    """Render full-file context blocks; empty when nothing was fetched."""
    if file_context is None or not file_context.files:
        return ""

    parts = [
        "### Full File Context",
        "",
        "The following files are included in full for additional context:",
        "",
    ]
    for f in file_context.files:
        ext = f.path.rsplit(".", 1)[-1] if "." in f.path else ""
        parts.append("<details>")
        parts.append(f"<summary>{f.path} ({round(f.size_bytes / 1024)}KB)</summary>")
        parts.append("")
        parts.append(f"```{ext}")
        parts.append(f.content)
        parts.append("```")
        parts.append("")
        parts.append("</details>")
        parts.append("")

    if file_context.skipped:
        parts.append(f"*{len(file_context.skipped)} files skipped (too large or not found)*")
        parts.append("")

    return "\n".join(parts)


def build_reviewer_prompt(
    context: ChangeContext,
    diff: str,
    persona_prompt: str,
    reviewer_name: str,
    file_context: FileContextResult | None = None,
) -> str:
    """Build the full prompt for one reviewer persona."""
    return f"""{persona_prompt}

## PR Information

{format_change_summary(context)}

### Changed Files
{format_files_table(context)}

{format_file_context(file_context)}
### Diff

Lines are prefixed with `R{{num}}|` for new file lines (RIGHT side) and `L{{num}}|` for old file lines (LEFT side).

```diff
{annotate_diff(diff)}
```

**Important:**
- `line` is the number shown in the prefix (R42 means line 42 on the RIGHT side)
- `start_line` (optional) marks the beginning of a multi-line range
- `side` is "RIGHT" for lines prefixed with R and "LEFT" for lines prefixed with L
- Only comment on lines that appear in the diff

---
You are the "{reviewer_name}" reviewer. Provide your review in the JSON format specified above."""


def build_overview_prompt(outputs: list[ReviewerOutput], base_prompt: str = DEFAULT_VERIFIER_PROMPT) -> str:
    """Build the verifier prompt from reviewer overviews only, never their inline findings."""
    parts = ["## Reviewer Summaries", ""]
    for output in outputs:
        if not output.success:
            parts.append(f"### {output.name} - FAILED")
            parts.append(f"Error: {output.error}")
            parts.append("")
            continue
        if output.review is None:
            continue
        parts.append(f"### {output.name}")
        parts.append(output.review.overview)
        parts.append(f"({len(output.review.findings)} inline comments)")
        parts.append("")

    summaries = "\n".join(parts)
    return (
        f"{base_prompt}\n\n{summaries}\n\n"
        "Synthesize these summaries into a unified overview. Do NOT include or modify inline comments."
    )


def build_resolution_prompt(data: ResolutionInput) -> str:
    lines = [
        RESOLUTION_PROMPT,
        "",
        "## Pull Request",
        f"**Title:** {data.title}",
        "",
        data.description or "*No description provided*",
        "",
        "## Commits",
    ]
    for commit in data.commits:
        first_line = commit.message.splitlines()[0] if commit.message else ""
        lines.append(f"- `{commit.sha[:7]}` {first_line}")
    if not data.commits:
        lines.append("*No commits listed*")

    lines += ["", "## Previous Comments", ""]
    for comment in data.comments:
        lines.append(f"### Comment {comment.id} on `{comment.path}:{comment.line}`")
        lines.append(comment.body)
        lines.append("")

    lines += ["## Current Code", ""]
    for snippet in data.snippets:
        lines.append(f"### `{snippet.path}` (around line {snippet.line})")
        lines.append("```")
        lines.append(snippet.content)
        lines.append("```")
        lines.append("")

    if data.diff_excerpt:
        lines += ["## Latest Diff For These Files", "", "```diff", data.diff_excerpt, "```"]

    return "\n".join(lines)
