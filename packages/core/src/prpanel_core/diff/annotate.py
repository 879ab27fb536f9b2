"""Line-number annotation of unified diffs for reviewer prompts.

Hunk body lines are prefixed with:
  - ``R{n}| `` for new-file lines (RIGHT side): additions and context
  - ``L{n}| `` for old-file lines (LEFT side): deletions

so a model can cite exact line numbers without doing hunk arithmetic.
Everything else (file headers, @@ headers, ``\\ No newline`` markers) passes
through unchanged.
"""

from __future__ import annotations

import re

from prpanel_core.diff.position import ADD, CONTEXT, DELETE, iter_diff_lines

_ANNOTATION_RE = re.compile(r"^[RL]\d+\| ", re.MULTILINE)


def annotate_diff(raw_diff: str) -> str:
    if not raw_diff:
        return ""

    result: list[str] = []
    for kind, line, old_line, new_line in iter_diff_lines(raw_diff):
        if kind in (ADD, CONTEXT):
            result.append(f"R{new_line}| {line}")
        elif kind == DELETE:
            result.append(f"L{old_line}| {line}")
        else:
            result.append(line)
    return "\n".join(result)


def strip_annotations(annotated: str) -> str:
    """Inverse of annotate_diff."""
    return _ANNOTATION_RE.sub("", annotated)
