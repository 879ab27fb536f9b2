"""Unified diff parsing and GitHub diff-position mapping.

GitHub's review comment API addresses lines by "position": a 1-based counter
over every line record below the first @@ header of a file, cumulative across
all hunks of that file. The @@ header lines themselves are NOT counted.
Positions are a pure function of the diff text, so re-parsing the same text
always yields the same numbers.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from prpanel_core.models import LEFT, Finding, MappedFinding

logger = logging.getLogger(__name__)

HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
_DIFF_GIT_RE = re.compile(r"^diff --git a/(.+?) b/(.+)$")

ADD = "add"
DELETE = "del"
CONTEXT = "normal"
# "\ No newline at end of file": occupies a position but never carries a line number.
META = "meta"

_LINE_KINDS = (ADD, DELETE, CONTEXT, META)


@dataclass(frozen=True)
class DiffLine:
    kind: str
    content: str
    old_line: int | None = None
    new_line: int | None = None


@dataclass
class Hunk:
    header: str
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: list[DiffLine] = field(default_factory=list)


@dataclass
class DiffFile:
    from_path: str | None = None
    to_path: str | None = None
    hunks: list[Hunk] = field(default_factory=list)

    @property
    def path(self) -> str | None:
        return self.to_path or self.from_path

    def matches(self, path: str) -> bool:
        return path in (self.from_path, self.to_path)

    def iter_lines(self) -> Iterator[DiffLine]:
        for hunk in self.hunks:
            yield from hunk.lines


@dataclass
class ParsedDiff:
    files: list[DiffFile] = field(default_factory=list)

    def find_file(self, path: str) -> DiffFile | None:
        for diff_file in self.files:
            if diff_file.matches(path):
                return diff_file
        return None


def _strip_prefix(raw_path: str, prefix: str) -> str | None:
    path = raw_path.split("\t", 1)[0].strip()
    if path == "/dev/null":
        return None
    if path.startswith(prefix):
        return path[len(prefix) :]
    return path


def iter_diff_lines(raw_diff: str) -> Iterator[tuple[str, str, int | None, int | None]]:
    """Classify every line of a unified diff, in order.

    Yields ``(kind, line, old_line, new_line)`` exactly once per input line.
    Kinds: ``file`` / ``from`` / ``to`` (file headers), ``hunk`` (@@ header),
    ``add`` / ``del`` / ``normal`` / ``meta`` (hunk body) and ``other``.

    A hunk body is delimited by the line counts in its header rather than by
    line prefixes, so a deleted line whose text starts with ``--`` is still a
    deletion and not a file header.
    """
    old_no = new_no = 0
    old_left = new_left = 0
    hunk_open = False

    for line in raw_diff.split("\n"):
        match = HUNK_HEADER_RE.match(line)
        if match:
            old_no, new_no = int(match.group(1)), int(match.group(3))
            old_left = int(match.group(2)) if match.group(2) is not None else 1
            new_left = int(match.group(4)) if match.group(4) is not None else 1
            hunk_open = True
            yield "hunk", line, None, None
            continue

        if old_left > 0 or new_left > 0:
            prefix = line[:1]
            if prefix == "+":
                yield ADD, line, None, new_no
                new_no += 1
                new_left -= 1
                continue
            if prefix == "-":
                yield DELETE, line, old_no, None
                old_no += 1
                old_left -= 1
                continue
            if prefix in (" ", ""):
                yield CONTEXT, line, old_no, new_no
                old_no += 1
                new_no += 1
                old_left -= 1
                new_left -= 1
                continue
            if prefix == "\\":
                yield META, line, None, None
                continue
            # Header counts overstated the body; treat what follows as headers.
            old_left = new_left = 0

        if line.startswith("\\") and hunk_open:
            yield META, line, None, None
        elif line.startswith("diff --git "):
            hunk_open = False
            yield "file", line, None, None
        elif line.startswith("--- "):
            hunk_open = False
            yield "from", line, None, None
        elif line.startswith("+++ "):
            hunk_open = False
            yield "to", line, None, None
        else:
            yield "other", line, None, None


def parse_diff(raw_diff: str) -> ParsedDiff:
    """Parse a unified diff into files → hunks → line records."""
    parsed = ParsedDiff()
    current: DiffFile | None = None
    hunk: Hunk | None = None
    # "--- a/x" followed by "+++ b/x" without a "diff --git" line starts a new file too.
    saw_to_header = False

    for kind, line, old_line, new_line in iter_diff_lines(raw_diff or ""):
        if kind == "file":
            current = DiffFile()
            match = _DIFF_GIT_RE.match(line)
            if match:
                current.from_path, current.to_path = match.group(1), match.group(2)
            parsed.files.append(current)
            hunk = None
            saw_to_header = False
        elif kind == "from":
            if current is None or saw_to_header or current.hunks:
                current = DiffFile()
                parsed.files.append(current)
                saw_to_header = False
            current.from_path = _strip_prefix(line[4:], "a/")
            hunk = None
        elif kind == "to":
            if current is None:
                current = DiffFile()
                parsed.files.append(current)
            current.to_path = _strip_prefix(line[4:], "b/")
            saw_to_header = True
            hunk = None
        elif kind == "hunk":
            if current is None:
                current = DiffFile()
                parsed.files.append(current)
            match = HUNK_HEADER_RE.match(line)
            hunk = Hunk(
                header=line,
                old_start=int(match.group(1)),
                old_count=int(match.group(2)) if match.group(2) is not None else 1,
                new_start=int(match.group(3)),
                new_count=int(match.group(4)) if match.group(4) is not None else 1,
            )
            current.hunks.append(hunk)
        elif kind in _LINE_KINDS and hunk is not None:
            hunk.lines.append(DiffLine(kind=kind, content=line[1:], old_line=old_line, new_line=new_line))

    return parsed


def position_of(parsed: ParsedDiff, file_path: str, line_number: int, side: str = "RIGHT") -> int | None:
    """Return the GitHub diff position of a file line, or None when it is not in the diff.

    RIGHT matches additions and context lines by new-file number; LEFT matches
    deletions and context lines by old-file number. None means "not part of
    the diff", not an error.
    """
    diff_file = parsed.find_file(file_path)
    if diff_file is None:
        return None

    position = 0
    for record in diff_file.iter_lines():
        position += 1
        if side == LEFT:
            if record.kind in (DELETE, CONTEXT) and record.old_line == line_number:
                return position
        elif record.kind in (ADD, CONTEXT) and record.new_line == line_number:
            return position
    return None


def map_findings_to_positions(
    parsed: ParsedDiff, findings: Iterable[Finding]
) -> tuple[list[MappedFinding], list[Finding]]:
    """Split findings into those with a diff position and those without, keeping input order."""
    mapped: list[MappedFinding] = []
    unmapped: list[Finding] = []
    for finding in findings:
        position = position_of(parsed, finding.path, finding.line, finding.side)
        if position is None:
            logger.debug("No diff position for %s:%d (%s)", finding.path, finding.line, finding.side)
            unmapped.append(finding)
        else:
            mapped.append(MappedFinding(finding=finding, position=position))
    return mapped, unmapped


def format_unmapped_findings(unmapped: list[Finding]) -> str:
    """Render findings outside the diff as a collapsible block for the review body."""
    if not unmapped:
        return ""

    lines = [
        "",
        "<details>",
        f"<summary>Additional Notes ({len(unmapped)} comments for lines not in diff)</summary>",
        "",
    ]
    for finding in unmapped:
        lines.append(f"### `{finding.path}:{finding.line}`")
        lines.append("")
        lines.append(finding.body)
        lines.append("")
    lines.append("</details>")
    return "\n".join(lines)
