"""Full-file context for reviewers.

All context is fetched via the GitHub API pinned to the PR's head SHA, so
every file we read belongs to the same commit snapshot as the diff under
review. The head SHA is immutable: fetching with ``ref=head_sha`` returns the
same bytes wherever the tool runs (local machine, CI, GitHub Actions).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prpanel_core.gh.pull_request import fetch_file_content
from prpanel_core.utils.code import is_code_file

if TYPE_CHECKING:
    from prpanel_core.gh.pull_request import GitHubClient
    from prpanel_core.models import ChangeContext

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_SIZE_KB = 100
DEFAULT_MAX_TOTAL_SIZE_KB = 500


@dataclass(frozen=True)
class FileContext:
    path: str
    content: str
    size_bytes: int


@dataclass
class FileContextResult:
    files: list[FileContext] = field(default_factory=list)
    total_size_bytes: int = 0
    # path -> why it was left out
    skipped: dict[str, str] = field(default_factory=dict)


def context_paths(context: ChangeContext) -> list[str]:
    """Changed files worth showing in full: not removed, and not binary or lock files."""
    return [f.path for f in context.files if f.status != "removed" and is_code_file(f.path)]


def fetch_file_context(
    client: GitHubClient,
    paths: list[str],
    head_sha: str,
    max_file_size_kb: int = DEFAULT_MAX_FILE_SIZE_KB,
    max_total_size_kb: int = DEFAULT_MAX_TOTAL_SIZE_KB,
) -> FileContextResult:
    """Fetch the full head-revision content of ``paths`` within the size ceilings.

    Files are taken in order until the total ceiling is hit; anything not
    included is listed in ``skipped`` with a reason.
    """
    max_file_bytes = max_file_size_kb * 1024
    max_total_bytes = max_total_size_kb * 1024
    result = FileContextResult()

    for path in paths:
        content = fetch_file_content(client, path, head_sha)
        if content is None:
            result.skipped[path] = "file not found (possibly deleted)"
            continue

        size = len(content.encode("utf-8"))
        if size > max_file_bytes:
            result.skipped[path] = f"file too large ({round(size / 1024)}KB > {max_file_size_kb}KB)"
            continue
        if result.total_size_bytes + size > max_total_bytes:
            result.skipped[path] = "total context size limit reached"
            continue

        result.files.append(FileContext(path=path, content=content, size_bytes=size))
        result.total_size_bytes += size

    logger.info(
        "Loaded %d file(s) of context (%dKB), skipped %d",
        len(result.files),
        round(result.total_size_bytes / 1024),
        len(result.skipped),
    )
    for path, reason in result.skipped.items():
        logger.debug("Context skipped %s: %s", path, reason)
    return result
