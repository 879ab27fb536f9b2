"""Plain data carried between the review pipeline stages.

Everything here is a transient snapshot: a ChangeContext is fetched once per
run, reviewer outputs are combined once every reviewer settles, and the state
of record lives on GitHub (marker-tagged reviews and comments).
"""

from __future__ import annotations

from dataclasses import dataclass, field

SEVERITY_RANK = {"critical": 3, "warning": 2, "info": 1}
DEFAULT_SEVERITY = "warning"

RIGHT = "RIGHT"
LEFT = "LEFT"

FIXED = "FIXED"
PARTIALLY_FIXED = "PARTIALLY_FIXED"
NOT_FIXED = "NOT_FIXED"
RESOLUTION_STATUSES = (FIXED, PARTIALLY_FIXED, NOT_FIXED)


def normalize_severity(value) -> str:
    if isinstance(value, str) and value.strip().lower() in SEVERITY_RANK:
        return value.strip().lower()
    return DEFAULT_SEVERITY


def normalize_side(value) -> str:
    if isinstance(value, str) and value.strip().upper() == LEFT:
        return LEFT
    return RIGHT


@dataclass(frozen=True)
class FileChange:
    path: str
    status: str  # "added" | "modified" | "removed" | "renamed"
    additions: int = 0
    deletions: int = 0
    patch: str | None = None
    previous_path: str | None = None


@dataclass(frozen=True)
class CommitInfo:
    sha: str
    message: str
    author: str = ""


@dataclass(frozen=True)
class ChangeContext:
    """Immutable snapshot of one pull request, fetched once per run."""

    owner: str
    repo: str
    number: int
    title: str
    body: str
    author: str
    base_sha: str
    head_sha: str
    base_ref: str
    head_ref: str
    additions: int = 0
    deletions: int = 0
    state: str = "OPEN"
    created_at: str = ""
    files: tuple[FileChange, ...] = ()
    commits: tuple[CommitInfo, ...] = ()
    comments: tuple[dict, ...] = ()
    reviews: tuple[dict, ...] = ()

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def removed_paths(self) -> set[str]:
        return {f.path for f in self.files if f.status == "removed"}


@dataclass(frozen=True)
class Finding:
    """One reviewer comment on a file location.

    ``line`` uses new-file numbering unless ``side`` is LEFT.
    """

    path: str
    line: int
    body: str
    side: str = RIGHT
    severity: str = DEFAULT_SEVERITY
    start_line: int | None = None
    start_side: str | None = None
    reviewers: tuple[str, ...] = ()

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self.severity]

    @property
    def key(self) -> tuple[str, int, str]:
        return (self.path, self.line, self.side)


@dataclass(frozen=True)
class ReviewerSpec:
    name: str
    prompt: str | None = None
    prompt_file: str | None = None
    focus: str | None = None
    model: str | None = None
    enabled: bool = True


@dataclass
class ReviewerReview:
    overview: str
    findings: list[Finding] = field(default_factory=list)


@dataclass
class ReviewerOutput:
    name: str
    success: bool
    duration_seconds: float
    review: ReviewerReview | None = None
    error: str | None = None


@dataclass
class ReviewSummary:
    total_reviewers: int = 0
    successful_reviewers: int = 0
    critical: int = 0
    warnings: int = 0
    infos: int = 0
    filtered_out: int = 0

    @property
    def total_findings(self) -> int:
        return self.critical + self.warnings + self.infos


@dataclass
class SynthesizedReview:
    overview: str
    findings: list[Finding]
    summary: ReviewSummary
    passed: bool


@dataclass(frozen=True)
class MappedFinding:
    finding: Finding
    position: int


@dataclass(frozen=True)
class PublishResult:
    review_id: int
    review_url: str
    is_update: bool


@dataclass(frozen=True)
class ReviewThread:
    id: str
    is_resolved: bool
    comment_database_id: int | None


@dataclass(frozen=True)
class TrackedComment:
    id: int
    path: str
    line: int
    body: str
    thread_id: str | None = None


@dataclass(frozen=True)
class ResolutionVerdict:
    comment_id: int
    status: str
    reason: str = ""


@dataclass
class ResolutionResult:
    checked: int = 0
    fixed: int = 0
    partially_fixed: int = 0
    not_fixed: int = 0
    deleted_files: int = 0
