"""Which changed files are worth a model's attention as full-file context."""

# Binary assets, archives, generated bundles and lock files.
NON_CODE_SUFFIXES = (
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".svg",
    ".ico",
    ".webp",
    ".pdf",
    ".woff",
    ".woff2",
    ".ttf",
    ".otf",
    ".mp4",
    ".mp3",
    ".zip",
    ".tar",
    ".gz",
    ".jar",
    ".min.js",
    ".min.css",
    ".map",
    ".lock",  # e.g. poetry.lock, Cargo.lock
)

NON_CODE_FILENAMES = {"package-lock.json", "pnpm-lock.yaml", "go.sum"}


def is_code_file(path: str) -> bool:
    name = path.rsplit("/", 1)[-1].lower()
    if name in NON_CODE_FILENAMES:
        return False
    return not name.endswith(NON_CODE_SUFFIXES)
