"""Tests for full-file context gathering.

Content is always read through the GitHub API at the PR head, so these tests
only mock ``get_contents`` on the repository.
"""

from unittest.mock import MagicMock

from github import GithubException

from prpanel_core.gh.pull_request import GitHubClient
from prpanel_core.models import ChangeContext, FileChange
from prpanel_core.prompts import format_file_context
from prpanel_core.utils.context import context_paths, fetch_file_context

HEAD = "f" * 40

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _client(files: dict):
    client = GitHubClient(MagicMock(), "acme/api")

    def get_contents(path, ref):
        assert ref == HEAD
        if path not in files:
            raise GithubException(404, {"message": "Not Found"})
        content = MagicMock()
        content.decoded_content = files[path].encode()
        return content

    client.gh.get_repo.return_value.get_contents.side_effect = get_contents
    return client


# ---------------------------------------------------------------------------
# context_paths
# ---------------------------------------------------------------------------


def test_context_paths_skips_removed_and_non_code_files():
    context = ChangeContext(
        owner="acme",
        repo="api",
        number=1,
        title="t",
        body="",
        author="dev",
        base_sha="a" * 40,
        head_sha=HEAD,
        base_ref="main",
        head_ref="topic",
        files=(
            FileChange(path="src/app.py", status="modified"),
            FileChange(path="src/old.py", status="removed"),
            FileChange(path="assets/logo.png", status="added"),
            FileChange(path="package-lock.json", status="modified"),
            FileChange(path="README.md", status="modified"),
        ),
    )
    assert context_paths(context) == ["src/app.py", "README.md"]


# ---------------------------------------------------------------------------
# fetch_file_context
# ---------------------------------------------------------------------------


class TestFetchFileContext:
    def test_loads_files_in_order(self):
        client = _client({"a.py": "print(1)\n", "b.py": "print(2)\n"})
        result = fetch_file_context(client, ["a.py", "b.py"], HEAD)
        assert [f.path for f in result.files] == ["a.py", "b.py"]
        assert result.total_size_bytes == 18
        assert result.skipped == {}

    def test_missing_file_is_skipped_with_reason(self):
        result = fetch_file_context(_client({}), ["gone.py"], HEAD)
        assert result.files == []
        assert "not found" in result.skipped["gone.py"]

    def test_file_over_per_file_limit(self):
        client = _client({"big.py": "x" * 3000, "small.py": "y"})
        result = fetch_file_context(client, ["big.py", "small.py"], HEAD, max_file_size_kb=2)
        assert [f.path for f in result.files] == ["small.py"]
        assert "too large" in result.skipped["big.py"]

    def test_total_limit_stops_adding_files(self):
        client = _client({"a.py": "a" * 800, "b.py": "b" * 800, "c.py": "c" * 100})
        result = fetch_file_context(client, ["a.py", "b.py", "c.py"], HEAD, max_total_size_kb=1)
        assert [f.path for f in result.files] == ["a.py", "c.py"]
        assert result.skipped["b.py"] == "total context size limit reached"
        assert result.total_size_bytes <= 1024

    def test_size_counts_utf8_bytes(self):
        result = fetch_file_context(_client({"u.py": "é"}), ["u.py"], HEAD)
        assert result.files[0].size_bytes == 2


# ---------------------------------------------------------------------------
# Prompt rendering
# ---------------------------------------------------------------------------


class TestFormatFileContext:
    def test_empty(self):
        assert format_file_context(None) == ""

    def test_renders_collapsible_blocks(self):
        result = fetch_file_context(_client({"src/app.py": "x = 1\n"}), ["src/app.py", "gone.py"], HEAD)
        text = format_file_context(result)
        assert "### Full File Context" in text
        assert "<summary>src/app.py (0KB)</summary>" in text
        assert "```py\nx = 1\n\n```" in text
        assert "*1 files skipped (too large or not found)*" in text
