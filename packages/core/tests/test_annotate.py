"""Tests for diff line-number annotation used in reviewer prompts."""

from prpanel_core.diff.annotate import annotate_diff, strip_annotations

DIFF = """\
diff --git a/src/app.py b/src/app.py
--- a/src/app.py
+++ b/src/app.py
@@ -3,3 +3,3 @@ def main():
 setup()
-run(old=True)
+run(old=False)
 teardown()
\\ No newline at end of file
"""


def test_prefixes_body_lines_with_side_and_number():
    lines = annotate_diff(DIFF).split("\n")
    assert "R3|  setup()" in lines
    assert "L4| -run(old=True)" in lines
    assert "R4| +run(old=False)" in lines
    assert "R5|  teardown()" in lines


def test_headers_pass_through_unchanged():
    annotated = annotate_diff(DIFF)
    assert "diff --git a/src/app.py b/src/app.py" in annotated.split("\n")
    assert "@@ -3,3 +3,3 @@ def main():" in annotated.split("\n")
    assert "\\ No newline at end of file" in annotated.split("\n")


def test_strip_restores_original():
    assert strip_annotations(annotate_diff(DIFF)) == DIFF


def test_empty_diff():
    assert annotate_diff("") == ""
