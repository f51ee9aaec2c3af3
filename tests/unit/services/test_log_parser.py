"""Unit tests for LogParser."""

from pathlib import Path

from gitty.models import FileStatus, GitRefType
from gitty.services.log_parser import FIELD_SEPARATOR, LogParser, log_format


def record(separator, subject="Fix bug", body="Fix bug\n", commit_hash="1a2b3c4",
           refs="", author="Ada", email="ada@example.com", timestamp="1700000000",
           reldate="2 days ago", detail=""):
    fields = [subject, body, commit_hash, refs, author, email, timestamp, reldate]
    return separator + FIELD_SEPARATOR.join(fields) + FIELD_SEPARATOR + detail


class TestLogFormat:
    """Tests for the pretty-format string."""

    def test_fields_are_joined_by_unit_separator(self):
        fmt = log_format("SEP")
        assert fmt.startswith("SEP%s%x1f%B%x1f%h%x1f%D")
        assert fmt.endswith("%ct%x1f%cr%x1f")


class TestParseLog:
    """Tests for splitting and parsing log records."""

    def setup_method(self):
        self.parser = LogParser(date_format="%Y-%m-%d")

    def test_record_count_matches_separators(self):
        output = "\n".join(
            record("XSEPX", commit_hash=h) for h in ["aaaa111", "bbbb222", "cccc333"]
        )
        entries = self.parser.parse_log(output, "XSEPX")
        assert [e.hash for e in entries] == ["aaaa111", "bbbb222", "cccc333"]

    def test_empty_output_yields_no_entries(self):
        assert self.parser.parse_log("", "XSEPX") == []

    def test_records_without_hash_are_dropped(self):
        output = record("XSEPX") + "XSEPX" + FIELD_SEPARATOR.join(["only", "body"])
        entries = self.parser.parse_log(output, "XSEPX")
        assert len(entries) == 1

    def test_fields_are_mapped(self):
        entries = self.parser.parse_log(record("S"), "S")
        entry = entries[0]
        assert entry.subject == "Fix bug"
        assert entry.body == "Fix bug\n"
        assert entry.author == "Ada"
        assert entry.email == "ada@example.com"
        assert entry.timestamp == 1700000000
        assert entry.relative_date == "2 days ago"
        assert entry.date != ""

    def test_stat_detail_is_collapsed(self):
        detail = "\n\n a.txt | 3 +-\n   b.txt | 1 +\n 2 files changed\n"
        entry = self.parser.parse_log(record("S", detail=detail), "S")[0]
        assert entry.stat == "a.txt | 3 +-\nb.txt | 1 +\n2 files changed"
        assert entry.diff is None

    def test_diff_detail_keeps_indentation(self):
        detail = "\ndiff --git a/x b/x\n@@ -1 +1 @@\n-  old\n+  new\n"
        entry = self.parser.parse_log(record("S", detail=detail), "S", "diff")[0]
        assert entry.diff == "diff --git a/x b/x\n@@ -1 +1 @@\n-  old\n+  new"
        assert entry.stat is None

    def test_missing_timestamp_leaves_date_empty(self):
        entry = self.parser.parse_log(record("S", timestamp=""), "S")[0]
        assert entry.timestamp is None
        assert entry.date == ""


class TestParseDecorations:
    """Tests for %D decoration parsing."""

    def test_heads_remotes_and_tags(self):
        refs = LogParser().parse_decorations(
            "HEAD -> refs/heads/main, refs/remotes/origin/main, tag: refs/tags/v1.0"
        )
        assert [(r.type, r.name) for r in refs] == [
            (GitRefType.HEAD, "main"),
            (GitRefType.REMOTE_HEAD, "origin/main"),
            (GitRefType.TAG, "v1.0"),
        ]

    def test_unqualified_fragments_are_ignored(self):
        assert LogParser().parse_decorations("HEAD") == []
        assert LogParser().parse_decorations("") == []


class TestParseStatLine:
    """Tests for splitting stat lines into path and change runs."""

    def test_mixed_changes_split_at_first_minus(self):
        stat = LogParser().parse_stat_line("a.txt | 3 +-")
        assert stat.prefix == "a.txt | 3"
        assert stat.insertions == " +"
        assert stat.deletions == "-"
        assert stat.insertions_offset == len("a.txt | 3")
        assert stat.deletions_offset == len("a.txt | 3 +")

    def test_only_insertions(self):
        stat = LogParser().parse_stat_line("src/app.py | 12 ++++++")
        assert stat.insertions == " ++++++"
        assert stat.deletions == ""

    def test_only_deletions(self):
        stat = LogParser().parse_stat_line("gone.txt | 4 ----")
        assert stat.insertions == " "
        assert stat.deletions == "----"

    def test_summary_line_is_not_a_stat(self):
        assert LogParser().parse_stat_line("2 files changed, 3 insertions(+)") is None


class TestParseNameStatus:
    """Tests for --name-status parsing."""

    def test_plain_and_rename_lines(self):
        output = "M\tsrc/app.py\nA\tREADME.md\nR100\told/name.txt\tnew/name.txt\nD\tgone.txt"
        files = LogParser().parse_name_status(
            output, root=Path("/repo"), left_ref=None, right_ref="abc1234"
        )

        assert [f.git_relative_path for f in files] == [
            "src/app.py", "README.md", "new/name.txt", "gone.txt",
        ]
        renamed = files[2]
        assert renamed.status == "R100"
        assert renamed.file_status == FileStatus.RENAMED
        assert renamed.previous_path == "old/name.txt"
        assert renamed.right_ref == "abc1234"
        assert renamed.path == Path("/repo/new/name.txt")

    def test_hash_line_from_show_is_skipped(self):
        files = LogParser().parse_name_status("1a2b3c4\n\nM\tfile.txt")
        assert len(files) == 1
        assert files[0].path is None


class TestParseRefsAndAuthors:
    """Tests for for-each-ref and shortlog parsing."""

    def test_refs(self):
        output = "refs/heads/main 1a2b3c4\nrefs/remotes/origin/dev 5d6e7f8\nrefs/stash 9999999"
        refs = LogParser().parse_refs(output)
        assert [(r.type, r.name, r.commit) for r in refs] == [
            (GitRefType.HEAD, "main", "1a2b3c4"),
            (GitRefType.REMOTE_HEAD, "origin/dev", "5d6e7f8"),
        ]

    def test_authors(self):
        output = "    12\tAda Lovelace <ada@example.com>\n     3\tAlan Turing <alan@example.com>"
        authors = LogParser().parse_authors(output)
        assert [(a.name, a.email, a.commits) for a in authors] == [
            ("Ada Lovelace", "ada@example.com", 12),
            ("Alan Turing", "alan@example.com", 3),
        ]
