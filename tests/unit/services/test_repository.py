"""Unit tests for GitRepository queries and caches."""

import pytest

from gitty.models import StatMode
from gitty.services.repository import GitRepository
from gitty.utils.git_runner import CancellationToken


@pytest.fixture
def repo(tmp_path, fake_runner):
    return GitRepository(tmp_path, runner=fake_runner)


@pytest.fixture
def five_commits(fake_runner, commits, git_log):
    history = [commits(i) for i in range(5)]
    fake_runner.respond("log", output=git_log(history))
    fake_runner.respond("rev-list", output="5")
    return history


class TestLogEntries:
    """Tests for paged log queries."""

    @pytest.mark.asyncio
    async def test_page_is_parsed(self, repo, fake_runner, five_commits):
        entries = await repo.log_entries(StatMode.NONE, 0, 2)

        assert [e.hash for e in entries] == [c["hash"] for c in five_commits[:2]]
        args = fake_runner.calls_for("log")[0]
        assert "--max-count=2" in args
        assert "--decorate=full" in args
        assert "--simplify-merges" in args
        assert not any(a.startswith("--skip") for a in args)

    @pytest.mark.asyncio
    async def test_count_zero_loads_everything_remaining(self, repo, fake_runner, five_commits):
        entries = await repo.log_entries(StatMode.NONE, 3, 0)

        assert len(entries) == 2
        args = fake_runner.calls_for("log")[0]
        assert "--skip=3" in args
        assert not any(a.startswith("--max-count") for a in args)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "mode, flag",
        [(StatMode.SHORT, "--shortstat"), (StatMode.FULL, "--stat")],
    )
    async def test_stat_mode_flags(self, repo, fake_runner, five_commits, mode, flag):
        await repo.log_entries(mode, 0, 1)
        assert flag in fake_runner.calls_for("log")[0]

    @pytest.mark.asyncio
    async def test_no_stat_flags_for_none(self, repo, fake_runner, five_commits):
        await repo.log_entries(StatMode.NONE, 0, 1)
        args = fake_runner.calls_for("log")[0]
        assert "--stat" not in args
        assert "--shortstat" not in args

    @pytest.mark.asyncio
    async def test_path_scope_follows_renames(self, repo, tmp_path, fake_runner, five_commits):
        await repo.log_entries(StatMode.SHORT, 0, 10, path=tmp_path / "src" / "app.py")
        args = fake_runner.calls_for("log")[0]
        assert args[-3:] == ["--follow", "--", "src/app.py"]

    @pytest.mark.asyncio
    async def test_line_scope_requests_line_diff(self, repo, tmp_path, fake_runner, commits, git_log):
        history = [commits(1, detail="\ndiff --git a/a.py b/a.py\n@@ -5 +5 @@\n-old\n+new\n")]
        fake_runner.respond("log", output=git_log(history))

        entries = await repo.log_entries(StatMode.SHORT, 0, 0, path=tmp_path / "a.py", line=5)

        args = fake_runner.calls_for("log")[0]
        assert "-L5,5:a.py" in args
        assert "--shortstat" not in args
        assert "--follow" not in args
        assert entries[0].diff.endswith("+new")
        assert entries[0].stat is None

    @pytest.mark.asyncio
    async def test_author_and_ref_filters(self, repo, fake_runner, five_commits):
        await repo.log_entries(StatMode.NONE, 0, 1, ref="main..dev", author="Ada")
        args = fake_runner.calls_for("log")[0]
        assert "--author=Ada" in args
        assert "main..dev" in args

    @pytest.mark.asyncio
    async def test_failed_command_yields_empty_list(self, repo):
        assert await repo.log_entries(StatMode.NONE) == []

    @pytest.mark.asyncio
    async def test_cancelled_token_yields_empty_list(self, repo, five_commits):
        token = CancellationToken()
        token.cancel()
        assert await repo.log_entries(StatMode.NONE, cancellation=token) == []


class TestCommitsCount:
    """Tests for rev-list counting."""

    @pytest.mark.asyncio
    async def test_count(self, repo, fake_runner, tmp_path):
        fake_runner.respond("rev-list", output="42")

        assert await repo.commits_count(tmp_path / "a.py", "Ada", ref="dev") == 42
        args = fake_runner.calls_for("rev-list")[0]
        assert args[:4] == ["rev-list", "--simplify-merges", "--count", "dev"]
        assert "--author=Ada" in args
        assert args[-2:] == ["--", "a.py"]

    @pytest.mark.asyncio
    async def test_defaults_to_head(self, repo, fake_runner):
        fake_runner.respond("rev-list", output="3")
        await repo.commits_count()
        assert fake_runner.calls_for("rev-list")[0][3] == "HEAD"

    @pytest.mark.asyncio
    async def test_unparseable_output_counts_zero(self, repo):
        assert await repo.commits_count() == 0


class TestGraph:
    """Tests for graph queries."""

    @pytest.mark.asyncio
    async def test_graph_uses_same_page(self, repo, fake_runner, five_commits):
        nodes = await repo.graph(2, 2)

        assert set(nodes) == {five_commits[2]["hash"], five_commits[3]["hash"]}
        args = fake_runner.calls_for("log")[0]
        assert "--graph" in args
        assert "--skip=2" in args
        assert "--max-count=2" in args


class TestCaches:
    """Tests for cache population and invalidation."""

    @pytest.mark.asyncio
    async def test_commit_details_are_cached_until_cleared(self, repo, fake_runner, commits, git_log):
        fake_runner.respond(
            "show", output=lambda args: git_log([commits(1, detail="\n file.txt | 2 +-\n")])(
                ["log", args[1]]
            )
        )
        fake_runner.respond("show", "--format=%h", output="abc0001\n\nM\tfile.txt")

        first = await repo.commit_details("abc0001")
        second = await repo.commit_details("abc0001")

        assert first is second
        assert first.stat == "file.txt | 2 +-"
        assert [f.git_relative_path for f in first.files] == ["file.txt"]
        assert len(fake_runner.calls_for("show", "--format=%h")) == 1

        repo.clear_cache()
        await repo.commit_details("abc0001")
        assert len(fake_runner.calls_for("show", "--format=%h")) == 2

    @pytest.mark.asyncio
    async def test_unparseable_commit_is_not_cached(self, repo, fake_runner):
        assert await repo.commit_details("deadbeef") is None
        assert await repo.commit_details("deadbeef") is None
        assert len(fake_runner.calls_for("show")) == 2

    @pytest.mark.asyncio
    async def test_file_history_cached_per_path(self, repo, tmp_path, fake_runner, five_commits):
        await repo.file_history(tmp_path / "a.py")
        await repo.file_history(str(tmp_path / "a.py"))
        await repo.file_history(tmp_path / "b.py")
        assert len(fake_runner.calls_for("log")) == 2

        repo.clear_cache()
        await repo.file_history(tmp_path / "a.py")
        assert len(fake_runner.calls_for("log")) == 3

    @pytest.mark.asyncio
    async def test_file_saved_drops_only_that_history(self, repo, tmp_path, fake_runner, five_commits):
        await repo.file_history(tmp_path / "a.py")
        await repo.file_history(tmp_path / "b.py")

        repo.handle_file_saved(tmp_path / "a.py")
        await repo.file_history(tmp_path / "a.py")
        await repo.file_history(tmp_path / "b.py")

        assert len(fake_runner.calls_for("log")) == 3

    @pytest.mark.asyncio
    async def test_clear_cache_keeps_refs(self, repo, fake_runner):
        fake_runner.respond("for-each-ref", output="refs/heads/main 1a2b3c4")

        await repo.refs()
        repo.clear_cache()
        refs = await repo.refs()

        assert refs[0].name == "main"
        assert len(fake_runner.calls_for("for-each-ref")) == 1

        repo.clear_refs_cache()
        await repo.refs()
        assert len(fake_runner.calls_for("for-each-ref")) == 2

    @pytest.mark.asyncio
    async def test_authors_cached(self, repo, fake_runner):
        fake_runner.respond("shortlog", output="     2\tAda <ada@example.com>")

        assert (await repo.authors())[0].commits == 2
        await repo.authors()
        assert len(fake_runner.calls_for("shortlog")) == 1

        repo.handle_log_changed()
        await repo.authors()
        assert len(fake_runner.calls_for("shortlog")) == 2


class TestChangeEvents:
    """Tests for invalidation events."""

    def test_log_and_refs_changes_notify_listeners(self, repo):
        seen = []
        unsubscribe = repo.on_did_change(seen.append)

        repo.handle_log_changed()
        repo.handle_refs_changed()
        unsubscribe()
        repo.handle_log_changed()

        assert seen == [repo, repo]

    def test_failing_listener_does_not_stop_others(self, repo):
        seen = []

        def broken(_):
            raise RuntimeError("boom")

        repo.on_did_change(broken)
        repo.on_did_change(seen.append)
        repo.handle_refs_changed()

        assert seen == [repo]


class TestPaths:
    """Tests for path helpers."""

    def test_relative_path(self, repo, tmp_path):
        assert repo.relative_path(tmp_path / "src" / "a.py") == "src/a.py"
        assert repo.relative_path(tmp_path) == "."

    @pytest.mark.asyncio
    async def test_committed_files_between_refs(self, repo, fake_runner):
        fake_runner.respond("diff", output="M\ta.py\nA\tb.py")

        files = await repo.committed_files("main", "dev")

        assert fake_runner.calls_for("diff")[0] == ["diff", "--name-status", "main..dev"]
        assert [(f.left_ref, f.right_ref) for f in files] == [("main", "dev"), ("main", "dev")]
