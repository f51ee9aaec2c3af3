"""Command line interface for gitty."""

import asyncio
import logging
import sys
import threading
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

import click
from rich.console import Console
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from . import __version__
from .config import ConfigManager, ConfigService
from .models import ViewContext
from .rendering.history_view import HistoryView
from .rendering.styles import to_rich_text
from .services.file_tree import FileNode, FolderNode, build_file_tree, file_history_items
from .services.log_parser import LogParser
from .services.registry import RepositoryRegistry
from .services.repository import GitRepository
from .services.repository_watch_handler import RepositoryWatchHandler
from .utils.git_runner import GitCommandRunner
from .utils.text import normalize_path

logger = logging.getLogger(__name__)

console = Console()


def run_async(coro):
    """
    Run an async coroutine, handling both new event loops and existing ones.

    Commands are plain click callbacks, but tests may invoke them from inside
    a running loop, in which case the coroutine runs on a separate thread.
    """
    try:
        asyncio.get_running_loop()

        result = None
        exception = None

        def run_in_new_loop():
            nonlocal result, exception
            try:
                new_loop = asyncio.new_event_loop()
                asyncio.set_event_loop(new_loop)
                try:
                    result = new_loop.run_until_complete(coro)
                finally:
                    new_loop.close()
            except Exception as e:
                exception = e

        thread = threading.Thread(target=run_in_new_loop)
        thread.start()
        thread.join()

        if exception:
            raise exception
        return result

    except RuntimeError:
        return asyncio.run(coro)


def _services(ctx) -> Tuple[ConfigService, RepositoryRegistry]:
    """Config service and registry wired from the loaded configuration."""
    config_service = ConfigService(ctx.obj["config_manager"])
    config = config_service.config
    runner = GitCommandRunner(
        executable=config.git_executable, timeout=config.history.command_timeout
    )
    parser = LogParser(date_format=config.history.date_format)
    return config_service, RepositoryRegistry(runner=runner, parser=parser)


def _repository(registry: RepositoryRegistry, path: Union[str, Path]) -> GitRepository:
    """Repository owning ``path``; exits with status 1 when there is none."""
    repo = run_async(registry.resolve(path))
    if repo is None:
        console.print(f"❌ Not inside a git repository: {path}", style="red", markup=False)
        sys.exit(1)
    return repo


async def _wait_for_interrupt() -> None:
    """Block until the process is interrupted."""
    await asyncio.Event().wait()


def _log_task_failure(task: "asyncio.Task[None]") -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.exception("Refresh failed", exc_info=task.exception())


async def _watch(
    registry: RepositoryRegistry,
    repo: GitRepository,
    subscribe: Callable[[RepositoryWatchHandler], Callable[[], None]],
) -> None:
    """Watch ``repo`` for changes until interrupted.

    ``subscribe`` wires its listeners to the handler and returns the function
    that removes them again.
    """
    handler = RepositoryWatchHandler(registry, [repo.root], asyncio.get_running_loop())
    unsubscribe = subscribe(handler)
    handler.start_watching()
    console.print(f"👀 Watching {repo.root}, press Ctrl+C to stop", style="dim", markup=False)
    try:
        await _wait_for_interrupt()
    finally:
        unsubscribe()
        handler.stop_watching()


@click.group()
@click.option("--config", "-c", type=click.Path(exists=False), help="Config file path")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option(
    "--path",
    "-p",
    type=click.Path(exists=True),
    help="Working directory (defaults to the current directory)",
)
@click.version_option(version=__version__, prog_name="gitty")
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool, path: Optional[str]):
    """Browse git history in the terminal.

    \b
    EXAMPLES:
      gitty history                      # History of the current branch
      gitty history src/app.py           # History of one file
      gitty history app.py --line 42     # History of one line
      gitty history --branch main..dev   # Commits in dev but not in main
      gitty files HEAD~1                 # Files changed by a commit
      gitty toggle-stat                  # Cycle none/short/full detail
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    # Configure logging at WARNING level for clean CLI output
    logging.basicConfig(
        level=logging.WARNING, format="%(levelname)s:%(name)s:%(message)s"
    )
    if verbose:
        logging.getLogger("gitty").setLevel(logging.DEBUG)

    start_dir = Path(path).resolve() if path else Path.cwd()
    ctx.obj["start_dir"] = start_dir

    if config:
        ctx.obj["config_manager"] = ConfigManager(Path(config))
    else:
        ctx.obj["config_manager"] = ConfigManager.create_with_backtrack(start_dir)


@cli.command("history")
@click.argument("target", required=False, type=click.Path(exists=True))
@click.option("--branch", "-b", help="Ref or range (a..b) to show")
@click.option("--author", "-a", help="Only commits by this author")
@click.option("--line", "-l", type=int, help="History of one line of TARGET")
@click.option("--all", "load_all", is_flag=True, help="Load every commit, not just one page")
@click.option("--watch", "-w", is_flag=True, help="Keep running and re-render on repository changes")
@click.pass_context
def history_command(
    ctx,
    target: Optional[str],
    branch: Optional[str],
    author: Optional[str],
    line: Optional[int],
    load_all: bool,
    watch: bool,
):
    """Show the commit history of the repository or of TARGET."""
    if line is not None and target is None:
        console.print("❌ --line requires a file", style="red")
        sys.exit(1)

    config_service, registry = _services(ctx)
    location = Path(target).resolve() if target else ctx.obj["start_dir"]
    repo = _repository(registry, location)

    specified_path = None
    if target and repo.relative_path(location) != ".":
        specified_path = location

    view = HistoryView(config_service, parser=registry.parser)
    context = ViewContext(
        repo=repo, branch=branch, specified_path=specified_path, line=line, author=author
    )

    def show() -> None:
        console.print(to_rich_text(view.buffer), soft_wrap=True)
        if view.has_more:
            console.print(
                f"Showing {view.log_count} of {view.total_count} commits, use --all to load the rest",
                style="dim",
            )

    async def render() -> None:
        await view.open(context)
        if load_all and view.has_more:
            await view.load_all()
        show()
        if watch:
            await _watch(registry, repo, lambda handler: view.follow(handler, on_refreshed=show))

    run_async(render())
    view.dispose()


def _add_folder(tree: Tree, folder: FolderNode) -> None:
    for child in folder.children:
        if isinstance(child, FolderNode):
            _add_folder(tree.add(Text(f"📁 {child.label}", style="bold")), child)
        else:
            _add_file(tree, child)


def _add_file(tree: Tree, node: FileNode) -> None:
    status = node.file.status if node.file and node.file.status else " "
    label = Text(f"[{status[0]}] ", style="cyan")
    label.append(node.label)
    if node.file and node.file.previous_path:
        label.append(f"  ← {node.file.previous_path}", style="dim")
    tree.add(label)


@cli.command("files")
@click.argument("ref")
@click.option("--left", help="Compare against this ref instead of the parent")
@click.option("--select", type=click.Path(exists=True), help="Also group files under this path")
@click.option("--flat", is_flag=True, help="List files instead of a folder tree")
@click.pass_context
def files_command(ctx, ref: str, left: Optional[str], select: Optional[str], flat: bool):
    """List the files changed by REF, or between --left and REF."""
    config_service, registry = _services(ctx)
    repo = _repository(registry, ctx.obj["start_dir"])

    files = run_async(repo.committed_files(left, ref))
    selection = repo.relative_path(Path(select).resolve()) if select else None
    tree_view = config_service.explorer.tree_view and not flat
    folder = build_file_tree(files, ref, left, tree_view, selection)

    tree = Tree(Text(folder.label, style="bold green"))
    _add_folder(tree, folder)
    console.print(tree)


@cli.command("file-history")
@click.argument("target", type=click.Path(exists=True, dir_okay=False))
@click.option("--watch", "-w", is_flag=True, help="Keep running and relist when TARGET is saved")
@click.pass_context
def file_history_command(ctx, target: str, watch: bool):
    """List recent commits of TARGET, with uncommitted changes first."""
    config_service, registry = _services(ctx)
    explorer = config_service.explorer
    location = Path(target).resolve()
    repo = _repository(registry, location)

    async def list_history() -> None:
        folder = await file_history_items(
            repo, location, explorer.file_history_limit, explorer.file_history_label
        )
        console.print(folder.label, style="bold", markup=False)
        for node in folder.files:
            console.print(f"  {node.label}", markup=False)

    def subscribe(handler: RepositoryWatchHandler) -> Callable[[], None]:
        loop = asyncio.get_running_loop()
        target_path = normalize_path(location)

        def refresh() -> None:
            loop.create_task(list_history()).add_done_callback(_log_task_failure)

        def file_saved(path: Path) -> None:
            if normalize_path(path) == target_path:
                refresh()

        def repository_changed(changed: Optional[GitRepository]) -> None:
            if changed is repo:
                refresh()

        stop_saves = handler.on_file_saved(file_saved)
        stop_changes = registry.on_did_change(repository_changed)

        def unsubscribe() -> None:
            stop_saves()
            stop_changes()

        return unsubscribe

    async def run() -> None:
        await list_history()
        if watch:
            await _watch(registry, repo, subscribe)

    run_async(run())


@cli.command("refs")
@click.pass_context
def refs_command(ctx):
    """List branches, remote branches and tags."""
    _, registry = _services(ctx)
    repo = _repository(registry, ctx.obj["start_dir"])
    refs = run_async(repo.refs())

    table = Table(title="Refs")
    table.add_column("Type", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("Commit", style="yellow")
    for ref in refs:
        table.add_row(ref.type.value, ref.name, ref.commit or "")
    console.print(table)


@cli.command("authors")
@click.pass_context
def authors_command(ctx):
    """List commit authors of HEAD by number of commits."""
    _, registry = _services(ctx)
    repo = _repository(registry, ctx.obj["start_dir"])
    authors = run_async(repo.authors())

    table = Table(title="Authors")
    table.add_column("Commits", justify="right", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("Email", style="yellow")
    for author in authors:
        table.add_row(str(author.commits), author.name, author.email)
    console.print(table)


@cli.command("toggle-stat")
@click.pass_context
def toggle_stat_command(ctx):
    """Cycle the history detail level none -> short -> full."""
    config_service = ConfigService(ctx.obj["config_manager"])
    mode = config_service.toggle_stat_mode()
    console.print(f"✅ Stat mode: {mode.value}", style="green")


@cli.command("toggle-graph")
@click.pass_context
def toggle_graph_command(ctx):
    """Turn the branch graph on or off."""
    config_service = ConfigService(ctx.obj["config_manager"])
    enabled = config_service.toggle_graph()
    console.print(f"✅ Graph {'enabled' if enabled else 'disabled'}", style="green")


def main():
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n❌ Interrupted by user", style="red")
        sys.exit(1)
    except Exception as e:
        console.print(f"❌ Unexpected error: {str(e)}", style="red", markup=False)
        sys.exit(1)


if __name__ == "__main__":
    main()
