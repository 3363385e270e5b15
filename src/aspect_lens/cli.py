"""
Command-line interface for Aspect Lens.

Provides commands for:
- analyze: Extract fingerprints from a repository and persist them
- tags: Tag and score the repositories in a workspace
- categories: Show category reports with entropy bands
- tree: Show a fingerprint value to repository tree
- overview: Show which aspects were found in a workspace
- score-workspace: Score a workspace as a whole
- config: Manage configuration
"""

import asyncio
import logging
import os
from collections import Counter
from collections.abc import Coroutine
from pathlib import Path
from typing import Annotated, Any, NoReturn, Optional, TypeVar

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from aspect_lens import __version__
from aspect_lens.categories import get_aspect_reports
from aspect_lens.config import (
    AspectLensConfig,
    generate_default_config,
    load_config,
    save_default_config,
)
from aspect_lens.errors import AspectLensError
from aspect_lens.overview import workspace_overview
from aspect_lens.pipeline import ExtractionConsolidationPipeline
from aspect_lens.plugins import PluginSet, get_plugins, load_plugins_from_directory
from aspect_lens.project import LocalProject
from aspect_lens.registry import DefaultAspectRegistry
from aspect_lens.repo_tree import TreeQuery, fingerprints_to_repos_tree
from aspect_lens.schemas import (
    WILDCARD,
    AnalysisContext,
    RepoAnalysis,
    RepoFilter,
    SunburstNode,
    TagAndScoreOptions,
    WorkspaceRepo,
    WorkspaceToScore,
)
from aspect_lens.store import InMemoryFingerprintStore

# Configure logging
logging.basicConfig(
    level=logging.INFO if not os.environ.get("ASPECT_LENS_DEBUG") else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# CLI app
app = typer.Typer(
    name="aspect-lens",
    help="Aggregate repository fingerprints into tags, scores and reports",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

T = TypeVar("T")

# Global config (loaded once per invocation)
_config: AspectLensConfig | None = None
_loaded_plugin_dirs: set[Path] = set()


def get_config() -> AspectLensConfig:
    """Get or load configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]aspect-lens[/bold] version {__version__}")
        raise typer.Exit()


def _fail(error: AspectLensError) -> NoReturn:
    console.print(f"[red]Error:[/red] {escape(error.message)}")
    if error.suggestion:
        console.print(f"[dim]{escape(error.suggestion)}[/dim]")
    raise typer.Exit(1)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, turning Aspect Lens errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except AspectLensError as e:
        logger.debug(f"Command failed: {e!r}")
        _fail(e)


def _open_store(store_path: Path | None) -> InMemoryFingerprintStore:
    cfg = get_config()
    return InMemoryFingerprintStore.open(store_path or Path(cfg.store.path))


def _plugin_set() -> PluginSet:
    cfg = get_config()
    plugins = get_plugins()
    if cfg.analysis.plugins_dir:
        plugins_dir = Path(cfg.analysis.plugins_dir).resolve()
        if plugins_dir not in _loaded_plugin_dirs:
            load_plugins_from_directory(plugins_dir)
            _loaded_plugin_dirs.add(plugins_dir)
    return plugins


def _registry(store: InMemoryFingerprintStore) -> DefaultAspectRegistry:
    return _plugin_set().build_registry(store=store, weight_overrides=get_config().scoring.weights)


def _workspace(workspace: str | None) -> str:
    return workspace or get_config().report.default_workspace


def _print_tree(node: SunburstNode, branch: Tree) -> None:
    for child in node.children or []:
        if child.is_leaf:
            owner = f"{escape(child.owner)}/" if child.owner else ""
            branch.add(f"{owner}{escape(child.name)}")
        else:
            _print_tree(child, branch.add(f"[cyan]{escape(child.name)}[/cyan]"))


WorkspaceOption = Annotated[
    Optional[str],
    typer.Option("--workspace", "-w", help="Workspace id, * for all (default from config)"),
]
StoreOption = Annotated[Optional[Path], typer.Option("--store", "-s", help="Fingerprint store file")]
JsonOption = Annotated[bool, typer.Option("--json", help="Output as JSON")]


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", "-v", callback=version_callback, is_eager=True,
                     help="Show version and exit"),
    ] = None,
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to configuration file"),
    ] = None,
) -> None:
    """Aspect Lens - repository fingerprint aggregation."""
    global _config
    try:
        _config = load_config(config)
    except AspectLensError as e:
        _fail(e)


@app.command()
def analyze(
    path: Annotated[Path, typer.Argument(help="Path to repository")] = Path("."),
    workspace: Annotated[str, typer.Option("--workspace", "-w", help="Workspace to record the repo in")] = "local",
    owner: Annotated[str, typer.Option("--owner", help="Repository owner")] = "local",
    store_path: StoreOption = None,
) -> None:
    """
    Analyze a repository and persist its fingerprints.

    Runs every registered aspect's extraction, then consolidation.
    """
    cfg = get_config()
    path = path.resolve()
    if not path.is_dir():
        console.print(f"[red]Error:[/red] Repository path does not exist: {path}")
        raise typer.Exit(1)

    async def _analyze() -> RepoAnalysis:
        store = _open_store(store_path)
        project = LocalProject(
            path,
            owner=owner,
            excluded_dirs=cfg.analysis.all_excluded_dirs(),
            max_file_size_bytes=cfg.analysis.max_file_size_bytes,
        )
        pipeline = ExtractionConsolidationPipeline(_plugin_set().aspects)
        result = await pipeline.analyze(project, AnalysisContext(workspace_id=workspace, repo=project.id))
        analysis = RepoAnalysis(id=project.id, workspace_id=workspace, fingerprints=result.fingerprints)
        await store.persist(analysis)
        return analysis

    console.print(Panel(f"[bold]Analyzing repository:[/bold] {escape(str(path))}", title="Aspect Lens"))
    analysis = _run(_analyze())

    counts = Counter(fp.type for fp in analysis.fingerprints)
    table = Table(title="Fingerprints")
    table.add_column("Aspect", style="cyan")
    table.add_column("Count", justify="right")
    for fp_type, count in sorted(counts.items()):
        table.add_row(escape(fp_type), str(count))
    console.print(table)
    console.print(f"[green]✓[/green] Recorded [bold]{len(analysis.fingerprints)}[/bold] fingerprints "
                  f"for {escape(analysis.id.key)} in workspace [bold]{escape(workspace)}[/bold]")


@app.command()
def tags(
    workspace: WorkspaceOption = None,
    category: Annotated[Optional[str], typer.Option("--category", help="Only run scorers of this category")] = None,
    store_path: StoreOption = None,
    json_output: JsonOption = False,
) -> None:
    """Tag and score every repository in a workspace."""
    workspace_id = _workspace(workspace)
    opts = TagAndScoreOptions(category=category or get_config().scoring.default_category)

    async def _tags():
        store = _open_store(store_path)
        repos = await store.load_repos(RepoFilter(workspace_id=workspace_id))
        return await _registry(store).tag_and_score_repos(workspace_id, repos, opts)

    scored = _run(_tags())

    if json_output:
        typer.echo("[" + ",".join(r.model_dump_json(exclude_none=True) for r in scored) + "]")
        return

    table = Table(title=f"Repositories in {escape(workspace_id)}")
    table.add_column("Repository", style="cyan")
    table.add_column("Tags")
    table.add_column("Score", justify="right")
    for repo in scored:
        score = repo.weighted_score.score
        table.add_row(
            escape(repo.id.key),
            escape(", ".join(tag.name for tag in repo.tags)),
            f"{score:.1f}" if score is not None else "[dim]n/a[/dim]",
        )
    console.print(table)


@app.command()
def categories(
    workspace: WorkspaceOption = None,
    store_path: StoreOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show category reports for a workspace."""
    workspace_id = _workspace(workspace)
    cfg = get_config()

    async def _categories():
        store = _open_store(store_path)
        repos = await store.load_repos(RepoFilter(workspace_id=workspace_id))
        usages = await store.fingerprint_usage(WILDCARD, workspace_id)
        return await get_aspect_reports(repos, usages, _registry(store), workspace_id, cfg.report.url_prefix)

    reports = _run(_categories())

    if json_output:
        typer.echo("[" + ",".join(r.model_dump_json(exclude_none=True) for r in reports) + "]")
        return

    if not reports:
        console.print("[yellow]No categorized fingerprints found.[/yellow]")
        return

    for report in reports:
        table = Table(title=f"{escape(report.category)} ({report.count} repos)")
        table.add_column("Aspect", style="cyan")
        table.add_column("Order", justify="right")
        table.add_column("High", justify="right")
        table.add_column("Medium", justify="right")
        table.add_column("Low", justify="right")
        table.add_column("Zero", justify="right")
        for detail in report.aspects:
            bands = detail.entropy_bands
            table.add_row(
                escape(detail.name or detail.type),
                "-" if detail.order is None else str(detail.order),
                *(str(getattr(bands, band)) if bands else "-" for band in ("high", "medium", "low", "zero")),
            )
        console.print(table)


@app.command()
def tree(
    aspect: Annotated[str, typer.Argument(help="Aspect (fingerprint type) to group by")],
    root_name: Annotated[Optional[str], typer.Option("--name", help="Fingerprint name, also the root name")] = None,
    by_name: Annotated[bool, typer.Option("--by-name", help="Only fingerprints with the given name")] = False,
    include_without: Annotated[bool, typer.Option("--include-without", help="Add repos without the fingerprint")] = False,
    workspace: WorkspaceOption = None,
    store_path: StoreOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show a fingerprint value to repository tree."""
    query = TreeQuery(
        workspace_id=_workspace(workspace),
        aspect_name=aspect,
        root_name=root_name or aspect,
        by_name=by_name,
        include_without=include_without,
    )

    async def _tree():
        return await fingerprints_to_repos_tree(query, _open_store(store_path))

    planted = _run(_tree())

    if json_output:
        typer.echo(planted.model_dump_json(exclude_none=True))
        return

    rings = " / ".join(circle.meaning for circle in planted.circles)
    root = Tree(f"[bold]{escape(planted.tree.name)}[/bold] [dim]({escape(rings)})[/dim]")
    _print_tree(planted.tree, root)
    console.print(root)


@app.command()
def overview(
    workspace: WorkspaceOption = None,
    store_path: StoreOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show which aspects were found in a workspace."""
    workspace_id = _workspace(workspace)

    async def _overview():
        store = _open_store(store_path)
        return await workspace_overview(store, _registry(store), workspace_id)

    result = _run(_overview())

    if json_output:
        typer.echo(result.model_dump_json(exclude_none=True))
        return

    console.print(Panel(
        f"[bold]Workspace:[/bold] {escape(result.workspace_id)}\n"
        f"[bold]Projects analyzed:[/bold] {result.projects_analyzed}",
        title="Overview",
    ))
    for usage in result.important_aspects:
        console.print(f"[green]✓[/green] {escape(usage.display_name)}: {len(usage.fingerprints)} fingerprint kinds")
    for aspect in result.unfound_aspects:
        console.print(f"[dim]✗ {escape(aspect.display_name or aspect.name)}: not found[/dim]")


@app.command("score-workspace")
def score_workspace(
    workspace: WorkspaceOption = None,
    store_path: StoreOption = None,
    json_output: JsonOption = False,
) -> None:
    """Score a workspace from its usage statistics and repository scores."""
    workspace_id = _workspace(workspace)

    async def _score():
        store = _open_store(store_path)
        registry = _registry(store)
        repos = await store.load_repos(RepoFilter(workspace_id=workspace_id))
        scored = await registry.tag_and_score_repos(workspace_id, repos)
        summary = WorkspaceToScore(
            fingerprint_usage=await store.fingerprint_usage(WILDCARD, workspace_id),
            repos=[
                WorkspaceRepo(url=r.id.url, owner=r.id.owner, repo=r.id.repo, score=r.weighted_score.score)
                for r in scored
            ],
        )
        return await registry.score_workspace(workspace_id, summary)

    weighted = _run(_score())

    if json_output:
        typer.echo(weighted.model_dump_json(exclude_none=True))
        return

    table = Table(title=f"Workspace score: {escape(workspace_id)}")
    table.add_column("Scorer", style="cyan")
    table.add_column("Weight", justify="right")
    table.add_column("Score", justify="right")
    for name, contribution in weighted.weighted_scores.items():
        table.add_row(
            escape(name),
            f"{contribution.weight:g}",
            f"{contribution.score:.1f}" if contribution.score is not None else "[dim]n/a[/dim]",
        )
    console.print(table)
    overall = "n/a" if weighted.score is None else f"{weighted.score:.1f}"
    console.print(f"[bold]Overall:[/bold] {overall}")


@app.command("config")
def config_cmd(
    init_config: Annotated[bool, typer.Option("--init", help="Create default config file")] = False,
    show: Annotated[bool, typer.Option("--show", help="Show current configuration")] = False,
    path: Annotated[Optional[Path], typer.Option("--path", help="Config file path for --init")] = None,
) -> None:
    """
    Manage configuration.

    Create or view configuration files.
    """
    if init_config:
        config_path = save_default_config(path)
        console.print(f"[green]✓[/green] Created config file: {escape(str(config_path))}")
        console.print("[dim]Edit this file to customize settings.[/dim]")
        return

    if show:
        typer.echo(get_config().model_dump_json(indent=2))
        return

    # Default: show help
    console.print("Use --init to create a config file or --show to view current config.")
    console.print()
    console.print("[dim]Config is searched in:[/dim]")
    console.print("  • ./aspect-lens.toml")
    console.print("  • ./.aspect-lens.toml")
    console.print("  • ./pyproject.toml \\[tool.aspect-lens]")
    console.print()
    console.print("[dim]Default config:[/dim]")
    console.print(escape(generate_default_config()))


if __name__ == "__main__":
    app()
