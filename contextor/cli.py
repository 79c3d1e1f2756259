"""Contextor CLI — Typer + Rich terminal interface.

Commands: select, compare, score, config.
Every command reads a snapshot JSON document produced by an analyzer;
the CLI itself never walks a directory.
"""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from contextor import __version__
from contextor.engine import ContextEngine
from contextor.errors import ContextorError
from contextor.schemas.config import EngineConfig
from contextor.schemas.files import ProjectSnapshot
from contextor.schemas.kinds import InclusionReason, SelectionStrategy, TaskType
from contextor.schemas.selection import ContextConstraints, SelectedContext
from contextor.schemas.task import Task
from contextor.settings import default_config_path, load_engine_config

console = Console()

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="contextor",
    help="Budgeted context selection for coding tasks.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(
    name="config",
    help="Show engine configuration.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"contextor {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log engine decisions to stderr.",
    ),
) -> None:
    """Contextor — pick the files a model needs, within a token budget."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )


# ── Helpers ──────────────────────────────────────────────────────

def _load_config(config_path: Path | None) -> EngineConfig:
    """Load engine config, exit on error."""
    try:
        return load_engine_config(config_path)
    except (FileNotFoundError, ContextorError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None


def _load_snapshot(path: Path) -> ProjectSnapshot:
    """Read and validate a snapshot document, exit on error."""
    try:
        return ProjectSnapshot.model_validate_json(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        console.print(f"[red]Snapshot not found:[/red] {path}")
        raise typer.Exit(1) from None
    except ValidationError as e:
        console.print(f"[red]Invalid snapshot:[/red] {path}\n{e}")
        raise typer.Exit(1) from None


def _parse_task_type(value: str) -> TaskType:
    try:
        return TaskType(value)
    except ValueError:
        valid = ", ".join(t.value for t in TaskType)
        console.print(f"[red]Invalid task type:[/red] '{value}' (choose from {valid})")
        raise typer.Exit(1) from None


def _parse_strategy(value: str) -> SelectionStrategy:
    try:
        return SelectionStrategy(value)
    except ValueError:
        valid = ", ".join(s.value for s in SelectionStrategy)
        console.print(f"[red]Invalid strategy:[/red] '{value}' (choose from {valid})")
        raise typer.Exit(1) from None


def _build_task(
    task_type: str, description: str, keywords: list[str], include: list[str]
) -> Task:
    return Task(
        type=_parse_task_type(task_type),
        description=description,
        keywords=keywords,
        must_include=include,
    )


def _reason_style(reason: InclusionReason) -> str:
    return {
        InclusionReason.MUST_INCLUDE: "bold yellow",
        InclusionReason.DEPENDENCY: "cyan",
    }.get(reason, "green")


def _display_selection(selection: SelectedContext, title: str) -> None:
    table = Table(title=title)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Path", style="bold")
    table.add_column("Kind")
    table.add_column("Tokens", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Reason")

    for i, f in enumerate(selection.files, 1):
        style = _reason_style(f.reason)
        table.add_row(
            str(i),
            f.file.path,
            f.file.kind.value,
            f"{f.file.token_count:,}",
            f"{f.score:.3f}",
            f"[{style}]{f.reason.value}[/{style}]",
        )

    console.print(table)
    cached = " [dim](cached)[/dim]" if selection.cached else ""
    console.print(
        f"\n[bold]{selection.total_files}[/bold] files, "
        f"[bold]{selection.total_tokens:,}[/bold]/{selection.max_tokens:,} tokens, "
        f"strategy [cyan]{selection.strategy.value}[/cyan]{cached}"
    )
    if selection.adaptation_reasons:
        console.print(
            Panel(
                "\n".join(f"• {r}" for r in selection.adaptation_reasons),
                title="Adaptation",
                border_style="yellow",
            )
        )


# ── contextor select ─────────────────────────────────────────────

@app.command()
def select(
    snapshot_path: Path = typer.Argument(..., help="Snapshot JSON document"),
    task_type: str = typer.Option(
        "general", "--task-type", "-t",
        help="Task type: general, debug, refactor, feature, test, documentation",
    ),
    description: str = typer.Option("", "--description", "-d", help="Task description"),
    keyword: list[str] = typer.Option(
        [], "--keyword", "-k", help="Explicit keyword (repeatable)",
    ),
    include: list[str] = typer.Option(
        [], "--include", "-i", help="Path that must be selected (repeatable)",
    ),
    max_tokens: int = typer.Option(0, "--max-tokens", help="Token budget (0 = config default)"),
    max_files: int = typer.Option(0, "--max-files", help="File cap (0 = config default)"),
    strategy: str = typer.Option(
        "", "--strategy", "-s",
        help="relevance, dependency, freshness, compactness or balanced",
    ),
    adaptive: bool = typer.Option(
        False, "--adaptive", help="Retry with adjusted parameters when the budget goes unused",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the selection as JSON"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Engine config TOML"),
) -> None:
    """Select the files a task needs within a token budget."""
    config = _load_config(config_path)
    snapshot = _load_snapshot(snapshot_path)
    task = _build_task(task_type, description, keyword, include)
    engine = ContextEngine(config)

    try:
        if adaptive:
            selection = engine.adapt(
                snapshot,
                task,
                max_tokens or config.optimizer.default_max_tokens,
                strategy=_parse_strategy(strategy) if strategy else None,
                max_files=max_files or None,
            )
        else:
            changes: dict = {}
            if max_tokens:
                changes["max_tokens"] = max_tokens
            if max_files:
                changes["max_files"] = max_files
            if strategy:
                changes["strategy"] = _parse_strategy(strategy)
            constraints = engine.optimizer.default_constraints().with_changes(**changes)
            selection = engine.select(snapshot, task, constraints)
    except (ContextorError, ValueError) as e:
        console.print(f"[red]Selection failed:[/red] {e}")
        raise typer.Exit(1) from None

    if as_json:
        typer.echo(selection.model_dump_json(indent=2))
        return
    _display_selection(selection, f"Context for {task.type.value} task")


# ── contextor compare ────────────────────────────────────────────

@app.command()
def compare(
    snapshot_path: Path = typer.Argument(..., help="Snapshot JSON document"),
    task_type: str = typer.Option("general", "--task-type", "-t", help="Task type"),
    description: str = typer.Option("", "--description", "-d", help="Task description"),
    keyword: list[str] = typer.Option([], "--keyword", "-k", help="Explicit keyword"),
    include: list[str] = typer.Option([], "--include", "-i", help="Must-include path"),
    max_tokens: int = typer.Option(0, "--max-tokens", help="Token budget (0 = config default)"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Engine config TOML"),
) -> None:
    """Compare every selection strategy on one task."""
    config = _load_config(config_path)
    snapshot = _load_snapshot(snapshot_path)
    task = _build_task(task_type, description, keyword, include)
    engine = ContextEngine(config)
    base = engine.optimizer.default_constraints()
    if max_tokens:
        base = base.with_changes(max_tokens=max_tokens)

    table = Table(title="Strategy Comparison")
    table.add_column("Strategy", style="bold")
    table.add_column("Files", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Tokens/File", justify="right")
    table.add_column("Mean Score", justify="right", style="bold green")

    for strategy in SelectionStrategy:
        constraints: ContextConstraints = base.with_changes(strategy=strategy)
        try:
            selection = engine.select(snapshot, task, constraints)
        except ContextorError as e:
            console.print(f"[red]Selection failed:[/red] {e}")
            raise typer.Exit(1) from None
        table.add_row(
            strategy.value,
            str(selection.total_files),
            f"{selection.total_tokens:,}",
            f"{selection.tokens_per_file:,.0f}",
            f"{selection.selection_score:.3f}",
        )

    console.print(table)
    console.print(f"\n[dim]Budget: {base.max_tokens:,} tokens, {base.max_files} files[/dim]")


# ── contextor score ──────────────────────────────────────────────

@app.command()
def score(
    snapshot_path: Path = typer.Argument(..., help="Snapshot JSON document"),
    task_type: str = typer.Option("general", "--task-type", "-t", help="Task type"),
    description: str = typer.Option("", "--description", "-d", help="Task description"),
    keyword: list[str] = typer.Option([], "--keyword", "-k", help="Explicit keyword"),
    include: list[str] = typer.Option([], "--include", "-i", help="Must-include path"),
    limit: int = typer.Option(20, "--limit", "-n", help="Rows to show"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Engine config TOML"),
) -> None:
    """Show the per-factor relevance breakdown of each file."""
    config = _load_config(config_path)
    snapshot = _load_snapshot(snapshot_path)
    task = _build_task(task_type, description, keyword, include)
    engine = ContextEngine(config)

    ranked = engine.score(snapshot, task)

    table = Table(title="Relevance Scores", show_lines=False)
    table.add_column("Path", style="bold")
    table.add_column("Score", justify="right", style="bold green")
    for header in ("Kw", "Path", "Type", "Rec", "Size", "Dep", "Task", "Lang"):
        table.add_column(header, justify="right", style="dim")

    for sf in ranked[:limit]:
        f = sf.factors
        table.add_row(
            sf.file.path,
            f"{sf.score:.3f}",
            f"{f.keyword_match:.2f}",
            f"{f.path_relevance:.2f}",
            f"{f.file_type:.2f}",
            f"{f.recency:.2f}",
            f"{f.size:.2f}",
            f"{f.dependency:.2f}",
            f"{f.task_type:.2f}",
            f"{f.language:.2f}",
        )

    console.print(table)
    if len(ranked) > limit:
        console.print(f"\n[dim]{len(ranked) - limit} more file(s) not shown[/dim]")


# ── contextor config ─────────────────────────────────────────────

@config_app.command("show")
def config_show(
    config_path: Path = typer.Option(None, "--config", "-c", help="Engine config TOML"),
) -> None:
    """Show effective engine configuration."""
    config = _load_config(config_path)

    table = Table(title="Engine Configuration", show_header=False, show_lines=True)
    table.add_column("Setting", style="bold")
    table.add_column("Value")

    weights = config.scorer.weights
    for name, value in weights.model_dump().items():
        table.add_row(f"Weight: {name}", f"{value:.2f}")
    table.add_row("Recency Half-Life", f"{config.scorer.recency_half_life_hours:g}h")
    table.add_row("Optimal File Size", f"{config.scorer.optimal_file_tokens} tokens")
    table.add_row("Default Strategy", config.optimizer.default_strategy.value)
    table.add_row("Default Budget", f"{config.optimizer.default_max_tokens:,} tokens")
    table.add_row("Default Max Files", str(config.optimizer.default_max_files))
    table.add_row("Cache", "enabled" if config.cache.enabled else "disabled")
    table.add_row("Cache Entries", str(config.cache.max_entries))
    ttl = f"{config.cache.ttl_seconds:g}s" if config.cache.ttl_seconds else "none"
    table.add_row("Cache TTL", ttl)
    table.add_row("Adaptive Attempts", str(config.adaptive.max_attempts))
    table.add_row("Underuse Ratio", f"{config.adaptive.underuse_ratio:.2f}")

    console.print(table)


@config_app.command("path")
def config_path_cmd() -> None:
    """Show the default configuration file location."""
    path = default_config_path()
    status = "[green]found[/green]" if path.exists() else "[red]missing[/red]"
    console.print(f"Defaults: {path} {status}")
