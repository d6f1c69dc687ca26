"""
Command-line interface for cobot.

    cobot -d ./agent init
    cobot -d ./agent console
    cobot -d ./agent query "restart the web server" --all
    cobot -d ./agent cache info
"""

import logging
from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .agent import AgentContext
from .catalog.actions import ActionCatalog
from .catalog.storage import init_layout, open_storage
from .channels import console as console_channel
from .config import DEFAULT_LANGUAGE, DEFAULT_MINIMUM_SCORE, Settings, load_settings
from .core.cache import CacheManager
from .core.errors import CobotError
from .utils.logging_setup import setup_logging

console = Console()
logger = logging.getLogger(__name__)


def _fail(ctx: click.Context, error: CobotError) -> NoReturn:
    console.print(f"✗ {error.message}", style="red", markup=False, highlight=False)
    logger.debug("Command failed", exc_info=error)
    ctx.exit(1)


def _agent(ctx: click.Context) -> AgentContext:
    settings: Settings = ctx.obj
    try:
        return AgentContext(settings).initialize()
    except CobotError as e:
        _fail(ctx, e)


@click.group(name="cobot")
@click.option("--storage-path", "-d", type=click.Path(file_okay=False, path_type=Path),
              help="Agent storage directory (default: ./.data)")
@click.option("--log-file", "-l", type=click.Path(dir_okay=False, path_type=Path),
              help="Write JSON logs to this file")
@click.option("--language", "-g", help=f"Stemming language (default: {DEFAULT_LANGUAGE})")
@click.option("--minimum-score", "-r", type=float,
              help=f"Similarity minimum (default: {DEFAULT_MINIMUM_SCORE})")
@click.option("--git/--no-git", "use_git", default=None,
              help="Treat the storage as a git working tree (default: on)")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="YAML settings file")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr")
@click.version_option(__version__, prog_name="cobot")
@click.pass_context
def cli(ctx, storage_path, log_file, language, minimum_score, use_git, config_path, verbose):
    """A friendly customizable agent that can run actions on the local machine."""
    try:
        settings = load_settings(
            config_path,
            storage_path=storage_path,
            log_file=log_file,
            language=language,
            minimum_score=minimum_score,
            use_git=use_git,
        )
    except CobotError as e:
        _fail(ctx, e)
        return

    setup_logging(
        'cobot',
        level="DEBUG" if verbose else settings.log_level,
        log_file=settings.log_file,
        console_level="DEBUG" if verbose else "WARNING",
    )
    ctx.obj = settings


@cli.command()
@click.option("--name", default="default", show_default=True, help="Agent name for a new configuration")
@click.pass_context
def init(ctx, name):
    """Create the storage layout (agent-config.yaml, actions/, local/)."""
    settings: Settings = ctx.obj
    try:
        created = init_layout(settings.storage_path, agent_name=name)
    except CobotError as e:
        _fail(ctx, e)
        return

    if not created:
        console.print(f"[yellow]Storage at {settings.storage_path} is already initialized[/yellow]")
        return
    for path in created:
        console.print(f"[green]✓ Created {path}[/green]")


@cli.command(name="console")
@click.pass_context
def console_cmd(ctx):
    """Answer lines typed on standard input until an empty line."""
    agent = _agent(ctx)
    console_channel.start(agent, click.get_text_stream("stdin"), console=console)


@cli.command()
@click.argument("text")
@click.option("--all", "show_all", is_flag=True, help="Show every action, ignoring the minimum score")
@click.pass_context
def query(ctx, text, show_all):
    """Rank actions by similarity to TEXT."""
    agent = _agent(ctx)
    state = agent.state
    ranked = state.rank(text, 0.0 if show_all else agent.settings.minimum_score)

    if not ranked:
        console.print(f"No similar match for user input: '{text}'.", markup=False)
        return

    table = Table(title=f"Matches for '{text}'")
    table.add_column("Action", style="cyan")
    table.add_column("Score", style="magenta", justify="right")
    table.add_column("Description")
    for item in ranked:
        action = state.catalog.get(item.name)
        table.add_row(item.name, f"{item.score:.3f}", action.description if action else "")
    console.print(table)


@cli.group()
def actions():
    """Inspect the action catalog."""
    pass


@actions.command(name="list")
@click.pass_context
def actions_list(ctx):
    """List enabled actions in catalog order."""
    settings: Settings = ctx.obj
    try:
        catalog = ActionCatalog(open_storage(settings.storage_path, use_git=settings.use_git))
    except CobotError as e:
        _fail(ctx, e)
        return

    table = Table(title=f"Actions of agent {catalog.agent_config.name}")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Plugin", style="magenta")
    for action in catalog:
        table.add_row(action.name, action.description, action.exec.plugin)
    console.print(table)

    for name, reason in catalog.skipped.items():
        console.print(f"[yellow]Skipped {name}: {reason}[/yellow]")


@cli.group()
def cache():
    """Manage the vocabulary cache."""
    pass


def _cache_manager(ctx: click.Context) -> CacheManager:
    settings: Settings = ctx.obj
    try:
        storage = open_storage(settings.storage_path, use_git=settings.use_git)
    except CobotError as e:
        _fail(ctx, e)
    return CacheManager(storage, settings.cache_root, settings.language)


@cache.command(name="info")
@click.pass_context
def cache_info(ctx):
    """Show cache location and contents."""
    manager = _cache_manager(ctx)
    try:
        version = manager.storage.current_version_id()
        stats = manager.get_statistics()
    except CobotError as e:
        _fail(ctx, e)
        return

    table = Table(title="Vocabulary cache")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Cache root", str(manager.cache_root))
    table.add_row("Catalog version", version)
    table.add_row("Language", manager.language)
    table.add_row("Artifact", "✓" if manager.artifact_path(version).exists() else "✗")
    table.add_row("Checksum record", "✓" if manager.checksum_path(version).exists() else "✗")
    table.add_row("Generations", str(len(stats['generations'])))
    table.add_row("Size", f"{stats['cache_size_kb']:.1f} KB")
    console.print(table)


@cache.command(name="rebuild")
@click.pass_context
def cache_rebuild(ctx):
    """Delete the current artifact and build it again."""
    settings: Settings = ctx.obj
    try:
        agent = AgentContext(settings)
        agent.cache.invalidate()
        snapshot = agent.reload()
    except CobotError as e:
        _fail(ctx, e)
        return
    console.print(
        f"[green]✓ Rebuilt vocabulary: {len(snapshot.vocabulary)} terms, "
        f"{len(snapshot.action_names)} actions[/green]"
    )


@cache.command(name="clear")
@click.pass_context
def cache_clear(ctx):
    """Delete every cached generation."""
    manager = _cache_manager(ctx)
    try:
        manager.clear()
    except CobotError as e:
        _fail(ctx, e)
        return
    console.print(f"[green]✓ Cleared {manager.cache_root}[/green]")


@cli.command(name="settings")
@click.pass_context
def settings_cmd(ctx):
    """Show the effective settings."""
    ctx.obj.display(console)


def main():
    cli(prog_name="cobot")


if __name__ == "__main__":
    main()
