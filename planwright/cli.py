"""
PLANWRIGHT CLI — The Interface

  planwright ask <workspace.json> "<instruction>"   (preview, confirm, apply)
  planwright undo [ENTRY_ID] -w <workspace.json>     (restore a snapshot)

Plus utilities:
  - planwright history          (recorded actions and their undo state)
  - planwright status           (config + API keys)
  - planwright init [DIR]       (bootstrap .planwright in a directory)
  - planwright configure        (store an encrypted assistant config)
  - planwright test-connection  (probe the configured provider)
"""

from __future__ import annotations

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from planwright import __codename__, __tagline__, __version__
from planwright.assistant import Assistant, AssistantReply, format_error
from planwright.config_loader import (
    AssistantConfig,
    PlanwrightConfig,
    load_config,
    validate_api_keys,
    validate_config,
)
from planwright.engine import diff_workspaces
from planwright.errors import PlanwrightError
from planwright.history import ActionHistory
from planwright.models import Insight, JsonDict
from planwright.providers import check_connection
from planwright.vault import FileBlobStore, Vault

# Load .env from current directory or home
load_dotenv()
load_dotenv(Path.home() / ".planwright" / ".env")

app = typer.Typer(
    name="planwright",
    help=f"{__codename__} — {__tagline__}\nNatural-language edits for your planner.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

SECRET_ENV = "PLANWRIGHT_SECRET"


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _open_vault(config: PlanwrightConfig, required: bool = False) -> Vault | None:
    secret = os.environ.get(SECRET_ENV)
    if not secret:
        if required:
            console.print(f"[red]{SECRET_ENV} is not set; the history vault is locked.[/]")
            raise typer.Exit(1)
        logger.warning(f"[CLI] {SECRET_ENV} not set — actions will not be recorded")
        return None
    store = FileBlobStore(config.history.store_dir)
    return Vault(store, secret, max_entries=config.history.max_entries)


def _resolve_config(config: PlanwrightConfig, vault: Vault | None) -> PlanwrightConfig:
    """Environment and config files win; the stored config fills in when no key is set."""
    if vault is None or config.assistant.api_key:
        return config
    saved = vault.load_config()
    if saved is None:
        return config
    return config.model_copy(update={"assistant": saved})


def _undo_window(config: PlanwrightConfig, vault: Vault) -> int:
    """The window stored with `configure` wins over the config files."""
    saved = vault.load_config()
    return saved.undo_window_minutes if saved else config.assistant.undo_window_minutes


def _read_workspace(path: Path) -> JsonDict:
    if not path.exists():
        console.print(f"[red]Workspace not found: {path}[/]")
        raise typer.Exit(1)
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        console.print(f"[red]Workspace is not valid JSON: {e}[/]")
        raise typer.Exit(1)


def _peek_workspace(path: Path) -> JsonDict | None:
    """The current document, or None when there is nothing readable to compare against."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.debug(f"[CLI] Not comparing against {path}: {e}")
        return None


def _write_workspace(path: Path, workspace: JsonDict) -> None:
    path.write_text(json.dumps(workspace, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


def _format_ms(value: int | None) -> str:
    if value is None:
        return "—"
    return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M")


def _print_insights(reply: AssistantReply) -> None:
    console.print(Panel(escape(reply.result.summary), title="Summary", border_style="cyan"))
    for raw in reply.result.insights:
        insight = Insight.model_validate(raw)
        body = escape(insight.description)
        if insight.data is not None:
            body += f"\n[dim]{escape(json.dumps(insight.data, ensure_ascii=False))}[/]"
        console.print(Panel(body, title=escape(f"{insight.type}: {insight.title}"), border_style="magenta"))


def _print_previews(reply: AssistantReply) -> None:
    console.print(Panel(escape(reply.result.summary), title="Summary", border_style="cyan"))
    if reply.result.reasoning:
        console.print(f"[dim]{escape(reply.result.reasoning)}[/]\n")
    if not reply.previews:
        console.print("[yellow]No changes proposed.[/]")
        return
    table = Table(title="Proposed changes", border_style="cyan")
    table.add_column("#", justify="right")
    table.add_column("Change")
    for index, preview in enumerate(reply.previews, start=1):
        table.add_row(str(index), escape(preview))
    console.print(table)
    for problem in reply.problems:
        console.print(f"[yellow]⚠ {escape(problem)}[/]")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def ask(
    workspace: Path = typer.Argument(..., help="Path to the workspace JSON document"),
    prompt: str = typer.Argument(..., help="What you want done, in plain language"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Apply proposed changes without asking"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Ask the assistant to change or analyse a workspace."""
    _configure_logging(verbose)

    config = load_config(Path.cwd())
    vault = _open_vault(config)
    config = _resolve_config(config, vault)
    document = _read_workspace(workspace)

    history = ActionHistory(vault, _undo_window(config, vault)) if vault else None
    assistant = Assistant(config, history=history)

    try:
        with console.status("[cyan]Thinking...[/]"):
            reply = assistant.handle(prompt, document)
    except PlanwrightError as e:
        console.print(f"[red]{escape(format_error(e))}[/]")
        raise typer.Exit(1)

    if reply.mode == "analysis":
        _print_insights(reply)
        return

    _print_previews(reply)
    if not reply.has_changes:
        return

    outcome = reply.outcome
    if outcome is None:
        if not yes and not Confirm.ask("Apply these changes?", default=False):
            console.print("[dim]Nothing applied.[/]")
            return
        outcome = assistant.apply(reply, document)

    if outcome.result.applied_changes:
        _write_workspace(workspace, outcome.result.updated_workspace)

    color = "green" if outcome.result.success else "yellow"
    if not outcome.result.applied_changes:
        color = "red"
    console.print(f"\n[bold {color}]{escape(outcome.message)}[/]")
    if outcome.entry:
        console.print(f"[dim]Undo with: planwright undo {outcome.entry.id} -w {workspace}[/]")

    if not outcome.result.applied_changes:
        raise typer.Exit(1)


@app.command()
def undo(
    entry_id: Optional[str] = typer.Argument(None, help="Action to undo (default: most recent)"),
    workspace: Path = typer.Option(..., "--workspace", "-w", help="Workspace JSON to restore into"),
):
    """Restore a workspace to how it was before a recorded action."""
    config = load_config(Path.cwd())
    vault = _open_vault(config, required=True)
    history = ActionHistory(vault, _undo_window(config, vault))

    entries = history.entries()
    if entry_id:
        entry = next((e for e in entries if e.id == entry_id), None)
    else:
        entry = next((e for e in reversed(entries) if e.undone_at is None), None)

    if entry is None:
        console.print("[red]No matching action to undo.[/]")
        raise typer.Exit(1)

    result = history.undo(entry)
    if not result.restored:
        console.print(f"[yellow]{escape(result.message)}[/]")
        raise typer.Exit(1)

    current = _peek_workspace(workspace)
    _write_workspace(workspace, result.workspace or {})
    console.print(f"[green]✓ {escape(result.message)}[/]")
    if current is not None:
        diff = diff_workspaces(current, result.workspace or {})
        counts = ", ".join(f"{len(items)} {kind}" for kind, items in diff.items() if items)
        console.print(f"[dim]Tables: {counts or 'unchanged'}[/]")


@app.command()
def history(
    limit: int = typer.Option(20, "--limit", "-n", help="Show at most this many entries"),
):
    """Show recorded actions, newest first."""
    config = load_config(Path.cwd())
    vault = _open_vault(config, required=True)
    action_history = ActionHistory(vault, _undo_window(config, vault))

    entries = action_history.entries()
    if not entries:
        console.print("[dim]No actions recorded yet.[/]")
        return

    table = Table(title="Action History", border_style="cyan")
    table.add_column("ID")
    table.add_column("Applied")
    table.add_column("Prompt")
    table.add_column("Changes", justify="right")
    table.add_column("Status")

    for entry in reversed(entries[-limit:]):
        if entry.undone_at is not None:
            state = f"[dim]undone {_format_ms(entry.undone_at)}[/]"
        elif action_history.can_undo(entry):
            state = "[green]undoable[/]"
        else:
            state = "[dim]expired[/]"
        table.add_row(
            entry.id,
            _format_ms(entry.applied_at),
            escape(entry.request_prompt[:60]),
            str(len(entry.changes)),
            state,
        )

    console.print(table)


@app.command()
def status():
    """Check PLANWRIGHT configuration and readiness."""
    console.print(f"[bold]{__codename__}[/] v{__version__} — [dim]{__tagline__}[/]\n")

    keys = validate_api_keys()
    key_table = Table(title="API Keys", border_style="cyan")
    key_table.add_column("Key")
    key_table.add_column("Status")
    for key, available in keys.items():
        status_str = "[green]✓ Available[/]" if available else "[red]✗ Missing[/]"
        key_table.add_row(key, status_str)
    console.print(key_table)

    config = load_config(Path.cwd())
    vault = _open_vault(config) if keys[SECRET_ENV] else None
    config = _resolve_config(config, vault)
    assistant = config.assistant

    console.print("\n[bold]Assistant:[/]")
    console.print(f"  Provider:     {assistant.provider}")
    console.print(f"  Model:        {assistant.model}")
    console.print(f"  Mode:         {assistant.mode}")
    window = _undo_window(config, vault) if vault is not None else assistant.undo_window_minutes
    console.print(f"  Undo window:  {window} min")
    if assistant.custom_endpoint:
        console.print(f"  Endpoint:     {assistant.custom_endpoint}")

    console.print("\n[bold]Locale:[/]")
    console.print(f"  Timezone:     {config.locale.timezone}")

    if vault is not None:
        stored = "[green]✓ stored[/]" if vault.is_configured() else "[dim]none[/]"
        console.print(f"\n[bold]Vault:[/] {config.history.store_dir} ({stored})")

    errors = validate_config(assistant)
    if errors:
        console.print("\n[yellow]Not ready:[/]")
        for error in errors:
            console.print(f"  • {error}")
    else:
        console.print("\n[green]Ready.[/]")


@app.command()
def init(
    directory: Optional[Path] = typer.Argument(None, help="Directory to initialize"),
):
    """Initialize a .planwright directory with a config override file."""
    directory = (directory or Path.cwd()).resolve()
    pw_dir = directory / ".planwright"
    pw_dir.mkdir(parents=True, exist_ok=True)

    config_path = pw_dir / "config.yaml"
    if not config_path.exists():
        config_path.write_text("""# PLANWRIGHT directory-level config overrides
# These merge with the built-in defaults.

# assistant:
#   provider: anthropic
#   model: claude-3-5-haiku-latest
#   mode: automatic
#   undo_window_minutes: 30

# locale:
#   timezone: Europe/Prague
""")

    gitignore = directory / ".gitignore"
    entry = ".planwright/store/"
    if gitignore.exists():
        content = gitignore.read_text()
        if entry not in content:
            with open(gitignore, "a") as f:
                f.write(f"\n# PLANWRIGHT\n{entry}\n")
    else:
        gitignore.write_text(f"# PLANWRIGHT\n{entry}\n")

    console.print(f"[green]✓ Initialized {pw_dir}[/]")
    console.print(f"[dim]Set {SECRET_ENV} and PLANWRIGHT_API_KEY in .env to get started.[/]")


@app.command()
def configure(
    provider: str = typer.Option("openai", "--provider", "-p", help="openai, anthropic or custom"),
    model: str = typer.Option("gpt-4o-mini", "--model", "-m"),
    api_key: str = typer.Option(..., "--api-key", prompt=True, hide_input=True),
    mode: str = typer.Option("preview", "--mode", help="preview or automatic"),
    undo_window: int = typer.Option(60, "--undo-window", help="Minutes an action stays undoable"),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", help="Endpoint for the custom provider"),
    clear: bool = typer.Option(False, "--clear", help="Remove the stored config and history"),
):
    """Store an encrypted assistant configuration in the vault."""
    config = load_config(Path.cwd())
    vault = _open_vault(config, required=True)

    if clear:
        vault.clear_config()
        console.print("[green]✓ Stored config and history cleared[/]")
        return

    assistant = AssistantConfig(
        enabled=True,
        provider=provider,
        api_key=api_key,
        model=model,
        mode=mode,
        undo_window_minutes=undo_window,
        custom_endpoint=endpoint,
    )
    errors = validate_config(assistant)
    if errors:
        for error in errors:
            console.print(f"[red]✗ {error}[/]")
        raise typer.Exit(1)

    vault.save_config(assistant)
    console.print(f"[green]✓ Saved {provider}/{model} ({mode} mode)[/]")


@app.command("test-connection")
def connection_check():
    """Send a tiny probe to the configured provider."""
    config = load_config(Path.cwd())
    vault = _open_vault(config) if os.environ.get(SECRET_ENV) else None
    config = _resolve_config(config, vault)

    errors = validate_config(config.assistant)
    if errors:
        for error in errors:
            console.print(f"[red]✗ {error}[/]")
        raise typer.Exit(1)

    with console.status(f"[cyan]Contacting {config.assistant.provider}...[/]"):
        ok, error = check_connection(config.assistant)

    if ok:
        console.print(f"[green]✓ {config.assistant.provider}/{config.assistant.model} is reachable[/]")
    else:
        console.print(f"[red]✗ {escape(error)}[/]")
        raise typer.Exit(1)


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    if verbose:
        logger.add(
            lambda msg: console.print(f"[dim]{msg}[/]", highlight=False),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: console.print(f"[dim]{msg}[/]", highlight=False),
            level="WARNING",
            format="{message}",
        )


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
