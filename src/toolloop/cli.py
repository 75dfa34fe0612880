"""
CLI entry point for toolloop.

This module provides the Typer-based command-line interface.

Commands:
    run           Run a task through the loop with the demo catalog
    runs          List recorded runs
    report        Show the timeline of a recorded run
    check-config  Validate a loop configuration file
    doctor        Check Ollama connectivity and the database location

Exit codes of `run`:
    0  the model answered
    1  error (configuration, model backend, policy, storage)
    2  the iteration budget was exhausted
    3  a capability requested a re-plan

The CLI is thin: it parses arguments and delegates to LoopEngine, so
everything here can be done programmatically as well.
"""

import json
import logging
import sys
import traceback
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from toolloop import __version__
from toolloop.capabilities.builtin import demo_catalog
from toolloop.errors import ToolLoopError
from toolloop.loop import LoggingInspector, LoopEngine, LoopResult
from toolloop.report import generate_console_report
from toolloop.schema import LoopConfig, LoopMode, LoopStatus, Message, load_loop_config
from toolloop.sender import OllamaConfig, OllamaMessageSender, ScriptedMessageSender
from toolloop.store import LoopStore

DEFAULT_DB = Path("toolloop.db")

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. Use the available tools to complete the task. "
    "Some tools are groups: calling them reveals more specific tools. "
    "When you have the answer, reply with plain text."
)

EXIT_CODES = {
    LoopStatus.COMPLETED: 0,
    LoopStatus.MAX_ITERATIONS: 2,
    LoopStatus.REPLAN_REQUESTED: 3,
}

app = typer.Typer(
    name="toolloop",
    help="Drive tool-calling conversations with a dynamic capability set.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]toolloop[/bold] version {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    toolloop - Execution engine for tool-calling conversations.

    Capabilities unfold progressively from disclosure nodes, injection
    policies change the active set between turns, and any capability can
    abort the run to force a re-plan.
    """
    pass


@app.command()
def run(
    task: Annotated[str, typer.Argument(help="The task for the model.")],
    script: Annotated[
        Optional[Path],
        typer.Option(
            "--script",
            "-s",
            help="YAML file of canned model responses (instead of Ollama).",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Loop configuration YAML file.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    model: Annotated[
        str,
        typer.Option("--model", "-m", help="Ollama model to use."),
    ] = OllamaConfig.model,
    base_url: Annotated[
        str,
        typer.Option("--base-url", help="Ollama server URL."),
    ] = OllamaConfig.base_url,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="SQLite database to record the run in."),
    ] = None,
    max_iterations: Annotated[
        Optional[int],
        typer.Option("--max-iterations", "-n", min=1, help="Override the iteration budget."),
    ] = None,
    parallel: Annotated[
        bool,
        typer.Option("--parallel", help="Execute multi-call turns concurrently."),
    ] = False,
    system_prompt: Annotated[
        Optional[str],
        typer.Option("--system", help="System prompt to start the transcript with."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Log every loop event."),
    ] = False,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Show full error tracebacks."),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the result as JSON."),
    ] = False,
) -> None:
    """
    Run a task through the loop with the built-in demo catalog.

    Example:
        $ toolloop run "What is 2 to the power of 10?" --model llama3.2
        $ toolloop run "Add 2 and 3" --script examples/add.yaml
    """
    _configure_logging(verbose)

    try:
        config = load_loop_config(config_path) if config_path else LoopConfig()
        if parallel:
            config = config.with_overrides(mode=LoopMode.PARALLEL)
        sender = (
            ScriptedMessageSender.from_yaml(script)
            if script
            else OllamaMessageSender(OllamaConfig(base_url=base_url, model=model))
        )
    except ToolLoopError as e:
        _fail(f"Error loading configuration: {e}", json_output, debug)

    transcript = [
        Message.system(system_prompt or DEFAULT_SYSTEM_PROMPT),
        Message.user(task),
    ]

    try:
        with LoopStore(db or DEFAULT_DB) as store:
            engine = LoopEngine(
                sender,
                config=config,
                store=store,
                inspectors=[LoggingInspector()] if verbose else [],
            )
            result = engine.execute(transcript, demo_catalog(), max_iterations=max_iterations)
    except ToolLoopError as e:
        _fail(f"Run failed: {e}", json_output, debug)
    finally:
        if isinstance(sender, OllamaMessageSender):
            sender.close()

    if json_output:
        print(json.dumps(_result_dict(result), indent=2, default=str))
    else:
        _display_result(result)

    raise typer.Exit(code=EXIT_CODES[result.status])


def _fail(message: str, json_output: bool, debug: bool) -> None:
    if json_output:
        output: dict[str, Any] = {"ok": False, "error": message}
        if debug:
            output["traceback"] = traceback.format_exc()
        print(json.dumps(output, indent=2))
    else:
        console.print(f"[red]{message}[/red]")
        if debug:
            console.print(f"[dim]{traceback.format_exc()}[/dim]")
    raise typer.Exit(code=1)


def _result_dict(result: LoopResult) -> dict[str, Any]:
    return {
        "ok": result.completed,
        "run_id": result.run_id,
        "status": result.status.value,
        "final_result": result.final_result,
        "replan_reason": result.replan_request.reason if result.replan_request else None,
        "iterations": result.iterations,
        "injected": result.injected_names,
        "removed": result.removed_names,
        "turns": [
            {
                "iteration": t.iteration,
                "capability": t.capability_name,
                "status": t.status.value,
                "output": t.raw_output,
            }
            for t in result.turn_log
        ],
    }


def _display_result(result: LoopResult) -> None:
    if result.completed:
        console.print(f"[green]✓[/green] Run [bold]{result.run_id}[/bold]: [green]completed[/green]")
    elif result.replanned:
        console.print(
            f"[magenta]↻[/magenta] Run [bold]{result.run_id}[/bold]: "
            f"[magenta]replan requested[/magenta] ({escape(result.replan_request.reason)})"
        )
    else:
        console.print(
            f"[yellow]![/yellow] Run [bold]{result.run_id}[/bold]: "
            f"[yellow]iteration budget exhausted[/yellow]"
        )
    console.print()

    table = Table(show_header=True, header_style="bold")
    table.add_column("It", style="dim", width=3)
    table.add_column("Capability", style="cyan")
    table.add_column("Status", width=10)
    table.add_column("Output")
    for turn in result.turn_log:
        output = turn.raw_output if len(turn.raw_output) <= 60 else turn.raw_output[:57] + "..."
        table.add_row(str(turn.iteration), turn.capability_name, turn.status.value, escape(output))
    if result.turn_log:
        console.print(table)
        console.print()

    if result.injected_names:
        console.print(f"[dim]Added:[/dim]   {', '.join(result.injected_names)}")
    if result.removed_names:
        console.print(f"[dim]Removed:[/dim] {', '.join(result.removed_names)}")
    console.print(f"[dim]Iterations:[/dim] {result.iterations}")

    if result.completed:
        console.print()
        console.print(escape(str(result.final_result)))


@app.command()
def runs(
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Path to the SQLite database."),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum number of runs to show."),
    ] = 20,
) -> None:
    """
    List recorded runs.

    Example:
        $ toolloop runs --db runs.db
    """
    db_path = db or DEFAULT_DB
    if not db_path.exists():
        console.print(f"[yellow]No database found at {db_path}[/yellow]")
        raise typer.Exit(code=0)

    with LoopStore(db_path) as store:
        records = store.list_runs(limit=limit)

    if not records:
        console.print("[dim]No runs found.[/dim]")
        raise typer.Exit(code=0)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Run ID", style="cyan")
    table.add_column("Created")
    table.add_column("Status")
    table.add_column("Mode")
    table.add_column("Iterations", justify="right")
    table.add_column("Turns", justify="right")
    table.add_column("Errors", justify="right")

    styles = {LoopStatus.COMPLETED: "green", LoopStatus.FAILED: "red"}
    for record in records:
        style = styles.get(record.status, "yellow")
        table.add_row(
            record.run_id,
            record.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            f"[{style}]{record.status.value}[/{style}]",
            record.mode.value,
            f"{record.iterations}/{record.max_iterations}",
            str(record.turn_count),
            str(record.error_count),
        )
    console.print(table)


@app.command()
def report(
    run_id: Annotated[str, typer.Argument(help="ID of the run to report on.")],
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Path to the SQLite database."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Show raw inputs and longer outputs."),
    ] = False,
) -> None:
    """
    Show the timeline of a recorded run.

    Example:
        $ toolloop report abc12345
    """
    db_path = db or DEFAULT_DB
    if not db_path.exists():
        console.print(f"[red]No database found at {db_path}[/red]")
        raise typer.Exit(code=1)

    if not generate_console_report(run_id, db_path, console=console, verbose=verbose):
        raise typer.Exit(code=1)


@app.command("check-config")
def check_config(
    path: Annotated[
        Path,
        typer.Argument(help="Loop configuration YAML file.", exists=True, readable=True),
    ],
) -> None:
    """
    Validate a loop configuration file.

    Example:
        $ toolloop check-config loop.yaml
    """
    try:
        config = load_loop_config(path)
    except ToolLoopError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)

    console.print(f"[green]✓[/green] {path} is valid")
    console.print(f"  [dim]mode:[/dim] {config.mode.value}")
    console.print(f"  [dim]max_iterations:[/dim] {config.max_iterations}")
    console.print(f"  [dim]disclosure_context:[/dim] {config.disclosure_context}")
    if config.is_parallel:
        console.print(
            f"  [dim]timeouts:[/dim] {config.parallel.per_call_timeout_seconds:g}s per call, "
            f"{config.parallel.batch_timeout_seconds:g}s per batch"
        )


@app.command()
def doctor(
    model: Annotated[
        str,
        typer.Option("--model", "-m", help="Ollama model to check for."),
    ] = OllamaConfig.model,
    base_url: Annotated[
        str,
        typer.Option("--base-url", help="Ollama server URL."),
    ] = OllamaConfig.base_url,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database location to check."),
    ] = None,
) -> None:
    """
    Check the environment: Python, Ollama and the database location.

    Example:
        $ toolloop doctor --model llama3.2
    """
    checks: list[tuple[str, bool, str]] = []

    py = sys.version_info
    py_ok = py >= (3, 11)
    checks.append(
        ("Python version", py_ok, f"{py.major}.{py.minor}.{py.micro}" + ("" if py_ok else " (requires 3.11+)"))
    )

    with OllamaMessageSender(OllamaConfig(base_url=base_url, model=model)) as sender:
        ollama_ok, ollama_message = sender.check_connection()
    checks.append(("Ollama", ollama_ok, ollama_message))

    db_path = db or DEFAULT_DB
    if db_path.exists():
        checks.append(("Database", True, f"{db_path} exists ({db_path.stat().st_size} bytes)"))
    else:
        parent = db_path.resolve().parent
        db_ok = parent.is_dir()
        message = "will be created on first run" if db_ok else f"parent directory missing: {parent}"
        checks.append(("Database", db_ok, f"{db_path} {message}"))

    console.print(f"[bold]toolloop doctor[/bold] v{__version__}")
    console.print()
    for name, ok, message in checks:
        icon = "[green]✓[/green]" if ok else "[red]✗[/red]"
        console.print(f"{icon} {name}: {message}")

    if not all(ok for _, ok, _ in checks):
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
