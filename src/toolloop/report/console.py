"""
Console report generator for toolloop.

Renders a recorded run with Rich: a header with the outcome, a timeline of
every capability invocation interleaved with the active-set changes it
caused, and summary statistics.
"""

from collections import defaultdict
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from toolloop.schema import CapabilityChange, ChangeKind, LoopStatus, RunRecord, TurnRecord, TurnStatus
from toolloop.store import LoopStore

ICON_SUCCESS = "[green]✓[/green]"
ICON_ERROR = "[red]✗[/red]"
ICON_REJECTED = "[yellow]⊘[/yellow]"
ICON_TIMEOUT = "[yellow]⧗[/yellow]"
ICON_REPLAN = "[magenta]↻[/magenta]"

STATUS_ICONS = {
    TurnStatus.SUCCESS: ICON_SUCCESS,
    TurnStatus.ERROR: ICON_ERROR,
    TurnStatus.REJECTED: ICON_REJECTED,
    TurnStatus.TIMEOUT: ICON_TIMEOUT,
    TurnStatus.REPLAN: ICON_REPLAN,
}

RUN_STYLES = {
    LoopStatus.COMPLETED: "green",
    LoopStatus.MAX_ITERATIONS: "yellow",
    LoopStatus.REPLAN_REQUESTED: "magenta",
    LoopStatus.FAILED: "red",
    LoopStatus.RUNNING: "yellow",
}


def generate_console_report(
    run_id: str,
    db_path: str | Path = "toolloop.db",
    console: Console | None = None,
    verbose: bool = False,
) -> bool:
    """
    Print a console report for a run.

    Args:
        run_id: ID of the run to report on
        db_path: Path to the SQLite database
        console: Rich Console instance (creates one if not provided)
        verbose: Whether to show raw inputs and full outputs

    Returns:
        False if the run does not exist
    """
    if console is None:
        console = Console()

    with LoopStore(db_path) as store:
        run = store.get_run(run_id)
        if run is None:
            console.print(f"[red]Run not found: {run_id}[/red]")
            return False

        turns = store.get_turns(run_id)
        changes = store.get_changes(run_id)

    _print_header(console, run)
    console.print()
    _print_timeline(console, turns, changes, verbose)
    console.print()
    _print_summary(console, run, turns, changes)
    return True


def _print_header(console: Console, run: RunRecord) -> None:
    style = RUN_STYLES.get(run.status, "dim")

    header = Text()
    header.append(" Run ", style="bold")
    header.append(run.run_id, style="bold cyan")
    header.append(" │ ", style="dim")
    header.append(run.status.value.upper(), style=f"bold {style}")
    header.append(" │ ", style="dim")
    header.append(run.mode.value, style="dim")
    console.print(Panel(header, expand=False))

    console.print(f"  [dim]Created:[/dim]   {run.created_at.strftime('%Y-%m-%d %H:%M:%S')}")
    if run.completed_at:
        duration = (run.completed_at - run.created_at).total_seconds()
        console.print(
            f"  [dim]Completed:[/dim] {run.completed_at.strftime('%Y-%m-%d %H:%M:%S')} ({duration:.2f}s)"
        )
    if run.final_text:
        console.print(f"  [dim]Answer:[/dim]    {escape(_truncate(run.final_text, 200))}")
    if run.error:
        label = "Replan" if run.status is LoopStatus.REPLAN_REQUESTED else "Error"
        console.print(f"  [dim]{label}:[/dim]     {escape(run.error)}")


def _print_timeline(
    console: Console,
    turns: list[TurnRecord],
    changes: list[CapabilityChange],
    verbose: bool,
) -> None:
    console.print("[bold]Timeline[/bold]")
    console.print()

    changes_by_iteration: dict[int, list[CapabilityChange]] = defaultdict(list)
    for change in changes:
        changes_by_iteration[change.iteration].append(change)

    table = Table(show_header=True, header_style="bold", show_lines=verbose, expand=True)
    table.add_column("It", style="dim", width=3, justify="right")
    table.add_column("Status", width=6, justify="center")
    table.add_column("Capability", style="cyan", width=20)
    table.add_column("Duration", justify="right", width=10)
    table.add_column("Details", overflow="fold")

    last_iteration = None
    for turn in turns:
        if last_iteration is not None and turn.iteration != last_iteration:
            _add_change_row(table, changes_by_iteration.pop(last_iteration, []))
        last_iteration = turn.iteration

        table.add_row(
            str(turn.iteration),
            STATUS_ICONS.get(turn.status, "?"),
            turn.capability_name,
            f"{turn.duration_seconds * 1000:.1f}ms",
            _format_details(turn, verbose),
        )
    if last_iteration is not None:
        _add_change_row(table, changes_by_iteration.pop(last_iteration, []))

    console.print(table)


def _add_change_row(table: Table, changes: list[CapabilityChange]) -> None:
    if not changes:
        return
    added = [c.capability_name for c in changes if c.kind is ChangeKind.ADDED]
    removed = [c.capability_name for c in changes if c.kind is ChangeKind.REMOVED]
    parts = []
    if added:
        parts.append(f"[green]+ {', '.join(added)}[/green]")
    if removed:
        parts.append(f"[red]- {', '.join(removed)}[/red]")
    table.add_row("", "", "[dim]active set[/dim]", "", "  ".join(parts))


def _format_details(turn: TurnRecord, verbose: bool) -> str:
    parts = []
    if verbose and turn.raw_input:
        parts.append(f"[dim]input:[/dim] {escape(_truncate(turn.raw_input, 100))}")

    if turn.status is TurnStatus.SUCCESS:
        limit = 200 if verbose else 60
        parts.append(escape(_truncate(turn.raw_output, limit)))
    elif turn.status is TurnStatus.REPLAN:
        parts.append(f"[magenta]{escape(_truncate(turn.raw_output, 80))}[/magenta]")
    else:
        parts.append(f"[red]{escape(_truncate(turn.raw_output, 80))}[/red]")

    return "\n".join(parts)


def _truncate(s: str, max_len: int) -> str:
    """Truncate string with ellipsis."""
    if len(s) <= max_len:
        return s
    return s[: max_len - 3] + "..."


def _print_summary(
    console: Console,
    run: RunRecord,
    turns: list[TurnRecord],
    changes: list[CapabilityChange],
) -> None:
    console.print("[bold]Summary[/bold]")
    console.print()

    counts = {status: 0 for status in TurnStatus}
    for turn in turns:
        counts[turn.status] += 1
    total_ms = sum(t.duration_seconds for t in turns) * 1000

    stats = Table(show_header=False, box=None, padding=(0, 2))
    stats.add_column("Metric", style="dim")
    stats.add_column("Value")

    stats.add_row("Iterations", f"{run.iterations} / {run.max_iterations}")
    stats.add_row("Invocations", str(len(turns)))
    stats.add_row("Succeeded", f"[green]{counts[TurnStatus.SUCCESS]}[/green]")
    for status, style in (
        (TurnStatus.ERROR, "red"),
        (TurnStatus.REJECTED, "yellow"),
        (TurnStatus.TIMEOUT, "yellow"),
    ):
        value = counts[status]
        stats.add_row(status.value.capitalize(), f"[{style}]{value}[/{style}]" if value else "0")
    stats.add_row(
        "Capabilities added",
        str(sum(1 for c in changes if c.kind is ChangeKind.ADDED)),
    )
    stats.add_row(
        "Capabilities removed",
        str(sum(1 for c in changes if c.kind is ChangeKind.REMOVED)),
    )
    stats.add_row("Capability time", f"{total_ms:.1f}ms")

    console.print(stats)
