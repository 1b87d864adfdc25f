"""Rich rendering of plans and reconciliation reports."""

import json
from typing import List

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from shipyard.reconciler.dependency_graph import DependencyGraph
from shipyard.state.models import (
    ReconciliationReport,
    ReportEntry,
    ResourceStatus,
    RunOutcome,
)

STATUS_STYLES = {
    ResourceStatus.PENDING: "dim",
    ResourceStatus.ABSENT: "dim",
    ResourceStatus.CREATING: "cyan",
    ResourceStatus.PRESENT: "green",
    ResourceStatus.DIVERGENT: "yellow",
    ResourceStatus.FAILED: "red",
}

OUTCOME_STYLES = {
    RunOutcome.SUCCESS: ("green", "✓ Reconciliation successful", "Reconciliation Complete"),
    RunOutcome.PARTIAL: ("yellow", "⚠ Reconciliation partially successful", "Reconciliation Partial"),
    RunOutcome.FAILED: ("red", "✗ Reconciliation failed", "Reconciliation Failed"),
}


def _describe_entry(entry: ReportEntry) -> str:
    """One-line detail for a report row."""
    state = entry.state

    if state.status == ResourceStatus.PRESENT:
        return "created" if state.created else "already present"
    if state.status == ResourceStatus.DIVERGENT:
        return f"differs on: {', '.join(state.divergent_fields)}"
    if state.status == ResourceStatus.FAILED and state.last_error:
        return escape(f"{state.last_error.category.value}: {state.last_error.message}")
    if state.status == ResourceStatus.PENDING:
        return "not processed"
    return ""


def report_table(report: ReconciliationReport) -> Table:
    """Build a table with one row per declaration, in reconciliation order."""
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Kind", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Status")
    table.add_column("Details", overflow="fold")

    for index, entry in enumerate(report.entries, 1):
        style = STATUS_STYLES[entry.state.status]
        table.add_row(
            str(index),
            entry.declaration.kind.value,
            entry.declaration.name,
            f"[{style}]{entry.state.status.value}[/{style}]",
            _describe_entry(entry),
        )

    return table


def render_report(console: Console, report: ReconciliationReport) -> None:
    """Print a report as a table followed by a summary panel."""
    if report.is_config_error():
        console.print(Panel.fit(
            f"[red]✗ Invalid plan[/red]\n\n{escape(report.error.message)}",
            title="Plan Rejected",
            border_style="red"
        ))
        return

    if report.entries:
        console.print(report_table(report))
        console.print()

    color, headline, title = OUTCOME_STYLES[report.outcome]
    lines = [
        f"[{color}]{headline}[/{color}]",
        "",
        f"Total resources: {len(report.entries)}",
        f"Present: {report.count(ResourceStatus.PRESENT)} ({report.create_count} created)",
        f"Divergent: {report.count(ResourceStatus.DIVERGENT)}",
        f"Failed: {report.count(ResourceStatus.FAILED)}",
    ]
    if report.cancelled:
        lines.append(f"Not processed: {report.count(ResourceStatus.PENDING)} (run cancelled)")
    lines.append(f"Duration: {report.duration:.2f}s")

    console.print(Panel.fit("\n".join(lines), title=title, border_style=color))

    failed = [entry for entry in report.entries if entry.state.is_failed() and entry.state.last_error]
    for entry in failed:
        if entry.state.last_error.suggestions:
            console.print(f"\n[bold]{entry.declaration}[/bold]")
            console.print(entry.state.last_error.to_user_message(), markup=False)


def report_json(report: ReconciliationReport) -> str:
    """Serialize a report as indented JSON."""
    return json.dumps(report.to_dict(), indent=2, default=str)


def render_graph(console: Console, graph: DependencyGraph, order: List[str]) -> None:
    """Print the reconciliation order with each declaration's dependencies beneath it."""
    tree = Tree("[bold]Reconciliation order[/bold]")

    for index, name in enumerate(order, 1):
        declaration = graph.get_declaration(name)
        branch = tree.add(f"[dim]{index}.[/dim] [cyan]{declaration.kind.value}[/cyan] {name}")
        for dependency in sorted(declaration.depends_on):
            branch.add(f"[dim]after[/dim] {dependency}")

    console.print(tree)
