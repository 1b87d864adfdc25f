"""Main CLI entry point."""

import signal
import sys
from typing import Any, Dict, Optional, Tuple

import click
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn

from shipyard.cli.output import render_graph, render_report, report_json
from shipyard.config.parser import Plan, PlanValidationError, load_plan
from shipyard.control_plane.aws import AWSControlPlaneClient
from shipyard.control_plane.base import ControlPlaneClient
from shipyard.reconciler.executor import (
    CancellationToken,
    PlanExecutor,
    rejected_report,
    validate_plan,
)
from shipyard.state.models import ReconciliationReport, ResourceDeclaration, ResourceState, RunOutcome
from shipyard.utils.aws_client import AWSClientManager
from shipyard.utils.errors import ConfigurationError, ReconcileError
from shipyard.utils.logging import setup_logging, get_logger

console = Console()
err_console = Console(stderr=True)
logger = get_logger(__name__)

EXIT_CODES = {
    RunOutcome.SUCCESS: 0,
    RunOutcome.PARTIAL: 1,
    RunOutcome.FAILED: 2,
}
EXIT_INVALID_PLAN = 3

# Reference roots supplied by the CLI rather than by a declaration
CONTEXT_ROOTS = ('account',)


@click.group()
@click.option('--profile', help='AWS profile to use')
@click.option('--region', help='AWS region')
@click.option('--log-level', default='info', type=click.Choice(['debug', 'info', 'warning', 'error']))
@click.pass_context
def cli(ctx, profile, region, log_level):
    """Idempotent infrastructure reconciler."""
    ctx.ensure_object(dict)
    ctx.obj['profile'] = profile
    ctx.obj['region'] = region
    ctx.obj['log_level'] = log_level

    # Setup logging
    setup_logging(log_level, console=err_console)


def load_plan_or_exit(plan_path: str) -> Plan:
    """Load a plan, exiting with the invalid-plan code on any error."""
    try:
        return load_plan(plan_path)
    except PlanValidationError as e:
        err_console.print("[red]Plan validation failed:[/red]\n")
        err_console.print(str(e), markup=False)
        sys.exit(EXIT_INVALID_PLAN)


def create_control_plane(
    profile: Optional[str] = None,
    region: Optional[str] = None
) -> Tuple[ControlPlaneClient, Dict[str, Dict[str, Any]]]:
    """Create the AWS control-plane client and the account reference context.

    Args:
        profile: AWS profile name
        region: AWS region

    Returns:
        Tuple of (client, context) where context holds ``account.id`` and
        ``account.region``

    Raises:
        ReconcileError: If credentials cannot be validated
    """
    client_manager = AWSClientManager(profile=profile, region=region)
    credentials = client_manager.validate_credentials()
    logger.info(f"Using AWS account {credentials.account_id} in {credentials.region}")

    context = {
        'account': {
            'id': credentials.account_id,
            'region': credentials.region,
        }
    }
    return AWSControlPlaneClient(client_manager), context


class RichProgressCallback:
    """Progress callback that displays updates using Rich."""

    def __init__(self, progress: Progress, task_id):
        self.progress = progress
        self.task_id = task_id
        self.completed = 0

    def __call__(self, declaration: ResourceDeclaration, state: Optional[ResourceState]):
        if state is None:
            self.progress.update(
                self.task_id,
                description=f"[cyan]Reconciling:[/cyan] {declaration}"
            )
            return

        self.completed += 1
        if state.is_present():
            status = "[green]✓[/green]"
        elif state.is_divergent():
            status = "[yellow]![/yellow]"
        else:
            status = "[red]✗[/red]"
        self.progress.update(
            self.task_id,
            completed=self.completed,
            description=f"{status} {declaration}"
        )


def show_report(report: ReconciliationReport, as_json: bool) -> None:
    """Print a report as JSON on stdout or as rich tables."""
    if as_json:
        click.echo(report_json(report))
    else:
        render_report(console, report)


def install_interrupt_handler(token: CancellationToken):
    """Route Ctrl-C to the cancellation token.

    The first interrupt requests a stop after the in-flight call; the second
    falls through to the default handler.

    Returns:
        The previously installed SIGINT handler
    """
    def handle_interrupt(signum, frame):
        token.cancel()
        err_console.print(
            "\n[yellow]Cancelling after the current call; press Ctrl-C again to abort[/yellow]"
        )
        signal.signal(signal.SIGINT, signal.default_int_handler)

    return signal.signal(signal.SIGINT, handle_interrupt)


@cli.command()
@click.option('--plan', 'plan_path', required=True, type=click.Path(dir_okay=False),
              help='Path to the YAML plan file')
@click.option('--json', 'as_json', is_flag=True, help='Print the report as JSON')
@click.pass_context
def reconcile(ctx, plan_path, as_json):
    """Bring the declared infrastructure into existence."""
    plan = load_plan_or_exit(plan_path)
    declarations = plan.to_declarations()

    # Reject an invalid plan before credentials are checked
    try:
        validate_plan(declarations, reference_roots=CONTEXT_ROOTS)
    except ConfigurationError as e:
        show_report(rejected_report(declarations, e), as_json)
        sys.exit(EXIT_INVALID_PLAN)

    profile = ctx.obj.get('profile') or plan.profile
    region = ctx.obj.get('region') or plan.region

    try:
        client, context = create_control_plane(profile=profile, region=region)
    except ReconcileError as e:
        err_console.print(e.to_user_message(), markup=False)
        sys.exit(EXIT_CODES[RunOutcome.FAILED])

    executor = PlanExecutor(client, retry_strategy=plan.retry_strategy(), context=context)
    token = CancellationToken()
    previous_handler = install_interrupt_handler(token)

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=err_console,
            transient=True
        ) as progress:
            task_id = progress.add_task("[cyan]Starting reconciliation...", total=len(declarations))
            report = executor.run(
                declarations,
                cancel_token=token,
                progress_callback=RichProgressCallback(progress, task_id)
            )
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    show_report(report, as_json)

    if report.is_config_error():
        sys.exit(EXIT_INVALID_PLAN)
    sys.exit(EXIT_CODES[report.outcome])


@cli.command()
@click.option('--plan', 'plan_path', required=True, type=click.Path(dir_okay=False),
              help='Path to the YAML plan file')
def validate(plan_path):
    """Check a plan without contacting the cloud provider."""
    plan = load_plan_or_exit(plan_path)

    try:
        dependency_graph = validate_plan(plan.to_declarations(), reference_roots=CONTEXT_ROOTS)
    except ConfigurationError as e:
        err_console.print(f"[red]Plan validation failed:[/red] {escape(e.message)}", highlight=False)
        sys.exit(EXIT_INVALID_PLAN)

    console.print(f"[green]✓[/green] Plan is valid: {dependency_graph.size()} declaration(s)")


@cli.command()
@click.option('--plan', 'plan_path', required=True, type=click.Path(dir_okay=False),
              help='Path to the YAML plan file')
def graph(plan_path):
    """Show the order in which a plan would be reconciled."""
    plan = load_plan_or_exit(plan_path)

    try:
        dependency_graph = validate_plan(plan.to_declarations(), reference_roots=CONTEXT_ROOTS)
        order = dependency_graph.topological_sort()
    except ConfigurationError as e:
        err_console.print(f"[red]Plan validation failed:[/red] {escape(e.message)}", highlight=False)
        sys.exit(EXIT_INVALID_PLAN)

    render_graph(console, dependency_graph, order)


if __name__ == '__main__':
    cli()
