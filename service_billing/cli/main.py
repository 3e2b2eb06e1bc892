"""
CLI interface for Service Billing.

Provides command-line access to accounts, billed requests and ledgers.
"""

import json
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from service_billing.config.loader import (
    BillingConfig,
    build_registry,
    build_store,
    default_config,
    load_billing_config,
)
from service_billing.config.logging import setup_logging
from service_billing.core.errors import BillingError
from service_billing.core.orchestrator import RequestOrchestrator
from service_billing.core.pricing import format_minor_units
from service_billing.storage.repository import AccountRepository

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


class _Services:
    """Live objects built from the active configuration.

    Adapters are only built when the orchestrator is first needed, so
    commands that never run a request do not depend on adapter settings.
    """

    def __init__(self, config: BillingConfig):
        self.config = config
        self.store = build_store(config)
        self.repository = AccountRepository(self.store, config.paths)
        self._orchestrator: Optional[RequestOrchestrator] = None

    @property
    def orchestrator(self) -> RequestOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = RequestOrchestrator(
                self.store,
                registry=build_registry(self.config),
                paths=self.config.paths,
            )
        return self._orchestrator


def _services(ctx: typer.Context) -> _Services:
    return _Services(ctx.obj)


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/] {message}")
    sys.exit(EXIT_CODE_FAIL)


def _parse_json(text: str, option: str):
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        _fail(f"{option} is not valid JSON: {e}")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="SERVICE_BILLING_CONFIG",
        help="Path to YAML configuration file"
    ),
):
    """Service Billing CLI."""
    try:
        billing_config = load_billing_config(config) if config else default_config()
    except (OSError, ValueError) as e:
        _fail(str(e))
    setup_logging(billing_config.logging.level, billing_config.logging.json)
    ctx.obj = billing_config
    if ctx.invoked_subcommand is None:
        console.print("Service Billing - Use --help to see available commands")


@app.command()
def init(ctx: typer.Context):
    """Initialize the billing store."""
    try:
        _services(ctx)
        console.print("[green]✓[/] Store initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing store:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command("create-account")
def create_account(
    ctx: typer.Context,
    account_id: str = typer.Argument(..., help="New account id"),
    balance: int = typer.Option(..., "--balance", "-b", help="Initial balance in minor units"),
):
    """Provision an account with an initial balance."""
    try:
        account = _services(ctx).repository.create_account(account_id, balance)
    except (BillingError, ValueError) as e:
        _fail(str(e))
    console.print(
        f"[green]✓[/] Created account {account.id} "
        f"with balance {format_minor_units(account.balance)}"
    )


@app.command()
def balance(
    ctx: typer.Context,
    account_id: str = typer.Argument(..., help="Account id"),
):
    """Show an account's current balance."""
    try:
        account = _services(ctx).repository.get_account(account_id)
    except (BillingError, ValueError) as e:
        _fail(str(e))
    console.print(f"[bold]Account:[/bold] {account.id}")
    console.print(f"Balance: {format_minor_units(account.balance)}")
    console.print(f"Initial balance: {format_minor_units(account.initial_balance)}")


@app.command()
def history(
    ctx: typer.Context,
    account_id: str = typer.Argument(..., help="Account id"),
    limit: Optional[int] = typer.Option(
        None,
        "--limit",
        "-n",
        help="Show only the most recent N entries"
    ),
):
    """Show an account's billing history, oldest first."""
    try:
        entries = _services(ctx).repository.list_ledger_entries(account_id, limit=limit)
    except (BillingError, ValueError) as e:
        _fail(str(e))

    if not entries:
        console.print(f"\n[dim]No billing history for {account_id}.[/]")
        return

    table = Table(title=f"Billing history: {account_id}")
    table.add_column("Timestamp")
    table.add_column("Service")
    table.add_column("Units", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Balance", justify="right")
    table.add_column("Entry")
    for entry in entries:
        table.add_row(
            entry.timestamp.isoformat(timespec="seconds"),
            entry.service_id,
            str(entry.units_used),
            format_minor_units(entry.cost),
            format_minor_units(entry.resulting_balance),
            entry.entry_id[:8],
        )
    console.print(table)


@app.command()
def request(
    ctx: typer.Context,
    account_id: str = typer.Argument(..., help="Account to charge"),
    service_id: str = typer.Argument(..., help="Configured adapter id"),
    payload: str = typer.Option("{}", "--payload", "-p", help="JSON payload for the adapter"),
):
    """Run a billed service request."""
    data = _parse_json(payload, "--payload")
    try:
        receipt = _services(ctx).orchestrator.process_request(account_id, service_id, data)
    except (BillingError, ValueError) as e:
        _fail(str(e))
    console.print("\n[bold]Request committed[/bold]")
    console.print(f"Result: {json.dumps(receipt.result, default=str)}", markup=False)
    console.print(f"Balance: {format_minor_units(receipt.balance)}")


@app.command()
def verify(
    ctx: typer.Context,
    account_id: str = typer.Argument(..., help="Account id"),
):
    """Check that the balance matches the initial balance minus all charges."""
    try:
        report = _services(ctx).repository.verify_account(account_id)
    except (BillingError, ValueError) as e:
        _fail(str(e))

    console.print(f"\n[bold]Reconciliation:[/bold] {report.account_id}")
    console.print("-" * 40)
    console.print(f"Initial balance: {format_minor_units(report.initial_balance)}")
    console.print(f"Charges ({report.entry_count}): {format_minor_units(report.total_cost)}")
    console.print(f"Expected balance: {format_minor_units(report.expected_balance)}")
    console.print(f"Actual balance: {format_minor_units(report.balance)}")
    if report.consistent:
        console.print("\n[bold]Verdict:[/bold] [green]CONSISTENT[/]")
        sys.exit(EXIT_CODE_PASS)
    console.print("\n[bold]Verdict:[/bold] [red]MISMATCH[/]")
    sys.exit(EXIT_CODE_FAIL)


@app.command("secure-config")
def secure_config(
    ctx: typer.Context,
    account_id: str = typer.Argument(..., help="Account id"),
    set_value: Optional[str] = typer.Option(
        None,
        "--set",
        help="Replace the config with this JSON object"
    ),
):
    """Show or replace an account's private settings."""
    services = _services(ctx)
    try:
        if set_value is not None:
            value = _parse_json(set_value, "--set")
            if not isinstance(value, dict):
                _fail("--set must be a JSON object")
            services.orchestrator.put_secure_config(account_id, value)
            console.print(f"[green]✓[/] Secure config saved for {account_id}")
            return
        config = services.orchestrator.get_secure_config(account_id)
    except ValueError as e:
        _fail(str(e))
    console.print(json.dumps(config, indent=2, sort_keys=True), markup=False)


if __name__ == "__main__":
    app()
