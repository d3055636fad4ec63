# -*- coding: utf-8 -*-
"""
TrustChain CLI
==============

Operator commands for the ledger-consistency watchdog:

    trustchain check VIN          Check one record against the ledger
    trustchain audit [--auto-heal] Run a forensic audit over eligible records
    trustchain sync               Run a full sync report over active records
    trustchain watch              Run the watchdog schedule in the foreground
    trustchain config             Show the effective configuration
    trustchain version            Show the version

Every reporting command accepts ``--json`` to print the raw result.
"""

import json
import logging
import time
from dataclasses import replace
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from trustchain import __version__
from trustchain.ledger_watchdog.config import get_config
from trustchain.ledger_watchdog.models import (
    AuditReport,
    IntegrityStatus,
    IntegrityVerdict,
    SyncReport,
)
from trustchain.ledger_watchdog.setup import LedgerWatchdogService, get_service
from trustchain.ledger_watchdog.watchdog import WatchdogScheduler

app = typer.Typer(
    name="trustchain",
    help="TrustChain: ledger-consistency watchdog for vehicle registrations",
    no_args_is_help=True,
    add_completion=False,
)
console = Console()

_STATUS_STYLES = {
    IntegrityStatus.VERIFIED: "green",
    IntegrityStatus.TAMPERED: "bold red",
    IntegrityStatus.MISMATCH: "yellow",
    IntegrityStatus.NOT_REGISTERED: "blue",
    IntegrityStatus.PENDING_BLOCKCHAIN: "blue",
    IntegrityStatus.ERROR: "red",
}


def _service() -> LedgerWatchdogService:
    # One-shot commands never schedule; watch drives its own scheduler.
    return get_service(schedule=False)


def _emit_json(payload: Any) -> None:
    if hasattr(payload, "model_dump_json"):
        typer.echo(payload.model_dump_json(indent=2))
    else:
        typer.echo(json.dumps(payload, indent=2, default=str))


@app.callback()
def _root(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """
    TrustChain - Ledger Consistency Watchdog
    """
    level = logging.DEBUG if verbose else getattr(logging, get_config().log_level, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _render_verdict(verdict: IntegrityVerdict) -> None:
    style = _STATUS_STYLES.get(verdict.status, "white")
    header = f"[{style}]{verdict.status.value}[/{style}]  {verdict.vin or '-'}"
    lines = [verdict.message]
    if verdict.transaction_id:
        lines.append(f"Transaction: {verdict.transaction_id}")
    if verdict.error:
        lines.append(f"[red]Error:[/red] {verdict.error}")
    console.print(Panel("\n".join(lines), title=header, expand=False))

    if verdict.comparisons:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Field", style="cyan")
        table.add_column("Database")
        table.add_column("Ledger")
        table.add_column("Status")
        for c in verdict.comparisons:
            mark = "[green]MATCH[/green]" if c.matches else "[red]MISMATCH[/red]"
            label = f"{c.label} *" if c.is_critical else c.label
            table.add_row(label, str(c.relational_value or ""), str(c.ledger_value or ""), mark)
        console.print(table)

    if verdict.consensus is not None and verdict.consensus.has_discrepancies:
        console.print(
            f"[yellow]Peer disagreement on:[/yellow] {', '.join(verdict.consensus.discrepancies)}"
        )


def _counts_table(title: str, counts: Dict[str, Any]) -> Table:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    for key, value in counts.items():
        table.add_row(key, str(value))
    return table


def _render_audit(report: AuditReport) -> None:
    console.print(_counts_table(f"Forensic audit {report.run_id}", {
        "Checked": report.total_checked,
        "Verified": report.verified,
        "Tampered": report.tampered_count,
        "Mismatched": report.mismatched,
        "Pending": report.pending,
        "Restored": report.restored,
        "Restoration failures": report.restoration_failures,
        "Errors": report.errors,
        "Auto-heal": "ENABLED" if report.auto_heal else "DISABLED",
        "Duration (s)": f"{report.duration_seconds:.2f}",
    }))
    if report.tampered:
        table = Table(title="Tampered records", show_header=True, header_style="bold red")
        table.add_column("VIN", style="cyan")
        table.add_column("Owner")
        table.add_column("Mismatched fields")
        table.add_column("Restored")
        for t in report.tampered:
            table.add_row(
                t.vin,
                t.owner_email or t.owner_name or "N/A",
                ", ".join(t.mismatched_fields),
                "YES" if t.restored else "NO",
            )
        console.print(table)


def _render_sync(report: SyncReport) -> None:
    console.print(_counts_table(f"Full sync {report.run_id}", {
        "Total records": report.total_records,
        "Matched": report.matched,
        "Mismatched": report.mismatched,
        "Not on ledger": report.not_on_ledger,
        "Pending": report.pending,
        "Errors": report.errors,
        "Duration (s)": f"{report.duration_seconds:.2f}",
    }))
    if report.discrepancies:
        table = Table(title="Discrepancies", show_header=True, header_style="bold yellow")
        table.add_column("VIN", style="cyan")
        table.add_column("Status")
        table.add_column("Detail")
        for d in report.discrepancies:
            table.add_row(d.vin, d.status.value, ", ".join(d.mismatched_fields) or d.message)
        console.print(table)
        if report.discrepancies_truncated:
            hidden = report.total_discrepancies - len(report.discrepancies)
            console.print(f"[yellow]... and {hidden} more[/yellow]")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def check(
    vin: str = typer.Argument(..., help="Vehicle identification number"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw verdict"),
):
    """Check one record against the ledger"""
    verdict = _service().check_by_key(vin.strip().upper())
    if as_json:
        _emit_json(verdict)
    else:
        _render_verdict(verdict)
    if verdict.status == IntegrityStatus.ERROR:
        raise typer.Exit(1)


@app.command()
def audit(
    auto_heal: Optional[bool] = typer.Option(
        None, "--auto-heal/--no-auto-heal", help="Restore tampered records from the ledger",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the raw run result"),
):
    """Run a forensic audit over every ledger-eligible record"""
    result = _service().run_forensic_audit(auto_heal=auto_heal)
    if as_json:
        _emit_json(result)
    elif result.report is not None:
        _render_audit(result.report)
    else:
        console.print(f"[red]Audit not run:[/red] {result.error}")
    if not result.success:
        raise typer.Exit(1)


@app.command()
def sync(
    as_json: bool = typer.Option(False, "--json", help="Print the raw run result"),
):
    """Run a full sync report over every active record"""
    result = _service().run_full_sync()
    if as_json:
        _emit_json(result)
    elif result.report is not None:
        _render_sync(result.report)
    else:
        console.print(f"[red]Sync not run:[/red] {result.error}")
    if not result.success:
        raise typer.Exit(1)


@app.command()
def watch(
    interval: Optional[int] = typer.Option(None, "--interval", "-i", min=1, help="Minutes between audits"),
    auto_heal: Optional[bool] = typer.Option(None, "--auto-heal/--no-auto-heal"),
    once: bool = typer.Option(False, "--once", help="Run a single watchdog cycle and exit"),
    as_json: bool = typer.Option(False, "--json", help="Print each run result"),
):
    """Run the watchdog schedule in the foreground until interrupted"""
    svc = _service()
    overrides: Dict[str, Any] = {"enabled": True}
    if interval is not None:
        overrides["interval_minutes"] = interval
    if auto_heal is not None:
        overrides["auto_heal"] = auto_heal
    scheduler = WatchdogScheduler(svc.auditor, svc.dispatcher, replace(svc.config, **overrides))

    if once:
        result = scheduler.run_once()
        if as_json:
            _emit_json(result)
        elif result.report is not None:
            _render_audit(result.report)
        if not result.success:
            raise typer.Exit(1)
        return

    console.print(
        f"[bold]Watchdog running[/bold] every {scheduler.get_status().interval_minutes} min "
        f"(Ctrl+C to stop)"
    )
    scheduler.start()
    seen = 0
    try:
        while scheduler.is_scheduled:
            time.sleep(1)
            status = scheduler.get_status()
            if status.runs_completed > seen and status.last_report is not None:
                seen = status.runs_completed
                if as_json:
                    _emit_json(status.last_report)
                else:
                    _render_audit(status.last_report)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
    finally:
        scheduler.stop()


@app.command("config")
def show_config(
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
):
    """Show the effective configuration"""
    values = get_config().to_dict()
    if as_json:
        _emit_json(values)
        return
    table = Table(title="Ledger watchdog configuration", show_header=True, header_style="bold magenta")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    for key, value in values.items():
        table.add_row(key, str(value))
    console.print(table)


@app.command()
def version(
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
):
    """Show TrustChain version"""
    if as_json:
        _emit_json({"name": "trustchain", "version": __version__})
        return
    console.print(f"[bold green]TrustChain v{__version__}[/bold green]")
    console.print("Ledger Consistency Watchdog")


def main():
    """Main entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        raise typer.Exit(1)


if __name__ == "__main__":
    main()
