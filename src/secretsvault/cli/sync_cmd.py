"""Sync commands: sync, rollback, telemetry, backups, bootstrap."""

from __future__ import annotations

import click
from rich.panel import Panel
from rich.table import Table

from ._common import (
    actor_option,
    console,
    fail,
    open_components,
    root_option,
    status_label,
    yes_no,
)
from ..errors import SecretsError
from ..models import SyncResult


def _print_sync_result(result: SyncResult) -> None:
    table = Table(title="Sync")
    table.add_column("Service", style="bold")
    table.add_column("Status")
    table.add_column("Written", justify="right")
    table.add_column("Missing", justify="right")
    table.add_column("Changed")
    table.add_column("Backup", style="dim")

    for name, info in result.services.items():
        table.add_row(
            name,
            status_label(info.status),
            str(len(info.updated_keys)),
            str(len(info.missing_keys)),
            yes_no(info.changed),
            info.backup_path.rsplit("/", 1)[-1] if info.backup_path else "-",
        )

    console.print()
    console.print(table)
    for name, info in result.services.items():
        if info.error:
            console.print(f"  [red]{name}: {info.error}[/]")
        elif info.missing_keys:
            console.print(f"  [yellow]{name} missing:[/] {', '.join(info.missing_keys)}")
    if result.pending_sync_keys:
        console.print(f"  [dim]Still pending: {', '.join(result.pending_sync_keys)}[/]")
    console.print()


def register_sync_commands(main: click.Group) -> None:
    """Register the env file sync commands."""

    @main.command("sync")
    @root_option
    @actor_option
    def sync(root: str, actor: str):
        """Write vault values into every service's .env file.

        Existing files are merged, never overwritten, and backed up
        before any change.
        """
        try:
            result = open_components(root).engine.sync_env_files(actor=actor)
        except SecretsError as exc:
            fail(exc)

        _print_sync_result(result)
        if any(info.status == "error" for info in result.services.values()):
            raise SystemExit(1)

    @main.command("rollback")
    @root_option
    @actor_option
    @click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
    def rollback(root: str, actor: str, yes: bool):
        """Restore every .env file from its newest backup.

        Keys added since the backup was taken are kept.
        """
        if not yes:
            click.confirm("Roll back all env files to their latest backup?", abort=True)

        try:
            result = open_components(root).engine.rollback_env_files(actor=actor)
        except SecretsError as exc:
            fail(exc)

        table = Table(title="Rollback")
        table.add_column("Service", style="bold")
        table.add_column("Restored")
        table.add_column("Backup / reason", style="dim")
        for name, info in result.services.items():
            detail = info.backup_path.rsplit("/", 1)[-1] if info.backup_path else (info.reason or "")
            table.add_row(name, yes_no(info.restored), detail)

        console.print()
        console.print(table)
        console.print()

    @main.command("telemetry")
    @root_option
    @click.option("--json", "as_json", is_flag=True, help="Print telemetry as JSON.")
    def telemetry(root: str, as_json: bool):
        """Show vault totals and the outcome of the last sync."""
        try:
            report = open_components(root).engine.get_secrets_telemetry()
        except SecretsError as exc:
            fail(exc)

        if as_json:
            click.echo(report.model_dump_json(indent=2))
            return

        last = report.sync
        completed = f"{last.last_completed_at:%Y-%m-%d %H:%M:%S}" if last.last_completed_at else "never"
        console.print(Panel(
            f"Secrets: [bold]{report.totals.secrets}[/]\n"
            f"Required missing: [bold]{report.totals.required_missing}[/]\n"
            f"Last status: {status_label(last.last_status.value)}\n"
            f"Last action: {last.last_action.value if last.last_action else '-'} ({completed})\n"
            f"Queue: {last.queue_length} pending",
            title="Secrets Telemetry",
            border_style="cyan",
        ))

        if report.services:
            table = Table(show_header=True)
            table.add_column("Service", style="bold")
            table.add_column("Status")
            table.add_column("Missing", justify="right")
            table.add_column("Written", justify="right")
            for name, info in report.services.items():
                table.add_row(
                    name,
                    status_label(info.status),
                    "-" if info.missing_count is None else str(info.missing_count),
                    "-" if info.updated_count is None else str(info.updated_count),
                )
            console.print(table)

    @main.command("backups")
    @click.argument("service")
    @root_option
    def backups(service: str, root: str):
        """List the env file backups of SERVICE, newest last."""
        try:
            paths = open_components(root).engine.list_backups(service)
        except SecretsError as exc:
            fail(exc)
        except KeyError:
            console.print(f"[red]Unknown service: {service}[/]")
            raise SystemExit(1)

        if not paths:
            console.print(f"\n  [dim]No backups for {service}.[/]\n")
            return
        for path in paths:
            click.echo(path.name)

    @main.command("bootstrap")
    @root_option
    @actor_option
    def bootstrap(root: str, actor: str):
        """Create placeholders for every required key, then sync.

        Placeholders are hidden and empty; fill them in with
        ``secretsvault update KEY --prompt``.
        """
        from ..bootstrap import bootstrap_secrets

        try:
            components = open_components(root)
            result = bootstrap_secrets(
                components.vault,
                components.scanner,
                components.resolver,
                components.engine,
                actor=actor,
            )
        except SecretsError as exc:
            fail(exc)

        if result.created:
            console.print(f"\n  [green]Created {len(result.created)} placeholder(s):[/]")
            for key in result.created:
                console.print(f"    [cyan]{key}[/]")
        else:
            console.print("\n  [dim]No placeholders needed.[/]")
        _print_sync_result(result.sync)
