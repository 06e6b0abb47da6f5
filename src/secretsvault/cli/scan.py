"""Discovery commands: scan, usages, required."""

from __future__ import annotations

import click
from rich.table import Table

from ._common import console, fail, open_components, root_option, status_label, yes_no
from ..errors import SecretsError
from ..models import FlagReason, IntegrationReason, RequirementReason, ScanReason


def _describe_reason(reason: RequirementReason) -> str:
    if isinstance(reason, IntegrationReason):
        return f"integration:{reason.integration_id}"
    if isinstance(reason, ScanReason):
        return f"scan:{reason.module} ({reason.count})"
    if isinstance(reason, FlagReason):
        return "flag"
    return reason.type


def register_scan_commands(main: click.Group) -> None:
    """Register the repository discovery commands."""

    @main.command("scan")
    @root_option
    @click.option("--json", "as_json", is_flag=True, help="Print results as JSON.")
    def scan(root: str, as_json: bool):
        """Find keys referenced in code that the vault does not hold.

        Examples:

            secretsvault scan
        """
        try:
            components = open_components(root)
            missing = components.scanner.scan_for_missing(components.vault.keys())
        except SecretsError as exc:
            fail(exc)

        if as_json:
            click.echo("[" + ",".join(m.model_dump_json() for m in missing) + "]")
            return

        if not missing:
            console.print("\n  [green]Every referenced key is in the vault.[/]\n")
            return

        table = Table(title=f"Missing from vault ({len(missing)})")
        table.add_column("Key", style="cyan")
        table.add_column("Found in", style="dim")
        for item in missing:
            sample = ", ".join(item.found_in[:3])
            if len(item.found_in) > 3:
                sample += f" (+{len(item.found_in) - 3})"
            table.add_row(item.key, sample)

        console.print()
        console.print(table)
        console.print(
            "\n  [dim]Create placeholders with[/] [bold]secretsvault bootstrap[/]\n"
        )

    @main.command("usages")
    @click.argument("key")
    @root_option
    def usages(key: str, root: str):
        """Show every line that references KEY, grouped by module."""
        try:
            grouped = open_components(root).scanner.find_key_usages(key)
        except SecretsError as exc:
            fail(exc)

        if not any(grouped.values()):
            console.print(f"\n  [dim]No references to {key}.[/]\n")
            return

        for module, hits in grouped.items():
            if not hits:
                continue
            console.print(f"\n[bold]{module}[/] ({len(hits)})")
            for hit in hits:
                console.print(f"  [cyan]{hit.file}:{hit.line}[/]  {hit.context}", highlight=False)
        console.print()

    @main.command("required")
    @root_option
    @click.option("--app", default=None, help="Only show one app.")
    @click.option("--missing", "only_missing", is_flag=True, help="Only show missing secrets.")
    @click.option("--json", "as_json", is_flag=True, help="Print the ledger as JSON.")
    def required(root: str, app: str, only_missing: bool, as_json: bool):
        """Show which secrets each app needs, and why.

        Examples:

            secretsvault required --missing

            secretsvault required --app backend
        """
        try:
            ledger = open_components(root).resolver.get_required_secrets()
        except SecretsError as exc:
            fail(exc)

        items = ledger.missing if only_missing else ledger.items
        if app:
            items = [i for i in items if i.app == app]

        if as_json:
            ledger.items = items
            click.echo(ledger.model_dump_json(indent=2))
            return

        if not items:
            console.print("\n  [dim]Nothing to show.[/]\n")
            return

        table = Table(title="Required secrets")
        table.add_column("App", style="bold")
        table.add_column("Key", style="cyan")
        table.add_column("Status")
        table.add_column("Reasons", style="dim")
        table.add_column("Pending")
        for item in items:
            table.add_row(
                item.app,
                item.key,
                status_label(item.status.value),
                ", ".join(_describe_reason(r) for r in item.reasons),
                yes_no(item.pending_sync),
            )

        console.print()
        console.print(table)
        console.print(
            f"\n  {len(ledger.missing)} missing, "
            f"{len(ledger.pending_sync_keys)} pending sync\n"
        )
