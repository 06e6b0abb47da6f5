"""Audit command: show recent vault and sync actions."""

from __future__ import annotations

from pathlib import Path

import click
from rich.table import Table

from ._common import console, root_option
from ..audit import read_audit_log
from ..config import load_config


def register_audit_commands(main: click.Group) -> None:
    """Register the audit command."""

    @main.command("audit")
    @root_option
    @click.option("--limit", "-n", default=20, type=int, show_default=True)
    @click.option("--key", default=None, help="Only entries for this key.")
    def audit(root: str, limit: int, key: str):
        """Show the most recent audit log entries.

        Does not need the master key.
        """
        config = load_config(Path(root))
        entries = read_audit_log(config.audit_path)
        if key:
            entries = [e for e in entries if e.key == key]
        if limit > 0:
            entries = entries[-limit:]

        if not entries:
            console.print("\n  [dim]Audit log is empty.[/]\n")
            return

        table = Table(title=f"Audit ({config.audit_path.name})")
        table.add_column("Time", style="dim")
        table.add_column("Action", style="bold")
        table.add_column("Key", style="cyan")
        table.add_column("Actor")
        table.add_column("Value")
        for entry in entries:
            table.add_row(
                entry.timestamp[:19],
                entry.action,
                entry.key or "-",
                entry.actor,
                "set" if entry.has_value else "-",
            )

        console.print()
        console.print(table)
        console.print()
