"""Vault commands: list, create, update, remove, reveal, keygen."""

from __future__ import annotations

from typing import Optional

import click
from rich.panel import Panel
from rich.table import Table

from ._common import (
    actor_option,
    console,
    fail,
    open_components,
    root_option,
    visibility_label,
    yes_no,
)
from ..crypto import generate_master_key, mask_secret
from ..errors import SecretsError

VISIBILITY_CHOICE = click.Choice(["hidden", "visible"])
SOURCE_CHOICE = click.Choice(["app", "account", "scanned"])


def register_vault_commands(main: click.Group) -> None:
    """Register the vault commands."""

    @main.command("list")
    @root_option
    @click.option("--search", "-s", default="", help="Only keys containing this text.")
    @click.option("--page", default=1, type=int, show_default=True)
    @click.option("--page-size", default=25, type=int, show_default=True)
    @click.option("--json", "as_json", is_flag=True, help="Print the page as JSON.")
    def list_secrets(root: str, search: str, page: int, page_size: int, as_json: bool):
        """List secrets. Values are never shown.

        Examples:

            secretsvault list

            secretsvault list -s FIREBASE --page-size 50
        """
        try:
            result = open_components(root).vault.list(
                page=page, page_size=page_size, search=search
            )
        except SecretsError as exc:
            fail(exc)

        if as_json:
            click.echo(result.model_dump_json(indent=2))
            return

        if not result.items:
            console.print("\n  [dim]No secrets found.[/]\n")
            return

        table = Table(
            title=f"Secrets ({result.total}, page {result.page})",
            show_lines=False,
        )
        table.add_column("Key", style="cyan")
        table.add_column("Visibility")
        table.add_column("Source", style="dim")
        table.add_column("Value")
        table.add_column("Required")
        table.add_column("Updated", style="dim")

        for item in result.items:
            table.add_row(
                item.key,
                visibility_label(item.visibility),
                item.source.value,
                "[green]set[/]" if item.has_value else "[yellow]empty[/]",
                yes_no(item.required),
                f"{item.updated_at:%Y-%m-%d %H:%M} by {item.updated_by}",
            )

        console.print()
        console.print(table)
        console.print()

    @main.command("create")
    @click.argument("key")
    @root_option
    @actor_option
    @click.option("--value", default=None, help="Secret value (omit for a placeholder).")
    @click.option("--prompt", "prompt_value", is_flag=True, help="Read the value without echo.")
    @click.option("--visibility", type=VISIBILITY_CHOICE, default="hidden", show_default=True)
    @click.option("--source", type=SOURCE_CHOICE, default="app", show_default=True)
    @click.option("--required", is_flag=True, help="Flag the secret as required.")
    def create_secret(
        key: str,
        root: str,
        actor: str,
        value: Optional[str],
        prompt_value: bool,
        visibility: str,
        source: str,
        required: bool,
    ):
        """Store a new secret.

        Examples:

            secretsvault create GROQ_API_KEY --prompt

            secretsvault create AI_SERVICE_URL --value http://localhost:5001 --visibility visible
        """
        if prompt_value:
            value = click.prompt("Value", hide_input=True, confirmation_prompt=True)

        try:
            summary = open_components(root).vault.create(
                key,
                value=value,
                visibility=visibility,
                source=source,
                required=required,
                created_by=actor,
            )
        except SecretsError as exc:
            fail(exc)

        console.print(
            f"\n  [green]Created[/] [cyan]{summary.key}[/] "
            f"({visibility_label(summary.visibility)}, "
            f"{'value set' if summary.has_value else 'no value'}). "
            f"Run [bold]secretsvault sync[/] to write it out.\n"
        )

    @main.command("update")
    @click.argument("key")
    @root_option
    @actor_option
    @click.option("--value", default=None, help="New value.")
    @click.option("--prompt", "prompt_value", is_flag=True, help="Read the new value without echo.")
    @click.option("--clear", is_flag=True, help="Remove the stored value.")
    @click.option("--visibility", type=VISIBILITY_CHOICE, default=None)
    @click.option("--source", type=SOURCE_CHOICE, default=None)
    @click.option("--required/--not-required", default=None, help="Set or unset the required flag.")
    def update_secret(
        key: str,
        root: str,
        actor: str,
        value: Optional[str],
        prompt_value: bool,
        clear: bool,
        visibility: Optional[str],
        source: Optional[str],
        required: Optional[bool],
    ):
        """Change the value or metadata of a secret.

        Examples:

            secretsvault update GROQ_API_KEY --prompt

            secretsvault update ADMIN_SETUP_TOKEN --clear --not-required
        """
        if clear and (value is not None or prompt_value):
            console.print("[red]--clear cannot be combined with --value or --prompt.[/]")
            raise SystemExit(1)
        if prompt_value:
            value = click.prompt("Value", hide_input=True, confirmation_prompt=True)
        if clear:
            value = ""

        try:
            summary = open_components(root).vault.update(
                key,
                value=value,
                visibility=visibility,
                source=source,
                required=required,
                updated_by=actor,
            )
        except SecretsError as exc:
            fail(exc)

        console.print(
            f"\n  [green]Updated[/] [cyan]{summary.key}[/] "
            f"({visibility_label(summary.visibility)}, "
            f"{'value set' if summary.has_value else 'no value'}).\n"
        )

    @main.command("remove")
    @click.argument("key")
    @root_option
    @actor_option
    @click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
    def remove_secret(key: str, root: str, actor: str, yes: bool):
        """Delete a secret from the vault.

        The env files keep the old line until it is removed by hand.
        """
        if not yes:
            click.confirm(f"Delete {key}?", abort=True)

        try:
            open_components(root).vault.remove(key, removed_by=actor)
        except SecretsError as exc:
            fail(exc)

        console.print(f"\n  [green]Removed[/] [cyan]{key}[/]\n")

    @main.command("reveal")
    @click.argument("key")
    @root_option
    @actor_option
    @click.option("--mask", is_flag=True, help="Show only the first and last characters.")
    def reveal_secret(key: str, root: str, actor: str, mask: bool):
        """Print the value of a visible secret.

        Hidden secrets cannot be revealed; they only reach the env files.
        """
        try:
            result = open_components(root).vault.reveal(key, actor=actor)
        except SecretsError as exc:
            fail(exc)

        if not result.has_value:
            console.print(f"[yellow]{key} has no value.[/]")
            return

        if mask:
            click.echo(mask_secret(result.value))
        else:
            click.echo(result.value)

    @main.command("keygen")
    def keygen():
        """Generate a new master key for SECRETS_ENC_KEY.

        Changing the key makes every stored value undecryptable.
        """
        console.print(Panel(
            f"[bold]{generate_master_key()}[/]\n\n"
            "[dim]export SECRETS_ENC_KEY=<key> before running any other command.[/]",
            title="Master Key",
            border_style="yellow",
        ))
