"""Shared utilities for all CLI command modules.

Provides the Rich console instance, the component wiring for a
repository root, and the error rendering every command uses.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console

from .. import REPO_ROOT
from ..config import VaultConfig, load_config
from ..errors import FATAL_ERRORS, SecretsError
from ..models import RequirementStatus, Visibility
from ..resolver import RequirementResolver
from ..scanner import RepositoryScanner
from ..sync import SyncEngine
from ..vault import SecretsVault

console = Console()
logger = logging.getLogger("secretsvault.cli")

DEFAULT_ACTOR = os.environ.get("USER", "admin")

root_option = click.option(
    "--root",
    default=REPO_ROOT,
    type=click.Path(file_okay=False),
    help="Repository root (defaults to $SECRETSVAULT_ROOT or the cwd).",
)
actor_option = click.option(
    "--actor",
    default=DEFAULT_ACTOR,
    show_default=True,
    help="Name recorded in the audit log.",
)


@dataclass
class Components:
    """Everything a command needs, wired for one repository."""

    config: VaultConfig
    vault: SecretsVault
    scanner: RepositoryScanner
    resolver: RequirementResolver
    engine: SyncEngine


def open_components(root: str) -> Components:
    """Load config and open the vault for ``root``, failing fast.

    Raises:
        ConfigError: Master key missing or malformed.
        StorageError: Vault file unreadable.
    """
    config = load_config(Path(root))
    vault = SecretsVault.open(config)
    scanner = RepositoryScanner(config)
    resolver = RequirementResolver(config, vault, scanner)
    engine = SyncEngine(config, vault, resolver)
    return Components(config, vault, scanner, resolver, engine)


def fail(exc: SecretsError) -> NoReturn:
    """Print a domain error and exit. Fatal errors exit with 2."""
    fatal = isinstance(exc, FATAL_ERRORS)
    console.print(f"[bold red]{exc.code}[/] [red]{exc}[/]")
    if fatal:
        console.print("[dim]Check SECRETS_ENC_KEY and the vault file before retrying.[/]")
    raise SystemExit(2 if fatal else 1)


def visibility_label(visibility: Visibility) -> str:
    if visibility == Visibility.VISIBLE:
        return "[green]visible[/]"
    return "[dim]hidden[/]"


def status_label(status: str) -> str:
    """Map a requirement or service status to Rich markup."""
    return {
        RequirementStatus.PRESENT.value: "[bold green]present[/]",
        RequirementStatus.MISSING.value: "[bold red]missing[/]",
        "ok": "[bold green]ok[/]",
        "degraded": "[bold yellow]degraded[/]",
        "error": "[bold red]error[/]",
        "restored": "[bold green]restored[/]",
        "rollback": "[bold cyan]rollback[/]",
    }.get(status, f"[dim]{status}[/]")


def yes_no(flag: bool) -> str:
    return "[green]yes[/]" if flag else "[dim]no[/]"
