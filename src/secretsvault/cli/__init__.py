"""
secretsvault CLI -- the admin command line for the vault.

Each command group lives in its own module and is registered on the
main Click group here.

Entry point: secretsvault.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="secretsvault")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(verbose: bool):
    """secretsvault -- encrypted secrets, synced into every service's .env.

    The master key is read from SECRETS_ENC_KEY.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .vault_cmd import register_vault_commands
from .scan import register_scan_commands
from .sync_cmd import register_sync_commands
from .audit import register_audit_commands

register_vault_commands(main)
register_scan_commands(main)
register_sync_commands(main)
register_audit_commands(main)
