"""
Bootstrap -- seed the vault from what the repository already needs.

Every requirement without a vault record gets a hidden, empty
placeholder so the admin sees it in the ledger and only has to fill in
the value. Then one sync writes the placeholders out as ``KEY=``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .audit import audit_event
from .errors import DuplicateError
from .models import IntegrationReason, SecretSource, SyncResult, Visibility
from .resolver import RequirementResolver
from .scanner import RepositoryScanner
from .sync import SyncEngine
from .vault import SecretsVault

logger = logging.getLogger("secretsvault.bootstrap")


@dataclass
class BootstrapResult:
    """Keys seeded by a bootstrap run and the sync that followed."""

    created: list[str] = field(default_factory=list)
    sync: SyncResult = field(default_factory=SyncResult)


def bootstrap_secrets(
    vault: SecretsVault,
    scanner: RepositoryScanner,
    resolver: RequirementResolver,
    engine: SyncEngine,
    actor: str = "bootstrap",
) -> BootstrapResult:
    """Create placeholders for every required key missing from the vault, then sync.

    Keys declared by an integration are seeded with source ``app``;
    keys known only from the code scan get source ``scanned``.
    """
    required = resolver.get_required_secrets(usage_index=scanner.get_usage_index())

    sources: dict[str, SecretSource] = {}
    for item in required.items:
        if item.has_secret:
            continue
        declared = any(isinstance(r, IntegrationReason) for r in item.reasons)
        if declared or sources.get(item.key) == SecretSource.APP:
            sources[item.key] = SecretSource.APP
        else:
            sources.setdefault(item.key, SecretSource.SCANNED)

    created: list[str] = []
    for key, source in sorted(sources.items()):
        try:
            vault.create(
                key,
                visibility=Visibility.HIDDEN.value,
                source=source.value,
                created_by=actor,
            )
        except DuplicateError:
            logger.debug("Skipping %s: created concurrently", key)
            continue
        created.append(key)

    logger.info("Bootstrap seeded %d placeholder(s)", len(created))
    sync = engine.sync_env_files(actor=actor)

    try:
        audit_event(
            vault.config.audit_path,
            "bootstrap",
            actor=actor,
            metadata={"created": created},
        )
    except OSError as exc:
        logger.debug("Audit write failed for bootstrap: %s", exc)
    return BootstrapResult(created=created, sync=sync)
