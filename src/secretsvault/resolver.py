"""
Requirement Resolver -- which (app, key) pairs should exist, and why.

Merges two independent sources of truth:

    integration schema   "Firebase needs these keys in these apps"
    usage index          "the scanner saw this key in backend/ code"

and checks each requirement against the vault. Status is global per
key (the vault is one flat namespace); only the requirement is per app.
Keys that no app requires never appear, even if the vault holds them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from .config import VaultConfig
from .models import (
    FlagReason,
    IntegrationReason,
    RequiredSecretItem,
    RequiredSecrets,
    RequirementReason,
    RequirementStatus,
    ScanReason,
    SecretSummary,
    UsageIndexEntry,
)
from .scanner import RepositoryScanner
from .schema import INTERNAL_INTEGRATION_ID, Integration, load_integrations
from .vault import SecretsVault

logger = logging.getLogger("secretsvault.resolver")

FOUND_IN_SAMPLE_SIZE = 10


@dataclass
class _Requirement:
    reasons: list[RequirementReason] = field(default_factory=list)
    found_in: list[str] = field(default_factory=list)


class RequirementResolver:
    """Builds the requirement ledger.

    Args:
        config: Repository configuration (app order, module roots).
        vault: The vault to check presence against.
        scanner: Source of the usage index.
        integrations: Integration schema. Defaults to the configured file
            or the built-in table.
    """

    def __init__(
        self,
        config: VaultConfig,
        vault: SecretsVault,
        scanner: RepositoryScanner,
        integrations: Optional[list[Integration]] = None,
    ):
        self.config = config
        self.vault = vault
        self.scanner = scanner
        self.integrations = (
            integrations if integrations is not None
            else load_integrations(config.integrations_path)
        )

    def get_required_secrets(
        self, usage_index: Optional[dict[str, UsageIndexEntry]] = None
    ) -> RequiredSecrets:
        """Resolve the ledger.

        Args:
            usage_index: Pre-computed scanner output. Scans when omitted.

        Returns:
            RequiredSecrets with items sorted by app order, then key.
        """
        summaries = {s.key: s for s in self.vault.summaries()}
        if usage_index is None:
            usage_index = self.scanner.get_usage_index()
        pending = self.vault.queue.list()
        pending_set = set(pending)

        requirements: dict[tuple[str, str], _Requirement] = {}
        self._add_integration_reasons(requirements)
        self._add_scan_reasons(requirements, usage_index, summaries)

        items = [
            self._build_item(app, key, req, summaries.get(key), key in pending_set)
            for (app, key), req in requirements.items()
        ]
        order = {app: i for i, app in enumerate(self.config.app_order)}
        items.sort(key=lambda item: (order.get(item.app, len(order)), item.app, item.key))

        logger.debug(
            "Resolved %d requirements (%d missing)",
            len(items),
            sum(1 for i in items if i.status == RequirementStatus.MISSING),
        )
        return RequiredSecrets(items=items, pending_sync_keys=pending)

    def _add_integration_reasons(self, requirements: dict[tuple[str, str], _Requirement]) -> None:
        for integration in self.integrations:
            for secret in integration.secrets:
                for app in secret.apps:
                    req = requirements.setdefault((app, secret.key), _Requirement())
                    req.reasons.append(
                        IntegrationReason(
                            integration_id=integration.id,
                            integration_label=integration.label,
                            description=secret.description,
                        )
                    )

    def _add_scan_reasons(
        self,
        requirements: dict[tuple[str, str], _Requirement],
        usage_index: dict[str, UsageIndexEntry],
        summaries: dict[str, SecretSummary],
    ) -> None:
        known_apps = set(self.config.app_order)
        for key, usage in usage_index.items():
            for module in usage.modules:
                if module not in known_apps:
                    continue
                root = self.config.module_root(module)
                if root is None:
                    continue
                found_in = [p for p in usage.found_in if p.startswith(f"{root}/")]
                if not found_in:
                    continue

                req = requirements.setdefault((module, key), _Requirement())
                req.reasons.append(ScanReason(module=module, count=len(found_in)))
                req.found_in.extend(found_in)

                summary = summaries.get(key)
                if summary is not None and summary.required and not self._has_flag_cover(req):
                    req.reasons.append(FlagReason())

    @staticmethod
    def _has_flag_cover(req: _Requirement) -> bool:
        """True if an internal integration or an existing flag already explains it."""
        for reason in req.reasons:
            if isinstance(reason, FlagReason):
                return True
            if isinstance(reason, IntegrationReason) and reason.integration_id == INTERNAL_INTEGRATION_ID:
                return True
        return False

    @staticmethod
    def _build_item(
        app: str,
        key: str,
        req: _Requirement,
        summary: Optional[SecretSummary],
        pending: bool,
    ) -> RequiredSecretItem:
        has_value = bool(summary and summary.has_value)
        return RequiredSecretItem(
            key=key,
            app=app,
            status=RequirementStatus.PRESENT if has_value else RequirementStatus.MISSING,
            reasons=req.reasons,
            found_in=sorted(set(req.found_in))[:FOUND_IN_SAMPLE_SIZE],
            has_secret=summary is not None,
            has_value=has_value,
            required=bool(summary and summary.required),
            pending_sync=pending,
        )
