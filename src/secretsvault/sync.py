"""
Sync Engine -- projects the requirement ledger into per-service env files.

    secretsvault sync      ->  ledger + export -> merge -> backup -> write
    secretsvault rollback  ->  newest backup -> merge forward -> write

A cycle holds the vault lock from export to dequeue, so no vault change
can land between the values written and the keys cleared from the queue.

Every service is handled on its own: one unwritable directory marks that
service as ``error`` and the rest of the batch carries on. The outcome
of the last run is persisted as a single SyncState snapshot that
telemetry reads back.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import OrderedDict
from pathlib import Path
from typing import Optional

from ._fs import atomic_write_text
from .audit import audit_event
from .config import VaultConfig
from .envfile import (
    find_latest_backup,
    list_backups,
    restore_env_file,
    write_env_file,
)
from .models import (
    OverallStatus,
    RequiredSecrets,
    RequirementStatus,
    RollbackResult,
    SecretsTelemetry,
    ServiceRollbackResult,
    ServiceSummary,
    ServiceSyncResult,
    SyncAction,
    SyncExportEntry,
    SyncResult,
    SyncState,
    TelemetrySync,
    TelemetryTotals,
    utcnow,
)
from .resolver import RequirementResolver
from .vault import SecretsVault

logger = logging.getLogger("secretsvault.sync")

STATUS_OK = "ok"
STATUS_DEGRADED = "degraded"
STATUS_ERROR = "error"
STATUS_RESTORED = "restored"
REASON_NO_BACKUP = "no_backup"


def build_service_entries(
    service: str,
    required: RequiredSecrets,
    exported: dict[str, SyncExportEntry],
) -> "OrderedDict[str, str]":
    """Managed ``KEY -> value`` pairs for one service, in ledger order.

    Keys the ledger requires but the vault does not hold are skipped;
    keys the vault holds without a value are written empty.
    """
    entries: OrderedDict[str, str] = OrderedDict()
    for item in required.items:
        if item.app != service or item.key in entries:
            continue
        record = exported.get(item.key)
        if record is None:
            continue
        entries[item.key] = record.value if record.has_value else ""
    return entries


def compute_overall_status(
    services: dict[str, ServiceSummary],
    required_missing: int,
    action: SyncAction = SyncAction.SYNC,
) -> OverallStatus:
    if action == SyncAction.ROLLBACK:
        return OverallStatus.ROLLBACK
    degraded = any(s.status != STATUS_OK for s in services.values())
    if required_missing == 0 and not degraded:
        return OverallStatus.OK
    return OverallStatus.DEGRADED


class SyncEngine:
    """Writes vault values into every configured service's env file.

    Args:
        config: Repository configuration (service env paths, state file).
        vault: Source of values.
        resolver: Source of the requirement ledger.
    """

    def __init__(
        self,
        config: VaultConfig,
        vault: SecretsVault,
        resolver: RequirementResolver,
    ):
        self.config = config
        self.vault = vault
        self.resolver = resolver
        self.state_path: Path = config.state_path
        self._cycle_lock = threading.Lock()
        self._service_locks: dict[str, threading.Lock] = {
            service: threading.Lock() for service in config.services
        }

    # -------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------

    def read_state(self) -> Optional[SyncState]:
        """Load the last persisted snapshot, or None if there is none."""
        if not self.state_path.exists():
            return None
        try:
            data = json.loads(self.state_path.read_text(encoding="utf-8"))
            return SyncState.model_validate(data)
        except (json.JSONDecodeError, OSError, ValueError) as exc:
            logger.warning("Failed to read sync state: %s", exc)
            return None

    def _save_state(self, state: SyncState) -> None:
        atomic_write_text(self.state_path, state.model_dump_json(indent=2) + "\n")

    def _audit(self, action: str, actor: str, metadata: dict) -> None:
        try:
            audit_event(self.config.audit_path, action, actor=actor, metadata=metadata)
        except OSError as exc:
            logger.debug("Audit write failed for %s: %s", action, exc)

    def list_backups(self, service: str) -> list[Path]:
        """Backups of a service's env file, oldest first.

        Raises:
            KeyError: Unknown service.
        """
        return list_backups(self.config.env_path(service))

    # -------------------------------------------------------------------
    # Sync
    # -------------------------------------------------------------------

    def sync_env_files(self, actor: str = "unknown") -> SyncResult:
        """Merge the resolved secrets into every service's env file.

        Returns:
            SyncResult with one entry per service and the keys still pending.
        """
        with self._cycle_lock, self.vault.lock:
            required = self.resolver.get_required_secrets()
            exported = {entry.key: entry for entry in self.vault.export_for_sync()}

            services: dict[str, ServiceSyncResult] = {}
            synced: set[str] = set()
            failed: set[str] = set()

            for service in self.config.services:
                entries = build_service_entries(service, required, exported)
                result = self._sync_service(service, entries, required)
                services[service] = result
                if result.status == STATUS_ERROR:
                    failed.update(entries)
                else:
                    synced.update(entries)

            self.vault.queue.remove(synced - failed)
            pending = self.vault.queue.list()

            summaries = {
                name: ServiceSummary(
                    status=r.status,
                    missing_count=len(r.missing_keys),
                    updated_count=len(r.updated_keys),
                    changed=r.changed,
                )
                for name, r in services.items()
            }
            required_missing = len(required.missing)
            now = utcnow()
            state = SyncState(
                action=SyncAction.SYNC,
                timestamp=now,
                services=summaries,
                queue_length=len(pending),
                pending_sync_count=len(pending),
                required_missing=required_missing,
                last_status=compute_overall_status(summaries, required_missing),
            )
            self._save_state(state)

        logger.info(
            "Sync finished: %s (%d pending)", state.last_status.value, len(pending)
        )
        self._audit(
            "sync",
            actor,
            {
                "status": state.last_status.value,
                "services": {n: s.status for n, s in summaries.items()},
                "pending": len(pending),
            },
        )
        return SyncResult(services=services, pending_sync_keys=pending, timestamp=now)

    def _sync_service(
        self,
        service: str,
        entries: "OrderedDict[str, str]",
        required: RequiredSecrets,
    ) -> ServiceSyncResult:
        env_path = self.config.env_path(service)
        missing = [
            item.key for item in required.items
            if item.app == service and item.status == RequirementStatus.MISSING
        ]
        try:
            with self._service_locks[service]:
                changed, backup = write_env_file(env_path, entries)
        except (OSError, UnicodeError) as exc:
            logger.error("Failed to sync %s (%s): %s", service, env_path, exc)
            return ServiceSyncResult(
                status=STATUS_ERROR,
                missing_keys=missing,
                env_path=str(env_path),
                error=str(exc),
            )

        return ServiceSyncResult(
            status=STATUS_DEGRADED if missing else STATUS_OK,
            missing_keys=missing,
            updated_keys=list(entries),
            env_path=str(env_path),
            changed=changed,
            backup_path=str(backup) if backup else None,
        )

    # -------------------------------------------------------------------
    # Rollback
    # -------------------------------------------------------------------

    def rollback_env_files(self, actor: str = "unknown") -> RollbackResult:
        """Restore every service's env file from its newest backup.

        Keys added to an env file after its backup was taken are kept.
        No new backup is taken.
        """
        with self._cycle_lock, self.vault.lock:
            results: dict[str, ServiceRollbackResult] = {}
            for service in self.config.services:
                results[service] = self._rollback_service(service)

            required = self.resolver.get_required_secrets()
            queue_length = len(self.vault.queue)
            summaries = {
                name: ServiceSummary(
                    restored=r.restored,
                    status=STATUS_RESTORED if r.restored else (r.reason or "skipped"),
                )
                for name, r in results.items()
            }
            required_missing = len(required.missing)
            now = utcnow()
            state = SyncState(
                action=SyncAction.ROLLBACK,
                timestamp=now,
                services=summaries,
                queue_length=queue_length,
                pending_sync_count=queue_length,
                required_missing=required_missing,
                last_status=compute_overall_status(
                    summaries, required_missing, SyncAction.ROLLBACK
                ),
            )
            self._save_state(state)

        logger.info(
            "Rollback finished: %d/%d services restored",
            sum(1 for r in results.values() if r.restored),
            len(results),
        )
        self._audit(
            "rollback",
            actor,
            {"services": {n: s.status for n, s in summaries.items()}},
        )
        return RollbackResult(services=results, timestamp=now)

    def _rollback_service(self, service: str) -> ServiceRollbackResult:
        env_path = self.config.env_path(service)
        with self._service_locks[service]:
            backup = find_latest_backup(env_path)
            if backup is None:
                return ServiceRollbackResult(restored=False, reason=REASON_NO_BACKUP)
            try:
                restore_env_file(env_path, backup)
            except (OSError, UnicodeError) as exc:
                logger.error("Failed to roll back %s (%s): %s", service, env_path, exc)
                return ServiceRollbackResult(
                    restored=False, backup_path=str(backup), reason=STATUS_ERROR
                )
        return ServiceRollbackResult(restored=True, backup_path=str(backup))

    # -------------------------------------------------------------------
    # Telemetry
    # -------------------------------------------------------------------

    def get_secrets_telemetry(self) -> SecretsTelemetry:
        """Health of the vault and the last sync. Has no side effects."""
        required = self.resolver.get_required_secrets()
        missing = len(required.missing)
        state = self.read_state()
        fallback = OverallStatus.OK if missing == 0 else OverallStatus.DEGRADED

        return SecretsTelemetry(
            totals=TelemetryTotals(
                secrets=len(self.vault.keys()),
                required_missing=missing,
            ),
            sync=TelemetrySync(
                last_status=state.last_status if state else fallback,
                last_action=state.action if state else None,
                last_completed_at=state.timestamp if state else None,
                queue_length=len(self.vault.queue),
                pending_keys=len(required.pending_sync_keys),
            ),
            services=state.services if state else {},
        )
