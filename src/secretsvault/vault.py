"""
The Vault -- encrypted, validated key/value storage for secrets.

The vault is the single source of truth. Every record lives in one
JSON array file that is rewritten wholesale (atomically) on every
mutation. That is fine for tens to low hundreds of secrets; it is
not a database.

Fail closed: if the master key cannot be resolved or the store cannot
be loaded, the vault is permanently unusable and every call raises the
original error kind. There is no degraded mode.

Plaintext leaves the vault through exactly two doors:
    - reveal()          visibility-gated, one key at a time
    - export_for_sync() ungated, bulk, reserved for the sync engine
"""

from __future__ import annotations

import json
import logging
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from ._fs import atomic_write_text
from .audit import audit_event, describe_value_change
from .config import KEY_PATTERN, MAX_VALUE_SIZE_BYTES, VaultConfig
from .crypto import decrypt_value, encrypt_value, resolve_master_key
from .errors import (
    ConfigError,
    DuplicateError,
    ForbiddenError,
    NotFoundError,
    SecretsError,
    StorageError,
    ValidationError,
)
from .models import (
    RevealResult,
    SecretPage,
    SecretRecord,
    SecretSource,
    SecretSummary,
    SyncExportEntry,
    Visibility,
)
from .queue import SyncQueue

logger = logging.getLogger("secretsvault.vault")

KEY_REGEX = re.compile(KEY_PATTERN)
DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100


def validate_key(key: object) -> str:
    """Raise ValidationError unless ``key`` is a well-formed secret key."""
    if not isinstance(key, str) or not KEY_REGEX.match(key):
        raise ValidationError(f"Key must match {KEY_PATTERN}")
    return key


def is_valid_key(key: object) -> bool:
    try:
        validate_key(key)
    except ValidationError:
        return False
    return True


def _validate_value(value: object) -> None:
    if value is None:
        return
    if not isinstance(value, str):
        raise ValidationError("value must be a string")
    if len(value.encode("utf-8")) > MAX_VALUE_SIZE_BYTES:
        raise ValidationError("value exceeds maximum size of 8KB")


def _validate_visibility(visibility: object) -> Optional[Visibility]:
    if visibility is None:
        return None
    try:
        return Visibility(visibility)
    except ValueError:
        raise ValidationError("visibility must be one of hidden|visible") from None


def _validate_source(source: object) -> Optional[SecretSource]:
    if source is None:
        return None
    try:
        return SecretSource(source)
    except ValueError:
        raise ValidationError("source must be one of app|account|scanned") from None


def _validate_required(required: object) -> None:
    if required is not None and not isinstance(required, bool):
        raise ValidationError("required must be a boolean")


def _audit_view(summary: SecretSummary) -> dict:
    return {
        "visibility": summary.visibility.value,
        "source": summary.source.value,
        "required": summary.required,
        "has_value": summary.has_value,
    }


class SecretsVault:
    """Encrypted secret store backed by a single JSON file.

    Args:
        config: Repository configuration (paths, master key env var).
        queue: Pending-sync queue to notify on mutations. Defaults to the
            queue file next to the vault.
        master_key: Explicit key material, overriding the environment.
    """

    def __init__(
        self,
        config: VaultConfig,
        queue: Optional[SyncQueue] = None,
        master_key: Optional[str] = None,
    ):
        self.config = config
        self.path: Path = config.vault_path
        self.queue = queue if queue is not None else SyncQueue(config.queue_path)
        self._lock = threading.RLock()
        self._records: dict[str, SecretRecord] = {}
        self._key: Optional[bytes] = None
        self._init_error: Optional[SecretsError] = None

        try:
            self._key = resolve_master_key(config.master_key_env, raw=master_key)
            self._records = self._load()
        except (ConfigError, StorageError) as exc:
            self._init_error = exc
            logger.error("Failed to initialise secrets vault: %s", exc)

    @classmethod
    def open(
        cls,
        config: VaultConfig,
        queue: Optional[SyncQueue] = None,
        master_key: Optional[str] = None,
    ) -> "SecretsVault":
        """Construct a vault, raising immediately if it failed to initialise."""
        vault = cls(config, queue=queue, master_key=master_key)
        vault.ensure_ready()
        return vault

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------

    @property
    def ready(self) -> bool:
        return self._init_error is None

    @property
    def lock(self):
        """The mutation lock. While held, no record or queue change can land."""
        return self._lock

    def ensure_ready(self) -> None:
        """Raise the initialisation error, if any. Called by every operation."""
        if self._init_error is not None:
            raise type(self._init_error)(str(self._init_error))

    def _load(self) -> dict[str, SecretRecord]:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if not self.path.exists():
                atomic_write_text(self.path, "[]\n")
            payload = self.path.read_text(encoding="utf-8")
            if not payload.strip():
                return {}
            data = json.loads(payload)
            if not isinstance(data, list):
                raise ValueError("expected a JSON array of records")
            records: dict[str, SecretRecord] = {}
            for raw in data:
                if raw.get("required") is None:
                    raw["required"] = False
                if not raw.get("source"):
                    raw["source"] = SecretSource.APP.value
                record = SecretRecord.model_validate(raw)
                if not is_valid_key(record.key):
                    raise ValueError(f"invalid key {record.key!r}")
                records[record.key] = record
            return records
        except (OSError, ValueError, AttributeError, PydanticValidationError) as exc:
            raise StorageError(f"Failed to initialise secrets storage: {exc}") from exc

    def _persist(self, records: dict[str, SecretRecord]) -> None:
        data = [r.model_dump(mode="json") for r in records.values()]
        atomic_write_text(self.path, json.dumps(data, indent=2) + "\n")

    def _find(self, key: str) -> SecretRecord:
        record = self._records.get(key)
        if record is None:
            raise NotFoundError("Secret not found")
        return record

    def _audit(
        self,
        action: str,
        key: str,
        actor: str,
        has_value: bool,
        metadata: Optional[dict] = None,
    ) -> None:
        """Write an audit entry. Never blocks the operation on failure."""
        try:
            audit_event(
                self.config.audit_path,
                action,
                key=key,
                actor=actor,
                has_value=has_value,
                metadata=metadata,
            )
        except OSError as exc:
            logger.debug("Audit write failed for %s %s: %s", action, key, exc)

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------

    def create(
        self,
        key: str,
        value: Optional[str] = None,
        visibility: str = "hidden",
        source: str = "app",
        required: bool = False,
        created_by: str = "unknown",
    ) -> SecretSummary:
        """Store a new secret.

        Raises:
            ValidationError: Malformed key, value, visibility, source or flag.
            DuplicateError: A secret with this key already exists.
        """
        self.ensure_ready()
        validate_key(key)
        _validate_value(value)
        vis = _validate_visibility(visibility) or Visibility.HIDDEN
        src = _validate_source(source) or SecretSource.APP
        _validate_required(required)

        with self._lock:
            if key in self._records:
                raise DuplicateError("Secret with this key already exists")

            now = datetime.now(timezone.utc)
            record = SecretRecord(
                key=key,
                encrypted_value=encrypt_value(value, self._key),
                visibility=vis,
                source=src,
                required=bool(required),
                created_at=now,
                created_by=created_by,
                updated_at=now,
                updated_by=created_by,
            )
            records = dict(self._records)
            records[key] = record
            self._persist(records)
            self._records = records
            self.queue.add(key)

        logger.info("Created secret %s (has_value=%s)", key, record.has_value)
        summary = SecretSummary.from_record(record)
        self._audit(
            "create",
            key,
            created_by,
            summary.has_value,
            {
                "before": None,
                "after": _audit_view(summary),
                "changes": {"value": describe_value_change(value, False, summary.has_value)},
            },
        )
        return summary

    def update(
        self,
        key: str,
        value: Optional[str] = None,
        visibility: Optional[str] = None,
        source: Optional[str] = None,
        required: Optional[bool] = None,
        updated_by: str = "unknown",
    ) -> SecretSummary:
        """Change one or more fields of an existing secret.

        ``None`` leaves a field untouched; an empty string clears the value.

        Raises:
            ValidationError: Nothing to update, or a supplied field is invalid.
            NotFoundError: No secret with this key.
        """
        self.ensure_ready()
        validate_key(key)
        _validate_value(value)
        vis = _validate_visibility(visibility)
        src = _validate_source(source)
        _validate_required(required)

        with self._lock:
            current = self._find(key)
            if value is None and vis is None and src is None and required is None:
                raise ValidationError("No updates provided")

            changes: dict = {
                "updated_at": datetime.now(timezone.utc),
                "updated_by": updated_by,
            }
            if value is not None:
                changes["encrypted_value"] = encrypt_value(value, self._key)
            if vis is not None:
                changes["visibility"] = vis
            if src is not None:
                changes["source"] = src
            if required is not None:
                changes["required"] = required

            record = current.model_copy(update=changes)
            records = dict(self._records)
            records[key] = record
            self._persist(records)
            self._records = records
            self.queue.add(key)

        logger.info("Updated secret %s (%s)", key, ", ".join(sorted(changes)))
        before = SecretSummary.from_record(current)
        summary = SecretSummary.from_record(record)
        self._audit(
            "update",
            key,
            updated_by,
            summary.has_value,
            {
                "before": _audit_view(before),
                "after": _audit_view(summary),
                "changes": {
                    "value": describe_value_change(value, before.has_value, summary.has_value),
                    "fields": sorted(k for k in changes if k not in ("updated_at", "updated_by")),
                },
            },
        )
        return summary

    def remove(self, key: str, removed_by: str = "unknown") -> SecretSummary:
        """Delete a secret.

        Raises:
            NotFoundError: No secret with this key.
        """
        self.ensure_ready()
        validate_key(key)

        with self._lock:
            removed = self._find(key)
            records = dict(self._records)
            del records[key]
            self._persist(records)
            self._records = records
            self.queue.remove([key])

        logger.info("Removed secret %s", key)
        summary = SecretSummary.from_record(removed)
        self._audit(
            "delete",
            key,
            removed_by,
            summary.has_value,
            {"before": _audit_view(summary), "after": None},
        )
        return summary

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------

    def reveal(self, key: str, actor: str = "unknown") -> RevealResult:
        """Return the plaintext of a visible secret.

        Raises:
            NotFoundError: No secret with this key.
            ForbiddenError: The secret is hidden.
            DecryptError: Stored ciphertext is corrupt.
        """
        self.ensure_ready()
        validate_key(key)

        with self._lock:
            record = self._find(key)

        if record.visibility != Visibility.VISIBLE:
            raise ForbiddenError("Secret is not visible")
        if not record.has_value:
            result = RevealResult(key=key, value=None, visibility=record.visibility, has_value=False)
        else:
            value = decrypt_value(record.encrypted_value, self._key)
            result = RevealResult(key=key, value=value, visibility=record.visibility, has_value=True)

        self._audit("reveal", key, actor, result.has_value)
        return result

    def get(self, key: str) -> SecretRecord:
        """Raw record (ciphertext only)."""
        self.ensure_ready()
        validate_key(key)
        with self._lock:
            return self._find(key).model_copy()

    def list(self, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE, search: str = "") -> SecretPage:
        """Page through summaries, optionally filtered by a key substring."""
        self.ensure_ready()
        try:
            safe_page = max(1, int(page))
        except (TypeError, ValueError):
            safe_page = 1
        try:
            safe_size = min(MAX_PAGE_SIZE, max(1, int(page_size)))
        except (TypeError, ValueError):
            safe_size = DEFAULT_PAGE_SIZE
        query = search.strip() if isinstance(search, str) else ""

        with self._lock:
            records = list(self._records.values())

        if query:
            records = [r for r in records if query in r.key]

        start = (safe_page - 1) * safe_size
        return SecretPage(
            items=[SecretSummary.from_record(r) for r in records[start:start + safe_size]],
            total=len(records),
            page=safe_page,
            page_size=safe_size,
        )

    def summaries(self) -> list[SecretSummary]:
        self.ensure_ready()
        with self._lock:
            return [SecretSummary.from_record(r) for r in self._records.values()]

    def keys(self) -> set[str]:
        self.ensure_ready()
        with self._lock:
            return set(self._records)

    def is_valid_key(self, key: object) -> bool:
        return is_valid_key(key)

    def export_for_sync(self) -> list[SyncExportEntry]:
        """Decrypt every record regardless of visibility. Sync engine only."""
        self.ensure_ready()
        with self._lock:
            records = list(self._records.values())

        return [
            SyncExportEntry(
                key=r.key,
                value=decrypt_value(r.encrypted_value, self._key) or "",
                visibility=r.visibility,
                has_value=r.has_value,
                required=r.required,
            )
            for r in records
        ]
