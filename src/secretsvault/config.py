"""
Configuration -- where the repository, the vault, and the env files live.

Defaults describe the standard three-service layout:

    <root>/.env                    frontend
    <root>/backend/.env            backend
    <root>/ai-service/.env         ai-service
    <root>/backend/data/           vault, queue, sync state, audit log

Any of it can be overridden in ``<root>/secretsvault.yaml``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from . import REPO_ROOT

logger = logging.getLogger("secretsvault.config")

CONFIG_FILENAME = "secretsvault.yaml"

MAX_VALUE_SIZE_BYTES = 8 * 1024
KEY_PATTERN = r"^[A-Z0-9_.:-]{2,128}$"


class ScanTarget(BaseModel):
    """A source root and the logical module it belongs to."""

    root: str
    module: str


def _default_services() -> dict[str, str]:
    return {
        "frontend": ".env",
        "backend": "backend/.env",
        "ai-service": "ai-service/.env",
    }


def _default_scan_targets() -> list[ScanTarget]:
    return [
        ScanTarget(root="src", module="frontend"),
        ScanTarget(root="backend", module="backend"),
        ScanTarget(root="ai-service", module="ai-service"),
    ]


def _default_config_files() -> list[str]:
    return [
        "firebase.json",
        "firestore.rules",
        "firestore.indexes.json",
        "package.json",
        "vite.config.mts",
        "tsconfig.json",
    ]


class VaultConfig(BaseModel):
    """Complete configuration for the vault and sync engine."""

    root: Path = Path(".")
    data_dir: Path = Path("backend/data")
    vault_filename: str = "secrets_store.json"
    queue_filename: str = "secrets_sync_queue.json"
    state_filename: str = "secrets_sync_state.json"
    audit_filename: str = "secrets_audit.log"
    integrations_file: Optional[Path] = None

    master_key_env: str = "SECRETS_ENC_KEY"

    services: dict[str, str] = Field(default_factory=_default_services)
    scan_targets: list[ScanTarget] = Field(default_factory=_default_scan_targets)
    config_files: list[str] = Field(default_factory=_default_config_files)
    max_scan_depth: int = 6
    max_file_bytes: int = 2 * 1024 * 1024

    def _resolve(self, path: Path) -> Path:
        path = path.expanduser()
        return path if path.is_absolute() else self.root / path

    @property
    def data_path(self) -> Path:
        return self._resolve(self.data_dir)

    @property
    def vault_path(self) -> Path:
        return self.data_path / self.vault_filename

    @property
    def queue_path(self) -> Path:
        return self.data_path / self.queue_filename

    @property
    def state_path(self) -> Path:
        return self.data_path / self.state_filename

    @property
    def audit_path(self) -> Path:
        return self.data_path / self.audit_filename

    @property
    def integrations_path(self) -> Optional[Path]:
        if self.integrations_file is None:
            return None
        return self._resolve(self.integrations_file)

    @property
    def app_order(self) -> list[str]:
        """Display order of apps; also the set of known app names."""
        return list(self.services)

    def env_path(self, service: str) -> Path:
        """Absolute path of a service's env file."""
        if service not in self.services:
            raise KeyError(f"Unknown service: {service}")
        return self._resolve(Path(self.services[service]))

    def module_root(self, module: str) -> Optional[str]:
        """Source root prefix for a module, if it has one."""
        for target in self.scan_targets:
            if target.module == module:
                return target.root
        return None


def load_config(root: Optional[Path] = None) -> VaultConfig:
    """Load configuration for a repository.

    Reads ``secretsvault.yaml`` from the repository root when present.
    A broken config file is logged and ignored so that defaults apply.

    Args:
        root: Repository root. Defaults to $SECRETSVAULT_ROOT or the cwd.

    Returns:
        VaultConfig with ``root`` set to the absolute repository root.
    """
    repo_root = (root or Path(REPO_ROOT)).expanduser().resolve()
    config_file = repo_root / CONFIG_FILENAME

    data: dict = {}
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
        except (yaml.YAMLError, OSError) as exc:
            logger.warning("Failed to load %s: %s", config_file, exc)
            data = {}
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: expected a mapping", config_file)
            data = {}

    data["root"] = repo_root
    try:
        return VaultConfig(**data)
    except ValueError as exc:
        logger.warning("Invalid configuration in %s: %s", config_file, exc)
        return VaultConfig(root=repo_root)
