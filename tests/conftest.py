"""Shared test fixtures for secretsvault."""

from __future__ import annotations

from pathlib import Path

import pytest

from secretsvault.config import VaultConfig, load_config
from secretsvault.resolver import RequirementResolver
from secretsvault.scanner import RepositoryScanner
from secretsvault.sync import SyncEngine
from secretsvault.vault import SecretsVault

# 32 ASCII characters, used as raw utf-8 key material.
MASTER_KEY = "0123456789abcdef0123456789abcdef"


@pytest.fixture
def master_key(monkeypatch: pytest.MonkeyPatch) -> str:
    """Export a valid master key for the duration of the test."""
    monkeypatch.setenv("SECRETS_ENC_KEY", MASTER_KEY)
    return MASTER_KEY


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """Provide a repository root with the three service directories."""
    for subdir in ("src", "backend", "ai-service"):
        (tmp_path / subdir).mkdir()
    return tmp_path


@pytest.fixture
def config(repo: Path) -> VaultConfig:
    return load_config(repo)


@pytest.fixture
def vault(config: VaultConfig, master_key: str) -> SecretsVault:
    return SecretsVault.open(config)


@pytest.fixture
def scanner(config: VaultConfig) -> RepositoryScanner:
    return RepositoryScanner(config)


@pytest.fixture
def resolver(
    config: VaultConfig, vault: SecretsVault, scanner: RepositoryScanner
) -> RequirementResolver:
    """Resolver without any integration schema, so only scans create requirements."""
    return RequirementResolver(config, vault, scanner, integrations=[])


@pytest.fixture
def engine(
    config: VaultConfig, vault: SecretsVault, resolver: RequirementResolver
) -> SyncEngine:
    return SyncEngine(config, vault, resolver)


@pytest.fixture
def write_file(repo: Path):
    """Return a helper that creates a file (and its parents) under the repo."""

    def _write(relative: str, content: str) -> Path:
        path = repo / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write
