"""Tests for seeding the vault with placeholders."""

from __future__ import annotations

from pathlib import Path

import pytest

from secretsvault.bootstrap import bootstrap_secrets
from secretsvault.config import VaultConfig
from secretsvault.models import SecretSource, Visibility
from secretsvault.resolver import RequirementResolver
from secretsvault.scanner import RepositoryScanner
from secretsvault.schema import Integration, IntegrationSecret
from secretsvault.sync import SyncEngine
from secretsvault.vault import SecretsVault


@pytest.fixture
def schema_resolver(
    config: VaultConfig, vault: SecretsVault, scanner: RepositoryScanner
) -> RequirementResolver:
    integrations = [
        Integration(id="groq", label="Groq", secrets=[
            IntegrationSecret(key="DECLARED_KEY", apps=["backend"]),
        ])
    ]
    return RequirementResolver(config, vault, scanner, integrations=integrations)


@pytest.fixture
def schema_engine(
    config: VaultConfig, vault: SecretsVault, schema_resolver: RequirementResolver
) -> SyncEngine:
    return SyncEngine(config, vault, schema_resolver)


class TestBootstrap:
    """Tests for bootstrap_secrets."""

    def test_placeholders_created_and_synced(
        self,
        vault: SecretsVault,
        scanner: RepositoryScanner,
        schema_resolver: RequirementResolver,
        schema_engine: SyncEngine,
        config: VaultConfig,
        write_file,
    ) -> None:
        write_file("backend/app.js", "process.env.SCAN_ONLY\nprocess.env.DECLARED_KEY\n")
        vault.create("SCAN_ONLY_EXISTING", "v")

        result = bootstrap_secrets(vault, scanner, schema_resolver, schema_engine, actor="setup")

        assert result.created == ["DECLARED_KEY", "SCAN_ONLY"]
        declared = vault.get("DECLARED_KEY")
        scanned = vault.get("SCAN_ONLY")
        assert declared.source == SecretSource.APP
        assert scanned.source == SecretSource.SCANNED
        assert scanned.visibility == Visibility.HIDDEN
        assert scanned.has_value is False
        assert scanned.created_by == "setup"

        content = config.env_path("backend").read_text()
        assert content == "DECLARED_KEY=\nSCAN_ONLY=\n"
        assert result.sync.services["backend"].status == "degraded"

    def test_existing_keys_untouched(
        self,
        vault: SecretsVault,
        scanner: RepositoryScanner,
        schema_resolver: RequirementResolver,
        schema_engine: SyncEngine,
        write_file,
    ) -> None:
        write_file("backend/app.js", "process.env.DECLARED_KEY\n")
        vault.create("DECLARED_KEY", "real-value", source="account")

        result = bootstrap_secrets(vault, scanner, schema_resolver, schema_engine)

        assert result.created == []
        assert vault.get("DECLARED_KEY").source == SecretSource.ACCOUNT

    def test_second_run_creates_nothing(
        self,
        vault: SecretsVault,
        scanner: RepositoryScanner,
        schema_resolver: RequirementResolver,
        schema_engine: SyncEngine,
        config: VaultConfig,
    ) -> None:
        bootstrap_secrets(vault, scanner, schema_resolver, schema_engine)
        again = bootstrap_secrets(vault, scanner, schema_resolver, schema_engine)
        assert again.created == []
        assert again.sync.services["backend"].changed is False
        assert [b.name for b in schema_engine.list_backups("backend")] == []

    def test_config_only_keys_not_seeded(
        self,
        vault: SecretsVault,
        scanner: RepositoryScanner,
        resolver: RequirementResolver,
        engine: SyncEngine,
        repo: Path,
        write_file,
    ) -> None:
        write_file("package.json", '"{{ secrets.NPM_TOKEN }}"')
        assert bootstrap_secrets(vault, scanner, resolver, engine).created == []
