"""Tests for the Requirement Resolver -- the per-app ledger and its reasons."""

from __future__ import annotations

from secretsvault.config import VaultConfig
from secretsvault.models import (
    FlagReason,
    IntegrationReason,
    RequirementStatus,
    ScanReason,
)
from secretsvault.resolver import RequirementResolver
from secretsvault.scanner import RepositoryScanner
from secretsvault.schema import Integration, IntegrationSecret
from secretsvault.vault import SecretsVault


def _by_app_key(ledger):
    return {(item.app, item.key): item for item in ledger.items}


class TestRequiredSecrets:
    """Tests for get_required_secrets."""

    def test_missing_and_present(
        self, vault: SecretsVault, resolver: RequirementResolver, write_file
    ) -> None:
        """A key without a value is missing; a key with one is present."""
        write_file("backend/app.js", "process.env.A_KEY\nprocess.env.B_KEY\n")
        vault.create("A_KEY", required=True)
        vault.create("B_KEY", "x")

        items = _by_app_key(resolver.get_required_secrets())
        a_key = items[("backend", "A_KEY")]
        b_key = items[("backend", "B_KEY")]

        assert a_key.status == RequirementStatus.MISSING
        assert a_key.has_secret is True
        assert a_key.has_value is False
        assert a_key.required is True
        assert b_key.status == RequirementStatus.PRESENT
        assert b_key.has_value is True

    def test_unreferenced_vault_keys_omitted(
        self, vault: SecretsVault, resolver: RequirementResolver
    ) -> None:
        vault.create("ORPHAN_KEY", "v", required=True)
        assert resolver.get_required_secrets().items == []

    def test_unknown_key_is_missing(self, resolver: RequirementResolver, write_file) -> None:
        write_file("ai-service/main.py", 'os.getenv("NEW_KEY")\n')
        item = resolver.get_required_secrets().items[0]
        assert (item.app, item.key) == ("ai-service", "NEW_KEY")
        assert item.status == RequirementStatus.MISSING
        assert item.has_secret is False

    def test_scan_reason(self, resolver: RequirementResolver, write_file) -> None:
        write_file("backend/a.js", "process.env.API_KEY")
        write_file("backend/b.js", "process.env.API_KEY")
        item = resolver.get_required_secrets().items[0]
        assert item.reasons == [ScanReason(module="backend", count=2)]
        assert item.found_in == ["backend/a.js", "backend/b.js"]

    def test_per_app_items(self, resolver: RequirementResolver, write_file) -> None:
        """One key used by two apps yields one item per app, each with its own files."""
        write_file("src/config.ts", "process.env.SHARED_KEY")
        write_file("backend/config.js", "process.env.SHARED_KEY")
        items = _by_app_key(resolver.get_required_secrets())
        assert items[("frontend", "SHARED_KEY")].found_in == ["src/config.ts"]
        assert items[("backend", "SHARED_KEY")].found_in == ["backend/config.js"]

    def test_config_module_creates_no_requirement(
        self, resolver: RequirementResolver, write_file
    ) -> None:
        write_file("package.json", '"{{ secrets.NPM_TOKEN }}"')
        assert resolver.get_required_secrets().items == []

    def test_found_in_sample_capped(self, resolver: RequirementResolver, write_file) -> None:
        for i in range(12):
            write_file(f"backend/m{i:02d}.js", "process.env.POPULAR_KEY")
        item = resolver.get_required_secrets().items[0]
        assert len(item.found_in) == 10
        assert item.reasons[0].count == 12

    def test_sorted_by_app_order_then_key(
        self, resolver: RequirementResolver, write_file
    ) -> None:
        write_file("ai-service/a.py", 'os.getenv("AI_KEY")')
        write_file("backend/b.js", "process.env.ZED_KEY\nprocess.env.ALPHA_KEY")
        write_file("src/c.ts", "process.env.FRONT_KEY")
        items = resolver.get_required_secrets().items
        assert [(i.app, i.key) for i in items] == [
            ("frontend", "FRONT_KEY"),
            ("backend", "ALPHA_KEY"),
            ("backend", "ZED_KEY"),
            ("ai-service", "AI_KEY"),
        ]

    def test_pending_sync(
        self, vault: SecretsVault, resolver: RequirementResolver, write_file
    ) -> None:
        write_file("backend/app.js", "process.env.QUEUED\nprocess.env.SYNCED\n")
        vault.create("QUEUED", "v")
        vault.create("SYNCED", "v")
        vault.queue.remove(["SYNCED"])

        ledger = resolver.get_required_secrets()
        items = _by_app_key(ledger)
        assert ledger.pending_sync_keys == ["QUEUED"]
        assert items[("backend", "QUEUED")].pending_sync is True
        assert items[("backend", "SYNCED")].pending_sync is False

    def test_missing_property(
        self, vault: SecretsVault, resolver: RequirementResolver, write_file
    ) -> None:
        write_file("backend/app.js", "process.env.HAS\nprocess.env.LACKS\n")
        vault.create("HAS", "v")
        assert [i.key for i in resolver.get_required_secrets().missing] == ["LACKS"]


class TestReasons:
    """Tests for how requirements are explained."""

    def test_integration_reason_for_each_app(
        self, config: VaultConfig, vault: SecretsVault, scanner: RepositoryScanner
    ) -> None:
        integrations = [
            Integration(
                id="firebase",
                label="Firebase",
                secrets=[IntegrationSecret(
                    key="FIREBASE_PROJECT_ID",
                    apps=["backend", "ai-service"],
                    description="Project id",
                )],
            )
        ]
        resolver = RequirementResolver(config, vault, scanner, integrations=integrations)
        items = _by_app_key(resolver.get_required_secrets())
        for app in ("backend", "ai-service"):
            assert items[(app, "FIREBASE_PROJECT_ID")].reasons == [
                IntegrationReason(
                    integration_id="firebase",
                    integration_label="Firebase",
                    description="Project id",
                )
            ]
            assert items[(app, "FIREBASE_PROJECT_ID")].found_in == []

    def test_integration_then_scan(
        self, config: VaultConfig, vault: SecretsVault, scanner: RepositoryScanner, write_file
    ) -> None:
        write_file("ai-service/llm.py", 'os.environ["GROQ_API_KEY"]')
        integrations = [
            Integration(id="groq", label="Groq", secrets=[
                IntegrationSecret(key="GROQ_API_KEY", apps=["ai-service"]),
            ])
        ]
        resolver = RequirementResolver(config, vault, scanner, integrations=integrations)
        reasons = resolver.get_required_secrets().items[0].reasons
        assert [r.type for r in reasons] == ["integration", "scan"]

    def test_flag_reason(
        self, vault: SecretsVault, resolver: RequirementResolver, write_file
    ) -> None:
        write_file("backend/app.js", "process.env.FLAGGED\n")
        vault.create("FLAGGED", required=True)
        reasons = resolver.get_required_secrets().items[0].reasons
        assert reasons == [ScanReason(module="backend", count=1), FlagReason()]

    def test_no_flag_when_not_required(
        self, vault: SecretsVault, resolver: RequirementResolver, write_file
    ) -> None:
        write_file("backend/app.js", "process.env.OPTIONAL\n")
        vault.create("OPTIONAL")
        reasons = resolver.get_required_secrets().items[0].reasons
        assert [r.type for r in reasons] == ["scan"]

    def test_internal_integration_covers_flag(
        self, config: VaultConfig, vault: SecretsVault, scanner: RepositoryScanner, write_file
    ) -> None:
        write_file("backend/app.js", "process.env.SESSION_SECRET\n")
        vault.create("SESSION_SECRET", required=True)
        integrations = [
            Integration(id="internal", label="Internal", secrets=[
                IntegrationSecret(key="SESSION_SECRET", apps=["backend"]),
            ])
        ]
        resolver = RequirementResolver(config, vault, scanner, integrations=integrations)
        reasons = resolver.get_required_secrets().items[0].reasons
        assert [r.type for r in reasons] == ["integration", "scan"]

    def test_default_schema(
        self, config: VaultConfig, vault: SecretsVault, scanner: RepositoryScanner
    ) -> None:
        """Without an explicit schema the built-in integrations apply."""
        resolver = RequirementResolver(config, vault, scanner)
        items = _by_app_key(resolver.get_required_secrets())
        assert ("ai-service", "GROQ_API_KEY") in items
        assert ("frontend", "VITE_FIREBASE_API_KEY") in items
        assert ("backend", "SESSION_SECRET") in items
