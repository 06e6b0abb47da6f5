"""Tests for env file merging, backups, and rollback merges."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from secretsvault.envfile import (
    build_env_content,
    create_backup,
    extract_env_key,
    find_latest_backup,
    format_env_value,
    list_backups,
    merge_preserving_new_keys,
    parse_env,
    restore_env_file,
    unquote_env_value,
    write_env_file,
)

NOW = datetime(2026, 2, 24, 10, 15, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Pure merges
# ---------------------------------------------------------------------------


class TestBuildEnvContent:
    """Tests for merging managed entries into existing content."""

    def test_new_file(self) -> None:
        assert build_env_content("", {"A_KEY": "1", "B_KEY": "2"}) == "A_KEY=1\nB_KEY=2\n"

    def test_no_entries_no_file(self) -> None:
        assert build_env_content("", {}) == ""

    def test_replaces_in_place(self) -> None:
        existing = "FIRST=1\nA_KEY=old\nLAST=9\n"
        assert build_env_content(existing, {"A_KEY": "new"}) == "FIRST=1\nA_KEY=new\nLAST=9\n"

    def test_preserves_unrelated_content(self) -> None:
        existing = "# database settings\nFOO=bar\n\nexport NOT_A_MATCH\n"
        merged = build_env_content(existing, {"API_KEY": "x"})
        assert merged == "# database settings\nFOO=bar\n\nexport NOT_A_MATCH\nAPI_KEY=x\n"

    def test_trailing_blank_lines_trimmed(self) -> None:
        assert build_env_content("A_KEY=1\n\n\n\n", {"A_KEY": "2"}) == "A_KEY=2\n"

    def test_empty_value(self) -> None:
        assert build_env_content("", {"A_KEY": ""}) == "A_KEY=\n"

    def test_crlf_normalised(self) -> None:
        assert build_env_content("A_KEY=1\r\nB=2\r\n", {"A_KEY": "3"}) == "A_KEY=3\nB=2\n"

    def test_space_before_equals(self) -> None:
        assert build_env_content("A_KEY = old\n", {"A_KEY": "new"}) == "A_KEY=new\n"


class TestMergePreservingNewKeys:
    """Tests for the rollback merge."""

    def test_backup_restored_and_new_keys_kept(self) -> None:
        backup = "# header\nA_KEY=old\nB_KEY=old\n"
        current = "# header\nA_KEY=new\nB_KEY=new\nNEWKEY=1\n"
        assert merge_preserving_new_keys(backup, current) == (
            "# header\nA_KEY=old\nB_KEY=old\nNEWKEY=1\n"
        )

    def test_no_double_blank_lines(self) -> None:
        assert merge_preserving_new_keys("A_KEY=1\n", "\nNEWKEY=2\n") == "A_KEY=1\nNEWKEY=2\n"

    def test_empty_backup(self) -> None:
        assert merge_preserving_new_keys("", "A_KEY=1\n") == "A_KEY=1\n"

    def test_both_empty(self) -> None:
        assert merge_preserving_new_keys("", "") == ""


class TestParsing:
    """Tests for line-level helpers."""

    def test_extract_env_key(self) -> None:
        assert extract_env_key("A_KEY=1") == "A_KEY"
        assert extract_env_key("FIREBASE.ID:2-x=1") is None
        assert extract_env_key("# A_KEY=1") is None
        assert extract_env_key("") is None

    def test_parse_env(self) -> None:
        parsed = parse_env("# c\nA_KEY=1\nB_KEY=with=equals\nA_KEY=2\n")
        assert parsed == {"A_KEY": "2", "B_KEY": "with=equals"}


class TestMultiLineValues:
    """Values with line breaks are written quoted on a single line."""

    PEM = "-----BEGIN KEY-----\nabc\\def \"q\"\r\n-----END KEY-----"

    def test_single_line_untouched(self) -> None:
        assert format_env_value("plain \"quoted\" value") == "plain \"quoted\" value"

    def test_escaped_and_restored(self) -> None:
        formatted = format_env_value(self.PEM)
        assert "\n" not in formatted
        assert "\r" not in formatted
        assert unquote_env_value(formatted) == self.PEM

    def test_written_as_one_line(self) -> None:
        content = build_env_content("# keep\n", {"PEM_KEY": "line1\nline2"})
        assert content == '# keep\nPEM_KEY="line1\\nline2"\n'
        assert parse_env(content) == {"PEM_KEY": "line1\nline2"}

    def test_repeated_writes_are_stable(self, tmp_path: Path) -> None:
        env = tmp_path / ".env"
        assert write_env_file(env, {"PEM_KEY": self.PEM})[0] is True
        for _ in range(2):
            changed, backup = write_env_file(env, {"PEM_KEY": self.PEM})
            assert changed is False
            assert backup is None
        assert len(env.read_text().splitlines()) == 1
        assert list_backups(env) == []


# ---------------------------------------------------------------------------
# Files and backups
# ---------------------------------------------------------------------------


class TestBackups:
    """Tests for timestamped backups beside the env file."""

    def test_backup_name(self, tmp_path: Path) -> None:
        env = tmp_path / ".env"
        env.write_text("A_KEY=1\n")
        backup = create_backup(env, now=NOW)
        assert backup.name == ".env.20260224T101500.bak"
        assert backup.read_text() == "A_KEY=1\n"

    def test_no_file_no_backup(self, tmp_path: Path) -> None:
        assert create_backup(tmp_path / ".env", now=NOW) is None

    def test_same_second_gets_counter(self, tmp_path: Path) -> None:
        env = tmp_path / ".env"
        env.write_text("A_KEY=1\n")
        first = create_backup(env, now=NOW)
        second = create_backup(env, now=NOW)
        assert second.name == ".env.20260224T101500_01.bak"
        assert find_latest_backup(env) == second
        assert first != second

    def test_latest_is_lexicographic_max(self, tmp_path: Path) -> None:
        env = tmp_path / ".env"
        for stamp in ("20260101T000000", "20261231T235959", "20260601T120000"):
            (tmp_path / f".env.{stamp}.bak").write_text(stamp)
        (tmp_path / ".env.notes.bak").write_text("ignored")
        (tmp_path / "other.env.20270101T000000.bak").write_text("ignored")
        assert find_latest_backup(env).name == ".env.20261231T235959.bak"
        assert len(list_backups(env)) == 3

    def test_no_backups(self, tmp_path: Path) -> None:
        assert find_latest_backup(tmp_path / "missing" / ".env") is None


class TestWriteEnvFile:
    """Tests for the write-on-change cycle."""

    def test_creates_file_without_backup(self, tmp_path: Path) -> None:
        env = tmp_path / "svc" / ".env"
        changed, backup = write_env_file(env, {"A_KEY": "1"})
        assert changed is True
        assert backup is None
        assert env.read_text() == "A_KEY=1\n"

    def test_idempotent(self, tmp_path: Path) -> None:
        env = tmp_path / ".env"
        write_env_file(env, {"A_KEY": "1"})
        changed, backup = write_env_file(env, {"A_KEY": "1"})
        assert changed is False
        assert backup is None
        assert list_backups(env) == []

    def test_backs_up_before_change(self, tmp_path: Path) -> None:
        env = tmp_path / ".env"
        env.write_text("A_KEY=old\n")
        changed, backup = write_env_file(env, {"A_KEY": "new"})
        assert changed is True
        assert backup.read_text() == "A_KEY=old\n"
        assert env.read_text() == "A_KEY=new\n"

    def test_non_utf8_bytes_preserved(self, tmp_path: Path) -> None:
        env = tmp_path / ".env"
        env.write_bytes(b"# caf\xe9 settings\nFOO=bar\n")
        changed, backup = write_env_file(env, {"A_KEY": "1"})
        assert changed is True
        assert backup.read_bytes() == b"# caf\xe9 settings\nFOO=bar\n"
        assert env.read_bytes() == b"# caf\xe9 settings\nFOO=bar\nA_KEY=1\n"


class TestRestoreEnvFile:
    """Tests for rolling a file back to a backup."""

    def test_restore_keeps_new_keys_and_takes_no_backup(self, tmp_path: Path) -> None:
        env = tmp_path / ".env"
        env.write_text("A_KEY=old\n")
        write_env_file(env, {"A_KEY": "new"})
        env.write_text(env.read_text() + "NEWKEY=1\n")
        backup = find_latest_backup(env)

        content = restore_env_file(env, backup)

        assert content == "A_KEY=old\nNEWKEY=1\n"
        assert env.read_text() == content
        assert list_backups(env) == [backup]
