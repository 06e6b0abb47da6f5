"""
Env files -- merge, back up, restore.

Writes are merges, never overwrites. Comments, blank lines, ordering
and unmanaged keys pass through untouched; managed keys are replaced
in place or appended once at the end. A value that spans lines is
written double-quoted with ``\\n``/``\\r`` escapes so it stays on one line.

Backups sit next to the file they protect:

    backend/.env
    backend/.env.20260224T101500.bak

The timestamp sorts lexicographically, so the newest backup is simply
the greatest filename. Two backups within one second get a counter
(``20260224T101500_01``) that still sorts after the first.
"""

from __future__ import annotations

import logging
import re
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Optional

from ._fs import atomic_write_text

logger = logging.getLogger("secretsvault.envfile")

ENV_KEY_REGEX = re.compile(r"^([A-Z0-9_.:-]+)\s*=.*$")
_LINE_SPLIT = re.compile(r"\r?\n")
TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S"

# Bytes that are not UTF-8 round-trip unchanged.
ENCODING_ERRORS = "surrogateescape"

_ESCAPES = {"\\": "\\\\", "\n": "\\n", "\r": "\\r", '"': '\\"'}
_UNESCAPES = {"n": "\n", "r": "\r"}
_ESCAPED_CHAR = re.compile(r"\\(.)", re.DOTALL)


def split_lines(content: str) -> list[str]:
    return _LINE_SPLIT.split(content) if content else []


def extract_env_key(line: str) -> Optional[str]:
    """The key of a ``KEY=value`` line, or None for anything else."""
    match = ENV_KEY_REGEX.match(line) if line else None
    return match.group(1) if match else None


def format_env_value(value: str) -> str:
    """Single-line form of a value for an env file."""
    if "\n" not in value and "\r" not in value:
        return value
    escaped = "".join(_ESCAPES.get(ch, ch) for ch in value)
    return f'"{escaped}"'


def unquote_env_value(raw: str) -> str:
    """Inverse of format_env_value for double-quoted values."""
    if len(raw) < 2 or raw[0] != '"' or raw[-1] != '"':
        return raw
    return _ESCAPED_CHAR.sub(
        lambda m: _UNESCAPES.get(m.group(1), m.group(1)), raw[1:-1]
    )


def _trim(lines: list[str]) -> None:
    while lines and lines[-1] == "":
        lines.pop()


def _join(lines: list[str]) -> str:
    _trim(lines)
    return "\n".join(lines) + "\n" if lines else ""


def build_env_content(existing: str, entries: Mapping[str, str]) -> str:
    """Merge managed entries into existing env file content.

    Args:
        existing: Current file content ("" if the file does not exist).
        entries: Managed keys and their values.

    Returns:
        New file content, newline-terminated, trailing blank lines trimmed.
    """
    seen: set[str] = set()
    lines: list[str] = []
    for line in split_lines(existing):
        key = extract_env_key(line)
        if key is None or key not in entries:
            lines.append(line)
            continue
        seen.add(key)
        lines.append(f"{key}={format_env_value(entries[key])}")

    _trim(lines)
    for key, value in entries.items():
        if key not in seen:
            lines.append(f"{key}={format_env_value(value)}")

    return _join(lines)


def merge_preserving_new_keys(backup: str, current: str) -> str:
    """Restore backup content while keeping keys added since the backup.

    Every backup line is restored verbatim. ``KEY=value`` lines of the
    current file whose key the backup does not have are appended after it.
    """
    merged = split_lines(backup)
    seen = {key for key in map(extract_env_key, merged) if key}
    _trim(merged)

    for line in split_lines(current):
        key = extract_env_key(line)
        if key is None or key in seen:
            continue
        seen.add(key)
        merged.append(line)

    return _join(merged)


def read_env(path: Path) -> str:
    return path.read_bytes().decode("utf-8", ENCODING_ERRORS) if path.exists() else ""


def parse_env(content: str) -> dict[str, str]:
    """``KEY=value`` pairs of env file content (last assignment wins).

    Double-quoted values are unescaped.
    """
    values: dict[str, str] = {}
    for line in split_lines(content):
        key = extract_env_key(line)
        if key:
            values[key] = unquote_env_value(line.split("=", 1)[1])
    return values


def _backup_pattern(env_path: Path) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(env_path.name)}\.\d{{8}}T\d{{6}}(?:_\d+)?\.bak$")


def create_backup(env_path: Path, now: Optional[datetime] = None) -> Optional[Path]:
    """Copy the env file to a timestamped backup beside it.

    Returns:
        The backup path, or None if there is no file to back up.
    """
    if not env_path.exists():
        return None
    stamp = (now or datetime.now(timezone.utc)).strftime(TIMESTAMP_FORMAT)
    backup = env_path.with_name(f"{env_path.name}.{stamp}.bak")
    counter = 0
    while backup.exists():
        counter += 1
        backup = env_path.with_name(f"{env_path.name}.{stamp}_{counter:02d}.bak")
    shutil.copy2(env_path, backup)
    logger.debug("Backed up %s -> %s", env_path, backup.name)
    return backup


def list_backups(env_path: Path) -> list[Path]:
    """Backups of an env file, oldest first."""
    directory = env_path.parent
    if not directory.is_dir():
        return []
    pattern = _backup_pattern(env_path)
    try:
        names = sorted(p.name for p in directory.iterdir() if pattern.match(p.name))
    except OSError as exc:
        logger.debug("Cannot list backups in %s: %s", directory, exc)
        return []
    return [directory / name for name in names]


def find_latest_backup(env_path: Path) -> Optional[Path]:
    backups = list_backups(env_path)
    return backups[-1] if backups else None


def write_env_file(env_path: Path, entries: Mapping[str, str]) -> tuple[bool, Optional[Path]]:
    """Merge entries into an env file, backing up and writing only on change.

    Returns:
        (changed, backup_path)
    """
    existing = read_env(env_path)
    content = build_env_content(existing, entries)
    if content == existing:
        return False, None

    backup = create_backup(env_path)
    atomic_write_text(env_path, content, errors=ENCODING_ERRORS)
    logger.info("Wrote %s (%d managed keys)", env_path, len(entries))
    return True, backup


def restore_env_file(env_path: Path, backup_path: Path) -> str:
    """Roll an env file back to a backup without losing newer keys.

    Returns:
        The content written.
    """
    content = merge_preserving_new_keys(
        read_env(backup_path), read_env(env_path)
    )
    atomic_write_text(env_path, content, errors=ENCODING_ERRORS)
    logger.info("Restored %s from %s", env_path, backup_path.name)
    return content
