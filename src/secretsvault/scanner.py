"""
Repository Scanner -- where does the code read configuration keys?

Walks each service's source root (bounded depth, ignore-list, text-like
extensions only) plus a handful of root config files, and extracts keys
from environment-access syntax:

    process.env.KEY            process.env['KEY']
    import.meta.env.VITE_KEY   {{ secrets.KEY }}
    os.environ["KEY"]          os.getenv("KEY")

The scanner never touches the vault. It is best effort: unreadable
files, missing roots and permission errors are skipped, so a failed
scan yields a smaller index rather than an exception.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .config import VaultConfig
from .models import KeyUsage, MissingSecret, UsageIndexEntry
from .vault import validate_key

logger = logging.getLogger("secretsvault.scanner")

IGNORED_DIRS = {
    "node_modules",
    ".git",
    "build",
    "dist",
    ".next",
    ".turbo",
    "coverage",
    ".cache",
    ".output",
    "__pycache__",
    ".venv",
}

SUPPORTED_EXTENSIONS = {
    ".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs", ".mts", ".cts",
    ".json", ".yaml", ".yml", ".env", ".config", ".py",
}

CONFIG_MODULE = "config"
CONTEXT_MAX_CHARS = 200

_KEY = r"([A-Z0-9_.:-]{2,128})"

KEY_PATTERNS = [
    # process.env.KEY, process?.env?.KEY
    re.compile(r"process(?:\?\.|\.)env(?:\?\.|\.)?" + _KEY),
    # process.env['KEY']
    re.compile(r"process(?:\?\.|\.)env\[['\"]" + _KEY + r"['\"]\]"),
    # import.meta.env.VITE_KEY
    re.compile(r"import\.meta(?:\?\.|\.)env(?:\?\.|\.)?(VITE_[A-Z0-9_.:-]{1,124})"),
    # {{ secrets.KEY }}
    re.compile(r"\{\{\s*secrets\." + _KEY + r"\s*\}\}"),
    # os.environ["KEY"], os.environ.get("KEY"), os.getenv("KEY")
    re.compile(r"os\.environ\[['\"]" + _KEY + r"['\"]\]"),
    re.compile(r"os\.(?:environ\.get|getenv)\(\s*['\"]" + _KEY + r"['\"]"),
]


def extract_keys(content: str) -> dict[str, list[int]]:
    """Find every key reference in ``content``.

    Args:
        content: File text.

    Returns:
        Mapping of key to the 1-based line numbers where it appears.
    """
    found: dict[str, list[int]] = {}
    if not content:
        return found
    for pattern in KEY_PATTERNS:
        for match in pattern.finditer(content):
            # member access chains like process.env.FOO.trim() capture "FOO."
            key = match.group(1).rstrip(".:-")
            if len(key) < 2:
                continue
            line = content.count("\n", 0, match.start()) + 1
            found.setdefault(key, []).append(line)
    return found


@dataclass
class _Usage:
    locations: set[str] = field(default_factory=set)
    modules: set[str] = field(default_factory=set)


class RepositoryScanner:
    """Discovers configuration key references across the repository.

    Args:
        config: Repository configuration (root, scan targets, caps).
    """

    def __init__(self, config: VaultConfig):
        self.config = config
        self.repo_root = config.root

    # -------------------------------------------------------------------
    # File collection
    # -------------------------------------------------------------------

    def collect_files(self, target_root: str) -> list[Path]:
        """All candidate files under one scan root."""
        resolved = self.repo_root / target_root
        if not resolved.is_dir():
            logger.debug("Scan root %s not found, skipping", resolved)
            return []

        results: list[Path] = []
        self._traverse(resolved, 0, results)
        return results

    def _traverse(self, current: Path, depth: int, results: list[Path]) -> None:
        if depth > self.config.max_scan_depth:
            return
        try:
            entries = sorted(os.scandir(current), key=lambda e: e.name)
        except OSError as exc:
            logger.debug("Cannot list %s: %s", current, exc)
            return

        for entry in entries:
            if entry.name in IGNORED_DIRS:
                continue
            try:
                if entry.is_dir(follow_symlinks=False):
                    self._traverse(Path(entry.path), depth + 1, results)
                elif entry.is_file():
                    ext = os.path.splitext(entry.name)[1].lower()
                    if depth > 0 and ext not in SUPPORTED_EXTENSIONS:
                        continue
                    results.append(Path(entry.path))
            except OSError:
                continue

    def collect_config_files(self) -> list[Path]:
        return [
            self.repo_root / name
            for name in self.config.config_files
            if (self.repo_root / name).is_file()
        ]

    def iter_files(self) -> Iterator[Path]:
        for target in self.config.scan_targets:
            yield from self.collect_files(target.root)
        yield from self.collect_config_files()

    def read_file_safe(self, path: Path) -> Optional[str]:
        """File text, or None if unreadable or over the size cap."""
        try:
            if path.stat().st_size > self.config.max_file_bytes:
                return None
            return path.read_bytes().decode("utf-8", errors="replace")
        except OSError as exc:
            logger.debug("Cannot read %s: %s", path, exc)
            return None

    def relative(self, path: Path) -> str:
        return path.relative_to(self.repo_root).as_posix()

    def determine_module(self, relative_path: str) -> str:
        """Module a file belongs to, by path prefix. Anything else is config."""
        for target in self.config.scan_targets:
            if relative_path.startswith(f"{target.root}/"):
                return target.module
        return CONFIG_MODULE

    # -------------------------------------------------------------------
    # Indexing
    # -------------------------------------------------------------------

    def index_repository(self) -> dict[str, _Usage]:
        usages: dict[str, _Usage] = {}
        for path in self.iter_files():
            content = self.read_file_safe(path)
            if not content:
                continue
            rel = self.relative(path)
            module = self.determine_module(rel)
            for key in extract_keys(content):
                usage = usages.setdefault(key, _Usage())
                usage.locations.add(rel)
                usage.modules.add(module)
        return usages

    def get_usage_index(self) -> dict[str, UsageIndexEntry]:
        """Map every referenced key to where it was found."""
        index = {
            key: UsageIndexEntry(
                key=key,
                found_in=sorted(usage.locations),
                modules=sorted(usage.modules),
            )
            for key, usage in self.index_repository().items()
        }
        logger.debug("Usage index built: %d keys", len(index))
        return index

    def scan_for_missing(self, known_keys: Iterable[str] = ()) -> list[MissingSecret]:
        """Referenced keys that the vault does not know about, sorted by key."""
        known = set(known_keys)
        missing = [
            MissingSecret(key=key, found_in=entry.found_in)
            for key, entry in self.get_usage_index().items()
            if key not in known
        ]
        return sorted(missing, key=lambda m: m.key)

    def find_key_usages(self, target_key: str) -> dict[str, list[KeyUsage]]:
        """Every line mentioning ``target_key``, grouped by service module.

        Raises:
            ValidationError: If ``target_key`` is not a valid key.
        """
        validate_key(target_key)
        pattern = re.compile(
            r"(?<![A-Za-z0-9_])" + re.escape(target_key) + r"(?![A-Za-z0-9_])"
        )
        occurrences: dict[str, list[KeyUsage]] = {
            target.module: [] for target in self.config.scan_targets
        }

        for path in self.iter_files():
            content = self.read_file_safe(path)
            if not content:
                continue
            rel = self.relative(path)
            module = self.determine_module(rel)
            if module not in occurrences:
                continue
            for number, line in enumerate(content.splitlines(), start=1):
                if pattern.search(line):
                    occurrences[module].append(
                        KeyUsage(file=rel, line=number, context=line.strip()[:CONTEXT_MAX_CHARS])
                    )

        for usages in occurrences.values():
            usages.sort(key=lambda u: (u.file, u.line))
        return occurrences
