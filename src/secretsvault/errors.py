"""
Error taxonomy for the vault and sync engine.

Every error carries a stable ``code`` so callers (CLI, admin tooling)
can render a status instead of a traceback. Only ConfigError and
StorageError are fatal; the rest describe a single bad request.
"""

from __future__ import annotations


class SecretsError(Exception):
    """Base class for all secretsvault errors."""

    code = "UNEXPECTED"


class ValidationError(SecretsError):
    """Malformed key, value, visibility, source, or required flag."""

    code = "VALIDATION_ERROR"


class DuplicateError(SecretsError):
    """A secret with this key already exists."""

    code = "DUPLICATE"


class NotFoundError(SecretsError):
    """No secret with this key."""

    code = "NOT_FOUND"


class ForbiddenError(SecretsError):
    """The secret is not visible and cannot be revealed."""

    code = "FORBIDDEN"


class ConfigError(SecretsError):
    """The master key could not be resolved."""

    code = "CONFIG_ERROR"


class DecryptError(SecretsError):
    """Stored ciphertext is corrupt or was sealed with another key."""

    code = "DECRYPT_ERROR"


class StorageError(SecretsError):
    """The vault file is unreadable or corrupt."""

    code = "STORAGE_ERROR"


FATAL_ERRORS = (ConfigError, StorageError)
