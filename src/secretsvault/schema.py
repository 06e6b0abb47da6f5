"""
Integration schema -- secrets that known integrations declare up front.

The scanner only sees what the code references today. The schema is
the hand-maintained other half: "Firebase needs these keys in these
services", whether or not the code has been written yet.

The built-in table can be replaced by a YAML file:

    integrations:
      - id: groq
        label: Groq
        secrets:
          - key: GROQ_API_KEY
            apps: [ai-service]
            description: LLM inference API key
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger("secretsvault.schema")

INTERNAL_INTEGRATION_ID = "internal"


class IntegrationSecret(BaseModel):
    """One key an integration needs, and which apps need it."""

    key: str
    apps: list[str] = Field(default_factory=list)
    description: str = ""


class Integration(BaseModel):
    """A named group of secrets belonging to one external integration."""

    id: str
    label: str
    secrets: list[IntegrationSecret] = Field(default_factory=list)


def _secret(key: str, apps: list[str], description: str) -> IntegrationSecret:
    return IntegrationSecret(key=key, apps=apps, description=description)


DEFAULT_INTEGRATIONS: list[Integration] = [
    Integration(
        id="firebase",
        label="Firebase",
        secrets=[
            _secret("VITE_FIREBASE_API_KEY", ["frontend"], "Web API key"),
            _secret("VITE_FIREBASE_AUTH_DOMAIN", ["frontend"], "Auth domain"),
            _secret("VITE_FIREBASE_PROJECT_ID", ["frontend"], "Project id for the web client"),
            _secret("VITE_FIREBASE_STORAGE_BUCKET", ["frontend"], "Storage bucket"),
            _secret("VITE_FIREBASE_MESSAGING_SENDER_ID", ["frontend"], "Messaging sender id"),
            _secret("VITE_FIREBASE_APP_ID", ["frontend"], "Web app id"),
            _secret("FIREBASE_PROJECT_ID", ["backend", "ai-service"], "Project id for the admin SDK"),
            _secret("FIREBASE_SERVICE_ACCOUNT_KEY", ["backend", "ai-service"], "Admin SDK service account JSON"),
        ],
    ),
    Integration(
        id="groq",
        label="Groq",
        secrets=[
            _secret("GROQ_API_KEY", ["ai-service"], "LLM inference API key"),
        ],
    ),
    Integration(
        id=INTERNAL_INTEGRATION_ID,
        label="Internal services",
        secrets=[
            _secret("SESSION_SECRET", ["backend"], "Session cookie signing secret"),
            _secret("AI_INTERNAL_TOKEN", ["backend", "ai-service"], "Service-to-service token"),
            _secret("ADMIN_SETUP_TOKEN", ["backend"], "One-time admin bootstrap token"),
            _secret("AI_SERVICE_URL", ["backend"], "Base URL of the AI service"),
        ],
    ),
]


def load_integrations(path: Optional[Path] = None) -> list[Integration]:
    """Load the integration schema.

    Args:
        path: YAML file with an ``integrations`` list. None for the built-ins.

    Returns:
        List of integrations. Falls back to the built-ins if the file
        is missing or invalid.
    """
    if path is None:
        return list(DEFAULT_INTEGRATIONS)
    if not path.exists():
        logger.warning("Integration schema %s not found, using built-in schema", path)
        return list(DEFAULT_INTEGRATIONS)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return [Integration.model_validate(i) for i in data.get("integrations", [])]
    except (yaml.YAMLError, OSError, ValueError, AttributeError) as exc:
        logger.warning("Failed to load integration schema %s: %s", path, exc)
        return list(DEFAULT_INTEGRATIONS)
