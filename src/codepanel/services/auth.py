"""Credential state lookup used before any request is sent."""

from __future__ import annotations

import logging
from typing import Protocol

from .settings import Settings

LOGGER = logging.getLogger(__name__)

CREDENTIAL_MISSING = "missing"


class CredentialStateProvider(Protocol):
    async def get_credential_state(self) -> str | None:
        """Return ``None`` when authenticated, otherwise a state label."""
        ...


class ApiKeyCredentialProvider:
    """Reports whether an API key is configured for the assistant service."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def get_credential_state(self) -> str | None:
        if not (self._settings.api_key or "").strip():
            LOGGER.debug("No API key configured")
            return CREDENTIAL_MISSING
        return None


__all__ = [
    "ApiKeyCredentialProvider",
    "CREDENTIAL_MISSING",
    "CredentialStateProvider",
]
