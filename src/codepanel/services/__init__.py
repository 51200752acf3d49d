"""Service layer helpers (bridge, settings, credentials)."""

from .auth import ApiKeyCredentialProvider, CredentialStateProvider
from .bridge import BridgeDecodeError, StdioBridge
from .settings import Settings, SettingsStore, SecretVault, redact_secret

__all__ = [
    "ApiKeyCredentialProvider",
    "BridgeDecodeError",
    "CredentialStateProvider",
    "SecretVault",
    "Settings",
    "SettingsStore",
    "StdioBridge",
    "redact_secret",
]
