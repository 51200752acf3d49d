"""Assistant backend client."""

from .client import AssistantClient, ClientSettings

__all__ = ["AssistantClient", "ClientSettings"]
