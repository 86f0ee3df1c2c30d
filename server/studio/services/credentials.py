"""Credential lookup for provider API keys."""
from __future__ import annotations

import logging
from typing import Mapping, Optional, Protocol

from ..config import Settings, settings
from .errors import ConfigurationError
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

WAVESPEED = "wavespeed"
ELEVENLABS = "elevenlabs"
KIE = "kie"

_DISPLAY_NAMES = {
    WAVESPEED: "Wavespeed",
    ELEVENLABS: "ElevenLabs",
    KIE: "Kie.ai",
}


class CredentialProvider(Protocol):
    def get(self, name: str) -> Optional[str]: ...


class StaticCredentialProvider:
    """Fixed mapping of provider name to token."""

    def __init__(self, tokens: Mapping[str, str]) -> None:
        self._tokens = dict(tokens)

    def get(self, name: str) -> Optional[str]:
        return self._tokens.get(name)


class StoreCredentialProvider:
    """Keys saved by the user in the settings store, falling back to the environment.

    Keys are stored as ``<provider>ApiKey`` (``wavespeedApiKey``,
    ``elevenlabsApiKey``, ``kieApiKey``) so a settings export stays readable.
    """

    def __init__(self, store: KeyValueStore, config: Settings = settings) -> None:
        self._store = store
        self._config = config

    @staticmethod
    def _key(name: str) -> str:
        return f"{name}ApiKey"

    def get(self, name: str) -> Optional[str]:
        value = self._store.get(self._key(name))
        if isinstance(value, str) and value.strip():
            return value
        return getattr(self._config, f"{name}_api_key", None)

    def save(self, name: str, token: str) -> None:
        self._store.set(self._key(name), token.strip())
        logger.info("Saved %s API key (%s)", name, "set" if token.strip() else "cleared")


def require_credential(provider: CredentialProvider, name: str) -> str:
    """Return a non-blank token or raise ``ConfigurationError``."""

    token = provider.get(name)
    if token is None or not token.strip():
        display = _DISPLAY_NAMES.get(name, name)
        raise ConfigurationError(
            f"{display} API key is not configured. Please add it in the Settings menu."
        )
    return token.strip()
