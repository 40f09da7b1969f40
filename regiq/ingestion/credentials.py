"""
API key providers for source adapters.

Adapters never read secrets themselves; they ask an injected provider for the
key of their source. No provider (or no key) means the request goes out
unauthenticated, which the public FDA/FSIS endpoints allow at a lower quota.

``get_api_key(source)`` is a pure lookup: repeated calls return the same key.
Rotation happens only when the adapter actually sends a request and asks
with ``advance=True``.
"""

import logging
from typing import Protocol, runtime_checkable

from regiq.config.settings import Settings, get_settings
from regiq.ingestion.http_client import APIKeyRotator

logger = logging.getLogger(__name__)


@runtime_checkable
class APIKeyProvider(Protocol):
    def get_api_key(self, source: str, *, advance: bool = False) -> str | None: ...


class StaticAPIKeyProvider:
    """Fixed keys per source. Handy for tests and one-off scripts."""

    def __init__(self, keys: dict[str, str] | None = None):
        self._keys = {k.upper(): v for k, v in (keys or {}).items() if v}

    def get_api_key(self, source: str, *, advance: bool = False) -> str | None:
        return self._keys.get(source.upper())


class SettingsAPIKeyProvider:
    """
    Keys from environment-backed settings (FDA_API_KEY, USDA_API_KEY, ...).

    Comma-separated values rotate round-robin, one key per outbound send.
    """

    def __init__(self, settings: Settings | None = None):
        settings = settings or get_settings()
        self._rotators: dict[str, APIKeyRotator] = {}
        for source, raw in settings.source_credentials.items():
            rotator = APIKeyRotator.from_env_var(raw)
            if rotator is not None:
                self._rotators[source] = rotator
                logger.debug(f"{source}: {rotator.key_count} API key(s) configured")

    def get_api_key(self, source: str, *, advance: bool = False) -> str | None:
        """
        Current key for ``source``.

        With ``advance=True`` the key is consumed and the next call returns
        the following key in the rotation.
        """
        rotator = self._rotators.get(source.upper())
        if rotator is None:
            return None
        if advance:
            return rotator.get_key_sync()
        return rotator.peek_key()
