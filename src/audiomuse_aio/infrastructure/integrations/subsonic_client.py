"""Subsonic-protocol client for the bundled music server."""

import logging
from typing import Any

import httpx

from audiomuse_aio.config.settings import MusicServerSettings
from audiomuse_aio.domain.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

# Sentinels jq/Go produce when the key is absent
_NULL_VALUES = {"", "null", "none"}


class SubsonicClient:
    """Minimal Subsonic client: ping and API key management.

    Responses are wrapped in a ``subsonic-response`` envelope with a ``status``
    of ``ok`` or ``failed``.
    """

    CLIENT_NAME = "audiomuse-aio"
    API_VERSION = "1.16.1"

    def __init__(
        self,
        settings: MusicServerSettings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.url.rstrip("/"),
                timeout=self.settings.timeout,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _params(self, user: str, password: str) -> dict[str, str]:
        return {
            "u": user,
            "p": password,
            "v": self.API_VERSION,
            "c": self.CLIENT_NAME,
            "f": "json",
        }

    async def _call(self, view: str, params: dict[str, str]) -> dict[str, Any]:
        client = await self._get_client()
        url = f"{self.settings.url.rstrip('/')}/rest/{view}"
        response = await client.get(url, params=params)
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError as e:
            raise ExternalServiceError(f"{view} returned non-JSON body") from e
        envelope = payload.get("subsonic-response") if isinstance(payload, dict) else None
        if not isinstance(envelope, dict):
            raise ExternalServiceError(f"{view} response has no subsonic-response envelope")
        return envelope

    async def ping(self) -> bool:
        """True when the server answers ping.view with status ok."""
        try:
            envelope = await self._call(
                "ping.view",
                self._params(self.settings.bootstrap_user, self.settings.bootstrap_password),
            )
        except (httpx.HTTPError, ExternalServiceError) as e:
            logger.debug(f"Music server ping failed: {e}")
            return False
        return envelope.get("status") == "ok"

    # Hey future me - "no credential" is NOT an exception here. The Go server answers
    # status=failed, or a key that is missing/empty, and the shell scripts also saw the
    # literal string "null" from jq. All of those return None so the exchange can retry.
    # Transport errors (connection refused, 5xx) DO raise httpx.HTTPError.
    async def get_api_key(self, user: str, password: str) -> str | None:
        """Fetch (or have the server mint) the API key for ``user``.

        Args:
            user: Bootstrap identity
            password: Bootstrap password

        Returns:
            The key, or None if the server gave no usable key

        Raises:
            httpx.HTTPError: On transport or HTTP status errors
            ExternalServiceError: On a malformed response body
        """
        envelope = await self._call("getApiKey.view", self._params(user, password))
        if envelope.get("status") != "ok":
            error = envelope.get("error") or {}
            logger.warning(
                "getApiKey.view failed",
                extra={"code": error.get("code"), "server_message": error.get("message")},
            )
            return None
        api_key = envelope.get("apiKey") or {}
        key = api_key.get("key") if isinstance(api_key, dict) else None
        if key is None or str(key).strip().lower() in _NULL_VALUES:
            return None
        return str(key)

    async def revoke_api_key(self, user: str, password: str) -> bool:
        """Revoke the user's API key. True if the server confirmed."""
        envelope = await self._call("revokeApiKey.view", self._params(user, password))
        return envelope.get("status") == "ok"
