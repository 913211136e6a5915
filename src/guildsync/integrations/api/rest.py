from __future__ import annotations

from typing import Any, Optional

import httpx

from ...core.config import DEFAULT_API_BASE_URL
from ...core.retry import retry_transient
from .errors import ScriptsApiError, ScriptsApiPermanentError, ScriptsApiTransientError
from .models import Script, User, UserGuild

_RETRYABLE_HTTP_ERRORS = (
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.WriteTimeout,
    httpx.RemoteProtocolError,
)


class ScriptsApiClient:
    """Thin client for the remote scripts service.

    Implements the ``ScriptSource`` contract used to populate a new root.
    """

    def __init__(
        self,
        *,
        token: Optional[str],
        base_url: str = DEFAULT_API_BASE_URL,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout_seconds)
        self._token = token

    @property
    def token(self) -> Optional[str]:
        return self._token

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ScriptsApiClient":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    @retry_transient()
    async def _request(self, method: str, path: str) -> Any:
        headers = {"Authorization": self._token} if self._token else {}
        try:
            response = await self._client.request(method, path, headers=headers)
        except _RETRYABLE_HTTP_ERRORS as exc:
            raise ScriptsApiTransientError(
                f"Scripts API network error for {method} {path}: {type(exc).__name__}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ScriptsApiError(
                f"Scripts API request failed for {method} {path}: {exc}"
            ) from exc

        status_code = response.status_code
        if 200 <= status_code < 300:
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as exc:
                raise ScriptsApiError(
                    f"Scripts API returned non-JSON success response for {method} {path}",
                    status_code=status_code,
                ) from exc

        body_preview = (response.text or "").strip().replace("\n", " ")[:200]
        message = (
            f"Scripts API request failed for {method} {path}: "
            f"status={status_code} body={body_preview!r}"
        )
        if status_code in {401, 403}:
            raise ScriptsApiPermanentError(message, status_code=status_code)
        if status_code == 429 or 500 <= status_code < 600:
            raise ScriptsApiTransientError(message, status_code=status_code)
        raise ScriptsApiError(message, status_code=status_code)

    async def get_current_user(self) -> User:
        payload = await self._request("GET", "/api/current_user")
        return User.from_payload(payload if isinstance(payload, dict) else {})

    async def get_current_user_guilds(self) -> list[UserGuild]:
        payload = await self._request("GET", "/api/guilds")
        raw_guilds = payload.get("guilds") if isinstance(payload, dict) else payload
        if not isinstance(raw_guilds, list):
            return []
        return [UserGuild.from_payload(item) for item in raw_guilds if isinstance(item, dict)]

    async def list_guild_scripts(self, guild_id: str) -> list[Script]:
        payload = await self._request("GET", f"/api/guilds/{guild_id}/scripts")
        if not isinstance(payload, list):
            return []
        return [Script.from_payload(item) for item in payload if isinstance(item, dict)]
