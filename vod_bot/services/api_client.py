# vod_bot/services/api_client.py

from __future__ import annotations

from typing import Any

import httpx

from ..config import ApiConfig, logger

API_PREFIX = "/api/internal"


class ApiError(Exception):
    """The internal API was unreachable, answered garbage or reported a failure."""

    def __init__(self, message: str, *, endpoint: str = "", data: Any = None):
        super().__init__(message)
        self.endpoint = endpoint
        self.data = data


class InternalApiClient:
    """
    Thin async wrapper around the stream-sharing internal API.

    Every endpoint answers with a JSON envelope of the form
    ``{"success": bool, "data": ..., "error": str}``. `request` unwraps it and
    returns `data`; anything other than ``success == true`` becomes an
    `ApiError`.
    """

    def __init__(
        self, config: ApiConfig, client: httpx.AsyncClient | None = None
    ) -> None:
        self.config = config
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url + API_PREFIX,
            headers={"X-API-Key": config.api_key},
            timeout=config.timeout,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self, method: str, endpoint: str, body: dict[str, Any] | None = None
    ) -> Any:
        try:
            response = await self._client.request(method, endpoint, json=body)
        except httpx.HTTPError as e:
            logger.error(f"[API] {method} {endpoint} failed: {e}")
            raise ApiError(f"request failed: {e}", endpoint=endpoint) from e

        try:
            payload = response.json()
        except ValueError as e:
            logger.error(
                f"[API] {method} {endpoint} returned non-JSON body "
                f"(HTTP {response.status_code})."
            )
            raise ApiError("malformed response", endpoint=endpoint) from e

        if not isinstance(payload, dict):
            raise ApiError("malformed response", endpoint=endpoint)

        if payload.get("success") is not True:
            error = payload.get("error") or f"HTTP {response.status_code}"
            logger.warning(f"[API] {method} {endpoint} reported failure: {error}")
            raise ApiError(str(error), endpoint=endpoint, data=payload.get("data"))

        return payload.get("data")

    # --- Accounts ---

    async def resolve_identity(self, user_id: int) -> str | None:
        """
        Returns the backend username linked to a Telegram user, or None when
        the API answers without one.

        The API also reports an unknown user as a failure, so callers that
        only care about "linked or not" treat `ApiError` the same as None.
        """
        data = await self.request("GET", f"/telegram/{user_id}/ldap")
        if not isinstance(data, dict):
            return None
        username = data.get("ldap_user")
        if not isinstance(username, str):
            return None
        return username.strip() or None

    async def link_account(
        self, user_id: int, display_name: str, username: str
    ) -> str:
        data = await self.request(
            "POST",
            "/telegram/link",
            {
                "telegram_id": str(user_id),
                "telegram_name": display_name,
                "ldap_user": username,
            },
        )
        if isinstance(data, dict) and data.get("ldap_user"):
            return str(data["ldap_user"])
        return username

    # --- VOD ---

    async def search_vod(self, username: str, query: str) -> list[Any]:
        data = await self.request(
            "POST", "/vod/search", {"username": username, "query": query}
        )
        if not isinstance(data, dict):
            return []
        results = data.get("results")
        return results if isinstance(results, list) else []

    async def enrich_page(
        self,
        query: str,
        results: list[dict[str, Any]],
        page: int,
        per_page: int,
    ) -> list[Any]:
        """Asks the API to fill in sizes for one page of a result list."""
        data = await self.request(
            "POST",
            "/vod/enrich",
            {"query": query, "results": results, "page": page, "per_page": per_page},
        )
        if not isinstance(data, dict):
            return []
        enriched = data.get("results")
        return enriched if isinstance(enriched, list) else []

    async def request_download(self, username: str, payload: dict[str, Any]) -> dict:
        data = await self.request(
            "POST", "/vod/download", {"username": username, **payload}
        )
        return data if isinstance(data, dict) else {}

    # --- Cache ---

    async def start_cache(self, username: str, payload: dict[str, Any]) -> dict:
        data = await self.request(
            "POST", "/cache/start", {"username": username, **payload}
        )
        return data if isinstance(data, dict) else {}

    async def cache_progress(self, stream_id: str) -> dict:
        data = await self.request("GET", f"/cache/progress/{stream_id}")
        return data if isinstance(data, dict) else {}

    async def list_cached(self) -> list[Any]:
        data = await self.request("GET", "/cache/list")
        return data if isinstance(data, list) else []

    # --- Status & admin ---

    async def get_status(self) -> dict:
        data = await self.request("GET", "/status")
        return data if isinstance(data, dict) else {}

    async def disconnect_user(self, username: str) -> None:
        await self.request("POST", f"/users/disconnect/{username}")

    async def timeout_user(self, username: str, minutes: int) -> None:
        await self.request(
            "POST", f"/users/timeout/{username}", {"minutes": minutes}
        )
