"""HTTP client for the content API's ``player_api.php`` endpoints."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from .errors import AccountError, DecodeError, TransportError
from .schemas import CatalogKind


logger = logging.getLogger(__name__)

PLAYER_API_PATH = "/player_api.php"

CATEGORY_ACTIONS: dict[CatalogKind, str] = {
    "live": "get_live_categories",
    "movie": "get_vod_categories",
    "series": "get_series_categories",
}
ENTRY_ACTIONS: dict[CatalogKind, str] = {
    "live": "get_live_streams",
    "movie": "get_vod_streams",
    "series": "get_series",
}
SERIES_INFO_ACTION = "get_series_info"


def create_client(base_url: str, *, timeout: float = 30.0, transport: httpx.BaseTransport | None = None) -> httpx.Client:
    """Instantiate an HTTPX client with a configurable base URL."""

    return httpx.Client(base_url=base_url, timeout=timeout, transport=transport)


class XtreamClient:
    """Fetch raw records; every failure surfaces as a sync error, never retried."""

    def __init__(
        self,
        server: str,
        username: str,
        password: str,
        *,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._credentials = {"username": username, "password": password}
        self._http = create_client(server.rstrip("/"), timeout=timeout, transport=transport)

    def __enter__(self) -> "XtreamClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def _get(self, action: str | None = None, **params: str) -> httpx.Response:
        query: dict[str, str] = dict(self._credentials)
        if action is not None:
            query["action"] = action
        query.update(params)
        try:
            response = self._http.get(PLAYER_API_PATH, params=query)
        except httpx.HTTPError as exc:
            raise TransportError(f"Request for {action or 'account'} failed: {exc}") from exc
        if response.status_code != 200:
            raise TransportError(f"{action or 'account'} responded with HTTP {response.status_code}")
        return response

    @staticmethod
    def _decode(response: httpx.Response, action: str) -> Any:
        if not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise DecodeError(f"{action} returned invalid JSON: {exc}") from exc

    def _get_list(self, action: str, **params: str) -> list[Any]:
        payload = self._decode(self._get(action, **params), action)
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise DecodeError(f"{action} returned {type(payload).__name__}, expected a list")
        return payload

    def fetch_account(self) -> dict[str, Any]:
        """Return the raw account payload; rejected credentials raise :class:`AccountError`."""

        try:
            response = self._get()
        except TransportError as exc:
            raise AccountError(f"{exc}. Verify that your username and password are correct") from exc
        payload = self._decode(response, "account")
        if not isinstance(payload, dict) or not isinstance(payload.get("user_info"), dict):
            raise AccountError("Account response has no user_info block")
        return payload

    def fetch_categories(self, kind: CatalogKind) -> list[Any]:
        return self._get_list(CATEGORY_ACTIONS[kind])

    def fetch_entries(self, kind: CatalogKind, category_id: str) -> list[Any]:
        return self._get_list(ENTRY_ACTIONS[kind], category_id=category_id)

    def fetch_series_detail(self, series_id: str) -> Any:
        payload = self._decode(self._get(SERIES_INFO_ACTION, series_id=series_id), SERIES_INFO_ACTION)
        if payload is None:
            raise DecodeError(f"{SERIES_INFO_ACTION} returned an empty body for series {series_id}")
        return payload
