"""
Trifle Python SDK client (sync).
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional
from urllib.parse import quote, urlparse

import requests

from trifle.core import serialization
from trifle.sdk.errors import TrifleAPIError, TrifleConnectionError

logger = logging.getLogger("Trifle.sdk.client")

DEFAULT_BASE_URL = os.environ.get("TRIFLE_URL", "")
DEFAULT_TIMEOUT = 30.0
API_PREFIX = "/api/v1"


def _normalize_base_url(base_url: str) -> str:
    value = (base_url or "").strip().rstrip("/")
    if not value:
        raise ValueError("missing base URL: set --url or TRIFLE_URL")
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid Trifle base URL: {base_url!r}")
    return value


def _coerce_error_detail(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict):
        for field in ("error", "message", "detail", "errors"):
            detail = payload.get(field)
            if isinstance(detail, str) and detail:
                return detail
            if detail:
                try:
                    return serialization.dumps(detail)
                except (TypeError, ValueError):
                    return str(detail)
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    return fallback


class TrifleClient:
    """
    Synchronous client for the Trifle analytics REST API.

    Usage:
        from trifle.sdk import TrifleClient
        client = TrifleClient("https://trifle.example.com", token="...")
        series = client.get_metrics({"from": "...", "to": "...", "granularity": "1h"})
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = _normalize_base_url(base_url)
        self.timeout = timeout
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._session.headers.setdefault("Accept", "application/json")
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> "TrifleClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _url(self, path: str) -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{API_PREFIX}{path}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = self._url(path)
        headers = {}
        data = None
        if json_body is not None:
            data = serialization.dumps(json_body).encode("utf-8")
            headers["Content-Type"] = "application/json"

        logger.debug("%s %s params=%s", method, url, params)
        try:
            response = self._session.request(
                method=method,
                url=url,
                data=data,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TrifleConnectionError(f"Failed to connect to Trifle server at {self.base_url}: {exc}") from exc

        payload: Any
        if response.content:
            try:
                payload = serialization.loads(response.text)
            except ValueError:
                payload = response.text
        else:
            payload = {}

        if response.status_code >= 400:
            detail = _coerce_error_detail(payload, f"HTTP {response.status_code} error")
            raise TrifleAPIError(detail, status_code=response.status_code, path=path, payload=payload)
        return payload

    def get_metrics(self, params: Dict[str, str]) -> Any:
        return self._request("GET", "/metrics", params=params)

    def post_metrics(self, payload: Dict[str, Any]) -> Any:
        return self._request("POST", "/metrics", json_body=payload)

    def query_metrics(self, payload: Dict[str, Any]) -> Any:
        return self._request("POST", "/metrics/query", json_body=payload)

    def get_source(self) -> Any:
        return self._request("GET", "/source")

    def get_transponders(self) -> Any:
        return self._request("GET", "/transponders")

    def create_transponder(self, payload: Dict[str, Any]) -> Any:
        return self._request("POST", "/transponders", json_body=payload)

    def update_transponder(self, transponder_id: str, payload: Dict[str, Any]) -> Any:
        tid = quote(str(transponder_id), safe="")
        return self._request("PUT", f"/transponders/{tid}", json_body=payload)


def query_data(client: TrifleClient, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Run a metrics query and return its ``data`` object."""
    response = client.query_metrics(payload)
    if not isinstance(response, dict) or "data" not in response:
        raise TrifleAPIError("missing data in response", path="/metrics/query", payload=response)
    data = response["data"]
    if not isinstance(data, dict):
        raise TrifleAPIError("unexpected data shape", path="/metrics/query", payload=response)
    return data
