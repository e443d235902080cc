"""Shared fixtures: an in-memory stand-in for the Trifle REST client."""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

import pytest


class FakeTrifleClient:
    """Records every backend call and answers with canned payloads."""

    base_url = "http://trifle.test"

    def __init__(self):
        self.calls: List[Tuple[str, Any]] = []
        self.source: Any = {"data": {"default_granularity": "1h", "available_granularities": ["1h", "1d"]}}
        self.metrics: Any = {"data": {"values": []}}
        self.query: Any = {"data": {}}
        self.posted: Any = {"status": "ok"}
        self.transponders: Any = {"data": []}
        self.closed = False

    def _answer(self, name: str, arg: Any, response: Any) -> Any:
        self.calls.append((name, arg))
        if isinstance(response, Exception):
            raise response
        return response

    def calls_to(self, name: str) -> List[Any]:
        return [arg for call, arg in self.calls if call == name]

    def get_source(self) -> Any:
        return self._answer("get_source", None, self.source)

    def get_metrics(self, params: Dict[str, str]) -> Any:
        return self._answer("get_metrics", params, self.metrics)

    def post_metrics(self, payload: Dict[str, Any]) -> Any:
        return self._answer("post_metrics", payload, self.posted)

    def query_metrics(self, payload: Dict[str, Any]) -> Any:
        return self._answer("query_metrics", payload, self.query)

    def get_transponders(self) -> Any:
        return self._answer("get_transponders", None, self.transponders)

    def create_transponder(self, payload: Dict[str, Any]) -> Any:
        return self._answer("create_transponder", payload, {"data": dict(payload, id="tr-1")})

    def update_transponder(self, transponder_id: str, payload: Dict[str, Any]) -> Any:
        return self._answer("update_transponder", (transponder_id, payload), {"data": dict(payload, id=transponder_id)})

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_client() -> FakeTrifleClient:
    return FakeTrifleClient()


@pytest.fixture(autouse=True)
def clean_trifle_env(monkeypatch):
    for name in ("TRIFLE_URL", "TRIFLE_TOKEN", "TRIFLE_TIMEOUT", "TRIFLE_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
