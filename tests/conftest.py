from __future__ import annotations

import json
from typing import Any, Callable

import pytest

from roomrelay.config import RelayRuntimeConfig
from roomrelay.constants import CLOSE_NORMAL
from roomrelay.service import RelayService
from roomrelay.session import ClientSession


class FakeTransport:
    """In-memory stand-in for a WebSocket; records decoded outbound events."""

    def __init__(self, *, fail_sends: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.open = True
        self.close_code: int | None = None
        self.fail_sends = fail_sends

    @property
    def is_open(self) -> bool:
        return self.open

    async def send_text(self, text: str) -> None:
        if self.fail_sends:
            raise ConnectionError("peer went away")
        self.sent.append(json.loads(text))

    async def close(self, code: int = CLOSE_NORMAL) -> None:
        self.open = False
        self.close_code = code

    def types(self) -> list[str]:
        return [e["type"] for e in self.sent]

    def last(self, event_type: str) -> dict[str, Any] | None:
        for e in reversed(self.sent):
            if e["type"] == event_type:
                return e
        return None

    def last_history(self) -> list[dict[str, Any]] | None:
        e = self.last("message")
        return None if e is None else e["data"]["history"]


def event(event_type: str, **fields: Any) -> str:
    return json.dumps({"type": event_type, **fields})


@pytest.fixture
def make_service() -> Callable[..., RelayService]:
    def factory(**overrides: Any) -> RelayService:
        svc = RelayService(RelayRuntimeConfig(**{"state_path": None, **overrides}))
        svc.start()
        return svc

    return factory


@pytest.fixture
def service(make_service) -> RelayService:
    return make_service()


@pytest.fixture
def connect(service) -> Callable[..., tuple[ClientSession, FakeTransport]]:
    def factory(ip: str = "10.0.0.1", **kw: Any) -> tuple[ClientSession, FakeTransport]:
        t = FakeTransport(**kw)
        return service.session_manager.register(t, ip=ip), t

    return factory
