from __future__ import annotations

from typing import Callable

import httpx
import pytest

from studio.services.credentials import ELEVENLABS, KIE, WAVESPEED, StaticCredentialProvider
from studio.services.transport import ProviderTransport

Reply = Callable[[httpx.Request], httpx.Response]


def reply(status: int = 200, json=None, content: bytes | None = None) -> Reply:  # noqa: ANN001
    def _build(request: httpx.Request) -> httpx.Response:
        if json is not None:
            return httpx.Response(status, json=json)
        return httpx.Response(status, content=content or b"")

    return _build


def connection_error(message: str = "connection refused") -> Reply:
    def _raise(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError(message, request=request)

    return _raise


class FakeProvider:
    """Routes requests by (method, path). The last reply for a route repeats."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Reply]] = {}
        self.calls: list[httpx.Request] = []

    def add(self, method: str, path: str, *replies: Reply) -> "FakeProvider":
        self.routes.setdefault((method, path), []).extend(replies)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"message": f"no route for {request.method} {request.url.path}"})
        build = queue.pop(0) if len(queue) > 1 else queue[0]
        return build(request)

    def count(self, method: str, path: str) -> int:
        return sum(1 for call in self.calls if call.method == method and call.url.path == path)

    def transport(self) -> ProviderTransport:
        return ProviderTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(self.handler)))


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def credentials() -> StaticCredentialProvider:
    return StaticCredentialProvider({WAVESPEED: "ws-token", ELEVENLABS: "xi-token", KIE: "kie-token"})
