from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from macfinder.config import ApiConfig, LookupConfig, get_settings
from macfinder.core import DashboardClient

BASE_URL = "https://api.test/api/v1"
API_PREFIX = "/api/v1"

ENV_VARS = (
    "MACFINDER_CONFIG",
    "MERAKI_API_KEY",
    "MERAKI_BASE_URL",
    "MERAKI_RETRIES",
    "MERAKI_MAC_POLL",
    "MERAKI_ORG",
    "MERAKI_NETWORK",
    "LOG_LEVEL",
    "LOGLEVEL",
    "LOG_FILE",
)


@pytest.fixture(autouse=True)
def _isolate_settings_env(monkeypatch: pytest.MonkeyPatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


Route = Callable[[httpx.Request], httpx.Response]


class FakeDashboard:
    """In-memory dashboard API served through ``httpx.MockTransport``.

    Each route holds a queue of responses; the last one repeats. Unknown
    routes answer 404.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Any]] = {}
        self.calls: list[tuple[str, str]] = []
        self.requests: list[httpx.Request] = []
        self.sleeps: list[float] = []

    def add(self, method: str, path: str, *responses: Any) -> FakeDashboard:
        self.routes[(method, path)] = list(responses)
        return self

    def count(self, method: str, path: str) -> int:
        return self.calls.count((method, path))

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix(API_PREFIX)
        key = (request.method, path)
        self.calls.append(key)
        self.requests.append(request)
        queue = self.routes.get(key)
        if not queue:
            return httpx.Response(404, json={"errors": [f"no route {path}"]})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(response):
            return response(request)
        if isinstance(response, httpx.Response):
            return httpx.Response(
                response.status_code, headers=response.headers, content=response.content
            )
        return httpx.Response(200, json=response)

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)

    def client(self, **api: Any) -> DashboardClient:
        config = ApiConfig(key="test-key", base_url=BASE_URL, **api)
        return DashboardClient(
            config, transport=httpx.MockTransport(self.handler), sleep=self.sleep
        )


@pytest.fixture
def dashboard() -> FakeDashboard:
    return FakeDashboard()


@pytest.fixture
def lookup_config() -> LookupConfig:
    return LookupConfig(poll_attempts=3, poll_interval=0, reverse_dns=False)
