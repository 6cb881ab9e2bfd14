"""Async client for the dashboard API.

Every request is authenticated with the API key header. Throttled responses
(429) are retried, honouring ``Retry-After`` when present and otherwise
backing off linearly (1s, 2s, 3s, ...). Array endpoints are followed through
their ``Link: <...>; rel="next"`` header until exhausted.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    before_sleep_log,
    retry_if_result,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from macfinder.config import ApiConfig
from macfinder.errors import RetryExhaustedError, UpstreamError
from macfinder.models import (
    ClientRecord,
    Device,
    JobKind,
    JobStatus,
    Network,
    Organization,
    SwitchPort,
)

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-Cisco-Meraki-API-Key"

ModelT = TypeVar("ModelT", bound=BaseModel)
Sleep = Callable[[float], Awaitable[None]]


def _parse_retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After", "").strip()
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class _RetryAfterOrLinear(wait_base):
    """Server-supplied delay when given, else one second per attempt so far."""

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is not None and not outcome.failed:
            delay = _parse_retry_after(outcome.result())
            if delay is not None:
                return delay
        return float(retry_state.attempt_number)


def _is_throttled(response: httpx.Response) -> bool:
    return response.status_code == httpx.codes.TOO_MANY_REQUESTS


def _parse_models(model: type[ModelT], raws: list[Any]) -> list[ModelT]:
    parsed: list[ModelT] = []
    for raw in raws:
        try:
            parsed.append(model.model_validate(raw))
        except ValidationError:
            logger.debug("Dropping malformed %s record: %r", model.__name__, raw)
    return parsed


class DashboardClient:
    def __init__(
        self,
        config: ApiConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config
        self._sleep = sleep
        self._http = httpx.AsyncClient(
            base_url=config.base_url.rstrip("/"),
            headers={API_KEY_HEADER: config.key, "Accept": "application/json"},
            timeout=config.timeout,
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> DashboardClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # -- transport ---------------------------------------------------------

    async def _send(
        self, method: str, url: str, params: dict[str, Any] | None
    ) -> httpx.Response:
        try:
            return await self._http.request(method, url, params=params)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"{method} {url} failed: {exc}") from exc

    async def request(
        self, method: str, url: str, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        """Issue one request, retrying while the server throttles us."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._config.max_retries),
            wait=_RetryAfterOrLinear(),
            retry=retry_if_result(_is_throttled),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
        )
        try:
            response = await retrying(self._send, method, url, params)
        except RetryError as exc:
            last = exc.last_attempt.result()
            raise RetryExhaustedError(
                f"{method} {url} still throttled after {self._config.max_retries} attempts",
                status=last.status_code,
                body=last.text.strip(),
            ) from exc

        if response.status_code >= 300:
            raise UpstreamError(
                f"dashboard API error on {method} {url}",
                status=response.status_code,
                body=response.text.strip(),
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(
                f"malformed JSON from {response.request.url}",
                status=response.status_code,
                body=response.text[:200],
            ) from exc

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self._json(await self.request("GET", path, params))

    async def post_json(self, path: str) -> Any:
        return self._json(await self.request("POST", path))

    async def fetch_all_pages(
        self, path: str, params: dict[str, Any] | None = None
    ) -> list[Any]:
        """Collect every page of an array endpoint, in arrival order."""
        records: list[Any] = []
        url: str = path
        query = params
        pages = 0
        while True:
            response = await self.request("GET", url, query)
            page = self._json(response)
            if not isinstance(page, list):
                raise UpstreamError(
                    f"expected a list from {response.request.url}",
                    status=response.status_code,
                    body=response.text[:200],
                )
            records.extend(page)
            pages += 1
            next_url = response.links.get("next", {}).get("url")
            if not next_url:
                break
            # the continuation link already carries the query string
            url, query = next_url, None
        logger.debug("GET %s: %d records over %d page(s)", path, len(records), pages)
        return records

    # -- directory ---------------------------------------------------------

    def _paged(self, **extra: Any) -> dict[str, Any]:
        return {"perPage": self._config.per_page, **extra}

    async def get_organizations(self) -> list[Organization]:
        raws = await self.fetch_all_pages("/organizations", self._paged())
        return _parse_models(Organization, raws)

    async def get_networks(self, org_id: str) -> list[Network]:
        raws = await self.fetch_all_pages(
            f"/organizations/{org_id}/networks", self._paged()
        )
        return _parse_models(Network, raws)

    async def get_devices(self, network_id: str) -> list[Device]:
        raws = await self.fetch_all_pages(f"/networks/{network_id}/devices", self._paged())
        return _parse_models(Device, raws)

    # -- client history ----------------------------------------------------

    async def get_network_clients(self, network_id: str) -> list[ClientRecord]:
        raws = await self.fetch_all_pages(
            f"/networks/{network_id}/clients",
            self._paged(timespan=self._config.client_timespan),
        )
        return _parse_models(ClientRecord, raws)

    async def get_device_clients(self, serial: str) -> list[ClientRecord]:
        raws = await self.fetch_all_pages(
            f"/devices/{serial}/clients",
            self._paged(timespan=self._config.client_timespan),
        )
        return _parse_models(ClientRecord, raws)

    async def get_switch_port(self, serial: str, port_id: str) -> SwitchPort:
        data = await self.get_json(f"/devices/{serial}/switch/ports/{port_id}")
        try:
            return SwitchPort.model_validate(data)
        except ValidationError as exc:
            raise UpstreamError(f"malformed switch port {serial}/{port_id}") from exc

    # -- live tools --------------------------------------------------------

    async def create_job(self, serial: str, kind: JobKind) -> str:
        data = await self.post_json(f"/devices/{serial}/liveTools/{kind.value}")
        job_id = data.get(kind.id_field) if isinstance(data, dict) else None
        if not isinstance(job_id, str) or not job_id:
            raise UpstreamError(f"no {kind.id_field} in response for {serial}")
        return job_id

    async def get_job(
        self, serial: str, kind: JobKind, job_id: str
    ) -> tuple[JobStatus, list[dict[str, Any]]]:
        data = await self.get_json(f"/devices/{serial}/liveTools/{kind.value}/{job_id}")
        if not isinstance(data, dict):
            raise UpstreamError(f"malformed {kind.value} poll response for {serial}")
        status = JobStatus.parse(data.get("status"))
        if status is not JobStatus.COMPLETE:
            return status, []
        entries = data.get("entries")
        if not isinstance(entries, list):
            return status, []
        return status, [entry for entry in entries if isinstance(entry, dict)]
