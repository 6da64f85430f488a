"""
Client for the cost service (a separate process).

Asks the cost service for the total costs of one user:

    GET <COST_SERVICE_URL>/total/<user_id>   ->   {"total": <number>}

The whole call runs under one deadline. When it expires the in-flight
request is cancelled and its connection closed along with the client;
the caller gets `CostServiceTimeout` and nothing is retried.
"""

import asyncio

import httpx
import structlog

from settings import settings

log = structlog.get_logger(__name__)


class CostServiceError(Exception):
    """Base class for every cost-service failure."""


class CostServiceConfigError(CostServiceError):
    pass


class CostServiceTimeout(CostServiceError):
    pass


class CostServiceRemoteError(CostServiceError):
    """The cost service answered with a non-success status."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"Cost service error: HTTP {status_code}. {body}".strip())
        self.status_code = status_code


class CostServiceShapeError(CostServiceError):
    pass


class CostServiceClient:
    """Fetches a user's total cost from the cost service.

    `base_url` and `timeout` default to the values in `settings`, read at
    call time so a missing `COST_SERVICE_URL` fails only this call. Tests
    pass `transport` (an `httpx.MockTransport`) to avoid real sockets.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport

    def _total_url(self, user_id: int) -> str:
        base_url = self._base_url if self._base_url is not None else settings.cost_service_url
        if not base_url or not base_url.strip():
            raise CostServiceConfigError("COST_SERVICE_URL is not configured")
        return f"{base_url.strip().rstrip('/')}/total/{user_id}"

    async def get_total(self, user_id: int) -> float:
        """Return the total cost for `user_id`.

        Raises a `CostServiceError` subclass on misconfiguration, timeout,
        non-2xx status or a body without a numeric `total`.
        """

        url = self._total_url(user_id)
        timeout = self._timeout if self._timeout is not None else settings.cost_service_timeout

        try:
            response = await asyncio.wait_for(self._fetch(url), timeout=timeout)
        except asyncio.TimeoutError as e:
            log.warning("cost_service_timeout", url=url, timeout_s=timeout)
            raise CostServiceTimeout(
                f"Cost service did not respond within {timeout:g}s"
            ) from e

        if not response.is_success:
            try:
                body = response.text
            except (UnicodeDecodeError, LookupError):
                body = ""
            raise CostServiceRemoteError(response.status_code, body)

        try:
            data = response.json()
        except ValueError:
            data = None

        total = data.get("total") if isinstance(data, dict) else None
        # bool is an int subclass but not a total
        if isinstance(total, bool) or not isinstance(total, (int, float)):
            raise CostServiceShapeError(
                "Cost service returned invalid response (expected { total: number })"
            )
        return total

    async def _fetch(self, url: str) -> httpx.Response:
        # Leaving the `async with` (including on cancellation) closes the
        # client and releases its pooled connection.
        # The deadline in `get_total` is the only timeout.
        async with httpx.AsyncClient(transport=self._transport, timeout=None) as client:
            try:
                response = await client.get(url, headers={"Accept": "application/json"})
            except httpx.HTTPError as e:
                raise CostServiceError(f"Cost service request failed: {e}") from e
        return response


def get_cost_client() -> CostServiceClient:
    """FastAPI dependency; overridden in tests."""

    return CostServiceClient()
