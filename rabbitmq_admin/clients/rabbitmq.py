"""RabbitMQ Management HTTP API client.

One :class:`RabbitMQClient` wraps one long-lived ``httpx.AsyncClient`` bound to
a single cluster (base URL + basic-auth credentials).  Instances are owned by
:class:`rabbitmq_admin.clients.pool.RabbitMQClientPool`; callers never build
them per request.

RabbitMQ Management Plugin API reference:
  https://rawcdn.githack.com/rabbitmq/rabbitmq-server/main/deps/rabbitmq_management/priv/www/api/index.html

Failure taxonomy
────────────────
  • HTTP 401                      → UpstreamUnauthorizedError
  • HTTP 404                      → UpstreamNotFoundError
  • any other non-2xx             → UpstreamHttpError (carries ``status``)
  • request timed out             → UpstreamTimeoutError
  • connection refused / DNS      → UpstreamConnectError
  • anything else from transport  → UpstreamUnknownError
  • 2xx with a non-JSON body      → UpstreamUnknownError
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from rabbitmq_admin.errors import AdminError

logger = logging.getLogger(__name__)

USER_AGENT = "RabbitMQ-Admin-Client/1.0"


# ── Error taxonomy ────────────────────────────────────────────────────────────


class RabbitMQError(AdminError):
    """Raised when a call to a cluster's Management API fails."""

    status_code = 502
    title = "RabbitMQ API Error"


class UpstreamUnauthorizedError(RabbitMQError):
    title = "RabbitMQ Authentication Failed"


class UpstreamNotFoundError(RabbitMQError):
    status_code = 404
    title = "RabbitMQ Resource Not Found"


class UpstreamTimeoutError(RabbitMQError):
    status_code = 504
    title = "RabbitMQ Timeout"


class UpstreamConnectError(RabbitMQError):
    title = "RabbitMQ Connection Failed"


class UpstreamUnknownError(RabbitMQError):
    title = "RabbitMQ Unexpected Error"


class UpstreamHttpError(RabbitMQError):
    """Non-2xx answer other than 401/404.

    Client-side problems the caller can fix (400, 409, 422) keep their status;
    everything else is reported as a bad gateway.
    """

    _PASSTHROUGH = (400, 409, 422)

    def __init__(self, message: str, status: int, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details=details)
        self.status = status
        self.status_code = status if status in self._PASSTHROUGH else 502


_STATUS_MESSAGES = {
    403: "RabbitMQ API access forbidden - insufficient cluster permissions",
    500: "RabbitMQ API internal server error",
    503: "RabbitMQ API service unavailable",
}


# ── Client ────────────────────────────────────────────────────────────────────


class RabbitMQClient:
    """Async client for one cluster's Management HTTP API."""

    def __init__(
        self,
        api_url: str,
        username: str,
        password: str,
        *,
        timeout: float = 30.0,
        verify_tls: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.api_url,
            auth=(username, password),
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
            timeout=timeout,
            verify=verify_tls,
            transport=transport,
        )

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> RabbitMQClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ── Verbs ────────────────────────────────────────────────────────────────

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)

    async def put(self, path: str, json: Any = None) -> Any:
        return await self.request("PUT", path, json=json)

    async def delete(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("DELETE", path, params=params)

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send one request; return parsed JSON, or None for an empty body.

        *path* is relative to the cluster's API URL, e.g. ``api/queues/%2F``.
        """
        action = f"{method} {path}"
        try:
            resp = await self._client.request(method, path.lstrip("/"), json=json, params=params)
        except httpx.TimeoutException as exc:
            logger.warning("RabbitMQ %s at %s timed out: %s", action, self.api_url, exc)
            raise UpstreamTimeoutError("Request to RabbitMQ cluster timed out") from exc
        except httpx.ConnectError as exc:
            logger.warning("RabbitMQ %s at %s: connection failed: %s", action, self.api_url, exc)
            raise UpstreamConnectError("Unable to connect to RabbitMQ cluster") from exc
        except httpx.HTTPError as exc:
            logger.warning("RabbitMQ %s at %s failed: %s", action, self.api_url, exc)
            raise UpstreamUnknownError("Unexpected error communicating with RabbitMQ cluster") from exc

        self._raise_for_status(resp, action)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            logger.warning(
                "RabbitMQ %s at %s answered HTTP %s with a non-JSON body (%s)",
                action,
                self.api_url,
                resp.status_code,
                resp.headers.get("content-type", "unknown"),
            )
            raise UpstreamUnknownError(
                "Unexpected error communicating with RabbitMQ cluster: response is not JSON"
            ) from exc

    async def check_overview(self) -> dict[str, Any]:
        """GET ``api/overview``; the cheapest call that proves URL + credentials."""
        return await self.get("api/overview")

    # ── Internal helpers ─────────────────────────────────────────────────────

    @staticmethod
    def _raise_for_status(resp: httpx.Response, action: str) -> None:
        if resp.is_success:
            return
        body = resp.text[:200]
        logger.warning("RabbitMQ API: %s failed with HTTP %s: %s", action, resp.status_code, body)
        details = {"status": resp.status_code, "body": body}
        if resp.status_code == 401:
            raise UpstreamUnauthorizedError(
                "RabbitMQ API authentication failed - invalid cluster credentials", details=details
            )
        if resp.status_code == 404:
            raise UpstreamNotFoundError("RabbitMQ API endpoint not found", details=details)
        message = _STATUS_MESSAGES.get(
            resp.status_code, f"RabbitMQ API returned HTTP {resp.status_code}"
        )
        raise UpstreamHttpError(message, resp.status_code, details=details)


def enc(value: str) -> str:
    """Percent-encode a vHost or resource name for use in URL path segments.

    RabbitMQ Management API requires ``%2F`` for the default ``/`` vHost.
    """
    return quote(value, safe="")
