"""Outbound client for the hosted payment gateway.

Every call is signed with the shared secret and made once: there is no retry,
and a failure surfaces to the caller straight away.
"""

from time import perf_counter
from typing import Any

import httpx

from flowpay.common.config import CommonSettings
from flowpay.common.errors import GatewayError, TransportError
from flowpay.common.logging import logger
from flowpay.common.metrics import gateway_latency_seconds, gateway_requests_total
from flowpay.common.signing import Scalar, signed_form


class FlowGatewayClient:
    """Thin signed-request wrapper over the gateway REST API."""

    def __init__(self, settings: CommonSettings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.settings.flow_base_url,
            timeout=self.settings.gateway_timeout_seconds,
            transport=self.transport,
        )

    def _sign(self, params: dict[str, Scalar]) -> dict[str, str]:
        return signed_form({"apiKey": self.settings.flow_api_key, **params}, self.settings.secret_bytes())

    async def _call(self, operation: str, method: str, path: str, form: dict[str, str]) -> dict[str, Any]:
        service = self.settings.service_name
        start = perf_counter()
        try:
            async with self._client() as client:
                if method == "GET":
                    resp = await client.get(path, params=form)
                else:
                    resp = await client.post(path, data=form)
        except httpx.HTTPError as exc:
            gateway_requests_total.labels(service=service, operation=operation, outcome="transport_error").inc()
            logger.error("gateway transport failure operation=%s error=%s", operation, exc)
            raise TransportError(f"gateway unreachable: {exc}") from exc
        finally:
            gateway_latency_seconds.labels(service=service, operation=operation).observe(
                max(0.0, perf_counter() - start)
            )

        try:
            body = resp.json()
        except ValueError:
            body = resp.text
        if resp.status_code >= 400 or not isinstance(body, dict):
            gateway_requests_total.labels(service=service, operation=operation, outcome="error").inc()
            logger.error(
                "gateway error operation=%s status_code=%s body=%s",
                operation,
                resp.status_code,
                body,
            )
            raise GatewayError(
                f"gateway {operation} failed with status {resp.status_code}",
                response=body,
                status_code=resp.status_code,
            )
        gateway_requests_total.labels(service=service, operation=operation, outcome="ok").inc()
        return body

    async def create_payment(self, params: dict[str, Scalar]) -> dict[str, Any]:
        """`POST /payment/create` with a form-encoded signed body."""

        return await self._call("create_payment", "POST", "/payment/create", self._sign(params))

    async def get_status(self, token: str) -> dict[str, Any]:
        """`GET /payment/getStatus` for one session token."""

        return await self._call("get_status", "GET", "/payment/getStatus", self._sign({"token": token}))
