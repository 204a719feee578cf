"""Checkout flow: session creation, gateway confirmations and status queries.

The service owns no state of its own. Orders live in the injected
`OrderStore`, and all credentials come from the settings it is built with.
"""

import json
import secrets
import time
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from flowpay.common.config import CommonSettings
from flowpay.common.errors import GatewayError, SignatureError, StoreError, ValidationError
from flowpay.common.logging import logger, order_id_ctx
from flowpay.common.metrics import (
    order_transitions_total,
    payment_callbacks_total,
    payment_sessions_total,
    signature_failures_total,
)
from flowpay.common.signing import SIGNATURE_FIELD, format_value, verify
from flowpay.common.state_machine import (
    PENDING,
    STATUS_TO_GATEWAY_CODE,
    TERMINAL_STATUSES,
    InvalidTransitionError,
    status_from_gateway,
)
from flowpay.services.checkout.gateway import FlowGatewayClient
from flowpay.services.checkout.schemas import CallbackResult, PaymentOrder, SessionResult, StatusResult
from flowpay.services.checkout.store import OrderStore

CONFIRMATION_PATH = "/api/paymentConfirmation"
RETURN_PATH = "/paymentStatus"


def new_order_id() -> str:
    """Millisecond timestamp plus a random suffix, unique per initiation."""

    return f"ORDER-{time.time_ns() // 1_000_000}-{secrets.token_hex(4)}"


class CheckoutService:
    """Signs outbound gateway calls and verifies inbound notifications."""

    def __init__(self, settings: CommonSettings, gateway: FlowGatewayClient, store: OrderStore) -> None:
        self.settings = settings
        self.gateway = gateway
        self.store = store
        self.service_name = settings.service_name

    def _validate_session_input(self, amount: Any, email: Any) -> tuple[int | float | Decimal, str]:
        if isinstance(amount, bool) or not isinstance(amount, (int, float, Decimal)):
            raise ValidationError("amount must be a positive number")
        try:
            format_value(amount)
        except ValueError as exc:
            raise ValidationError("amount must be a positive number") from exc
        if amount <= 0:
            raise ValidationError("amount must be a positive number")
        if not isinstance(email, str) or not email.strip():
            raise ValidationError("email is required")
        return amount, email.strip()

    async def create_session(
        self, amount: Any, email: Any, optional: Mapping[str, Any] | None = None
    ) -> SessionResult:
        """Open a hosted checkout session and store the order as pending."""

        try:
            amount, email = self._validate_session_input(amount, email)
        except ValidationError:
            payment_sessions_total.labels(service=self.service_name, outcome="invalid").inc()
            raise

        order_id = new_order_id()
        token = order_id_ctx.set(order_id)
        try:
            params: dict[str, Any] = {
                "commerceOrder": order_id,
                "subject": self.settings.payment_subject,
                "amount": amount,
                "email": email,
                "urlConfirmation": f"{self.settings.app_base_url}{CONFIRMATION_PATH}",
                "urlReturn": f"{self.settings.app_base_url}{RETURN_PATH}/{order_id}",
            }
            if optional:
                params["optional"] = json.dumps(dict(optional), separators=(",", ":"))
            logger.info("creating payment session order_id=%s amount=%s", order_id, format_value(amount))

            try:
                response = await self.gateway.create_payment(params)
            except GatewayError:
                payment_sessions_total.labels(service=self.service_name, outcome="gateway_error").inc()
                raise

            session_url = response.get("url")
            session_token = response.get("token")
            if not session_url or not session_token:
                payment_sessions_total.labels(service=self.service_name, outcome="gateway_error").inc()
                logger.error("gateway session response missing url/token order_id=%s body=%s", order_id, response)
                raise GatewayError("gateway response missing url or token", response=response)

            gateway_order = response.get("flowOrder")
            try:
                self.store.create(
                    PaymentOrder(
                        order_id=order_id,
                        amount=Decimal(format_value(amount)),
                        payer_email=email,
                        status=PENDING,
                        gateway_token=str(session_token),
                        gateway_order=str(gateway_order) if gateway_order is not None else None,
                    )
                )
            except Exception as exc:
                payment_sessions_total.labels(service=self.service_name, outcome="store_error").inc()
                logger.exception("storing new order failed order_id=%s", order_id)
                raise StoreError(f"could not store order {order_id}") from exc
            payment_sessions_total.labels(service=self.service_name, outcome="created").inc()
            logger.info("payment session created order_id=%s", order_id)
            return SessionResult(
                redirect_url=f"{session_url}?token={session_token}",
                order_id=order_id,
                token=str(session_token),
            )
        finally:
            order_id_ctx.reset(token)

    def _apply_gateway_status(self, order_id: str, code: Any, reason: str) -> tuple[str | None, bool]:
        """Write a gateway-reported status through the store.

        Returns the resulting order status (None for unknown orders) and
        whether the write changed anything.
        """

        target = status_from_gateway(code)
        if target is None:
            logger.warning("unknown gateway status order_id=%s status=%s; treating as pending", order_id, code)
            target = PENDING
        current = self.store.get(order_id)
        if current is None:
            logger.warning("gateway status for unknown order order_id=%s status=%s", order_id, code)
            return None, False
        try:
            order, changed = self.store.update_status(order_id, target, reason)
        except InvalidTransitionError as exc:
            logger.warning("ignored conflicting gateway status order_id=%s error=%s", order_id, exc)
            return current.status, False
        if changed:
            order_transitions_total.labels(
                service=self.service_name,
                from_state=current.status,
                to_state=order.status,
            ).inc()
            logger.info("order status changed order_id=%s from=%s to=%s", order_id, current.status, order.status)
        return order.status, changed

    def handle_callback(self, params: Mapping[str, str]) -> CallbackResult:
        """Verify one gateway confirmation and apply its status.

        Raises `SignatureError` on a bad signature, before any state is read or
        written. Duplicate deliveries of the same notification are no-ops.
        """

        received = dict(params)
        claimed = received.pop(SIGNATURE_FIELD, None)
        if not verify(received, claimed, self.settings.secret_bytes()):
            signature_failures_total.labels(service=self.service_name).inc()
            payment_callbacks_total.labels(service=self.service_name, outcome="invalid_signature").inc()
            logger.warning(
                "confirmation signature mismatch commerce_order=%s keys=%s",
                received.get("commerceOrder"),
                sorted(received),
            )
            raise SignatureError("Invalid Signature")

        order_id = received.get("commerceOrder")
        code = received.get("status")
        if not order_id:
            payment_callbacks_total.labels(service=self.service_name, outcome="no_order").inc()
            logger.warning("verified confirmation without commerceOrder keys=%s", sorted(received))
            return CallbackResult(order_id=None, gateway_status=code)

        token = order_id_ctx.set(order_id)
        try:
            logger.info("confirmation received order_id=%s status=%s", order_id, code)
            order_status, changed = self._apply_gateway_status(order_id, code, reason=f"confirmation_status_{code}")
            outcome = "unknown_order" if order_status is None else ("applied" if changed else "unchanged")
            payment_callbacks_total.labels(service=self.service_name, outcome=outcome).inc()
            return CallbackResult(
                order_id=order_id,
                gateway_status=code,
                order_status=order_status,
                changed=changed,
            )
        finally:
            order_id_ctx.reset(token)

    async def get_status(self, order_id: str, token: str | None = None) -> StatusResult:
        """Answer the status poll for one order.

        With the `store_first` policy a terminal stored status is returned
        without calling the gateway. Otherwise the gateway is asked, and its
        answer is written back through the store, which never regresses a
        terminal status.
        """

        order = self.store.get(order_id)
        if (
            order is not None
            and order.status in TERMINAL_STATUSES
            and self.settings.status_query_policy == "store_first"
        ):
            return StatusResult(
                order_id=order_id,
                status=int(STATUS_TO_GATEWAY_CODE[order.status]),
                order_status=order.status,
                from_store=True,
            )

        # A known order is always queried with its own session token.
        if order is not None:
            token = order.gateway_token
        if not token:
            raise ValidationError("token is required for unknown orders")

        ctx_token = order_id_ctx.set(order_id)
        try:
            logger.info("querying gateway status order_id=%s", order_id)
            response = await self.gateway.get_status(token)
            code = response.get("status")
            order_status = order.status if order else None
            reported_order = response.get("commerceOrder")
            if reported_order is not None and str(reported_order) != order_id:
                logger.warning(
                    "gateway status belongs to another order order_id=%s reported=%s",
                    order_id,
                    reported_order,
                )
                raise GatewayError("gateway status belongs to another order", response=response)
            if order is not None and code is not None:
                order_status, _ = self._apply_gateway_status(order_id, code, reason=f"status_query_{code}")
            return StatusResult(
                order_id=order_id,
                status=code,
                order_status=order_status,
                gateway_response=response,
            )
        finally:
            order_id_ctx.reset(ctx_token)
