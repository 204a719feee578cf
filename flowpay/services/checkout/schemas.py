"""Request/response schemas and the order domain model."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from flowpay.common.state_machine import PENDING


class PaymentOrder(BaseModel):
    """Merchant-side record of one checkout attempt."""

    model_config = ConfigDict(frozen=True)

    order_id: str
    amount: Decimal
    payer_email: str
    status: str = PENDING
    gateway_token: str
    gateway_order: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CreatePaymentRequest(BaseModel):
    """Payload accepted by `POST /api/createPayment`.

    Types are loose on purpose so that the service can answer bad input with
    its own message instead of a schema error.
    """

    amount: int | float | None = None
    email: str | None = None
    optional: dict[str, Any] | None = None


class CreatePaymentResponse(BaseModel):
    success: bool = True
    flowUrl: str
    token: str
    orderId: str


class PaymentStatusResponse(BaseModel):
    success: bool = True
    status: Any = None
    orderStatus: str | None = None
    flowResponse: dict[str, Any] | None = None


class FailureResponse(BaseModel):
    success: bool = False
    message: str


class SessionResult(BaseModel):
    """Outcome of a successful session creation."""

    redirect_url: str
    order_id: str
    token: str


class StatusResult(BaseModel):
    """Outcome of a status query."""

    order_id: str
    status: Any = None
    order_status: str | None = None
    gateway_response: dict[str, Any] | None = None
    from_store: bool = False


class CallbackResult(BaseModel):
    """Outcome of one verified gateway notification."""

    order_id: str | None
    gateway_status: str | None
    order_status: str | None = None
    changed: bool = False
