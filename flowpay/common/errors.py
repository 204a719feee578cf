"""Error kinds surfaced by the checkout flow.

Each kind maps to one HTTP outcome in `flowpay.services.checkout.main`.
"""

from typing import Any


class CheckoutError(Exception):
    """Base class for expected checkout failures."""


class ValidationError(CheckoutError):
    """Bad or missing input; the message is safe to show to the buyer."""


class GatewayError(CheckoutError):
    """The payment gateway answered with an error or an unexpected shape."""

    def __init__(self, message: str, response: Any = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.response = response
        self.status_code = status_code


class TransportError(GatewayError):
    """The gateway could not be reached at all."""


class StoreError(CheckoutError):
    """The order store failed to read or write an order."""


class SignatureError(CheckoutError):
    """An inbound notification failed signature verification."""


class OrderNotFoundError(CheckoutError):
    """No order is stored under the given id."""

    def __init__(self, order_id: str) -> None:
        super().__init__(f"order not found: {order_id}")
        self.order_id = order_id
