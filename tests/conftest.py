"""Shared fixtures: test settings, a fake gateway, and order stores."""

from decimal import Decimal
from urllib.parse import parse_qsl

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from flowpay.common.config import CommonSettings
from flowpay.common.db import Base, make_session_factory
from flowpay.services.checkout.gateway import FlowGatewayClient
from flowpay.services.checkout.schemas import PaymentOrder
from flowpay.services.checkout.service import CheckoutService
from flowpay.services.checkout.store import InMemoryOrderStore, SqlOrderStore

SECRET = "test-secret-key"
API_KEY = "test-api-key"


def make_settings(**overrides) -> CommonSettings:
    values = {
        "flow_api_key": API_KEY,
        "flow_secret_key": SECRET,
        "flow_base_url": "https://gateway.test/api/",
        "app_base_url": "https://shop.test/",
        "database_url": None,
        "otel_exporter_otlp_endpoint": None,
    }
    values.update(overrides)
    return CommonSettings(_env_file=None, **values)


class FakeGateway:
    """Records outbound requests and answers with canned responses."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.create_response: tuple[int, object] = (
            200,
            {"url": "https://pay.test/p", "token": "tok123", "flowOrder": 9001},
        )
        self.status_response: tuple[int, object] = (200, {"status": 1})
        self.fail_with: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        if request.url.path.endswith("/payment/create"):
            status_code, body = self.create_response
        elif request.url.path.endswith("/payment/getStatus"):
            status_code, body = self.status_response
        else:
            return httpx.Response(404, json={"message": "not found"})
        if isinstance(body, str):
            return httpx.Response(status_code, text=body)
        return httpx.Response(status_code, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def sent_params(self, index: int = -1) -> dict[str, str]:
        request = self.requests[index]
        if request.method == "GET":
            return dict(request.url.params)
        return dict(parse_qsl(request.content.decode("utf-8"), keep_blank_values=True))


def pending_order(order_id: str = "ORDER-1", token: str = "tok-1") -> PaymentOrder:
    return PaymentOrder(
        order_id=order_id,
        amount=Decimal("1000"),
        payer_email="buyer@example.com",
        gateway_token=token,
    )


@pytest.fixture
def settings() -> CommonSettings:
    return make_settings()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def service(settings, gateway, store) -> CheckoutService:
    return CheckoutService(settings, FlowGatewayClient(settings, transport=gateway.transport), store)


@pytest.fixture
def sql_store():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield SqlOrderStore(make_session_factory(engine))
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def any_store(request):
    if request.param == "memory":
        return InMemoryOrderStore()
    return request.getfixturevalue("sql_store")
