"""HTTP surface for checkout: session creation, gateway confirmations, status.

Run with `uvicorn flowpay.services.checkout.main:create_app --factory`.
"""

from time import perf_counter
from urllib.parse import parse_qsl
from uuid import uuid4

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse

from flowpay.common.config import CommonSettings
from flowpay.common.db import make_engine, make_session_factory
from flowpay.common.errors import GatewayError, SignatureError, StoreError, ValidationError
from flowpay.common.logging import configure_logging, logger, trace_id_ctx
from flowpay.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from flowpay.common.startup import log_startup_config
from flowpay.common.tracing import instrument_app, setup_tracing
from flowpay.services.checkout.gateway import FlowGatewayClient
from flowpay.services.checkout.pages import render_status_page
from flowpay.services.checkout.schemas import (
    CreatePaymentRequest,
    CreatePaymentResponse,
    FailureResponse,
    PaymentStatusResponse,
)
from flowpay.services.checkout.service import CheckoutService
from flowpay.services.checkout.store import InMemoryOrderStore, OrderStore, SqlOrderStore

ACK_BODY = "OK"
INVALID_SIGNATURE_BODY = "Invalid Signature"


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=FailureResponse(message=message).model_dump())


def build_store(settings: CommonSettings) -> OrderStore:
    """Durable SQL store when a database is configured, in-memory otherwise."""

    if settings.database_url:
        return SqlOrderStore(make_session_factory(make_engine(settings.database_url)))
    logger.warning("DATABASE_URL unset; orders are kept in process memory only")
    return InMemoryOrderStore()


def create_app(
    settings: CommonSettings | None = None,
    store: OrderStore | None = None,
    gateway_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the checkout app around one immutable settings object."""

    settings = settings or CommonSettings()
    configure_logging(settings.service_name, settings.log_level)
    setup_tracing(settings.service_name, settings.otel_exporter_otlp_endpoint)
    log_startup_config(
        settings.service_name,
        ["SERVICE_NAME", "FLOW_BASE_URL", "FLOW_API_KEY", "FLOW_SECRET_KEY", "APP_BASE_URL", "DATABASE_URL"],
    )
    service = CheckoutService(
        settings,
        FlowGatewayClient(settings, transport=gateway_transport),
        store if store is not None else build_store(settings),
    )

    app = FastAPI(title="Flowpay Checkout")
    app.state.service = service
    instrument_app(app)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Record request count and latency for every HTTP call."""

        start = perf_counter()
        route = request.url.path
        method = request.method
        status_code = 500
        trace_token = trace_id_ctx.set(request.headers.get("x-correlation-id") or str(uuid4()))
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            return response
        finally:
            trace_id_ctx.reset(trace_token)
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=settings.service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=settings.service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(_: Request, exc: RequestValidationError):
        logger.info("rejected malformed request errors=%s", exc.errors())
        return _failure(400, "Invalid request body.")

    @app.post("/api/createPayment")
    async def create_payment(req: CreatePaymentRequest):
        """Open a gateway checkout session and return the buyer redirect URL."""

        try:
            result = await service.create_session(req.amount, req.email, req.optional)
        except ValidationError as exc:
            return _failure(400, str(exc))
        except GatewayError as exc:
            logger.error("payment session failed error=%s response=%s", exc, exc.response)
            return _failure(500, "Could not start the payment with the gateway.")
        except StoreError:
            return _failure(500, "Could not record the payment order.")
        except Exception:
            logger.exception("payment session failed unexpectedly")
            return _failure(500, "Internal error while starting the payment.")
        return CreatePaymentResponse(
            flowUrl=result.redirect_url,
            token=result.token,
            orderId=result.order_id,
        )

    @app.post("/api/paymentConfirmation")
    async def payment_confirmation(request: Request):
        """Gateway-invoked notification; answered with a plain-text ack."""

        body = await request.body()
        params = dict(parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True))
        try:
            service.handle_callback(params)
        except SignatureError:
            return PlainTextResponse(INVALID_SIGNATURE_BODY, status_code=403)
        except Exception:
            logger.exception("confirmation processing failed")
            return PlainTextResponse("Error processing confirmation", status_code=500)
        return PlainTextResponse(ACK_BODY)

    @app.get("/api/paymentStatus/{order_id}")
    async def payment_status(order_id: str, token: str | None = None):
        """Status poll used by the return page."""

        try:
            result = await service.get_status(order_id, token)
        except ValidationError as exc:
            return _failure(400, str(exc))
        except GatewayError as exc:
            logger.error("status query failed order_id=%s error=%s response=%s", order_id, exc, exc.response)
            return _failure(500, "Could not query the payment status.")
        except Exception:
            logger.exception("status query failed unexpectedly order_id=%s", order_id)
            return _failure(500, "Internal error while querying the payment status.")
        return PaymentStatusResponse(
            status=result.status,
            orderStatus=result.order_status,
            flowResponse=result.gateway_response,
        )

    @app.api_route("/paymentStatus/{order_id}", methods=["GET", "POST"], response_class=HTMLResponse)
    async def payment_status_page(order_id: str):
        """Return URL the gateway sends the buyer back to."""

        return render_status_page(order_id)

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        """Container health probe endpoint."""

        return {"ok": True}

    return app


def run() -> None:
    """Console entrypoint: serve the app with uvicorn."""

    uvicorn.run("flowpay.services.checkout.main:create_app", factory=True, host="0.0.0.0", port=8000)
