"""Order persistence capability and its adapters.

Every status write goes through `resolve_transition`, so no adapter can move an
approved or rejected order back to pending, and repeating a write is a no-op.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from sqlalchemy import select, update

from flowpay.common.errors import OrderNotFoundError
from flowpay.common.logging import logger
from flowpay.common.state_machine import resolve_transition
from flowpay.services.checkout.models import PaymentOrderRow, PaymentOrderTimeline
from flowpay.services.checkout.schemas import PaymentOrder


class OrderStore(ABC):
    """Atomic per-order read/create/update operations."""

    @abstractmethod
    def get(self, order_id: str) -> PaymentOrder | None:
        """Return the stored order or None."""

    @abstractmethod
    def create(self, order: PaymentOrder) -> PaymentOrder:
        """Persist a new order; order ids are never reused."""

    @abstractmethod
    def update_status(self, order_id: str, status: str, reason: str) -> tuple[PaymentOrder, bool]:
        """Apply one status write and report whether anything changed.

        Raises `OrderNotFoundError` for unknown ids and `InvalidTransitionError`
        for forbidden transitions.
        """


class InMemoryOrderStore(OrderStore):
    """Process-local store for tests and single-process runs."""

    def __init__(self) -> None:
        self._orders: dict[str, PaymentOrder] = {}
        self._history: dict[str, list[tuple[str | None, str, str]]] = {}
        self._lock = threading.Lock()

    def get(self, order_id: str) -> PaymentOrder | None:
        with self._lock:
            return self._orders.get(order_id)

    def create(self, order: PaymentOrder) -> PaymentOrder:
        with self._lock:
            if order.order_id in self._orders:
                raise ValueError(f"duplicate order id: {order.order_id}")
            self._orders[order.order_id] = order
            self._history[order.order_id] = [(None, order.status, "order_created")]
            return order

    def update_status(self, order_id: str, status: str, reason: str) -> tuple[PaymentOrder, bool]:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            target = resolve_transition(order.status, status)
            if target is None:
                return order, False
            updated = order.model_copy(update={"status": target})
            self._orders[order_id] = updated
            self._history[order_id].append((order.status, target, reason))
            return updated, True

    def history(self, order_id: str) -> list[tuple[str | None, str, str]]:
        """Transitions recorded for one order, oldest first."""

        with self._lock:
            return list(self._history.get(order_id, []))


def _to_domain(row: PaymentOrderRow) -> PaymentOrder:
    return PaymentOrder(
        order_id=row.order_id,
        amount=row.amount,
        payer_email=row.payer_email,
        status=row.status,
        gateway_token=row.gateway_token,
        gateway_order=row.gateway_order,
        created_at=row.created_at,
    )


class SqlOrderStore(OrderStore):
    """SQLAlchemy-backed store with optimistic concurrency on status writes."""

    def __init__(self, session_factory, max_attempts: int = 3) -> None:
        self.session_factory = session_factory
        self.max_attempts = max_attempts

    def get(self, order_id: str) -> PaymentOrder | None:
        with self.session_factory() as db:
            row = db.get(PaymentOrderRow, order_id)
            return _to_domain(row) if row else None

    def create(self, order: PaymentOrder) -> PaymentOrder:
        with self.session_factory() as db:
            if db.get(PaymentOrderRow, order.order_id) is not None:
                raise ValueError(f"duplicate order id: {order.order_id}")
            row = PaymentOrderRow(
                order_id=order.order_id,
                amount=order.amount,
                payer_email=order.payer_email,
                status=order.status,
                state_version=0,
                gateway_token=order.gateway_token,
                gateway_order=order.gateway_order,
                created_at=order.created_at,
            )
            db.add(row)
            db.flush()
            db.add(
                PaymentOrderTimeline(
                    order_id=order.order_id,
                    from_state=None,
                    to_state=order.status,
                    reason="order_created",
                    created_at=datetime.now(timezone.utc),
                )
            )
            db.commit()
            return _to_domain(row)

    def update_status(self, order_id: str, status: str, reason: str) -> tuple[PaymentOrder, bool]:
        """Compare-and-set on `(order_id, status, state_version)`.

        A concurrent writer makes the guarded update miss; the row is then
        re-read and the transition resolved again against the fresh status.
        """

        for attempt in range(1, self.max_attempts + 1):
            with self.session_factory() as db:
                row = db.get(PaymentOrderRow, order_id)
                if row is None:
                    raise OrderNotFoundError(order_id)
                target = resolve_transition(row.status, status)
                if target is None:
                    return _to_domain(row), False

                from_status = row.status
                current_version = row.state_version
                result = db.execute(
                    update(PaymentOrderRow)
                    .where(
                        PaymentOrderRow.order_id == order_id,
                        PaymentOrderRow.status == from_status,
                        PaymentOrderRow.state_version == current_version,
                    )
                    .values(
                        status=target,
                        state_version=current_version + 1,
                        updated_at=datetime.now(timezone.utc),
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    db.rollback()
                    logger.warning(
                        "order update conflict order_id=%s expected_version=%s attempt=%s",
                        order_id,
                        current_version,
                        attempt,
                    )
                    continue
                db.add(
                    PaymentOrderTimeline(
                        order_id=order_id,
                        from_state=from_status,
                        to_state=target,
                        reason=reason,
                        created_at=datetime.now(timezone.utc),
                    )
                )
                db.commit()
                db.refresh(row)
                return _to_domain(row), True
        raise RuntimeError(f"optimistic concurrency conflict for order {order_id}")

    def history(self, order_id: str) -> list[tuple[str | None, str, str]]:
        """Transitions recorded for one order, oldest first."""

        with self.session_factory() as db:
            rows = db.execute(
                select(PaymentOrderTimeline)
                .where(PaymentOrderTimeline.order_id == order_id)
                .order_by(PaymentOrderTimeline.created_at, PaymentOrderTimeline.timeline_id)
            ).scalars()
            return [(row.from_state, row.to_state, row.reason) for row in rows]
