"""
Доменные правила: денежные единицы, переходы статусов, сопоставление статусов шлюза.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from bookstore.domain.models import (
    Order, OrderItem, PaymentMethod, PaymentStatus, FulfillmentStatus, to_minor_units,
)
from bookstore.application.reconcile import map_gateway_status


def make_order(**overrides) -> Order:
    now = datetime.now(timezone.utc)
    items = [OrderItem(book_id="b1", title="Dune", author="Frank Herbert", price=Decimal("9.99"))]
    data = dict(
        id="o1", user_id="u1", items=items, total=Order.compute_total(items),
        payment_method=PaymentMethod(type="upi"), created_at=now, updated_at=now,
    )
    data.update(overrides)
    return Order(**data)


class TestMinorUnits:

    @pytest.mark.parametrize("amount, expected", [
        (Decimal("19.99"), 1999),
        (Decimal("9.99"), 999),
        (Decimal("14.98"), 1498),
        (Decimal("0.005"), 1),
        (Decimal("100"), 10000),
    ])
    def test_conversion(self, amount, expected):
        assert to_minor_units(amount) == expected


class TestGatewayStatusMapping:

    def test_paid_is_completed(self):
        assert map_gateway_status("paid") == PaymentStatus.COMPLETED

    @pytest.mark.parametrize("status", ["cancelled", "expired"])
    def test_closed_links_are_failed(self, status):
        assert map_gateway_status(status) == PaymentStatus.FAILED

    @pytest.mark.parametrize("status", ["created", "partially_paid", "", None, "unknown"])
    def test_everything_else_stays_pending(self, status):
        assert map_gateway_status(status) == PaymentStatus.PENDING


class TestOrderRules:

    def test_total_is_sum_of_snapshot_prices(self):
        items = [
            OrderItem(book_id="b1", title="Dune", author="Frank Herbert", price=Decimal("9.99")),
            OrderItem(book_id="b2", title="Solaris", author="Stanislaw Lem", price=Decimal("4.99")),
        ]
        assert Order.compute_total(items) == Decimal("14.98")

    def test_unpaid_order_cannot_leave_pending_fulfillment(self):
        order = make_order()
        assert not order.can_move_to(FulfillmentStatus.PROCESSING)
        assert not order.can_move_to(FulfillmentStatus.SHIPPED)

    def test_unpaid_order_can_be_cancelled(self):
        assert make_order().can_move_to(FulfillmentStatus.CANCELLED)

    def test_paid_order_follows_fulfillment_chain(self):
        order = make_order(payment_status=PaymentStatus.COMPLETED)
        assert order.can_move_to(FulfillmentStatus.PROCESSING)
        assert not order.can_move_to(FulfillmentStatus.DELIVERED)

        shipped = make_order(payment_status=PaymentStatus.COMPLETED, status=FulfillmentStatus.SHIPPED)
        assert shipped.can_move_to(FulfillmentStatus.DELIVERED)
        assert not shipped.can_move_to(FulfillmentStatus.CANCELLED)

    def test_terminal_payment_status(self):
        assert not PaymentStatus.PENDING.is_terminal
        assert PaymentStatus.COMPLETED.is_terminal
        assert PaymentStatus.FAILED.is_terminal
