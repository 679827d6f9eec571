"""
SQLAlchemy-репозитории на SQLite в памяти: условные UPDATE и уникальность.
"""

from datetime import datetime, timezone, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from bookstore.database import create_tables
from bookstore.domain.models import (
    Order, OrderItem, PaymentMethod, PaymentLink, PaymentStatus, PaymentInitiation,
    FulfillmentStatus, ShippingAddress, Subscription, SubscriptionStatus, OrderSource,
)
from bookstore.domain.exceptions import DuplicateRecordError
from bookstore.application.subscriptions import SeedPlansUseCase
from bookstore.infrastructure.unit_of_work import UnitOfWork


@pytest.fixture
async def sql_uow():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)
    yield UnitOfWork(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))
    await engine.dispose()


def make_order(order_id="o1", user_id="u1", created_at=None) -> Order:
    now = created_at or datetime.now(timezone.utc)
    items = [
        OrderItem(book_id="b1", title="Dune", author="Frank Herbert", price=Decimal("9.99")),
        OrderItem(book_id="b2", title="Solaris", author="Stanislaw Lem", price=Decimal("4.99")),
    ]
    return Order(
        id=order_id,
        user_id=user_id,
        items=items,
        total=Order.compute_total(items),
        shipping_address=ShippingAddress(
            full_name="Asha Rao", email="asha@example.com", phone="9000000001",
            address="12 MG Road", city="Bengaluru", state="KA", zip_code="560001", country="IN",
        ),
        payment_method=PaymentMethod(type="upi"),
        created_at=now,
        updated_at=now,
    )


def make_subscription(subscription_id="s1") -> Subscription:
    now = datetime.now(timezone.utc)
    return Subscription(
        id=subscription_id, user_id="u1", plan_id="premium", plan_name="Premium",
        amount=Decimal("19.99"), created_at=now, updated_at=now,
    )


class TestOrderRepository:

    async def test_create_and_load(self, sql_uow):
        async with sql_uow() as uow:
            await uow.orders.create(make_order())
            await uow.commit()

        async with sql_uow() as uow:
            order = await uow.orders.get_by_id("o1")

        assert order.total == Decimal("14.98")
        assert order.items[1].price == Decimal("4.99")
        assert order.shipping_address.zip_code == "560001"
        assert order.status == FulfillmentStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert order.payment_initiation == PaymentInitiation.PENDING
        assert order.source == OrderSource.CART

    async def test_direct_source_is_stored(self, sql_uow):
        order = make_order()
        order.source = OrderSource.DIRECT
        async with sql_uow() as uow:
            await uow.orders.create(order)
            await uow.commit()
            stored = await uow.orders.get_by_id("o1")

        assert stored.source == OrderSource.DIRECT
        assert not stored.clears_cart()

    async def test_duplicate_id(self, sql_uow):
        async with sql_uow() as uow:
            await uow.orders.create(make_order())
            await uow.commit()

        with pytest.raises(DuplicateRecordError):
            async with sql_uow() as uow:
                await uow.orders.create(make_order())
                await uow.commit()

        async with sql_uow() as uow:
            assert len(await uow.orders.list_for_user("u1")) == 1

    async def test_transition_is_conditional_on_pending(self, sql_uow):
        async with sql_uow() as uow:
            await uow.orders.create(make_order())
            await uow.commit()

        async with sql_uow() as uow:
            assert await uow.orders.transition_payment("o1", PaymentStatus.COMPLETED) is True
            await uow.commit()

        async with sql_uow() as uow:
            assert await uow.orders.transition_payment("o1", PaymentStatus.FAILED) is False
            assert await uow.orders.transition_payment("o1", PaymentStatus.PENDING) is False
            await uow.commit()
            order = await uow.orders.get_by_id("o1")

        assert order.payment_status == PaymentStatus.COMPLETED

    async def test_link_is_attached_once(self, sql_uow):
        async with sql_uow() as uow:
            await uow.orders.create(make_order())
            await uow.orders.mark_initiation_failed("o1")
            assert await uow.orders.attach_payment_link("o1", PaymentLink(id="plink_1", url="https://rzp.io/i/1"))
            assert not await uow.orders.attach_payment_link("o1", PaymentLink(id="plink_2", url="https://rzp.io/i/2"))
            await uow.orders.mark_initiation_failed("o1")
            await uow.commit()
            order = await uow.orders.get_by_id("o1")

        assert order.payment_link_id == "plink_1"
        assert order.payment_initiation == PaymentInitiation.CREATED

    async def test_fulfillment_update_checks_current_status(self, sql_uow):
        async with sql_uow() as uow:
            await uow.orders.create(make_order())
            assert not await uow.orders.update_status("o1", FulfillmentStatus.PROCESSING, FulfillmentStatus.SHIPPED)
            assert await uow.orders.update_status("o1", FulfillmentStatus.PENDING, FulfillmentStatus.CANCELLED)
            await uow.commit()
            order = await uow.orders.get_by_id("o1")

        assert order.status == FulfillmentStatus.CANCELLED

    async def test_list_newest_first(self, sql_uow):
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        async with sql_uow() as uow:
            await uow.orders.create(make_order("old", created_at=base))
            await uow.orders.create(make_order("new", created_at=base + timedelta(days=1)))
            await uow.orders.create(make_order("foreign", user_id="u2"))
            await uow.commit()
            orders = await uow.orders.list_for_user("u1")

        assert [order.id for order in orders] == ["new", "old"]

    async def test_uncommitted_work_is_rolled_back(self, sql_uow):
        async with sql_uow() as uow:
            await uow.orders.create(make_order())

        async with sql_uow() as uow:
            assert await uow.orders.get_by_id("o1") is None


class TestCartRepository:

    async def test_one_entry_per_book(self, sql_uow):
        async with sql_uow() as uow:
            await uow.cart.add("u1", "b1")
            await uow.cart.add("u1", "b1")
            await uow.cart.add("u1", "b2")
            await uow.cart.add("u2", "b1")
            await uow.commit()
            assert await uow.cart.list_book_ids("u1") == ["b1", "b2"]

    async def test_remove_and_clear(self, sql_uow):
        async with sql_uow() as uow:
            for book_id in ("b1", "b2", "b3"):
                await uow.cart.add("u1", book_id)
            await uow.cart.remove("u1", "b2")
            assert await uow.cart.list_book_ids("u1") == ["b1", "b3"]
            assert await uow.cart.clear("u1") == 2
            await uow.commit()
            assert await uow.cart.list_book_ids("u1") == []


class TestSubscriptionRepository:

    async def test_activation_is_conditional(self, sql_uow):
        period_end = datetime.now(timezone.utc) + timedelta(days=30)
        async with sql_uow() as uow:
            await uow.subscriptions.create(make_subscription())
            assert await uow.subscriptions.transition_payment("s1", PaymentStatus.COMPLETED)
            assert await uow.subscriptions.activate("s1", period_end)
            assert not await uow.subscriptions.activate("s1", period_end)
            await uow.commit()
            subscription = await uow.subscriptions.get_by_id("s1")

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.payment_status == PaymentStatus.COMPLETED
        assert subscription.current_period_end is not None

    async def test_cancel_requires_expected_status(self, sql_uow):
        async with sql_uow() as uow:
            await uow.subscriptions.create(make_subscription())
            assert not await uow.subscriptions.cancel("s1", current=SubscriptionStatus.ACTIVE)
            assert await uow.subscriptions.cancel("s1", current=SubscriptionStatus.PENDING)
            await uow.commit()
            subscription = await uow.subscriptions.get_by_id("s1")

        assert subscription.status == SubscriptionStatus.CANCELLED


class TestPlans:

    async def test_seed_runs_once(self, sql_uow):
        assert await SeedPlansUseCase(sql_uow)() == 3
        assert await SeedPlansUseCase(sql_uow)() == 0

        async with sql_uow() as uow:
            plans = await uow.plans.list_all()
            premium = await uow.plans.get_by_id("premium")

        assert [plan.id for plan in plans] == ["basic", "premium", "enterprise"]
        assert premium.price == Decimal("19.99")
        assert premium.is_popular
