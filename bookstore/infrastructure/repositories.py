from typing import Optional, List
from datetime import datetime, timezone
from sqlalchemy import select, insert, update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.domain.models import (
    Order, OrderItem, ShippingAddress, PaymentMethod, PaymentLink, PaymentStatus,
    PaymentInitiation, FulfillmentStatus, Subscription, SubscriptionStatus, Plan, OrderSource,
)
from bookstore.domain.exceptions import DuplicateRecordError
from bookstore.infrastructure.db_schema import (
    orders_tbl, cart_items_tbl, plans_tbl, subscriptions_tbl,
)
from bookstore.application.interfaces import (
    OrderRepository, SubscriptionRepository, CartRepository, PlanRepository,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _PurchaseLedgerMixin:
    """Условные UPDATE, общие для заказов и подписок"""

    _table = None

    async def attach_payment_link(self, reference_id: str, link: PaymentLink) -> bool:
        stmt = (
            update(self._table)
            .where(self._table.c.id == reference_id, self._table.c.payment_link_id.is_(None))
            .values(
                payment_link_id=link.id,
                payment_link_url=link.url,
                payment_initiation=PaymentInitiation.CREATED,
                updated_at=_now()
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def mark_initiation_failed(self, reference_id: str) -> None:
        stmt = (
            update(self._table)
            .where(self._table.c.id == reference_id, self._table.c.payment_link_id.is_(None))
            .values(payment_initiation=PaymentInitiation.FAILED, updated_at=_now())
        )
        await self._session.execute(stmt)

    async def transition_payment(self, reference_id: str, status: PaymentStatus) -> bool:
        if not status.is_terminal:
            return False
        stmt = (
            update(self._table)
            .where(
                self._table.c.id == reference_id,
                self._table.c.payment_status == PaymentStatus.PENDING
            )
            .values(payment_status=status, updated_at=_now())
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1


class SQLAlchemyOrderRepository(_PurchaseLedgerMixin, OrderRepository):
    _table = orders_tbl

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        result = await self._session.execute(
            select(orders_tbl).where(orders_tbl.c.id == order_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def list_for_user(self, user_id: str) -> List[Order]:
        result = await self._session.execute(
            select(orders_tbl)
            .where(orders_tbl.c.user_id == user_id)
            .order_by(orders_tbl.c.created_at.desc())
        )
        return [self._to_domain(row) for row in result.fetchall()]

    async def create(self, order: Order) -> None:
        stmt = insert(orders_tbl).values(
            id=order.id,
            user_id=order.user_id,
            items=[item.model_dump(mode="json") for item in order.items],
            total=order.total,
            shipping_address=order.shipping_address.model_dump() if order.shipping_address else None,
            payment_method=order.payment_method.model_dump(),
            source=order.source,
            status=order.status,
            payment_status=order.payment_status,
            payment_initiation=order.payment_initiation,
            payment_link_id=order.payment_link_id,
            payment_link_url=order.payment_link_url,
            created_at=order.created_at,
            updated_at=order.updated_at
        )
        try:
            await self._session.execute(stmt)
        except IntegrityError as e:
            raise DuplicateRecordError(f"Заказ {order.id} уже существует") from e

    async def update_status(
        self, order_id: str, current: FulfillmentStatus, status: FulfillmentStatus
    ) -> bool:
        stmt = (
            update(orders_tbl)
            .where(orders_tbl.c.id == order_id, orders_tbl.c.status == current)
            .values(
                status=status,
                updated_at=_now()
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    def _to_domain(self, row) -> Order:
        """Трансформация DB → Domain"""
        return Order(
            id=row.id,
            user_id=row.user_id,
            items=[OrderItem(**item) for item in row.items],
            total=row.total,
            shipping_address=ShippingAddress(**row.shipping_address) if row.shipping_address else None,
            payment_method=PaymentMethod(**row.payment_method),
            source=OrderSource(row.source),
            status=FulfillmentStatus(row.status),
            payment_status=PaymentStatus(row.payment_status),
            payment_initiation=PaymentInitiation(row.payment_initiation),
            payment_link_id=row.payment_link_id,
            payment_link_url=row.payment_link_url,
            created_at=row.created_at,
            updated_at=row.updated_at
        )


class SQLAlchemySubscriptionRepository(_PurchaseLedgerMixin, SubscriptionRepository):
    _table = subscriptions_tbl

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, subscription_id: str) -> Optional[Subscription]:
        result = await self._session.execute(
            select(subscriptions_tbl).where(subscriptions_tbl.c.id == subscription_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def list_for_user(self, user_id: str) -> List[Subscription]:
        result = await self._session.execute(
            select(subscriptions_tbl)
            .where(subscriptions_tbl.c.user_id == user_id)
            .order_by(subscriptions_tbl.c.created_at.desc())
        )
        return [self._to_domain(row) for row in result.fetchall()]

    async def create(self, subscription: Subscription) -> None:
        stmt = insert(subscriptions_tbl).values(
            id=subscription.id,
            user_id=subscription.user_id,
            plan_id=subscription.plan_id,
            plan_name=subscription.plan_name,
            amount=subscription.amount,
            status=subscription.status,
            payment_status=subscription.payment_status,
            payment_initiation=subscription.payment_initiation,
            payment_link_id=subscription.payment_link_id,
            payment_link_url=subscription.payment_link_url,
            current_period_end=subscription.current_period_end,
            created_at=subscription.created_at,
            updated_at=subscription.updated_at
        )
        try:
            await self._session.execute(stmt)
        except IntegrityError as e:
            raise DuplicateRecordError(f"Подписка {subscription.id} уже существует") from e

    async def activate(self, subscription_id: str, period_end: datetime) -> bool:
        stmt = (
            update(subscriptions_tbl)
            .where(
                subscriptions_tbl.c.id == subscription_id,
                subscriptions_tbl.c.status == SubscriptionStatus.PENDING
            )
            .values(
                status=SubscriptionStatus.ACTIVE,
                current_period_end=period_end,
                updated_at=_now()
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def cancel(self, subscription_id: str, current: SubscriptionStatus) -> bool:
        stmt = (
            update(subscriptions_tbl)
            .where(
                subscriptions_tbl.c.id == subscription_id,
                subscriptions_tbl.c.status == current
            )
            .values(status=SubscriptionStatus.CANCELLED, updated_at=_now())
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    def _to_domain(self, row) -> Subscription:
        return Subscription(
            id=row.id,
            user_id=row.user_id,
            plan_id=row.plan_id,
            plan_name=row.plan_name,
            amount=row.amount,
            status=SubscriptionStatus(row.status),
            payment_status=PaymentStatus(row.payment_status),
            payment_initiation=PaymentInitiation(row.payment_initiation),
            payment_link_id=row.payment_link_id,
            payment_link_url=row.payment_link_url,
            current_period_end=row.current_period_end,
            created_at=row.created_at,
            updated_at=row.updated_at
        )


class SQLAlchemyCartRepository(CartRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, user_id: str, book_id: str) -> None:
        result = await self._session.execute(
            select(cart_items_tbl.c.book_id).where(
                cart_items_tbl.c.user_id == user_id,
                cart_items_tbl.c.book_id == book_id
            )
        )
        if result.fetchone():
            return
        try:
            await self._session.execute(
                insert(cart_items_tbl).values(user_id=user_id, book_id=book_id, added_at=_now())
            )
        except IntegrityError as e:
            raise DuplicateRecordError(f"Книга {book_id} уже в корзине") from e

    async def remove(self, user_id: str, book_id: str) -> None:
        await self._session.execute(
            delete(cart_items_tbl).where(
                cart_items_tbl.c.user_id == user_id,
                cart_items_tbl.c.book_id == book_id
            )
        )

    async def list_book_ids(self, user_id: str) -> List[str]:
        result = await self._session.execute(
            select(cart_items_tbl.c.book_id)
            .where(cart_items_tbl.c.user_id == user_id)
            .order_by(cart_items_tbl.c.added_at.asc())
        )
        return [row.book_id for row in result.fetchall()]

    async def clear(self, user_id: str) -> int:
        result = await self._session.execute(
            delete(cart_items_tbl).where(cart_items_tbl.c.user_id == user_id)
        )
        return result.rowcount


class SQLAlchemyPlanRepository(PlanRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, plan_id: str) -> Optional[Plan]:
        result = await self._session.execute(
            select(plans_tbl).where(plans_tbl.c.id == plan_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def list_all(self) -> List[Plan]:
        result = await self._session.execute(
            select(plans_tbl).order_by(plans_tbl.c.price.asc())
        )
        return [self._to_domain(row) for row in result.fetchall()]

    async def create(self, plan: Plan) -> None:
        await self._session.execute(
            insert(plans_tbl).values(
                id=plan.id,
                name=plan.name,
                price=plan.price,
                features=plan.features,
                is_popular=plan.is_popular
            )
        )

    def _to_domain(self, row) -> Plan:
        return Plan(
            id=row.id,
            name=row.name,
            price=row.price,
            features=row.features,
            is_popular=row.is_popular
        )
