from sqlalchemy import (
    Table, Column, String, Boolean, Numeric, Enum, DateTime, JSON, MetaData, UniqueConstraint,
)
from sqlalchemy.sql import func

from bookstore.domain.models import (
    FulfillmentStatus, PaymentStatus, PaymentInitiation, SubscriptionStatus, OrderSource,
)

metadata = MetaData()


def _enum(enum_cls, name: str) -> Enum:
    # храним значения ("pending"), а не имена членов
    return Enum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


orders_tbl = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("user_id", String, nullable=False, index=True),
    Column("items", JSON, nullable=False),
    Column("total", Numeric(12, 2), nullable=False),
    Column("shipping_address", JSON, nullable=True),
    Column("payment_method", JSON, nullable=False),
    Column("source", _enum(OrderSource, "order_source"), nullable=False, default=OrderSource.CART),
    Column("status", _enum(FulfillmentStatus, "fulfillment_status"), nullable=False,
           default=FulfillmentStatus.PENDING),
    Column("payment_status", _enum(PaymentStatus, "payment_status"), nullable=False,
           default=PaymentStatus.PENDING),
    Column("payment_initiation", _enum(PaymentInitiation, "payment_initiation"), nullable=False,
           default=PaymentInitiation.PENDING),
    Column("payment_link_id", String, nullable=True, unique=True),
    Column("payment_link_url", String, nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
)


cart_items_tbl = Table(
    "cart_items",
    metadata,
    Column("user_id", String, nullable=False),
    Column("book_id", String, nullable=False),
    Column("added_at", DateTime(timezone=True), server_default=func.now()),
    UniqueConstraint("user_id", "book_id", name="uq_cart_items_user_book"),
)


plans_tbl = Table(
    "plans",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("price", Numeric(12, 2), nullable=False),
    Column("features", JSON, nullable=False),
    Column("is_popular", Boolean, nullable=False, default=False),
)


subscriptions_tbl = Table(
    "subscriptions",
    metadata,
    Column("id", String, primary_key=True),
    Column("user_id", String, nullable=False, index=True),
    Column("plan_id", String, nullable=False),
    Column("plan_name", String, nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("status", _enum(SubscriptionStatus, "subscription_status"), nullable=False,
           default=SubscriptionStatus.PENDING),
    Column("payment_status", _enum(PaymentStatus, "subscription_payment_status"), nullable=False,
           default=PaymentStatus.PENDING),
    Column("payment_initiation", _enum(PaymentInitiation, "subscription_payment_initiation"),
           nullable=False, default=PaymentInitiation.PENDING),
    Column("payment_link_id", String, nullable=True, unique=True),
    Column("payment_link_url", String, nullable=True),
    Column("current_period_end", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
)
