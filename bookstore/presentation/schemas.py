from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Optional, List

from bookstore.domain.models import (
    FulfillmentStatus, PaymentStatus, PaymentInitiation, SubscriptionStatus,
    ShippingAddress, PaymentMethod, OrderSource,
)


# ключ становится id заказа и попадает в путь callback URL
IDEMPOTENCY_KEY_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"


class CamelModel(BaseModel):
    """Поля в JSON в camelCase, как их ждет фронтенд"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ShippingAddressSchema(CamelModel):
    full_name: str
    email: str
    phone: str
    address: str
    city: str
    state: str
    zip_code: str
    country: str

    def to_domain(self) -> ShippingAddress:
        return ShippingAddress(**self.model_dump())


class PaymentMethodSchema(CamelModel):
    type: str

    def to_domain(self) -> PaymentMethod:
        return PaymentMethod(type=self.type)


class AddCartItemRequest(CamelModel):
    book_id: str


class ReorderRequest(CamelModel):
    order_id: str


class CreateOrderRequest(CamelModel):
    shipping_address: ShippingAddressSchema
    payment_method: PaymentMethodSchema
    idempotency_key: Optional[str] = Field(default=None, pattern=IDEMPOTENCY_KEY_PATTERN)


class PurchaseRequest(CamelModel):
    shipping_address: Optional[ShippingAddressSchema] = None
    payment_method: Optional[PaymentMethodSchema] = None
    idempotency_key: Optional[str] = Field(default=None, pattern=IDEMPOTENCY_KEY_PATTERN)


class CreateSubscriptionLinkRequest(CamelModel):
    plan_id: str
    idempotency_key: Optional[str] = Field(default=None, pattern=IDEMPOTENCY_KEY_PATTERN)


class UpdateOrderStatusRequest(CamelModel):
    status: FulfillmentStatus


class CartItemResponse(CamelModel):
    book_id: str
    title: str
    author: str
    price: float


class CartResponse(CamelModel):
    items: List[CartItemResponse]
    total: float

    @classmethod
    def from_domain(cls, cart):
        return cls(
            items=[
                CartItemResponse(book_id=line.book_id, title=line.title, author=line.author, price=float(line.price))
                for line in cart.items
            ],
            total=float(cart.total)
        )


class OrderItemResponse(CamelModel):
    book_id: str
    title: str
    author: str
    price: float


class OrderResponse(CamelModel):
    order_id: str
    user_id: str
    items: List[OrderItemResponse]
    total: float
    status: FulfillmentStatus
    payment_status: PaymentStatus
    payment_initiation: PaymentInitiation
    shipping_address: Optional[ShippingAddressSchema] = None
    payment_method: PaymentMethodSchema
    source: OrderSource
    payment_link_id: Optional[str] = None
    payment_link_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, order):
        return cls(
            order_id=order.id,
            user_id=order.user_id,
            items=[
                OrderItemResponse(book_id=item.book_id, title=item.title, author=item.author, price=float(item.price))
                for item in order.items
            ],
            total=float(order.total),
            status=order.status,
            payment_status=order.payment_status,
            payment_initiation=order.payment_initiation,
            shipping_address=(
                ShippingAddressSchema(**order.shipping_address.model_dump()) if order.shipping_address else None
            ),
            payment_method=PaymentMethodSchema(type=order.payment_method.type),
            source=order.source,
            payment_link_id=order.payment_link_id,
            payment_link_url=order.payment_link_url,
            created_at=order.created_at,
            updated_at=order.updated_at
        )


class CheckoutResponse(CamelModel):
    order: OrderResponse
    payment_link_url: Optional[str] = None


class PlanResponse(CamelModel):
    id: str
    name: str
    price: float
    features: List[str]
    is_popular: bool

    @classmethod
    def from_domain(cls, plan):
        return cls(
            id=plan.id,
            name=plan.name,
            price=float(plan.price),
            features=plan.features,
            is_popular=plan.is_popular
        )


class SubscriptionResponse(CamelModel):
    subscription_id: str
    user_id: str
    plan_id: str
    plan_name: str
    amount: float
    status: SubscriptionStatus
    payment_status: PaymentStatus
    payment_initiation: PaymentInitiation
    payment_link_id: Optional[str] = None
    payment_link_url: Optional[str] = None
    current_period_end: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, subscription):
        return cls(
            subscription_id=subscription.id,
            user_id=subscription.user_id,
            plan_id=subscription.plan_id,
            plan_name=subscription.plan_name,
            amount=float(subscription.amount),
            status=subscription.status,
            payment_status=subscription.payment_status,
            payment_initiation=subscription.payment_initiation,
            payment_link_id=subscription.payment_link_id,
            payment_link_url=subscription.payment_link_url,
            current_period_end=subscription.current_period_end,
            created_at=subscription.created_at,
            updated_at=subscription.updated_at
        )


class SubscriptionCheckoutResponse(CamelModel):
    subscription: SubscriptionResponse
    payment_link_url: Optional[str] = None


class ErrorResponse(CamelModel):
    error_kind: str
    message: str
    reference: Optional[str] = None
    retriable: Optional[bool] = None
