from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel


class FulfillmentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self != PaymentStatus.PENDING


class PaymentInitiation(str, Enum):
    """Состояние создания платежной ссылки (не путать с PaymentStatus)"""
    PENDING = "pending"
    CREATED = "created"
    FAILED = "failed"


class SubscriptionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CANCELLED = "cancelled"


class PurchaseKind(str, Enum):
    ORDER = "order"
    SUBSCRIPTION = "subscription"


class OrderSource(str, Enum):
    """Откуда пришел заказ: из корзины или прямой покупкой книги"""
    CART = "cart"
    DIRECT = "direct"


# Допустимые переходы статуса доставки
FULFILLMENT_TRANSITIONS = {
    FulfillmentStatus.PENDING: {FulfillmentStatus.PROCESSING, FulfillmentStatus.CANCELLED},
    FulfillmentStatus.PROCESSING: {FulfillmentStatus.SHIPPED, FulfillmentStatus.CANCELLED},
    FulfillmentStatus.SHIPPED: {FulfillmentStatus.DELIVERED},
    FulfillmentStatus.DELIVERED: set(),
    FulfillmentStatus.CANCELLED: set(),
}


def to_minor_units(amount: Decimal) -> int:
    """9.99 -> 999"""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class Book(BaseModel):
    """Value Object — книга из каталога (живая цена)"""
    id: str
    title: str
    author: str
    price: Decimal
    is_free: bool = False


class OrderItem(BaseModel):
    """Снимок книги на момент оформления заказа"""
    book_id: str
    title: str
    author: str
    price: Decimal

    @classmethod
    def snapshot(cls, book: Book) -> "OrderItem":
        return cls(book_id=book.id, title=book.title, author=book.author, price=book.price)


class ShippingAddress(BaseModel):
    full_name: str
    email: str
    phone: str
    address: str
    city: str
    state: str
    zip_code: str
    country: str


class PaymentMethod(BaseModel):
    type: str


class PaymentLink(BaseModel):
    """Платежная ссылка, выданная шлюзом"""
    id: str
    url: str


class Customer(BaseModel):
    name: str
    email: str
    contact: str = ""


class Order(BaseModel):
    """Domain Entity — заказ"""
    id: str
    user_id: str
    items: List[OrderItem]
    total: Decimal
    shipping_address: Optional[ShippingAddress] = None
    payment_method: PaymentMethod
    source: OrderSource = OrderSource.CART
    status: FulfillmentStatus = FulfillmentStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_initiation: PaymentInitiation = PaymentInitiation.PENDING
    payment_link_id: str | None = None
    payment_link_url: str | None = None
    created_at: datetime
    updated_at: datetime

    @staticmethod
    def compute_total(items: List[OrderItem]) -> Decimal:
        return sum((item.price for item in items), Decimal("0"))

    def can_be_paid(self) -> bool:
        """Бизнес-правило: статус оплаты меняется только из pending"""
        return self.payment_status == PaymentStatus.PENDING

    def needs_payment_link(self) -> bool:
        return self.payment_link_id is None and self.payment_status == PaymentStatus.PENDING

    def clears_cart(self) -> bool:
        return self.source == OrderSource.CART

    def can_move_to(self, status: FulfillmentStatus) -> bool:
        """Бизнес-правило: доставка не выходит из pending, пока заказ не оплачен (кроме отмены)"""
        if status not in FULFILLMENT_TRANSITIONS[self.status]:
            return False
        if status == FulfillmentStatus.CANCELLED:
            return True
        return self.payment_status == PaymentStatus.COMPLETED


class Plan(BaseModel):
    """Справочник тарифов"""
    id: str
    name: str
    price: Decimal
    features: List[str]
    is_popular: bool = False


class Subscription(BaseModel):
    """Domain Entity — подписка на тариф"""
    id: str
    user_id: str
    plan_id: str
    plan_name: str
    amount: Decimal
    status: SubscriptionStatus = SubscriptionStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_initiation: PaymentInitiation = PaymentInitiation.PENDING
    payment_link_id: str | None = None
    payment_link_url: str | None = None
    current_period_end: datetime | None = None
    created_at: datetime
    updated_at: datetime

    def can_be_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PENDING

    def needs_payment_link(self) -> bool:
        return self.payment_link_id is None and self.payment_status == PaymentStatus.PENDING

    def can_be_cancelled(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE


class PurchaseIntent(BaseModel):
    """Общий вход платежного конвейера: заказ или подписка"""
    kind: PurchaseKind
    reference_id: str
    user_id: str
    amount: Decimal
    description: str
    customer: Customer

    @property
    def amount_minor_units(self) -> int:
        return to_minor_units(self.amount)


class CartLine(BaseModel):
    """Позиция корзины с живой ценой из каталога"""
    book_id: str
    title: str
    author: str
    price: Decimal


class Cart(BaseModel):
    user_id: str
    items: List[CartLine]
    total: Decimal


class CurrentUser(BaseModel):
    """Пользователь, выданный внешним сервисом авторизации"""
    id: str
    name: str
    email: str
    phone: str = ""

    def as_customer(self) -> Customer:
        return Customer(name=self.name, email=self.email, contact=self.phone)
