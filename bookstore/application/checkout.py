import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field

from bookstore.domain.models import (
    Order, OrderItem, Subscription, ShippingAddress, PaymentMethod, PaymentLink,
    PurchaseIntent, PurchaseKind, Customer, CurrentUser, OrderSource,
)
from bookstore.domain.exceptions import (
    EmptyCartError, BookNotFoundError, PlanNotFoundError, ValidationError,
    DuplicateRecordError, GatewayError, PaymentInitiationError,
)
from bookstore.application.interfaces import CatalogService, PaymentGateway


logger = logging.getLogger(__name__)


class OrderCheckoutResult(BaseModel):
    order: Order
    payment_link_url: Optional[str] = None


class SubscriptionCheckoutResult(BaseModel):
    subscription: Subscription
    payment_link_url: Optional[str] = None


class CreateOrderDTO(BaseModel):
    user: CurrentUser
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    idempotency_key: Optional[str] = None


class PurchaseBookDesignDTO(BaseModel):
    user: CurrentUser
    design_id: str
    shipping_address: Optional[ShippingAddress] = None
    payment_method: PaymentMethod = Field(default_factory=lambda: PaymentMethod(type="payment_link"))
    idempotency_key: Optional[str] = None


class CreateSubscriptionLinkDTO(BaseModel):
    user: CurrentUser
    plan_id: str
    idempotency_key: Optional[str] = None


def ledger_for(uow, kind: PurchaseKind):
    if kind == PurchaseKind.ORDER:
        return uow.orders
    return uow.subscriptions


class PaymentInitiator:
    """Единая точка создания платежной ссылки для заказа и подписки.

    Запись (заказ или подписка) к этому моменту уже сохранена. При ошибке шлюза
    запись остается в pending, а payment_initiation переходит в failed, чтобы
    повтор с тем же ключом идемпотентности дошел до шлюза еще раз.
    """

    def __init__(self, unit_of_work, gateway: PaymentGateway, currency: str, service_url: str):
        self._uow = unit_of_work
        self._gateway = gateway
        self._currency = currency
        self._service_url = service_url.rstrip("/")

    def callback_url(self, intent: PurchaseIntent) -> str:
        return f"{self._service_url}/api/checkout/payment-callback/{intent.kind.value}/{intent.reference_id}"

    async def __call__(self, intent: PurchaseIntent) -> PaymentLink:
        if intent.kind == PurchaseKind.ORDER:
            create_link = self._gateway.create_payment_link
        else:
            create_link = self._gateway.create_subscription_link

        try:
            link = await create_link(
                amount_minor_units=intent.amount_minor_units,
                currency=self._currency,
                description=intent.description,
                customer=intent.customer,
                callback_url=self.callback_url(intent),
            )
        except GatewayError as e:
            logger.error(f"Ошибка создания платежной ссылки для {intent.kind.value} {intent.reference_id}: {e}")
            async with self._uow() as uow:
                await ledger_for(uow, intent.kind).mark_initiation_failed(intent.reference_id)
                await uow.commit()
            raise PaymentInitiationError(intent.reference_id, e) from e

        async with self._uow() as uow:
            ledger = ledger_for(uow, intent.kind)
            attached = await ledger.attach_payment_link(intent.reference_id, link)
            await uow.commit()
            if not attached:
                # параллельный повтор успел записать свою ссылку, отдаем сохраненную
                stored = await ledger.get_by_id(intent.reference_id)
                logger.warning(f"Ссылка для {intent.reference_id} уже создана: {stored.payment_link_id}")
                return PaymentLink(id=stored.payment_link_id, url=stored.payment_link_url)

        logger.info(f"Платежная ссылка {link.id} привязана к {intent.kind.value} {intent.reference_id}")
        return link


class _OrderCheckout:
    """Общая часть оформления заказа: идемпотентность, сохранение, оплата"""

    def __init__(self, unit_of_work, catalog_service: CatalogService, payment_initiator: PaymentInitiator):
        self._uow = unit_of_work
        self._catalog = catalog_service
        self._payments = payment_initiator

    async def _find_existing(self, idempotency_key: Optional[str], user: CurrentUser) -> Optional[Order]:
        if not idempotency_key:
            return None
        async with self._uow() as uow:
            existing = await uow.orders.get_by_id(idempotency_key)
        if existing and existing.user_id != user.id:
            raise ValidationError("Ключ идемпотентности уже использован")
        return existing

    async def _resume(self, order: Order, user: CurrentUser, description: str) -> OrderCheckoutResult:
        """Повтор запроса: новый заказ не создается"""
        logger.info(f"Заказ уже существует: {order.id}")
        if not order.needs_payment_link():
            return OrderCheckoutResult(order=order, payment_link_url=order.payment_link_url)
        return await self._initiate(order, user, description)

    async def _place(self, order: Order, user: CurrentUser, description: str) -> OrderCheckoutResult:
        if order.total <= 0:
            raise ValidationError("Некорректная сумма заказа")

        # Заказ сохраняется до обращения к шлюзу
        try:
            async with self._uow() as uow:
                await uow.orders.create(order)
                await uow.commit()
        except DuplicateRecordError:
            existing = await self._find_existing(order.id, user)
            return await self._resume(existing, user, description)
        logger.info(f"Заказ создан: {order.id}, сумма {order.total}")

        return await self._initiate(order, user, description)

    async def _initiate(self, order: Order, user: CurrentUser, description: str) -> OrderCheckoutResult:
        if order.shipping_address:
            customer = Customer(
                name=order.shipping_address.full_name,
                email=order.shipping_address.email,
                contact=order.shipping_address.phone,
            )
        else:
            customer = user.as_customer()

        intent = PurchaseIntent(
            kind=PurchaseKind.ORDER,
            reference_id=order.id,
            user_id=order.user_id,
            amount=order.total,
            description=description,
            customer=customer,
        )
        link = await self._payments(intent)

        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order.id)
        return OrderCheckoutResult(order=order, payment_link_url=link.url)

    @staticmethod
    def _new_order(
        order_id: Optional[str], user: CurrentUser, items: List[OrderItem],
        shipping_address: Optional[ShippingAddress], payment_method: PaymentMethod,
        source: OrderSource = OrderSource.CART
    ) -> Order:
        now = datetime.now(timezone.utc)
        return Order(
            id=order_id or str(uuid.uuid4()),
            user_id=user.id,
            items=items,
            total=Order.compute_total(items),
            shipping_address=shipping_address,
            payment_method=payment_method,
            source=source,
            created_at=now,
            updated_at=now,
        )


def validate_shipping(shipping_address: ShippingAddress) -> None:
    missing = [name for name, value in shipping_address.model_dump().items() if not str(value).strip()]
    if missing:
        raise ValidationError(f"Не заполнены поля адреса доставки: {', '.join(missing)}")


class CreateOrderUseCase(_OrderCheckout):
    """Оформление заказа из корзины"""

    async def __call__(self, dto: CreateOrderDTO) -> OrderCheckoutResult:
        logger.info(f"Оформление заказа из корзины пользователя {dto.user.id}")

        # 1. Проверка идемпотентности
        existing = await self._find_existing(dto.idempotency_key, dto.user)
        if existing:
            return await self._resume(existing, dto.user, self._description(existing.id))

        validate_shipping(dto.shipping_address)
        if not dto.payment_method.type.strip():
            raise ValidationError("Не указан способ оплаты")

        # 2. Снимок цен из каталога
        async with self._uow() as uow:
            book_ids = await uow.cart.list_book_ids(dto.user.id)
        if not book_ids:
            raise EmptyCartError(dto.user.id)

        items = []
        for book_id in book_ids:
            book = await self._catalog.get_book(book_id)
            if not book:
                raise BookNotFoundError(f"Книга {book_id} не найдена")
            items.append(OrderItem.snapshot(book))

        # 3. Заказ, затем платежная ссылка
        order = self._new_order(
            dto.idempotency_key, dto.user, items, dto.shipping_address, dto.payment_method
        )
        return await self._place(order, dto.user, self._description(order.id))

    @staticmethod
    def _description(order_id: str) -> str:
        return f"Payment for order {order_id}"


class PurchaseBookDesignUseCase(_OrderCheckout):
    """Прямая покупка одной книги без корзины"""

    async def __call__(self, dto: PurchaseBookDesignDTO) -> OrderCheckoutResult:
        logger.info(f"Прямая покупка {dto.design_id} пользователем {dto.user.id}")

        design = await self._catalog.get_book_design(dto.design_id)
        if not design:
            raise BookNotFoundError(f"Книга {dto.design_id} не найдена")
        description = f"Payment for book: {design.title}"

        existing = await self._find_existing(dto.idempotency_key, dto.user)
        if existing:
            return await self._resume(existing, dto.user, description)

        if design.is_free:
            raise ValidationError("Эта книга бесплатна")
        if design.price <= 0:
            raise ValidationError("Некорректная цена книги")
        if dto.shipping_address:
            validate_shipping(dto.shipping_address)

        order = self._new_order(
            dto.idempotency_key, dto.user, [OrderItem.snapshot(design)],
            dto.shipping_address, dto.payment_method, source=OrderSource.DIRECT
        )
        return await self._place(order, dto.user, description)


class CreateSubscriptionLinkUseCase:
    """Покупка тарифа: та же последовательность, что и для заказа"""

    def __init__(self, unit_of_work, payment_initiator: PaymentInitiator):
        self._uow = unit_of_work
        self._payments = payment_initiator

    async def __call__(self, dto: CreateSubscriptionLinkDTO) -> SubscriptionCheckoutResult:
        logger.info(f"Оформление подписки {dto.plan_id} для пользователя {dto.user.id}")

        async with self._uow() as uow:
            plan = await uow.plans.get_by_id(dto.plan_id)
            existing = None
            if dto.idempotency_key:
                existing = await uow.subscriptions.get_by_id(dto.idempotency_key)
        if not plan:
            raise PlanNotFoundError(f"Тариф {dto.plan_id} не найден")
        if existing and existing.user_id != dto.user.id:
            raise ValidationError("Ключ идемпотентности уже использован")

        if existing:
            logger.info(f"Подписка уже существует: {existing.id}")
            if not existing.needs_payment_link():
                return SubscriptionCheckoutResult(
                    subscription=existing, payment_link_url=existing.payment_link_url
                )
            return await self._initiate(existing, plan.name, dto.user)

        if plan.price <= Decimal("0"):
            raise ValidationError("Некорректная цена тарифа")

        now = datetime.now(timezone.utc)
        subscription = Subscription(
            id=dto.idempotency_key or str(uuid.uuid4()),
            user_id=dto.user.id,
            plan_id=plan.id,
            plan_name=plan.name,
            amount=plan.price,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self._uow() as uow:
                await uow.subscriptions.create(subscription)
                await uow.commit()
        except DuplicateRecordError:
            async with self._uow() as uow:
                subscription = await uow.subscriptions.get_by_id(subscription.id)
            if subscription.user_id != dto.user.id:
                raise ValidationError("Ключ идемпотентности уже использован")
            if not subscription.needs_payment_link():
                return SubscriptionCheckoutResult(
                    subscription=subscription, payment_link_url=subscription.payment_link_url
                )
        else:
            logger.info(f"Подписка создана: {subscription.id}, тариф {plan.name}")

        return await self._initiate(subscription, plan.name, dto.user)

    async def _initiate(
        self, subscription: Subscription, plan_name: str, user: CurrentUser
    ) -> SubscriptionCheckoutResult:
        intent = PurchaseIntent(
            kind=PurchaseKind.SUBSCRIPTION,
            reference_id=subscription.id,
            user_id=subscription.user_id,
            amount=subscription.amount,
            description=f"Subscription payment for plan: {plan_name}",
            customer=user.as_customer(),
        )
        link = await self._payments(intent)

        async with self._uow() as uow:
            subscription = await uow.subscriptions.get_by_id(subscription.id)
        return SubscriptionCheckoutResult(subscription=subscription, payment_link_url=link.url)
