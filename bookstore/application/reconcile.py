import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from bookstore.domain.models import (
    Order, Subscription, PaymentStatus, PurchaseKind, SubscriptionStatus,
)
from bookstore.domain.exceptions import (
    OrderNotFoundError, SubscriptionNotFoundError, ValidationError,
)
from bookstore.application.interfaces import PaymentGateway, NotificationsService
from bookstore.application.checkout import ledger_for


logger = logging.getLogger(__name__)


# Статус платежной ссылки шлюза -> статус оплаты
GATEWAY_STATUS_MAP = {
    "paid": PaymentStatus.COMPLETED,
    "cancelled": PaymentStatus.FAILED,
    "expired": PaymentStatus.FAILED,
}


def map_gateway_status(gateway_status: str) -> PaymentStatus:
    """Все, что не paid/cancelled/expired, считается неокончательным"""
    return GATEWAY_STATUS_MAP.get((gateway_status or "").lower(), PaymentStatus.PENDING)


class ReconcilePaymentUseCase:
    """Сверка статуса оплаты со шлюзом.

    Идемпотентна: терминальный статус возвращается без обращения к шлюзу.
    Два параллельных вызова сходятся к одному состоянию за счет условного
    UPDATE в хранилище; побочные эффекты (очистка корзины, активация подписки,
    уведомление) выполняет только тот вызов, чей UPDATE изменил строку.
    """

    def __init__(
        self,
        unit_of_work,
        gateway: PaymentGateway,
        notifications_service: NotificationsService,
        subscription_period_days: int = 30,
    ):
        self._uow = unit_of_work
        self._gateway = gateway
        self._notifications = notifications_service
        self._period = timedelta(days=subscription_period_days)

    async def __call__(
        self,
        kind: PurchaseKind,
        reference_id: str,
        user_id: Optional[str] = None,
        payment_link_id: Optional[str] = None,
    ) -> Union[Order, Subscription]:
        record = await self._load(kind, reference_id, user_id)

        if payment_link_id and record.payment_link_id and payment_link_id != record.payment_link_id:
            raise ValidationError(f"Платежная ссылка {payment_link_id} не относится к {reference_id}")

        # 1. Уже терминальный статус
        if record.payment_status.is_terminal:
            logger.info(f"{kind.value} {reference_id} уже в статусе {record.payment_status.value}, сверка не нужна")
            return record

        if not record.payment_link_id:
            logger.info(f"У {kind.value} {reference_id} нет платежной ссылки, сверять нечего")
            return record

        # 2. Запрос статуса в шлюзе
        gateway_status = await self._gateway.get_status(record.payment_link_id)
        new_status = map_gateway_status(gateway_status)
        logger.info(f"Шлюз вернул {gateway_status} для {kind.value} {reference_id}")

        if new_status == PaymentStatus.PENDING:
            return record

        # 3. Условный переход pending -> completed|failed
        async with self._uow() as uow:
            applied = await ledger_for(uow, kind).transition_payment(reference_id, new_status)
            if applied:
                await self._apply_side_effects(uow, kind, record, new_status)
            await uow.commit()

        if applied:
            logger.info(f"{kind.value} {reference_id}: оплата {new_status.value}")
            await self._notify(kind, record, new_status)
        else:
            logger.info(f"{kind.value} {reference_id} уже сверен параллельным запросом")

        return await self._load(kind, reference_id, user_id)

    async def _load(self, kind: PurchaseKind, reference_id: str, user_id: Optional[str]):
        async with self._uow() as uow:
            record = await ledger_for(uow, kind).get_by_id(reference_id)
        if not record or (user_id is not None and record.user_id != user_id):
            if kind == PurchaseKind.ORDER:
                raise OrderNotFoundError(f"Заказ {reference_id} не найден")
            raise SubscriptionNotFoundError(f"Подписка {reference_id} не найдена")
        return record

    async def _apply_side_effects(self, uow, kind: PurchaseKind, record, status: PaymentStatus) -> None:
        if kind == PurchaseKind.ORDER:
            # при failed доставка не трогается, она и так в pending;
            # прямая покупка корзину не использовала
            if status == PaymentStatus.COMPLETED and record.clears_cart():
                removed = await uow.cart.clear(record.user_id)
                logger.info(f"Корзина {record.user_id} очищена ({removed} позиций)")
            return

        if status == PaymentStatus.COMPLETED:
            period_end = datetime.now(timezone.utc) + self._period
            await uow.subscriptions.activate(record.id, period_end)
            logger.info(f"Подписка {record.id} активна до {period_end.isoformat()}")
        else:
            await uow.subscriptions.cancel(record.id, current=SubscriptionStatus.PENDING)
            logger.info(f"Подписка {record.id} отменена: оплата не прошла")

    async def _notify(self, kind: PurchaseKind, record, status: PaymentStatus) -> None:
        if status == PaymentStatus.COMPLETED:
            message = "Оплата прошла успешно"
        else:
            message = "Оплата не прошла"
        sent = await self._notifications.send(
            message=message,
            reference_id=record.id,
            idempotency_key=f"payment_{status.value}_{record.id}",
            user_id=record.user_id,
        )
        if not sent:
            logger.warning(f"Не отправлено уведомление об оплате для {kind.value} {record.id}")
