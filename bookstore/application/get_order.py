import logging
from typing import List

from bookstore.domain.models import Order, FulfillmentStatus
from bookstore.domain.exceptions import OrderNotFoundError, StateTransitionError

logger = logging.getLogger(__name__)


class GetOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, user_id: str) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order or order.user_id != user_id:
                raise OrderNotFoundError(f"Заказ {order_id} не найден")
            return order


class ListOrdersUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, user_id: str) -> List[Order]:
        async with self._uow() as uow:
            return await uow.orders.list_for_user(user_id)


class UpdateFulfillmentStatusUseCase:
    """Смена статуса доставки внешним операционным сервисом"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, status: FulfillmentStatus) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Заказ {order_id} не найден")
            if order.status == status:
                return order
            if not order.can_move_to(status):
                raise StateTransitionError(
                    f"Нельзя перевести заказ {order_id} из {order.status.value} в {status.value} "
                    f"(оплата: {order.payment_status.value})"
                )

            updated = await uow.orders.update_status(order_id, order.status, status)
            if not updated:
                raise StateTransitionError(f"Статус заказа {order_id} изменен параллельно, повторите запрос")
            await uow.commit()
            logger.info(f"Заказ {order_id}: доставка {order.status.value} -> {status.value}")
            return await uow.orders.get_by_id(order_id)
