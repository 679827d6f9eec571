import logging
from decimal import Decimal
from typing import List

from bookstore.domain.models import Plan, Subscription, SubscriptionStatus
from bookstore.domain.exceptions import SubscriptionNotFoundError, StateTransitionError

logger = logging.getLogger(__name__)


DEFAULT_PLANS = [
    Plan(
        id="basic",
        name="Basic",
        price=Decimal("9.99"),
        features=["Access to 1000+ books", "Standard support", "Basic reading features"],
    ),
    Plan(
        id="premium",
        name="Premium",
        price=Decimal("19.99"),
        features=["Access to all books", "Priority support", "Advanced reading features", "Offline reading"],
        is_popular=True,
    ),
    Plan(
        id="enterprise",
        name="Enterprise",
        price=Decimal("39.99"),
        features=["Everything in Premium", "Team collaboration", "Admin dashboard", "Custom integrations"],
    ),
]


class SeedPlansUseCase:
    """Заполняет справочник тарифов, если он пуст"""

    def __init__(self, unit_of_work, plans: List[Plan] = None):
        self._uow = unit_of_work
        self._plans = plans if plans is not None else DEFAULT_PLANS

    async def __call__(self) -> int:
        async with self._uow() as uow:
            if await uow.plans.list_all():
                return 0
            for plan in self._plans:
                await uow.plans.create(plan)
            await uow.commit()
        logger.info(f"Добавлено тарифов: {len(self._plans)}")
        return len(self._plans)


class ListPlansUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self) -> List[Plan]:
        async with self._uow() as uow:
            return await uow.plans.list_all()


class ListSubscriptionsUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, user_id: str) -> List[Subscription]:
        async with self._uow() as uow:
            return await uow.subscriptions.list_for_user(user_id)


class CancelSubscriptionUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, subscription_id: str, user_id: str) -> Subscription:
        async with self._uow() as uow:
            subscription = await uow.subscriptions.get_by_id(subscription_id)
            if not subscription or subscription.user_id != user_id:
                raise SubscriptionNotFoundError(f"Подписка {subscription_id} не найдена")
            if not subscription.can_be_cancelled():
                raise StateTransitionError(
                    f"Подписку {subscription_id} в статусе {subscription.status.value} нельзя отменить"
                )
            cancelled = await uow.subscriptions.cancel(subscription_id, current=SubscriptionStatus.ACTIVE)
            if not cancelled:
                raise StateTransitionError(f"Подписка {subscription_id} изменена параллельно")
            await uow.commit()
            logger.info(f"Подписка {subscription_id} отменена пользователем {user_id}")
            return await uow.subscriptions.get_by_id(subscription_id)
