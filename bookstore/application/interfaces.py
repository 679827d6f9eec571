from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List
from bookstore.domain.models import (
    Order, Subscription, Plan, Book, PaymentLink, PaymentStatus,
    FulfillmentStatus, SubscriptionStatus, Customer, CurrentUser,
)


class PurchaseLedger(ABC):
    """Общий контракт хранилища для заказов и подписок"""

    @abstractmethod
    async def attach_payment_link(self, reference_id: str, link: PaymentLink) -> bool:
        """Ссылка записывается только один раз (WHERE payment_link_id IS NULL)"""
        pass

    @abstractmethod
    async def mark_initiation_failed(self, reference_id: str) -> None:
        pass

    @abstractmethod
    async def transition_payment(self, reference_id: str, status: PaymentStatus) -> bool:
        """Атомарно: UPDATE ... WHERE payment_status = 'pending'. True, если строка изменена."""
        pass


class OrderRepository(PurchaseLedger):
    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str) -> List[Order]:
        pass

    @abstractmethod
    async def create(self, order: Order) -> None:
        pass

    @abstractmethod
    async def update_status(
        self, order_id: str, current: FulfillmentStatus, status: FulfillmentStatus
    ) -> bool:
        pass


class SubscriptionRepository(PurchaseLedger):
    @abstractmethod
    async def get_by_id(self, subscription_id: str) -> Optional[Subscription]:
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str) -> List[Subscription]:
        pass

    @abstractmethod
    async def create(self, subscription: Subscription) -> None:
        pass

    @abstractmethod
    async def activate(self, subscription_id: str, period_end: datetime) -> bool:
        pass

    @abstractmethod
    async def cancel(self, subscription_id: str, current: SubscriptionStatus) -> bool:
        pass


class CartRepository(ABC):
    @abstractmethod
    async def add(self, user_id: str, book_id: str) -> None:
        pass

    @abstractmethod
    async def remove(self, user_id: str, book_id: str) -> None:
        pass

    @abstractmethod
    async def list_book_ids(self, user_id: str) -> List[str]:
        pass

    @abstractmethod
    async def clear(self, user_id: str) -> int:
        pass


class PlanRepository(ABC):
    @abstractmethod
    async def get_by_id(self, plan_id: str) -> Optional[Plan]:
        pass

    @abstractmethod
    async def list_all(self) -> List[Plan]:
        pass

    @abstractmethod
    async def create(self, plan: Plan) -> None:
        pass


class UnitOfWork(ABC):
    @property
    @abstractmethod
    def orders(self) -> OrderRepository:
        pass

    @property
    @abstractmethod
    def subscriptions(self) -> SubscriptionRepository:
        pass

    @property
    @abstractmethod
    def cart(self) -> CartRepository:
        pass

    @property
    @abstractmethod
    def plans(self) -> PlanRepository:
        pass

    @abstractmethod
    async def __call__(self):
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass


class CatalogService(ABC):
    @abstractmethod
    async def get_book(self, book_id: str) -> Optional[Book]:
        pass

    @abstractmethod
    async def get_book_design(self, design_id: str) -> Optional[Book]:
        pass


class AuthService(ABC):
    @abstractmethod
    async def get_user(self, token: str) -> Optional[CurrentUser]:
        pass


class PaymentGateway(ABC):
    @abstractmethod
    async def create_payment_link(
        self, amount_minor_units: int, currency: str, description: str,
        customer: Customer, callback_url: str
    ) -> PaymentLink:
        pass

    @abstractmethod
    async def create_subscription_link(
        self, amount_minor_units: int, currency: str, description: str,
        customer: Customer, callback_url: str
    ) -> PaymentLink:
        pass

    @abstractmethod
    async def get_status(self, link_id: str) -> str:
        pass


class NotificationsService(ABC):
    @abstractmethod
    async def send(self, message: str, reference_id: str, idempotency_key: str, user_id: str) -> bool:
        pass
