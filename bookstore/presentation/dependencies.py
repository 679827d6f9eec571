from typing import Optional
from fastapi import Depends, Header, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from bookstore.config import settings
from bookstore.database import AsyncSessionLocal
from bookstore.domain.models import CurrentUser
from bookstore.domain.exceptions import AuthenticationError, ForbiddenError
from bookstore.application.interfaces import (
    AuthService, CatalogService, NotificationsService, PaymentGateway,
)
from bookstore.application.cart import (
    GetCartUseCase, AddCartItemUseCase, RemoveCartItemUseCase, ReorderUseCase,
)
from bookstore.application.checkout import (
    PaymentInitiator, CreateOrderUseCase, PurchaseBookDesignUseCase, CreateSubscriptionLinkUseCase,
)
from bookstore.application.reconcile import ReconcilePaymentUseCase
from bookstore.application.get_order import (
    GetOrderUseCase, ListOrdersUseCase, UpdateFulfillmentStatusUseCase,
)
from bookstore.application.subscriptions import (
    ListPlansUseCase, ListSubscriptionsUseCase, CancelSubscriptionUseCase,
)
from bookstore.infrastructure.unit_of_work import UnitOfWork
from bookstore.infrastructure.http_clients import (
    HTTPCatalogClient, HTTPAuthClient, HTTPNotificationsClient,
)

bearer_scheme = HTTPBearer(auto_error=False)


# Внешние зависимости
def get_unit_of_work():
    return UnitOfWork(AsyncSessionLocal)


def get_catalog_service() -> CatalogService:
    return HTTPCatalogClient(settings.CATALOG_BASE_URL, settings.API_TOKEN)


def get_auth_service() -> AuthService:
    return HTTPAuthClient(settings.AUTH_BASE_URL)


def get_notifications_service() -> NotificationsService:
    return HTTPNotificationsClient(settings.NOTIFICATIONS_BASE_URL, settings.API_TOKEN)


def get_payment_gateway(request: Request) -> PaymentGateway:
    # создается один раз при старте (см. lifespan)
    return request.app.state.payment_gateway


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth: AuthService = Depends(get_auth_service)
) -> CurrentUser:
    if not credentials:
        raise AuthenticationError("Требуется авторизация")
    user = await auth.get_user(credentials.credentials)
    if not user:
        raise AuthenticationError("Недействительный токен")
    return user


def require_api_key(x_api_key: str = Header(default="", alias="X-API-Key")) -> None:
    if not settings.API_TOKEN or x_api_key != settings.API_TOKEN:
        raise ForbiddenError("Неверный API ключ")


# Фабрики для создания use cases
def get_payment_initiator(
    uow=Depends(get_unit_of_work),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    return PaymentInitiator(uow, gateway, settings.PAYMENT_CURRENCY, settings.SERVICE_URL)


def get_get_cart_use_case(
    uow=Depends(get_unit_of_work), catalog: CatalogService = Depends(get_catalog_service)
):
    return GetCartUseCase(uow, catalog)


def get_add_cart_item_use_case(
    uow=Depends(get_unit_of_work), catalog: CatalogService = Depends(get_catalog_service)
):
    return AddCartItemUseCase(uow, catalog)


def get_remove_cart_item_use_case(
    uow=Depends(get_unit_of_work), catalog: CatalogService = Depends(get_catalog_service)
):
    return RemoveCartItemUseCase(uow, catalog)


def get_reorder_use_case(
    uow=Depends(get_unit_of_work), catalog: CatalogService = Depends(get_catalog_service)
):
    return ReorderUseCase(uow, catalog)


def get_create_order_use_case(
    uow=Depends(get_unit_of_work),
    catalog: CatalogService = Depends(get_catalog_service),
    payments: PaymentInitiator = Depends(get_payment_initiator)
):
    return CreateOrderUseCase(uow, catalog, payments)


def get_purchase_book_design_use_case(
    uow=Depends(get_unit_of_work),
    catalog: CatalogService = Depends(get_catalog_service),
    payments: PaymentInitiator = Depends(get_payment_initiator)
):
    return PurchaseBookDesignUseCase(uow, catalog, payments)


def get_create_subscription_link_use_case(
    uow=Depends(get_unit_of_work),
    payments: PaymentInitiator = Depends(get_payment_initiator)
):
    return CreateSubscriptionLinkUseCase(uow, payments)


def get_reconcile_use_case(
    uow=Depends(get_unit_of_work),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifications: NotificationsService = Depends(get_notifications_service)
):
    return ReconcilePaymentUseCase(uow, gateway, notifications, settings.SUBSCRIPTION_PERIOD_DAYS)


def get_get_order_use_case(uow=Depends(get_unit_of_work)):
    return GetOrderUseCase(uow)


def get_list_orders_use_case(uow=Depends(get_unit_of_work)):
    return ListOrdersUseCase(uow)


def get_update_fulfillment_use_case(uow=Depends(get_unit_of_work)):
    return UpdateFulfillmentStatusUseCase(uow)


def get_list_plans_use_case(uow=Depends(get_unit_of_work)):
    return ListPlansUseCase(uow)


def get_list_subscriptions_use_case(uow=Depends(get_unit_of_work)):
    return ListSubscriptionsUseCase(uow)


def get_cancel_subscription_use_case(uow=Depends(get_unit_of_work)):
    return CancelSubscriptionUseCase(uow)
