import logging
from typing import List, Optional
from urllib.parse import urlencode
from fastapi import APIRouter, Depends, status
from fastapi.responses import RedirectResponse

from bookstore.config import settings
from bookstore.domain.models import CurrentUser, PurchaseKind
from bookstore.domain.exceptions import GatewayError
from bookstore.presentation.schemas import (
    AddCartItemRequest, ReorderRequest, CreateOrderRequest, PurchaseRequest,
    CreateSubscriptionLinkRequest, UpdateOrderStatusRequest, CartResponse, OrderResponse,
    CheckoutResponse, PlanResponse, SubscriptionResponse, SubscriptionCheckoutResponse,
    ErrorResponse,
)
from bookstore.presentation.dependencies import (
    get_current_user, require_api_key,
    get_get_cart_use_case, get_add_cart_item_use_case, get_remove_cart_item_use_case,
    get_reorder_use_case, get_create_order_use_case, get_purchase_book_design_use_case,
    get_create_subscription_link_use_case, get_reconcile_use_case, get_get_order_use_case,
    get_list_orders_use_case, get_update_fulfillment_use_case, get_list_plans_use_case,
    get_list_subscriptions_use_case, get_cancel_subscription_use_case,
)
from bookstore.application.cart import (
    GetCartUseCase, AddCartItemUseCase, RemoveCartItemUseCase, ReorderUseCase,
)
from bookstore.application.checkout import (
    CreateOrderUseCase, CreateOrderDTO, PurchaseBookDesignUseCase, PurchaseBookDesignDTO,
    CreateSubscriptionLinkUseCase, CreateSubscriptionLinkDTO,
)
from bookstore.application.reconcile import ReconcilePaymentUseCase
from bookstore.application.get_order import (
    GetOrderUseCase, ListOrdersUseCase, UpdateFulfillmentStatusUseCase,
)
from bookstore.application.subscriptions import (
    ListPlansUseCase, ListSubscriptionsUseCase, CancelSubscriptionUseCase,
)

logger = logging.getLogger(__name__)

router = APIRouter()

ERRORS = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}
GATEWAY_ERRORS = {
    **ERRORS,
    502: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


# Корзина
@router.get("/cart", response_model=CartResponse, responses=ERRORS)
async def get_cart(
    user: CurrentUser = Depends(get_current_user),
    use_case: GetCartUseCase = Depends(get_get_cart_use_case)
):
    """Корзина с актуальными ценами каталога"""
    cart = await use_case(user.id)
    return CartResponse.from_domain(cart)


@router.post("/cart/items", response_model=CartResponse, responses=ERRORS)
async def add_cart_item(
    request: AddCartItemRequest,
    user: CurrentUser = Depends(get_current_user),
    use_case: AddCartItemUseCase = Depends(get_add_cart_item_use_case)
):
    cart = await use_case(user.id, request.book_id)
    return CartResponse.from_domain(cart)


@router.delete("/cart/items/{book_id}", response_model=CartResponse, responses=ERRORS)
async def remove_cart_item(
    book_id: str,
    user: CurrentUser = Depends(get_current_user),
    use_case: RemoveCartItemUseCase = Depends(get_remove_cart_item_use_case)
):
    cart = await use_case(user.id, book_id)
    return CartResponse.from_domain(cart)


@router.post("/cart/reorder", response_model=CartResponse, responses=ERRORS)
async def reorder(
    request: ReorderRequest,
    user: CurrentUser = Depends(get_current_user),
    use_case: ReorderUseCase = Depends(get_reorder_use_case)
):
    """Вернуть книги прошлого заказа в корзину"""
    cart = await use_case(user.id, request.order_id)
    return CartResponse.from_domain(cart)


# Оформление
@router.post(
    "/checkout/create-order",
    response_model=CheckoutResponse,
    responses=GATEWAY_ERRORS,
    status_code=status.HTTP_201_CREATED
)
async def create_order(
    request: CreateOrderRequest,
    user: CurrentUser = Depends(get_current_user),
    use_case: CreateOrderUseCase = Depends(get_create_order_use_case)
):
    """Создать заказ из корзины и получить ссылку на оплату"""
    dto = CreateOrderDTO(
        user=user,
        shipping_address=request.shipping_address.to_domain(),
        payment_method=request.payment_method.to_domain(),
        idempotency_key=request.idempotency_key
    )
    result = await use_case(dto)
    return CheckoutResponse(order=OrderResponse.from_domain(result.order), payment_link_url=result.payment_link_url)


@router.post(
    "/book-designs/{design_id}/purchase",
    response_model=CheckoutResponse,
    responses=GATEWAY_ERRORS,
    status_code=status.HTTP_201_CREATED
)
async def purchase_book_design(
    design_id: str,
    request: PurchaseRequest,
    user: CurrentUser = Depends(get_current_user),
    use_case: PurchaseBookDesignUseCase = Depends(get_purchase_book_design_use_case)
):
    """Прямая покупка одной книги"""
    dto = PurchaseBookDesignDTO(
        user=user,
        design_id=design_id,
        shipping_address=request.shipping_address.to_domain() if request.shipping_address else None,
        idempotency_key=request.idempotency_key
    )
    if request.payment_method:
        dto.payment_method = request.payment_method.to_domain()
    result = await use_case(dto)
    return CheckoutResponse(order=OrderResponse.from_domain(result.order), payment_link_url=result.payment_link_url)


@router.post(
    "/checkout/create-subscription-link",
    response_model=SubscriptionCheckoutResponse,
    responses=GATEWAY_ERRORS,
    status_code=status.HTTP_201_CREATED
)
async def create_subscription_link(
    request: CreateSubscriptionLinkRequest,
    user: CurrentUser = Depends(get_current_user),
    use_case: CreateSubscriptionLinkUseCase = Depends(get_create_subscription_link_use_case)
):
    dto = CreateSubscriptionLinkDTO(user=user, plan_id=request.plan_id, idempotency_key=request.idempotency_key)
    result = await use_case(dto)
    return SubscriptionCheckoutResponse(
        subscription=SubscriptionResponse.from_domain(result.subscription),
        payment_link_url=result.payment_link_url
    )


@router.get("/checkout/payment-callback/{kind}/{reference_id}", response_class=RedirectResponse)
async def payment_callback(
    kind: PurchaseKind,
    reference_id: str,
    razorpay_payment_link_id: Optional[str] = None,
    use_case: ReconcilePaymentUseCase = Depends(get_reconcile_use_case)
):
    """Возврат пользователя со страницы оплаты: сверяем статус и уводим на фронтенд.

    Статус из query-параметров не используется, статус берется только из шлюза.
    """
    params = {"kind": kind.value, "id": reference_id}
    try:
        record = await use_case(kind, reference_id, payment_link_id=razorpay_payment_link_id)
        params["paymentStatus"] = record.payment_status.value
    except GatewayError as e:
        # запись остается в pending, пользователь обновит статус вручную
        logger.warning(f"Сверка {kind.value} {reference_id} после оплаты не удалась: {e}")
        params["paymentStatus"] = "pending"
        params["error"] = e.error_kind
    return RedirectResponse(f"{settings.FRONTEND_URL}/payment-success?{urlencode(params)}")


# Заказы
@router.get("/orders", response_model=List[OrderResponse], responses=ERRORS)
async def list_orders(
    user: CurrentUser = Depends(get_current_user),
    use_case: ListOrdersUseCase = Depends(get_list_orders_use_case)
):
    orders = await use_case(user.id)
    return [OrderResponse.from_domain(order) for order in orders]


@router.get("/orders/payment-status/{order_id}", response_model=OrderResponse, responses=GATEWAY_ERRORS)
async def order_payment_status(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    use_case: ReconcilePaymentUseCase = Depends(get_reconcile_use_case)
):
    """Ручное обновление статуса оплаты"""
    order = await use_case(PurchaseKind.ORDER, order_id, user_id=user.id)
    return OrderResponse.from_domain(order)


@router.get("/orders/{order_id}", response_model=OrderResponse, responses=ERRORS)
async def get_order(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    use_case: GetOrderUseCase = Depends(get_get_order_use_case)
):
    order = await use_case(order_id, user.id)
    return OrderResponse.from_domain(order)


@router.patch(
    "/orders/{order_id}/status",
    response_model=OrderResponse,
    responses={**ERRORS, 403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    dependencies=[Depends(require_api_key)]
)
async def update_order_status(
    order_id: str,
    request: UpdateOrderStatusRequest,
    use_case: UpdateFulfillmentStatusUseCase = Depends(get_update_fulfillment_use_case)
):
    """Смена статуса доставки (операционный сервис, X-API-Key)"""
    order = await use_case(order_id, request.status)
    return OrderResponse.from_domain(order)


# Подписки
@router.get("/subscription/plans", response_model=List[PlanResponse])
async def list_plans(use_case: ListPlansUseCase = Depends(get_list_plans_use_case)):
    plans = await use_case()
    return [PlanResponse.from_domain(plan) for plan in plans]


@router.get("/subscription", response_model=List[SubscriptionResponse], responses=ERRORS)
async def list_subscriptions(
    user: CurrentUser = Depends(get_current_user),
    use_case: ListSubscriptionsUseCase = Depends(get_list_subscriptions_use_case)
):
    subscriptions = await use_case(user.id)
    return [SubscriptionResponse.from_domain(subscription) for subscription in subscriptions]


@router.get(
    "/subscription/payment-status/{subscription_id}",
    response_model=SubscriptionResponse,
    responses=GATEWAY_ERRORS
)
async def subscription_payment_status(
    subscription_id: str,
    user: CurrentUser = Depends(get_current_user),
    use_case: ReconcilePaymentUseCase = Depends(get_reconcile_use_case)
):
    subscription = await use_case(PurchaseKind.SUBSCRIPTION, subscription_id, user_id=user.id)
    return SubscriptionResponse.from_domain(subscription)


@router.delete(
    "/subscription/{subscription_id}",
    response_model=SubscriptionResponse,
    responses={**ERRORS, 409: {"model": ErrorResponse}}
)
async def cancel_subscription(
    subscription_id: str,
    user: CurrentUser = Depends(get_current_user),
    use_case: CancelSubscriptionUseCase = Depends(get_cancel_subscription_use_case)
):
    subscription = await use_case(subscription_id, user.id)
    return SubscriptionResponse.from_domain(subscription)
