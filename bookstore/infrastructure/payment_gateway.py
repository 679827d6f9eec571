import httpx
import logging

from bookstore.domain.models import Customer, PaymentLink
from bookstore.domain.exceptions import (
    GatewayConfigError, GatewayNetworkError, GatewayValidationError,
)
from bookstore.application.interfaces import PaymentGateway

logger = logging.getLogger(__name__)


class RazorpayPaymentGateway(PaymentGateway):
    """Клиент Razorpay Payment Links API. Состояния не хранит."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport = None,
    ):
        if not key_id or not key_secret:
            raise GatewayConfigError("Не заданы RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET")
        self._auth = (key_id, key_secret)
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def create_payment_link(
        self, amount_minor_units: int, currency: str, description: str,
        customer: Customer, callback_url: str
    ) -> PaymentLink:
        return await self._create_link(amount_minor_units, currency, description, customer, callback_url)

    async def create_subscription_link(
        self, amount_minor_units: int, currency: str, description: str,
        customer: Customer, callback_url: str
    ) -> PaymentLink:
        return await self._create_link(amount_minor_units, currency, description, customer, callback_url)

    async def get_status(self, link_id: str) -> str:
        data = await self._request("GET", f"/payment_links/{link_id}")
        status = data.get("status")
        if not status:
            raise GatewayValidationError(f"В ответе шлюза нет статуса для {link_id}")
        return status

    async def _create_link(
        self, amount_minor_units: int, currency: str, description: str,
        customer: Customer, callback_url: str
    ) -> PaymentLink:
        payload = {
            "amount": amount_minor_units,
            "currency": currency,
            "description": description,
            "customer": {
                "name": customer.name,
                "email": customer.email,
                "contact": customer.contact,
            },
            "notify": {"sms": True, "email": True},
            "callback_url": callback_url,
            "callback_method": "get",
        }
        data = await self._request("POST", "/payment_links", json=payload)
        if "id" not in data or "short_url" not in data:
            raise GatewayValidationError("Шлюз вернул ответ без id/short_url")
        logger.info(f"Создана платежная ссылка {data['id']} на {amount_minor_units} {currency}")
        return PaymentLink(id=data["id"], url=data["short_url"])

    async def _request(self, method: str, path: str, json: dict = None) -> dict:
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.request(
                    method,
                    f"{self._base_url}{path}",
                    json=json,
                    auth=self._auth,
                    timeout=self._timeout
                )
        except httpx.TimeoutException as e:
            logger.error(f"Payment gateway таймаут {method} {path}: {e}")
            raise GatewayNetworkError(f"Payment gateway не ответил за {self._timeout} с")
        except httpx.RequestError as e:
            logger.error(f"Payment gateway ошибка подключения: {e}")
            raise GatewayNetworkError(f"Payment gateway не доступен: {str(e)}")

        if response.status_code >= 500:
            raise GatewayNetworkError(f"Payment gateway ошибка: {response.status_code}")
        if response.status_code >= 400:
            raise GatewayValidationError(self._error_message(response))

        try:
            return response.json()
        except ValueError:
            raise GatewayValidationError("Payment gateway вернул не JSON")

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            error = response.json().get("error", {})
        except ValueError:
            return f"Payment gateway ошибка: {response.status_code}"
        return error.get("description") or f"Payment gateway ошибка: {response.status_code}"
