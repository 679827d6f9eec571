import httpx
import logging
from typing import Optional
import asyncio

from bookstore.domain.models import Book, CurrentUser
from bookstore.domain.exceptions import CatalogServiceError, AuthServiceError
from bookstore.application.interfaces import CatalogService, AuthService, NotificationsService

logger = logging.getLogger(__name__)


def _to_book(data: dict) -> Book:
    author = data.get("author") or data.get("authorName") or ""
    if isinstance(author, dict):
        author = author.get("name", "")
    return Book(
        id=str(data.get("id") or data.get("_id")),
        title=data["title"],
        author=author,
        price=data.get("price") or 0,
        is_free=data.get("isFree", False),
    )


class HTTPCatalogClient(CatalogService):
    def __init__(self, base_url: str, api_token: str, transport: httpx.AsyncBaseTransport = None):
        self._base_url = base_url
        self._api_token = api_token
        self._transport = transport

    async def get_book(self, book_id: str) -> Optional[Book]:
        return await self._get(f"/api/books/{book_id}")

    async def get_book_design(self, design_id: str) -> Optional[Book]:
        return await self._get(f"/api/book-designs/{design_id}")

    async def _get(self, path: str) -> Optional[Book]:
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.get(
                    f"{self._base_url}{path}",
                    headers={"X-API-Key": self._api_token},
                    timeout=10.0
                )

                if response.status_code == 200:
                    try:
                        return _to_book(response.json())
                    except (ValueError, KeyError, TypeError, AttributeError) as e:
                        logger.error(f"Catalog service вернул некорректный ответ для {path}: {e!r}")
                        raise CatalogServiceError(f"Catalog service вернул некорректный ответ: {path}") from e
                elif response.status_code == 404:
                    return None
                else:
                    raise CatalogServiceError(f"Catalog service ошибка: {response.status_code}")

        except httpx.RequestError as e:
            logger.error(f"Catalog service ошибка подключения: {e}")
            raise CatalogServiceError(f"Catalog service не доступен: {str(e)}")


class HTTPAuthClient(AuthService):
    """Проверка bearer-токена во внешнем сервисе авторизации"""

    def __init__(self, base_url: str, transport: httpx.AsyncBaseTransport = None):
        self._base_url = base_url
        self._transport = transport

    async def get_user(self, token: str) -> Optional[CurrentUser]:
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.get(
                    f"{self._base_url}/api/auth/me",
                    headers={"Authorization": f"Bearer {token}"},
                    timeout=10.0
                )
        except httpx.RequestError as e:
            logger.error(f"Auth service ошибка подключения: {e}")
            raise AuthServiceError(f"Auth service не доступен: {str(e)}")

        if response.status_code in (401, 403):
            return None
        if response.status_code != 200:
            raise AuthServiceError(f"Auth service ошибка: {response.status_code}")

        data = response.json()
        user = data.get("user", data)
        return CurrentUser(
            id=str(user.get("id") or user.get("_id")),
            name=user.get("name", ""),
            email=user.get("email", ""),
            phone=user.get("phone") or "",
        )


class HTTPNotificationsClient(NotificationsService):
    def __init__(
        self, base_url: str, api_token: str, max_retries: int = 3, retry_delay: float = 0.5,
        transport: httpx.AsyncBaseTransport = None
    ):
        self._base_url = base_url
        self._api_token = api_token
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._transport = transport

    async def send(self, message: str, reference_id: str, idempotency_key: str, user_id: str) -> bool:
        """Отправка уведомления с повторными попытками"""
        for attempt in range(self._max_retries):
            try:
                async with httpx.AsyncClient(transport=self._transport) as client:
                    response = await client.post(
                        f"{self._base_url}/api/notifications",
                        json={
                            "user_id": user_id,
                            "message": message,
                            "reference_id": reference_id,
                            "idempotency_key": idempotency_key
                        },
                        headers={"X-API-Key": self._api_token},
                        timeout=10.0
                    )

                    if response.status_code in (200, 201):
                        logger.info(f"Уведомление отправлено (попытка {attempt + 1})")
                        return True
                    else:
                        logger.warning(f"Уведомление вернуло статус {response.status_code}")

            except httpx.RequestError as e:
                logger.warning(f"Ошибка отправки уведомления (попытка {attempt + 1}/{self._max_retries}): {e}")

            # Ждем перед следующей попыткой (кроме последней)
            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._retry_delay)

        logger.error(f"Не удалось отправить уведомление после {self._max_retries} попыток")
        return False
