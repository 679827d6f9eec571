import logging
from decimal import Decimal
from typing import List

from bookstore.domain.models import Cart, CartLine
from bookstore.domain.exceptions import (
    BookNotFoundError, DuplicateRecordError, OrderNotFoundError, ValidationError,
)
from bookstore.application.interfaces import CatalogService


logger = logging.getLogger(__name__)


async def price_cart(user_id: str, book_ids: List[str], catalog: CatalogService) -> Cart:
    """Считает корзину по живым ценам каталога. Клиентским ценам не доверяем."""
    lines = []
    for book_id in book_ids:
        book = await catalog.get_book(book_id)
        if not book:
            logger.warning(f"Книга {book_id} из корзины {user_id} не найдена в каталоге")
            continue
        lines.append(CartLine(book_id=book.id, title=book.title, author=book.author, price=book.price))
    total = sum((line.price for line in lines), Decimal("0"))
    return Cart(user_id=user_id, items=lines, total=total)


class GetCartUseCase:
    def __init__(self, unit_of_work, catalog_service: CatalogService):
        self._uow = unit_of_work
        self._catalog = catalog_service

    async def __call__(self, user_id: str) -> Cart:
        async with self._uow() as uow:
            book_ids = await uow.cart.list_book_ids(user_id)
        return await price_cart(user_id, book_ids, self._catalog)


class AddCartItemUseCase:
    def __init__(self, unit_of_work, catalog_service: CatalogService):
        self._uow = unit_of_work
        self._catalog = catalog_service

    async def __call__(self, user_id: str, book_id: str) -> Cart:
        if not book_id:
            raise ValidationError("Не указан bookId")
        book = await self._catalog.get_book(book_id)
        if not book:
            raise BookNotFoundError(f"Книга {book_id} не найдена")

        try:
            async with self._uow() as uow:
                await uow.cart.add(user_id, book_id)
                await uow.commit()
        except DuplicateRecordError:
            # параллельный запрос уже добавил эту книгу
            logger.info(f"Книга {book_id} уже в корзине {user_id}")

        async with self._uow() as uow:
            book_ids = await uow.cart.list_book_ids(user_id)
        return await price_cart(user_id, book_ids, self._catalog)


class RemoveCartItemUseCase:
    def __init__(self, unit_of_work, catalog_service: CatalogService):
        self._uow = unit_of_work
        self._catalog = catalog_service

    async def __call__(self, user_id: str, book_id: str) -> Cart:
        async with self._uow() as uow:
            await uow.cart.remove(user_id, book_id)
            await uow.commit()
            book_ids = await uow.cart.list_book_ids(user_id)
        return await price_cart(user_id, book_ids, self._catalog)


class ReorderUseCase:
    """Повторный заказ: возвращает книги прошлого заказа в корзину"""

    def __init__(self, unit_of_work, catalog_service: CatalogService):
        self._uow = unit_of_work
        self._catalog = catalog_service

    async def __call__(self, user_id: str, order_id: str) -> Cart:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order or order.user_id != user_id:
                raise OrderNotFoundError(f"Заказ {order_id} не найден")

            in_cart = set(await uow.cart.list_book_ids(user_id))
            for item in order.items:
                if item.book_id not in in_cart:
                    await uow.cart.add(user_id, item.book_id)
                    in_cart.add(item.book_id)
            await uow.commit()
            book_ids = await uow.cart.list_book_ids(user_id)

        logger.info(f"Книги заказа {order_id} добавлены в корзину {user_id}")
        return await price_cart(user_id, book_ids, self._catalog)
