"""
Корзина: идемпотентное добавление, живые цены, повторный заказ.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from bookstore.domain.models import Book, Order, OrderItem, PaymentMethod
from bookstore.domain.exceptions import BookNotFoundError, OrderNotFoundError
from bookstore.application.cart import (
    GetCartUseCase, AddCartItemUseCase, RemoveCartItemUseCase, ReorderUseCase,
)


class TestCart:

    async def test_add_is_noop_when_already_present(self, uow, catalog, store):
        add = AddCartItemUseCase(uow, catalog)
        await add("u1", "b1")
        cart = await add("u1", "b1")

        assert store.carts["u1"] == ["b1"]
        assert [line.book_id for line in cart.items] == ["b1"]

    async def test_add_unknown_book(self, uow, catalog):
        with pytest.raises(BookNotFoundError):
            await AddCartItemUseCase(uow, catalog)("u1", "missing")

    async def test_remove(self, uow, catalog, store):
        store.carts["u1"] = ["b1", "b2"]
        cart = await RemoveCartItemUseCase(uow, catalog)("u1", "b1")

        assert store.carts["u1"] == ["b2"]
        assert cart.total == Decimal("4.99")

    async def test_fetch_uses_live_prices(self, uow, catalog, store):
        store.carts["u1"] = ["b1", "b2"]
        get_cart = GetCartUseCase(uow, catalog)
        assert (await get_cart("u1")).total == Decimal("14.98")

        catalog.books["b1"] = Book(id="b1", title="Dune", author="Frank Herbert", price=Decimal("7.49"))
        assert (await get_cart("u1")).total == Decimal("12.48")

    async def test_fetch_skips_books_missing_from_catalog(self, uow, catalog, store):
        store.carts["u1"] = ["b1", "gone"]
        cart = await GetCartUseCase(uow, catalog)("u1")

        assert [line.book_id for line in cart.items] == ["b1"]
        assert cart.total == Decimal("9.99")

    async def test_carts_are_per_user(self, uow, catalog, store):
        await AddCartItemUseCase(uow, catalog)("u1", "b1")
        assert (await GetCartUseCase(uow, catalog)("u2")).items == []


class TestReorder:

    @pytest.fixture
    def past_order(self, store):
        now = datetime.now(timezone.utc)
        items = [
            OrderItem(book_id="b1", title="Dune", author="Frank Herbert", price=Decimal("8.00")),
            OrderItem(book_id="b2", title="Solaris", author="Stanislaw Lem", price=Decimal("4.00")),
        ]
        order = Order(
            id="old-1", user_id="u1", items=items, total=Order.compute_total(items),
            payment_method=PaymentMethod(type="upi"), created_at=now, updated_at=now,
        )
        store.orders[order.id] = order
        return order

    async def test_adds_order_books_without_duplicates(self, uow, catalog, store, past_order):
        store.carts["u1"] = ["b1"]
        cart = await ReorderUseCase(uow, catalog)("u1", past_order.id)

        assert store.carts["u1"] == ["b1", "b2"]
        # цена берется из каталога, а не из старого заказа
        assert cart.total == Decimal("14.98")

    async def test_foreign_order_is_not_found(self, uow, catalog, past_order):
        with pytest.raises(OrderNotFoundError):
            await ReorderUseCase(uow, catalog)("u2", past_order.id)
