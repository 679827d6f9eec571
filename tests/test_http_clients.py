"""
Клиент каталога поверх httpx.MockTransport: разбор ответа и ошибки сервиса.
"""

from decimal import Decimal

import httpx
import pytest

from bookstore.domain.exceptions import CatalogServiceError
from bookstore.infrastructure.http_clients import HTTPCatalogClient


def make_catalog(handler) -> HTTPCatalogClient:
    return HTTPCatalogClient("http://catalog.test", "token", transport=httpx.MockTransport(handler))


class TestCatalogClient:

    async def test_book_is_parsed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/books/b1"
            assert request.headers["x-api-key"] == "token"
            return httpx.Response(200, json={
                "_id": "b1", "title": "Dune", "author": {"name": "Frank Herbert"}, "price": 9.99,
            })

        book = await make_catalog(handler).get_book("b1")

        assert book.id == "b1"
        assert book.author == "Frank Herbert"
        assert book.price == Decimal("9.99")

    async def test_missing_book(self):
        assert await make_catalog(lambda request: httpx.Response(404)).get_book_design("d1") is None

    @pytest.mark.parametrize("response", [
        httpx.Response(200, json={"id": "b1", "price": 9.99}),
        httpx.Response(200, content=b"<html>gateway timeout</html>"),
        httpx.Response(200, json=["b1"]),
        httpx.Response(200, json={"id": "b1", "title": "Dune", "price": "free"}),
    ])
    async def test_malformed_response_is_service_error(self, response):
        with pytest.raises(CatalogServiceError):
            await make_catalog(lambda request: response).get_book("b1")

    async def test_server_error(self):
        with pytest.raises(CatalogServiceError):
            await make_catalog(lambda request: httpx.Response(500)).get_book("b1")
