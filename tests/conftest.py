from decimal import Decimal

import pytest

from bookstore.domain.models import Book, CurrentUser, ShippingAddress, PaymentMethod
from bookstore.application.checkout import PaymentInitiator
from bookstore.application.reconcile import ReconcilePaymentUseCase
from bookstore.application.subscriptions import DEFAULT_PLANS

from fakes import (
    InMemoryStore, InMemoryUnitOfWork, FakeCatalog, FakeGateway, FakeNotifications,
)


@pytest.fixture
def store():
    store = InMemoryStore()
    for plan in DEFAULT_PLANS:
        store.plans[plan.id] = plan
    return store


@pytest.fixture
def uow(store):
    return InMemoryUnitOfWork(store)


@pytest.fixture
def catalog():
    return FakeCatalog(
        books=[
            Book(id="b1", title="Dune", author="Frank Herbert", price=Decimal("9.99")),
            Book(id="b2", title="Solaris", author="Stanislaw Lem", price=Decimal("4.99")),
        ],
        designs=[
            Book(id="d1", title="Night Garden", author="A. Writer", price=Decimal("12.50")),
            Book(id="d-free", title="Open Letters", author="A. Writer", price=Decimal("0"), is_free=True),
        ],
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifications():
    return FakeNotifications()


@pytest.fixture
def user():
    return CurrentUser(id="u1", name="Asha Rao", email="asha@example.com", phone="9000000001")


@pytest.fixture
def other_user():
    return CurrentUser(id="u2", name="Ravi Iyer", email="ravi@example.com", phone="9000000002")


@pytest.fixture
def shipping():
    return ShippingAddress(
        full_name="Asha Rao",
        email="asha@example.com",
        phone="9000000001",
        address="12 MG Road",
        city="Bengaluru",
        state="KA",
        zip_code="560001",
        country="IN",
    )


@pytest.fixture
def payment_method():
    return PaymentMethod(type="upi")


@pytest.fixture
def initiator(uow, gateway):
    return PaymentInitiator(uow, gateway, currency="INR", service_url="https://shop.example.com")


@pytest.fixture
def reconcile(uow, gateway, notifications):
    return ReconcilePaymentUseCase(uow, gateway, notifications, subscription_period_days=30)
