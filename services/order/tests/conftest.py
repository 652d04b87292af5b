"""Shared fixtures for the order service tests."""

import os

# app.config reads these at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CART_SERVICE_URL", "http://cart.test")
os.environ.setdefault("PRODUCT_SERVICE_URL", "http://product.test")
os.environ.setdefault("COUPON_SERVICE_URL", "http://coupon.test")

from decimal import Decimal  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402

from app.models import ShippingAddress  # noqa: E402
from app.orchestrator import OrderOrchestrator  # noqa: E402
from tests.fakes import (  # noqa: E402
    COUPON_ID,
    FakeCartService,
    FakeCouponService,
    FakeInventoryService,
    FakeOrderStore,
    FakePublisher,
    make_cart,
)



@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def products():
    return {"widget": uuid4(), "gadget": uuid4()}


@pytest.fixture
def cart_service(user_id, products):
    # 2 x 40.00 + 1 x 20.00 = 100.00
    cart = make_cart(
        user_id,
        [
            (products["widget"], "Widget", "40.00", 2),
            (products["gadget"], "Gadget", "20.00", 1),
        ],
    )
    return FakeCartService({user_id: cart})


@pytest.fixture
def inventory(products):
    return FakeInventoryService({products["widget"]: 10, products["gadget"]: 5})


@pytest.fixture
def coupon_service():
    return FakeCouponService({"SAVE15": (COUPON_ID, Decimal("15.00"))})


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def store():
    return FakeOrderStore()


@pytest.fixture
def orchestrator(store, cart_service, inventory, coupon_service, publisher):
    return OrderOrchestrator(
        store=store,
        carts=cart_service,
        inventory=inventory,
        coupons=coupon_service,
        publisher=publisher,
    )


@pytest.fixture
def usa_address():
    return ShippingAddress(
        full_name="Jane Doe",
        street="1 Main St",
        city="Springfield",
        state="IL",
        zip_code="62701",
        country="USA",
        phone="555-0100",
    )


@pytest.fixture
def france_address():
    return ShippingAddress(
        full_name="Jean Dupont",
        street="1 Rue de Rivoli",
        city="Paris",
        zip_code="75001",
        country="France",
    )
