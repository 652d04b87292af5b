"""Tests for the httpx adapters, using httpx.MockTransport in place of the network."""

import json
from decimal import Decimal
from uuid import uuid4

import httpx
import pytest

from app.clients import CartClient, CouponClient, InventoryClient
from app.errors import TransientDependencyFailure


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ── Cart ─────────────────────────────────────────


@pytest.mark.asyncio
async def test_get_cart_parses_camel_case(user_id):
    product_id = uuid4()
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "userId": str(user_id),
                "items": [
                    {
                        "productId": str(product_id),
                        "productName": "Widget",
                        "unitPrice": 40.0,
                        "quantity": 2,
                    }
                ],
                "totalPrice": 80.0,
            },
        )

    async with _client(handler) as http:
        cart = await CartClient(http, "http://cart.test/").get_cart(user_id)

    assert seen[0].method == "GET"
    assert seen[0].url.path == "/api/cart"
    assert seen[0].url.params["userId"] == str(user_id)
    assert cart.items[0].product_id == product_id
    assert cart.items[0].quantity == 2
    assert cart.total_price == Decimal("80.0")


@pytest.mark.asyncio
async def test_get_cart_not_found(user_id):
    async with _client(lambda request: httpx.Response(404)) as http:
        assert await CartClient(http, "http://cart.test").get_cart(user_id) is None


@pytest.mark.asyncio
async def test_get_cart_server_error_is_transient(user_id):
    async with _client(lambda request: httpx.Response(500)) as http:
        with pytest.raises(TransientDependencyFailure) as exc_info:
            await CartClient(http, "http://cart.test").get_cart(user_id)
    assert exc_info.value.dependency == "cart"


@pytest.mark.asyncio
async def test_get_cart_timeout_is_transient(user_id):
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    async with _client(handler) as http:
        with pytest.raises(TransientDependencyFailure):
            await CartClient(http, "http://cart.test").get_cart(user_id)


@pytest.mark.asyncio
async def test_clear_cart_tolerates_missing_cart(user_id):
    methods = []

    def handler(request):
        methods.append(request.method)
        return httpx.Response(404)

    async with _client(handler) as http:
        await CartClient(http, "http://cart.test").clear_cart(user_id)
    assert methods == ["DELETE"]


@pytest.mark.asyncio
async def test_clear_cart_server_error(user_id):
    async with _client(lambda request: httpx.Response(503)) as http:
        with pytest.raises(TransientDependencyFailure):
            await CartClient(http, "http://cart.test").clear_cart(user_id)


# ── Inventory ────────────────────────────────────


@pytest.mark.asyncio
async def test_adjust_stock_sends_signed_delta():
    product_id = uuid4()
    seen = []

    def handler(request):
        seen.append((request.method, request.url.path, json.loads(request.content)))
        return httpx.Response(200)

    async with _client(handler) as http:
        inventory = InventoryClient(http, "http://product.test")
        assert await inventory.adjust_stock(product_id, -3) is True
        assert await inventory.adjust_stock(product_id, 3) is True

    assert seen == [
        ("PUT", f"/api/products/{product_id}/stock", {"quantity": -3}),
        ("PUT", f"/api/products/{product_id}/stock", {"quantity": 3}),
    ]


@pytest.mark.asyncio
async def test_adjust_stock_rejected():
    async with _client(lambda request: httpx.Response(400)) as http:
        assert await InventoryClient(http, "http://product.test").adjust_stock(uuid4(), -1) is False


@pytest.mark.asyncio
async def test_adjust_stock_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with _client(handler) as http:
        with pytest.raises(TransientDependencyFailure) as exc_info:
            await InventoryClient(http, "http://product.test").adjust_stock(uuid4(), -1)
    assert exc_info.value.dependency == "inventory"


# ── Coupon ───────────────────────────────────────


@pytest.mark.asyncio
async def test_validate_coupon():
    coupon_id = uuid4()
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "isValid": True,
                "discountAmount": 15.0,
                "message": "Coupon applied successfully",
                "coupon": {"id": str(coupon_id), "code": "SAVE15", "discountAmount": 15.0},
            },
        )

    async with _client(handler) as http:
        result = await CouponClient(http, "http://coupon.test").validate("SAVE15", Decimal("100.00"))

    assert bodies == [{"code": "SAVE15", "orderAmount": 100.0}]
    assert result.is_valid
    assert result.discount_amount == Decimal("15.0")
    assert result.coupon_id == coupon_id


@pytest.mark.asyncio
async def test_validate_coupon_http_error_is_invalid():
    async with _client(lambda request: httpx.Response(500)) as http:
        result = await CouponClient(http, "http://coupon.test").validate("SAVE15", Decimal("100.00"))
    assert not result.is_valid
    assert result.message == "Coupon validation failed"


@pytest.mark.asyncio
async def test_validate_coupon_transport_error_is_invalid():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    async with _client(handler) as http:
        result = await CouponClient(http, "http://coupon.test").validate("SAVE15", Decimal("100.00"))
    assert not result.is_valid
    assert result.message == "Error validating coupon"


@pytest.mark.asyncio
async def test_mark_used():
    coupon_id = uuid4()
    paths = []

    def handler(request):
        paths.append((request.method, request.url.path))
        return httpx.Response(200)

    async with _client(handler) as http:
        await CouponClient(http, "http://coupon.test").mark_used(coupon_id)
    assert paths == [("POST", f"/api/coupons/{coupon_id}/use")]


@pytest.mark.asyncio
async def test_mark_used_failure():
    async with _client(lambda request: httpx.Response(404)) as http:
        with pytest.raises(TransientDependencyFailure):
            await CouponClient(http, "http://coupon.test").mark_used(uuid4())
