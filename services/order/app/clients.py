"""
Order Service / 外部サービスクライアント

注文 Saga が呼び出す 3 つの協調サービスへの薄いアダプター。

  ┌───────────────┐     ┌─────────────────────┐
  │               │────▶│ ShoppingCart API    │  GET/DELETE api/cart?userId=
  │ Order Service │────▶│ Product API (在庫)  │  PUT api/products/{id}/stock
  │               │────▶│ Coupon API          │  POST api/coupons/validate
  └───────────────┘     └─────────────────────┘

httpx.AsyncClient はプロセス内で 1 つを共有し (lifespan で生成)、
タイムアウトもそのクライアントの設定に従う。
通信エラー・タイムアウトは TransientDependencyFailure に変換する。
"""

import logging
from decimal import Decimal
from uuid import UUID

import httpx

from .errors import TransientDependencyFailure
from .models import Cart, CouponValidation

logger = logging.getLogger(__name__)


class CartClient:
    """ShoppingCart API クライアント"""

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def get_cart(self, user_id: UUID) -> Cart | None:
        """ユーザーのカートを取得する。存在しなければ None。"""
        try:
            resp = await self.client.get(
                f"{self.base_url}/api/cart",
                params={"userId": str(user_id)},
            )
        except httpx.HTTPError as e:
            raise TransientDependencyFailure("cart", str(e)) from e

        if resp.status_code == 404:
            return None
        if resp.is_error:
            raise TransientDependencyFailure("cart", f"HTTP {resp.status_code}")
        return Cart.model_validate(resp.json())

    async def clear_cart(self, user_id: UUID) -> None:
        """カートを空にする。空・存在しないカートに対しても安全に呼べる。"""
        try:
            resp = await self.client.delete(
                f"{self.base_url}/api/cart",
                params={"userId": str(user_id)},
            )
        except httpx.HTTPError as e:
            raise TransientDependencyFailure("cart", str(e)) from e

        if resp.is_error and resp.status_code != 404:
            raise TransientDependencyFailure("cart", f"HTTP {resp.status_code}")


class InventoryClient:
    """Product API の在庫調整クライアント"""

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def adjust_stock(self, product_id: UUID, delta: int) -> bool:
        """
        在庫数を delta だけ増減する。

        delta < 0: 引き当て(予約)。False は在庫不足を意味する。
        delta > 0: 解放(補償)。
        """
        try:
            resp = await self.client.put(
                f"{self.base_url}/api/products/{product_id}/stock",
                json={"quantity": delta},
            )
        except httpx.HTTPError as e:
            raise TransientDependencyFailure("inventory", str(e)) from e

        if resp.is_error:
            logger.info(
                "Stock adjustment rejected: product=%s delta=%d status=%d",
                product_id,
                delta,
                resp.status_code,
            )
            return False
        return True


class CouponClient:
    """Coupon API クライアント"""

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def validate(self, code: str, order_amount: Decimal) -> CouponValidation:
        """
        クーポンを注文金額に対して検証する。

        Coupon API 側のエラーや通信失敗は「無効なクーポン」として返す。
        """
        try:
            resp = await self.client.post(
                f"{self.base_url}/api/coupons/validate",
                json={"code": code, "orderAmount": float(order_amount)},
            )
        except httpx.HTTPError:
            logger.exception("Error validating coupon %s", code)
            return CouponValidation(is_valid=False, message="Error validating coupon")

        if resp.is_error:
            return CouponValidation(is_valid=False, message="Coupon validation failed")
        return CouponValidation.model_validate(resp.json())

    async def mark_used(self, coupon_id: UUID) -> None:
        """クーポンを使用済みにする。"""
        try:
            resp = await self.client.post(f"{self.base_url}/api/coupons/{coupon_id}/use")
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise TransientDependencyFailure("coupon", str(e)) from e
