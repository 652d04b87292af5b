"""
Order Orchestrator: 注文作成 Saga と注文ライフサイクル

Saga パターン(オーケストレーション型):
  共有トランザクションを持たない複数サービスを、順序付きのステップで協調させる。
  ローカルなトランザクションは注文ストアへの 1 回の書き込みだけ。

  注文作成フロー:
  ┌──────────────────────────────────────────────────────────────┐
  │  1. Cart Service からカートを取得        (空なら EmptyCart)      │
  │  2. 各明細の在庫を引き当て               (失敗 InsufficientStock)│
  │  3. クーポンを検証 (任意)                (失敗 InvalidCoupon)    │
  │  4. 金額を計算                                                  │
  │  5. 注文番号を採番                                              │
  │  6. 注文を保存                           ── ここまでが必須 ──    │
  │  7. クーポンを使用済みにする             (ベストエフォート)       │
  │  8. カートを空にする                     (ベストエフォート)       │
  │  9. OrderCreated を発行                  (ベストエフォート)       │
  └──────────────────────────────────────────────────────────────┘

  ステップ 2 で途中の明細が失敗しても、既に引き当てた在庫は戻さない。
  compensate_reservations=True のときだけ、失敗時に引き当て済みの在庫を解放する。
"""

import logging
from collections.abc import Awaitable, Callable
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from functools import partial
from typing import Protocol
from uuid import UUID

from .errors import (
    EmptyCart,
    InsufficientStock,
    InvalidCoupon,
    InvalidOrderState,
    OrderError,
    TransientDependencyFailure,
)
from .events import Fact, OrderCreated, OrderStatusChanged
from .models import Cart, CartItem, CouponValidation, Order, OrderItem, PaymentInfo, ShippingAddress
from .pricing import PricingPolicy, calculate_totals, generate_order_number, to_money
from .status import CANCELLABLE_STATUSES, OrderStatus, is_allowed

logger = logging.getLogger(__name__)


# ── 協調サービスのインターフェース ─────────────────


class CartService(Protocol):
    async def get_cart(self, user_id: UUID) -> Cart | None: ...

    async def clear_cart(self, user_id: UUID) -> None: ...


class InventoryService(Protocol):
    async def adjust_stock(self, product_id: UUID, delta: int) -> bool: ...


class CouponService(Protocol):
    async def validate(self, code: str, order_amount: Decimal) -> CouponValidation: ...

    async def mark_used(self, coupon_id: UUID) -> None: ...


class Publisher(Protocol):
    async def publish(self, fact: Fact) -> None: ...


class OrderRepository(Protocol):
    async def insert(self, order: Order) -> None: ...

    async def update(self, order: Order) -> None: ...

    async def find_by_id(self, order_id: UUID) -> Order | None: ...

    async def find_by_id_for_user(self, order_id: UUID, user_id: UUID) -> Order | None: ...

    async def find_by_number_for_user(self, order_number: str, user_id: UUID) -> Order | None: ...

    async def list_by_user(self, user_id: UUID) -> list[Order]: ...


# ── Saga ステップログ ─────────────────────────────


@contextmanager
def saga_step(saga_log: list[dict], action: str):
    """ステップの開始・完了・失敗を saga_log に記録する。"""
    entry = {
        "step": len(saga_log) + 1,
        "action": action,
        "status": "EXECUTING",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    saga_log.append(entry)
    try:
        yield entry
    except Exception as e:
        entry["status"] = "FAILED"
        entry["error"] = str(e)
        raise
    entry["status"] = "COMPLETED"


def skip_step(saga_log: list[dict], action: str) -> None:
    saga_log.append(
        {
            "step": len(saga_log) + 1,
            "action": action,
            "status": "SKIPPED",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )


class OrderOrchestrator:
    """注文 Saga のオーケストレーター"""

    def __init__(
        self,
        store: OrderRepository,
        carts: CartService,
        inventory: InventoryService,
        coupons: CouponService,
        publisher: Publisher,
        pricing: PricingPolicy | None = None,
        compensate_reservations: bool = False,
    ):
        self.store = store
        self.carts = carts
        self.inventory = inventory
        self.coupons = coupons
        self.publisher = publisher
        self.pricing = pricing or PricingPolicy()
        self.compensate_reservations = compensate_reservations

    # ── 注文作成 ─────────────────────────────────

    async def create_order(
        self,
        user_id: UUID,
        shipping_address: ShippingAddress,
        payment_method: str = "CreditCard",
        coupon_code: str | None = None,
    ) -> Order:
        """
        注文作成 Saga を実行する。

        ステップ 1〜6 の失敗は呼び出し元へ送出され、注文は作成されない。
        ステップ 7〜9 の失敗はログに残すだけで、作成済みの注文には影響しない。
        """
        saga_log: list[dict] = []
        reserved: list[CartItem] = []
        logger.info("Create order saga start: user=%s coupon=%s", user_id, coupon_code)

        try:
            order, coupon_id = await self._create_and_persist(
                saga_log, reserved, user_id, shipping_address, payment_method, coupon_code
            )
        except Exception as e:
            logger.warning("Create order saga failed: user=%s error=%s", user_id, e)
            if self.compensate_reservations and reserved:
                for item in reserved:
                    await self._best_effort(
                        saga_log, "ReleaseStock (COMPENSATING)", partial(self._release_one, item), user_id
                    )
            if isinstance(e, OrderError):
                e.saga_log = saga_log
            logger.debug("Saga log: %s", saga_log)
            raise

        # ── Step 7: クーポンを使用済みにする ────────
        if coupon_id is not None:
            await self._best_effort(saga_log, "MarkCouponUsed", partial(self.coupons.mark_used, coupon_id), order.id)
        else:
            skip_step(saga_log, "MarkCouponUsed")

        # ── Step 8: カートを空にする ─────────────────
        await self._best_effort(saga_log, "ClearCart", partial(self.carts.clear_cart, user_id), order.id)

        # ── Step 9: OrderCreated を発行 ─────────────
        await self._best_effort(
            saga_log, "PublishOrderCreated", partial(self.publisher.publish, OrderCreated.from_order(order)), order.id
        )

        logger.info(
            "Order created: %s - %s total=%s", order.id, order.order_number, order.total_amount
        )
        logger.debug("Saga log: %s", saga_log)
        return order

    async def _create_and_persist(
        self,
        saga_log: list[dict],
        reserved: list[CartItem],
        user_id: UUID,
        shipping_address: ShippingAddress,
        payment_method: str,
        coupon_code: str | None,
    ) -> tuple[Order, UUID | None]:
        # ── Step 1: カートを取得 ────────────────────
        with saga_step(saga_log, "GetCart"):
            cart = await self.carts.get_cart(user_id)
            if cart is None or not cart.items:
                raise EmptyCart(user_id)

        # ── Step 2: 在庫を引き当て ──────────────────
        with saga_step(saga_log, "ReserveInventory"):
            for item in cart.items:
                if not await self.inventory.adjust_stock(item.product_id, -item.quantity):
                    raise InsufficientStock(item.product_id)
                reserved.append(item)

        # ── Step 3: クーポンを検証 ──────────────────
        discount = Decimal("0.00")
        coupon_id = None
        if coupon_code:
            with saga_step(saga_log, "ValidateCoupon"):
                validation = await self.coupons.validate(coupon_code, cart.total_price)
                if not validation.is_valid:
                    raise InvalidCoupon(validation.message or "Invalid coupon")
                discount = validation.discount_amount
                coupon_id = validation.coupon_id
        else:
            skip_step(saga_log, "ValidateCoupon")

        # ── Step 4〜5: 金額計算と採番 ───────────────
        with saga_step(saga_log, "CalculateTotals"):
            totals = calculate_totals(cart.total_price, shipping_address.country, discount, self.pricing)
            now = datetime.now(timezone.utc)
            order = Order(
                user_id=user_id,
                order_number=generate_order_number(now),
                status=OrderStatus.PENDING,
                items=[
                    OrderItem(
                        product_id=item.product_id,
                        product_name=item.product_name,
                        unit_price=to_money(item.unit_price),
                        quantity=item.quantity,
                        total_price=to_money(item.unit_price * item.quantity),
                    )
                    for item in cart.items
                ],
                subtotal=totals.subtotal,
                tax=totals.tax,
                shipping_cost=totals.shipping_cost,
                discount=totals.discount,
                total_amount=totals.total_amount,
                shipping_address=shipping_address,
                payment_info=PaymentInfo(method=payment_method, amount_paid=totals.total_amount),
                coupon_code=coupon_code or None,
                created_at=now,
            )

        # ── Step 6: 注文を保存 ──────────────────────
        with saga_step(saga_log, "PersistOrder"):
            await self.store.insert(order)

        return order, coupon_id

    # ── ステータス更新 (管理者向け) ───────────────

    async def update_status(self, order_id: UUID, new_status: OrderStatus) -> bool:
        """
        注文ステータスを更新する。

        注文が無い、または遷移が許可されていなければ False を返し何も変更しない。
        """
        new_status = OrderStatus(new_status)
        order = await self.store.find_by_id(order_id)
        if order is None:
            return False

        if not is_allowed(order.status, new_status):
            logger.info(
                "Rejected status transition: %s %s -> %s", order_id, order.status.value, new_status.value
            )
            return False

        # 発行するファクトのために変更前のステータスを先に控えておく
        old_status = order.status
        order.status = new_status
        order.updated_at = datetime.now(timezone.utc)
        await self.store.update(order)

        await self._publish_status_changed(order, old_status)
        logger.info("Order status updated: %s -> %s", order_id, new_status.value)
        return True

    # ── キャンセル (注文者本人) ───────────────────

    async def cancel_order(self, order_id: UUID, user_id: UUID) -> bool:
        """
        注文をキャンセルし、保存に成功してから明細ごとに在庫を戻す(補償)。

        他人の注文は存在しない注文と同じく False を返す。
        キャンセルできない状態なら InvalidOrderState を送出する。
        """
        order = await self.store.find_by_id_for_user(order_id, user_id)
        if order is None:
            return False

        if order.status not in CANCELLABLE_STATUSES:
            raise InvalidOrderState(order.id, order.status.value)

        old_status = order.status
        order.status = OrderStatus.CANCELLED
        order.updated_at = datetime.now(timezone.utc)

        # ステータスを先に保存する。同時キャンセルの敗者は ConcurrencyConflict で
        # ここで止まり、在庫を二重に戻さない。
        await self.store.update(order)

        # 在庫の解放に失敗してもキャンセル自体は成立している
        release_log: list[dict] = []
        for item in order.items:
            await self._best_effort(release_log, "ReleaseStock", partial(self._release_one, item), order.id)
        logger.debug("Release log: %s", release_log)

        await self._publish_status_changed(order, old_status)
        logger.info("Order cancelled: %s", order_id)
        return True

    # ── 参照 ─────────────────────────────────────

    async def get_order_for_user(self, order_id: UUID, user_id: UUID) -> Order | None:
        return await self.store.find_by_id_for_user(order_id, user_id)

    async def get_order_by_number_for_user(self, order_number: str, user_id: UUID) -> Order | None:
        return await self.store.find_by_number_for_user(order_number, user_id)

    async def list_orders_for_user(self, user_id: UUID) -> list[Order]:
        return await self.store.list_by_user(user_id)

    # ── 内部ヘルパー ─────────────────────────────

    async def _best_effort(
        self,
        saga_log: list[dict],
        action: str,
        call: Callable[[], Awaitable[None]],
        ref: UUID,
    ) -> bool:
        """
        ベストエフォートのステップを実行する。

        例外はログに記録して握りつぶし、成否だけを返す。
        """
        try:
            with saga_step(saga_log, action):
                await call()
        except Exception:
            logger.exception("[order=%s] %s failed (ignored)", ref, action)
            return False
        return True

    async def _release_one(self, item: CartItem | OrderItem) -> None:
        if not await self.inventory.adjust_stock(item.product_id, item.quantity):
            raise TransientDependencyFailure("inventory", f"stock release rejected for product {item.product_id}")

    async def _publish_status_changed(self, order: Order, old_status: OrderStatus) -> None:
        fact = OrderStatusChanged(
            order_id=order.id,
            user_id=order.user_id,
            old_status=old_status.value,
            new_status=order.status.value,
            updated_at=order.updated_at,
        )
        await self._best_effort([], "PublishOrderStatusChanged", partial(self.publisher.publish, fact), order.id)
