"""
Order Service / 注文ステータスの状態遷移

状態遷移表はモジュール定数として一箇所にだけ定義する。
ステータスを変更する操作はすべて is_allowed() を経由する。

    Pending ──▶ Confirmed ──▶ Processing ──▶ Shipped ──▶ Delivered ──▶ Refunded
       │            │              │
       └────────────┴──────────────┴──▶ Cancelled

Cancelled と Refunded は終端状態。同じ状態への遷移も許可しない。
"""

from enum import Enum
from types import MappingProxyType


class OrderStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"


ALLOWED_TRANSITIONS = MappingProxyType(
    {
        OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
        OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
        OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
        OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
        OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
        OrderStatus.CANCELLED: frozenset(),
        OrderStatus.REFUNDED: frozenset(),
    }
)

# 利用者自身がキャンセルできる状態 (管理者のステータス更新とは別ルール)
CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})


def is_allowed(current: OrderStatus, requested: OrderStatus) -> bool:
    """current から requested への遷移が許可されているか判定する。"""
    return requested in ALLOWED_TRANSITIONS.get(current, frozenset())
