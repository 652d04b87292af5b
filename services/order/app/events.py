"""
Order Service / ファクト(イベント)定義

下流サービス(メール送信・決済など)向けに発行する事実。
過去形で命名し、不変(immutable)として扱う。
配信保証は発行側の関心事ではない (fire-and-forget)。
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from .models import Order


class Fact(BaseModel):
    model_config = ConfigDict(frozen=True)

    fact_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def event_type(self) -> str:
        return type(self).__name__


class OrderItemFact(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: UUID
    product_name: str
    quantity: int
    price: Decimal


class OrderCreated(Fact):
    """注文が作成された"""
    order_id: UUID
    user_id: UUID
    order_number: str
    total_amount: Decimal
    items: list[OrderItemFact]

    @classmethod
    def from_order(cls, order: Order) -> "OrderCreated":
        return cls(
            order_id=order.id,
            user_id=order.user_id,
            order_number=order.order_number,
            total_amount=order.total_amount,
            items=[
                OrderItemFact(
                    product_id=item.product_id,
                    product_name=item.product_name,
                    quantity=item.quantity,
                    price=item.unit_price,
                )
                for item in order.items
            ],
        )


class OrderStatusChanged(Fact):
    """注文ステータスが変更された (old_status は変更前に取得した値)"""
    order_id: UUID
    user_id: UUID
    old_status: str
    new_status: str
    updated_at: datetime
