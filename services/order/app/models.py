"""
Order Service / ドメインモデル

注文集約(Order)と、外部サービスから受け取るデータ(Cart, CouponValidation)。
上流サービスは camelCase の JSON を返すため、エイリアスは camelCase、
Python 側のフィールド名は snake_case のどちらでも受け付ける。
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .status import OrderStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── 注文集約 ─────────────────────────────────────


class ShippingAddress(CamelModel):
    """配送先。入力の有無以外は検証しない。"""
    full_name: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""
    phone: str = ""


class PaymentInfo(CamelModel):
    method: str = "CreditCard"
    transaction_id: str | None = None
    amount_paid: Decimal = Decimal("0.00")
    paid_at: datetime | None = None


class OrderItem(CamelModel):
    """
    注文明細。商品名と単価は注文時点のスナップショットで、
    カタログ側が後で変わっても更新しない。
    """
    product_id: UUID
    product_name: str
    unit_price: Decimal
    quantity: int = Field(gt=0)
    total_price: Decimal


class Order(CamelModel):
    """
    注文集約

    total_amount == subtotal + tax + shipping_cost - discount は作成時のみ成立する。
    以降のステータス変更では金額を再計算しない。
    """
    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    order_number: str
    status: OrderStatus = OrderStatus.PENDING
    items: list[OrderItem] = Field(default_factory=list)
    subtotal: Decimal
    tax: Decimal
    shipping_cost: Decimal
    discount: Decimal = Decimal("0.00")
    total_amount: Decimal
    shipping_address: ShippingAddress
    payment_info: PaymentInfo
    coupon_code: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    version: int = 1


# ── 外部サービスのデータ (読み取り専用) ────────────


class CartItem(CamelModel):
    product_id: UUID
    product_name: str = ""
    unit_price: Decimal
    quantity: int
    image_url: str = ""


class Cart(CamelModel):
    user_id: UUID | None = None
    items: list[CartItem] = Field(default_factory=list)
    total_price: Decimal = Decimal("0.00")


class Coupon(CamelModel):
    id: UUID
    code: str = ""
    discount_amount: Decimal = Decimal("0.00")


class CouponValidation(CamelModel):
    is_valid: bool
    discount_amount: Decimal = Decimal("0.00")
    message: str = ""
    coupon: Coupon | None = None

    @property
    def coupon_id(self) -> UUID | None:
        return self.coupon.id if self.coupon else None
