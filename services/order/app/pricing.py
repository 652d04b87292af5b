"""
Order Service / 価格計算と注文番号の採番

    subtotal     = カート合計
    tax          = subtotal × 税率 (一律 10%)
    shipping     = 国内なら国内送料、それ以外は国際送料 (2 段階)
    total_amount = subtotal + tax + shipping - discount

金額はすべて小数点以下 2 桁 (ROUND_HALF_UP) に丸める。
"""

import random
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    """float / int / str / Decimal を 2 桁の Decimal に正規化する。"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricingPolicy:
    tax_rate: Decimal = Decimal("0.10")
    domestic_country: str = "USA"
    domestic_shipping: Decimal = Decimal("10.00")
    international_shipping: Decimal = Decimal("25.00")

    def shipping_cost(self, country: str) -> Decimal:
        if (country or "").strip().upper() == self.domestic_country.upper():
            return to_money(self.domestic_shipping)
        return to_money(self.international_shipping)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax: Decimal
    shipping_cost: Decimal
    discount: Decimal
    total_amount: Decimal


def calculate_totals(
    subtotal: Decimal,
    country: str,
    discount: Decimal,
    policy: PricingPolicy,
) -> OrderTotals:
    subtotal = to_money(subtotal)
    discount = to_money(discount)
    tax = to_money(subtotal * policy.tax_rate)
    shipping = policy.shipping_cost(country)
    return OrderTotals(
        subtotal=subtotal,
        tax=tax,
        shipping_cost=shipping,
        discount=discount,
        total_amount=subtotal + tax + shipping - discount,
    )


def generate_order_number(now: datetime | None = None) -> str:
    """ORD-<UTC 14 桁タイムスタンプ>-<4 桁乱数> 形式の注文番号を返す。"""
    now = now or datetime.now(timezone.utc)
    timestamp = now.astimezone(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"ORD-{timestamp}-{random.randint(1000, 9999)}"
