"""
Order Service / 設定

環境変数から読み込む。必須の接続先が未設定なら起動時に KeyError で止まる。
"""

import os
from decimal import Decimal

DATABASE_URL = os.environ["DATABASE_URL"]
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")

CART_SERVICE_URL = os.environ["CART_SERVICE_URL"]
PRODUCT_SERVICE_URL = os.environ["PRODUCT_SERVICE_URL"]
COUPON_SERVICE_URL = os.environ["COUPON_SERVICE_URL"]

HTTP_TIMEOUT = float(os.environ.get("HTTP_TIMEOUT", "30.0"))

TAX_RATE = Decimal(os.environ.get("TAX_RATE", "0.10"))
DOMESTIC_COUNTRY = os.environ.get("DOMESTIC_COUNTRY", "USA")
DOMESTIC_SHIPPING_COST = Decimal(os.environ.get("DOMESTIC_SHIPPING_COST", "10.00"))
INTERNATIONAL_SHIPPING_COST = Decimal(os.environ.get("INTERNATIONAL_SHIPPING_COST", "25.00"))


def _flag(name: str) -> bool:
    return os.environ.get(name, "false").strip().lower() in ("1", "true", "yes", "on")


COMPENSATE_RESERVATIONS = _flag("COMPENSATE_RESERVATIONS")
ORDER_EVENTS_LOG_ENABLED = _flag("ORDER_EVENTS_LOG_ENABLED")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
