"""
Order Service / テーブル定義

orders:       注文集約のルート (配送先・支払い情報は埋め込み列)
order_items:  注文明細 (注文に従属し、単独の識別性を持たない)

version 列は楽観的ロック用。更新のたびに +1 する。
"""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
)
from sqlalchemy.ext.asyncio import AsyncEngine

metadata = MetaData()

Money = Numeric(18, 2)

orders = Table(
    "orders",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), nullable=False, index=True),
    Column("order_number", String(50), nullable=False, unique=True),
    Column("status", String(20), nullable=False),
    Column("subtotal", Money, nullable=False),
    Column("tax", Money, nullable=False),
    Column("shipping_cost", Money, nullable=False),
    Column("discount", Money, nullable=False),
    Column("total_amount", Money, nullable=False),
    Column("shipping_full_name", String(200)),
    Column("shipping_street", String(200)),
    Column("shipping_city", String(100)),
    Column("shipping_state", String(100)),
    Column("shipping_zip_code", String(20)),
    Column("shipping_country", String(100)),
    Column("shipping_phone", String(20)),
    Column("payment_method", String(50), nullable=False),
    Column("payment_transaction_id", String(100)),
    Column("payment_amount_paid", Money, nullable=False),
    Column("payment_paid_at", DateTime(timezone=True)),
    Column("coupon_code", String(100)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True)),
    Column("version", Integer, nullable=False, default=1),
)

order_items = Table(
    "order_items",
    metadata,
    Column("id", String(36), primary_key=True),
    Column(
        "order_id",
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("position", Integer, nullable=False),
    Column("product_id", String(36), nullable=False),
    Column("product_name", String(200), nullable=False),
    Column("unit_price", Money, nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("total_price", Money, nullable=False),
)


async def create_schema(engine: AsyncEngine) -> None:
    """テーブルが無ければ作成する。"""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
