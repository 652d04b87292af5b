"""
Order Service / 注文ストア

注文集約の永続化。1 回の書き込みは 1 つの集約 (注文行 + 明細行) だけを
ローカルトランザクションで囲む。外部サービス呼び出しはこの範囲に含まれない。

ユーザー向けの読み取りは必ず (id, user_id) の両方で絞り込み、
他人の注文 ID を推測しても読めないようにする。
"""

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from .errors import ConcurrencyConflict, DuplicateOrderNumber
from .models import Order, OrderItem, PaymentInfo, ShippingAddress
from .pricing import to_money
from .schema import order_items, orders
from .status import OrderStatus


def _utc(value: datetime | None) -> datetime | None:
    # SQLite はタイムゾーンを保持しないため UTC として補う
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _order_row(order: Order) -> dict:
    address = order.shipping_address
    payment = order.payment_info
    return {
        "id": str(order.id),
        "user_id": str(order.user_id),
        "order_number": order.order_number,
        "status": order.status.value,
        "subtotal": order.subtotal,
        "tax": order.tax,
        "shipping_cost": order.shipping_cost,
        "discount": order.discount,
        "total_amount": order.total_amount,
        "shipping_full_name": address.full_name,
        "shipping_street": address.street,
        "shipping_city": address.city,
        "shipping_state": address.state,
        "shipping_zip_code": address.zip_code,
        "shipping_country": address.country,
        "shipping_phone": address.phone,
        "payment_method": payment.method,
        "payment_transaction_id": payment.transaction_id,
        "payment_amount_paid": payment.amount_paid,
        "payment_paid_at": payment.paid_at,
        "coupon_code": order.coupon_code,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "version": order.version,
    }


def _item_rows(order: Order) -> list[dict]:
    return [
        {
            "id": str(uuid4()),
            "order_id": str(order.id),
            "position": position,
            "product_id": str(item.product_id),
            "product_name": item.product_name,
            "unit_price": item.unit_price,
            "quantity": item.quantity,
            "total_price": item.total_price,
        }
        for position, item in enumerate(order.items)
    ]


def _to_order(row, item_rows) -> Order:
    return Order(
        id=UUID(row.id),
        user_id=UUID(row.user_id),
        order_number=row.order_number,
        status=OrderStatus(row.status),
        items=[
            OrderItem(
                product_id=UUID(item.product_id),
                product_name=item.product_name,
                unit_price=to_money(item.unit_price),
                quantity=item.quantity,
                total_price=to_money(item.total_price),
            )
            for item in item_rows
        ],
        subtotal=to_money(row.subtotal),
        tax=to_money(row.tax),
        shipping_cost=to_money(row.shipping_cost),
        discount=to_money(row.discount),
        total_amount=to_money(row.total_amount),
        shipping_address=ShippingAddress(
            full_name=row.shipping_full_name or "",
            street=row.shipping_street or "",
            city=row.shipping_city or "",
            state=row.shipping_state or "",
            zip_code=row.shipping_zip_code or "",
            country=row.shipping_country or "",
            phone=row.shipping_phone or "",
        ),
        payment_info=PaymentInfo(
            method=row.payment_method,
            transaction_id=row.payment_transaction_id,
            amount_paid=to_money(row.payment_amount_paid),
            paid_at=_utc(row.payment_paid_at),
        ),
        coupon_code=row.coupon_code,
        created_at=_utc(row.created_at),
        updated_at=_utc(row.updated_at),
        version=row.version,
    )


class OrderStore:
    """SQLAlchemy (async) による注文集約のリポジトリ"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # ── Write 側 ─────────────────────────────────

    async def insert(self, order: Order) -> None:
        """
        注文と明細を 1 トランザクションで保存する。

        order_number の UNIQUE 制約違反は DuplicateOrderNumber として通知する
        (採番の衝突はリトライしない)。
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.execute(insert(orders).values(**_order_row(order)))
                    rows = _item_rows(order)
                    if rows:
                        await session.execute(insert(order_items), rows)
        except IntegrityError as e:
            # SQLite: "orders.order_number", PostgreSQL: "orders_order_number_key"
            if "order_number" in str(e.orig):
                raise DuplicateOrderNumber(order.order_number) from e
            raise

    async def update(self, order: Order) -> None:
        """
        注文の可変部分 (ステータス・更新日時・支払い情報) を保存する。

        読み込み時の version と一致する行だけを更新する楽観的ロック。
        一致しなければ別のリクエストが先に更新している。
        """
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(orders)
                    .where(orders.c.id == str(order.id))
                    .where(orders.c.version == order.version)
                    .values(
                        status=order.status.value,
                        updated_at=order.updated_at,
                        payment_transaction_id=order.payment_info.transaction_id,
                        payment_paid_at=order.payment_info.paid_at,
                        version=order.version + 1,
                    )
                )
                if result.rowcount == 0:
                    raise ConcurrencyConflict(order.id)
        order.version += 1

    # ── Read 側 ──────────────────────────────────

    async def find_by_id(self, order_id: UUID) -> Order | None:
        """ユーザーで絞り込まずに取得する (管理者向け操作専用)。"""
        async with self.session_factory() as session:
            return await self._find_one(session, orders.c.id == str(order_id))

    async def find_by_id_for_user(self, order_id: UUID, user_id: UUID) -> Order | None:
        async with self.session_factory() as session:
            return await self._find_one(
                session,
                orders.c.id == str(order_id),
                orders.c.user_id == str(user_id),
            )

    async def find_by_number_for_user(self, order_number: str, user_id: UUID) -> Order | None:
        async with self.session_factory() as session:
            return await self._find_one(
                session,
                orders.c.order_number == order_number,
                orders.c.user_id == str(user_id),
            )

    async def list_by_user(self, user_id: UUID) -> list[Order]:
        """ユーザーの注文一覧を作成日時の新しい順に返す。"""
        async with self.session_factory() as session:
            result = await session.execute(
                select(orders)
                .where(orders.c.user_id == str(user_id))
                .order_by(orders.c.created_at.desc())
            )
            rows = result.fetchall()
            items = await self._load_items(session, [row.id for row in rows])
            return [_to_order(row, items.get(row.id, [])) for row in rows]

    async def _find_one(self, session: AsyncSession, *criteria) -> Order | None:
        result = await session.execute(select(orders).where(*criteria))
        row = result.fetchone()
        if not row:
            return None
        items = await self._load_items(session, [row.id])
        return _to_order(row, items.get(row.id, []))

    async def _load_items(self, session: AsyncSession, order_ids: list[str]) -> dict[str, list]:
        if not order_ids:
            return {}
        result = await session.execute(
            select(order_items)
            .where(order_items.c.order_id.in_(order_ids))
            .order_by(order_items.c.order_id, order_items.c.position)
        )
        grouped: dict[str, list] = {}
        for row in result.fetchall():
            grouped.setdefault(row.order_id, []).append(row)
        return grouped
