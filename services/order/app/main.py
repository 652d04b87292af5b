"""
Order Service / FastAPI エントリーポイント

注文 Saga と注文ライフサイクルを HTTP API として公開する。
利用者の識別はゲートウェイが付与する X-User-Id ヘッダーで行う(認証はスコープ外)。

┌─────────┐   X-User-Id   ┌───────────────┐────▶ Cart / Product / Coupon API
│ Gateway │ ────────────▶ │ Order Service │────▶ PostgreSQL (orders)
└─────────┘               └───────────────┘────▶ Redis Pub/Sub (order_events)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from uuid import UUID

import httpx
import redis.asyncio as aioredis
from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from . import config
from .clients import CartClient, CouponClient, InventoryClient
from .errors import (
    ConcurrencyConflict,
    DuplicateOrderNumber,
    EmptyCart,
    InsufficientStock,
    InvalidCoupon,
    InvalidOrderState,
    OrderError,
    OrderNotFound,
    TransientDependencyFailure,
)
from .models import CamelModel, Order, ShippingAddress
from .orchestrator import OrderOrchestrator
from .pricing import PricingPolicy
from .publisher import FactPublisher
from .schema import create_schema
from .status import OrderStatus
from .store import OrderStore
from .subscriber import run_subscriber

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

engine = create_async_engine(config.DATABASE_URL, echo=False)
async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """DB・Redis・HTTP クライアントを起動時に 1 つずつ生成し、終了時に閉じる。"""
    await create_schema(engine)
    redis_pool = aioredis.from_url(config.REDIS_URL, decode_responses=True)
    http_client = httpx.AsyncClient(timeout=config.HTTP_TIMEOUT)

    app.state.orchestrator = OrderOrchestrator(
        store=OrderStore(async_session),
        carts=CartClient(http_client, config.CART_SERVICE_URL),
        inventory=InventoryClient(http_client, config.PRODUCT_SERVICE_URL),
        coupons=CouponClient(http_client, config.COUPON_SERVICE_URL),
        publisher=FactPublisher(redis_pool),
        pricing=PricingPolicy(
            tax_rate=config.TAX_RATE,
            domestic_country=config.DOMESTIC_COUNTRY,
            domestic_shipping=config.DOMESTIC_SHIPPING_COST,
            international_shipping=config.INTERNATIONAL_SHIPPING_COST,
        ),
        compensate_reservations=config.COMPENSATE_RESERVATIONS,
    )

    shutdown_event = asyncio.Event()
    subscriber_task = None
    if config.ORDER_EVENTS_LOG_ENABLED:
        subscriber_task = asyncio.create_task(run_subscriber(config.REDIS_URL, shutdown_event))

    yield

    shutdown_event.set()
    if subscriber_task is not None:
        subscriber_task.cancel()
        try:
            await subscriber_task
        except asyncio.CancelledError:
            pass
    await http_client.aclose()
    await redis_pool.aclose()
    await engine.dispose()


app = FastAPI(title="Order Service", lifespan=lifespan)


# ── Request Models ───────────────────────────────


class CreateOrderRequest(CamelModel):
    shipping_address: ShippingAddress
    payment_method: str = "CreditCard"
    coupon_code: str | None = None


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus


# ── Dependencies ─────────────────────────────────


def get_orchestrator(request: Request) -> OrderOrchestrator:
    return request.app.state.orchestrator


def get_user_id(x_user_id: str | None = Header(default=None)) -> UUID:
    if not x_user_id:
        raise HTTPException(401, "User not authenticated")
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(401, "User not authenticated") from None


# ── Error mapping ────────────────────────────────

_ERROR_STATUS = {
    EmptyCart: 400,
    InsufficientStock: 400,
    InvalidCoupon: 400,
    InvalidOrderState: 400,
    OrderNotFound: 404,
    DuplicateOrderNumber: 409,
    ConcurrencyConflict: 409,
    TransientDependencyFailure: 503,
}


@app.exception_handler(OrderError)
async def order_error_handler(request: Request, exc: OrderError):
    status_code = next(
        (code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)),
        500,
    )
    logger.warning("%s %s -> %d %s", request.method, request.url.path, status_code, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": exc.message},
    )


# ── Query Endpoints ──────────────────────────────


@app.get("/orders", response_model=list[Order])
async def list_orders(
    user_id: UUID = Depends(get_user_id),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """自分の注文一覧 (新しい順)"""
    return await orchestrator.list_orders_for_user(user_id)


@app.get("/orders/by-number/{order_number}", response_model=Order)
async def get_order_by_number(
    order_number: str,
    user_id: UUID = Depends(get_user_id),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    order = await orchestrator.get_order_by_number_for_user(order_number, user_id)
    if not order:
        raise OrderNotFound(order_number)
    return order


@app.get("/orders/{order_id}", response_model=Order)
async def get_order(
    order_id: UUID,
    user_id: UUID = Depends(get_user_id),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    # 他人の注文も「存在しない」と同じ 404 を返す
    order = await orchestrator.get_order_for_user(order_id, user_id)
    if not order:
        raise OrderNotFound(order_id)
    return order


# ── Command Endpoints ────────────────────────────


@app.post("/orders", status_code=201, response_model=Order)
async def create_order(
    req: CreateOrderRequest,
    user_id: UUID = Depends(get_user_id),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """カートから注文を作成する (注文作成 Saga)"""
    return await orchestrator.create_order(
        user_id,
        req.shipping_address,
        payment_method=req.payment_method,
        coupon_code=req.coupon_code,
    )


@app.put("/orders/{order_id}/status", status_code=204)
async def update_order_status(
    order_id: UUID,
    req: UpdateOrderStatusRequest,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """ステータス更新 (管理者向け。ユーザーで絞り込まない)"""
    if not await orchestrator.update_status(order_id, req.status):
        raise HTTPException(404, "Order not found or status transition not allowed")
    return Response(status_code=204)


@app.post("/orders/{order_id}/cancel", status_code=204)
async def cancel_order(
    order_id: UUID,
    user_id: UUID = Depends(get_user_id),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    if not await orchestrator.cancel_order(order_id, user_id):
        raise OrderNotFound(order_id)
    return Response(status_code=204)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "order-service"}
