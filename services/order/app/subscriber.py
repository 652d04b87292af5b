"""
Order Service / order_events サブスクライバー

自サービスが発行した order_events を購読し、受信したファクトをログに残す。
下流の消費者 (メール・決済) が受け取る内容をこのサービス側でも確認できる。

注意: Redis Pub/Sub は fire-and-forget 方式。
サービスが停止している間のファクトは失われる。
"""

import asyncio
import json
import logging

import redis.asyncio as aioredis

from .publisher import ORDER_EVENTS_CHANNEL

logger = logging.getLogger(__name__)


def handle_fact(raw: str) -> dict | None:
    """受信メッセージを解釈してログに残す。解釈できなければ None。"""
    try:
        event = json.loads(raw)
        event_type = event["event_type"]
        data = event.get("data", {})
        if not isinstance(data, dict):
            raise TypeError(f"data must be an object, got {type(data).__name__}")
    except (ValueError, KeyError, TypeError):
        logger.warning("Skipped malformed fact: %r", raw)
        return None

    logger.info(
        "%s received: order=%s user=%s",
        event_type,
        data.get("order_id"),
        data.get("user_id"),
    )
    return event


async def run_subscriber(
    redis_url: str,
    shutdown_event: asyncio.Event,
    channel: str = ORDER_EVENTS_CHANNEL,
) -> None:
    """shutdown_event がセットされるまで channel を購読し続ける。"""
    redis_conn = aioredis.from_url(redis_url, decode_responses=True)
    pubsub = redis_conn.pubsub()
    await pubsub.subscribe(channel)
    logger.info("Subscribed to %s channel", channel)

    try:
        while not shutdown_event.is_set():
            message = await pubsub.get_message(
                ignore_subscribe_messages=True, timeout=1.0
            )
            if message and message["type"] == "message":
                try:
                    handle_fact(message["data"])
                except Exception:
                    logger.exception("Failed to process fact")
            else:
                await asyncio.sleep(0.1)
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()
        await redis_conn.aclose()
