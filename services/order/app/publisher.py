"""
Order Service / ファクト発行

Redis Pub/Sub の order_events チャネルにファクトを JSON で発行する。
メッセージ形式は {"event_type": ..., "data": {...}}。

注意: Redis Pub/Sub は fire-and-forget 方式。購読者が停止している間の
ファクトは失われる。オーケストレーターは発行失敗を注文の失敗として扱わない。
"""

import json

import redis.asyncio as aioredis

from .events import Fact

ORDER_EVENTS_CHANNEL = "order_events"


def encode_fact(fact: Fact) -> str:
    return json.dumps(
        {
            "event_type": fact.event_type,
            "data": fact.model_dump(mode="json"),
        },
        default=str,
    )


class FactPublisher:
    def __init__(self, redis: aioredis.Redis, channel: str = ORDER_EVENTS_CHANNEL):
        self.redis = redis
        self.channel = channel

    async def publish(self, fact: Fact) -> None:
        await self.redis.publish(self.channel, encode_fact(fact))
