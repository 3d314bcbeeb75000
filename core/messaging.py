"""TOGGLES FILE PURPOSE
Purpose: change notifier contract plus noop and Redis pub/sub backends.
Hot path: no (once per flag write batch).
Feature flags: TOGGLES_MESSAGING, TOGGLES_REDIS_URL.
Failure mode: publish errors => NotifyError; at-most-once, never retried here.
"""

from __future__ import annotations

import json
from typing import Iterable, Protocol

import redis
from redis.exceptions import RedisError

from core.config import MESSAGING_KINDS, Settings, check_kind, is_debug
from core.errors import NotifyError
from core.flags import Flag, flags_to_records
from core.logging import logger

CHANNEL = "feature-toggles"


def _dbg(msg: str) -> None:
    if is_debug():
        logger.info(msg)


class Notifier(Protocol):
    kind: str

    def notify(self, flags: Iterable[Flag]) -> None: ...

    def close(self) -> None: ...


class NoopNotifier:
    kind = "noop"

    def notify(self, flags: Iterable[Flag]) -> None:
        return None

    def close(self) -> None:
        return None


def encode_batch(flags: Iterable[Flag]) -> str:
    try:
        return json.dumps(flags_to_records(flags), separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise NotifyError(f"encoding flags: {exc}") from exc


class RedisNotifier:
    """Publishes each batch as one JSON array message on a fixed channel."""

    kind = "redis"

    def __init__(self, client: redis.Redis, channel: str = CHANNEL) -> None:
        if not channel:
            raise NotifyError("publish channel is required")
        self._client = client
        self._channel = channel

    def notify(self, flags: Iterable[Flag]) -> None:
        payload = encode_batch(flags)
        try:
            receivers = self._client.publish(self._channel, payload)
        except RedisError as exc:
            raise NotifyError(f"publishing flags: {exc}") from exc
        _dbg(f"NOTIFY_PUBLISHED channel={self._channel} receivers={receivers}")

    def close(self) -> None:
        self._client.close()


def connect_redis(url: str, timeout_s: float = 5.0) -> RedisNotifier:
    try:
        client = redis.Redis.from_url(url, socket_connect_timeout=timeout_s, socket_timeout=timeout_s)
        client.ping()
    except (RedisError, ValueError) as exc:
        raise NotifyError(f"connecting to redis: {exc}") from exc
    return RedisNotifier(client)


def build_notifier(settings: Settings) -> Notifier:
    check_kind("TOGGLES_MESSAGING", settings.messaging, MESSAGING_KINDS)
    if settings.messaging == "noop":
        return NoopNotifier()
    return connect_redis(settings.redis_url)
