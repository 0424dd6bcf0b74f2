"""Durable redirect marker storage.

The marker records that a checkout redirect is in flight. It has to outlive
the process that wrote it, so production uses Redis; tests and local runs use
the in-memory store, which honors the same contract.
"""

from typing import Protocol

import redis
from pydantic import ValidationError

from podpay.common.logging import logger
from podpay.payments.models import RedirectMarker


class RedirectStore(Protocol):
    def write(self, marker: RedirectMarker) -> None: ...

    def read(self) -> RedirectMarker | None: ...

    def clear(self) -> None: ...


class RedisRedirectStore:
    """Keeps the single marker in one Redis hash.

    All marker fields live under one key so they are written in a single
    MULTI/EXEC and removed by a single DEL.
    """

    def __init__(self, client: redis.Redis, key: str, ttl_seconds: int) -> None:
        self.client = client
        self.key = key
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_url(cls, url: str, key: str, ttl_seconds: int) -> "RedisRedirectStore":
        return cls(redis.Redis.from_url(url, decode_responses=True), key, ttl_seconds)

    def write(self, marker: RedirectMarker) -> None:
        pipe = self.client.pipeline(transaction=True)
        pipe.delete(self.key)
        pipe.hset(
            self.key,
            mapping={
                "in_progress": "1",
                "client_reference_id": marker.client_reference_id,
                "external_reference_id": marker.external_reference_id,
                "vendor": marker.vendor.value,
            },
        )
        pipe.expire(self.key, self.ttl_seconds)
        pipe.execute()

    def read(self) -> RedirectMarker | None:
        values = self.client.hgetall(self.key)
        if not values or values.get("in_progress") != "1":
            return None
        try:
            return RedirectMarker(
                client_reference_id=values.get("client_reference_id", ""),
                external_reference_id=values.get("external_reference_id", ""),
                vendor=values.get("vendor", ""),
            )
        except ValidationError as exc:
            logger.warning("discarding malformed redirect marker key=%s error=%s", self.key, exc)
            self.clear()
            return None

    def clear(self) -> None:
        self.client.delete(self.key)


class InMemoryRedirectStore:
    """Process-local marker store with the same contract as the Redis one."""

    def __init__(self, marker: RedirectMarker | None = None) -> None:
        self._marker = marker

    def write(self, marker: RedirectMarker) -> None:
        self._marker = marker.model_copy()

    def read(self) -> RedirectMarker | None:
        return self._marker.model_copy() if self._marker else None

    def clear(self) -> None:
        self._marker = None
