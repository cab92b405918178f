# vendor_dispatch/job_queue.py
#
# Queue messages are references to jobs in the store; the store row is the
# source of truth. Two backends share one interface:
#   - RedisJobQueue: LPUSH / BLMOVE on a named list, with an in-flight list so
#     a message popped by a worker that dies is not lost.
#   - MemoryJobQueue: asyncio.Queue for single-process runs and tests.
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from vendor_dispatch.errors import InfrastructureError

logger = logging.getLogger("uvicorn.error")


@dataclass
class QueueMessage:
    request_id: str
    payload: Any = None
    retry: bool = False
    retry_count: int = 0
    created_at: Optional[str] = None
    # raw encoded form as popped from the transport; used for acknowledgement
    raw: Optional[str] = field(default=None, compare=False, repr=False)

    def encode(self) -> str:
        doc: Dict[str, Any] = {"request_id": self.request_id, "payload": self.payload}
        if self.retry:
            doc["retry"] = True
            doc["retry_count"] = self.retry_count
        doc["created_at"] = self.created_at or datetime.now(timezone.utc).isoformat()
        return json.dumps(doc, ensure_ascii=False)

    @classmethod
    def decode(cls, raw: str) -> "QueueMessage":
        doc = json.loads(raw)
        if not isinstance(doc, dict) or not doc.get("request_id"):
            raise ValueError("queue message without request_id")
        try:
            retry_count = int(doc.get("retry_count") or 0)
        except (TypeError, ValueError):
            retry_count = 0
        return cls(
            request_id=str(doc["request_id"]),
            payload=doc.get("payload"),
            retry=bool(doc.get("retry", False)),
            retry_count=retry_count,
            created_at=doc.get("created_at"),
            raw=raw,
        )


class JobQueue(Protocol):
    async def ping(self) -> None: ...
    async def push(self, message: QueueMessage) -> None: ...
    async def pop(self, timeout: float) -> Optional[QueueMessage]: ...
    async def ack(self, message: QueueMessage) -> None: ...
    async def recover(self) -> List[str]: ...
    async def close(self) -> None: ...


class MemoryJobQueue:
    """In-process queue; nothing survives a restart, so ack/recover are no-ops."""

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: "asyncio.Queue[str]" = asyncio.Queue(maxsize=maxsize)

    async def ping(self) -> None:
        return None

    async def push(self, message: QueueMessage) -> None:
        try:
            self._queue.put_nowait(message.encode())
        except asyncio.QueueFull:
            raise InfrastructureError(f"job queue full; cannot push {message.request_id}")

    async def pop(self, timeout: float) -> Optional[QueueMessage]:
        try:
            raw = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        self._queue.task_done()
        try:
            return QueueMessage.decode(raw)
        except ValueError as e:
            logger.error("[QUEUE] dropping malformed message: %s", e)
            return None

    async def ack(self, message: QueueMessage) -> None:
        return None

    async def recover(self) -> List[str]:
        return []

    def qsize(self) -> int:
        return self._queue.qsize()

    async def close(self) -> None:
        return None


class RedisJobQueue:
    """
    Reliable list queue. ``pop`` atomically moves the message onto
    ``<name>:processing``; ``ack`` removes it from there once the job's
    processing state is durable. ``recover`` puts orphaned in-flight messages
    back at the consuming end of the main list.
    """

    def __init__(self, url: str, name: str = "job_queue", *, client: Any = None) -> None:
        if client is None:
            import redis.asyncio as aioredis

            client = aioredis.from_url(url, decode_responses=True)
        self._redis = client
        self.name = name
        self.processing_name = f"{name}:processing"

    async def ping(self) -> None:
        try:
            await self._redis.ping()
        except Exception as e:
            raise InfrastructureError(f"redis unreachable: {e}") from e

    async def push(self, message: QueueMessage) -> None:
        await self._redis.lpush(self.name, message.encode())

    async def pop(self, timeout: float) -> Optional[QueueMessage]:
        raw = await self._redis.blmove(
            self.name, self.processing_name, max(1, int(timeout)), src="RIGHT", dest="LEFT"
        )
        if raw is None:
            return None
        try:
            return QueueMessage.decode(raw)
        except ValueError as e:
            logger.error("[QUEUE] dropping malformed message: %s", e)
            await self._redis.lrem(self.processing_name, 1, raw)
            return None

    async def ack(self, message: QueueMessage) -> None:
        if message.raw is not None:
            await self._redis.lrem(self.processing_name, 1, message.raw)

    async def recover(self) -> List[str]:
        """Returns the raw messages moved back, so the caller can recognise them."""
        moved: List[str] = []
        while True:
            raw = await self._redis.lmove(self.processing_name, self.name, src="RIGHT", dest="RIGHT")
            if raw is None:
                break
            moved.append(raw)
        if moved:
            logger.warning("[QUEUE] recovered %d in-flight message(s) from %s", len(moved), self.processing_name)
        return moved

    async def close(self) -> None:
        await self._redis.aclose()


def build_queue(backend: str, *, redis_url: str, name: str) -> JobQueue:
    if backend == "memory":
        return MemoryJobQueue()
    if backend == "redis":
        return RedisJobQueue(redis_url, name)
    raise ValueError(f"unknown queue backend: {backend}")
