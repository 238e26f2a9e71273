"""Publish/subscribe bus that runs stage handlers one job at a time."""

from __future__ import annotations

import asyncio
import json
import logging
import weakref
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set

from nats.aio.client import Client as NATS

from . import events as event_utils
from .events import Event, InvalidEvent

logger = logging.getLogger("titledoctor.bus")

Handler = Callable[[Any], Awaitable[None]]


class EventPublishError(RuntimeError):
    """Raised when the transport refuses an event."""


class EventBus:
    """Topic fan-out over NATS, or in-process when no NATS URL is configured.

    Every handler invocation runs under a lock keyed by the event's job id, so
    the stages of one job never overlap while different jobs proceed
    concurrently. A failing handler is logged and never affects the others.
    """

    def __init__(
        self,
        *,
        nats_url: Optional[str] = None,
        source: str = "titledoctor",
        history_size: int = 100,
    ) -> None:
        self._nats_url = (nats_url or "").strip()
        self._source = source
        self._handlers: Dict[str, List[Handler]] = {}
        self._history: Deque[dict[str, Any]] = deque(maxlen=history_size)
        self._tasks: Set[asyncio.Task] = set()
        self._job_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._nc: Optional[NATS] = None
        self._subscriptions: List[Any] = []
        self._lock = asyncio.Lock()

    @property
    def mode(self) -> str:
        return "nats" if self._nats_url else "local"

    @property
    def topics(self) -> List[str]:
        return list(self._handlers)

    def recent(self, limit: int = 20) -> List[dict[str, Any]]:
        limit = max(0, limit)
        return list(self._history)[0:limit]

    def subscribe(self, topic: str, handler: Handler) -> None:
        if topic not in event_utils.EVENT_TYPES:
            raise ValueError(f"Unknown topic: {topic}")
        self._handlers.setdefault(topic, []).append(handler)

    async def start(self) -> None:
        if not self._nats_url:
            logger.info("Event bus running in-process (NATS_URL not set)")
            return
        async with self._lock:
            if self._nc is not None:
                return
            nc = NATS()
            await nc.connect(servers=[self._nats_url], allow_reconnect=True, connect_timeout=2.0)
            for topic in self._handlers:
                self._subscriptions.append(await nc.subscribe(topic, cb=self._on_message))
            self._nc = nc
            logger.info("Event bus connected to %s (%d topics)", self._nats_url, len(self._handlers))

    async def stop(self) -> None:
        await self.join()
        async with self._lock:
            if self._nc is None:
                return
            try:
                await self._nc.drain()
            except Exception as exc:
                logger.warning("NATS drain failed during shutdown: %s", exc)
            self._nc = None
            self._subscriptions.clear()

    async def publish(self, event: Event) -> dict[str, Any]:
        env = event_utils.encode(event, source=self._source)
        if self._nats_url:
            if self._nc is None:
                raise EventPublishError(f"Event bus not connected; cannot publish {event.topic}")
            try:
                await self._nc.publish(event.topic, json.dumps(env).encode("utf-8"))
            except Exception as exc:
                raise EventPublishError(f"NATS publish failed for {event.topic}: {exc}") from exc
        else:
            self._dispatch(env, event)
        self._record(env)
        logger.debug("Published %s for job %s", event.topic, event.job_id)
        return env

    async def join(self) -> None:
        """Wait until every in-flight handler, and anything it publishes, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _record(self, env: dict[str, Any]) -> None:
        self._history.appendleft(env)

    async def _on_message(self, msg) -> None:  # type: ignore[no-untyped-def]
        subject = getattr(msg, "subject", "?")
        try:
            env = json.loads(msg.data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.error("Dropping non-JSON message on %s", subject)
            return
        if not isinstance(env, dict):
            logger.error("Dropping malformed envelope on %s", subject)
            return
        env.setdefault("topic", subject)
        self._dispatch(env)

    def _dispatch(self, env: dict[str, Any], event: Optional[Event] = None) -> None:
        topic = env.get("topic", "")
        handlers = self._handlers.get(topic, [])
        if not handlers:
            return
        if event is None:
            try:
                event = event_utils.decode(env)
            except InvalidEvent as exc:
                # Without a job id and email nobody can be told about this one.
                logger.error("Undeliverable event on %s dropped: %s", topic, exc)
                return
        for handler in handlers:
            task = asyncio.create_task(self._run(handler, event), name=f"{topic}:{event.job_id}")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def _job_lock(self, job_id: str) -> asyncio.Lock:
        lock = self._job_locks.get(job_id)
        if lock is None:
            lock = asyncio.Lock()
            self._job_locks[job_id] = lock
        return lock

    async def _run(self, handler: Handler, event: Event) -> None:
        lock = self._job_lock(event.job_id)
        async with lock:
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    "Handler %s failed on %s for job %s",
                    getattr(handler, "name", repr(handler)),
                    event.topic,
                    event.job_id,
                )

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"EventBus(mode={self.mode!r}, topics={self.topics!r})"
