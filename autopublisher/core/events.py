"""
In-process event bus.

Delivers a topic event to every handler subscribed to it. Each handler runs
as its own asyncio task: no ordering between handlers, no retries, and a
handler failure never reaches the emitter.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set, Tuple, Type

from pydantic import BaseModel

logger = logging.getLogger(__name__)


@dataclass
class Event:
    """A delivered event."""

    topic: str
    data: Dict[str, Any]
    payload: Any = None  # validated model for known topics, else the raw dict


Handler = Callable[[Event], Awaitable[None]]


class EventBus:
    def __init__(self, models: Optional[Mapping[str, Type[BaseModel]]] = None):
        """
        Args:
            models: Optional topic -> payload model map; payloads of listed
                topics are validated on emit
        """
        self._models: Dict[str, Type[BaseModel]] = dict(models or {})
        self._subscribers: Dict[str, List[Tuple[str, Handler]]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(self, topic: str, handler: Handler, name: Optional[str] = None) -> None:
        handler_name = name or getattr(handler, "__qualname__", repr(handler))
        self._subscribers.setdefault(topic, []).append((handler_name, handler))
        logger.debug("Subscribed %s to %s", handler_name, topic)

    def subscriptions(self) -> List[Tuple[str, str]]:
        return [
            (topic, name)
            for topic, handlers in self._subscribers.items()
            for name, _ in handlers
        ]

    def build_event(self, topic: str, data: Dict[str, Any]) -> Event:
        """
        Validate data against the topic model.

        Raises:
            pydantic.ValidationError: If the payload does not match the topic
        """
        model = self._models.get(topic)
        if model is None:
            return Event(topic=topic, data=dict(data), payload=dict(data))
        payload = model.model_validate(data)
        return Event(
            topic=topic,
            data=payload.model_dump(by_alias=True, mode="json"),
            payload=payload,
        )

    async def emit(self, topic: str, data: Dict[str, Any]) -> Event:
        event = self.build_event(topic, data)
        handlers = self._subscribers.get(topic, [])
        if not handlers:
            logger.debug("No subscribers for %s", topic)
        for name, handler in handlers:
            task = asyncio.create_task(self._dispatch(name, handler, event), name=f"{topic}:{name}")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return event

    async def _dispatch(self, name: str, handler: Handler, event: Event) -> None:
        try:
            await handler(event)
        except Exception:
            logger.exception("Handler %s failed on %s", name, event.topic)

    async def drain(self) -> None:
        """Wait until no handler task is in flight, including tasks spawned meanwhile."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
