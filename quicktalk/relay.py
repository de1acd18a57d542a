"""Message relay: persist chat messages and fan them out to live inboxes."""

from __future__ import annotations

import asyncio
import functools
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

import anyio

from .conversations import key_for, normalise_handle
from .models import Message

logger = logging.getLogger("quicktalk.relay")

DEFAULT_INBOX_QUEUE_SIZE = 256


class MessageStore(Protocol):
    def append_message(
        self,
        *,
        room: str,
        sender: str,
        recipient: str,
        content: str,
        sent_at: datetime,
    ) -> Message: ...

    def list_messages_for_participant(self, handle: str) -> List[Message]: ...

    def list_messages_between(self, first: str, second: str) -> List[Message]: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean(value: Optional[str]) -> str:
    if value is None:
        return ""
    return value.strip()


@dataclass(eq=False)
class Subscription:
    """A live delivery channel attached to one handle's inbox."""

    id: int
    handle: str
    queue: "asyncio.Queue[Message]" = field(repr=False)

    async def next_message(self) -> Message:
        return await self.queue.get()


class InboxHub:
    """Tracks live subscribers per inbox and pushes newly stored messages to them."""

    def __init__(self, *, queue_size: int = DEFAULT_INBOX_QUEUE_SIZE) -> None:
        if queue_size <= 0:
            raise ValueError("queue_size must be greater than zero")
        self._queue_size = queue_size
        self._lock = asyncio.Lock()
        self._inboxes: Dict[str, Dict[int, Subscription]] = {}
        self._ids = itertools.count(1)

    async def subscribe(self, handle: str) -> Subscription:
        inbox = normalise_handle(handle)
        if not inbox:
            raise ValueError("Handle must not be empty")
        subscription = Subscription(
            id=next(self._ids),
            handle=inbox,
            queue=asyncio.Queue(maxsize=self._queue_size),
        )
        async with self._lock:
            self._inboxes.setdefault(inbox, {})[subscription.id] = subscription
        return subscription

    async def unsubscribe(self, subscription: Subscription) -> None:
        async with self._lock:
            subscribers = self._inboxes.get(subscription.handle)
            if subscribers is None:
                return
            subscribers.pop(subscription.id, None)
            if not subscribers:
                del self._inboxes[subscription.handle]

    async def publish(self, handle: str, message: Message) -> int:
        """Deliver ``message`` to every live subscriber of ``handle``; return the count."""

        inbox = normalise_handle(handle)
        async with self._lock:
            subscribers = list(self._inboxes.get(inbox, {}).values())

        delivered = 0
        for subscription in subscribers:
            try:
                subscription.queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning(
                    "Inbox %s subscriber %s is full; dropped message %s",
                    inbox,
                    subscription.id,
                    message.id,
                )
                continue
            delivered += 1
        return delivered

    async def subscriber_count(self, handle: str) -> int:
        async with self._lock:
            return len(self._inboxes.get(normalise_handle(handle), {}))


class RelayDispatcher:
    """Accept messages between two handles, store them, and deliver them live."""

    def __init__(self, store: MessageStore, hub: Optional[InboxHub] = None) -> None:
        self._store = store
        self._hub = hub or InboxHub()

    @property
    def hub(self) -> InboxHub:
        return self._hub

    async def submit(
        self,
        sender: Optional[str],
        recipient: Optional[str],
        content: Optional[str],
        *,
        sent_at: Optional[datetime] = None,
    ) -> Optional[Message]:
        """Persist and deliver a message, or return ``None`` if it is malformed.

        Malformed submissions (missing sender or recipient, blank content) are
        dropped without raising. Store failures propagate and nothing is
        delivered.
        """

        sender_handle = _clean(sender)
        recipient_handle = _clean(recipient)
        if not sender_handle or not recipient_handle or not content or not content.strip():
            logger.debug("Dropped malformed message from %r to %r", sender, recipient)
            return None

        # Store writes may wait on SQLite locks; keep them off the event loop.
        message = await anyio.to_thread.run_sync(
            functools.partial(
                self._store.append_message,
                room=key_for(sender_handle, recipient_handle),
                sender=sender_handle,
                recipient=recipient_handle,
                content=content,
                sent_at=sent_at or _utcnow(),
            )
        )
        logger.info("Relayed message %s in room %s", message.id, message.room)

        await self._hub.publish(sender_handle, message)
        if normalise_handle(sender_handle) != normalise_handle(recipient_handle):
            await self._hub.publish(recipient_handle, message)
        return message

    def history(self, handle: Optional[str]) -> List[Message]:
        participant = _clean(handle)
        if not participant:
            return []
        return self._store.list_messages_for_participant(participant)

    def conversation(self, first: Optional[str], second: Optional[str]) -> List[Message]:
        a = _clean(first)
        b = _clean(second)
        if not a or not b:
            return []
        return self._store.list_messages_between(a, b)


__all__ = ["InboxHub", "MessageStore", "RelayDispatcher", "Subscription"]
