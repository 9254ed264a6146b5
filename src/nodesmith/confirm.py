"""Yes/no rendezvous between pipeline tasks and the UI actor.

A pipeline task calls :meth:`ConfirmationChannel.request`, which publishes a
:class:`ConfirmRequest` carrying a single-use :class:`ReplySlot` and then
suspends only that task until the actor answers. An actor that drops or
abandons the slot without answering resolves the waiting task to ``False``.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
import weakref
from dataclasses import dataclass

from nodesmith.errors import InvalidInputError

logger = logging.getLogger(__name__)


def _set_if_pending(future: asyncio.Future[bool], answer: bool) -> None:
    if not future.done():
        future.set_result(answer)


def _deliver(loop: asyncio.AbstractEventLoop, future: asyncio.Future[bool], answer: bool) -> None:
    if loop.is_closed():
        return
    try:
        loop.call_soon_threadsafe(_set_if_pending, future, answer)
    except RuntimeError:
        # Loop closed between the check and the call; nobody is waiting.
        logger.debug("Confirmation reply dropped: event loop already closed.")


class ReplySlot:
    """Single-producer, single-consumer reply slot, consumed exactly once."""

    def __init__(self, loop: asyncio.AbstractEventLoop, future: asyncio.Future[bool]) -> None:
        self._loop = loop
        self._future = future
        self._lock = threading.Lock()
        self._used = False
        self._finalizer = weakref.finalize(self, _deliver, loop, future, False)

    @property
    def used(self) -> bool:
        return self._used

    def send(self, answer: bool) -> None:
        with self._lock:
            if self._used:
                raise InvalidInputError(
                    "Confirmation reply slot was already used.",
                    hint="Each confirmation request accepts exactly one answer.",
                )
            self._used = True
        self._finalizer.detach()
        _deliver(self._loop, self._future, bool(answer))

    def abandon(self) -> None:
        """Release the slot without an answer; the requester sees ``False``."""
        with self._lock:
            if self._used:
                return
            self._used = True
        self._finalizer()


@dataclass(frozen=True, slots=True)
class ConfirmRequest:
    title: str
    message: str
    reply: ReplySlot


class ConfirmationChannel:
    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[ConfirmRequest] = queue.SimpleQueue()
        self._outstanding: weakref.WeakSet[ReplySlot] = weakref.WeakSet()
        self._closed = False

    async def request(self, title: str, message: str) -> bool:
        """Ask the actor a yes/no question and wait for the answer."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[bool] = loop.create_future()
        slot = ReplySlot(loop, future)
        if self._closed:
            slot.abandon()
        else:
            self._outstanding.add(slot)
            self._queue.put(ConfirmRequest(title=title, message=message, reply=slot))
        # The waiter must not keep the slot alive, or dropping it would never resolve.
        del slot
        answer = await future
        logger.debug("Confirmation %r answered: %s", title, answer)
        return answer

    def poll(self) -> ConfirmRequest | None:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def close(self) -> None:
        """Stop accepting requests and abandon every unanswered one."""
        self._closed = True
        while (pending := self.poll()) is not None:
            pending.reply.abandon()
        for slot in list(self._outstanding):
            slot.abandon()


__all__ = ["ConfirmRequest", "ConfirmationChannel", "ReplySlot"]
