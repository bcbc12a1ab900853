"""Process-local payment notification broker.

Subscribers wait on a per-identifier asyncio.Queue. Publishers enqueue onto
a single message queue drained by one background task, which is the only
code that fans messages out to subscribers. Delivery uses put_nowait so a
slow subscriber never stalls the fan-out; its message is dropped instead.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict, Optional, Set, Tuple

from app.core.config import BROKER_QUEUE_SIZE, PAID_MESSAGE

log = logging.getLogger(__name__)

SSE_KEEPALIVE = ": keep-alive\n\n"


@dataclass
class Message:
    identifier: str
    payload: str


class PaymentBroker:
    """Fan out payment notifications to subscribers of an identifier.

    The subscriber map is guarded by a lock so subscribe/unsubscribe may be
    called from any context, including a cancelled task's cleanup.
    """

    def __init__(self, queue_size: int = BROKER_QUEUE_SIZE):
        self.queue_size = queue_size
        self._clients: Dict[str, Set[asyncio.Queue]] = {}
        self._lock = threading.Lock()
        self._messages: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the fan-out task on the running event loop."""
        if self.running:
            return
        self._messages = asyncio.Queue()
        self._task = asyncio.create_task(self._run(), name="payment-broker")
        log.info("Payment broker started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._messages = None
        log.info("Payment broker stopped")

    def subscribe(self, identifier: str) -> Tuple[asyncio.Queue, Callable[[], None]]:
        """Register a new delivery queue for an identifier.

        Returns:
            The queue and a function that removes exactly that queue.
            Calling the function more than once is a no-op.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        with self._lock:
            self._clients.setdefault(identifier, set()).add(queue)
        log.debug(f"Subscribed to {identifier}")

        def unsubscribe() -> None:
            with self._lock:
                clients = self._clients.get(identifier)
                if clients is None or queue not in clients:
                    return
                clients.discard(queue)
                if not clients:
                    del self._clients[identifier]
            log.debug(f"Unsubscribed from {identifier}")

        return queue, unsubscribe

    def publish(self, identifier: str, payload: str) -> None:
        """Queue a payload for every current subscriber of identifier.

        Raises:
            RuntimeError: If the broker has not been started.
        """
        if self._messages is None:
            raise RuntimeError("payment broker is not running")
        self._messages.put_nowait(Message(identifier=identifier, payload=payload))

    def broadcast_payment(self, identifier: str) -> None:
        self.publish(identifier, PAID_MESSAGE)

    def subscriber_count(self, identifier: Optional[str] = None) -> int:
        with self._lock:
            if identifier is not None:
                return len(self._clients.get(identifier, ()))
            return sum(len(clients) for clients in self._clients.values())

    def _deliver(self, message: Message) -> int:
        # Copy under the lock; deliver outside it
        with self._lock:
            subscribers = list(self._clients.get(message.identifier, ()))

        delivered = 0
        for queue in subscribers:
            try:
                queue.put_nowait(message.payload)
                delivered += 1
            except asyncio.QueueFull:
                log.warning(f"Subscriber queue full for {message.identifier}, dropping message")
        return delivered

    async def _run(self) -> None:
        messages = self._messages
        while True:
            message = await messages.get()
            delivered = self._deliver(message)
            log.info(f"Broadcast {message.payload!r} for {message.identifier} to {delivered} subscribers")


async def payment_events(
    queue: asyncio.Queue,
    unsubscribe: Callable[[], None],
    keepalive: float,
) -> AsyncIterator[str]:
    """Render a subscription as server-sent events.

    Ends after the paid message. Unsubscribes on every exit path, including
    cancellation when the client disconnects.
    """
    try:
        while True:
            try:
                payload = await asyncio.wait_for(queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield SSE_KEEPALIVE
                continue
            yield f"data: {payload}\n\n"
            if payload == PAID_MESSAGE:
                return
    finally:
        unsubscribe()
