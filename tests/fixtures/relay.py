"""In-memory relays and a WebSocket transport that talks to them.

``FakeTransport`` implements the same interface as ``AiohttpTransport`` but
hands out ``FakeAdapter`` sockets wired to ``FakeRelay`` instances, which
speak enough NIP-01 (EVENT/REQ/CLOSE in, EVENT/OK/EOSE out) to run the whole
client end to end without network access.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Iterable
from typing import Any

from nostrdht.exceptions import ConnectivityError
from nostrdht.models import Event, Filter
from nostrdht.utils.transport import WebSocketAdapter, WebSocketTransport


class FakeAdapter(WebSocketAdapter):
    """Socket whose inbound frames are queued by a test or a ``FakeRelay``."""

    def __init__(self, url: str, relay: FakeRelay | None = None) -> None:
        self.url = url
        self.relay = relay
        self.sent: list[str] = []
        self._closed = False
        self._inbox: asyncio.Queue[str | None] = asyncio.Queue()

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, text: str) -> None:
        if self._closed:
            raise ConnectivityError("WebSocket is closed")
        self.sent.append(text)
        if self.relay is not None:
            self.relay.handle(self, text)

    async def recv(self) -> str | None:
        item = await self._inbox.get()
        if item is None:
            self._closed = True
        return item

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._inbox.put_nowait(None)
        if self.relay is not None:
            self.relay.disconnect(self)

    def feed(self, text: str | list[Any]) -> None:
        """Queue an inbound frame."""
        self._inbox.put_nowait(text if isinstance(text, str) else json.dumps(text))

    def drop(self) -> None:
        """Simulate the relay closing the socket."""
        self._inbox.put_nowait(None)

    def sent_messages(self) -> list[list[Any]]:
        return [json.loads(text) for text in self.sent]


class FakeRelay:
    """Minimal NIP-01 relay: stores events, serves REQs, fans out new events."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.events: list[dict[str, Any]] = []
        self.subscriptions: dict[FakeAdapter, dict[str, Filter]] = {}

    def handle(self, adapter: FakeAdapter, text: str) -> None:
        message = json.loads(text)
        label = message[0]
        if label == "EVENT":
            self._on_event(adapter, message[1])
        elif label == "REQ":
            self._on_req(adapter, message[1], message[2:])
        elif label == "CLOSE":
            self.subscriptions.get(adapter, {}).pop(message[1], None)

    def disconnect(self, adapter: FakeAdapter) -> None:
        self.subscriptions.pop(adapter, None)

    def _on_event(self, adapter: FakeAdapter, data: dict[str, Any]) -> None:
        self.events.append(data)
        adapter.feed(["OK", data["id"], True, ""])
        event = Event.from_dict(data)
        for subscriber, subs in list(self.subscriptions.items()):
            for sub_id, flt in subs.items():
                if flt.matches(event):
                    subscriber.feed(["EVENT", sub_id, data])

    def _on_req(self, adapter: FakeAdapter, sub_id: str, filters: list[dict[str, Any]]) -> None:
        flt = Filter.from_dict(filters[0])
        self.subscriptions.setdefault(adapter, {})[sub_id] = flt
        for data in self.events:
            if flt.matches(Event.from_dict(data)):
                adapter.feed(["EVENT", sub_id, data])
        adapter.feed(["EOSE", sub_id])


class FakeTransport(WebSocketTransport):
    """Transport handing out ``FakeAdapter`` sockets.

    Args:
        unreachable: URLs whose connect attempts fail immediately.
        hanging: URLs whose connect attempts never complete.
        with_relays: Attach a ``FakeRelay`` per URL (otherwise sockets are
            bare and tests feed frames by hand).
    """

    def __init__(
        self,
        *,
        unreachable: Iterable[str] = (),
        hanging: Iterable[str] = (),
        with_relays: bool = True,
    ) -> None:
        self.unreachable = set(unreachable)
        self.hanging = set(hanging)
        self.with_relays = with_relays
        self.relays: dict[str, FakeRelay] = {}
        self.adapters: list[FakeAdapter] = []
        self.connect_calls: list[str] = []
        self.cancelled: list[str] = []

    async def connect(self, url: str, timeout: float) -> WebSocketAdapter:  # noqa: ASYNC109
        self.connect_calls.append(url)
        if url in self.hanging:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled.append(url)
                raise
        if url in self.unreachable:
            raise ConnectivityError(f"Connection failed: {url}")
        relay = self.relays.setdefault(url, FakeRelay(url)) if self.with_relays else None
        adapter = FakeAdapter(url, relay)
        self.adapters.append(adapter)
        return adapter

    def adapters_for(self, url: str) -> list[FakeAdapter]:
        return [a for a in self.adapters if a.url == url]

    def latest(self, url: str) -> FakeAdapter:
        return self.adapters_for(url)[-1]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:  # noqa: ASYNC109
    """Yield to the loop until *predicate* holds or *timeout* elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(0.01)
    return True
