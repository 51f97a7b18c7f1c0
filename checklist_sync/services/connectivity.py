"""Network reachability: current status, change events and settled reconnects."""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable

import httpx

from checklist_sync.config import settings

logger = logging.getLogger(__name__)

StatusProvider = Callable[[], Awaitable[bool]]
ChangeCallback = Callable[[bool], Any]
ReconnectCallback = Callable[[], Any]


class HttpProbe:
    """Reachability check by fetching a 204 endpoint with a short timeout.

    A transport failure (no route, DNS, timeout) is a definite "offline".
    """

    def __init__(
        self,
        url: str = settings.CONNECTIVITY_PROBE_URL,
        timeout: float = settings.CONNECTIVITY_PROBE_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def __call__(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(self.url, headers={"Cache-Control": "no-store"})
        except httpx.TransportError as exc:
            logger.debug("Reachability check to %s failed: %s", self.url, exc)
            return False
        return resp.is_success


class ConnectivityMonitor:
    """Single source of truth for "can the device reach the network".

    Status sources are tried in order (native network API first); the first
    one that answers wins. When none can, the platform flag last reported
    through ``set_status`` is used, never a previous lookup. Lookups never
    raise.

    A false -> true transition arms a settle timer; only when the device is
    still online after ``settle_delay`` are the reconnect callbacks fired.
    Going offline inside the window disarms it.
    """

    def __init__(
        self,
        providers: list[StatusProvider] | None = None,
        settle_delay: float = settings.RECONNECT_SETTLE_SECONDS,
        initial_status: bool = True,
    ):
        self.providers = list(providers or [])
        self.settle_delay = settle_delay
        self._online = initial_status
        self._platform_online = initial_status
        self._change_callbacks: list[ChangeCallback] = []
        self._reconnect_callbacks: list[ReconnectCallback] = []
        self._settle_task: asyncio.Task | None = None
        self._poll_task: asyncio.Task | None = None

    @property
    def is_online(self) -> bool:
        """Last known status, without querying any source."""
        return self._online

    async def current_status(self) -> bool:
        for provider in self.providers:
            try:
                return bool(await provider())
            except Exception as exc:
                logger.debug("Status source %r unavailable: %s", provider, exc)
        return self._platform_online

    def on_change(self, callback: ChangeCallback) -> Callable[[], None]:
        self._change_callbacks.append(callback)
        return lambda: self._remove(self._change_callbacks, callback)

    def on_reconnected(self, callback: ReconnectCallback) -> Callable[[], None]:
        self._reconnect_callbacks.append(callback)
        return lambda: self._remove(self._reconnect_callbacks, callback)

    def set_status(self, online: bool) -> None:
        """Record a platform network event. Must run inside the event loop."""
        self._platform_online = bool(online)
        self._apply(self._platform_online)

    async def refresh(self) -> bool:
        """Query the sources and apply the result.

        Only ``set_status`` changes the platform flag, so a refresh with no
        answering source never confirms its own previous result.
        """
        online = await self.current_status()
        self._apply(online)
        return online

    def _apply(self, online: bool) -> None:
        previous = self._online
        self._online = online
        if online == previous:
            return

        logger.info("Network status changed: %s", "online" if online else "offline")
        for callback in list(self._change_callbacks):
            try:
                callback(online)
            except Exception:
                logger.exception("Connectivity change callback failed")

        self._cancel_settle()
        if online:
            self._settle_task = asyncio.create_task(self._settle())

    def start_polling(self, interval: float = settings.CONNECTIVITY_POLL_SECONDS) -> None:
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll(interval))

    async def stop(self) -> None:
        self._cancel_settle()
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

    async def _poll(self, interval: float) -> None:
        while True:
            await self.refresh()
            await asyncio.sleep(interval)

    async def _settle(self) -> None:
        await asyncio.sleep(self.settle_delay)
        if not self._online:
            return
        self._settle_task = None
        logger.info("Connection stable for %.1fs, signalling reconnect", self.settle_delay)
        for callback in list(self._reconnect_callbacks):
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Reconnect callback failed")

    def _cancel_settle(self) -> None:
        if self._settle_task is not None and not self._settle_task.done():
            self._settle_task.cancel()
        self._settle_task = None

    @staticmethod
    def _remove(callbacks: list, callback) -> None:
        if callback in callbacks:
            callbacks.remove(callback)
