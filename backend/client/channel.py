# backend/client/channel.py

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlencode

import websockets
from websockets.exceptions import WebSocketException

logger = logging.getLogger(__name__)

DEFAULT_BACKOFF_S = 0.8


class ChannelStatus(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class ReconnectingChannel:
    """
    Single-owner handle around one websocket to the timer server.

    Guarantees:
        - At most one live transport: a new attempt waits for the previous
          reader task to finish (and close its socket) before dialing
        - At most one pending reconnect timer
        - Every attempt carries the generation it was started under; once
          ``open`` or ``close`` bumps the generation, late callbacks from the
          old one do nothing

    Args:
        base_url: e.g. "ws://localhost:3000/ws"
        on_message: Called with each raw text frame
        on_status: Called with the new ChannelStatus on every change
        backoff_s: Fixed delay before a reconnect attempt
        connect: Coroutine factory returning a connection (``websockets.connect``)
    """

    def __init__(
        self,
        base_url: str,
        on_message: Callable[[str], Any],
        on_status: Optional[Callable[[ChannelStatus], Any]] = None,
        backoff_s: float = DEFAULT_BACKOFF_S,
        connect: Optional[Callable[[str], Awaitable[Any]]] = None,
    ) -> None:
        self.base_url = base_url
        self._on_message = on_message
        self._on_status = on_status
        self.backoff_s = backoff_s
        self._connect = connect or websockets.connect

        self.room: Optional[str] = None
        self.role: str = "display"
        self.status = ChannelStatus.IDLE

        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._retry: Optional[asyncio.TimerHandle] = None
        self._transport: Any = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def connected(self) -> bool:
        return self.status is ChannelStatus.CONNECTED and self._transport is not None

    @property
    def url(self) -> str:
        params = {"role": self.role}
        if self.room:
            params["room"] = self.room
        return f"{self.base_url}?{urlencode(params)}"

    def _set_status(self, status: ChannelStatus) -> None:
        if status is self.status:
            return
        self.status = status
        logger.debug("Channel status -> %s (gen %d)", status.value, self._generation)
        if self._on_status:
            self._on_status(status)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self, room: Optional[str], role: str = "display") -> int:
        """
        Connect (or reconnect) to ``room`` as ``role``.

        Whatever the previous generation owned (socket, reader, pending
        retry) is torn down first.

        Returns:
            The new generation
        """
        self.room = room.upper() if room else None
        self.role = role
        self._generation += 1
        previous = self._teardown()
        self._set_status(ChannelStatus.CONNECTING)
        self._task = asyncio.get_running_loop().create_task(self._run(self._generation, previous))
        return self._generation

    def retarget(self, room: Optional[str], role: Optional[str] = None) -> None:
        """Remember a room/role switch made in-band (``join``) for future reconnects."""
        self.room = room.upper() if room else None
        if role:
            self.role = role

    async def close(self) -> None:
        self._generation += 1
        previous = self._teardown()
        self._set_status(ChannelStatus.CLOSED)
        if previous is not None:
            await asyncio.gather(previous, return_exceptions=True)

    def _teardown(self) -> Optional[asyncio.Task]:
        if self._retry is not None:
            self._retry.cancel()
            self._retry = None
        previous, self._task = self._task, None
        if previous is not None and not previous.done():
            previous.cancel()
        return previous

    async def _run(self, generation: int, previous: Optional[asyncio.Task] = None) -> None:
        if previous is not None:
            # Let the old reader close its socket before dialing a new one
            await asyncio.gather(previous, return_exceptions=True)
        if generation != self._generation:
            return

        transport = None
        try:
            transport = await self._connect(self.url)
            if generation != self._generation:
                return
            self._transport = transport
            self._set_status(ChannelStatus.CONNECTED)
            logger.info("✓ Connected to %s", self.url)

            async for raw in transport:
                if generation != self._generation:
                    break
                try:
                    self._on_message(raw)
                except Exception:
                    # One bad frame must not end the reader
                    logger.exception("on_message failed for frame from %s", self.url)

        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.warning("Connection to %s lost: %s", self.url, e)
        finally:
            if transport is not None:
                if self._transport is transport:
                    self._transport = None
                try:
                    await transport.close()
                except (OSError, WebSocketException) as e:
                    logger.debug("Error closing transport: %s", e)

        if generation == self._generation:
            self._schedule_reconnect(generation)

    def _schedule_reconnect(self, generation: int) -> None:
        if self._retry is not None:
            return
        self._set_status(ChannelStatus.RECONNECTING)
        loop = asyncio.get_running_loop()
        self._retry = loop.call_later(self.backoff_s, self._reconnect, generation)

    def _reconnect(self, generation: int) -> None:
        self._retry = None
        if generation != self._generation:
            return
        previous = self._task
        self._set_status(ChannelStatus.CONNECTING)
        self._task = asyncio.get_running_loop().create_task(self._run(generation, previous))

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send(self, type_: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        """Send a message if connected. Returns False (message dropped) otherwise."""
        transport = self._transport
        if transport is None or self.status is not ChannelStatus.CONNECTED:
            return False
        message: Dict[str, Any] = {"type": type_}
        if payload is not None:
            message["payload"] = payload
        try:
            await transport.send(json.dumps(message))
        except (OSError, WebSocketException) as e:
            logger.warning("Send of %s failed: %s", type_, e)
            return False
        return True
