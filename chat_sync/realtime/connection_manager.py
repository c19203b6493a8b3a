from __future__ import annotations

import asyncio
from enum import StrEnum
import logging
from typing import Any, Callable

import aiohttp

from chat_sync.core.errors import EventRoutingError, RealtimeConnectionError
from chat_sync.realtime import protocol
from chat_sync.realtime.event_bus import EventBus, Handler
from chat_sync.schemas.events import WelcomeEvent

logger = logging.getLogger(__name__)

_LIFECYCLE_EVENTS = frozenset({protocol.CONNECT, protocol.DISCONNECT})


class ConnectionState(StrEnum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class ConnectionManager:
    def __init__(
        self,
        *,
        url: str,
        bus: EventBus | None = None,
        handshake_timeout_sec: float = 10.0,
        heartbeat_sec: float | None = 25.0,
        outgoing_queue_size: int = 200,
        session_factory: Callable[[], aiohttp.ClientSession] = aiohttp.ClientSession,
    ) -> None:
        self._url = url
        self._bus = bus or EventBus()
        self._handshake_timeout_sec = handshake_timeout_sec
        self._heartbeat_sec = heartbeat_sec
        self._outgoing_queue_size = outgoing_queue_size
        self._session_factory = session_factory

        self._state = ConnectionState.IDLE
        self._session: aiohttp.ClientSession | None = None
        self._websocket: aiohttp.ClientWebSocketResponse | None = None
        self._outgoing_queue: asyncio.Queue[dict[str, object]] | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._writer_task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def bus(self) -> EventBus:
        return self._bus

    def on_event(self, event_name: str, handler: Handler) -> Callable[[], None]:
        return self._bus.subscribe(event_name, handler)

    async def connect(self, identity_token: str) -> WelcomeEvent:
        await self.disconnect()

        async with self._lock:
            self._state = ConnectionState.CONNECTING
            logger.info("WebSocket connecting url=%s", self._url)
            session = self._session_factory()
            websocket: aiohttp.ClientWebSocketResponse | None = None
            try:
                websocket = await session.ws_connect(
                    self._url,
                    headers={"Authorization": f"Bearer {identity_token}"},
                    heartbeat=self._heartbeat_sec,
                )
                welcome = await self._await_welcome(websocket)
            except (RealtimeConnectionError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
                if websocket is not None and not websocket.closed:
                    await websocket.close()
                await session.close()
                self._state = ConnectionState.IDLE
                if isinstance(exc, RealtimeConnectionError):
                    logger.warning("WebSocket handshake rejected code=%s message=%s", exc.code, exc.message)
                    raise
                logger.warning("WebSocket handshake failed error=%r", exc)
                code = "handshake_timeout" if isinstance(exc, asyncio.TimeoutError) else "connect_failed"
                raise RealtimeConnectionError(code=code, message="Could not establish realtime connection") from exc

            queue: asyncio.Queue[dict[str, object]] = asyncio.Queue(maxsize=self._outgoing_queue_size)
            self._session = session
            self._websocket = websocket
            self._outgoing_queue = queue
            self._state = ConnectionState.CONNECTED
            self._writer_task = asyncio.create_task(self._writer_loop(websocket, queue))
            self._reader_task = asyncio.create_task(self._reader_loop(websocket))
        logger.info("WebSocket connected user_id=%s connection_id=%s", welcome.user_id, welcome.connection_id)
        await self._bus.publish(protocol.CONNECT, welcome)
        return welcome

    async def disconnect(self) -> None:
        async with self._lock:
            closed = await self._teardown()
        if closed:
            await self._finish_disconnect("client")

    def emit(self, event_name: str, payload: Any = None) -> bool:
        queue = self._outgoing_queue
        if self._state is not ConnectionState.CONNECTED or queue is None:
            logger.debug("Dropping outbound event=%s state=%s", event_name, self._state)
            return False

        try:
            queue.put_nowait(protocol.outbound_frame(event_name, payload))
        except asyncio.QueueFull:
            logger.warning("Outgoing queue full, dropping event=%s", event_name)
            return False
        logger.debug("Outbound event queued event=%s", event_name)
        return True

    async def _await_welcome(self, websocket: aiohttp.ClientWebSocketResponse) -> WelcomeEvent:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._handshake_timeout_sec
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise asyncio.TimeoutError()
            message = await websocket.receive(timeout=remaining)
            if message.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                raise RealtimeConnectionError(code="handshake_closed", message="Server closed the connection")
            if message.type == aiohttp.WSMsgType.ERROR:
                raise RealtimeConnectionError(code="handshake_failed", message=str(websocket.exception()))
            if message.type != aiohttp.WSMsgType.TEXT:
                continue

            try:
                event_name, payload = protocol.parse_frame(message.data)
            except EventRoutingError as exc:
                logger.warning("Ignoring malformed handshake frame code=%s", exc.code)
                continue

            if event_name == protocol.WELCOME:
                return payload
            if event_name == protocol.ERROR:
                details = payload if isinstance(payload, dict) else {}
                raise RealtimeConnectionError(
                    code=str(details.get("code") or "handshake_rejected"),
                    message=str(details.get("message") or "Server rejected the connection"),
                )
            logger.debug("Ignoring pre-handshake event=%s", event_name)

    async def _reader_loop(self, websocket: aiohttp.ClientWebSocketResponse) -> None:
        try:
            async for message in websocket:
                if message.type == aiohttp.WSMsgType.TEXT:
                    await self._dispatch(message.data)
                elif message.type == aiohttp.WSMsgType.ERROR:
                    logger.warning("WebSocket reader error=%s", websocket.exception())
                    break
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("WebSocket reader crashed")

        if self._websocket is not websocket:
            return
        if await self._teardown():
            await self._finish_disconnect("connection_lost")

    async def _dispatch(self, raw_text: str) -> None:
        try:
            event_name, payload = protocol.parse_frame(raw_text)
        except EventRoutingError as exc:
            logger.warning("Dropping inbound frame code=%s message=%s", exc.code, exc.message)
            return

        if event_name in _LIFECYCLE_EVENTS:
            logger.warning("Dropping reserved inbound event=%s", event_name)
            return
        if event_name == protocol.ERROR:
            logger.warning("Server error frame payload=%s", payload)

        await self._bus.publish(event_name, payload)

    async def _writer_loop(
        self,
        websocket: aiohttp.ClientWebSocketResponse,
        queue: asyncio.Queue[dict[str, object]],
    ) -> None:
        while True:
            frame = await queue.get()
            try:
                await websocket.send_json(frame)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("WebSocket writer failed event=%s error=%s", frame.get("event"), exc)
                return

    async def _teardown(self) -> bool:
        websocket, session = self._websocket, self._session
        tasks = (self._reader_task, self._writer_task)
        if websocket is None and session is None:
            return False

        self._websocket = None
        self._session = None
        self._outgoing_queue = None
        self._reader_task = None
        self._writer_task = None
        self._state = ConnectionState.DISCONNECTED

        current_task = asyncio.current_task()
        for task in tasks:
            if task is None or task is current_task:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if websocket is not None and not websocket.closed:
            try:
                await websocket.close()
            except Exception:
                logger.debug("WebSocket already closed")
        if session is not None:
            await session.close()
        return True

    async def _finish_disconnect(self, reason: str) -> None:
        logger.info("WebSocket disconnected reason=%s", reason)
        try:
            await self._bus.publish(protocol.DISCONNECT, {"reason": reason})
        finally:
            if self._state is ConnectionState.DISCONNECTED:
                self._state = ConnectionState.IDLE
