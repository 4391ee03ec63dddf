"""Galaxy chat server client."""

from __future__ import annotations

import asyncio
import inspect
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union

import websockets
from loguru import logger
from websockets.exceptions import ConnectionClosed, WebSocketException

from galaxybot.utils import protocol
from galaxybot.utils.challenge import TokenStrategy, resolve_strategy
from galaxybot.utils.config import DEFAULT_WS_URL

ACTION_SETTLE_DELAY = 0.3

Handler = Callable[[Any], Union[Awaitable[None], None]]
HandlerToken = Tuple["GalaxyEvent", Callable[[Any], Awaitable[None]]]
Connector = Callable[[str], Awaitable[Any]]
FrameCallback = Callable[[str, str], Any]


class TransportError(RuntimeError):
    """Raised when the websocket to the game server cannot be opened."""

    def __init__(self, url: str, detail: str) -> None:
        super().__init__(f"Could not open {url}: {detail}")
        self.url = url
        self.detail = detail


class GalaxyEvent(str, Enum):
    """Events delivered by AsyncGalaxyClient.

    Payloads: ``USER_JOIN`` carries a Participant, ``USER_PART`` and
    ``ENEMY_ACTION`` a user id, ``PLANET_JOINED`` the requested planet name (or
    ``None``), ``LOG`` a message string. The rest carry ``None``.
    """

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    AUTHENTICATED = "authenticated"
    PLANET_JOINED = "planet.joined"
    USER_JOIN = "user.join"
    USER_PART = "user.part"
    ENEMY_ACTION = "enemy.action"
    ACTION_SETTLED = "action.settled"
    LOG = "log"


@dataclass
class Session:
    """State of one connection attempt. Never reused across reconnects."""

    recovery_code: str
    transport: Any = None
    authenticated: bool = False
    self_id: str = ""
    token: str = ""
    planet: Optional[str] = None


class AsyncGalaxyClient:
    """Async client for the line-oriented Galaxy protocol over a websocket."""

    def __init__(
        self,
        url: str = DEFAULT_WS_URL,
        *,
        token_strategy: Union[str, TokenStrategy, None] = None,
        action_settle_delay: float = ACTION_SETTLE_DELAY,
        connector: Optional[Connector] = None,
        frame_callback: Optional[FrameCallback] = None,
    ):
        """Initialize the client.

        Args:
            url: Websocket endpoint of the game server
            token_strategy: Registered strategy name or callable deriving the
                challenge token from the server seed
            action_settle_delay: Seconds between sending a prison action and
                emitting ``ACTION_SETTLED``
            connector: Coroutine factory opening the transport (defaults to
                ``websockets.connect``)
            frame_callback: Optional ``(direction, line)`` callback for wire debugging
        """
        self.url = url
        self._token_strategy = resolve_strategy(token_strategy)
        self._action_settle_delay = action_settle_delay
        self._connector: Connector = connector or websockets.connect
        self._frame_callback = frame_callback

        self._session: Optional[Session] = None
        self._recovery_code = ""
        self._reader_task: Optional[asyncio.Task] = None
        self._settle_tasks: Set[asyncio.Task] = set()

        self._event_handlers: Dict[GalaxyEvent, List[Callable[[Any], Awaitable[None]]]] = {}
        self._event_handler_wrappers: Dict[
            Tuple[GalaxyEvent, Handler], Callable[[Any], Awaitable[None]]
        ] = {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    # ------------------------------------------------------------------
    # Event registration
    # ------------------------------------------------------------------

    def _register_event_handler(
        self, event: GalaxyEvent, handler: Handler
    ) -> HandlerToken:
        if not callable(handler):
            raise TypeError("Event handler must be callable")
        event = GalaxyEvent(event)

        async def async_handler(payload: Any) -> None:
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:  # noqa: BLE001
                logger.exception("Unhandled error in {} handler", event.value)

        self._event_handlers.setdefault(event, []).append(async_handler)
        self._event_handler_wrappers[(event, handler)] = async_handler
        return event, async_handler

    def on(self, event: GalaxyEvent):
        def decorator(fn: Handler):
            self._register_event_handler(event, fn)
            return fn

        return decorator

    def add_event_handler(self, event: GalaxyEvent, handler: Handler) -> HandlerToken:
        """Register a handler and return a token for removal."""

        return self._register_event_handler(event, handler)

    def remove_event_handler(self, token: HandlerToken) -> bool:
        """Remove a previously registered handler using its token."""

        event, async_handler = token
        handlers = self._event_handlers.get(event)
        if not handlers:
            return False

        try:
            handlers.remove(async_handler)
        except ValueError:
            return False

        if not handlers:
            self._event_handlers.pop(event, None)
        for key, value in list(self._event_handler_wrappers.items()):
            if value is async_handler:
                self._event_handler_wrappers.pop(key, None)
        return True

    def remove_event_handler_by_callable(self, event: GalaxyEvent, handler: Handler) -> bool:
        wrapper = self._event_handler_wrappers.get((GalaxyEvent(event), handler))
        if not wrapper:
            return False
        return self.remove_event_handler((GalaxyEvent(event), wrapper))

    async def wait_for_event(
        self,
        event: GalaxyEvent,
        *,
        predicate: Optional[Callable[[Any], bool]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Wait for ``event`` (optionally matching ``predicate``) and return its payload."""

        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        token: Optional[HandlerToken] = None

        def _handler(payload: Any) -> None:
            if predicate and not predicate(payload):
                return
            if not future.done():
                future.set_result(payload)
            if token is not None:
                self.remove_event_handler(token)

        token = self.add_event_handler(event, _handler)
        try:
            if timeout is not None:
                return await asyncio.wait_for(future, timeout)
            return await future
        finally:
            if token is not None:
                self.remove_event_handler(token)

    async def _emit(self, event: GalaxyEvent, payload: Any = None) -> None:
        for handler in list(self._event_handlers.get(event, [])):
            await handler(payload)

    async def _log(self, message: str) -> None:
        logger.info(message)
        await self._emit(GalaxyEvent.LOG, message)

    async def _emit_frame(self, direction: str, line: str) -> None:
        if self._frame_callback is None:
            return
        try:
            result = self._frame_callback(direction, line)
            if inspect.isawaitable(result):
                await result
        except Exception:  # pragma: no cover - debugging hooks must never break the client
            logger.exception("Frame callback failed")

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def _open_transport(self) -> Any:
        try:
            return await self._connector(self.url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            raise TransportError(self.url, str(exc) or type(exc).__name__) from exc

    async def connect(self, recovery_code: Optional[str] = None) -> bool:
        """Open a fresh session and send the identification line.

        ``recovery_code`` defaults to the code of the previous ``connect``.
        Returns ``False`` (after emitting ``DISCONNECTED``) if the transport
        cannot be opened.
        """
        if self._session is not None:
            await self.disconnect()

        if recovery_code is not None:
            self._recovery_code = recovery_code.strip()

        try:
            transport = await self._open_transport()
        except TransportError as exc:
            logger.warning("Connection failed: {}", exc.detail)
            await self._emit(GalaxyEvent.LOG, f"Connection failed: {exc.detail}")
            await self._emit(GalaxyEvent.DISCONNECTED)
            return False

        session = Session(recovery_code=self._recovery_code, transport=transport)
        self._session = session
        self._reader_task = asyncio.create_task(self._reader(session))
        await self._send(session, protocol.IDENT_LINE)
        await self._log("Connected to Galaxy")
        await self._emit(GalaxyEvent.CONNECTED)
        return True

    async def disconnect(self) -> None:
        """Send QUIT, close the transport and emit ``DISCONNECTED`` once."""
        session = self._session
        if session is None:
            self._cancel_settlements()
            return
        await self._teardown(session, send_quit=True)

    async def _teardown(self, session: Session, *, send_quit: bool) -> None:
        if self._session is not session:
            return
        self._session = None
        session.authenticated = False
        self._cancel_settlements()

        transport = session.transport
        session.transport = None
        if transport is not None:
            if send_quit:
                with suppress(ConnectionClosed, OSError):
                    await transport.send(protocol.QUIT_LINE + protocol.LINE_TERMINATOR)
            with suppress(ConnectionClosed, OSError):
                await transport.close()

        reader = self._reader_task
        self._reader_task = None
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()

        await self._log("Disconnected")
        await self._emit(GalaxyEvent.DISCONNECTED)

    def _cancel_settlements(self) -> None:
        current = asyncio.current_task()
        for task in list(self._settle_tasks):
            if task is not current:
                task.cancel()
        self._settle_tasks.clear()

    async def _reader(self, session: Session) -> None:
        transport = session.transport
        try:
            async for raw in transport:
                if isinstance(raw, bytes):
                    raw = raw.decode("utf-8", errors="replace")
                await self._receive(session, raw)
                if self._session is not session:
                    return
        except ConnectionClosed as exc:
            logger.debug("Transport closed: {}", exc)
        except OSError as exc:
            logger.warning("Transport error: {}", exc)
        await self._teardown(session, send_quit=False)

    async def _send(self, session: Session, line: str) -> bool:
        transport = session.transport
        if transport is None:
            return False
        await self._emit_frame("send", line)
        try:
            await transport.send(line + protocol.LINE_TERMINATOR)
        except ConnectionClosed:
            logger.debug("Dropped outbound line on closed transport: {}", line)
            return False
        return True

    # ------------------------------------------------------------------
    # Inbound dispatch
    # ------------------------------------------------------------------

    async def feed(self, data: str) -> None:
        """Process a raw inbound frame for the current session."""
        if self._session is not None:
            await self._receive(self._session, data)

    async def _receive(self, session: Session, data: str) -> None:
        for line in protocol.split_frame(data):
            if self._session is not session:
                return
            await self._emit_frame("recv", line)
            parsed = protocol.parse_line(line)
            if parsed is not None:
                await self._dispatch(session, parsed)

    async def _dispatch(self, session: Session, line: protocol.ParsedLine) -> None:
        command = line.command

        if command == protocol.CMD_PING:
            await self._send(session, protocol.pong())

        elif command == protocol.CMD_CHALLENGE:
            await self._send(session, protocol.recover(session.recovery_code))
            session.token = self._token_strategy(line.arg(0))

        elif command == protocol.CMD_REGISTER:
            session.self_id = line.arg(0)
            await self._send(
                session,
                protocol.register_user(line.arg(0), line.arg(1), line.arg(2), session.token),
            )

        elif command == protocol.CMD_AUTH_OK:
            session.authenticated = True
            await self._log("Authenticated")
            await self._emit(GalaxyEvent.AUTHENTICATED)

        elif command == protocol.CMD_PLANET_JOINED:
            await self._emit(GalaxyEvent.PLANET_JOINED, session.planet)

        elif command == protocol.CMD_JOIN:
            participant = protocol.parse_join(line.args, session.self_id)
            if participant is not None:
                await self._emit(GalaxyEvent.USER_JOIN, participant)

        elif command == protocol.CMD_ROSTER:
            for participant in protocol.parse_roster(line.content, session.self_id):
                await self._emit(GalaxyEvent.USER_JOIN, participant)

        elif command in (protocol.CMD_PART, protocol.CMD_SLEEP):
            user_id = line.arg(0)
            if user_id:
                await self._emit(GalaxyEvent.USER_PART, user_id)

        elif command == protocol.CMD_ACTION:
            target_id = line.arg(1)
            if (
                line.arg(0) == protocol.PRISON_ACTION_TYPE
                and target_id
                and target_id != session.self_id
            ):
                await self._emit(GalaxyEvent.ENEMY_ACTION, target_id)

        elif command == protocol.CMD_PRISONED:
            enemy_id = line.arg(0)
            if enemy_id and enemy_id != session.self_id:
                await self._emit(GalaxyEvent.ENEMY_ACTION, enemy_id)

        elif command in protocol.FATAL_CODES:
            await self._log(f"Server rejected session ({command})")
            await self._teardown(session, send_quit=True)

        else:
            logger.debug("Ignoring line: {}", line.raw)

    # ------------------------------------------------------------------
    # Game actions
    # ------------------------------------------------------------------

    async def join_planet(self, name: str) -> bool:
        """Send JOIN for ``name``; a no-op returning ``False`` unless authenticated."""
        session = self._session
        if session is None or not session.authenticated:
            return False
        session.planet = name
        return await self._send(session, protocol.join_planet(name))

    async def prison_user(self, user_id: str) -> bool:
        """Send the prison action and emit ``ACTION_SETTLED`` after the settle delay.

        A no-op returning ``False`` unless authenticated.
        """
        session = self._session
        if session is None or not session.authenticated:
            return False
        if not await self._send(session, protocol.prison(user_id)):
            return False
        task = asyncio.create_task(self._settle_after(session))
        self._settle_tasks.add(task)
        task.add_done_callback(self._settle_tasks.discard)
        return True

    async def _settle_after(self, session: Session) -> None:
        await asyncio.sleep(self._action_settle_delay)
        if self._session is session:
            await self._emit(GalaxyEvent.ACTION_SETTLED)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def recovery_code(self) -> str:
        return self._recovery_code

    def is_connected(self) -> bool:
        return self._session is not None and self._session.transport is not None

    def is_authenticated(self) -> bool:
        return self._session is not None and self._session.authenticated

    def get_self_id(self) -> str:
        return self._session.self_id if self._session else ""

    def current_planet(self) -> Optional[str]:
        return self._session.planet if self._session else None
