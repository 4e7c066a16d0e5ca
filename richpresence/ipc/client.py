# This file is part of richpresence.
#
# richpresence is free software: you can redistribute it and/or modify
# it under the terms of the GNU Lesser General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# richpresence is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Lesser General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public License
# along with richpresence.  If not, see <http://www.gnu.org/licenses/>.

"""
The client for an IPC connection.

.. currentmodule:: richpresence.ipc.client
"""
import enum
import inspect
import logging
import os
import uuid
from typing import Awaitable, Callable

import curio

from richpresence.dataclasses.presence import Activity
from richpresence.exc import AlreadyConnectedError, CommandError, DecodeError, DialError, \
    FramingError, HandshakeSendError, IPCError, NotConnectedError, ReadError, \
    ReconnectFailedError, RemoteClosedError
from richpresence.ipc.packet import IPCOpcode, IPCPacket
from richpresence.ipc.transport import Transport, get_ipc_path, open_transport

logger = logging.getLogger("richpresence.ipc.client")

#: The names observers can be registered under.
EVENT_NAMES = ("ready", "error", "closed",
               "activity_join", "activity_spectate", "activity_join_request")


def get_nonce() -> str:
    """
    Gets a random nonce.
    """
    return str(uuid.uuid4())


class ConnectionState(enum.Enum):
    """
    Represents the state of an :class:`.IPCClient`.
    """
    #: No connection is open.
    DISCONNECTED = "disconnected"

    #: A connection is being opened.
    CONNECTING = "connecting"

    #: The handshake was sent, but the Discord client has not sent READY yet.
    CONNECTED = "connected"

    #: The Discord client sent READY. Activities are sent straight away.
    READY = "ready"

    #: The client was closed by the user. It will not reconnect on its own.
    CLOSED = "closed"


class IPCClient(object):
    """
    Represents an IPC (interprocess communication) client. This connects to the Discord client on
    the IPC socket.

    To use, create a new instance with your app's client ID:

    .. code-block:: python3

        ipc = IPCClient(323578534763298816)

    Register any observers, then connect:

    .. code-block:: python3

        @ipc.event("ready")
        async def ready(data):
            print("Connected as", data["user"]["username"])

        await ipc.connect()
        await ipc.set_activity(Activity(state="In the menus"))

    Activities set before the Discord client has sent READY are held back and sent once it does.
    If the connection drops, the client reconnects in the background and sends the last activity
    again.
    """
    VERSION = 1

    def __init__(self, client_id, *,
                 slot: int = 0,
                 reconnect_attempts: int = 5,
                 reconnect_backoff: float = 1.0,
                 transport_factory: Callable[[int], Awaitable[Transport]] = open_transport,
                 nonce_factory: Callable[[], str] = get_nonce):
        """
        :param client_id: The client ID to authenticate with.
        :param slot: The IPC slot to connect to.
        :param reconnect_attempts: How many times to try reconnecting after the connection drops.
        :param reconnect_backoff: The wait after the first failed reconnect, doubled each time.
        :param transport_factory: An async callable that opens a :class:`.Transport` for a slot.
        :param nonce_factory: A callable that returns a new unique string.
        """
        self.client_id = client_id
        self.reconnect_attempts = reconnect_attempts
        self.reconnect_backoff = reconnect_backoff

        self._ipc_slot = slot
        self._transport_factory = transport_factory
        self._nonce_factory = nonce_factory

        # guards everything below; never held across I/O or observer calls
        self._lock = curio.Lock()
        self._state = ConnectionState.DISCONNECTED
        self._transport = None  # type: Transport
        self._reader_task = None  # type: curio.Task
        self._pending_activity = None  # type: Activity
        self._activity = Activity()
        # bumped by every set_activity call
        self._activity_generation = 0
        self._reconnect = True

        self._observers = {}

    def __repr__(self) -> str:
        return "<IPCClient client_id={} state={}>".format(self.client_id, self._state.name)

    async def __aenter__(self) -> 'IPCClient':
        return await self.connect()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def state(self) -> ConnectionState:
        """
        :return: The current :class:`.ConnectionState` of this client.
        """
        return self._state

    @property
    def ready(self) -> bool:
        """
        :return: If the Discord client has sent READY on the current connection.
        """
        return self._state is ConnectionState.READY

    # Observers
    def set_observer(self, name: str, func) -> None:
        """
        Sets the observer for an event, replacing any previous one.

        :param name: One of :data:`EVENT_NAMES`.
        :param func: The async function to call.
        """
        if name not in EVENT_NAMES:
            raise ValueError("Unknown event '{}'".format(name))

        if not inspect.iscoroutinefunction(func):
            raise TypeError("Observer must be an async function")

        logger.debug("Registered observer `{}` handling `{}`".format(func, name))
        self._observers[name] = func

    def event(self, name: str):
        """
        A decorator that sets the observer for an event.

        .. code-block:: python3

            @ipc.event("activity_join")
            async def join(secret: str):
                ...

        :param name: One of :data:`EVENT_NAMES`.
        """
        def _inner(func):
            self.set_observer(name, func)
            return func

        return _inner

    async def _dispatch(self, name: str, *args) -> None:
        """
        Calls the observer for an event. Errors are logged, never raised.
        """
        func = self._observers.get(name)
        if func is None:
            return

        try:
            await func(*args)
        except Exception:
            logger.exception("Unhandled exception in observer {}!".format(func.__name__))

    # Connection
    async def connect(self) -> 'IPCClient':
        """
        Opens this IPC connection and sends the handshake.

        This returns once the handshake is written. It does not wait for READY.
        """
        async with self._lock:
            if self._transport is not None or self._state is ConnectionState.CONNECTING:
                raise AlreadyConnectedError("Already connected")

            self._state = ConnectionState.CONNECTING

        try:
            try:
                transport = await self._transport_factory(self._ipc_slot)
            except OSError as e:
                raise DialError(get_ipc_path(self._ipc_slot), e) from e

            try:
                await transport.write(self._handshake_packet().serialize())
            except IPCError as e:
                await transport.close()
                raise HandshakeSendError("Failed to send handshake: {}".format(e)) from e
        except BaseException:
            async with self._lock:
                if self._state is ConnectionState.CONNECTING:
                    self._state = ConnectionState.DISCONNECTED
            raise

        async with self._lock:
            # close() was called while we were dialing
            if self._state is not ConnectionState.CONNECTING:
                closed = True
            else:
                closed = False
                self._transport = transport
                self._state = ConnectionState.CONNECTED

        if closed:
            await transport.close()
            raise NotConnectedError("Client was closed while connecting")

        logger.info("Connected to Discord IPC at %s", transport.path)
        task = await curio.spawn(self._read_loop, transport, daemon=True)
        async with self._lock:
            self._reader_task = task

        return self

    async def close(self) -> None:
        """
        Closes this IPC connection. Automatic reconnection stays off for the rest of this client's
        life, although :meth:`connect` can still be called by hand.

        Calling this more than once is harmless.
        """
        async with self._lock:
            self._reconnect = False
            self._state = ConnectionState.CLOSED
            transport, self._transport = self._transport, None
            reader, self._reader_task = self._reader_task, None

        if reader is not None and reader is not await curio.current_task():
            await reader.cancel(blocking=False)

        if transport is not None:
            await transport.close()
            logger.info("IPC connection closed")
            await self._dispatch("closed")

    def _handshake_packet(self) -> IPCPacket:
        data = {
            "v": IPCClient.VERSION,
            "client_id": str(self.client_id)
        }

        return IPCPacket(IPCOpcode.HANDSHAKE, data)

    # Reader methods
    async def _read_loop(self, transport: Transport) -> None:
        """
        Reads packets off of the transport until it fails.
        """
        logger.debug("Starting IPC read loop")
        while True:
            try:
                packet = await IPCPacket.read_packet(transport)
            except DecodeError as e:
                logger.warning("Skipping malformed IPC frame: %s", e)
                continue
            except (ReadError, FramingError) as e:
                return await self._connection_lost(transport, e)

            logger.debug("Received IPC packet %r", packet)
            if packet.opcode == IPCOpcode.CLOSE:
                data = packet.json if isinstance(packet.json, dict) else {}
                error = RemoteClosedError(data.get("code"), data.get("message"))
                return await self._connection_lost(transport, error)

            await self._handle_packet(transport, packet)

            async with self._lock:
                if self._transport is not transport:
                    # closed by an observer
                    return

    async def _handle_packet(self, transport: Transport, packet: IPCPacket) -> None:
        """
        Routes a received packet to the right observer.
        """
        event = packet.event
        data = packet.data if isinstance(packet.data, dict) else {}

        if event == "READY":
            async with self._lock:
                if self._transport is not transport:
                    return

                self._state = ConnectionState.READY
                pending, self._pending_activity = self._pending_activity, None
                generation = self._activity_generation

            logger.info("Received READY from Discord")
            await self._dispatch("ready", packet.data)

            if pending is None:
                return

            async with self._lock:
                # the ready observer may have set an activity itself
                superseded = generation != self._activity_generation

            if superseded:
                return

            try:
                await self._send_activity(pending)
            except (IPCError, ValueError) as e:
                logger.error("Failed sending pending activity: %s", e)
            else:
                logger.info("Sent pending activity after READY")

        elif event == "ERROR":
            error = CommandError(data.get("code"), data.get("message"))
            logger.warning("Command %s failed: %s", packet.cmd, error)
            await self._dispatch("error", error)

        elif event == "ACTIVITY_JOIN":
            await self._dispatch("activity_join", data.get("secret"))

        elif event == "ACTIVITY_SPECTATE":
            await self._dispatch("activity_spectate", data.get("secret"))

        elif event == "ACTIVITY_JOIN_REQUEST":
            await self._dispatch("activity_join_request", data.get("user"))

        else:
            logger.debug("Ignoring IPC event %s", event)

    async def _connection_lost(self, transport: Transport, error: IPCError) -> None:
        """
        Called from the read loop when the connection fails.
        """
        async with self._lock:
            if self._transport is not transport:
                # already closed or replaced, nobody is waiting on this one
                return

            self._transport = None
            self._state = ConnectionState.DISCONNECTED

        await transport.close()
        logger.warning("IPC connection lost: %s", error)
        await self._dispatch("error", error)

        async with self._lock:
            # the error observer may have closed the client
            reconnect = self._reconnect

        if reconnect:
            await self._reconnect_loop()
        else:
            await self._dispatch("closed")

    async def _reconnect_loop(self) -> None:
        """
        Tries to reconnect, waiting longer after every failed attempt.
        """
        backoff = self.reconnect_backoff

        for attempt in range(1, self.reconnect_attempts + 1):
            async with self._lock:
                if not self._reconnect:
                    return

            logger.debug("Reconnect attempt %d/%d", attempt, self.reconnect_attempts)
            try:
                await self.connect()
            except AlreadyConnectedError:
                # connected by hand in the meantime
                return
            except IPCError as e:
                logger.warning("Reconnect attempt %d failed: %s", attempt, e)
                if attempt < self.reconnect_attempts:
                    await curio.sleep(backoff)
                    backoff *= 2
                continue

            logger.info("Reconnected successfully")
            async with self._lock:
                activity = self._activity

            if not activity.is_empty():
                try:
                    await self.set_activity(activity)
                except (IPCError, ValueError):
                    logger.exception("Failed to republish activity after reconnecting")

            return

        logger.error("Failed to reconnect after %d attempts", self.reconnect_attempts)
        await self._dispatch("error", ReconnectFailedError(self.reconnect_attempts))
        await self._dispatch("closed")

    # Writer methods
    async def _send_activity(self, activity: Activity) -> None:
        """
        Writes a rich presence packet.
        """
        async with self._lock:
            transport = self._transport
            if transport is None:
                raise NotConnectedError("Not connected")

            document = activity.to_payload(self._nonce_factory)

        data = {
            "cmd": "SET_ACTIVITY",
            "args": {
                "pid": os.getpid(),
                "activity": document
            },
            "nonce": self._nonce_factory()
        }
        logger.debug("Outgoing SET_ACTIVITY payload: %r", data)
        await transport.write(IPCPacket(IPCOpcode.FRAME, data).serialize())

    # Convenience methods
    async def set_activity(self, activity: Activity) -> None:
        """
        Sets the Rich Presence activity.

        If the Discord client has not sent READY yet, the activity is held back and sent when it
        does. A later call replaces a held back activity instead of queueing behind it.

        :param activity: The :class:`.Activity` to use.
        """
        activity.validate()

        async with self._lock:
            self._activity = activity
            self._activity_generation += 1
            if self._state is not ConnectionState.READY:
                self._pending_activity = activity
                logger.info("Activity queued until READY")
                return

        await self._send_activity(activity)
