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
Transports that carry IPC frames between this process and the Discord client.

.. currentmodule:: richpresence.ipc.transport
"""
import logging
import os
import platform

import curio

from richpresence.exc import DialError, ReadError, WriteError

logger = logging.getLogger("richpresence.ipc.transport")


def get_ipc_path(slot: int = 0) -> str:
    """
    Gets the IPC path for Discord.

    :param slot: The IPC slot to use. Discord listens on the first free slot from 0 to 9.
    """
    if platform.system() == "Windows":
        return fr"\\?\pipe\discord-ipc-{slot}"

    for env in ("XDG_RUNTIME_DIR", "TMPDIR", "TMP", "TEMP"):
        base = os.environ.get(env)
        if base:
            break
    else:
        base = "/tmp"

    return os.path.join(base, f"discord-ipc-{slot}")


class Transport(object):
    """
    The base class for a duplex byte stream to the Discord client.

    Subclasses implement :meth:`_write`, :meth:`read` and :meth:`_close`.
    """

    def __init__(self, path: str):
        #: The path this transport is connected to.
        self.path = path

        self._closed = False
        self._write_lock = curio.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    async def _write(self, data: bytes) -> None:
        raise NotImplementedError

    async def _close(self) -> None:
        raise NotImplementedError

    async def read(self, max_size: int) -> bytes:
        """
        Reads up to ``max_size`` bytes. An empty result means end of stream.
        """
        raise NotImplementedError

    async def write(self, data: bytes) -> None:
        """
        Writes all of ``data``. Concurrent writes are sent one after another, never interleaved.
        """
        async with self._write_lock:
            if self._closed:
                raise WriteError("Connection closed")

            try:
                await self._write(data)
            except OSError as e:
                raise WriteError(str(e)) from e

    async def read_exactly(self, size: int) -> bytes:
        """
        Reads exactly ``size`` bytes, waiting for more data on short reads.
        """
        buf = bytearray()
        while len(buf) < size:
            if self._closed:
                raise ReadError("Connection closed")

            try:
                chunk = await self.read(size - len(buf))
            except OSError as e:
                raise ReadError(str(e)) from e

            if not chunk:
                raise ReadError("Connection closed after {} of {} bytes".format(len(buf), size))

            buf.extend(chunk)

        return bytes(buf)

    async def close(self) -> None:
        """
        Closes this transport. Closing twice does nothing.
        """
        if self._closed:
            return

        self._closed = True
        logger.debug("Closing IPC transport %s", self.path)
        try:
            await self._close()
        except OSError:
            logger.debug("Error closing IPC transport %s", self.path, exc_info=True)


class UnixSocketTransport(Transport):
    """
    A transport over a Unix domain socket.
    """

    def __init__(self, path: str, sock):
        super().__init__(path)
        self._sock = sock

    @classmethod
    async def open(cls, path: str) -> 'UnixSocketTransport':
        try:
            sock = await curio.open_unix_connection(path)
        except OSError as e:
            raise DialError(path, e) from e

        return cls(path, sock)

    async def read(self, max_size: int) -> bytes:
        return await self._sock.recv(max_size)

    async def _write(self, data: bytes) -> None:
        await self._sock.sendall(data)

    async def _close(self) -> None:
        await self._sock.close()


#: How often an idle pipe is checked for incoming data, in seconds.
PIPE_POLL_INTERVAL = 0.05


def _peek_named_pipe(pipe) -> int:
    """
    Gets the number of bytes that can be read from a pipe without blocking.
    """
    import ctypes
    import msvcrt
    from ctypes import wintypes

    handle = wintypes.HANDLE(msvcrt.get_osfhandle(pipe.fileno()))
    available = wintypes.DWORD(0)
    if not ctypes.windll.kernel32.PeekNamedPipe(handle, None, 0, None,
                                                ctypes.byref(available), None):
        raise ctypes.WinError()

    return available.value


class PipeTransport(Transport):
    """
    A transport over a Windows named pipe. Pipe I/O is blocking, so it runs in worker threads.

    The pipe handle is synchronous, so Windows runs one request on it at a time. A ``ReadFile``
    is only issued once data is waiting, so a write never queues behind a read that waits for
    the reply to that very write.
    """

    def __init__(self, path: str, pipe):
        super().__init__(path)
        self._pipe = pipe

    @classmethod
    async def open(cls, path: str) -> 'PipeTransport':
        try:
            pipe = await curio.run_in_thread(open, path, "r+b", 0)
        except OSError as e:
            raise DialError(path, e) from e

        return cls(path, pipe)

    async def read(self, max_size: int) -> bytes:
        while True:
            # closing ends the wait without a thread stuck in ReadFile
            if self._closed:
                return b""

            available = _peek_named_pipe(self._pipe)
            if available:
                break

            await curio.sleep(PIPE_POLL_INTERVAL)

        return await curio.run_in_thread(self._pipe.read, min(available, max_size))

    async def _write(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = await curio.run_in_thread(self._pipe.write, view)
            view = view[written:]

    async def _close(self) -> None:
        self._pipe.close()


async def open_transport(slot: int = 0) -> Transport:
    """
    Opens the IPC transport for this platform.

    :param slot: The IPC slot to connect to.
    :return: A connected :class:`.Transport`.
    """
    path = get_ipc_path(slot)
    logger.debug("Opening IPC connection to %s", path)
    if platform.system() == "Windows":
        return await PipeTransport.open(path)

    return await UnixSocketTransport.open(path)
