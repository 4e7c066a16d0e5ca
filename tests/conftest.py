import curio
import pytest

from richpresence.exc import DialError
from richpresence.ipc.packet import IPCOpcode, IPCPacket, encode
from richpresence.ipc.transport import Transport

# captured before any test patches curio.sleep
real_sleep = curio.sleep


class FakeTransport(Transport):
    """
    An in-memory transport. Bytes fed in are handed to the reader in the chunks they were fed.
    """

    def __init__(self, fail_writes: bool = False):
        super().__init__("fake-ipc")
        self.fail_writes = fail_writes
        self.written = []
        self._incoming = curio.Queue()
        self._buffer = b""

    async def feed(self, data: bytes) -> None:
        await self._incoming.put(data)

    async def feed_packet(self, opcode: IPCOpcode, data) -> None:
        await self.feed(encode(opcode, data))

    async def feed_eof(self) -> None:
        await self._incoming.put(b"")

    async def read(self, max_size: int) -> bytes:
        if not self._buffer:
            self._buffer = await self._incoming.get()
            if not self._buffer:
                return b""

        data, self._buffer = self._buffer[:max_size], self._buffer[max_size:]
        return data

    async def _write(self, data: bytes) -> None:
        if self.fail_writes:
            raise BrokenPipeError("broken pipe")

        self.written.append(IPCPacket.deserialize(data))

    async def _close(self) -> None:
        await self._incoming.put(b"")

    def commands(self, cmd: str = "SET_ACTIVITY"):
        return [packet for packet in self.written if packet.cmd == cmd]


class FakeDialer(object):
    """
    A transport factory that fails the dials listed in ``failures`` (1-based).
    """

    def __init__(self, failures=(), fail_writes: bool = False):
        self.failures = set(failures)
        self.fail_writes = fail_writes
        self.dials = 0
        self.transports = []

    async def __call__(self, slot: int) -> FakeTransport:
        self.dials += 1
        if self.dials in self.failures:
            raise DialError("fake-ipc", ConnectionRefusedError("refused"))

        transport = FakeTransport(fail_writes=self.fail_writes)
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


async def wait_for(predicate, timeout: float = 2.0) -> None:
    """
    Waits until ``predicate()`` is true, yielding to other tasks in between.
    """
    async with curio.timeout_after(timeout):
        while not predicate():
            await real_sleep(0.001)


@pytest.fixture
def dialer():
    return FakeDialer()


@pytest.fixture
def sleeps(monkeypatch):
    """
    Records reconnect backoff sleeps instead of waiting for them.
    """
    recorded = []

    async def fake_sleep(seconds):
        recorded.append(seconds)
        await real_sleep(0)

    monkeypatch.setattr(curio, "sleep", fake_sleep)
    return recorded
