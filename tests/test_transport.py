import os
import threading

import curio
import pytest

from richpresence.exc import ReadError
from richpresence.ipc import transport as transport_module
from richpresence.ipc.transport import PipeTransport, get_ipc_path
from tests.conftest import real_sleep


class FakePipe(object):
    """
    Stands in for a synchronous pipe handle. Reading with nothing buffered would block forever
    on a real handle, so it fails loudly here instead.
    """

    def __init__(self):
        self.incoming = bytearray()
        self.written = bytearray()
        self.closed = False
        self._lock = threading.Lock()

    def read(self, size: int) -> bytes:
        with self._lock:
            assert self.incoming, "ReadFile issued on an empty pipe"
            data = bytes(self.incoming[:size])
            del self.incoming[:size]
            return data

    def write(self, data) -> int:
        with self._lock:
            self.written.extend(data)
            return len(data)

    def available(self) -> int:
        with self._lock:
            return len(self.incoming)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def pipe(monkeypatch):
    monkeypatch.setattr(transport_module, "_peek_named_pipe", lambda p: p.available())
    monkeypatch.setattr(transport_module, "PIPE_POLL_INTERVAL", 0.001)
    return FakePipe()


def test_pipe_write_while_read_waits(pipe):
    async def main():
        transport = PipeTransport("fake-pipe", pipe)
        reader = await curio.spawn(transport.read_exactly, 4)
        await real_sleep(0.01)

        await transport.write(b"ping")
        assert bytes(pipe.written) == b"ping"

        pipe.incoming.extend(b"pong")
        return await reader.join()

    assert curio.run(main) == b"pong"


def test_pipe_read_is_limited_to_available_bytes(pipe):
    async def main():
        transport = PipeTransport("fake-pipe", pipe)
        pipe.incoming.extend(b"abc")
        return await transport.read(1024)

    assert curio.run(main) == b"abc"


def test_pipe_close_wakes_reader(pipe):
    async def main():
        transport = PipeTransport("fake-pipe", pipe)
        reader = await curio.spawn(transport.read_exactly, 8)
        await real_sleep(0.01)

        await transport.close()
        with pytest.raises(curio.TaskError) as info:
            await reader.join()

        return info.value.__cause__

    assert isinstance(curio.run(main), ReadError)
    assert pipe.closed


def test_ipc_path_uses_runtime_dir(monkeypatch):
    monkeypatch.setattr(transport_module.platform, "system", lambda: "Linux")
    monkeypatch.setenv("XDG_RUNTIME_DIR", "/run/user/1000")

    assert get_ipc_path(3) == os.path.join("/run/user/1000", "discord-ipc-3")


def test_ipc_path_falls_back_to_tmp(monkeypatch):
    monkeypatch.setattr(transport_module.platform, "system", lambda: "Darwin")
    for env in ("XDG_RUNTIME_DIR", "TMPDIR", "TMP", "TEMP"):
        monkeypatch.delenv(env, raising=False)

    assert get_ipc_path() == os.path.join("/tmp", "discord-ipc-0")


def test_ipc_path_windows(monkeypatch):
    monkeypatch.setattr(transport_module.platform, "system", lambda: "Windows")

    assert get_ipc_path(1) == r"\\?\pipe\discord-ipc-1"
