"""Unit tests configuration file."""

from collections.abc import Callable
from pathlib import Path

import pytest

from dynthrift.idl import Thrift, load
from dynthrift.proto import BinaryProtocol, MemoryTransport, Service, TransportError
from dynthrift.proto.transport import Transport

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def pytest_configure(config):
    """Disable verbose output when running tests."""
    terminal = config.pluginmanager.getplugin("terminal")
    if terminal:
        terminal.TerminalReporter.showfspath = False


class ScriptedTransport(Transport):
    """Transport that answers every flushed request with the bytes a handler returns."""

    def __init__(self, handler: Callable[[bytes], bytes | None]) -> None:
        self.handler = handler
        self.requests: list[bytes] = []
        self.open_count = 0
        self._open = False
        self._pending = bytearray()
        self._responses = bytearray()

    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        self._open = True
        self.open_count += 1

    def close(self) -> None:
        self._open = False
        self._pending.clear()
        self._responses.clear()

    def read(self, size: int) -> bytes:
        if len(self._responses) < size:
            raise TransportError("Peer sent no more data")
        data = bytes(self._responses[:size])
        del self._responses[:size]
        return data

    def write(self, data: bytes) -> None:
        self._pending.extend(data)

    def flush(self) -> None:
        request = bytes(self._pending)
        self._pending.clear()
        self.requests.append(request)
        response = self.handler(request)
        if response:
            self._responses.extend(response)


def encode_message(
    name: str, message_type: int, seqid: int, write_body: Callable[[BinaryProtocol], None]
) -> bytes:
    """Encode one message whose body is written by ``write_body``."""
    buffer = MemoryTransport()
    protocol = BinaryProtocol(buffer)
    protocol.write_message_begin(name, message_type, seqid)
    write_body(protocol)
    protocol.write_message_end()
    return buffer.getvalue()


@pytest.fixture
def document() -> Thrift:
    return load(FIXTURES_DIR / "calculator.thrift")


@pytest.fixture
def service(document: Thrift) -> Service:
    return Service(document, "Calculator")


@pytest.fixture
def scripted() -> type[ScriptedTransport]:
    return ScriptedTransport


@pytest.fixture
def message() -> Callable[..., bytes]:
    return encode_message
