"""Byte transports for the binary protocol."""

import logging
import socket

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 8192


class TransportError(IOError):
    """Raised when opening, reading, writing or closing a transport fails."""


def parse_endpoint(endpoint: str) -> tuple[str, int]:
    """Split a ``host:port`` endpoint into its parts."""
    host, sep, port = endpoint.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"Invalid endpoint {endpoint!r}, expected host:port")
    return host.strip("[]"), int(port)


class Transport:
    """Interface shared by all transports."""

    def is_open(self) -> bool:
        raise NotImplementedError

    def open(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    def read(self, size: int) -> bytes:
        """Read exactly ``size`` bytes."""
        raise NotImplementedError

    def write(self, data: bytes) -> None:
        raise NotImplementedError

    def flush(self) -> None:
        raise NotImplementedError


class MemoryTransport(Transport):
    """Transport over an in-memory buffer.

    Reads consume ``data`` from the front, writes append to a separate
    output buffer available through ``getvalue()``.
    """

    def __init__(self, data: bytes = b"") -> None:
        self._input = memoryview(bytes(data))
        self._pos = 0
        self._output = bytearray()
        self._open = True

    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        self._open = True

    def close(self) -> None:
        self._open = False

    def read(self, size: int) -> bytes:
        end = self._pos + size
        if end > len(self._input):
            raise TransportError(
                f"End of buffer: wanted {size} bytes, {len(self._input) - self._pos} left"
            )
        data = bytes(self._input[self._pos : end])
        self._pos = end
        return data

    def write(self, data: bytes) -> None:
        self._output.extend(data)

    def flush(self) -> None:
        pass

    def getvalue(self) -> bytes:
        """Return everything written so far."""
        return bytes(self._output)


class SocketTransport(Transport):
    """Buffered TCP transport.

    ``timeout`` (seconds) applies to connect as well as every read and
    write. Writes are held until ``flush()``.
    """

    def __init__(
        self,
        host: str,
        port: int,
        timeout: float | None = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self._buffer_size = buffer_size
        self._sock: socket.socket | None = None
        self._rbuf = bytearray()
        self._wbuf = bytearray()

    def is_open(self) -> bool:
        return self._sock is not None

    def open(self) -> None:
        if self._sock is not None:
            return
        logger.debug("Connecting to %s:%d", self.host, self.port)
        try:
            self._sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        except OSError as e:
            raise TransportError(f"Could not connect to {self.host}:{self.port}: {e}") from e
        self._rbuf.clear()
        self._wbuf.clear()

    def close(self) -> None:
        sock, self._sock = self._sock, None
        self._rbuf.clear()
        self._wbuf.clear()
        if sock is None:
            return
        try:
            sock.close()
        except OSError as e:
            raise TransportError(f"Error closing {self.host}:{self.port}: {e}") from e

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise TransportError("Transport not open")
        return self._sock

    def read(self, size: int) -> bytes:
        sock = self._require_socket()
        while len(self._rbuf) < size:
            try:
                chunk = sock.recv(max(self._buffer_size, size - len(self._rbuf)))
            except OSError as e:
                raise TransportError(f"Read from {self.host}:{self.port} failed: {e}") from e
            if not chunk:
                raise TransportError(f"Connection to {self.host}:{self.port} closed by peer")
            self._rbuf.extend(chunk)
        data = bytes(self._rbuf[:size])
        del self._rbuf[:size]
        return data

    def write(self, data: bytes) -> None:
        self._require_socket()
        self._wbuf.extend(data)

    def flush(self) -> None:
        sock = self._require_socket()
        data = bytes(self._wbuf)
        self._wbuf.clear()
        try:
            sock.sendall(data)
        except OSError as e:
            raise TransportError(f"Write to {self.host}:{self.port} failed: {e}") from e
