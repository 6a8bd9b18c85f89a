"""Dynamic client: calls any method of a service described by an IDL document."""

import logging
import threading
from collections.abc import Sequence
from enum import Enum, auto
from typing import TYPE_CHECKING, Any

from ..idl.types import Method, Thrift
from .binary import BinaryProtocol, MessageType, read_application_exception
from .codec import Codec
from .coercion import GenericValue
from .errors import (
    ApplicationException,
    DeclaredException,
    ProtocolViolationError,
    SequenceMismatchError,
    SessionFaultedError,
)
from .service import Service
from .transport import (
    DEFAULT_BUFFER_SIZE,
    MemoryTransport,
    SocketTransport,
    Transport,
    parse_endpoint,
)

if TYPE_CHECKING:
    from ..config import ClientConfig

logger = logging.getLogger(__name__)

MAX_SEQID = 2**31 - 1


class SessionState(Enum):
    IDLE = auto()
    SENDING = auto()
    AWAITING_RESPONSE = auto()
    FAULTED = auto()


class Client:
    """A session with one remote service.

    Example:
        document = load("tutorial.thrift")
        with Client(Service(document, "Calculator"), "localhost:9090", timeout=5) as client:
            client.call("add", 1, 2)

    Calls on one client are serialized. A call that fails part way through
    the wire exchange leaves the client FAULTED; ``close()`` it before
    calling again, the next call reconnects.
    """

    def __init__(
        self,
        service: Service,
        endpoint: str | None = None,
        timeout: float | None = None,
        *,
        transport: Transport | None = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        if transport is None:
            if endpoint is None:
                raise ValueError("Either an endpoint or a transport is required")
            host, port = parse_endpoint(endpoint)
            transport = SocketTransport(host, port, timeout=timeout, buffer_size=buffer_size)

        self.service = service
        self.transport = transport
        self.input_protocol = BinaryProtocol(transport)
        self.output_protocol = BinaryProtocol(transport)
        self.seqid = 0
        self.state = SessionState.IDLE
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, document: Thrift, config: "ClientConfig") -> "Client":
        """Create a client from a ``ClientConfig``."""
        if config.service is None:
            raise ValueError("Configuration does not name a service")
        return cls(
            Service(document, config.service),
            config.endpoint,
            timeout=config.timeout,
            buffer_size=config.buffer_size,
        )

    def __enter__(self) -> "Client":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def open(self) -> None:
        if not self.transport.is_open():
            self.transport.open()

    def close(self) -> None:
        """Close the transport and clear a FAULTED state."""
        with self._lock:
            self.state = SessionState.IDLE
            self.transport.close()

    def call(self, method_name: str, *args: Any) -> GenericValue:
        """Call a method with positional arguments and return its result.

        Raises ``DeclaredException`` for exceptions in the method's throws
        clause and ``ApplicationException`` for generic remote failures.
        Every call takes a new sequence id, even one that fails before
        anything is sent.
        """
        with self._lock:
            if self.state is not SessionState.IDLE:
                raise SessionFaultedError(
                    f"Session is {self.state.name}, close it before making further calls"
                )

            self._next_seqid()
            method = self.service.method(method_name)
            request = self._encode_request(method, args)

            try:
                self.state = SessionState.SENDING
                self._send(request)
                if method.oneway:
                    result = None
                else:
                    self.state = SessionState.AWAITING_RESPONSE
                    result = self._recv(method)
            except ApplicationException:
                self.state = SessionState.IDLE
                raise
            except Exception as e:
                logger.warning(
                    "%s.%s failed, session faulted: %s", self.service.name, method_name, e
                )
                self.state = SessionState.FAULTED
                raise

            self.state = SessionState.IDLE
            return result

    def _next_seqid(self) -> None:
        self.seqid = self.seqid + 1 if self.seqid < MAX_SEQID else 1

    def _encode_request(self, method: Method, args: Sequence[Any]) -> bytes:
        # Encode off the wire so a schema or coercion error never leaves a
        # partial message on the transport.
        buffer = MemoryTransport()
        protocol = BinaryProtocol(buffer)
        message_type = MessageType.ONEWAY if method.oneway else MessageType.CALL
        protocol.write_message_begin(method.name, message_type, self.seqid)
        Codec(self.service, protocol).write_arguments(method, args)
        protocol.write_message_end()
        return buffer.getvalue()

    def _send(self, request: bytes) -> None:
        if not self.transport.is_open():
            logger.debug("Opening transport")
            self.transport.open()
        logger.debug("Sending %s request, seqid %d", self.service.name, self.seqid)
        self.transport.write(request)
        self.transport.flush()

    def _recv(self, method: Method) -> GenericValue:
        if not self.transport.is_open():
            self.transport.open()

        _name, message_type, seqid = self.input_protocol.read_message_begin()
        if message_type == MessageType.EXCEPTION:
            exc = read_application_exception(self.input_protocol)
            self.input_protocol.read_message_end()
            raise exc
        if message_type != MessageType.REPLY:
            raise ProtocolViolationError(f"Unexpected message type {message_type}")
        if seqid != self.seqid:
            raise SequenceMismatchError(self.seqid, seqid)

        logger.debug("Received %s reply, seqid %d", method.name, seqid)
        error: DeclaredException | None = None
        result: GenericValue = None
        try:
            result = Codec(self.service, self.input_protocol).read_result(method)
        except DeclaredException as e:
            error = e
        self.input_protocol.read_message_end()
        if error is not None:
            raise error
        return result
