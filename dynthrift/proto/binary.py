"""Thrift binary protocol encoding.

Strict on write (versioned message headers), lenient on read (accepts the
old unversioned header too). All multi-byte values are big-endian.
"""

import struct
from enum import IntEnum

from .errors import ApplicationException, ProtocolViolationError
from .transport import Transport

VERSION_MASK = 0xFFFF0000
VERSION_1 = 0x80010000
TYPE_MASK = 0x000000FF


class TType(IntEnum):
    """Wire type tags."""

    STOP = 0
    VOID = 1
    BOOL = 2
    BYTE = 3
    DOUBLE = 4
    I16 = 6
    I32 = 8
    I64 = 10
    STRING = 11
    STRUCT = 12
    MAP = 13
    SET = 14
    LIST = 15
    UTF8 = 16
    UTF16 = 17


class MessageType(IntEnum):
    """Message kinds carried in the message header."""

    CALL = 1
    REPLY = 2
    EXCEPTION = 3
    ONEWAY = 4


class ApplicationExceptionType(IntEnum):
    """Codes carried by exceptions on the EXCEPTION message channel."""

    UNKNOWN = 0
    UNKNOWN_METHOD = 1
    INVALID_MESSAGE_TYPE = 2
    WRONG_METHOD_NAME = 3
    BAD_SEQUENCE_ID = 4
    MISSING_RESULT = 5
    INTERNAL_ERROR = 6
    PROTOCOL_ERROR = 7
    INVALID_TRANSFORM = 8
    INVALID_PROTOCOL = 9
    UNSUPPORTED_CLIENT_TYPE = 10


_BYTE = struct.Struct("!b")
_I16 = struct.Struct("!h")
_I32 = struct.Struct("!i")
_U32 = struct.Struct("!I")
_I64 = struct.Struct("!q")
_DOUBLE = struct.Struct("!d")
_FIELD = struct.Struct("!bh")
_MAP = struct.Struct("!bbi")
_LIST = struct.Struct("!bi")


class BinaryProtocol:
    """Reads and writes binary protocol tokens on a transport."""

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    # Writing

    def write_message_begin(self, name: str, message_type: int, seqid: int) -> None:
        self.transport.write(_U32.pack(VERSION_1 | message_type))
        self.write_string(name)
        self.write_i32(seqid)

    def write_message_end(self) -> None:
        pass

    def write_struct_begin(self, name: str) -> None:
        pass

    def write_struct_end(self) -> None:
        pass

    def write_field_begin(self, name: str, ttype: int, field_id: int) -> None:
        self.transport.write(_FIELD.pack(ttype, field_id))

    def write_field_end(self) -> None:
        pass

    def write_field_stop(self) -> None:
        self.write_byte(TType.STOP)

    def write_map_begin(self, ktype: int, vtype: int, size: int) -> None:
        self.transport.write(_MAP.pack(ktype, vtype, size))

    def write_map_end(self) -> None:
        pass

    def write_list_begin(self, etype: int, size: int) -> None:
        self.transport.write(_LIST.pack(etype, size))

    def write_list_end(self) -> None:
        pass

    def write_set_begin(self, etype: int, size: int) -> None:
        self.transport.write(_LIST.pack(etype, size))

    def write_set_end(self) -> None:
        pass

    def write_bool(self, value: bool) -> None:
        self.write_byte(1 if value else 0)

    def write_byte(self, value: int) -> None:
        self.transport.write(_BYTE.pack(value))

    def write_i16(self, value: int) -> None:
        self.transport.write(_I16.pack(value))

    def write_i32(self, value: int) -> None:
        self.transport.write(_I32.pack(value))

    def write_i64(self, value: int) -> None:
        self.transport.write(_I64.pack(value))

    def write_double(self, value: float) -> None:
        self.transport.write(_DOUBLE.pack(value))

    def write_binary(self, value: bytes) -> None:
        self.write_i32(len(value))
        self.transport.write(value)

    def write_string(self, value: str) -> None:
        self.write_binary(value.encode("utf-8"))

    # Reading

    def read_message_begin(self) -> tuple[str, int, int]:
        """Read a message header, returning ``(name, message_type, seqid)``."""
        size = self.read_i32()
        if size < 0:
            version = size & VERSION_MASK
            if version != VERSION_1:
                raise ProtocolViolationError(f"Bad protocol version {version:#x}")
            message_type = size & TYPE_MASK
            name = self.read_string()
        else:
            name = self._read_exact(size).decode("utf-8", errors="replace")
            message_type = self.read_byte()
        seqid = self.read_i32()
        return name, message_type, seqid

    def read_message_end(self) -> None:
        pass

    def read_struct_begin(self) -> None:
        pass

    def read_struct_end(self) -> None:
        pass

    def read_field_begin(self) -> tuple[int, int]:
        """Read a field header, returning ``(ttype, field_id)``.

        The id is 0 when ``ttype`` is ``TType.STOP``.
        """
        ttype = self.read_byte()
        if ttype == TType.STOP:
            return ttype, 0
        return ttype, self.read_i16()

    def read_field_end(self) -> None:
        pass

    def read_map_begin(self) -> tuple[int, int, int]:
        ktype, vtype, size = _MAP.unpack(self._read_exact(_MAP.size))
        self._check_size(size)
        return ktype, vtype, size

    def read_map_end(self) -> None:
        pass

    def read_list_begin(self) -> tuple[int, int]:
        etype, size = _LIST.unpack(self._read_exact(_LIST.size))
        self._check_size(size)
        return etype, size

    def read_list_end(self) -> None:
        pass

    def read_set_begin(self) -> tuple[int, int]:
        return self.read_list_begin()

    def read_set_end(self) -> None:
        pass

    def read_bool(self) -> bool:
        return self.read_byte() != 0

    def read_byte(self) -> int:
        return _BYTE.unpack(self._read_exact(1))[0]

    def read_i16(self) -> int:
        return _I16.unpack(self._read_exact(2))[0]

    def read_i32(self) -> int:
        return _I32.unpack(self._read_exact(4))[0]

    def read_i64(self) -> int:
        return _I64.unpack(self._read_exact(8))[0]

    def read_double(self) -> float:
        return _DOUBLE.unpack(self._read_exact(8))[0]

    def read_binary(self) -> bytes:
        size = self.read_i32()
        self._check_size(size)
        return self._read_exact(size)

    def read_string(self) -> str:
        data = self.read_binary()
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolViolationError(f"String is not valid UTF-8: {e}") from e

    def skip(self, ttype: int) -> None:
        """Consume and discard one value of the given wire type."""
        if ttype == TType.BOOL or ttype == TType.BYTE:
            self._read_exact(1)
        elif ttype == TType.I16:
            self._read_exact(2)
        elif ttype == TType.I32:
            self._read_exact(4)
        elif ttype == TType.I64 or ttype == TType.DOUBLE:
            self._read_exact(8)
        elif ttype == TType.STRING:
            self.read_binary()
        elif ttype == TType.STRUCT:
            self.read_struct_begin()
            while True:
                field_type, _ = self.read_field_begin()
                if field_type == TType.STOP:
                    break
                self.skip(field_type)
                self.read_field_end()
            self.read_struct_end()
        elif ttype == TType.MAP:
            ktype, vtype, size = self.read_map_begin()
            for _ in range(size):
                self.skip(ktype)
                self.skip(vtype)
            self.read_map_end()
        elif ttype == TType.SET or ttype == TType.LIST:
            etype, size = self.read_list_begin()
            for _ in range(size):
                self.skip(etype)
            self.read_list_end()
        else:
            raise ProtocolViolationError(f"Cannot skip value of wire type {ttype}")

    def _read_exact(self, size: int) -> bytes:
        return self.transport.read(size)

    @staticmethod
    def _check_size(size: int) -> None:
        if size < 0:
            raise ProtocolViolationError(f"Negative length {size}")


def read_application_exception(protocol: BinaryProtocol) -> ApplicationException:
    """Decode the generic exception payload of an EXCEPTION message."""
    message = None
    exc_type = ApplicationExceptionType.UNKNOWN.value
    protocol.read_struct_begin()
    while True:
        ttype, field_id = protocol.read_field_begin()
        if ttype == TType.STOP:
            break
        if field_id == 1 and ttype == TType.STRING:
            message = protocol.read_string()
        elif field_id == 2 and ttype == TType.I32:
            exc_type = protocol.read_i32()
        else:
            protocol.skip(ttype)
        protocol.read_field_end()
    protocol.read_struct_end()
    return ApplicationException(message, exc_type)


def write_application_exception(protocol: BinaryProtocol, exc: ApplicationException) -> None:
    """Encode an exception as the generic EXCEPTION message payload."""
    protocol.write_struct_begin("TApplicationException")
    if exc.message is not None:
        protocol.write_field_begin("message", TType.STRING, 1)
        protocol.write_string(exc.message)
        protocol.write_field_end()
    protocol.write_field_begin("type", TType.I32, 2)
    protocol.write_i32(exc.type)
    protocol.write_field_end()
    protocol.write_field_stop()
    protocol.write_struct_end()
