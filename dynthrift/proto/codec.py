"""Schema-driven encoding and decoding of generic values."""

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any, ClassVar

from ..idl.types import Field, Method, ThriftType
from .binary import BinaryProtocol, TType
from .coercion import GenericValue, to_bool, to_double, to_integer, to_string
from .errors import (
    DeclaredException,
    MissingArgumentError,
    ProtocolViolationError,
    RequiredFieldMissingError,
    TypeMismatchError,
    UnsupportedTypeError,
)
from .service import Service

logger = logging.getLogger(__name__)

Reader = Callable[["Codec", ThriftType], GenericValue]
Writer = Callable[["Codec", ThriftType, Any], None]


class Codec:
    """Reads and writes generic values as described by a service's schema.

    Structs and maps are read into dicts, lists and sets into lists. On
    the write path values are coerced to the wire type the schema demands
    at each position.
    """

    _readers: ClassVar[dict[TType, Reader]]
    _writers: ClassVar[dict[TType, Writer]]

    def __init__(self, service: Service, protocol: BinaryProtocol) -> None:
        self.service = service
        self.protocol = protocol

    def wire_type(self, type_ref: ThriftType) -> TType:
        return self.service.resolve(self.service.unalias(type_ref).name)

    # Reading

    def read_value(self, type_ref: ThriftType | None) -> GenericValue:
        if type_ref is None:
            return None
        type_ref = self.service.unalias(type_ref)
        ttype = self.service.resolve(type_ref.name)
        reader = self._readers.get(ttype)
        if reader is None:
            raise UnsupportedTypeError(f"Unsupported type {type_ref}")
        return reader(self, type_ref)

    def _read_nothing(self, type_ref: ThriftType) -> None:
        return None

    def _read_string(self, type_ref: ThriftType) -> str | bytes:
        if type_ref.name == "binary":
            return self.protocol.read_binary()
        return self.protocol.read_string()

    def _read_struct(self, type_ref: ThriftType) -> dict[str, GenericValue]:
        struct = self.service.struct(type_ref.name)
        fields = self.service.fields_by_id(type_ref.name)
        result: dict[str, GenericValue] = {}

        self.protocol.read_struct_begin()
        while True:
            ttype, field_id = self.protocol.read_field_begin()
            if ttype == TType.STOP:
                break
            field = fields.get(field_id)
            if field is None:
                logger.debug("Skipping unknown field %d of %s", field_id, struct.name)
                self.protocol.skip(ttype)
            elif ttype != self.wire_type(field.type):
                logger.debug(
                    "Skipping field %s of %s: wire type %d does not match schema",
                    field.name,
                    struct.name,
                    ttype,
                )
                self.protocol.skip(ttype)
            else:
                result[field.name] = self.read_value(field.type)
            self.protocol.read_field_end()
        self.protocol.read_struct_end()
        return result

    def _read_map(self, type_ref: ThriftType) -> dict[str, GenericValue]:
        result: dict[str, GenericValue] = {}
        _, _, size = self.protocol.read_map_begin()
        for _ in range(size):
            # Keys always travel as strings, whatever the declared key type
            key = self.protocol.read_string()
            result[key] = self.read_value(type_ref.value_type)
        self.protocol.read_map_end()
        return result

    def _read_list(self, type_ref: ThriftType) -> list[GenericValue]:
        _, size = self.protocol.read_list_begin()
        result = [self.read_value(type_ref.value_type) for _ in range(size)]
        self.protocol.read_list_end()
        return result

    def _read_set(self, type_ref: ThriftType) -> list[GenericValue]:
        _, size = self.protocol.read_set_begin()
        result = [self.read_value(type_ref.value_type) for _ in range(size)]
        self.protocol.read_set_end()
        return result

    # Writing

    def write_value(self, type_ref: ThriftType, value: Any) -> None:
        type_ref = self.service.unalias(type_ref)
        ttype = self.service.resolve(type_ref.name)
        writer = self._writers.get(ttype)
        if writer is None:
            raise UnsupportedTypeError(f"Unsupported type {type_ref}")
        writer(self, type_ref, value)

    def write_field(self, field: Field, value: Any) -> None:
        self.protocol.write_field_begin(field.name, self.wire_type(field.type), field.id)
        self.write_value(field.type, value)
        self.protocol.write_field_end()

    def _write_bool(self, type_ref: ThriftType, value: Any) -> None:
        self.protocol.write_bool(to_bool(value))

    def _write_byte(self, type_ref: ThriftType, value: Any) -> None:
        self.protocol.write_byte(to_integer(value, TType.BYTE))

    def _write_i16(self, type_ref: ThriftType, value: Any) -> None:
        self.protocol.write_i16(to_integer(value, TType.I16))

    def _write_i32(self, type_ref: ThriftType, value: Any) -> None:
        self.protocol.write_i32(to_integer(value, TType.I32))

    def _write_i64(self, type_ref: ThriftType, value: Any) -> None:
        self.protocol.write_i64(to_integer(value, TType.I64))

    def _write_double(self, type_ref: ThriftType, value: Any) -> None:
        self.protocol.write_double(to_double(value))

    def _write_string(self, type_ref: ThriftType, value: Any) -> None:
        value = to_string(value)
        if isinstance(value, bytes):
            self.protocol.write_binary(value)
        else:
            self.protocol.write_string(value)

    def _write_struct(self, type_ref: ThriftType, value: Any) -> None:
        struct = self.service.struct(type_ref.name)
        if not isinstance(value, Mapping):
            raise TypeMismatchError(value, struct.name)

        self.protocol.write_struct_begin(struct.name)
        for field in struct.fields:
            field_value = value.get(field.name)
            if field_value is not None:
                self.write_field(field, field_value)
            elif not field.optional:
                raise RequiredFieldMissingError(struct.name, field.name)
        self.protocol.write_field_stop()
        self.protocol.write_struct_end()

    def _write_map(self, type_ref: ThriftType, value: Any) -> None:
        if not isinstance(value, Mapping):
            raise TypeMismatchError(value, str(type_ref))
        value_type = type_ref.value_type
        self.protocol.write_map_begin(TType.STRING, self.wire_type(value_type), len(value))
        for k, v in value.items():
            if not isinstance(k, str):
                raise TypeMismatchError(k, "string")
            self.protocol.write_string(k)
            self.write_value(value_type, v)
        self.protocol.write_map_end()

    def _write_list(self, type_ref: ThriftType, value: Any) -> None:
        if not isinstance(value, (list, tuple)):
            raise TypeMismatchError(value, str(type_ref))
        value_type = type_ref.value_type
        self.protocol.write_list_begin(self.wire_type(value_type), len(value))
        for v in value:
            self.write_value(value_type, v)
        self.protocol.write_list_end()

    def _write_set(self, type_ref: ThriftType, value: Any) -> None:
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise TypeMismatchError(value, str(type_ref))
        value_type = type_ref.value_type
        self.protocol.write_set_begin(self.wire_type(value_type), len(value))
        for v in value:
            self.write_value(value_type, v)
        self.protocol.write_set_end()

    # Requests and responses

    def write_arguments(self, method: Method, args: Sequence[Any]) -> None:
        """Write the request struct of a call.

        Argument ``n`` of the method takes positional value ``n - 1``;
        arguments declared without an id take their declaration position.
        """
        self.protocol.write_struct_begin(f"{self.service.name}{method.name}Args")
        for position, argument in enumerate(method.arguments):
            index = argument.id - 1 if argument.id > 0 else position
            if index >= len(args):
                raise MissingArgumentError(method.name, argument.id, argument.name)
            if args[index] is not None:
                self.write_field(argument, args[index])
            elif not argument.optional:
                raise MissingArgumentError(method.name, argument.id, argument.name)
        self.protocol.write_field_stop()
        self.protocol.write_struct_end()

    def read_result(self, method: Method) -> GenericValue:
        """Read the response struct of a call.

        Field 0 holds the return value and field ``n`` the ``n``-th exception
        of the throws clause, in declaration order. A declared exception is
        raised as ``DeclaredException``.
        """
        self.protocol.read_struct_begin()
        ttype, field_id = self.protocol.read_field_begin()
        if ttype == TType.STOP:
            self.protocol.read_struct_end()
            if method.return_type is None or self.wire_type(method.return_type) == TType.VOID:
                return None
            raise ProtocolViolationError(f"{method.name} failed: missing result")

        result: GenericValue = None
        error: DeclaredException | None = None
        if field_id == 0:
            if method.return_type is None:
                self.protocol.skip(ttype)
            else:
                result = self.read_value(method.return_type)
        elif 1 <= field_id <= len(method.exceptions):
            slot = method.exceptions[field_id - 1]
            value = self.read_value(slot.type)
            error = DeclaredException(slot.name, self.service.unalias(slot.type).name, value)
        else:
            raise ProtocolViolationError(f"Method {method.name} has no result field {field_id}")
        self.protocol.read_field_end()

        while True:
            ttype, field_id = self.protocol.read_field_begin()
            if ttype == TType.STOP:
                break
            logger.debug("Skipping extra result field %d of %s", field_id, method.name)
            self.protocol.skip(ttype)
            self.protocol.read_field_end()
        self.protocol.read_struct_end()

        if error is not None:
            raise error
        return result


Codec._readers = {
    TType.STOP: Codec._read_nothing,
    TType.VOID: Codec._read_nothing,
    TType.BOOL: lambda codec, _: codec.protocol.read_bool(),
    TType.BYTE: lambda codec, _: codec.protocol.read_byte(),
    TType.DOUBLE: lambda codec, _: codec.protocol.read_double(),
    TType.I16: lambda codec, _: codec.protocol.read_i16(),
    TType.I32: lambda codec, _: codec.protocol.read_i32(),
    TType.I64: lambda codec, _: codec.protocol.read_i64(),
    TType.STRING: Codec._read_string,
    TType.STRUCT: Codec._read_struct,
    TType.MAP: Codec._read_map,
    TType.SET: Codec._read_set,
    TType.LIST: Codec._read_list,
}

Codec._writers = {
    TType.BOOL: Codec._write_bool,
    TType.BYTE: Codec._write_byte,
    TType.DOUBLE: Codec._write_double,
    TType.I16: Codec._write_i16,
    TType.I32: Codec._write_i32,
    TType.I64: Codec._write_i64,
    TType.STRING: Codec._write_string,
    TType.STRUCT: Codec._write_struct,
    TType.MAP: Codec._write_map,
    TType.SET: Codec._write_set,
    TType.LIST: Codec._write_list,
}
