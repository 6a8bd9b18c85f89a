"""Type registry for a service described by a parsed IDL document."""

from types import MappingProxyType

from ..idl.types import Field, Method, Struct, Thrift, ThriftType
from .binary import TType
from .errors import SchemaError, UnknownMethodError, UnknownServiceError, UnknownStructError

DEFAULT_TYPE_NAMES = MappingProxyType(
    {
        "stop": TType.STOP,
        "void": TType.VOID,
        "bool": TType.BOOL,
        "byte": TType.BYTE,
        "i8": TType.BYTE,
        "double": TType.DOUBLE,
        "i16": TType.I16,
        "i32": TType.I32,
        "i64": TType.I64,
        "string": TType.STRING,
        "binary": TType.STRING,
        "struct": TType.STRUCT,
        "map": TType.MAP,
        "set": TType.SET,
        "list": TType.LIST,
        "utf8": TType.UTF8,
        "utf16": TType.UTF16,
    }
)


class Service:
    """A service together with the type registry of its schema.

    Resolves type names to wire types, structs to their descriptors, and
    method names to methods (including those inherited through
    ``extends``). Nothing is modified after construction, so one instance
    can be shared by any number of clients.
    """

    def __init__(self, document: Thrift, name: str) -> None:
        if name not in document.services:
            raise UnknownServiceError(f"Service {name} does not exist")

        self.document = document
        self.name = name
        self._types = self._build_types(document)
        self._aliases = {name: typedef.type for name, typedef in document.typedefs.items()}

        self._structs: dict[str, Struct] = {}
        self._structs.update(document.structs)
        self._structs.update(document.unions)
        self._structs.update(document.exceptions)
        self._fields_by_id = {
            name: {f.id: f for f in struct.fields} for name, struct in self._structs.items()
        }

        self._methods: dict[str, Method] = {}
        seen: set[str] = set()
        service_name: str | None = name
        while service_name is not None:
            if service_name in seen or service_name not in document.services:
                raise SchemaError(
                    f"Service {service_name} in the extends chain of {name} is invalid"
                )
            seen.add(service_name)
            service = document.services[service_name]
            for method_name, method in service.methods.items():
                self._methods.setdefault(method_name, method)
            service_name = service.extends

    @staticmethod
    def _build_types(document: Thrift) -> dict[str, TType]:
        types = dict(DEFAULT_TYPE_NAMES)
        for name in document.enums:
            types[name] = TType.I32
        for name in document.structs:
            types[name] = TType.STRUCT
        for name in document.unions:
            types[name] = TType.STRUCT
        for name in document.exceptions:
            types[name] = TType.STRUCT

        # Typedefs may alias other typedefs declared in any order, so keep
        # resolving against the merged table until a pass makes no progress.
        pending = dict(document.typedefs)
        while pending:
            resolved = [name for name, typedef in pending.items() if typedef.type.name in types]
            if not resolved:
                missing = ", ".join(
                    f"{name} -> {typedef.type.name}" for name, typedef in sorted(pending.items())
                )
                raise SchemaError(f"Type not found for typedef(s): {missing}")
            for name in resolved:
                types[name] = types[pending.pop(name).type.name]
        return types

    def resolve(self, name: str) -> TType:
        """Return the wire type of a type name, ``TType.STOP`` if unknown."""
        return self._types.get(name, TType.STOP)

    def unalias(self, type_ref: ThriftType) -> ThriftType:
        """Follow typedefs until a non-typedef type reference is reached."""
        while type_ref.name in self._aliases:
            type_ref = self._aliases[type_ref.name]
        return type_ref

    def is_binary(self, type_ref: ThriftType) -> bool:
        return self.unalias(type_ref).name == "binary"

    def struct(self, name: str) -> Struct:
        """Look up a struct, union or exception descriptor."""
        try:
            return self._structs[name]
        except KeyError:
            raise UnknownStructError(f"Struct {name} not found") from None

    def fields_by_id(self, name: str) -> dict[int, Field]:
        """Return the fields of a struct keyed by field id."""
        try:
            return self._fields_by_id[name]
        except KeyError:
            raise UnknownStructError(f"Struct {name} not found") from None

    def method(self, name: str) -> Method:
        try:
            return self._methods[name]
        except KeyError:
            raise UnknownMethodError(f"Method {self.name}.{name} does not exist") from None

    @property
    def methods(self) -> dict[str, Method]:
        """All callable methods, inherited ones included."""
        return dict(self._methods)
