"""Schema document types produced by the IDL parser."""

from dataclasses import dataclass, field
from typing import Any

from dataclasses_json import DataClassJsonMixin


@dataclass
class ThriftType(DataClassJsonMixin):
    """A reference to a type.

    Containers use the names ``map``, ``list`` and ``set``. ``value_type`` is
    the element type of lists and sets and the value type of maps.
    """

    name: str
    key_type: "ThriftType | None" = None
    value_type: "ThriftType | None" = None

    def __str__(self) -> str:
        if self.name == "map":
            return f"map<{self.key_type}, {self.value_type}>"
        if self.name in ("list", "set"):
            return f"{self.name}<{self.value_type}>"
        return self.name


@dataclass
class Field(DataClassJsonMixin):
    """A struct field, method argument or declared exception slot."""

    id: int
    name: str
    type: ThriftType
    optional: bool = False
    default: Any = None


@dataclass
class Struct(DataClassJsonMixin):
    """A struct, union or exception definition."""

    name: str
    fields: list[Field] = field(default_factory=list)


@dataclass
class EnumValue(DataClassJsonMixin):
    name: str
    value: int


@dataclass
class Enum(DataClassJsonMixin):
    name: str
    values: list[EnumValue] = field(default_factory=list)


@dataclass
class Typedef(DataClassJsonMixin):
    name: str
    type: ThriftType


@dataclass
class Constant(DataClassJsonMixin):
    name: str
    type: ThriftType
    value: Any


@dataclass
class Method(DataClassJsonMixin):
    """A service method. ``return_type`` is None for void methods."""

    name: str
    return_type: ThriftType | None
    arguments: list[Field] = field(default_factory=list)
    exceptions: list[Field] = field(default_factory=list)
    oneway: bool = False


@dataclass
class Service(DataClassJsonMixin):
    name: str
    methods: dict[str, Method] = field(default_factory=dict)
    extends: str | None = None


@dataclass
class Thrift(DataClassJsonMixin):
    """A parsed IDL document, with every definition keyed by name."""

    includes: list[str] = field(default_factory=list)
    namespaces: dict[str, str] = field(default_factory=dict)
    typedefs: dict[str, Typedef] = field(default_factory=dict)
    constants: dict[str, Constant] = field(default_factory=dict)
    enums: dict[str, Enum] = field(default_factory=dict)
    structs: dict[str, Struct] = field(default_factory=dict)
    unions: dict[str, Struct] = field(default_factory=dict)
    exceptions: dict[str, Struct] = field(default_factory=dict)
    services: dict[str, Service] = field(default_factory=dict)
