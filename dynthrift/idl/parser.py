"""Thrift IDL parser using Lark."""

import copy
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from lark import Lark
from lark.exceptions import VisitError
from lark.visitors import Transformer

from .types import (
    Constant,
    Enum,
    EnumValue,
    Field,
    Method,
    Service,
    Struct,
    Thrift,
    ThriftType,
    Typedef,
)

_g_parser: Lark | None = None


class ValidationError(RuntimeError):
    """Raised when IDL validation fails."""


@dataclass
class _Name:
    value: str


@dataclass
class _Value:
    value: Any


@dataclass
class _FieldId:
    value: int


@dataclass
class _Required:
    value: str


@dataclass
class _Annotations:
    pass


@dataclass
class _CppType:
    pass


@dataclass
class _Oneway:
    pass


@dataclass
class _Void:
    pass


@dataclass
class _Extends:
    value: str


@dataclass
class _Throws:
    fields: list[Field]


@dataclass
class _Header:
    kind: str
    value: Any


@dataclass
class _Definition:
    kind: str
    value: Any


TFilter = TypeVar("TFilter", bound=object)


def _filter(args: list[Any], class_type: type[TFilter]) -> list[TFilter]:
    return [v for v in args if isinstance(v, class_type)]


def _find_one(args: list[Any], class_type: type[object]) -> Any:
    filtered = _filter(args, class_type)
    if len(filtered) == 0:
        return None
    if len(filtered) > 1:
        raise RuntimeError(f"Found more than one {class_type}")

    if hasattr(filtered[0], "value"):
        return filtered[0].value
    return filtered[0]


def _parse_int(text: str) -> int:
    if "x" in text.lower():
        return int(text, 16)
    return int(text)


def _number_fields(fields: list[Field]) -> list[Field]:
    # Fields without an explicit id are numbered -1, -2, ... as Thrift does
    auto_id = 0
    for f in fields:
        if f.id is None:
            auto_id -= 1
            f.id = auto_id
    return fields


class TreeTransformer(Transformer):
    """Transform parse tree into schema document types."""

    def start(self, args: list[Any]) -> Thrift:
        document = Thrift()
        for item in args:
            if isinstance(item, _Header):
                if item.kind == "namespace":
                    scope, name = item.value
                    document.namespaces[scope] = name
                elif item.kind == "include":
                    document.includes.append(item.value)
                continue

            table: dict[str, Any] = getattr(document, item.kind)
            name = item.value.name
            if _is_declared(document, name):
                raise ValidationError(f"{name} is declared more than once")
            table[name] = item.value
        return document

    def include(self, args: list[Any]) -> _Header:
        return _Header("include", args[0].value)

    def cpp_include(self, args: list[Any]) -> _Header:
        return _Header("cpp_include", args[0].value)

    def namespace(self, args: list[Any]) -> _Header:
        return _Header("namespace", (args[0], args[1].value))

    def scope(self, args: list[Any]) -> str:
        return str(args[0]) if args else "*"

    def name(self, args: list[Any]) -> _Name:
        return _Name(value=str(args[0]))

    def const(self, args: list[Any]) -> _Definition:
        return _Definition(
            "constants",
            Constant(
                name=_find_one(args, _Name),
                type=_find_one(args, ThriftType),
                value=_find_one(args, _Value),
            ),
        )

    def typedef(self, args: list[Any]) -> _Definition:
        return _Definition(
            "typedefs",
            Typedef(name=_find_one(args, _Name), type=_find_one(args, ThriftType)),
        )

    def enum(self, args: list[Any]) -> _Definition:
        values = []
        next_value = 0
        for name, value in _filter(args, tuple):
            if value is None:
                value = next_value
            values.append(EnumValue(name=name, value=value))
            next_value = value + 1
        return _Definition("enums", Enum(name=_find_one(args, _Name), values=values))

    def enum_value(self, args: list[Any]) -> tuple[str, int | None]:
        return (_find_one(args, _Name), _find_one(args, _Value))

    def _struct(self, kind: str, args: list[Any]) -> _Definition:
        return _Definition(
            kind,
            Struct(name=_find_one(args, _Name), fields=_number_fields(_filter(args, Field))),
        )

    def struct(self, args: list[Any]) -> _Definition:
        return self._struct("structs", args)

    def union(self, args: list[Any]) -> _Definition:
        definition = self._struct("unions", args)
        # At most one member of a union is set, so none is required
        for f in definition.value.fields:
            f.optional = True
        return definition

    def exception(self, args: list[Any]) -> _Definition:
        return self._struct("exceptions", args)

    def service(self, args: list[Any]) -> _Definition:
        methods = {method.name: method for method in _filter(args, Method)}
        return _Definition(
            "services",
            Service(
                name=_find_one(args, _Name),
                methods=methods,
                extends=_find_one(args, _Extends),
            ),
        )

    def extends(self, args: list[Any]) -> _Extends:
        return _Extends(value=str(args[0]))

    def field(self, args: list[Any]) -> Field:
        return Field(
            id=_find_one(args, _FieldId),
            name=_find_one(args, _Name),
            type=_find_one(args, ThriftType),
            optional=_find_one(args, _Required) == "optional",
            default=_find_one(args, _Value),
        )

    def field_id(self, args: list[Any]) -> _FieldId:
        return _FieldId(value=_parse_int(str(args[0])))

    def field_req(self, args: list[Any]) -> _Required:
        return _Required(value=str(args[0]))

    def function(self, args: list[Any]) -> Method:
        throws = _find_one(args, _Throws)
        return Method(
            name=_find_one(args, _Name),
            return_type=_find_one(args, ThriftType),
            arguments=_number_fields(_filter(args, Field)),
            exceptions=throws.fields if throws else [],
            oneway=_find_one(args, _Oneway) is not None,
        )

    def oneway(self, args: list[Any]) -> _Oneway:
        return _Oneway()

    def void(self, args: list[Any]) -> _Void:
        return _Void()

    def throws(self, args: list[Any]) -> _Throws:
        return _Throws(fields=_number_fields(_filter(args, Field)))

    def named_type(self, args: list[Any]) -> ThriftType:
        return ThriftType(name=str(args[0]))

    def map_type(self, args: list[Any]) -> ThriftType:
        key_type, value_type = _filter(args, ThriftType)
        return ThriftType(name="map", key_type=key_type, value_type=value_type)

    def set_type(self, args: list[Any]) -> ThriftType:
        return ThriftType(name="set", value_type=_find_one(args, ThriftType))

    def list_type(self, args: list[Any]) -> ThriftType:
        return ThriftType(name="list", value_type=_find_one(args, ThriftType))

    def cpp_type(self, args: list[Any]) -> _CppType:
        return _CppType()

    def int_const(self, args: list[Any]) -> _Value:
        return _Value(value=_parse_int(str(args[0])))

    def double_const(self, args: list[Any]) -> _Value:
        return _Value(value=float(str(args[0])))

    def literal(self, args: list[Any]) -> _Value:
        return _Value(value=str(args[0])[1:-1])

    def const_ref(self, args: list[Any]) -> _Value:
        return _Value(value=str(args[0]))

    def const_list(self, args: list[Any]) -> _Value:
        return _Value(value=[v.value for v in args])

    def const_map(self, args: list[Any]) -> _Value:
        return _Value(value=dict(args))

    def const_map_entry(self, args: list[Any]) -> tuple[Any, Any]:
        return (args[0].value, args[1].value)

    def annotations(self, args: list[Any]) -> _Annotations:
        return _Annotations()

    def annotation(self, args: list[Any]) -> None:
        return None


_DEFINITION_TABLES = (
    "typedefs",
    "constants",
    "enums",
    "structs",
    "unions",
    "exceptions",
    "services",
)


def _is_declared(document: Thrift, name: str) -> bool:
    return any(name in getattr(document, table) for table in _DEFINITION_TABLES)


def _validate_fields(owner: str, fields: list[Field]) -> None:
    ids: set[int] = set()
    names: set[str] = set()
    for f in fields:
        if f.id in ids:
            raise ValidationError(f"{owner}: field id {f.id} is used more than once")
        if f.name in names:
            raise ValidationError(f"{owner}: field {f.name} is declared more than once")
        ids.add(f.id)
        names.add(f.name)


def validate(document: Thrift) -> None:
    """Validate a parsed IDL document."""
    for table in ("structs", "unions", "exceptions"):
        for struct in getattr(document, table).values():
            _validate_fields(struct.name, struct.fields)

    for service in document.services.values():
        # Parents from included files are checked once the includes are merged
        if service.extends and "." not in service.extends:
            if service.extends not in document.services:
                raise ValidationError(
                    f"{service.name} extends {service.extends}, but it is not declared"
                )
        for method in service.methods.values():
            _validate_fields(f"{service.name}.{method.name}", method.arguments)
            _validate_fields(f"{service.name}.{method.name} throws", method.exceptions)
            if method.oneway and (method.return_type is not None or method.exceptions):
                raise ValidationError(
                    f"{service.name}.{method.name}: oneway methods must be void and not throw"
                )


def parse(text: str) -> Thrift:
    """Parse a Thrift IDL document."""
    global _g_parser

    if not _g_parser:
        with open(f"{os.path.dirname(__file__)}/thrift.lark", encoding="utf-8") as f:
            grammar = f.read()

        _g_parser = Lark(grammar, parser="lalr")

    tree = _g_parser.parse(text)
    try:
        document = TreeTransformer().transform(tree)
    except VisitError as e:
        raise e.orig_exc from None

    validate(document)

    return document


def _qualify_type(t: ThriftType | None, local_names: set[str], prefix: str) -> None:
    if t is None:
        return
    if t.name in local_names:
        t.name = f"{prefix}.{t.name}"
    _qualify_type(t.key_type, local_names, prefix)
    _qualify_type(t.value_type, local_names, prefix)


def _qualify(document: Thrift, prefix: str) -> Thrift:
    """Return a copy of ``document`` with every definition named ``prefix.Name``."""
    document = copy.deepcopy(document)
    local_names = {
        name for table in _DEFINITION_TABLES for name in getattr(document, table)
    }

    for typedef in document.typedefs.values():
        _qualify_type(typedef.type, local_names, prefix)
    for constant in document.constants.values():
        _qualify_type(constant.type, local_names, prefix)
    for table in ("structs", "unions", "exceptions"):
        for struct in getattr(document, table).values():
            for f in struct.fields:
                _qualify_type(f.type, local_names, prefix)
    for service in document.services.values():
        if service.extends in local_names:
            service.extends = f"{prefix}.{service.extends}"
        for method in service.methods.values():
            _qualify_type(method.return_type, local_names, prefix)
            for f in method.arguments + method.exceptions:
                _qualify_type(f.type, local_names, prefix)

    for table in _DEFINITION_TABLES:
        definitions = getattr(document, table)
        for definition in definitions.values():
            definition.name = f"{prefix}.{definition.name}"
        setattr(document, table, {d.name: d for d in definitions.values()})
    return document


def load(path: str | os.PathLike[str], _loading: frozenset[Path] = frozenset()) -> Thrift:
    """Parse an IDL file and merge in the files it includes.

    Definitions from ``include "shared.thrift"`` are available as
    ``shared.Name``.
    """
    path = Path(path).resolve()
    if path in _loading:
        raise ValidationError(f"{path} includes itself")

    document = parse(path.read_text(encoding="utf-8"))

    for include in document.includes:
        include_path = path.parent / include
        included = _qualify(load(include_path, _loading | {path}), Path(include).stem)
        for table in _DEFINITION_TABLES:
            getattr(document, table).update(getattr(included, table))

    for service in document.services.values():
        if service.extends and service.extends not in document.services:
            raise ValidationError(
                f"{service.name} extends {service.extends}, but it is not declared"
            )
    return document
