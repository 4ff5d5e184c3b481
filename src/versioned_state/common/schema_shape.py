"""
Schema shape fingerprinting.

A schema's field shape is first lowered into a closed tree of `SchemaNode`
variants, then rendered into a canonical string by `type_descriptor`. Two
structurally identical schemas render (and therefore hash) identically; adding
or removing a field, or changing a field's type, changes the rendering.

Notes
- Default values are never encoded, only the fact that a field has one.
- Object keys are sorted; enum members keep declaration order.
- Anything the lowering does not recognise becomes `OpaqueNode`, rendered as
  "unknown". Neither step raises for unusual annotations.
"""

from __future__ import annotations

import collections.abc as cabc
import enum
import types
import typing
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

import typing_extensions
from pydantic import BaseModel

from ..errors import InvalidSchemaError
from .hashing import simple_hash


PRIMITIVE_NAMES = frozenset(
    {"string", "number", "boolean", "null", "undefined", "date", "any", "unknown", "void", "never"}
)


# -------- Node variants --------
class SchemaNode:
    """Marker base for the closed set of schema node variants below."""

    __slots__ = ()


@dataclass(frozen=True)
class Primitive(SchemaNode):
    name: str

    def __post_init__(self) -> None:
        if self.name not in PRIMITIVE_NAMES:
            raise ValueError(f"Unknown primitive: {self.name}")


@dataclass(frozen=True)
class ArrayNode(SchemaNode):
    item: SchemaNode


@dataclass(frozen=True)
class ObjectNode(SchemaNode):
    fields: Mapping[str, SchemaNode] = field(default_factory=dict)


@dataclass(frozen=True)
class OptionalNode(SchemaNode):
    inner: SchemaNode


@dataclass(frozen=True)
class NullableNode(SchemaNode):
    inner: SchemaNode


@dataclass(frozen=True)
class DefaultNode(SchemaNode):
    inner: SchemaNode


@dataclass(frozen=True)
class EnumNode(SchemaNode):
    values: Tuple[str, ...]


@dataclass(frozen=True)
class LiteralNode(SchemaNode):
    value: str


@dataclass(frozen=True)
class UnionNode(SchemaNode):
    options: Tuple[SchemaNode, ...]


@dataclass(frozen=True)
class IntersectionNode(SchemaNode):
    left: SchemaNode
    right: SchemaNode


@dataclass(frozen=True)
class RecordNode(SchemaNode):
    value: SchemaNode


@dataclass(frozen=True)
class TupleNode(SchemaNode):
    items: Tuple[SchemaNode, ...]


@dataclass(frozen=True)
class MapNode(SchemaNode):
    value: SchemaNode


@dataclass(frozen=True)
class SetNode(SchemaNode):
    item: SchemaNode


@dataclass(frozen=True)
class OpaqueNode(SchemaNode):
    """Anything outside the known variants. Renders as "unknown"."""

    label: str = ""


# -------- Rendering --------
def type_descriptor(node: Any) -> str:
    """Render a schema node into its canonical token. Total: never raises."""
    if isinstance(node, Primitive):
        return node.name
    if isinstance(node, ArrayNode):
        return f"array<{type_descriptor(node.item)}>"
    if isinstance(node, ObjectNode):
        keys = sorted(node.fields)
        return "object{" + ",".join(f"{k}:{type_descriptor(node.fields[k])}" for k in keys) + "}"
    if isinstance(node, OptionalNode):
        return f"optional<{type_descriptor(node.inner)}>"
    if isinstance(node, NullableNode):
        return f"nullable<{type_descriptor(node.inner)}>"
    if isinstance(node, DefaultNode):
        return f"default<{type_descriptor(node.inner)}>"
    if isinstance(node, EnumNode):
        return f"enum[{','.join(node.values)}]"
    if isinstance(node, LiteralNode):
        return f"literal<{node.value}>"
    if isinstance(node, UnionNode):
        return f"union<{'|'.join(type_descriptor(o) for o in node.options)}>"
    if isinstance(node, IntersectionNode):
        return f"intersection<{type_descriptor(node.left)}&{type_descriptor(node.right)}>"
    if isinstance(node, RecordNode):
        return f"record<{type_descriptor(node.value)}>"
    if isinstance(node, TupleNode):
        return f"tuple<{','.join(type_descriptor(i) for i in node.items)}>"
    if isinstance(node, MapNode):
        return f"map<{type_descriptor(node.value)}>"
    if isinstance(node, SetNode):
        return f"set<{type_descriptor(node.item)}>"
    return "unknown"


# -------- Lowering from annotations --------
_NUMBER_TYPES = (int, float, Decimal)
_SEQUENCE_ORIGINS = (list, cabc.Sequence, cabc.MutableSequence, cabc.Iterable, cabc.Collection)
_SET_ORIGINS = (set, frozenset, cabc.Set, cabc.MutableSet)
_MAPPING_ORIGINS = (dict, cabc.Mapping, cabc.MutableMapping)
_LITERAL_FORMS = {typing.Literal, typing_extensions.Literal}
_ANNOTATED_FORMS = {typing.Annotated, typing_extensions.Annotated}
_REQUIRED_FORMS = {typing_extensions.Required, typing_extensions.NotRequired}
_NEVER_FORMS = (typing.NoReturn, typing_extensions.Never, getattr(typing, "Never", typing.NoReturn))
if hasattr(typing, "Required"):
    _REQUIRED_FORMS |= {typing.Required, typing.NotRequired}


def _render_literal(value: Any) -> str:
    if isinstance(value, enum.Enum):
        value = value.value
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _is_class(tp: Any) -> bool:
    # Parameterised generics such as list[int] pass isinstance(..., type) on 3.10
    return isinstance(tp, type) and typing_extensions.get_origin(tp) is None


def _is_model(tp: Any) -> bool:
    return _is_class(tp) and issubclass(tp, BaseModel)


def _is_typeddict(tp: Any) -> bool:
    return _is_class(tp) and typing_extensions.is_typeddict(tp)


def _model_node(model: type[BaseModel], seen: Set[int]) -> SchemaNode:
    if id(model) in seen:
        return OpaqueNode(model.__name__)
    seen = seen | {id(model)}
    fields: Dict[str, SchemaNode] = {}
    for name, info in model.model_fields.items():
        node = _lower(info.annotation, seen)
        if not info.is_required():
            node = DefaultNode(node)
        fields[name] = node
    return ObjectNode(fields)


def _typeddict_node(td: type, seen: Set[int]) -> SchemaNode:
    if id(td) in seen:
        return OpaqueNode(td.__name__)
    seen = seen | {id(td)}
    try:
        hints = typing_extensions.get_type_hints(td, include_extras=True)
    except Exception:
        hints = dict(getattr(td, "__annotations__", {}))
    optional_keys = getattr(td, "__optional_keys__", frozenset())
    fields: Dict[str, SchemaNode] = {}
    for name, hint in hints.items():
        node = _lower(hint, seen)
        if name in optional_keys:
            node = OptionalNode(node)
        fields[name] = node
    return ObjectNode(fields)


def _primitive_for(tp: Any) -> Optional[Primitive]:
    if tp is None or tp is type(None):
        return Primitive("null")
    if tp is typing.Any or tp is typing_extensions.Any:
        return Primitive("any")
    if tp is object:
        return Primitive("unknown")
    if any(tp is form for form in _NEVER_FORMS):
        return Primitive("never")
    if tp is bool:
        return Primitive("boolean")
    if tp is str:
        return Primitive("string")
    if tp in _NUMBER_TYPES:
        return Primitive("number")
    if tp in (date, datetime):
        return Primitive("date")
    return None


def _lower(tp: Any, seen: Set[int]) -> SchemaNode:
    prim = _primitive_for(tp)
    if prim is not None:
        return prim

    if isinstance(tp, SchemaNode):
        return tp
    if _is_class(tp) and issubclass(tp, enum.Enum):
        return EnumNode(tuple(_render_literal(m.value) for m in tp))
    if _is_model(tp):
        return _model_node(tp, seen)
    if _is_typeddict(tp):
        return _typeddict_node(tp, seen)

    origin = typing_extensions.get_origin(tp)
    args = typing_extensions.get_args(tp)

    if origin in _ANNOTATED_FORMS:
        return _lower(args[0], seen)
    if origin in _REQUIRED_FORMS:
        return _lower(args[0], seen)
    if origin in _LITERAL_FORMS:
        values = tuple(_render_literal(v) for v in args)
        if len(values) == 1:
            return LiteralNode(values[0])
        return EnumNode(values)
    if origin is typing.Union or origin is types.UnionType:
        non_null = [a for a in args if a is not type(None)]
        if len(non_null) == len(args):
            return UnionNode(tuple(_lower(a, seen) for a in args))
        if len(non_null) == 1:
            inner = _lower(non_null[0], seen)
        else:
            inner = UnionNode(tuple(_lower(a, seen) for a in non_null))
        return NullableNode(inner)
    if origin is tuple:
        if len(args) == 2 and args[1] is Ellipsis:
            return ArrayNode(_lower(args[0], seen))
        return TupleNode(tuple(_lower(a, seen) for a in args))
    if origin in _SET_ORIGINS:
        return SetNode(_lower(args[0], seen) if args else Primitive("any"))
    if origin in _MAPPING_ORIGINS:
        if not args:
            return RecordNode(Primitive("any"))
        key, value = args
        if key is str:
            return RecordNode(_lower(value, seen))
        return MapNode(_lower(value, seen))
    if origin in _SEQUENCE_ORIGINS:
        return ArrayNode(_lower(args[0], seen) if args else Primitive("any"))

    # Bare, unparameterised containers
    if tp in (list, tuple):
        return ArrayNode(Primitive("any"))
    if tp in (set, frozenset):
        return SetNode(Primitive("any"))
    if tp is dict:
        return RecordNode(Primitive("any"))

    return OpaqueNode(getattr(tp, "__name__", repr(tp)))


def node_from_annotation(annotation: Any) -> SchemaNode:
    """Lower a Python type annotation (or model class) into a schema node."""
    return _lower(annotation, set())


def schema_node(schema: Any) -> ObjectNode:
    """Return the root object node for a model class, TypedDict or ObjectNode.

    Raises InvalidSchemaError when the schema's root has no field map.
    """
    if isinstance(schema, ObjectNode):
        return schema
    if _is_model(schema) or _is_typeddict(schema):
        node = node_from_annotation(schema)
        if isinstance(node, ObjectNode):
            return node
    raise InvalidSchemaError(
        f"Invalid schema: expected a pydantic model, TypedDict or ObjectNode, got {schema!r}"
    )


def extract_shape(schema: Any) -> str:
    """Canonical `{key:descriptor,...}` string for a schema's top-level fields."""
    root = schema_node(schema)
    keys: List[str] = sorted(root.fields)
    return "{" + ",".join(f"{k}:{type_descriptor(root.fields[k])}" for k in keys) + "}"


def hash_schema(schema: Any) -> str:
    return simple_hash(extract_shape(schema))
