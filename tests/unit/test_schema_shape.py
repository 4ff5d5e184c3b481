import enum
from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

import pytest
from pydantic import BaseModel, Field
from typing_extensions import NotRequired, TypedDict

from versioned_state.common.schema_shape import (
    ArrayNode,
    DefaultNode,
    EnumNode,
    IntersectionNode,
    LiteralNode,
    MapNode,
    NullableNode,
    ObjectNode,
    OpaqueNode,
    OptionalNode,
    Primitive,
    RecordNode,
    SetNode,
    TupleNode,
    UnionNode,
    extract_shape,
    hash_schema,
    node_from_annotation,
    type_descriptor,
)
from versioned_state.errors import InvalidSchemaError


class Prefs(BaseModel):
    color_scheme: Literal["system", "light", "dark"] = "system"
    language: str = "en"


class AppState(BaseModel):
    version: int
    name: str
    count: int = 0
    tags: List[str] = Field(default_factory=list)
    prefs: Prefs = Field(default_factory=Prefs)
    email: Optional[str] = None


class Color(enum.Enum):
    RED = "red"
    GREEN = "green"
    BLUE = "blue"


class Address(TypedDict):
    street: str
    zip: NotRequired[str]


class TreeNode(BaseModel):
    value: int
    children: List["TreeNode"] = Field(default_factory=list)


def _desc(annotation: Any) -> str:
    return type_descriptor(node_from_annotation(annotation))


def test_extract_shape_of_nested_model():
    assert extract_shape(AppState) == (
        "{count:default<number>,"
        "email:default<nullable<string>>,"
        "name:string,"
        "prefs:default<object{color_scheme:default<enum[system,light,dark]>,language:default<string>}>,"
        "tags:default<array<string>>,"
        "version:number}"
    )


@pytest.mark.parametrize(
    "annotation, expected",
    [
        (str, "string"),
        (int, "number"),
        (float, "number"),
        (bool, "boolean"),
        (type(None), "null"),
        (date, "date"),
        (datetime, "date"),
        (Any, "any"),
        (object, "unknown"),
        (List[int], "array<number>"),
        (list, "array<any>"),
        (Dict[str, int], "record<number>"),
        (Dict[int, str], "map<string>"),
        (tuple[int, str], "tuple<number,string>"),
        (tuple[int, ...], "array<number>"),
        (set[str], "set<string>"),
        (frozenset[int], "set<number>"),
        (Union[int, str], "union<number|string>"),
        (Optional[int], "nullable<number>"),
        (int | None, "nullable<number>"),
        (Optional[Union[int, str]], "nullable<union<number|string>>"),
        (Literal["a"], "literal<a>"),
        (Literal[True], "literal<true>"),
        (Literal["a", "b"], "enum[a,b]"),
        (Color, "enum[red,green,blue]"),
        (Annotated[int, "meta"], "number"),
        (Address, "object{street:string,zip:optional<string>}"),
        (bytes, "unknown"),
    ],
)
def test_annotation_descriptors(annotation, expected):
    assert _desc(annotation) == expected


def test_explicit_nodes_render():
    s, n = Primitive("string"), Primitive("number")
    assert type_descriptor(IntersectionNode(s, n)) == "intersection<string&number>"
    assert type_descriptor(MapNode(n)) == "map<number>"
    assert type_descriptor(RecordNode(s)) == "record<string>"
    assert type_descriptor(TupleNode((s, n, Primitive("boolean")))) == "tuple<string,number,boolean>"
    assert type_descriptor(SetNode(s)) == "set<string>"
    assert type_descriptor(OptionalNode(Primitive("undefined"))) == "optional<undefined>"
    assert type_descriptor(NullableNode(Primitive("void"))) == "nullable<void>"
    assert type_descriptor(DefaultNode(Primitive("never"))) == "default<never>"
    assert type_descriptor(UnionNode((s, ArrayNode(n)))) == "union<string|array<number>>"
    assert type_descriptor(EnumNode(("b", "a"))) == "enum[b,a]"
    assert type_descriptor(LiteralNode("42")) == "literal<42>"
    assert type_descriptor(ObjectNode({"b": s, "a": n})) == "object{a:number,b:string}"


def test_unknown_nodes_never_fail():
    assert type_descriptor(OpaqueNode("Whatever")) == "unknown"
    assert type_descriptor(object()) == "unknown"
    assert type_descriptor(None) == "unknown"


def test_primitive_names_are_closed():
    with pytest.raises(ValueError):
        Primitive("integer")


def test_recursive_model_does_not_loop():
    shape = extract_shape(TreeNode)
    assert "value:number" in shape
    assert shape.startswith("{children:")


def test_extract_shape_requires_field_map():
    with pytest.raises(InvalidSchemaError):
        extract_shape(int)
    with pytest.raises(InvalidSchemaError):
        extract_shape("not a schema")
    with pytest.raises(InvalidSchemaError):
        extract_shape(ArrayNode(Primitive("string")))


def test_extract_shape_accepts_object_node_and_typeddict():
    node = ObjectNode({"z": Primitive("string"), "a": Primitive("number")})
    assert extract_shape(node) == "{a:number,z:string}"
    assert extract_shape(Address) == "{street:string,zip:optional<string>}"


# -------- Hash contract --------
def test_structurally_identical_schemas_hash_identically():
    class A(BaseModel):
        version: int
        name: str
        count: int = 0

    class B(BaseModel):
        count: int = 5  # default value is not part of identity
        name: str
        version: int

    assert extract_shape(A) == extract_shape(B)
    assert hash_schema(A) == hash_schema(B)


def test_hash_changes_on_type_change_and_field_changes():
    class Base(BaseModel):
        version: int
        name: str

    class TypeChanged(BaseModel):
        version: int
        name: int

    class Added(BaseModel):
        version: int
        name: str
        email: str

    class Removed(BaseModel):
        version: int

    base = hash_schema(Base)
    assert hash_schema(TypeChanged) != base
    assert hash_schema(Added) != base
    assert hash_schema(Removed) != base
