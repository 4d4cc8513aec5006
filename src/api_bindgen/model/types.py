"""The type graph: a mapping from stable type ids to type definitions.

Definitions reference each other only by id, never by embedding, so
self-referential and mutually recursive schemas are plain graph edges.
Definitions are frozen; later amendments go through ``TypeGraph.alias``.
"""

from typing import Annotated, Any, Iterator, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from api_bindgen.parser.resolver import RefKey


class _Definition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str | None = None
    description: str = ""
    source: RefKey | None = None


class PrimitiveType(_Definition):
    kind: Literal["primitive"] = "primitive"
    primitive: Literal["boolean", "integer", "number", "string"]
    format: str | None = None


class CollectionType(_Definition):
    """An ordered sequence (``list``) or a string-keyed mapping (``map``) of ``item``."""

    kind: Literal["collection"] = "collection"
    container: Literal["list", "map"]
    item: str


class FieldDef(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: str
    required: bool = False
    nullable: bool = False
    read_only: bool = False
    description: str = ""


class StructType(_Definition):
    kind: Literal["struct"] = "struct"
    fields: tuple[FieldDef, ...] = ()
    # allOf members the fields were merged from
    bases: tuple[str, ...] = ()

    def field(self, name: str) -> FieldDef | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None


class EnumVariant(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    value: str | int | float | bool


class EnumType(_Definition):
    kind: Literal["enum"] = "enum"
    variants: tuple[EnumVariant, ...]


class UnionMapping(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    type: str


class UnionType(_Definition):
    kind: Literal["union"] = "union"
    variants: tuple[str, ...]
    discriminator: str | None = None
    mapping: tuple[UnionMapping, ...] = ()
    nullable: bool = False

    @property
    def tagged(self) -> bool:
        return self.discriminator is not None


class UnknownType(_Definition):
    kind: Literal["unknown"] = "unknown"
    raw: Any = None
    reason: str = ""


TypeDef = Annotated[
    Union[PrimitiveType, CollectionType, StructType, EnumType, UnionType, UnknownType],
    Field(discriminator="kind"),
]


def primitive_id(primitive: str, format: str | None = None) -> str:
    return f"{primitive}:{format}" if format else primitive


def collection_id(container: str, item: str) -> str:
    return f"{container}[{item}]"


def dependencies(definition: TypeDef) -> list[str]:
    """Ids directly referenced by a definition, in declaration order."""
    if definition.kind == "collection":
        return [definition.item]
    if definition.kind == "struct":
        return [f.type for f in definition.fields]
    if definition.kind == "union":
        return list(definition.variants)
    if definition.kind in ("primitive", "enum", "unknown"):
        return []
    raise ValueError(f"unknown definition kind {definition.kind!r}")


class TypeGraph:
    """Ordered store of type definitions plus alias redirections."""

    def __init__(self):
        self._types: dict[str, TypeDef] = {}
        self._aliases: dict[str, str] = {}

    def add(self, type_id: str, definition: TypeDef) -> str:
        if type_id in self._types or type_id in self._aliases:
            raise ValueError(f"type id {type_id!r} is already defined")
        self._types[type_id] = definition
        return type_id

    def ensure(self, type_id: str, definition: TypeDef) -> str:
        """Add an anonymous structural type unless it already exists."""
        if type_id not in self._types:
            self._types[type_id] = definition
        return type_id

    def alias(self, type_id: str, target: str) -> None:
        """Redirect future lookups of ``type_id`` to ``target``."""
        if type_id in self._types or type_id in self._aliases:
            raise ValueError(f"type id {type_id!r} is already defined")
        if self.resolve(target) == type_id:
            raise ValueError(f"alias {type_id!r} -> {target!r} is circular")
        self._aliases[type_id] = target

    def resolve(self, type_id: str) -> str:
        seen = set()
        while type_id in self._aliases:
            if type_id in seen:
                raise ValueError(f"alias chain through {type_id!r} is circular")
            seen.add(type_id)
            type_id = self._aliases[type_id]
        return type_id

    def get(self, type_id: str) -> TypeDef:
        return self._types[self.resolve(type_id)]

    def find(self, type_id: str) -> TypeDef | None:
        return self._types.get(self.resolve(type_id))

    def is_alias(self, type_id: str) -> bool:
        return type_id in self._aliases

    def __contains__(self, type_id: str) -> bool:
        return self.resolve(type_id) in self._types

    def __iter__(self) -> Iterator[str]:
        return iter(self._types)

    def __len__(self) -> int:
        return len(self._types)

    def items(self) -> Iterator[tuple[str, TypeDef]]:
        return iter(self._types.items())

    @property
    def aliases(self) -> dict[str, str]:
        return dict(self._aliases)

    def named(self) -> list[tuple[str, TypeDef]]:
        """Definitions that carry a public name, in insertion order."""
        return [(type_id, d) for type_id, d in self._types.items() if d.name is not None]
