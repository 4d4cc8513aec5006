"""Reference resolver.

Turns $ref strings into resolved entities. Schema references that are
already being modeled further up the call stack come back as ``Deferred``
handles, which the schema modeler turns into graph edges instead of
recursing forever.
"""

from contextlib import contextmanager
from typing import Iterator, Literal

from pydantic import BaseModel, ConfigDict

from api_bindgen.errors import UnresolvedReferenceError
from api_bindgen.parser.base import Node
from api_bindgen.parser.loader import DocumentSet
from api_bindgen.parser.reference import Reference, join

EntityKind = Literal["schema", "parameter", "response", "request_body", "path_item"]


class RefKey(BaseModel):
    """Stable identity of a node: document id plus JSON pointer."""

    model_config = ConfigDict(frozen=True)

    document: str
    pointer: str

    @classmethod
    def of(cls, node: Node) -> "RefKey":
        return cls(document=node.document, pointer=node.pointer)

    @property
    def name(self) -> str:
        return self.pointer.rsplit("/", 1)[-1].replace("~1", "/").replace("~0", "~")

    def __str__(self) -> str:
        return f"{self.document}#{self.pointer}"


class ResolvedEntity(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: EntityKind
    key: RefKey
    node: Node


class Deferred(BaseModel):
    """Handle for a schema reference whose resolution is already in progress."""

    model_config = ConfigDict(frozen=True)

    key: RefKey


class Resolver:
    """Resolves references against the documents of one run."""

    def __init__(self, documents: DocumentSet):
        self.documents = documents
        self._in_progress: list[RefKey] = []

    # -- lookups --------------------------------------------------------------

    def locate(self, reference: str, from_document: str, pointer: str | None = None) -> Node:
        """Find the node a reference points at, without following further refs."""
        ref = Reference.parse(reference, from_document, pointer)
        doc_id = from_document if ref.file is None else join(from_document, ref.file)
        document = self.documents.get(doc_id)
        if document is None:
            raise UnresolvedReferenceError(reference, from_document, pointer, f"document {doc_id} is not loaded")

        node = document.node
        for segment in ref.path:
            if node.is_mapping():
                child = node.get(segment)
            elif node.is_list() and segment.isdigit():
                child = node.child(int(segment)) if int(segment) < len(node.as_list()) else None
            else:
                child = None
            if child is None:
                raise UnresolvedReferenceError(
                    reference, from_document, pointer, f"no {segment!r} under {doc_id}#{node.pointer}"
                )
            node = child
        return node

    def resolve(self, reference: str, from_document: str, kind: EntityKind, pointer: str | None = None) -> ResolvedEntity:
        """Resolve a reference, following chains of pure $ref nodes."""
        seen: list[str] = []
        node = self.locate(reference, from_document, pointer)
        while node.has("$ref"):
            location = node.location
            if location in seen:
                raise UnresolvedReferenceError(reference, from_document, pointer, "circular reference chain")
            seen.append(location)
            node = self.locate(node.get_value("$ref"), node.document, node.pointer)
        return ResolvedEntity(kind=kind, key=RefKey.of(node), node=node)

    def deref(self, node: Node, kind: EntityKind) -> ResolvedEntity:
        """Resolve ``node`` if it is a $ref, else wrap it as it is."""
        if node.has("$ref"):
            return self.resolve(node.get_value("$ref"), node.document, kind, node.pointer)
        return ResolvedEntity(kind=kind, key=RefKey.of(node), node=node)

    # -- schemas and cycles ---------------------------------------------------

    def resolve_schema(self, reference: str, from_document: str, pointer: str | None = None) -> ResolvedEntity | Deferred:
        """Resolve one hop of a schema reference.

        Schemas that are only a $ref to another schema are aliases and are
        left for the modeler, so only the first hop is followed here.
        """
        node = self.locate(reference, from_document, pointer)
        key = RefKey.of(node)
        if key in self._in_progress:
            return Deferred(key=key)
        return ResolvedEntity(kind="schema", key=key, node=node)

    @contextmanager
    def resolving(self, key: RefKey) -> Iterator[None]:
        """Mark ``key`` as being resolved for the duration of the block."""
        self._in_progress.append(key)
        try:
            yield
        finally:
            self._in_progress.pop()
