"""Document loader.

Reads OpenAPI / Swagger documents (JSON or YAML, local or over http) and
every document they reference through a cross-file $ref.
"""

import datetime
import json
from pathlib import Path
from typing import Any, Iterator

import requests
import yaml

from api_bindgen.errors import IoError, ParseError, UnresolvedReferenceError, UnsupportedReferenceError
from api_bindgen.parser.base import Document, join_pointer
from api_bindgen.parser.reference import Reference, canonical_id, is_remote, join

FETCH_TIMEOUT = 30

# keywords whose $refs point at example payloads, not at schemas
_SKIPPED_KEYS = {"example", "examples", "x-ms-examples"}

# keywords whose mapping keys are user-chosen names rather than keywords
_NAMED_MAPS = {
    "callbacks", "definitions", "headers", "links", "mapping", "parameters",
    "pathItems", "paths", "patternProperties", "properties", "requestBodies",
    "responses", "schemas", "securityDefinitions", "securitySchemes",
    "x-ms-paths",
}


def _normalize(value: Any, document: str, pointer: str = "") -> Any:
    """Coerce a YAML parse result into a JSON-like tree with string keys."""
    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            if isinstance(key, bool):
                key = "true" if key else "false"
            elif key is None:
                key = "null"
            key = str(key)
            result[key] = _normalize(item, document, join_pointer(pointer, key))
        return result
    if isinstance(value, list):
        return [_normalize(item, document, join_pointer(pointer, i)) for i, item in enumerate(value)]
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    raise ParseError(f"unsupported value of type {type(value).__name__}", document, pointer)


def _read_text(doc_id: str) -> str:
    if is_remote(doc_id):
        try:
            response = requests.get(doc_id, timeout=FETCH_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as e:
            raise IoError(f"cannot fetch document: {e}", doc_id) from e
        return response.text
    try:
        return Path(doc_id).read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(f"document is not valid UTF-8: {e}", doc_id) from e
    except OSError as e:
        raise IoError(f"cannot read document: {e.strerror or e}", doc_id) from e


def parse_text(text: str, doc_id: str) -> dict[str, Any]:
    """Parse document text; JSON for *.json, YAML for everything else."""
    if doc_id.lower().endswith(".json"):
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(f"invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})", doc_id) from e
    else:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ParseError(f"invalid YAML: {e}", doc_id) from e

    data = _normalize(data, doc_id)
    if not isinstance(data, dict):
        raise ParseError("document root must be an object", doc_id)
    return data


def load_document(source: str | Path, is_input: bool = False) -> Document:
    """Load a single document from a path or URL."""
    doc_id = canonical_id(source)
    text = _read_text(doc_id)
    return Document(id=doc_id, root=parse_text(text, doc_id), is_input=is_input)


def collect_refs(value: Any, pointer: str = "", named: bool = False) -> Iterator[tuple[Any, str]]:
    """Yield (reference, pointer) for every $ref in a document tree.

    Example payloads are skipped. When ``named`` is set the keys of ``value``
    are names (a property called ``examples``), not keywords.
    """
    if isinstance(value, dict):
        for key, item in value.items():
            if named:
                yield from collect_refs(item, join_pointer(pointer, key))
            elif key == "$ref":
                yield item, pointer
            elif key not in _SKIPPED_KEYS:
                yield from collect_refs(item, join_pointer(pointer, key), key in _NAMED_MAPS)
    elif isinstance(value, list):
        for index, item in enumerate(value):
            yield from collect_refs(item, join_pointer(pointer, index))


class DocumentSet:
    """All documents of one run, keyed by document id in load order."""

    def __init__(self, documents: list[Document] | None = None):
        self._documents: dict[str, Document] = {}
        for doc in documents or []:
            self.add(doc)

    def add(self, document: Document) -> None:
        self._documents[document.id] = document

    def get(self, doc_id: str) -> Document | None:
        return self._documents.get(doc_id)

    def __contains__(self, doc_id: str) -> bool:
        return doc_id in self._documents

    def __iter__(self) -> Iterator[Document]:
        return iter(self._documents.values())

    def __len__(self) -> int:
        return len(self._documents)

    @property
    def inputs(self) -> list[Document]:
        return [doc for doc in self._documents.values() if doc.is_input]

    @property
    def root(self) -> Document:
        return self.inputs[0]


def load_documents(sources: list[str | Path]) -> DocumentSet:
    """Load the input documents and, transitively, every referenced document."""
    if not sources:
        raise IoError("no input documents given")

    docs = DocumentSet()
    pending: list[Document] = []
    for source in sources:
        doc_id = canonical_id(source)
        existing = docs.get(doc_id)
        if existing is not None:
            docs.add(existing.model_copy(update={"is_input": True}))
            continue
        doc = load_document(doc_id, is_input=True)
        docs.add(doc)
        pending.append(doc)

    while pending:
        doc = pending.pop(0)
        for ref, pointer in collect_refs(doc.root):
            try:
                reference = Reference.parse(ref, doc.id, pointer)
            except UnsupportedReferenceError:
                # reported by the resolver if the reference is ever used
                continue
            if reference.file is None:
                continue
            target = join(doc.id, reference.file)
            if target in docs:
                continue
            if not is_remote(target) and not Path(target).is_file():
                raise UnresolvedReferenceError(ref, doc.id, pointer, "document not found")
            referenced = load_document(target)
            docs.add(referenced)
            pending.append(referenced)

    return docs
