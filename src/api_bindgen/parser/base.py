"""Document tree models shared by the loader, resolver and modelers.

A parsed document is a plain JSON-like value (None, bool, int, float, str,
list, dict with str keys). ``Node`` wraps one value of that tree together
with the id of the document it came from and its JSON pointer, and offers
shape-checked accessors that raise ``ParseError`` on mismatch.
"""

from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict

from api_bindgen.errors import ParseError


def escape_token(token: str) -> str:
    """Escape a single JSON pointer reference token."""
    return token.replace("~", "~0").replace("/", "~1")


def join_pointer(pointer: str, token: str | int) -> str:
    return f"{pointer}/{escape_token(str(token))}"


def _shape(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


class Node(BaseModel):
    """An immutable view of one value in a loaded document."""

    model_config = ConfigDict(frozen=True)

    value: Any
    document: str
    pointer: str = ""

    # -- shape checks ---------------------------------------------------------

    @property
    def shape(self) -> str:
        return _shape(self.value)

    def is_mapping(self) -> bool:
        return isinstance(self.value, dict)

    def is_list(self) -> bool:
        return isinstance(self.value, list)

    def _mismatch(self, expected: str) -> ParseError:
        return ParseError(f"expected {expected}, found {self.shape}", self.document, self.pointer)

    def as_mapping(self) -> dict[str, Any]:
        if not isinstance(self.value, dict):
            raise self._mismatch("object")
        return self.value

    def as_list(self) -> list[Any]:
        if not isinstance(self.value, list):
            raise self._mismatch("array")
        return self.value

    def as_str(self) -> str:
        if not isinstance(self.value, str):
            raise self._mismatch("string")
        return self.value

    def as_bool(self) -> bool:
        if not isinstance(self.value, bool):
            raise self._mismatch("boolean")
        return self.value

    # -- navigation -----------------------------------------------------------

    def has(self, key: str) -> bool:
        return isinstance(self.value, dict) and key in self.value

    def child(self, key: str | int) -> "Node":
        """Return the child at ``key``; fails with ParseError when absent."""
        if isinstance(key, int):
            items = self.as_list()
            if key >= len(items):
                raise ParseError(f"index {key} out of range", self.document, self.pointer)
            return Node(value=items[key], document=self.document, pointer=join_pointer(self.pointer, key))
        mapping = self.as_mapping()
        if key not in mapping:
            raise ParseError(f"missing key {key!r}", self.document, self.pointer)
        return Node(value=mapping[key], document=self.document, pointer=join_pointer(self.pointer, key))

    def get(self, key: str) -> "Node | None":
        """Return the child at ``key`` of a mapping, or None when absent."""
        if not isinstance(self.value, dict) or key not in self.value:
            return None
        return Node(value=self.value[key], document=self.document, pointer=join_pointer(self.pointer, key))

    def get_value(self, key: str, default: Any = None) -> Any:
        if isinstance(self.value, dict):
            return self.value.get(key, default)
        return default

    def items(self) -> Iterator[tuple[str, "Node"]]:
        """Iterate over (key, child) of a mapping in document order."""
        for key, value in self.as_mapping().items():
            yield key, Node(value=value, document=self.document, pointer=join_pointer(self.pointer, key))

    def elements(self) -> Iterator["Node"]:
        """Iterate over the children of an array in document order."""
        for index, value in enumerate(self.as_list()):
            yield Node(value=value, document=self.document, pointer=join_pointer(self.pointer, index))

    @property
    def location(self) -> str:
        return f"{self.document}#{self.pointer}"


class Document(BaseModel):
    """A loaded specification document."""

    model_config = ConfigDict(frozen=True)

    id: str
    root: dict[str, Any]
    is_input: bool = False

    @property
    def node(self) -> Node:
        return Node(value=self.root, document=self.id, pointer="")

    @property
    def title(self) -> str:
        info = self.root.get("info")
        if isinstance(info, dict) and isinstance(info.get("title"), str):
            return info["title"]
        return ""

    @property
    def version(self) -> str:
        info = self.root.get("info")
        if isinstance(info, dict) and info.get("version") is not None:
            return str(info["version"])
        return ""
