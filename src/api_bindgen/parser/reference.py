"""Parsing of $ref strings and joining of document locations."""

import posixpath
from pathlib import Path
from urllib.parse import unquote, urljoin, urlsplit

from pydantic import BaseModel, ConfigDict

from api_bindgen.errors import UnsupportedReferenceError

REMOTE_SCHEMES = ("http", "https")


class Reference(BaseModel):
    """A parsed $ref: an optional document part and a JSON pointer path."""

    model_config = ConfigDict(frozen=True)

    file: str | None
    path: tuple[str, ...]

    @property
    def name(self) -> str | None:
        """Last pointer segment, e.g. ``Pet`` for ``#/definitions/Pet``."""
        return self.path[-1] if self.path else None

    @property
    def pointer(self) -> str:
        if not self.path:
            return ""
        return "/" + "/".join(p.replace("~", "~0").replace("/", "~1") for p in self.path)

    @classmethod
    def parse(cls, text: object, document: str | None = None, pointer: str | None = None) -> "Reference":
        if not isinstance(text, str) or not text:
            raise UnsupportedReferenceError(text, document, pointer, "reference must be a non-empty string")

        file, sep, fragment = text.partition("#")
        scheme = urlsplit(file).scheme
        # single letters are drive names on windows paths
        if scheme and len(scheme) > 1 and scheme not in REMOTE_SCHEMES + ("file",):
            raise UnsupportedReferenceError(text, document, pointer, f"scheme {scheme!r} is not supported")
        if fragment and not fragment.startswith("/"):
            raise UnsupportedReferenceError(text, document, pointer, "fragment is not a JSON pointer")

        path: tuple[str, ...] = ()
        if fragment:
            tokens = fragment[1:].split("/")
            path = tuple(unquote(t).replace("~1", "/").replace("~0", "~") for t in tokens)
        return cls(file=file or None, path=path)


def is_remote(document: str) -> bool:
    return urlsplit(document).scheme in REMOTE_SCHEMES


def canonical_id(source: str | Path) -> str:
    """Canonical document id: the URL for remote sources, else an absolute posix path."""
    text = str(source)
    if is_remote(text):
        return text
    if text.startswith("file://"):
        text = unquote(urlsplit(text).path)
    return Path(text).resolve().as_posix()


def join(base_document: str, file: str) -> str:
    """Resolve ``file`` relative to the document that references it."""
    if is_remote(file):
        return file
    if is_remote(base_document):
        return urljoin(base_document, file)
    if file.startswith("file://"):
        return canonical_id(file)
    directory = posixpath.dirname(base_document)
    return canonical_id(posixpath.join(directory, unquote(file)))
