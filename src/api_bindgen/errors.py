"""Error taxonomy for a generation run.

Every error carries the document id and in-document JSON pointer of the
fragment it is about, so a user can locate it in the source spec.
"""


class GenerationError(Exception):
    """Base class for all errors that abort a generation run."""

    def __init__(self, message: str, document: str | None = None, pointer: str | None = None):
        self.message = message
        self.document = document
        self.pointer = pointer
        super().__init__(self._render())

    def _render(self) -> str:
        if self.document is None:
            return self.message
        location = self.document
        if self.pointer:
            location += f"#{self.pointer}"
        return f"{location}: {self.message}"


class IoError(GenerationError):
    """An input document could not be read."""


class ParseError(GenerationError):
    """An input document is malformed or a node has an unexpected shape."""


class UnresolvedReferenceError(GenerationError):
    """A $ref points at a document or path that does not exist."""

    def __init__(self, reference: str, document: str | None = None, pointer: str | None = None, reason: str = "not found"):
        self.reference = reference
        super().__init__(f"unresolved reference {reference!r}: {reason}", document, pointer)


class UnsupportedReferenceError(GenerationError):
    """A $ref uses a syntax the resolver does not understand."""

    def __init__(self, reference: object, document: str | None = None, pointer: str | None = None, reason: str = "unsupported syntax"):
        self.reference = reference
        super().__init__(f"unsupported reference {reference!r}: {reason}", document, pointer)


class OperationModelError(GenerationError):
    """An operation's parameters or responses cannot be bound to types."""

    def __init__(self, message: str, path: str, method: str, document: str | None = None, pointer: str | None = None):
        self.path = path
        self.method = method
        super().__init__(f"{method.upper()} {path}: {message}", document, pointer)


class EmitError(GenerationError):
    """The modeled graph reached a state the emitter cannot render."""
