"""Run-scoped state: diagnostics and the pieces shared by the pipeline stages.

A ``RunContext`` is created at the start of every ``generate`` call and
dropped at the end, so repeated runs never see each other's state.
"""

from typing import Callable, Literal

from pydantic import BaseModel, ConfigDict

from api_bindgen.parser.base import Node
from api_bindgen.parser.loader import DocumentSet
from api_bindgen.parser.resolver import Resolver


class Diagnostic(BaseModel):
    """A structured warning or info event raised during a run."""

    model_config = ConfigDict(frozen=True)

    level: Literal["info", "warning"]
    message: str
    document: str | None = None
    pointer: str | None = None

    def __str__(self) -> str:
        if self.document is None:
            return f"{self.level}: {self.message}"
        return f"{self.level}: {self.document}#{self.pointer or ''}: {self.message}"


DiagnosticSink = Callable[[Diagnostic], None]


class RunContext:
    def __init__(self, documents: DocumentSet, sink: DiagnosticSink | None = None):
        self.documents = documents
        self.resolver = Resolver(documents)
        self.diagnostics: list[Diagnostic] = []
        self._sink = sink

    def report(self, level: Literal["info", "warning"], message: str, node: Node | None = None) -> None:
        diagnostic = Diagnostic(
            level=level,
            message=message,
            document=node.document if node is not None else None,
            pointer=node.pointer if node is not None else None,
        )
        self.diagnostics.append(diagnostic)
        if self._sink is not None:
            self._sink(diagnostic)

    def warn(self, message: str, node: Node | None = None) -> None:
        self.report("warning", message, node)

    def info(self, message: str, node: Node | None = None) -> None:
        self.report("info", message, node)

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.level == "warning"]
