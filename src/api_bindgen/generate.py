"""Generation pipeline: load -> resolve -> model -> emit -> format -> write."""

import os
import shlex
import shutil
import tempfile
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from api_bindgen.context import Diagnostic, DiagnosticSink, RunContext
from api_bindgen.errors import IoError, ParseError
from api_bindgen.generator.emitter import PythonEmitter
from api_bindgen.generator.formatter import DEFAULT_FORMATTER, run_formatter
from api_bindgen.generator.validator import validate_python
from api_bindgen.model.operation import OperationDescriptor, OperationModeler
from api_bindgen.model.schema import SchemaModeler
from api_bindgen.model.types import TypeGraph
from api_bindgen.naming import identifier
from api_bindgen.parser.loader import load_documents


class GenerateOptions(BaseModel):
    """Settings of one generation run."""

    model_config = ConfigDict(extra="forbid")

    output_folder: Path = Path("generated")
    package_name: str | None = None
    format: bool = False
    formatter: list[str] = Field(default_factory=lambda: list(DEFAULT_FORMATTER))
    client_name: str = "Client"

    @field_validator("formatter", mode="before")
    @classmethod
    def _split_command(cls, value):
        if isinstance(value, str):
            value = shlex.split(value)
        if isinstance(value, list) and not value:
            raise ValueError("formatter command is empty")
        return value

    @field_validator("package_name")
    @classmethod
    def _check_package(cls, value: str | None) -> str | None:
        if value is not None and (not value.isidentifier() or identifier(value) != value):
            raise ValueError(f"{value!r} is not a valid package name")
        return value

    @field_validator("client_name")
    @classmethod
    def _check_client(cls, value: str) -> str:
        if not value.isidentifier():
            raise ValueError(f"{value!r} is not a valid class name")
        return value


def load_options(config_path: Path | None = None, **overrides) -> GenerateOptions:
    """Options from a YAML config file; overrides that are not None win.

    Raises pydantic's ``ValidationError`` for invalid values.
    """
    data = {}
    if config_path is not None:
        try:
            data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except OSError as e:
            raise IoError(f"cannot read config: {e}", str(config_path)) from e
        except yaml.YAMLError as e:
            raise ParseError(f"invalid YAML: {e}", str(config_path)) from e
        if not isinstance(data, dict):
            raise ParseError("config must be a mapping", str(config_path))
        data = {key.replace("-", "_"): value for key, value in data.items()}
    data.update({key: value for key, value in overrides.items() if value is not None})
    return GenerateOptions.model_validate(data)


class GenerationResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    package: str
    files: dict[str, str]
    diagnostics: list[Diagnostic]
    operations: list[OperationDescriptor]
    graph: TypeGraph

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.level == "warning"]


def analyze(input_files: list[str | Path], sink: DiagnosticSink | None = None) -> tuple[RunContext, TypeGraph, list[OperationDescriptor]]:
    """Load, resolve and model a document set without emitting anything."""
    documents = load_documents(input_files)
    context = RunContext(documents, sink)
    schemas = SchemaModeler(context)
    schemas.model_definitions()
    operations = OperationModeler(context, schemas).model_operations()
    return context, schemas.graph, operations


def package_name(title: str) -> str:
    name = identifier(title) if title else ""
    return name if name.strip("_") else "client"


def generate(
    input_files: list[str | Path],
    options: GenerateOptions | None = None,
    sink: DiagnosticSink | None = None,
) -> GenerationResult:
    """Run the whole pipeline and return the files to write.

    Nothing is written to disk; see ``write_files``.
    """
    options = options or GenerateOptions()
    context, graph, operations = analyze(input_files, sink)
    root = context.documents.root
    package = options.package_name or package_name(root.title)

    emitter = PythonEmitter(
        graph,
        operations,
        title=root.title,
        version=root.version,
        package=package,
        client_name=options.client_name,
    )
    files = emitter.emit()
    if options.format:
        files = _format_files(files, options.formatter, context)

    return GenerationResult(
        package=package,
        files=files,
        diagnostics=list(context.diagnostics),
        operations=operations,
        graph=graph,
    )


def _format_files(files: dict[str, str], command: list[str], context: RunContext) -> dict[str, str]:
    formatted = {}
    for path, text in files.items():
        result, error = run_formatter(text, command)
        if error is not None:
            context.warn(f"{path} left unformatted ({error})")
        elif validate_python({path: result}):
            context.warn(f"{path} left unformatted ({command[0]} output does not parse)")
            result = text
        formatted[path] = result
    return formatted


def write_files(files: dict[str, str], output_folder: Path) -> list[Path]:
    """Write ``files`` below ``output_folder``.

    Each top-level directory is staged in a temporary sibling and swapped in
    only once fully written, so a failed run leaves previous output intact.
    """
    output_folder = Path(output_folder)
    written = []
    try:
        output_folder.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=".api-bindgen-", dir=output_folder))
    except OSError as e:
        raise IoError(f"cannot create output folder: {e}", str(output_folder)) from e

    try:
        for rel in sorted(files):
            target = staging / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(files[rel], encoding="utf-8")
            written.append(output_folder / rel)

        for top in sorted({Path(rel).parts[0] for rel in files}):
            final = output_folder / top
            previous = staging / f"{top}.previous"
            if final.exists():
                os.replace(final, previous)
            try:
                os.replace(staging / top, final)
            except OSError:
                if previous.exists() and not final.exists():
                    os.replace(previous, final)
                raise
    except OSError as e:
        raise IoError(f"cannot write output: {e}", str(output_folder)) from e
    finally:
        shutil.rmtree(staging, ignore_errors=True)
    return written
