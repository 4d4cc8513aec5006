"""Python code emitter: renders the type graph and operations as a package.

The generated package has three modules:

  <package>/__init__.py   API_VERSION and the public exports
  <package>/models.py     pydantic models, enums and type aliases
  <package>/client.py     a requests based client, one class per operation group

Rendering is a pure function of its inputs: the same graph and operations
always produce byte-identical text.
"""

import json

from api_bindgen.errors import EmitError
from api_bindgen.generator.validator import validate_python
from api_bindgen.model.operation import OperationDescriptor, ParameterDef
from api_bindgen.model.types import (
    EnumType,
    PrimitiveType,
    StructType,
    TypeGraph,
    UnionType,
    dependencies,
)
from api_bindgen.naming import class_name, field_name, identifier, pascal_case, unique

PRIMITIVE_TYPES = {"boolean": "bool", "integer": "int", "number": "float", "string": "str"}
STRING_FORMATS = {"date-time": "datetime.datetime", "date": "datetime.date", "binary": "bytes"}

# attributes of the generated client class that groups must not shadow
CLIENT_ATTRIBUTES = {"base_url", "session", "timeout", "request"}

MODEL_CONFIG = "    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())"


def _string(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def _literal(value: object) -> str:
    if isinstance(value, str):
        return _string(value)
    return repr(value)


def _argument(param: ParameterDef) -> str:
    if param.separator is None:
        return param.name
    return f"_join({param.name}, {_string(param.separator)})"


def _docstring(text: str, indent: str) -> list[str]:
    text = text.replace("\\", "\\\\").replace('"""', '\\"\\"\\"').strip()
    if text.endswith('"'):
        text += " "
    lines = text.splitlines()
    if len(lines) == 1:
        return [f'{indent}"""{lines[0]}"""']
    body = [f"{indent}{line}".rstrip() for line in lines[1:]]
    return [f'{indent}"""{lines[0]}'] + body + [f'{indent}"""']


class PythonEmitter:
    """Renders a generation run into the files of a Python package."""

    def __init__(
        self,
        graph: TypeGraph,
        operations: list[OperationDescriptor],
        title: str = "",
        version: str = "",
        package: str = "client",
        client_name: str = "Client",
    ):
        self.graph = graph
        self.operations = operations
        self.title = title or "the API"
        self.version = version
        self.package = package
        self.client_name = class_name(client_name)
        self._field_names: dict[str, dict[str, str]] = {}
        self._discriminators = self._collect_discriminators()

    def emit(self) -> dict[str, str]:
        files = {
            f"{self.package}/__init__.py": self._render_init(),
            f"{self.package}/models.py": self._render_models(),
            f"{self.package}/client.py": self._render_client(),
        }
        errors = validate_python(files)
        if errors:
            details = "; ".join(f"{name}: {message}" for name, message in sorted(errors.items()))
            raise EmitError(f"generated code does not parse: {details}")
        return files

    # -- annotations ----------------------------------------------------------

    def _definition(self, type_id: str):
        definition = self.graph.find(type_id)
        if definition is None:
            raise EmitError(f"type {type_id!r} is referenced but never defined")
        return definition

    def annotation(self, type_id: str, prefix: str = "", quoted: frozenset | set = frozenset()) -> tuple[str, set[str]]:
        """Python annotation text for a type id and the named types it mentions.

        Named types listed in ``quoted`` are rendered as string forward
        references. ``prefix`` qualifies named types, e.g. ``models.``.
        """
        resolved = self.graph.resolve(type_id)
        definition = self._definition(resolved)
        if definition.name is not None:
            text = f"{prefix}{resolved}"
            return (f'"{text}"' if resolved in quoted else text), {resolved}
        if definition.kind == "primitive":
            return self._primitive(definition), set()
        if definition.kind == "collection":
            item, names = self.annotation(definition.item, prefix, quoted)
            if definition.container == "list":
                return f"list[{item}]", names
            return f"dict[str, {item}]", names
        if definition.kind == "unknown":
            return "Any", set()
        # structs, enums and unions always carry a name
        raise EmitError(f"anonymous {definition.kind} type {resolved!r} cannot be rendered")

    def _primitive(self, definition: PrimitiveType) -> str:
        if definition.primitive == "string" and definition.format in STRING_FORMATS:
            return STRING_FORMATS[definition.format]
        return PRIMITIVE_TYPES[definition.primitive]

    # -- discriminators -------------------------------------------------------

    def _collect_discriminators(self) -> dict[str, dict[str, list[str]]]:
        """struct id -> {discriminator property -> literals} over all tagged unions."""
        result: dict[str, dict[str, list[str]]] = {}
        for type_id, definition in self.graph.items():
            if definition.kind != "union" or not definition.tagged:
                continue
            for mapping in definition.mapping:
                variant = self.graph.resolve(mapping.type)
                if self._definition(variant).kind != "struct":
                    raise EmitError(f"tagged union {type_id} has variant {variant}, which is not a struct")
                literals = result.setdefault(variant, {}).setdefault(definition.discriminator, [])
                if mapping.value not in literals:
                    literals.append(mapping.value)
        return result

    def field_names(self, struct_id: str) -> dict[str, str]:
        """Wire name -> Python attribute name for the fields of a struct."""
        if struct_id in self._field_names:
            return self._field_names[struct_id]
        definition = self._definition(struct_id)
        names: dict[str, str] = {}
        taken: set[str] = set()
        wires = list(self._discriminators.get(struct_id, {})) + [f.name for f in definition.fields]
        for wire in wires:
            if wire in names:
                continue
            python = unique(field_name(wire), taken)
            taken.add(python)
            names[wire] = python
        self._field_names[struct_id] = names
        return names

    # -- ordering -------------------------------------------------------------

    def _ordered(self, ids: list[str]) -> list[str]:
        """Dependencies first, declaration order otherwise; cycles keep declaration order."""
        members = set(ids)
        done: set[str] = set()
        visiting: set[str] = set()
        ordered: list[str] = []

        def visit(type_id: str) -> None:
            if type_id in done or type_id in visiting:
                return
            visiting.add(type_id)
            for dep in self._named_dependencies(type_id):
                if dep in members:
                    visit(dep)
            visiting.discard(type_id)
            done.add(type_id)
            ordered.append(type_id)

        for type_id in ids:
            visit(type_id)
        return ordered

    def _named_dependencies(self, type_id: str) -> list[str]:
        """Named types reachable from ``type_id`` through anonymous types."""
        result = []
        stack = list(reversed(dependencies(self._definition(type_id))))
        seen = set()
        while stack:
            dep = self.graph.resolve(stack.pop())
            if dep in seen:
                continue
            seen.add(dep)
            definition = self._definition(dep)
            if definition.name is not None:
                result.append(dep)
            else:
                stack.extend(reversed(dependencies(definition)))
        return result

    # -- models.py ------------------------------------------------------------

    def _render_models(self) -> str:
        enums, scalars, structs, others = [], [], [], []
        for type_id, definition in self.graph.named():
            if definition.kind == "enum":
                enums.append(type_id)
            elif definition.kind in ("primitive", "unknown"):
                scalars.append(type_id)
            elif definition.kind == "struct":
                structs.append(type_id)
            else:
                others.append(type_id)

        lines = _docstring(f"Data models for {self.title}.", "")
        lines += [
            "",
            "import datetime",
            "from enum import Enum",
            "from typing import Annotated, Any, Literal, Union",
            "",
            "from pydantic import BaseModel, ConfigDict, Field",
        ]

        defined: set[str] = set()
        for type_id in enums:
            lines += ["", ""] + self._render_enum(type_id, self.graph.get(type_id))
            defined.add(type_id)
        if scalars:
            lines += ["", ""]
            for type_id in scalars:
                lines += self._render_alias(type_id, self.graph.get(type_id), set())
                defined.add(type_id)
        for type_id in self._ordered(structs):
            lines += ["", ""] + self._render_struct(type_id, self.graph.get(type_id), defined)
            defined.add(type_id)

        pending = set(others)
        if others:
            lines.append("")
        for type_id in self._ordered(others):
            pending.discard(type_id)
            lines += [""] + self._render_alias(type_id, self.graph.get(type_id), pending | {type_id})
            defined.add(type_id)

        if structs:
            lines += ["", ""]
            lines += [f"{type_id}.model_rebuild()" for type_id in structs]

        aliases = self.graph.aliases
        if aliases:
            lines.append("")
            for alias in aliases:
                target, _ = self.annotation(alias)
                lines.append(f"{alias} = {target}")
        return "\n".join(lines) + "\n"

    def _render_enum(self, type_id: str, definition: EnumType) -> list[str]:
        values = [v.value for v in definition.variants]
        if all(isinstance(v, str) for v in values):
            bases = "str, Enum"
        elif all(isinstance(v, int) and not isinstance(v, bool) for v in values):
            bases = "int, Enum"
        else:
            bases = "Enum"
        lines = [f"class {type_id}({bases}):"]
        if definition.description:
            lines += _docstring(definition.description, "    ") + [""]
        lines += [f"    {v.name} = {_literal(v.value)}" for v in definition.variants]
        return lines

    def _render_struct(self, type_id: str, definition: StructType, defined: set[str]) -> list[str]:
        lines = [f"class {type_id}(BaseModel):"]
        if definition.description:
            lines += _docstring(definition.description, "    ") + [""]
        lines.append(MODEL_CONFIG)
        names = self.field_names(type_id)
        tags = self._discriminators.get(type_id, {})

        body = []
        for wire, literals in tags.items():
            values = ", ".join(_string(v) for v in literals)
            default = _string(literals[0]) if len(literals) == 1 else None
            body.append(self._field_line(names[wire], wire, f"Literal[{values}]", default))
        for field in definition.fields:
            if field.name in tags:
                continue
            text, mentioned = self.annotation(field.type)
            optional = not field.required or field.read_only
            if optional or field.nullable:
                text = f"{text} | None"
            if mentioned - defined:
                text = f'"{text}"'
            body.append(self._field_line(names[field.name], field.name, text, "None" if optional else None, field.description))
        if body:
            lines.append("")
            lines += body
        return lines

    def _field_line(self, python: str, wire: str, annotation: str, default: str | None, description: str = "") -> str:
        args = []
        if default is not None:
            args.append(default)
        if python != wire:
            args.append(f"alias={_string(wire)}")
        if description:
            args.append(f"description={_string(description)}")
        if not args:
            return f"    {python}: {annotation}"
        if default is not None and len(args) == 1:
            return f"    {python}: {annotation} = {default}"
        return f"    {python}: {annotation} = Field({', '.join(args)})"

    def _render_alias(self, type_id: str, definition, quoted: set[str]) -> list[str]:
        lines = []
        if definition.description:
            lines += [f"# {line}".rstrip() for line in definition.description.splitlines()]
        if definition.kind == "union":
            lines.append(f"{type_id} = {self._union(type_id, definition, quoted)}")
            return lines
        if definition.kind == "unknown":
            lines.append(f"{type_id} = Any")
            return lines
        if definition.kind == "primitive":
            lines.append(f"{type_id} = {self._primitive(definition)}")
            return lines
        if definition.kind == "collection":
            text, _ = self.annotation(definition.item, quoted=quoted)
            if definition.container == "list":
                lines.append(f"{type_id} = list[{text}]")
            else:
                lines.append(f"{type_id} = dict[str, {text}]")
            return lines
        raise EmitError(f"type {type_id} of kind {definition.kind!r} cannot be rendered as an alias")

    def _union(self, type_id: str, definition: UnionType, quoted: set[str]) -> str:
        variants = [self.annotation(v, quoted=quoted)[0] for v in definition.variants]
        if definition.tagged:
            for variant in definition.variants:
                if self._definition(self.graph.resolve(variant)).kind != "struct":
                    raise EmitError(f"tagged union {type_id} has variant {variant}, which is not a struct")
            if len(variants) == 1:
                return variants[0]
            discriminator = field_name(definition.discriminator)
            return f"Annotated[Union[{', '.join(variants)}], Field(discriminator={_string(discriminator)})]"
        if definition.nullable:
            variants.append("None")
        if len(variants) == 1:
            return variants[0]
        if len(variants) == 2 and variants[-1] == "None":
            return f"Union[{', '.join(variants)}]"
        return f'Annotated[Union[{", ".join(variants)}], Field(union_mode="left_to_right")]'

    # -- client.py ------------------------------------------------------------

    def _groups(self) -> dict[str, list[OperationDescriptor]]:
        groups: dict[str, list[OperationDescriptor]] = {}
        for operation in self.operations:
            groups.setdefault(operation.group, []).append(operation)
        return groups

    def _render_client(self) -> str:
        lines = _docstring(f"HTTP client for {self.title}.", "")
        lines += [
            "",
            "import datetime",
            "import re",
            "from typing import Any, Union",
            "from urllib.parse import quote",
            "",
            "import pydantic_core",
            "import requests",
            "from pydantic import BaseModel, TypeAdapter, ValidationError",
            "",
            "from . import models",
            "",
            "_PLACEHOLDER = re.compile(r\"\\{([^{}/]+)\\}\")",
            "",
            "",
        ]
        lines += CLIENT_RUNTIME.splitlines()

        attributes: list[tuple[str, str]] = []
        attr_taken = set(CLIENT_ATTRIBUTES)
        class_taken = {self.client_name, "ApiError"}
        for group, operations in self._groups().items():
            cls = unique(f"{pascal_case(group) or 'Default'}Operations", class_taken)
            class_taken.add(cls)
            attr = unique(identifier(group), attr_taken)
            attr_taken.add(attr)
            attributes.append((attr, cls))
            lines += ["", ""] + self._render_group(cls, operations)

        lines += ["", ""] + self._render_client_class(attributes)
        return "\n".join(lines) + "\n"

    def _render_group(self, cls: str, operations: list[OperationDescriptor]) -> list[str]:
        lines = [
            f"class {cls}:",
            f"    def __init__(self, client: \"{self.client_name}\"):",
            "        self._client = client",
        ]
        for operation in operations:
            lines.append("")
            lines += self._render_operation(operation)
        return lines

    def _param_annotation(self, param: ParameterDef) -> str:
        text, _ = self.annotation(param.type, prefix="models.")
        if not param.required or param.nullable:
            text = f"{text} | None"
        return text

    def _return_annotation(self, operation: OperationDescriptor) -> str:
        types = [self.annotation(t, prefix="models.")[0] for t in operation.return_types]
        if not types:
            return "None"
        if len(types) == 1:
            return types[0]
        return f"Union[{', '.join(types)}]"

    def _render_operation(self, operation: OperationDescriptor) -> list[str]:
        positional = ["self"]
        keyword = []
        for param in operation.parameters:
            annotation = self._param_annotation(param)
            if param.location == "path":
                positional.append(f"{param.name}: {annotation}")
            elif param.required:
                keyword.append(f"{param.name}: {annotation}")
            else:
                keyword.append(f"{param.name}: {annotation} = None")
        signature = positional + (["*"] + keyword if keyword else [])

        lines = [f"    def {operation.name}("]
        lines += [f"        {arg}," for arg in signature]
        lines.append(f"    ) -> {self._return_annotation(operation)}:")
        lines += _docstring(self._operation_doc(operation), "        ")

        by_location: dict[str, list[ParameterDef]] = {}
        for param in operation.parameters:
            by_location.setdefault(param.location, []).append(param)

        path_args = ", ".join(f"{_string(p.wire_name)}: {_argument(p)}" for p in by_location.get("path", []))
        call = [
            "        return self._client.request(",
            f"            {_string(operation.method.upper())},",
            f"            _expand({_string(operation.path)}, {{{path_args}}}),",
        ]
        for location, keyword_name in (("query", "params"), ("header", "headers"), ("cookie", "cookies"), ("form", "form")):
            params = by_location.get(location)
            if params:
                items = ", ".join(f"{_string(p.wire_name)}: {_argument(p)}" for p in params)
                call.append(f"            {keyword_name}={{{items}}},")
        body = by_location.get("body")
        if body:
            call.append(f"            body={body[0].name},")
        content_type = operation.request_body.content_type if operation.request_body else operation.form_content_type
        if content_type:
            call.append(f"            content_type={_string(content_type)},")
        responses = []
        for response in operation.responses:
            if response.type is None:
                responses.append(f"{_string(response.status)}: None")
            else:
                responses.append(f"{_string(response.status)}: {self.annotation(response.type, prefix='models.')[0]}")
        call.append(f"            responses={{{', '.join(responses)}}},")
        call.append("        )")
        return lines + call

    def _operation_doc(self, operation: OperationDescriptor) -> str:
        parts = []
        if operation.summary:
            parts.append(operation.summary)
        if operation.description and operation.description != operation.summary:
            parts.append(operation.description)
        parts.append(f"{operation.method.upper()} {operation.path}")
        if operation.deprecated:
            parts.append("Deprecated.")
        documented = [p for p in operation.parameters if p.description]
        if documented:
            args = ["Args:"]
            for param in documented:
                description = " ".join(param.description.split())
                args.append(f"    {param.name}: {description}")
            parts.append("\n".join(args))
        return "\n\n".join(parts)

    def _render_client_class(self, attributes: list[tuple[str, str]]) -> list[str]:
        lines = [
            f"class {self.client_name}(BaseClient):",
            "    def __init__(self, base_url: str, **kwargs: Any):",
            "        super().__init__(base_url, **kwargs)",
        ]
        lines += [f"        self.{attr} = {cls}(self)" for attr, cls in attributes]
        return lines

    # -- __init__.py ----------------------------------------------------------

    def _render_init(self) -> str:
        lines = _docstring(f"Client bindings for {self.title}.", "")
        lines += [
            "",
            f"from .client import ApiError, {self.client_name}",
            "from . import models",
            "",
            f"API_VERSION = {_string(self.version)}",
            "",
            f'__all__ = ["API_VERSION", "ApiError", {_string(self.client_name)}, "models"]',
        ]
        return "\n".join(lines) + "\n"


CLIENT_RUNTIME = '''class ApiError(Exception):
    """A non-success response, a transport failure or an undecodable body."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None, model: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.model = model


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_unset=True)
    return pydantic_core.to_jsonable_python(value, by_alias=True)


def _param(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [_param(v) for v in value]
    if isinstance(value, bool):
        return "true" if value else "false"
    return _jsonable(value)


def _join(value: Any, separator: str) -> Any:
    if isinstance(value, (list, tuple)):
        return separator.join(str(v) for v in _param(value))
    return value


def _present(values: dict[str, Any] | None) -> dict[str, Any]:
    return {k: _param(v) for k, v in (values or {}).items() if v is not None}


def _expand(template: str, values: dict[str, Any]) -> str:
    return _PLACEHOLDER.sub(lambda m: quote(str(_param(values[m.group(1)])), safe=""), template)


def _lookup(responses: dict[str, Any], status: int) -> tuple[bool, Any]:
    for key in (str(status), f"{status // 100}XX", "default"):
        if key in responses:
            return True, responses[key]
    return False, None


def _decode(response: requests.Response, type_: Any) -> Any:
    if type_ is None or not response.content:
        return None
    if type_ is bytes:
        return response.content
    if type_ is str and "json" not in response.headers.get("Content-Type", ""):
        return response.text
    return TypeAdapter(type_).validate_json(response.content)


class BaseClient:
    def __init__(
        self,
        base_url: str,
        session: requests.Session | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = 30,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        if headers:
            self.session.headers.update(headers)
        self.timeout = timeout

    def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, Any] | None = None,
        cookies: dict[str, Any] | None = None,
        form: dict[str, Any] | None = None,
        body: Any = None,
        content_type: str | None = None,
        responses: dict[str, Any] | None = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        kwargs: dict[str, Any] = {
            "params": _present(params),
            "headers": {k: str(v) for k, v in _present(headers).items()},
            "cookies": {k: str(v) for k, v in _present(cookies).items()},
            "timeout": self.timeout,
        }
        if body is not None:
            if isinstance(body, (bytes, str)) and not (content_type and "json" in content_type):
                kwargs["data"] = body
                kwargs["headers"]["Content-Type"] = content_type or "application/octet-stream"
            else:
                kwargs["json"] = _jsonable(body)
        elif form:
            fields = {k: v for k, v in form.items() if v is not None}
            if content_type == "multipart/form-data":
                kwargs["files"] = {k: v for k, v in fields.items() if isinstance(v, bytes)}
                kwargs["data"] = {k: _param(v) for k, v in fields.items() if not isinstance(v, bytes)}
            else:
                kwargs["data"] = {k: _param(v) for k, v in fields.items()}

        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as exc:
            raise ApiError(f"{method} {url} failed: {exc}") from exc

        status = response.status_code
        declared, type_ = _lookup(responses or {}, status)
        if 200 <= status < 300:
            try:
                return _decode(response, type_ if declared else None)
            except ValidationError as exc:
                raise ApiError(f"{method} {url}: cannot decode response: {exc}", status, response.text) from exc

        model = None
        if declared:
            try:
                model = _decode(response, type_)
            except ValidationError:
                # an undecodable error body still raises with the raw text
                model = None
        raise ApiError(f"{method} {url} returned {status}", status, response.text, model)
'''
