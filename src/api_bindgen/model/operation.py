"""Operation modeler.

Turns every (path, method) pair of the input documents into an
``OperationDescriptor`` bound to the type graph. Handles OpenAPI 3.x
(``requestBody``, ``content``) and Swagger 2.0 (``in: body``, ``formData``,
response ``schema``) documents.
"""

import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from api_bindgen.context import RunContext
from api_bindgen.errors import OperationModelError, UnresolvedReferenceError, UnsupportedReferenceError
from api_bindgen.model.schema import SchemaModeler
from api_bindgen.model.types import PrimitiveType, primitive_id
from api_bindgen.naming import RESERVED_PARAMETER_NAMES, identifier, pascal_case, unique
from api_bindgen.parser.base import Node
from api_bindgen.parser.resolver import EntityKind, RefKey

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

Location = Literal["path", "query", "header", "cookie", "form", "body"]

# binding order of generated call signatures
LOCATION_ORDER = ("path", "query", "header", "cookie", "form", "body")

_IN_TO_LOCATION = {
    "path": "path",
    "query": "query",
    "header": "header",
    "cookie": "cookie",
    "formData": "form",
    "body": "body",
}

PATH_PARAM_RE = re.compile(r"\{([^{}/]+)\}")
# Swagger 2 collectionFormat and OpenAPI 3 style -> array separator
COLLECTION_SEPARATORS = {"csv": ",", "ssv": " ", "tsv": "\t", "pipes": "|", "multi": None}
STYLE_SEPARATORS = {"form": ",", "simple": ",", "spaceDelimited": " ", "pipeDelimited": "|"}

STATUS_RE = re.compile(r"^[1-5]([0-9]{2}|XX)$")
_AZURE_OPERATION_ID = re.compile(r"^([A-Z][A-Za-z0-9]*)_([A-Za-z0-9]+)$")


class ParameterDef(BaseModel):
    """A single bound parameter of an operation."""

    model_config = ConfigDict(frozen=True)

    name: str  # python identifier
    wire_name: str  # name on the wire
    location: Location
    type: str
    required: bool
    nullable: bool = False
    default: Any = None
    description: str = ""
    # joins array values into one string; None sends one key per value
    separator: str | None = None


class RequestBodyDef(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    content_type: str = "application/json"
    required: bool = False
    description: str = ""


class ResponseDef(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str  # "200", "4XX" or "default"
    type: str | None = None
    description: str = ""

    @property
    def is_success(self) -> bool:
        return self.status.startswith("2")


class OperationDescriptor(BaseModel):
    """The modeled form of one endpoint/method pair."""

    model_config = ConfigDict(frozen=True)

    name: str
    group: str
    method: str
    path: str
    path_params: tuple[str, ...] = ()
    parameters: tuple[ParameterDef, ...] = ()
    request_body: RequestBodyDef | None = None
    # set when form parameters are sent as the body
    form_content_type: str | None = None
    responses: tuple[ResponseDef, ...] = ()
    operation_id: str | None = None
    summary: str = ""
    description: str = ""
    deprecated: bool = False
    source: RefKey | None = None

    @property
    def success(self) -> list[ResponseDef]:
        return [r for r in self.responses if r.is_success]

    @property
    def errors(self) -> list[ResponseDef]:
        """Declared error variants, ``default`` included."""
        return [r for r in self.responses if not r.is_success]

    @property
    def return_types(self) -> list[str]:
        types = []
        for response in self.success:
            if response.type is not None and response.type not in types:
                types.append(response.type)
        return types


def create_function_name(path: str, method: str) -> str:
    """Name for an operation without an operationId, e.g. ``pets_pet_id_get``."""
    segments = [s.strip("{}") for s in path.split("?")[0].split("/") if s]
    segments.append(method)
    return identifier("_".join(segments))


def _text(node: Node, key: str) -> str:
    value = node.get_value(key)
    return value.strip() if isinstance(value, str) else ""


class OperationModeler:
    def __init__(self, context: RunContext, schemas: SchemaModeler):
        self.context = context
        self.resolver = context.resolver
        self.schemas = schemas

    def _deref(self, path: str, method: str, node: Node, kind: EntityKind) -> Node:
        """Follow a parameter, request body or response $ref of an operation."""
        try:
            return self.resolver.deref(node, kind).node
        except (UnresolvedReferenceError, UnsupportedReferenceError) as e:
            raise OperationModelError(e.message, path, method, e.document, e.pointer) from e

    def model_operations(self) -> list[OperationDescriptor]:
        """One descriptor per (path, method) of every input document, in source order."""
        operations = []
        taken: dict[str, set[str]] = {}
        for document in self.context.documents.inputs:
            root = document.node
            for key in ("paths", "x-ms-paths"):
                paths = root.get(key)
                if paths is None:
                    continue
                for path, item in paths.items():
                    operations.extend(self._path_item(path, item, taken))
        return operations

    def _path_item(self, path: str, item: Node, taken: dict[str, set[str]]) -> list[OperationDescriptor]:
        node = self.resolver.deref(item, "path_item").node
        shared = node.get("parameters")
        operations = []
        for method, operation in node.items():
            if method.lower() not in HTTP_METHODS:
                continue
            operations.append(self._operation(path, method.lower(), operation, shared, taken))
        return operations

    def _operation(self, path: str, method: str, op: Node, shared: Node | None, taken: dict[str, set[str]]) -> OperationDescriptor:
        if not op.is_mapping():
            raise OperationModelError(f"operation is {op.shape}, not an object", path, method, op.document, op.pointer)

        operation_id = op.get_value("operationId") if isinstance(op.get_value("operationId"), str) else None
        group, name = self._naming(path, method, op, operation_id)
        names = taken.setdefault(group, set())
        if name in names:
            renamed = unique(name, names)
            self.context.info(f"operation name {group}.{name} is already taken; using {renamed}", op)
            name = renamed
        names.add(name)

        hint = pascal_case(operation_id) if operation_id else pascal_case(name)
        parameters, request_body = self._parameters(path, method, op, shared, hint)
        return OperationDescriptor(
            name=name,
            group=group,
            method=method,
            path=path,
            path_params=tuple(p.wire_name for p in parameters if p.location == "path"),
            parameters=tuple(parameters),
            request_body=request_body,
            form_content_type=self._form_content_type(op, parameters),
            responses=tuple(self._responses(path, method, op, hint)),
            operation_id=operation_id,
            summary=_text(op, "summary"),
            description=_text(op, "description"),
            deprecated=op.get_value("deprecated") is True,
            source=RefKey.of(op),
        )

    def _naming(self, path: str, method: str, op: Node, operation_id: str | None) -> tuple[str, str]:
        tags = op.get_value("tags")
        tag = tags[0] if isinstance(tags, list) and tags and isinstance(tags[0], str) else None

        if operation_id is None:
            name = create_function_name(path, method)
            return identifier(tag) if tag else "default", name

        # Group_Operation style ids carry their group
        match = _AZURE_OPERATION_ID.match(operation_id)
        if match:
            prefix, rest = match.groups()
            if tag is None or identifier(tag) == identifier(prefix):
                return identifier(prefix), identifier(rest)
        return identifier(tag) if tag else "default", identifier(operation_id)

    # -- parameters -----------------------------------------------------------

    def _parameters(self, path: str, method: str, op: Node, shared: Node | None, hint: str) -> tuple[list[ParameterDef], RequestBodyDef | None]:
        declared: dict[tuple[str, str], Node] = {}
        for source in (shared, op.get("parameters")):
            if source is None:
                continue
            if not source.is_list():
                raise OperationModelError(f"parameters is {source.shape}, not an array", path, method, source.document, source.pointer)
            for item in source.elements():
                param = self._deref(path, method, item, "parameter")
                if not param.is_mapping():
                    raise OperationModelError(f"parameter is {param.shape}, not an object", path, method, param.document, param.pointer)
                name = param.get_value("name")
                location = param.get_value("in")
                if not isinstance(name, str) or not isinstance(location, str) or location not in _IN_TO_LOCATION:
                    raise OperationModelError("parameter needs a name and a valid 'in' location", path, method, param.document, param.pointer)
                # operation-level declarations override path-level ones
                declared[(name, location)] = param

        taken = set(RESERVED_PARAMETER_NAMES)
        by_location: dict[str, list[ParameterDef]] = {loc: [] for loc in LOCATION_ORDER}
        request_body = None
        for (name, location), param in declared.items():
            if location == "body":
                if request_body is not None:
                    self.context.warn("operation declares more than one body parameter; extra ignored", param)
                    continue
                request_body = self._body_parameter(path, method, op, param, hint)
                continue
            definition = self._parameter(path, method, name, _IN_TO_LOCATION[location], param, hint, taken)
            by_location[definition.location].append(definition)

        by_location["path"] = self._order_path_params(path, by_location["path"], op, taken)

        body_node = op.get("requestBody")
        if body_node is not None:
            if request_body is not None:
                self.context.warn("operation has both a body parameter and a requestBody; requestBody ignored", body_node)
            else:
                request_body = self._request_body(path, method, body_node, hint)

        if request_body is not None:
            by_location["body"].append(ParameterDef(
                name=unique("body", taken),
                wire_name="body",
                location="body",
                type=request_body.type,
                required=request_body.required,
                description=request_body.description,
            ))

        parameters = [p for location in LOCATION_ORDER for p in by_location[location]]
        return parameters, request_body

    def _form_content_type(self, op: Node, parameters: list[ParameterDef]) -> str | None:
        form = [p for p in parameters if p.location == "form"]
        if not form:
            return None
        binary = primitive_id("string", "binary")
        if any(self.schemas.graph.resolve(p.type) == binary for p in form):
            return "multipart/form-data"
        return self._consumes(op, default="application/x-www-form-urlencoded")

    def _parameter(self, path: str, method: str, name: str, location: str, param: Node, hint: str, taken: set[str]) -> ParameterDef:
        schema = self._parameter_schema(param)
        if schema is None:
            raise OperationModelError(f"parameter {name!r} has no schema or type", path, method, param.document, param.pointer)

        type_id = self.schemas.model(schema, f"{hint}{pascal_case(name)}")
        python_name = identifier(name)
        if python_name in taken:
            python_name = unique(f"{python_name}_{location}", taken)
        taken.add(python_name)

        default = schema.get_value("default") if schema.is_mapping() else None
        return ParameterDef(
            name=python_name,
            wire_name=name,
            location=location,
            type=type_id,
            required=location == "path" or param.get_value("required") is True,
            nullable=self.schemas.is_nullable(schema),
            default=default if isinstance(default, (str, int, float, bool)) else None,
            description=_text(param, "description"),
            separator=self._separator(location, param, schema, type_id),
        )

    def _separator(self, location: str, param: Node, schema: Node, type_id: str) -> str | None:
        """How array values of a parameter are serialised."""
        definition = self.schemas.graph.get(self.schemas.graph.resolve(type_id))
        if definition.kind != "collection" or definition.container != "list" or location == "body":
            return None
        if schema is param:
            # Swagger 2
            fmt = param.get_value("collectionFormat")
            if fmt == "multi" and location not in ("query", "form"):
                fmt = "csv"
            if not isinstance(fmt, str) or fmt not in COLLECTION_SEPARATORS:
                if fmt is not None:
                    self.context.warn(f"unknown collectionFormat {fmt!r}; using csv", param)
                fmt = "csv"
            return COLLECTION_SEPARATORS[fmt]
        style = param.get_value("style")
        if not isinstance(style, str) or style not in STYLE_SEPARATORS:
            style = "form" if location in ("query", "cookie", "form") else "simple"
        explode = param.get_value("explode")
        if explode is None:
            explode = style == "form"
        if location in ("query", "form") and explode is True:
            return None
        return STYLE_SEPARATORS[style]

    def _parameter_schema(self, param: Node) -> Node | None:
        schema = param.get("schema")
        if schema is not None:
            return schema
        content = param.get("content")
        if content is not None and content.is_mapping():
            for _, media in content.items():
                if media.has("schema"):
                    return media.child("schema")
        # Swagger 2: the parameter itself carries type/format/items/enum
        if param.has("type"):
            return param
        return None

    def _order_path_params(self, path: str, params: list[ParameterDef], op: Node, taken: set[str]) -> list[ParameterDef]:
        """Path parameters in the order their placeholders appear in the template."""
        by_wire = {p.wire_name: p for p in params}
        ordered = []
        for placeholder in dict.fromkeys(PATH_PARAM_RE.findall(path)):
            if placeholder in by_wire:
                ordered.append(by_wire.pop(placeholder))
                continue
            self.context.warn(f"path placeholder {{{placeholder}}} is not declared; assuming a string", op)
            python_name = unique(identifier(placeholder), taken)
            taken.add(python_name)
            string_id = self.schemas.graph.ensure(primitive_id("string"), PrimitiveType(primitive="string"))
            ordered.append(ParameterDef(name=python_name, wire_name=placeholder, location="path", type=string_id, required=True))
        for param in by_wire.values():
            self.context.warn(f"path parameter {param.wire_name!r} does not appear in the path template", op)
            ordered.append(param)
        return ordered

    # -- bodies ---------------------------------------------------------------

    def _consumes(self, op: Node, default: str) -> str:
        for source in (op, self.context.documents.get(op.document).node):
            consumes = source.get_value("consumes")
            if isinstance(consumes, list) and consumes:
                return _pick_media_type([c for c in consumes if isinstance(c, str)]) or default
        return default

    def _body_parameter(self, path: str, method: str, op: Node, param: Node, hint: str) -> RequestBodyDef:
        schema = param.get("schema")
        if schema is None:
            raise OperationModelError("body parameter has no schema", path, method, param.document, param.pointer)
        return RequestBodyDef(
            type=self.schemas.model(schema, f"{hint}Body"),
            content_type=self._consumes(op, default="application/json"),
            required=param.get_value("required") is True,
            description=_text(param, "description"),
        )

    def _request_body(self, path: str, method: str, body: Node, hint: str) -> RequestBodyDef:
        node = self._deref(path, method, body, "request_body")
        content = node.get("content")
        if content is None or not content.is_mapping() or not content.value:
            raise OperationModelError("request body declares no content", path, method, node.document, node.pointer)

        media_type = _pick_media_type(list(content.as_mapping()))
        media = content.child(media_type)
        schema = media.get("schema") if media.is_mapping() else None
        if schema is not None:
            type_id = self.schemas.model(schema, f"{hint}Body")
        else:
            type_id = self.schemas.graph.ensure(primitive_id("string", "binary"), PrimitiveType(primitive="string", format="binary"))
        return RequestBodyDef(
            type=type_id,
            content_type=media_type,
            required=node.get_value("required") is True,
            description=_text(node, "description"),
        )

    # -- responses ------------------------------------------------------------

    def _responses(self, path: str, method: str, op: Node, hint: str) -> list[ResponseDef]:
        responses = op.get("responses")
        if responses is None:
            self.context.warn("operation declares no responses", op)
            return []
        if not responses.is_mapping():
            raise OperationModelError(f"responses is {responses.shape}, not an object", path, method, responses.document, responses.pointer)

        result = []
        for status, item in responses.items():
            if status.startswith("x-"):
                continue
            status = status.upper() if status != "default" else status
            if status != "default" and not STATUS_RE.match(status):
                self.context.warn(f"response status {status!r} is not a status code; skipped", item)
                continue
            response = self._deref(path, method, item, "response")
            if not response.is_mapping():
                raise OperationModelError(f"response {status} is {response.shape}, not an object", path, method, response.document, response.pointer)

            schema = self._response_schema(response)
            type_id = None
            if schema is not None:
                suffix = "Error" if status == "default" else f"Response{status if not status.startswith('2') else ''}"
                type_id = self.schemas.model(schema, f"{hint}{suffix}")
            result.append(ResponseDef(status=status, type=type_id, description=_text(response, "description")))
        return result

    def _response_schema(self, response: Node) -> Node | None:
        if response.has("schema"):
            return response.child("schema")
        content = response.get("content")
        if content is None or not content.is_mapping() or not content.value:
            return None
        media_type = _pick_media_type(list(content.as_mapping()))
        media = content.child(media_type)
        return media.get("schema") if media.is_mapping() else None


def _pick_media_type(media_types: list[str]) -> str | None:
    """Prefer application/json, then any JSON flavour, then the first listed."""
    if not media_types:
        return None
    for media_type in media_types:
        if media_type.split(";")[0].strip() == "application/json":
            return media_type
    for media_type in media_types:
        if "json" in media_type:
            return media_type
    return media_types[0]
