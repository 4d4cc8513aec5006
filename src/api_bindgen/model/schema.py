"""Schema modeler: builds the type graph from schema nodes.

Classification follows a fixed priority: enum, allOf, oneOf/anyOf, object
with properties, array, map, primitive, and finally Unknown. Shapes outside
that vocabulary never fail the run; they become ``UnknownType`` with a
warning.

Identity is the node a schema came from (document + pointer): the same node
always maps to the same type id, two different nodes never share one, even
if their shapes are identical.
"""

from api_bindgen.context import RunContext
from api_bindgen.errors import GenerationError
from api_bindgen.model.types import (
    CollectionType,
    EnumType,
    EnumVariant,
    FieldDef,
    PrimitiveType,
    StructType,
    TypeDef,
    TypeGraph,
    UnionMapping,
    UnionType,
    UnknownType,
    collection_id,
    primitive_id,
)
from api_bindgen.naming import class_name, constant_name, pascal_case, unique
from api_bindgen.parser.base import Node
from api_bindgen.parser.resolver import Deferred, RefKey

PRIMITIVES = {"boolean", "integer", "number", "string", "file"}

# kinds that always get a public name, even when declared inline
NOMINAL_KINDS = {"enum", "all_of", "union", "struct"}

ANY_ID = "any"


def _description(node: Node) -> str:
    for key in ("description", "title"):
        value = node.get_value(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _schema_type(node: Node) -> object:
    """The declared ``type``; a ``[T, "null"]`` list collapses to ``T``."""
    value = node.get_value("type")
    if isinstance(value, list):
        non_null = [t for t in value if t != "null"]
        if len(non_null) == 1:
            return non_null[0]
        return "null" if not non_null else tuple(non_null)
    return value


class SchemaModeler:
    """Builds and owns the type graph of one run."""

    def __init__(self, context: RunContext, graph: TypeGraph | None = None):
        self.context = context
        self.resolver = context.resolver
        self.graph = graph if graph is not None else TypeGraph()
        self._ids: dict[RefKey, str] = {}
        self._names: set[str] = set()
        # reserved public id -> (node identity, classified kind)
        self._reserved: dict[str, tuple[RefKey, str]] = {}

    # -- entry points ---------------------------------------------------------

    def model_definitions(self) -> list[str]:
        """Model every named schema of the input documents, in document order."""
        ids = []
        for document in self.context.documents.inputs:
            root = document.node
            containers = [root.get("definitions")]
            components = root.get("components")
            if components is not None and components.is_mapping():
                containers.append(components.get("schemas"))
            for container in containers:
                if container is None:
                    continue
                if not container.is_mapping():
                    self.context.warn("schema definitions are not an object; skipped", container)
                    continue
                for name, node in container.items():
                    ids.append(self.model_named(node, name))
        return ids

    def model_named(self, node: Node, name: str) -> str:
        return self._model_node(node, name, named=True)

    def model(self, node: Node, hint: str) -> str:
        """Model a schema found at a use site; ``hint`` names inline types."""
        if node.has("$ref"):
            return self.model_ref(node)
        return self._model_node(node, hint, named=False)

    def model_ref(self, node: Node) -> str:
        target = self.resolver.resolve_schema(node.get_value("$ref"), node.document, node.pointer)
        if target.key in self._ids:
            return self._ids[target.key]
        if isinstance(target, Deferred):
            # in progress but not reserved: a structural type reaching itself
            return self._reserve(target.key, target.key.name, "unknown", node)
        return self._model_node(target.node, target.key.name, named=True)

    def kind_of(self, type_id: str) -> str:
        """Kind of a type, also for types still being modeled."""
        definition = self.graph.find(type_id)
        if definition is not None:
            return definition.kind
        if type_id in self._reserved:
            kind = self._reserved[type_id][1]
            return "struct" if kind == "all_of" else kind
        return "unknown"

    def is_nullable(self, node: Node) -> bool:
        """Whether a use site may carry an explicit null."""
        if self._nullable_here(node):
            return True
        if node.has("$ref"):
            try:
                target = self.resolver.locate(node.get_value("$ref"), node.document, node.pointer)
            except GenerationError:
                return False
            return self._nullable_here(target)
        return False

    # -- registration ---------------------------------------------------------

    def _reserve(self, key: RefKey, name: str, kind: str, node: Node) -> str:
        wanted = class_name(name) if name else "Model"
        public = unique(wanted, self._names)
        if public != wanted:
            self.context.info(f"type name {wanted} is already taken; using {public}", node)
        self._names.add(public)
        self._ids[key] = public
        self._reserved[public] = (key, kind)
        return public

    def _model_node(self, node: Node, name: str, named: bool) -> str:
        key = RefKey.of(node)
        if key in self._ids:
            return self._ids[key]

        kind, reason = self._classify(node)
        if kind == "enum" and not named:
            x_ms_enum = node.get_value("x-ms-enum")
            if isinstance(x_ms_enum, dict) and isinstance(x_ms_enum.get("name"), str) and x_ms_enum["name"]:
                name = x_ms_enum["name"]
        type_id = None
        if named or kind in NOMINAL_KINDS:
            type_id = self._reserve(key, name, kind, node)

        with self.resolver.resolving(key):
            result = self._build(kind, reason, node, type_id or class_name(name))
        return self._register(key, node, type_id, result)

    def _register(self, key: RefKey, node: Node, type_id: str | None, result: TypeDef | str) -> str:
        if type_id is None and key in self._ids:
            # reserved while building, through a reference back to this node
            type_id = self._ids[key]

        if isinstance(result, str):
            if type_id is None:
                self._ids[key] = result
                return result
            try:
                self.graph.alias(type_id, result)
            except ValueError:
                self.context.warn(f"schema {type_id} only refers to itself; using an untyped value", node)
                self.graph.add(type_id, UnknownType(name=type_id, raw=node.value, reason="circular alias", source=key))
            return type_id

        if type_id is not None:
            self.graph.add(type_id, result.model_copy(update={"name": type_id}))
            return type_id

        if result.kind == "primitive":
            structural = primitive_id(result.primitive, result.format)
        elif result.kind == "collection":
            structural = collection_id(result.container, result.item)
        else:
            structural = f"unknown:{key}"
        if result.kind != "unknown":
            result = result.model_copy(update={"description": "", "source": None})
        self.graph.ensure(structural, result)
        self._ids[key] = structural
        return structural

    # -- classification -------------------------------------------------------

    def _classify(self, node: Node) -> tuple[str, str]:
        if not node.is_mapping():
            return "unknown", f"schema is {node.shape}, not an object"
        if node.has("$ref"):
            return "ref", ""
        if node.has("enum") or node.has("const"):
            return "enum", ""
        if node.has("allOf"):
            return "all_of", ""
        if node.has("oneOf") or node.has("anyOf"):
            return "union", ""

        schema_type = _schema_type(node)
        properties = node.get("properties")
        if properties is not None and schema_type in (None, "object"):
            if not properties.is_mapping():
                return "unknown", f"properties is {properties.shape}, not an object"
            return "struct", ""
        if schema_type == "array" or (schema_type is None and node.has("items")):
            return "array", ""
        if schema_type in (None, "object"):
            additional = node.get("additionalProperties")
            if additional is not None and additional.is_mapping() and additional.value:
                return "map", ""
            if schema_type == "object":
                return "unknown", "free-form object"
            return "unknown", "schema has no recognised type"
        if isinstance(schema_type, str) and schema_type in PRIMITIVES:
            return "primitive", ""
        return "unknown", f"unsupported type {schema_type!r}"

    def _build(self, kind: str, reason: str, node: Node, name: str) -> TypeDef | str:
        if kind == "ref":
            return self.model_ref(node)
        if kind == "enum":
            return self._build_enum(node)
        if kind == "all_of":
            return self._build_all_of(node, name)
        if kind == "union":
            return self._build_union(node, name)
        if kind == "struct":
            return self._build_struct(node, name)
        if kind == "array":
            return self._build_array(node, name)
        if kind == "map":
            value = self.model(node.child("additionalProperties"), f"{name}Value")
            return CollectionType(container="map", item=value, description=_description(node), source=RefKey.of(node))
        if kind == "primitive":
            return self._build_primitive(node)
        if kind == "unknown":
            return self._unknown(node, reason)
        raise ValueError(f"unknown schema kind {kind!r}")

    def _unknown(self, node: Node, reason: str) -> UnknownType:
        self.context.warn(f"cannot model schema ({reason}); using an untyped value", node)
        return UnknownType(raw=node.value, reason=reason, description=_description(node), source=RefKey.of(node))

    def _any(self, node: Node, reason: str) -> str:
        self.context.warn(f"{reason}; using an untyped value", node)
        return self.graph.ensure(ANY_ID, UnknownType(reason="unconstrained"))

    # -- builders -------------------------------------------------------------

    def _build_enum(self, node: Node) -> TypeDef:
        if node.has("enum"):
            values = node.get_value("enum")
            if not isinstance(values, list):
                return self._unknown(node, "enum is not an array")
        else:
            values = [node.get_value("const")]

        explicit: dict[int, str] = {}
        varnames = node.get_value("x-enum-varnames")
        if isinstance(varnames, list):
            explicit = {i: n for i, n in enumerate(varnames) if isinstance(n, str)}
        x_ms_enum = node.get_value("x-ms-enum")
        if isinstance(x_ms_enum, dict) and isinstance(x_ms_enum.get("values"), list):
            by_value = {}
            for item in x_ms_enum["values"]:
                if not isinstance(item, dict) or not isinstance(item.get("name"), str):
                    continue
                if not _hashable(item.get("value")):
                    self.context.warn(f"x-ms-enum value {item.get('value')!r} is not a scalar; its name is ignored", node)
                    continue
                by_value[item["value"]] = item["name"]
            explicit = {i: by_value[v] for i, v in enumerate(values) if _hashable(v) and v in by_value}

        variants: list[EnumVariant] = []
        taken: set[str] = set()
        seen: list[object] = []
        for index, value in enumerate(values):
            if value is None:
                continue
            if not isinstance(value, (str, int, float, bool)):
                self.context.warn(f"enum member {value!r} is not a scalar; skipped", node)
                continue
            if any(value == s and type(value) is type(s) for s in seen):
                self.context.info(f"duplicate enum member {value!r} dropped", node)
                continue
            seen.append(value)
            member = unique(constant_name(explicit.get(index, value)), taken)
            taken.add(member)
            variants.append(EnumVariant(name=member, value=value))

        if not variants:
            return self._unknown(node, "enum has no usable members")
        return EnumType(variants=tuple(variants), description=_description(node), source=RefKey.of(node))

    def _build_all_of(self, node: Node, name: str) -> TypeDef | str:
        members = node.get("allOf")
        if not members.is_list():
            return self._unknown(node, f"allOf is {members.shape}, not an array")
        if len(members.value) == 1 and not node.has("properties"):
            only = members.child(0)
            if only.has("$ref"):
                return self.model_ref(only)

        bases: list[str] = []
        fields = self._collect_all(node, name, bases)
        return StructType(
            fields=tuple(fields),
            bases=tuple(bases),
            description=_description(node),
            source=RefKey.of(node),
        )

    def _build_struct(self, node: Node, name: str) -> TypeDef:
        fields = self._collect_all(node, name, [])
        return StructType(fields=tuple(fields), description=_description(node), source=RefKey.of(node))

    def _collect_all(self, node: Node, name: str, bases: list[str]) -> list[FieldDef]:
        """Fields of an object schema, merging allOf members in order.

        Later members override earlier fields of the same name, and the
        schema's own properties override all members. A field keeps the
        position where it first appeared. A name listed as required by any
        member is required on the merged object.
        """
        required: set[str] = set()
        fields = self._collect(node, name, bases, required)
        for field_name in required:
            if field_name in fields:
                fields[field_name] = fields[field_name].model_copy(update={"required": True})
        return list(fields.values())

    def _collect(self, node: Node, name: str, bases: list[str], required: set[str]) -> dict[str, FieldDef]:
        if node.has("$ref"):
            member = self.model_ref(node)
            definition = self.graph.find(member)
            bases.append(member)
            if definition is None:
                self.context.warn(f"allOf member {member} is recursive; its fields are not merged", node)
                return {}
            if definition.kind != "struct":
                self.context.warn(f"allOf member {member} is a {definition.kind}, not an object; skipped", node)
                bases.pop()
                return {}
            return {f.name: f for f in definition.fields}

        if not node.is_mapping():
            self.context.warn(f"allOf member is {node.shape}, not an object; skipped", node)
            return {}

        fields: dict[str, FieldDef] = {}
        members = node.get("allOf")
        if members is not None:
            if members.is_list():
                for member in members.elements():
                    _merge(fields, self._collect(member, name, bases, required))
            else:
                self.context.warn(f"allOf is {members.shape}, not an array; ignored", members)

        properties = node.get("properties")
        if properties is not None:
            if properties.is_mapping():
                own = {}
                for prop_name, prop in properties.items():
                    own[prop_name] = self._field(name, prop_name, prop)
                _merge(fields, own)
            else:
                self.context.warn(f"properties is {properties.shape}, not an object; ignored", properties)
        elif members is None and _schema_type(node) not in (None, "object"):
            self.context.warn("allOf member is not an object schema; skipped", node)

        required.update(self._required(node))
        return fields

    def _field(self, struct_name: str, prop_name: str, prop: Node) -> FieldDef:
        type_id = self.model(prop, f"{struct_name}{pascal_case(prop_name)}")
        return FieldDef(
            name=prop_name,
            type=type_id,
            nullable=self.is_nullable(prop),
            read_only=prop.get_value("readOnly") is True,
            description=_description(prop) if prop.is_mapping() else "",
        )

    def _required(self, node: Node) -> list[str]:
        required = node.get("required")
        if required is None:
            return []
        if not required.is_list() or not all(isinstance(r, str) for r in required.value):
            self.context.warn("required is not a list of property names; ignored", required)
            return []
        return list(required.value)

    def _build_union(self, node: Node, name: str) -> TypeDef:
        keyword = "oneOf" if node.has("oneOf") else "anyOf"
        members = node.get(keyword)
        if not members.is_list() or not members.value:
            return self._unknown(node, f"{keyword} is not a non-empty array")

        variants: list[str] = []
        nullable = node.get_value("nullable") is True
        for index, member in enumerate(members.elements()):
            if member.is_mapping() and member.get_value("type") == "null":
                nullable = True
                continue
            variant = self.model(member, f"{name}Variant{index + 1}")
            if variant in variants:
                self.context.info(f"duplicate {keyword} variant {variant} dropped", member)
                continue
            variants.append(variant)

        if not variants:
            return self._unknown(node, f"{keyword} has no non-null variants")

        discriminator, mapping = self._discriminator(node, variants)
        return UnionType(
            variants=tuple(variants),
            discriminator=discriminator,
            mapping=tuple(mapping),
            nullable=nullable,
            description=_description(node),
            source=RefKey.of(node),
        )

    def _discriminator(self, node: Node, variants: list[str]) -> tuple[str | None, list[UnionMapping]]:
        """Map discriminator literals to variants; falls back to untagged."""
        spec = node.get("discriminator")
        if spec is None:
            return None, []
        explicit = None
        if isinstance(spec.value, str):
            prop = spec.value
        else:
            prop = spec.get_value("propertyName")
            explicit = spec.get("mapping")
        if not isinstance(prop, str) or not prop:
            self.context.warn("discriminator has no property name; union left untagged", spec)
            return None, []

        literals: dict[str, str] = {}
        if explicit is not None and explicit.is_mapping():
            for value, target in explicit.items():
                if not isinstance(target.value, str):
                    self.context.warn(f"discriminator mapping for {value!r} is not a reference; ignored", target)
                    continue
                ref = target.value
                if "#" not in ref and "/" not in ref and "." not in ref:
                    ref = f"#/components/schemas/{ref}"
                variant = self.model_ref(Node(value={"$ref": ref}, document=target.document, pointer=target.pointer))
                if variant not in variants:
                    self.context.info(f"discriminator value {value!r} maps to {variant}, which is not a listed variant; added", target)
                    variants.append(variant)
                literals[value] = variant

        mapped = set(literals.values())
        for variant in variants:
            if variant in mapped:
                continue
            value = self._discriminator_value(variant, prop)
            if value in literals:
                self.context.warn(f"discriminator value {value!r} is used by {literals[value]} and {variant}; union left untagged", node)
                return None, []
            literals[value] = variant

        for variant in variants:
            kind = self.kind_of(variant)
            if kind != "struct":
                self.context.warn(f"variant {variant} is a {kind}, not an object; union left untagged", node)
                return None, []

        return prop, [UnionMapping(value=value, type=variant) for value, variant in literals.items()]

    def _discriminator_value(self, variant: str, prop: str) -> str:
        """Literal a variant declares for ``prop``, else its schema name."""
        resolved = self.graph.resolve(variant)
        definition = self.graph.find(resolved)
        key = definition.source if definition is not None else None
        if key is None and resolved in self._reserved:
            key = self._reserved[resolved][0]
        if key is None:
            return variant
        node = self.resolver.locate(f"#{key.pointer}", key.document)
        literal = self._declared_literal(node, prop, depth=0)
        if literal is not None:
            return literal
        # inline variants sit at an array index and have no schema name
        name = self._reserved[variant][0].name if variant in self._reserved else key.name
        return variant if name.isdigit() else name

    def _declared_literal(self, node: Node, prop: str, depth: int) -> str | None:
        if depth > 8 or not node.is_mapping():
            return None
        if node.has("$ref"):
            try:
                node = self.resolver.locate(node.get_value("$ref"), node.document, node.pointer)
            except GenerationError:
                return None
            return self._declared_literal(node, prop, depth + 1)
        properties = node.get("properties")
        if properties is not None and properties.is_mapping():
            schema = properties.get(prop)
            if schema is not None and schema.is_mapping():
                enum = schema.get_value("enum")
                if isinstance(enum, list) and len(enum) == 1 and isinstance(enum[0], str):
                    return enum[0]
                if isinstance(schema.get_value("const"), str):
                    return schema.get_value("const")
        members = node.get("allOf")
        if members is not None and members.is_list():
            for member in members.elements():
                literal = self._declared_literal(member, prop, depth + 1)
                if literal is not None:
                    return literal
        return None

    def _build_array(self, node: Node, name: str) -> TypeDef:
        items = node.get("items")
        if items is None:
            item = self._any(node, "array has no items")
        elif not items.is_mapping():
            item = self._any(items, f"array items is {items.shape}, not a schema")
        else:
            item = self.model(items, f"{name}Item")
        return CollectionType(container="list", item=item, description=_description(node), source=RefKey.of(node))

    def _build_primitive(self, node: Node) -> TypeDef:
        schema_type = _schema_type(node)
        fmt = node.get_value("format")
        fmt = fmt if isinstance(fmt, str) and fmt else None
        if schema_type == "file":
            schema_type, fmt = "string", "binary"
        return PrimitiveType(primitive=schema_type, format=fmt, description=_description(node), source=RefKey.of(node))

    # -- nullability ----------------------------------------------------------

    def _nullable_here(self, node: Node) -> bool:
        if not node.is_mapping():
            return False
        if node.get_value("nullable") is True or node.get_value("x-nullable") is True:
            return True
        schema_type = node.get_value("type")
        if isinstance(schema_type, list) and "null" in schema_type:
            return True
        enum = node.get_value("enum")
        if isinstance(enum, list) and None in enum:
            return True
        for keyword in ("oneOf", "anyOf"):
            members = node.get_value(keyword)
            if isinstance(members, list) and any(isinstance(m, dict) and m.get("type") == "null" for m in members):
                return True
        return False


def _merge(target: dict[str, FieldDef], fields: dict[str, FieldDef]) -> None:
    for name, field in fields.items():
        if name in target:
            field = field.model_copy(update={"required": field.required or target[name].required})
        target[name] = field


def _hashable(value: object) -> bool:
    return isinstance(value, (str, int, float, bool)) or value is None
