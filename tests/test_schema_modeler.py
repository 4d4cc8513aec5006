import textwrap
from pathlib import Path

import pytest

from api_bindgen.context import RunContext
from api_bindgen.errors import UnresolvedReferenceError
from api_bindgen.model.schema import SchemaModeler
from api_bindgen.parser.loader import load_documents

FIXTURES = Path(__file__).parent / "fixtures"


def _modeler(source: Path) -> SchemaModeler:
    modeler = SchemaModeler(RunContext(load_documents([source])))
    modeler.model_definitions()
    return modeler


def _model_yaml(tmp_path, text: str) -> SchemaModeler:
    spec = tmp_path / "api.yaml"
    spec.write_text(textwrap.dedent(text))
    return _modeler(spec)


class TestPrimitivesAndStructs:
    def test_struct_fields(self):
        graph = _modeler(FIXTURES / "petstore.yaml").graph
        error = graph.get("Error")
        assert error.kind == "struct"
        assert [f.name for f in error.fields] == ["code", "message"]
        assert error.field("code").type == "integer:int32"
        assert error.field("code").required is True
        assert error.field("message").type == "string"

    def test_nullable_field(self):
        graph = _modeler(FIXTURES / "petstore.yaml").graph
        tag = graph.get("PetBase").field("tag")
        assert tag.nullable is True
        assert tag.required is False

    def test_named_primitive(self, tmp_path):
        modeler = _model_yaml(tmp_path, """
            definitions:
              Timestamp:
                type: string
                format: date-time
        """)
        definition = modeler.graph.get("Timestamp")
        assert definition.kind == "primitive"
        assert definition.format == "date-time"
        assert definition.name == "Timestamp"

    def test_structural_primitives_are_shared(self, tmp_path):
        modeler = _model_yaml(tmp_path, """
            definitions:
              A:
                type: object
                properties:
                  x: {type: string}
              B:
                type: object
                properties:
                  y: {type: string}
        """)
        graph = modeler.graph
        assert graph.get("A").field("x").type == graph.get("B").field("y").type == "string"

    def test_map_and_array(self):
        graph = _modeler(FIXTURES / "swagger2" / "storage.json").graph
        account = graph.get("StorageAccount")
        assert account.field("tags").type == "map[string]"
        assert graph.get("StorageAccountListResult").field("value").type == "list[StorageAccount]"

    def test_read_only_and_special_names(self):
        graph = _modeler(FIXTURES / "swagger2" / "storage.json").graph
        account = graph.get("StorageAccount")
        assert account.field("id").read_only is True
        assert account.field("class") is not None
        assert graph.get("StorageAccountListResult").field("odata.nextLink").type == "string"

    def test_array_without_items(self, tmp_path):
        modeler = _model_yaml(tmp_path, """
            definitions:
              Bag:
                type: object
                properties:
                  items:
                    type: array
        """)
        assert modeler.graph.get("Bag").field("items").type == "list[any]"
        assert any("array has no items" in d.message for d in modeler.context.warnings)


class TestIdentity:
    def test_same_reference_same_id(self):
        graph = _modeler(FIXTURES / "petstore.yaml").graph
        cat = graph.get("Cat")
        dog = graph.get("Dog")
        assert cat.bases == dog.bases == ("PetBase",)

    def test_identical_inline_shapes_get_distinct_ids(self, tmp_path):
        modeler = _model_yaml(tmp_path, """
            definitions:
              A:
                type: object
                properties:
                  meta:
                    type: object
                    properties:
                      x: {type: string}
              B:
                type: object
                properties:
                  meta:
                    type: object
                    properties:
                      x: {type: string}
        """)
        graph = modeler.graph
        assert graph.get("A").field("meta").type == "AMeta"
        assert graph.get("B").field("meta").type == "BMeta"

    def test_name_clash_gets_suffix(self, tmp_path):
        modeler = _model_yaml(tmp_path, """
            definitions:
              pet:
                type: object
                properties:
                  a: {type: string}
              Pet:
                type: object
                properties:
                  b: {type: string}
        """)
        assert modeler.graph.get("Pet").field("a") is not None
        assert modeler.graph.get("Pet2").field("b") is not None
        assert any(d.level == "info" and "Pet2" in d.message for d in modeler.context.diagnostics)

    def test_x_ms_enum_name(self):
        graph = _modeler(FIXTURES / "swagger2" / "storage.json").graph
        kind = graph.get("StorageAccount").field("kind")
        assert kind.type == "Kind"
        assert kind.required is True
        assert [v.value for v in graph.get("Kind").variants] == ["Storage", "StorageV2", "BlobStorage"]


class TestEnums:
    def test_inline_enum_is_named(self):
        graph = _modeler(FIXTURES / "petstore.yaml").graph
        skill = graph.get("Cat").field("huntingSkill")
        assert skill.type == "CatHuntingSkill"
        assert [v.name for v in graph.get("CatHuntingSkill").variants] == ["CLUELESS", "LAZY", "ADVENTUROUS", "AGGRESSIVE"]

    def test_varnames_duplicates_and_null(self, tmp_path):
        modeler = _model_yaml(tmp_path, """
            definitions:
              Level:
                type: integer
                enum: [1, 2, 2, null]
                x-enum-varnames: [Low, High, Again, Nothing]
        """)
        level = modeler.graph.get("Level")
        assert [(v.name, v.value) for v in level.variants] == [("LOW", 1), ("HIGH", 2)]

    def test_x_ms_enum_value_that_is_not_a_scalar(self, tmp_path):
        modeler = _model_yaml(tmp_path, """
            definitions:
              Tier:
                type: string
                enum: [basic, premium]
                x-ms-enum:
                  name: Tier
                  values:
                    - {value: [basic], name: Odd}
                    - {value: premium, name: Gold}
        """)
        tier = modeler.graph.get("Tier")
        assert [(v.name, v.value) for v in tier.variants] == [("BASIC", "basic"), ("GOLD", "premium")]
        assert ["not a scalar" in d.message for d in modeler.context.warnings] == [True]


class TestAllOf:
    def test_merges_base_fields(self):
        graph = _modeler(FIXTURES / "petstore.yaml").graph
        cat = graph.get("Cat")
        assert [f.name for f in cat.fields] == ["id", "name", "petType", "tag", "huntingSkill"]
        assert cat.field("id").required is True
        assert cat.field("petType").type == "CatPetType"

    def test_later_member_wins(self, tmp_path):
        modeler = _model_yaml(tmp_path, """
            definitions:
              Base:
                type: object
                properties:
                  v: {type: string}
                  a: {type: string}
              Child:
                allOf:
                  - $ref: '#/definitions/Base'
                  - type: object
                    properties:
                      v: {type: integer}
                    required: [a]
        """)
        child = modeler.graph.get("Child")
        assert [f.name for f in child.fields] == ["v", "a"]
        assert child.field("v").type == "integer"
        assert child.field("a").required is True
        # the base itself is untouched
        assert modeler.graph.get("Base").field("v").type == "string"

    def test_single_reference_is_an_alias(self, tmp_path):
        modeler = _model_yaml(tmp_path, """
            definitions:
              Base:
                type: object
                properties:
                  v: {type: string}
              Same:
                allOf:
                  - $ref: '#/definitions/Base'
        """)
        graph = modeler.graph
        assert graph.is_alias("Same")
        assert graph.resolve("Same") == "Base"


class TestUnions:
    def test_discriminated_union(self):
        graph = _modeler(FIXTURES / "petstore.yaml").graph
        pet = graph.get("Pet")
        assert pet.kind == "union"
        assert pet.discriminator == "petType"
        assert pet.variants == ("Cat", "Dog")
        assert {m.value: m.type for m in pet.mapping} == {"cat": "Cat", "dog": "Dog"}

    def test_explicit_mapping(self, tmp_path):
        modeler = _model_yaml(tmp_path, """
            components:
              schemas:
                Shape:
                  oneOf:
                    - $ref: '#/components/schemas/Circle'
                    - $ref: '#/components/schemas/Square'
                  discriminator:
                    propertyName: kind
                    mapping:
                      round: '#/components/schemas/Circle'
                      box: Square
                Circle:
                  type: object
                  properties:
                    kind: {type: string}
                    radius: {type: number}
                Square:
                  type: object
                  properties:
                    kind: {type: string}
                    side: {type: number}
        """)
        shape = modeler.graph.get("Shape")
        assert [(m.value, m.type) for m in shape.mapping] == [("round", "Circle"), ("box", "Square")]

    def test_duplicate_literal_leaves_union_untagged(self, tmp_path):
        modeler = _model_yaml(tmp_path, """
            definitions:
              A:
                type: object
                properties:
                  kind: {type: string, enum: [x]}
              B:
                type: object
                properties:
                  kind: {type: string, enum: [x]}
              U:
                oneOf:
                  - $ref: '#/definitions/A'
                  - $ref: '#/definitions/B'
                discriminator: kind
        """)
        union = modeler.graph.get("U")
        assert union.tagged is False
        assert any("used by A and B" in d.message for d in modeler.context.warnings)

    def test_null_member_makes_union_nullable(self, tmp_path):
        modeler = _model_yaml(tmp_path, """
            components:
              schemas:
                MaybeNumber:
                  oneOf:
                    - type: integer
                    - type: string
                    - type: 'null'
        """)
        union = modeler.graph.get("MaybeNumber")
        assert union.nullable is True
        assert union.variants == ("integer", "string")


class TestDegradation:
    def test_invalid_properties_become_unknown(self, tmp_path):
        modeler = _model_yaml(tmp_path, """
            definitions:
              Bad:
                type: object
                properties: [a, b]
              Good:
                type: object
                properties:
                  bad:
                    $ref: '#/definitions/Bad'
        """)
        graph = modeler.graph
        assert graph.get("Bad").kind == "unknown"
        assert graph.get("Good").field("bad").type == "Bad"
        warnings = modeler.context.warnings
        assert len(warnings) == 1
        assert "properties is array" in warnings[0].message
        assert warnings[0].pointer == "/definitions/Bad"

    def test_free_form_object(self, tmp_path):
        modeler = _model_yaml(tmp_path, """
            definitions:
              Anything:
                type: object
        """)
        assert modeler.graph.get("Anything").kind == "unknown"

    def test_unresolved_reference_fails(self):
        spec = FIXTURES / "unresolved.yaml"
        modeler = SchemaModeler(RunContext(load_documents([spec])))
        modeler.model_definitions()
        doc = modeler.context.documents.root
        node = doc.node.child("paths").child("/things").child("get").child("responses").child("200")
        schema = node.child("content").child("application/json").child("schema")
        with pytest.raises(UnresolvedReferenceError) as exc_info:
            modeler.model(schema, "ListThings")
        assert exc_info.value.reference == "#/components/schemas/Missing"
        assert exc_info.value.document == doc.id


class TestCycles:
    def test_mutual_recursion_terminates(self):
        graph = _modeler(FIXTURES / "cycles.yaml").graph
        assert graph.get("Department").field("manager").type == "Employee"
        employee = graph.get("Employee")
        assert employee.field("department").type == "Department"
        assert employee.field("reports").type == "list[Employee]"

    def test_self_reference(self):
        graph = _modeler(FIXTURES / "petstore.yaml").graph
        node = graph.get("TreeNode")
        assert node.field("parent").type == "TreeNode"
        assert node.field("children").type == "list[TreeNode]"

    def test_alias_cycle_degrades_to_unknown(self):
        modeler = _modeler(FIXTURES / "cycles.yaml")
        graph = modeler.graph
        assert graph.get("Left").kind == "unknown"
        assert graph.resolve("Right") == "Left"
        assert any("only refers to itself" in d.message for d in modeler.context.warnings)
