from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from api_bindgen.errors import IoError, ParseError, UnresolvedReferenceError
from api_bindgen.parser.loader import collect_refs, load_document, load_documents, parse_text

FIXTURES = Path(__file__).parent / "fixtures"


class TestParseText:
    def test_yaml(self):
        data = parse_text("openapi: 3.0.0\ninfo:\n  title: T\n", "api.yaml")
        assert data["info"]["title"] == "T"

    def test_json(self):
        data = parse_text('{"swagger": "2.0"}', "api.json")
        assert data == {"swagger": "2.0"}

    def test_yaml_keys_become_strings(self):
        data = parse_text("responses:\n  200:\n    description: OK\n  true: x\n", "api.yaml")
        assert set(data["responses"]) == {"200"}
        assert data["true"] == "x"

    def test_yaml_dates_become_strings(self):
        data = parse_text("info:\n  version: 2021-01-01\n", "api.yaml")
        assert data["info"]["version"] == "2021-01-01"

    def test_invalid_json(self):
        with pytest.raises(ParseError) as exc_info:
            parse_text("{not json", "api.json")
        assert exc_info.value.document == "api.json"

    def test_invalid_yaml(self):
        with pytest.raises(ParseError):
            parse_text("key: [unclosed\n", "api.yaml")

    def test_root_must_be_object(self):
        with pytest.raises(ParseError):
            parse_text("- a\n- b\n", "api.yaml")


class TestCollectRefs:
    def test_skips_examples(self):
        tree = {
            "a": {"$ref": "#/x"},
            "x-ms-examples": {"e": {"$ref": "./examples/e.json"}},
            "list": [{"$ref": "other.json#/y"}],
        }
        assert list(collect_refs(tree)) == [("#/x", "/a"), ("other.json#/y", "/list/0")]

    def test_properties_named_like_example_keywords(self):
        tree = {
            "definitions": {
                "examples": {"$ref": "common.yaml#/definitions/List"},
                "Doc": {
                    "properties": {
                        "example": {"$ref": "common.yaml#/definitions/Sample"},
                        "examples": {"type": "array", "items": {"$ref": "#/definitions/Doc"}},
                    },
                    "example": {"$ref": "./payloads/doc.json"},
                },
            },
        }
        assert list(collect_refs(tree)) == [
            ("common.yaml#/definitions/List", "/definitions/examples"),
            ("common.yaml#/definitions/Sample", "/definitions/Doc/properties/example"),
            ("#/definitions/Doc", "/definitions/Doc/properties/examples/items"),
        ]

    def test_skips_media_and_component_examples(self):
        tree = {
            "components": {"examples": {"Pet": {"$ref": "./pet.json"}}},
            "paths": {"/pets": {"get": {"responses": {"200": {"content": {"application/json": {
                "schema": {"$ref": "#/components/schemas/Pet"},
                "examples": {"one": {"$ref": "./one.json"}},
            }}}}}}},
        }
        assert [ref for ref, _ in collect_refs(tree)] == ["#/components/schemas/Pet"]


class TestLoadDocuments:
    def test_loads_referenced_documents(self):
        docs = load_documents([FIXTURES / "swagger2" / "storage.json"])
        assert len(docs) == 2
        assert [d.is_input for d in docs] == [True, False]
        assert docs.root.title == "Storage Management"
        assert docs.root.version == "2021-01-01"

    def test_example_references_are_not_loaded(self):
        docs = load_documents([FIXTURES / "swagger2" / "storage.json"])
        assert not any("examples" in d.id for d in docs)

    def test_missing_input(self, tmp_path):
        with pytest.raises(IoError):
            load_documents([tmp_path / "nope.yaml"])

    def test_no_inputs(self):
        with pytest.raises(IoError):
            load_documents([])

    def test_missing_referenced_document(self, tmp_path):
        spec = tmp_path / "api.yaml"
        spec.write_text("components:\n  schemas:\n    A:\n      $ref: './gone.yaml#/B'\n")
        with pytest.raises(UnresolvedReferenceError) as exc_info:
            load_documents([spec])
        assert exc_info.value.reference == "./gone.yaml#/B"
        assert exc_info.value.document == spec.resolve().as_posix()

    def test_loads_document_referenced_from_examples_property(self, tmp_path):
        (tmp_path / "common.yaml").write_text("definitions:\n  Sample:\n    type: string\n")
        (tmp_path / "api.yaml").write_text(
            "definitions:\n"
            "  Doc:\n"
            "    properties:\n"
            "      examples:\n"
            "        $ref: 'common.yaml#/definitions/Sample'\n"
        )
        docs = load_documents([tmp_path / "api.yaml"])
        assert (tmp_path / "common.yaml").resolve().as_posix() in docs

    def test_input_also_referenced_stays_input(self, tmp_path):
        (tmp_path / "b.yaml").write_text("definitions:\n  B:\n    type: string\n")
        (tmp_path / "a.yaml").write_text("definitions:\n  A:\n    $ref: 'b.yaml#/definitions/B'\n")
        docs = load_documents([tmp_path / "a.yaml", tmp_path / "b.yaml"])
        assert len(docs) == 2
        assert all(d.is_input for d in docs)

    @patch("api_bindgen.parser.loader.requests.get")
    def test_remote_document(self, mock_get):
        response = MagicMock()
        response.text = '{"swagger": "2.0", "info": {"title": "Remote", "version": "1"}}'
        mock_get.return_value = response

        doc = load_document("https://example.com/api.json", is_input=True)

        mock_get.assert_called_once_with("https://example.com/api.json", timeout=30)
        assert doc.title == "Remote"

    @patch("api_bindgen.parser.loader.requests.get")
    def test_remote_failure(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(IoError) as exc_info:
            load_document("https://example.com/api.json")
        assert "refused" in str(exc_info.value)
