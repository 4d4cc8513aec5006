import pytest

from api_bindgen.errors import UnsupportedReferenceError
from api_bindgen.parser.reference import Reference, canonical_id, is_remote, join


class TestReferenceParse:
    def test_local_pointer(self):
        ref = Reference.parse("#/definitions/Pet")
        assert ref.file is None
        assert ref.path == ("definitions", "Pet")
        assert ref.name == "Pet"
        assert ref.pointer == "/definitions/Pet"

    def test_file_and_pointer(self):
        ref = Reference.parse("../common/types.json#/definitions/ErrorResponse")
        assert ref.file == "../common/types.json"
        assert ref.name == "ErrorResponse"

    def test_whole_document(self):
        ref = Reference.parse("other.yaml")
        assert ref.file == "other.yaml"
        assert ref.path == ()
        assert ref.name is None

    def test_escaped_tokens(self):
        ref = Reference.parse("#/paths/~1pets~1{petId}/get")
        assert ref.path == ("paths", "/pets/{petId}", "get")
        assert ref.pointer == "/paths/~1pets~1{petId}/get"

    def test_percent_encoded_token(self):
        ref = Reference.parse("#/definitions/My%20Type")
        assert ref.name == "My Type"

    def test_remote_reference(self):
        ref = Reference.parse("https://example.com/api.json#/definitions/Pet")
        assert ref.file == "https://example.com/api.json"

    def test_rejects_unknown_scheme(self):
        with pytest.raises(UnsupportedReferenceError) as exc_info:
            Reference.parse("ftp://example.com/api.json#/a", "doc.yaml", "/x")
        assert exc_info.value.document == "doc.yaml"
        assert "ftp" in str(exc_info.value)

    def test_rejects_named_anchor(self):
        with pytest.raises(UnsupportedReferenceError):
            Reference.parse("#Pet")

    def test_rejects_non_string(self):
        with pytest.raises(UnsupportedReferenceError):
            Reference.parse(42)


class TestDocumentIds:
    def test_is_remote(self):
        assert is_remote("https://example.com/a.json")
        assert not is_remote("/tmp/a.json")

    def test_canonical_id_is_absolute(self, tmp_path):
        doc_id = canonical_id(tmp_path / "sub" / ".." / "api.yaml")
        assert doc_id == (tmp_path / "api.yaml").resolve().as_posix()

    def test_join_relative_to_referencing_document(self, tmp_path):
        base = (tmp_path / "specs" / "api.json").as_posix()
        assert join(base, "./common/types.json") == (tmp_path / "specs" / "common" / "types.json").resolve().as_posix()
        assert join(base, "../shared.json") == (tmp_path / "shared.json").resolve().as_posix()

    def test_join_remote(self):
        assert join("https://example.com/specs/api.json", "common/types.json") == "https://example.com/specs/common/types.json"
