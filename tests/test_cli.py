from pathlib import Path
from unittest.mock import patch

from click.testing import CliRunner

from api_bindgen.cli import main

FIXTURES = Path(__file__).parent / "fixtures"


class TestCliGenerate:
    def test_generate_petstore(self, tmp_path):
        runner = CliRunner()
        result = runner.invoke(main, [
            "generate",
            "--input-file", str(FIXTURES / "petstore.yaml"),
            "-o", str(tmp_path),
        ])

        assert result.exit_code == 0, result.output
        assert (tmp_path / "swagger_petstore" / "models.py").exists()
        assert (tmp_path / "swagger_petstore" / "client.py").exists()
        assert "Generated 5 operations" in result.output

    def test_package_name_and_client_name(self, tmp_path):
        runner = CliRunner()
        result = runner.invoke(main, [
            "generate",
            "-i", str(FIXTURES / "swagger2" / "storage.json"),
            "-o", str(tmp_path),
            "--package-name", "storage",
            "--client-name", "StorageClient",
        ])

        assert result.exit_code == 0, result.output
        init = (tmp_path / "storage" / "__init__.py").read_text()
        assert "from .client import ApiError, StorageClient" in init

    def test_config_file(self, tmp_path):
        config = tmp_path / "bindgen.yaml"
        config.write_text(f"output_folder: {tmp_path / 'out'}\npackage_name: pets\n")
        runner = CliRunner()
        result = runner.invoke(main, [
            "generate", "-i", str(FIXTURES / "petstore.yaml"), "--config", str(config),
        ])

        assert result.exit_code == 0, result.output
        assert (tmp_path / "out" / "pets" / "models.py").exists()

    def test_invalid_option(self, tmp_path):
        runner = CliRunner()
        result = runner.invoke(main, [
            "generate", "-i", str(FIXTURES / "petstore.yaml"), "-o", str(tmp_path), "--package-name", "bad-name",
        ])

        assert result.exit_code == 2
        assert "not a valid package name" in result.output

    @patch("api_bindgen.generate.run_formatter")
    def test_formatter_from_environment(self, mock_format, tmp_path):
        mock_format.side_effect = lambda text, command: (text, None)
        runner = CliRunner()
        result = runner.invoke(
            main,
            ["generate", "-i", str(FIXTURES / "petstore.yaml"), "-o", str(tmp_path), "--format"],
            env={"API_BINDGEN_FORMATTER": "ruff format -"},
        )

        assert result.exit_code == 0, result.output
        assert mock_format.call_args.args[1] == ["ruff", "format", "-"]

    def test_unresolved_reference_fails(self, tmp_path):
        runner = CliRunner()
        result = runner.invoke(main, [
            "generate", "-i", str(FIXTURES / "unresolved.yaml"), "-o", str(tmp_path),
        ])

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "#/components/schemas/Missing" in result.output

    def test_warnings_are_printed(self, tmp_path):
        spec = tmp_path / "api.yaml"
        spec.write_text("definitions:\n  Blob:\n    type: object\n")
        runner = CliRunner()
        result = runner.invoke(main, ["generate", "-i", str(spec), "-o", str(tmp_path / "out")])

        assert result.exit_code == 0, result.output
        assert "warning:" in result.output
        assert "free-form object" in result.output


class TestCliOperations:
    def test_lists_operations(self):
        runner = CliRunner()
        result = runner.invoke(main, ["operations", "-i", str(FIXTURES / "petstore.yaml")])

        assert result.exit_code == 0, result.output
        assert "GET /pets -> pets.list_pets(limit, status)" in result.output
        assert "POST /pets/{petId}/visits -> visits.add_visit(pet_id, notify, when, body)" in result.output
        assert "Found 5 operations." in result.output

    def test_missing_input(self, tmp_path):
        runner = CliRunner()
        result = runner.invoke(main, ["operations", "-i", str(tmp_path / "missing.yaml")])

        assert result.exit_code == 1
        assert "cannot read document" in result.output
