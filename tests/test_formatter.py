import subprocess
from unittest.mock import MagicMock, patch

from api_bindgen.generator.formatter import DEFAULT_FORMATTER, format_source, run_formatter

SOURCE = "x=1\n"


class TestFormatSource:
    @patch("api_bindgen.generator.formatter.subprocess.run")
    def test_uses_formatter_output(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="x = 1\n", stderr="")

        assert format_source(SOURCE) == "x = 1\n"

        args, kwargs = mock_run.call_args
        assert args[0] == DEFAULT_FORMATTER
        assert kwargs["input"] == SOURCE

    @patch("api_bindgen.generator.formatter.subprocess.run")
    def test_nonzero_exit_passes_through(self, mock_run):
        mock_run.return_value = MagicMock(returncode=123, stdout="", stderr="error: cannot format -\n")

        text, error = run_formatter(SOURCE, ["black", "-q", "-"])

        assert text == SOURCE
        assert "123" in error
        assert "cannot format" in error

    @patch("api_bindgen.generator.formatter.subprocess.run")
    def test_timeout_passes_through(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(["black"], 60)
        assert format_source(SOURCE) == SOURCE

    @patch("api_bindgen.generator.formatter.subprocess.run")
    def test_empty_output_passes_through(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")
        assert format_source(SOURCE) == SOURCE

    def test_missing_executable(self):
        text, error = run_formatter(SOURCE, ["api-bindgen-no-such-formatter"])
        assert text == SOURCE
        assert error.startswith("api-bindgen-no-such-formatter")

    def test_real_command(self):
        assert format_source(SOURCE, ["cat"]) == SOURCE
