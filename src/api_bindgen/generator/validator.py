"""Syntax checks for emitted source files."""

import ast


def validate_python(files: dict[str, str]) -> dict[str, str]:
    """Parse every emitted ``.py`` file.

    Returns dict of {path: error_message} for files that do not parse.
    """
    errors = {}
    for path, content in files.items():
        if not path.endswith(".py"):
            continue
        try:
            ast.parse(content, filename=path)
        except SyntaxError as e:
            errors[path] = f"SyntaxError: {e.msg} (line {e.lineno})"
        except ValueError as e:
            # source containing NUL bytes
            errors[path] = f"ValueError: {e}"
    return errors
