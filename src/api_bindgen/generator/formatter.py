"""Formatting bridge: pipes emitted source through an external formatter.

Formatting is cosmetic. A missing executable, a non-zero exit, a timeout or
empty output all leave the text exactly as emitted.
"""

import subprocess

DEFAULT_FORMATTER = ["black", "-q", "-"]

FORMAT_TIMEOUT = 60


def run_formatter(text: str, command: list[str] | None = None) -> tuple[str, str | None]:
    """Return (formatted text, None), or (original text, reason) on failure."""
    command = command or DEFAULT_FORMATTER
    try:
        result = subprocess.run(
            command,
            input=text,
            capture_output=True,
            text=True,
            timeout=FORMAT_TIMEOUT,
        )
    except (OSError, subprocess.SubprocessError) as e:
        return text, f"{command[0]}: {e}"
    if result.returncode != 0:
        stderr = result.stderr.strip().splitlines()
        return text, f"{command[0]} exited with {result.returncode}" + (f": {stderr[-1]}" if stderr else "")
    if not result.stdout.strip():
        return text, f"{command[0]} produced no output"
    return result.stdout, None


def format_source(text: str, command: list[str] | None = None) -> str:
    """Formatted ``text``, or ``text`` unchanged if the formatter fails."""
    return run_formatter(text, command)[0]
