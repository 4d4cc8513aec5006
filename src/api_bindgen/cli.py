"""CLI entry point for api-bindgen."""

from pathlib import Path

import click
from pydantic import ValidationError

from api_bindgen.context import Diagnostic, DiagnosticSink
from api_bindgen.errors import GenerationError
from api_bindgen.generate import analyze, generate, load_options, write_files
from api_bindgen.model.operation import OperationDescriptor


def _echo_diagnostics(quiet: bool) -> DiagnosticSink:
    """Print diagnostics to stderr as they are raised."""

    def sink(diagnostic: Diagnostic) -> None:
        if quiet and diagnostic.level == "info":
            return
        click.echo(str(diagnostic), err=True)

    return sink


def describe(operation: OperationDescriptor) -> str:
    params = ", ".join(p.name for p in operation.parameters)
    return f"{operation.method.upper()} {operation.path} -> {operation.group}.{operation.name}({params})"


@click.group()
def main():
    """API Bindgen: generate typed Python client bindings from OpenAPI documents."""
    pass


@main.command("generate")
@click.option("-i", "--input-file", "input_files", multiple=True, required=True, help="OpenAPI/Swagger document (path or URL). Repeatable.")
@click.option("-o", "--output-folder", default=None, type=click.Path(file_okay=False, path_type=Path), help="Directory the package is written to.")
@click.option("--package-name", default=None, help="Name of the generated package.")
@click.option("--format/--no-format", "format_", default=None, help="Run the formatter over the generated files.")
@click.option("--formatter", default=None, envvar="API_BINDGEN_FORMATTER", help="Formatter command reading stdin, e.g. 'black -q -'.")
@click.option("--client-name", default=None, help="Class name of the generated client.")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True, dir_okay=False, path_type=Path), help="YAML file with generation options.")
@click.option("-q", "--quiet", is_flag=True, help="Hide info-level diagnostics.")
def generate_command(
    input_files: tuple[str, ...],
    output_folder: Path | None,
    package_name: str | None,
    format_: bool | None,
    formatter: str | None,
    client_name: str | None,
    config_path: Path | None,
    quiet: bool,
):
    """Generate a client package from one or more API documents."""
    try:
        options = load_options(
            config_path,
            output_folder=output_folder,
            package_name=package_name,
            format=format_,
            formatter=formatter,
            client_name=client_name,
        )
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint="options") from e
    except GenerationError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Loading {len(input_files)} document(s)...")
    try:
        result = generate(list(input_files), options, sink=_echo_diagnostics(quiet))
        paths = write_files(result.files, options.output_folder)
    except GenerationError as e:
        raise click.ClickException(str(e)) from e

    for path in paths:
        click.echo(f"  Created {path}")
    click.echo(
        f"Generated {len(result.operations)} operations and {len(result.graph.named())} types "
        f"in {options.output_folder / result.package} ({len(result.warnings)} warnings)"
    )


@main.command()
@click.option("-i", "--input-file", "input_files", multiple=True, required=True, help="OpenAPI/Swagger document (path or URL). Repeatable.")
@click.option("-q", "--quiet", is_flag=True, help="Hide info-level diagnostics.")
def operations(input_files: tuple[str, ...], quiet: bool):
    """List the operations a document set would generate."""
    try:
        _, _, found = analyze(list(input_files), sink=_echo_diagnostics(quiet))
    except GenerationError as e:
        raise click.ClickException(str(e)) from e

    for operation in found:
        click.echo(describe(operation))
    click.echo(f"Found {len(found)} operations.")
