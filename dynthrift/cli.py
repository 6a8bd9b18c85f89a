"""Command-line interface for calling Thrift services."""

from __future__ import annotations

import json
import logging
import sys
from typing import TYPE_CHECKING, Any, NoReturn

import click
from lark.exceptions import LarkError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from dynthrift.config import ClientConfig, load_config
from dynthrift.idl import ValidationError, load
from dynthrift.proto import Client, DeclaredException, DynthriftError, Service

if TYPE_CHECKING:
    from dynthrift.idl.types import Field, Method, Thrift

# Failures reported as a one-line error instead of a traceback. TransportError
# is an OSError.
HANDLED_ERRORS = (DynthriftError, LarkError, OSError, ValidationError, ValueError)


def _fail(error: Exception) -> NoReturn:
    Console(stderr=True).print(f"[bold red]Error:[/bold red] {escape(str(error))}")
    sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log every call at debug level")
def cli(verbose: bool) -> None:
    """Call Thrift services described by an IDL file, no code generation needed."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@cli.command()
@click.option("--input", "-i", "input_file", required=True, help="Input IDL file")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def info(input_file: str, output_json: bool) -> None:
    """Display the services and methods of an IDL file."""
    try:
        document = load(input_file)
        if output_json:
            _output_json(document)
        else:
            _output_plain(document)
    except HANDLED_ERRORS as e:
        _fail(e)


def _parse_arg(text: str) -> Any:
    """Parse a command-line argument as JSON, falling back to the raw string."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def _json_default(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="backslashreplace")
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


@cli.command()
@click.option("--input", "-i", "input_file", required=True, help="Input IDL file")
@click.option("--service", "-s", default=None, help="Service name")
@click.option("--endpoint", "-e", default=None, help="Server address as host:port")
@click.option("--timeout", "-t", type=float, default=None, help="Timeout in seconds")
@click.option("--config", "-c", "config_file", default=None, help="JSON client configuration")
@click.argument("method")
@click.argument("args", nargs=-1)
def call(
    input_file: str,
    service: str | None,
    endpoint: str | None,
    timeout: float | None,
    config_file: str | None,
    method: str,
    args: tuple[str, ...],
) -> None:
    """Call METHOD with ARGS, each given as JSON, and print the result as JSON."""
    try:
        config = load_config(config_file) if config_file else ClientConfig()
    except HANDLED_ERRORS as e:
        _fail(e)
    if service is not None:
        config.service = service
    if endpoint is not None:
        config.endpoint = endpoint
    if timeout is not None:
        config.timeout = timeout
    if config.service is None:
        raise click.UsageError("No service given, use --service or a configuration file")

    try:
        client = Client.from_config(load(input_file), config)
        with client:
            result = client.call(method, *[_parse_arg(arg) for arg in args])
    except DeclaredException as e:
        exception = {"exception": e.type_name, "name": e.name, "value": e.value}
        print(json.dumps(exception, indent=2, default=_json_default))
        sys.exit(1)
    except HANDLED_ERRORS as e:
        _fail(e)

    print(json.dumps(result, indent=2, default=_json_default))


def _format_field(field: Field) -> str:
    optional = "optional " if field.optional else ""
    return f"{field.id}: {optional}{field.type} {field.name}"


def _format_returns(method: Method) -> str:
    returns = "void" if method.return_type is None else str(method.return_type)
    return f"oneway {returns}" if method.oneway else returns


def _output_json(document: Thrift) -> None:
    """Output services and methods as JSON."""
    data: dict = {"services": {}}

    for name in document.services:
        service = Service(document, name)
        data["services"][name] = {
            method_name: {
                "returns": _format_returns(method),
                "arguments": [_format_field(f) for f in method.arguments],
                "throws": [_format_field(f) for f in method.exceptions],
            }
            for method_name, method in service.methods.items()
        }

    data["structs"] = sorted([*document.structs, *document.unions, *document.exceptions])
    data["enums"] = sorted(document.enums)
    data["typedefs"] = {name: str(typedef.type) for name, typedef in document.typedefs.items()}

    print(json.dumps(data, indent=2))


def _output_plain(document: Thrift) -> None:
    """Output services and methods using rich text formatting."""
    console = Console()

    for name in document.services:
        service = Service(document, name)
        extends = document.services[name].extends
        title = f"{name} extends {extends}" if extends else name
        console.print(f"[bold cyan]{title}[/bold cyan]")

        table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
        table.add_column("Method", style="white")
        table.add_column("Arguments", style="yellow")
        table.add_column("Returns", style="green")
        table.add_column("Throws", style="red")

        for method_name, method in service.methods.items():
            table.add_row(
                method_name,
                ", ".join(_format_field(f) for f in method.arguments),
                _format_returns(method),
                ", ".join(_format_field(f) for f in method.exceptions),
            )

        console.print(table)
        console.print()

    structs = sorted([*document.structs, *document.unions, *document.exceptions])
    if structs:
        console.print("[bold cyan]Structs[/bold cyan]")
        console.print(", ".join(structs))


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
