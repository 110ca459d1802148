"""CLI entry point for propvar.

Invoked as::

    propvar [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m propvar.cli.main

Commands
--------
encode      Serialize a value to TypedPropertyValue bytes
decode      Show the type and value of serialized bytes
store show  List the properties of a serialized property store
store dump  Dump a property store to JSON or YAML
version     Show version information
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, NoReturn
from uuid import UUID

import click
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from propvar.codec import VariantCodec
from propvar.config import CodecConfig
from propvar.errors import VariantError
from propvar.types.vartype import VarType, VariantType

console = Console()
err_console = Console(stderr=True)


def _fail(message: str) -> NoReturn:
    err_console.print(f"[red]Error:[/red] {message}")
    sys.exit(1)


def _read_bytes(path: str) -> bytes:
    """Read a binary file, exiting on error."""
    try:
        return Path(path).read_bytes()
    except FileNotFoundError:
        _fail(f"File not found: {path}")
    except OSError as exc:
        _fail(f"Cannot read {path}: {exc}")


def _coerce(value: Any, base: VarType) -> Any:
    """Turn command-line text into the Python type ``base`` expects."""
    if isinstance(value, list):
        return [_coerce(item, base) for item in value]
    if not isinstance(value, str):
        return value
    if base is VarType.VT_CLSID:
        return UUID(value)
    if base in (VarType.VT_FILETIME, VarType.VT_DATE):
        return datetime.fromisoformat(value)
    if base is VarType.VT_BLOB:
        return bytes.fromhex(value)
    if base in (VarType.VT_DECIMAL, VarType.VT_CY):
        return Decimal(value)
    if base in (VarType.VT_R4, VarType.VT_R8):
        return float(value)
    if base is VarType.VT_BOOL:
        return value.lower() in ("1", "true", "yes", "on")
    if base in (
        VarType.VT_I1,
        VarType.VT_UI1,
        VarType.VT_I2,
        VarType.VT_UI2,
        VarType.VT_I4,
        VarType.VT_UI4,
        VarType.VT_I8,
        VarType.VT_UI8,
        VarType.VT_INT,
        VarType.VT_UINT,
        VarType.VT_ERROR,
    ):
        return int(value, 0)
    return value


def _render(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex(" ") or "(empty)"
    if isinstance(value, list):
        return "[" + ", ".join(_render(item) for item in value) + "]"
    return repr(value) if isinstance(value, str) else str(value)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="propvar")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML file with codec settings",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: str | None) -> None:
    """Typed property value codec: encode, decode and inspect serialized values."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    config = CodecConfig()
    if config_path is not None:
        try:
            config = CodecConfig.from_yaml(config_path)
        except ValueError as exc:
            _fail(str(exc))
    ctx.obj = VariantCodec(config=config)


# ---------------------------------------------------------------------------
# version command
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from propvar import __version__

    table = Table(show_header=False, box=None)
    table.add_row("[bold]propvar[/bold]", f"v{__version__}")
    table.add_row("Python", f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}")
    table.add_row("Platform", sys.platform)
    console.print(table)


# ---------------------------------------------------------------------------
# encode command
# ---------------------------------------------------------------------------


@cli.command(name="encode")
@click.argument("value")
@click.option("--type", "type_name", default=None, help="Variant type, e.g. VT_BSTR or VT_VECTOR|VT_I2")
@click.option("--json", "as_json", is_flag=True, default=False, help="Parse VALUE as JSON")
@click.option("--output", "-o", default=None, help="Output file path (defaults to hex on stdout)")
@click.pass_obj
def encode_command(
    codec: VariantCodec, value: str, type_name: str | None, as_json: bool, output: str | None
) -> None:
    """Serialize VALUE to TypedPropertyValue bytes.

    VALUE is taken as a string unless --json is given.

    Examples:

    \b
        propvar encode "hello"
        propvar encode 42 --type VT_UI2
        propvar encode '[1, 2, 3]' --json --type "VT_VECTOR|VT_I2" -o ints.bin
    """
    parsed: Any = value
    if as_json:
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError as exc:
            _fail(f"VALUE is not valid JSON: {exc}")
    vt: VariantType | None = None
    try:
        if type_name is not None:
            vt = VariantType.parse(type_name)
            parsed = _coerce(parsed, vt.base)
        data = codec.encode(parsed, vt)
    except (VariantError, ValueError, OverflowError) as exc:
        _fail(str(exc))

    if output:
        Path(output).write_bytes(data)
        console.print(f"[green]Wrote[/green] {len(data)} bytes to {output}")
    else:
        click.echo(data.hex())


# ---------------------------------------------------------------------------
# decode command
# ---------------------------------------------------------------------------


@cli.command(name="decode")
@click.argument("file", required=False, type=click.Path(exists=False))
@click.option("--hex", "hex_text", default=None, help="Decode this hex string instead of a file")
@click.pass_obj
def decode_command(codec: VariantCodec, file: str | None, hex_text: str | None) -> None:
    """Show the type and value of serialized bytes.

    FILE is a file written by ``propvar encode -o``.
    """
    if hex_text is not None:
        try:
            data = bytes.fromhex(hex_text)
        except ValueError as exc:
            _fail(f"--hex is not valid hex: {exc}")
    elif file is not None:
        data = _read_bytes(file)
    else:
        _fail("Give a FILE or --hex")

    try:
        with codec.deserialize(data) as variant:
            vt = variant.vt
            value = codec.from_variant(variant)
    except VariantError as exc:
        _fail(str(exc))

    table = Table(show_header=False, box=None)
    table.add_row("[bold]Type[/bold]", str(vt))
    table.add_row("[bold]Value[/bold]", _render(value))
    table.add_row("[bold]Size[/bold]", f"{len(data)} bytes")
    console.print(table)


# ---------------------------------------------------------------------------
# store commands
# ---------------------------------------------------------------------------


@cli.group(name="store")
def store_group() -> None:
    """Inspect serialized property stores."""


def _load_store(codec: VariantCodec, file: str) -> Any:
    from propvar.property import MemoryPropertyStore

    data = _read_bytes(file)
    try:
        return MemoryPropertyStore.from_bytes(data, codec)
    except VariantError as exc:
        _fail(f"{file}: {exc}")


@store_group.command(name="show")
@click.argument("file", type=click.Path(exists=False))
@click.pass_obj
def store_show_command(codec: VariantCodec, file: str) -> None:
    """List the properties of a serialized property store.

    FILE is the path to the store.
    """
    store = _load_store(codec, file)
    properties = store.properties()
    if not properties:
        console.print(f"[yellow]{file} holds no properties[/yellow]")
        return

    table = Table(title=f"Properties: {file}", show_lines=True)
    table.add_column("Format ID", min_width=38)
    table.add_column("Key", min_width=6)
    table.add_column("Type", style="bold", min_width=10)
    table.add_column("Value")
    for prop in properties:
        table.add_row("{" + str(prop.fmtid) + "}", str(prop.key), str(prop.type), _render(prop.value))
    console.print(table)
    console.print(f"\n[bold]{len(properties)}[/bold] propert{'y' if len(properties) == 1 else 'ies'}")


@store_group.command(name="dump")
@click.argument("file", type=click.Path(exists=False))
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["json", "yaml"], case_sensitive=False),
    default="json",
    help="Output format",
)
@click.option("--output", "-o", default=None, help="Output file path (defaults to stdout)")
@click.pass_obj
def store_dump_command(codec: VariantCodec, file: str, output_format: str, output: str | None) -> None:
    """Dump a property store to JSON or YAML.

    FILE is the path to the store.
    """
    from propvar.property import PropertySerializer

    store = _load_store(codec, file)
    serializer = PropertySerializer()
    properties = store.properties()

    if output_format.lower() == "json":
        text = serializer.to_json(properties)
        lang = "json"
    else:
        text = serializer.to_yaml(properties)
        lang = "yaml"

    if output:
        Path(output).write_text(text, encoding="utf-8")
        console.print(f"[green]Properties written to[/green] {output}")
    else:
        syntax = Syntax(text, lang, line_numbers=True)
        console.print(syntax)


if __name__ == "__main__":
    cli()
