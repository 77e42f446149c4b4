"""Command line interface for running Dify operations."""

from __future__ import annotations

import asyncio
import json
import logging
import mimetypes
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from difylink import DifyClient, ExecutionContext, execute, get_transport, load_config
from difylink.contracts import BinaryAttachment, Credentials, OutputRecord
from difylink.errors import DifyError
from difylink.operations import OPERATIONS
from difylink.request import build_request

app = typer.Typer(help="CLI for Dify platform operations")


def _setup(config_path: Optional[str]):
    config = load_config(config_path)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    credentials = Credentials(
        base_url=config.credentials.base_url, api_key=config.credentials.api_key
    )
    return config, credentials


def _parse_pairs(pairs: List[str], option: str) -> Dict[str, str]:
    parsed: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got {pair!r}", param_hint=option)
        parsed[key] = value
    return parsed


def _parse_value(value: str) -> Any:
    """JSON values are decoded so nested parameters can be passed; anything else stays a string."""
    try:
        return json.loads(value)
    except ValueError:
        return value


def _set_dotted(target: Dict[str, Any], name: str, value: Any) -> None:
    parts = name.split(".")
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


def _read_binary(path: Path) -> BinaryAttachment:
    if not path.is_file():
        raise typer.BadParameter(f"File not found: {path}", param_hint="--file")
    mime_type, _ = mimetypes.guess_type(path.name)
    return BinaryAttachment(
        name=path.name,
        data=path.read_bytes(),
        mime_type=mime_type or "application/octet-stream",
    )


def _render(record: OutputRecord) -> str:
    payload: Dict[str, Any] = {"item_index": record.item_index, "data": record.data}
    if record.binary is not None:
        payload["binary"] = {
            "name": record.binary.name,
            "mime_type": record.binary.mime_type,
            "size": record.binary.size,
        }
    return json.dumps(payload, default=str)


@app.callback()
def main() -> None:
    """difylink CLI entry point."""
    pass


@app.command("call")
def call(
    resource: str,
    operation: str,
    param: List[str] = typer.Option([], "--param", "-p", help="Parameter as key=value"),
    file: List[str] = typer.Option([], "--file", help="Binary attachment as field=path"),
    items: int = typer.Option(1, min=1, help="Number of input items"),
    continue_on_fail: bool = typer.Option(False, help="Emit error records instead of stopping"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to config YAML"),
) -> None:
    """
    Run one operation against the configured Dify application.

    Every input item receives the same parameters. Values that parse as JSON
    are passed decoded, and dotted keys build nested parameters.

    Example:
        difylink call chat send -p query="Hello" -p user=alice
        difylink call workflow execute -p 'inputs={"topic": "tea"}'
        difylink call file upload -p user=alice --file data=./report.pdf
    """
    config, credentials = _setup(config_path)

    parameters: Dict[str, Any] = {}
    for key, value in _parse_pairs(param, "--param").items():
        _set_dotted(parameters, key, _parse_value(value))
    binaries = {
        field: _read_binary(Path(path)) for field, path in _parse_pairs(file, "--file").items()
    }

    context = ExecutionContext(
        [parameters] * items,
        binaries=[binaries] * items,
        credentials=credentials,
        config=config,
        continue_on_fail=continue_on_fail,
        transport=get_transport(credentials),
    )
    try:
        records = asyncio.run(execute(context, resource, operation))
    except DifyError as exc:
        typer.secho(f"Error: {exc.message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    for record in records:
        typer.echo(_render(record))


@app.command("test-connection")
def test_connection(
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to config YAML"),
) -> None:
    """Check the configured credentials against ``GET /parameters``."""
    config, credentials = _setup(config_path)
    client = DifyClient(credentials, transport=get_transport(credentials), config=config)

    try:
        response = asyncio.run(client.request(build_request("GET", "/parameters")))
    except DifyError as exc:
        typer.secho(f"Connection failed: {exc.message}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    if not isinstance(response, dict) or "opening_statement" not in response:
        typer.secho("Connection failed: unexpected response", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo("Connection successful")


@app.command("operations")
def list_operations() -> None:
    """List every supported resource/operation pair."""
    for resource, operation in sorted(OPERATIONS):
        typer.echo(f"{resource}\t{operation}")


if __name__ == "__main__":
    app()
