"""Run the generated HTTP API."""

from typing import Annotated

import typer
import uvicorn

from metacrud.api import create_app
from metacrud.cli.context import CLIContext
from metacrud.cli.output import OutputFormatter
from metacrud.cli.parsing import load_schema
from metacrud.settings import configure_logging


def serve_command(
    ctx: typer.Context,
    file: Annotated[str, typer.Argument(help="Path to a schema JSON file")],
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", "-p", help="Bind port")] = 8000,
) -> None:
    """Serve CRUD routes for every entity in FILE.

    Callers are identified by the X-User-Id and X-User-Role headers.
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        settings = cli_ctx.settings
        configure_logging(cli_ctx.log_level)
        registry = load_schema(file, settings.password_salt)
        db = cli_ctx.get_db(registry)
        app = create_app(db)
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)

    try:
        uvicorn.run(app, host=host, port=port, log_level=cli_ctx.log_level.lower())
    finally:
        cli_ctx.close()
