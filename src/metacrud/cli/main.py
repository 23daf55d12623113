"""metacrud CLI - Main entry point."""

from typing import Annotated

import typer

import metacrud
from metacrud.cli.context import CLIContext
from metacrud.settings import configure_logging

app = typer.Typer(
    name="metacrud",
    help="metacrud CLI - declare entities as data, serve them as CRUD routes",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    settings: Annotated[
        str | None,
        typer.Option("--settings", "-s", envvar="METACRUD_SETTINGS", help="Settings JSON file"),
    ] = None,
    database: Annotated[
        str | None,
        typer.Option(
            "--database",
            "-d",
            envvar="METACRUD_URL",
            help="Database URL (PostgreSQL or SQLite); overrides the settings file",
        ),
    ] = None,
    echo: Annotated[bool, typer.Option("--echo", "-e", help="Echo SQL statements")] = False,
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output as JSON (machine-readable)")
    ] = False,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Log at DEBUG level")
    ] = False,
) -> None:
    """Settings and database options shared by every command."""
    ctx.obj = CLIContext(
        settings_path=settings,
        database=database,
        echo=echo,
        json_output=json_output,
        verbose=verbose,
    )
    if verbose:
        configure_logging("DEBUG")


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"metacrud v{metacrud.__version__}")


from metacrud.cli.commands import admin, schema, serve  # noqa: E402

app.add_typer(schema.app, name="schema")
app.add_typer(admin.app, name="admin")
app.command(name="serve")(serve.serve_command)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
