"""Schema inspection commands."""

from typing import Annotated

import typer

from metacrud.cli.context import CLIContext
from metacrud.cli.output import OutputFormatter
from metacrud.cli.parsing import load_schema
from metacrud.permissions import effective_mode

app = typer.Typer(help="Validate and inspect schema files")

SchemaFile = Annotated[str, typer.Argument(help="Path to a schema JSON file")]
Collection = Annotated[str, typer.Argument(help="Collection name")]


@app.command("validate")
def schema_validate(ctx: typer.Context, file: SchemaFile) -> None:
    """Register every entity in FILE and run cross-entity validation."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        registry = load_schema(file, cli_ctx.settings.password_salt)
        names = registry.names()
        formatter.print_success(
            f"Schema is valid ({len(names)} entities)",
            {"entities": ", ".join(names)} if not cli_ctx.json_output else {"entities": names},
        )
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)


@app.command("list")
def schema_list(ctx: typer.Context, file: SchemaFile) -> None:
    """List the entities declared in FILE."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        registry = load_schema(file, cli_ctx.settings.password_salt)
        table_data = [
            {
                "Name": meta.collection,
                "Fields": len(meta.fields),
                "Mode": meta.server_mode.to_string() or "-",
                "Roles": ", ".join(meta.spec.roles) if meta.spec.roles else "",
            }
            for meta in registry
        ]
        formatter.print_table(
            f"Entities ({len(table_data)} total)",
            table_data,
            ["Name", "Fields", "Mode", "Roles"],
        )
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)


@app.command("describe")
def schema_describe(ctx: typer.Context, file: SchemaFile, collection: Collection) -> None:
    """Show an entity's fields and derived field sets."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        registry = load_schema(file, cli_ctx.settings.password_salt)
        formatter.print_entity_info(registry.lookup(collection).to_info())
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)


@app.command("mode")
def schema_mode(
    ctx: typer.Context,
    file: SchemaFile,
    collection: Collection,
    role: Annotated[
        str | None, typer.Option("--role", "-r", help="Caller role (omit for anonymous)")
    ] = None,
    ui: Annotated[
        str | None, typer.Option("--ui", help="UI-declared mode that narrows the result")
    ] = None,
) -> None:
    """Print the effective mode of ROLE on COLLECTION.

    Examples:

        metacrud schema mode shop.json order --role user

        metacrud schema mode shop.json order --role admin --ui cr
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        registry = load_schema(file, cli_ctx.settings.password_salt)
        meta = registry.lookup(collection)
        formatter.print_mode(collection, role, effective_mode(meta, role, ui).to_string())
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
