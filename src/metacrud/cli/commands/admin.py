"""Database administration commands."""

from typing import Annotated

import typer

import metacrud
from metacrud.cli.context import CLIContext
from metacrud.cli.output import OutputFormatter
from metacrud.cli.parsing import load_schema

app = typer.Typer(help="Database setup and status")

SchemaFile = Annotated[str, typer.Argument(help="Path to a schema JSON file")]


@app.command()
def init(ctx: typer.Context, file: SchemaFile) -> None:
    """Validate FILE and create the record table in the database.

    Examples:

        metacrud admin init shop.json

        metacrud --database postgresql://localhost/shop admin init shop.json
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        registry = load_schema(file, cli_ctx.settings.password_salt)
        db = cli_ctx.get_db(registry)
        db.store.initialize()
        formatter.print_success(
            "Database initialized",
            {"database": cli_ctx.database_url, "entities": len(registry.names())},
        )
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command()
def info(ctx: typer.Context, file: SchemaFile) -> None:
    """Show connection details, configured roles and record counts per entity."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        registry = load_schema(file, cli_ctx.settings.password_salt)
        db = cli_ctx.get_db(registry)
        counts = {name: db.entity(name).count() for name in db.list_entities()}
        roles = [f"{r.name} (root)" if r.root else r.name for r in db.roles.values()]
        info_data = {
            "version": metacrud.__version__,
            "database": cli_ctx.database_url,
            "dialect": db.store.dialect,
            "roles": roles,
            "records": counts,
        }

        if cli_ctx.json_output:
            formatter.print_data(info_data)
        else:
            typer.echo(f"\nmetacrud v{info_data['version']}")
            typer.echo(f"Database: {info_data['database']}")
            typer.echo(f"Dialect: {info_data['dialect']}")
            typer.echo(f"Roles: {', '.join(roles) or '-'}")
            formatter.print_table(
                f"Records ({sum(counts.values()):,} total)",
                [{"Entity": name, "Records": count} for name, count in counts.items()],
                ["Entity", "Records"],
            )
    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()
