"""Output formatting for CLI commands."""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from metacrud.core.types import EntityInfo
from metacrud.exceptions import MetaCrudError, SchemaDefinitionError, SchemaValidationError

console = Console()

CHECK = "✓"
FIELD_COLUMNS = ("Name", "Type", "Required", "Ref", "Create", "Update", "Search", "List", "Clone")


def _emit_json(data: Any) -> None:
    # Not console.print: output must stay parseable JSON
    print(json.dumps(data, default=str, indent=2))


def _tick(flag: bool) -> str:
    return CHECK if flag else ""


class OutputFormatter:
    """Formats output for terminal or JSON mode."""

    def __init__(self, json_mode: bool = False) -> None:
        self.json_mode = json_mode

    def print_table(self, title: str, data: list[dict[str, Any]], columns: list[str]) -> None:
        """Print rows as a Rich table, or as a JSON array in JSON mode."""
        if self.json_mode:
            _emit_json(data)
            return
        if not data:
            console.print(f"{title}: none", style="dim")
            return
        table = Table(title=title, show_header=True, header_style="bold magenta")
        for col in columns:
            table.add_column(col)
        for row in data:
            table.add_row(*[str(row.get(col, "")) for col in columns])
        console.print(table)

    def print_entity_info(self, entity: EntityInfo) -> None:
        """Print an entity header followed by one row per client-visible field."""
        if self.json_mode:
            _emit_json(entity.model_dump())
            return

        console.print(f"\n[bold]Entity:[/bold] {entity.collection}")
        header = {
            "Mode": entity.mode or "-",
            "Primary keys": ", ".join(entity.primary_keys),
            "Label": entity.ref_label,
            "Owner field": entity.user_field,
            "Description": entity.description,
        }
        for label, value in header.items():
            if value:
                console.print(f"{label}: {value}")

        if entity.fields:
            console.print(f"\n[bold]Fields ({len(entity.fields)}):[/bold]")
            fields_table = Table(show_header=True, header_style="bold cyan")
            for col in FIELD_COLUMNS:
                fields_table.add_column(col)
            for field in entity.fields:
                fields_table.add_row(
                    field.name,
                    field.type,
                    _tick(field.required),
                    field.ref or (f"via {field.link}" if field.link else ""),
                    _tick(field.create),
                    _tick(field.update),
                    _tick(field.search),
                    _tick(field.list),
                    _tick(field.clone),
                )
            console.print(fields_table)

        if entity.ref_by:
            console.print(f"\n[bold]Referenced by:[/bold] {', '.join(entity.ref_by)}")

    def print_mode(self, collection: str, role: str | None, mode: str) -> None:
        """Print an effective mode string; ``-`` stands for no operations."""
        if self.json_mode:
            _emit_json({"collection": collection, "role": role, "mode": mode})
        else:
            print(mode or "-")

    def print_success(self, message: str, details: dict[str, Any] | None = None) -> None:
        if self.json_mode:
            _emit_json({"success": True, "message": message, **(details or {})})
            return
        console.print(f"{CHECK} {message}", style="green")
        for key, value in (details or {}).items():
            console.print(f"  {key}: {value}", style="dim")

    def print_error(self, error: Exception) -> None:
        """Print an error panel, or the error's JSON form.

        Schema errors are shown with one line per problem.
        """
        if self.json_mode:
            if isinstance(error, MetaCrudError):
                _emit_json(error.to_dict())
            else:
                _emit_json({"error": type(error).__name__, "message": str(error)})
            return

        if isinstance(error, (SchemaDefinitionError, SchemaValidationError)) and error.problems:
            error_text = "\n".join(f"- {p}" for p in error.problems)
        elif isinstance(error, MetaCrudError) and error.context:
            details = "\n".join(f"{k}: {v}" for k, v in error.context.items())
            error_text = f"{error.message}\n\n{details}"
        else:
            error_text = str(error)

        console.print(Panel(error_text, title="[red]Error[/red]", border_style="red"))

    def print_data(self, data: Any) -> None:
        """Print generic data (dict, list, etc.)."""
        if self.json_mode:
            _emit_json(data)
        else:
            console.print(data)
