"""CLI context management for settings, database connections and shared state."""

from dataclasses import dataclass, field

from metacrud import MetaCrud
from metacrud.schema.registry import SchemaRegistry
from metacrud.settings import Settings, get_database_url, load_settings


@dataclass
class CLIContext:
    """Shared context for CLI commands.

    Loads settings lazily and owns the engine built for a command.
    """

    settings_path: str | None
    database: str | None
    echo: bool
    json_output: bool
    verbose: bool = False
    _settings: Settings | None = field(default=None, init=False, repr=False)
    _db: MetaCrud | None = field(default=None, init=False, repr=False)

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = load_settings(self.settings_path)
        return self._settings

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.verbose else self.settings.log_level

    @property
    def database_url(self) -> str:
        return get_database_url(self.database, self.settings)

    def get_db(self, registry: SchemaRegistry) -> MetaCrud:
        """Get or create the engine for a validated registry (lazy initialization)."""
        if self._db is None:
            settings = self.settings
            self._db = MetaCrud(
                self.database_url,
                registry,
                roles=settings.roles,
                echo=self.echo or settings.echo,
            )
        return self._db

    def close(self) -> None:
        """Close database connection if open."""
        if self._db is not None:
            self._db.close()
            self._db = None
