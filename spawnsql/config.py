"""
Config system - Layered typed configuration for a spawn project.

Merge precedence (later overrides earlier):
defaults < spawn.toml / spawn.yaml / spawn.json < SPAWN_* environment < overrides
"""

from typing import Any, Dict, List, Optional, Type, get_args, get_origin, get_type_hints
from dataclasses import dataclass, field, fields, MISSING
from pathlib import Path
import json
import logging
import os
import tomllib

import yaml

from .faults import ConfigInvalidFault, ConfigMissingFault

logger = logging.getLogger("spawnsql.config")

CONFIG_FILE_NAMES = ("spawn.toml", "spawn.yaml", "spawn.yml", "spawn.json")


@dataclass
class DatabaseConfig:
    """One target database."""
    engine: str = "postgres-psql"
    spawn_schema: str = "_spawn"
    environment: str = "dev"
    command: List[str] = field(default_factory=list)


@dataclass
class SpawnConfig:
    """
    Typed project configuration.

    Folder helpers resolve against ``base_dir``, the directory holding the
    config file (or the working directory when there is none).
    """
    spawn_folder: str = "spawn"
    database: Optional[str] = None
    databases: Dict[str, DatabaseConfig] = field(default_factory=dict)
    environment: Optional[str] = None
    telemetry: bool = True
    project_id: Optional[str] = None
    base_dir: Path = field(default_factory=Path.cwd)

    @property
    def spawn_path(self) -> Path:
        return self.base_dir / self.spawn_folder

    @property
    def components_folder(self) -> Path:
        return self.spawn_path / "components"

    @property
    def migrations_folder(self) -> Path:
        return self.spawn_path / "migrations"

    @property
    def pinned_folder(self) -> Path:
        return self.spawn_path / "pinned"

    @property
    def tests_folder(self) -> Path:
        return self.spawn_path / "tests"

    def migration_folder(self, name: str) -> Path:
        return self.migrations_folder / name

    def test_folder(self, name: str) -> Path:
        return self.tests_folder / name

    def target_database(self) -> DatabaseConfig:
        """
        The selected database.

        With no explicit ``database`` and exactly one entry in
        ``databases``, that entry is selected.
        """
        name = self.database
        if name is None:
            if len(self.databases) == 1:
                return next(iter(self.databases.values()))
            raise ConfigMissingFault("database")
        if name not in self.databases:
            known = ", ".join(sorted(self.databases)) or "none"
            raise ConfigInvalidFault("database", f"no database named '{name}' (configured: {known})")
        return self.databases[name]

    def effective_environment(self) -> str:
        if self.environment:
            return self.environment
        if self.database in self.databases:
            return self.databases[self.database].environment
        if self.database is None and len(self.databases) == 1:
            return next(iter(self.databases.values())).environment
        return "dev"


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > config file > defaults
    """

    def __init__(self, env_prefix: str = "SPAWN_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}
        self.path: Optional[Path] = None

    @classmethod
    def load(
        cls,
        path: Optional[str | Path] = None,
        env_prefix: str = "SPAWN_",
        overrides: Optional[Dict[str, Any]] = None,
        *,
        cwd: Optional[Path] = None,
    ) -> "ConfigLoader":
        """
        Load configuration.

        Args:
            path: Config file; auto-detected in *cwd* when omitted
            env_prefix: Prefix for environment variables
            overrides: Manual overrides (highest precedence)
            cwd: Directory searched for a config file

        Raises:
            ConfigMissingFault: An explicit *path* does not exist
            ConfigInvalidFault: The file cannot be parsed
        """
        loader = cls(env_prefix=env_prefix)
        search_dir = Path(cwd) if cwd is not None else Path.cwd()

        if path is None:
            for candidate in CONFIG_FILE_NAMES:
                if (search_dir / candidate).is_file():
                    path = search_dir / candidate
                    break
        elif not Path(path).is_file():
            raise ConfigMissingFault(str(path))

        if path is not None:
            loader.path = Path(path)
            loader._load_file(loader.path)

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_file(self, path: Path):
        """Load config from a TOML, YAML or JSON file."""
        try:
            if path.suffix == ".toml":
                data = tomllib.loads(path.read_text(encoding="utf-8"))
            elif path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(path.read_text(encoding="utf-8"))
            elif path.suffix == ".json":
                data = json.loads(path.read_text(encoding="utf-8"))
            else:
                raise ConfigInvalidFault(str(path), f"unsupported config format '{path.suffix}'")
        except (OSError, ValueError, yaml.YAMLError) as exc:
            raise ConfigInvalidFault(str(path), str(exc)) from exc

        if data:
            if not isinstance(data, dict):
                raise ConfigInvalidFault(str(path), "top level must be a table")
            self._merge_dict(self.config_data, data)
        logger.debug("Loaded config from %s", path)

    def _load_from_env(self):
        """Load config from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert SPAWN_DATABASES__MAIN__SPAWN_SCHEMA to nested dict."""
        key = key[len(self.env_prefix):]

        # Double underscore separates nesting levels
        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        # JSON lists and tables, e.g. a psql command
        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        current = self.config_data
        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current

    def to_dict(self) -> dict:
        return self.config_data

    # ── Typed view ───────────────────────────────────────────────────

    def build(self) -> SpawnConfig:
        """Validate the merged data into a :class:`SpawnConfig`."""
        data = dict(self.config_data)
        databases = data.pop("databases", {}) or {}
        if not isinstance(databases, dict):
            raise ConfigInvalidFault("databases", "must be a table of database entries")

        config = self._instantiate_dataclass(SpawnConfig, data, prefix="")
        config.databases = {
            name: self._instantiate_dataclass(DatabaseConfig, entry or {}, prefix=f"databases.{name}.")
            for name, entry in databases.items()
        }
        config.base_dir = self.path.parent.resolve() if self.path is not None else Path.cwd()
        return config

    def _instantiate_dataclass(self, config_class: Type, data: dict, *, prefix: str):
        """Instantiate dataclass config with validation."""
        if not isinstance(data, dict):
            raise ConfigInvalidFault(prefix.rstrip(".") or "config", "must be a table")

        hints = get_type_hints(config_class)
        known = {f.name for f in fields(config_class)}
        for key in data:
            if key not in known:
                logger.warning("Ignoring unknown config key '%s%s'", prefix, key)

        kwargs = {}
        for field_info in fields(config_class):
            if field_info.name == "databases" or field_info.name == "base_dir":
                continue
            if field_info.name in data:
                value = data[field_info.name]
                if not self._check_type(value, hints[field_info.name]):
                    raise ConfigInvalidFault(
                        f"{prefix}{field_info.name}",
                        f"expected {hints[field_info.name]}, got {type(value).__name__}",
                    )
                kwargs[field_info.name] = value
            elif field_info.default is MISSING and field_info.default_factory is MISSING:
                raise ConfigMissingFault(f"{prefix}{field_info.name}")

        return config_class(**kwargs)

    def _check_type(self, value: Any, expected_type: Type) -> bool:
        """Basic type checking."""
        import types
        origin = get_origin(expected_type)
        if origin is types.UnionType or str(origin) == 'typing.Union':
            if value is None:
                return True
            args = [a for a in get_args(expected_type) if a is not type(None)]
            return any(self._check_type(value, a) for a in args)

        if origin is list:
            (item_type,) = get_args(expected_type) or (Any,)
            return isinstance(value, list) and (
                item_type is Any or all(isinstance(v, item_type) for v in value)
            )

        if origin:
            return isinstance(value, origin)

        try:
            return isinstance(value, expected_type)
        except TypeError:
            return True


def load_config(
    path: Optional[str | Path] = None,
    *,
    overrides: Optional[Dict[str, Any]] = None,
    cwd: Optional[Path] = None,
) -> SpawnConfig:
    """Load, merge and validate project configuration."""
    return ConfigLoader.load(path, overrides=overrides, cwd=cwd).build()
