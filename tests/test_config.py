"""
Tests for layered project configuration.
"""

import pytest

from spawnsql.config import ConfigLoader, DatabaseConfig, SpawnConfig, load_config
from spawnsql.faults import ConfigInvalidFault, ConfigMissingFault

TOML = """
spawn_folder = "db"
database = "main"

[databases.main]
spawn_schema = "_spawn_main"
environment = "prod"
command = ["psql", "-h", "localhost"]

[databases.other]
command = ["psql"]
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    import os
    for key in list(os.environ):
        if key.startswith("SPAWN_"):
            monkeypatch.delenv(key)


# ════════════════════════════════════════════════════════════════════════
# Sources and precedence
# ════════════════════════════════════════════════════════════════════════


class TestConfigLoader:

    def test_defaults_without_file(self, tmp_path):
        config = load_config(cwd=tmp_path)
        assert config.spawn_folder == "spawn"
        assert config.databases == {}
        assert config.telemetry is True

    def test_toml_file(self, tmp_path, write):
        write(tmp_path / "spawn.toml", TOML)
        config = load_config(cwd=tmp_path)

        assert config.spawn_folder == "db"
        assert config.base_dir == tmp_path.resolve()
        assert config.migrations_folder == tmp_path.resolve() / "db" / "migrations"
        main = config.databases["main"]
        assert main.spawn_schema == "_spawn_main"
        assert main.command == ["psql", "-h", "localhost"]
        assert main.engine == "postgres-psql"
        assert config.databases["other"].spawn_schema == "_spawn"

    def test_yaml_file(self, tmp_path, write):
        write(tmp_path / "spawn.yaml", "databases:\n  main:\n    command: [psql]\ntelemetry: false\n")
        config = load_config(cwd=tmp_path)
        assert config.telemetry is False
        assert config.databases["main"].command == ["psql"]

    def test_json_file(self, tmp_path, write):
        path = write(tmp_path / "conf" / "spawn.json", '{"spawn_folder": "sql"}')
        config = load_config(path)
        assert config.spawn_path == path.parent.resolve() / "sql"

    def test_toml_preferred_over_yaml(self, tmp_path, write):
        write(tmp_path / "spawn.toml", 'spawn_folder = "from_toml"')
        write(tmp_path / "spawn.yaml", "spawn_folder: from_yaml")
        assert load_config(cwd=tmp_path).spawn_folder == "from_toml"

    def test_env_overrides_file(self, tmp_path, write, monkeypatch):
        write(tmp_path / "spawn.toml", TOML)
        monkeypatch.setenv("SPAWN_DATABASES__MAIN__SPAWN_SCHEMA", "_from_env")
        monkeypatch.setenv("SPAWN_DATABASES__MAIN__COMMAND", '["psql", "-p", "6543"]')
        monkeypatch.setenv("SPAWN_TELEMETRY", "no")

        config = load_config(cwd=tmp_path)
        assert config.databases["main"].spawn_schema == "_from_env"
        assert config.databases["main"].command == ["psql", "-p", "6543"]
        assert config.databases["main"].environment == "prod"
        assert config.telemetry is False

    def test_overrides_win(self, tmp_path, write, monkeypatch):
        write(tmp_path / "spawn.toml", TOML)
        monkeypatch.setenv("SPAWN_DATABASE", "main")
        config = load_config(cwd=tmp_path, overrides={"database": "other"})
        assert config.database == "other"

    def test_get_dotted_path(self, tmp_path, write):
        write(tmp_path / "spawn.toml", TOML)
        loader = ConfigLoader.load(cwd=tmp_path)
        assert loader.get("databases.main.environment") == "prod"
        assert loader.get("databases.nope.environment", "dev") == "dev"

    def test_explicit_missing_file(self, tmp_path):
        with pytest.raises(ConfigMissingFault):
            load_config(tmp_path / "missing.toml")

    def test_unparseable_file(self, tmp_path, write):
        path = write(tmp_path / "spawn.toml", "this is = = not toml")
        with pytest.raises(ConfigInvalidFault) as exc_info:
            load_config(path)
        assert exc_info.value.metadata["key"] == str(path)

    def test_unsupported_format(self, tmp_path, write):
        path = write(tmp_path / "spawn.ini", "[x]")
        with pytest.raises(ConfigInvalidFault):
            load_config(path)

    @pytest.mark.parametrize("text, key", [
        ('telemetry = "maybe"', "telemetry"),
        ("[databases.main]\ncommand = \"psql -h x\"", "databases.main.command"),
        ("[databases.main]\ncommand = [1, 2]", "databases.main.command"),
        ("databases = 3", "databases"),
    ])
    def test_invalid_types(self, tmp_path, write, text, key):
        write(tmp_path / "spawn.toml", text)
        with pytest.raises(ConfigInvalidFault) as exc_info:
            load_config(cwd=tmp_path)
        assert exc_info.value.metadata["key"] == key

    def test_unknown_keys_are_ignored(self, tmp_path, write, caplog):
        write(tmp_path / "spawn.toml", 'colour = "blue"')
        config = load_config(cwd=tmp_path)
        assert not hasattr(config, "colour")
        assert "colour" in caplog.text


# ════════════════════════════════════════════════════════════════════════
# Database selection
# ════════════════════════════════════════════════════════════════════════


class TestTargetDatabase:

    def test_explicit_selection(self):
        config = SpawnConfig(
            database="b",
            databases={"a": DatabaseConfig(environment="dev"), "b": DatabaseConfig(environment="prod")},
        )
        assert config.target_database().environment == "prod"
        assert config.effective_environment() == "prod"

    def test_single_database_is_implicit(self):
        config = SpawnConfig(databases={"only": DatabaseConfig(environment="staging")})
        assert config.target_database().environment == "staging"
        assert config.effective_environment() == "staging"

    def test_ambiguous_selection(self):
        config = SpawnConfig(databases={"a": DatabaseConfig(), "b": DatabaseConfig()})
        with pytest.raises(ConfigMissingFault):
            config.target_database()
        assert config.effective_environment() == "dev"

    def test_unknown_database(self):
        config = SpawnConfig(database="nope", databases={"a": DatabaseConfig()})
        with pytest.raises(ConfigInvalidFault) as exc_info:
            config.target_database()
        assert "configured: a" in exc_info.value.metadata["reason"]

    def test_environment_override(self):
        config = SpawnConfig(environment="test", databases={"a": DatabaseConfig(environment="prod")})
        assert config.effective_environment() == "test"
