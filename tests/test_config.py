"""Tests for configuration models and the YAML parser."""

import logging
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from dbconnectors.config import (
    ConfigParser,
    DatabaseConfig,
    DatabaseType,
    DBConnectorsConfig,
    TempTableSettings,
    create_sample_config,
    get_config,
)
from dbconnectors.config.models import ConnectionPoolConfig
from dbconnectors.exceptions import ConfigurationError


class TestModels:
    """Test validation rules of the configuration models."""

    def test_database_config(self) -> None:
        config = DatabaseConfig(driver="clickhouse", host="ch", username="default", protocol="https")

        assert config.type == DatabaseType.CLICKHOUSE
        assert config.protocol == "https"
        assert config.settings == {}

    @pytest.mark.parametrize(
        "values",
        [
            {"type": "mysql", "username": "etl"},
            {"type": "mysql", "host": "db"},
            {"type": "mysql", "host": "db", "username": "etl", "port": 70000},
            {"type": "mysql", "host": "db", "username": "etl", "protocol": "http"},
            {"type": "clickhouse", "host": "db", "username": "etl", "protocol": "ftp"},
            {"type": "sqlite", "host": "db", "username": "etl"},
        ],
    )
    def test_invalid_database_config(self, values) -> None:
        with pytest.raises(ValidationError):
            DatabaseConfig(**values)

    def test_pool_limits(self) -> None:
        with pytest.raises(ValidationError):
            ConnectionPoolConfig(min_connections=10, max_connections=2)

    def test_default_database_is_first(self, sample_config_dict) -> None:
        del sample_config_dict['default_database']

        assert DBConnectorsConfig(**sample_config_dict).default_database == 'warehouse'

    def test_unknown_default_database(self, sample_config_dict) -> None:
        sample_config_dict['default_database'] = 'missing'

        with pytest.raises(ValidationError, match="not found in databases"):
            DBConnectorsConfig(**sample_config_dict)

    def test_isolation_refers_to_unknown_database(self, sample_config_dict) -> None:
        sample_config_dict['test_isolation']['schemata']['reporting'] = None

        with pytest.raises(ValidationError, match="unknown databases"):
            DBConnectorsConfig(**sample_config_dict)

    def test_isolation_defaults(self, sample_config_dict) -> None:
        config = DBConnectorsConfig(**sample_config_dict)

        assert config.test_isolation.enabled is True
        assert config.test_isolation.auto_cleanup is True
        assert config.test_isolation.schemata == {'warehouse': None, 'analytics': ['events']}

    @pytest.mark.parametrize("ttl", ["2 weeks", "1 month", "1 year", "1 day 12 hours"])
    def test_calendar_ttl(self, ttl: str) -> None:
        assert TempTableSettings(ttl=ttl).ttl == ttl

    @pytest.mark.parametrize("ttl", ["never", "0 seconds", "-2 days", "2 fortnights", "3"])
    def test_invalid_ttl(self, ttl: str) -> None:
        with pytest.raises(ValidationError):
            TempTableSettings(ttl=ttl)


class TestConfigParser:
    """Test loading YAML files."""

    def test_load_config(self, config_file: Path) -> None:
        config = ConfigParser().load_config(config_file)

        assert set(config.databases) == {'warehouse', 'analytics'}
        assert config.databases['analytics'].port == 8123
        assert config.temp_tables.ttl == '7 days'

    def test_environment_variables(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("WAREHOUSE_PASSWORD", "from-env")
        monkeypatch.delenv("WAREHOUSE_HOST", raising=False)
        path = tmp_path / "dbconnectors.yaml"
        path.write_text(
            "databases:\n"
            "  warehouse:\n"
            "    type: mysql\n"
            "    host: ${WAREHOUSE_HOST:-mysql.local}\n"
            "    username: etl\n"
            "    password: ${WAREHOUSE_PASSWORD}\n",
            encoding="utf-8",
        )

        config = ConfigParser().load_config(path)

        assert config.databases['warehouse'].host == 'mysql.local'
        assert config.databases['warehouse'].password == 'from-env'

    def test_missing_environment_variable(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.delenv("UNSET_PASSWORD", raising=False)
        path = tmp_path / "dbconnectors.yaml"
        path.write_text(
            "databases:\n"
            "  warehouse: {type: mysql, host: db, username: etl, password: '${UNSET_PASSWORD}'}\n",
            encoding="utf-8",
        )

        with pytest.raises(ConfigurationError, match="UNSET_PASSWORD"):
            ConfigParser().load_config(path)

    def test_includes(self, tmp_path: Path) -> None:
        (tmp_path / "databases.yaml").write_text(
            yaml.safe_dump({
                'databases': {'warehouse': {'type': 'mysql', 'host': 'db', 'username': 'etl'}},
                'temp_tables': {'ttl': '1 day', 'use_temporary_tables': True},
            }),
            encoding="utf-8",
        )
        path = tmp_path / "dbconnectors.yaml"
        path.write_text(
            yaml.safe_dump({'include': 'databases.yaml', 'temp_tables': {'ttl': '3 days'}}),
            encoding="utf-8",
        )

        config = ConfigParser().load_config(path)

        assert config.databases['warehouse'].host == 'db'
        assert config.temp_tables.ttl == '3 days'
        assert config.temp_tables.use_temporary_tables is True

    def test_missing_include(self, tmp_path: Path, sample_config_dict) -> None:
        sample_config_dict['include'] = ['missing.yaml']
        path = tmp_path / "dbconnectors.yaml"
        path.write_text(yaml.safe_dump(sample_config_dict), encoding="utf-8")

        with pytest.raises(ConfigurationError, match="missing.yaml"):
            ConfigParser().load_config(path)

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "dbconnectors.yaml"
        path.write_text("", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="empty"):
            ConfigParser().load_config(path)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "dbconnectors.yaml"
        path.write_text("databases: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            ConfigParser().load_config(path)

    def test_validation_error(self, tmp_path: Path) -> None:
        path = tmp_path / "dbconnectors.yaml"
        path.write_text("databases:\n  warehouse: {type: mysql}\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="validation failed"):
            ConfigParser().load_config(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            ConfigParser().load_config(tmp_path / "missing.yaml")

    def test_default_location(self, config_file: Path, monkeypatch) -> None:
        monkeypatch.chdir(config_file.parent)
        parser = ConfigParser()
        parser.env_settings.config_file = None

        assert parser.load_config().default_database == 'warehouse'

    def test_config_file_from_environment(self, config_file: Path, tmp_path: Path, monkeypatch) -> None:
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        monkeypatch.setenv("DBCONNECTORS_CONFIG_FILE", str(config_file))
        monkeypatch.chdir(elsewhere)

        assert ConfigParser().load_config().default_database == 'warehouse'


class TestGlobalConfig:
    """Test the cached configuration and the sample file."""

    def test_get_config_is_cached(self, config_file: Path) -> None:
        config = get_config(config_file)

        assert get_config() is config
        assert get_config(config_file, reload=True) is not config

    def test_sample_config_is_valid(self, tmp_path: Path) -> None:
        path = tmp_path / "sample.yaml"

        create_sample_config(path)
        config = ConfigParser().load_config(path)

        assert config.databases['warehouse'].type == DatabaseType.MYSQL
        assert config.databases['analytics'].settings == {'max_execution_time': 900}
        assert config.test_isolation.schemata == {'warehouse': None, 'analytics': None}


class TestIsolationRules:
    """Test how the parser reads test_isolation.schemata."""

    def write(self, tmp_path: Path, document) -> Path:
        path = tmp_path / "dbconnectors.yaml"
        path.write_text(yaml.safe_dump(document), encoding="utf-8")
        return path

    @pytest.mark.parametrize(
        "rule, expected",
        [
            ("events", ["events"]),
            ("events, sessions", ["events", "sessions"]),
            (["`events`", " sessions "], ["events", "sessions"]),
            (None, None),
        ],
    )
    def test_rule_forms(self, tmp_path: Path, sample_config_dict, rule, expected) -> None:
        sample_config_dict['test_isolation']['schemata']['analytics'] = rule

        config = ConfigParser().load_config(self.write(tmp_path, sample_config_dict))

        assert config.test_isolation.schemata['analytics'] == expected

    @pytest.mark.parametrize("rule", [[], "", {"events": True}])
    def test_rule_without_schemas(self, tmp_path: Path, sample_config_dict, rule) -> None:
        sample_config_dict['test_isolation']['schemata']['analytics'] = rule

        with pytest.raises(ConfigurationError, match="test_isolation.schemata.analytics"):
            ConfigParser().load_config(self.write(tmp_path, sample_config_dict))

    def test_schema_claimed_twice(self, tmp_path: Path, sample_config_dict) -> None:
        sample_config_dict['databases']['sales'] = {'type': 'mysql', 'host': 'sales-db', 'username': 'etl'}
        sample_config_dict['databases']['archive'] = {'type': 'mysql', 'host': 'archive-db', 'username': 'etl'}
        sample_config_dict['test_isolation']['schemata'].update({'sales': ['Orders'], 'archive': ['orders']})

        with pytest.raises(ConfigurationError, match="isolated by both 'sales' and 'archive'"):
            ConfigParser().load_config(self.write(tmp_path, sample_config_dict))

    def test_same_schema_on_different_types(self, tmp_path: Path, sample_config_dict) -> None:
        sample_config_dict['test_isolation']['schemata'] = {'warehouse': ['events'], 'analytics': ['events']}

        config = ConfigParser().load_config(self.write(tmp_path, sample_config_dict))

        assert config.test_isolation.schemata == {'warehouse': ['events'], 'analytics': ['events']}

    def test_several_defaults_warn(self, tmp_path: Path, sample_config_dict, caplog) -> None:
        sample_config_dict['databases']['replica'] = {'type': 'mysql', 'host': 'replica-db', 'username': 'etl'}
        sample_config_dict['test_isolation']['schemata']['replica'] = None

        with caplog.at_level(logging.WARNING):
            ConfigParser().load_config(self.write(tmp_path, sample_config_dict))

        assert "'replica' is used" in caplog.text


class TestIncludes:
    """Test include chains."""

    def test_nested_includes(self, tmp_path: Path, sample_config_dict) -> None:
        temp_tables = sample_config_dict.pop('temp_tables')
        (tmp_path / "temp.yaml").write_text(yaml.safe_dump({'temp_tables': temp_tables}), encoding="utf-8")
        (tmp_path / "databases.yaml").write_text(
            yaml.safe_dump({'include': 'temp.yaml', 'databases': sample_config_dict.pop('databases')}),
            encoding="utf-8",
        )
        path = tmp_path / "dbconnectors.yaml"
        path.write_text(yaml.safe_dump({'include': ['databases.yaml'], **sample_config_dict}), encoding="utf-8")

        config = ConfigParser().load_config(path)

        assert set(config.databases) == {'warehouse', 'analytics'}
        assert config.temp_tables.ttl == '7 days'

    def test_circular_include(self, tmp_path: Path) -> None:
        (tmp_path / "a.yaml").write_text("include: b.yaml\n", encoding="utf-8")
        (tmp_path / "b.yaml").write_text("include: a.yaml\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Circular include"):
            ConfigParser().load_config(tmp_path / "a.yaml")

    def test_include_name_from_environment(self, tmp_path: Path, sample_config_dict, monkeypatch) -> None:
        monkeypatch.setenv("CONFIG_STAGE", "staging")
        (tmp_path / "staging.yaml").write_text(yaml.safe_dump(sample_config_dict), encoding="utf-8")
        path = tmp_path / "dbconnectors.yaml"
        path.write_text("include: ${CONFIG_STAGE}.yaml\n", encoding="utf-8")

        assert ConfigParser().load_config(path).default_database == 'warehouse'

    def test_document_must_be_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "dbconnectors.yaml"
        path.write_text("- warehouse\n- analytics\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="must contain a mapping"):
            ConfigParser().load_config(path)
