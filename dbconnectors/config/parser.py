"""Loading of dbconnectors YAML files.

A configuration file goes through four steps before it becomes a
``DBConnectorsConfig``:

1. ``include:`` files are merged in, depth first; the including file wins.
2. ``${VAR}`` and ``${VAR:-default}`` references are replaced from the environment.
3. ``test_isolation.schemata`` rules are normalised: a rule may be written as a
   list, a single schema or a comma separated string.
4. The result is validated by the pydantic models, then checked for routing
   conflicts between isolation rules.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

import yaml
from pydantic import ValidationError

from dbconnectors.config.models import DBConnectorsConfig, EnvironmentSettings
from dbconnectors.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

CONFIG_FILE_NAMES = ("dbconnectors.yaml", "dbconnectors.yml", "config/dbconnectors.yaml")
ENV_REFERENCE = re.compile(r'\$\{([^}]+)\}')

SAMPLE_CONFIG: Dict[str, Any] = {
    'databases': {
        'warehouse': {
            'type': 'mysql',
            'host': 'localhost',
            'port': 3306,
            'username': 'etl',
            'password': '${MYSQL_PASSWORD:-etl_password}',
            'temp_table_schema': 'scratch',
            'options': {'charset': 'utf8mb4', 'connect_timeout': 20},
        },
        'analytics': {
            'type': 'clickhouse',
            'host': 'localhost',
            'port': 8123,
            'protocol': 'http',
            'username': 'default',
            'password': '${CLICKHOUSE_PASSWORD:-}',
            'settings': {'max_execution_time': 900},
        },
    },
    'connection_pools': {
        'default': {'min_connections': 1, 'max_connections': 5, 'timeout': 30},
    },
    'default_database': 'warehouse',
    'test_isolation': {
        'enabled': True,
        'auto_cleanup': True,
        # null makes a database the default connector of its type
        'schemata': {'warehouse': None, 'analytics': None},
    },
    'temp_tables': {'ttl': '7 days', 'use_temporary_tables': False},
}


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two mappings; values of ``override`` win."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def expand_env_vars(value: Any) -> Any:
    """Replace ``${VAR}`` / ``${VAR:-default}`` references in every string of a document.

    Raises:
        ConfigurationError: If a referenced variable without default is unset.
    """
    if isinstance(value, dict):
        return {key: expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    if not isinstance(value, str):
        return value

    def substitute(match) -> str:
        name, has_default, default = match.group(1).partition(':-')
        resolved = os.getenv(name.strip())
        if resolved is not None:
            return resolved
        if has_default:
            return default.strip()
        raise ConfigurationError(f"Required environment variable '{name.strip()}' is not set")

    return ENV_REFERENCE.sub(substitute, value)


def normalize_schema_rule(db_name: str, rule: Any) -> Optional[List[str]]:
    """Turn one ``test_isolation.schemata`` value into a list of schema names.

    None stays None (default connector). Backticks and blanks around names
    are removed.

    Raises:
        ConfigurationError: If the rule is not a string or list, or names no schema.
    """
    if rule is None:
        return None
    if isinstance(rule, str):
        rule = rule.split(',')
    if not isinstance(rule, list):
        raise ConfigurationError(
            f"test_isolation.schemata.{db_name} must be null, a schema name or a list of schemas"
        )

    schemata = [str(schema).strip(' `') for schema in rule]
    schemata = [schema for schema in schemata if schema]
    if not schemata:
        raise ConfigurationError(
            f"test_isolation.schemata.{db_name} lists no schemas; use null for a default connector"
        )
    return schemata


def check_isolation_routing(config: DBConnectorsConfig) -> None:
    """Reject isolation rules that make schema routing ambiguous.

    Within one database type a schema may be claimed by a single database.
    Several defaults of one type are allowed but only the last one is used.

    Raises:
        ConfigurationError: If two databases of the same type claim a schema.
    """
    claimed: Dict[str, Dict[str, str]] = {}
    defaults: Dict[str, List[str]] = {}

    for db_name, rule in config.test_isolation.schemata.items():
        db_type = config.databases[db_name].type.value
        if rule is None:
            defaults.setdefault(db_type, []).append(db_name)
            continue

        owners = claimed.setdefault(db_type, {})
        for schema in rule:
            owner = owners.setdefault(schema.lower(), db_name)
            if owner != db_name:
                raise ConfigurationError(
                    f"Schema '{schema}' is isolated by both '{owner}' and '{db_name}' ({db_type})"
                )

    for db_type, names in defaults.items():
        if len(names) > 1:
            logger.warning(f"Several default {db_type} connectors {names}; '{names[-1]}' is used")


class ConfigParser:
    """Reads dbconnectors configuration files."""

    def __init__(self) -> None:
        self.env_settings = EnvironmentSettings()

    def load_config(self, config_path: Optional[PathLike] = None) -> DBConnectorsConfig:
        """Load, expand and validate a configuration file.

        Args:
            config_path: Path to the file. If None, ``DBCONNECTORS_CONFIG_FILE``
                and then the default locations in the working directory are tried.

        Returns:
            Validated DBConnectorsConfig instance.

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid.
        """
        config_file = self.locate_config_file(config_path)
        logger.debug(f"Loading configuration from {config_file}")

        document = self._read_with_includes(config_file, set())
        document = expand_env_vars(document)
        self._normalize_isolation(document)

        try:
            config = DBConnectorsConfig(**document)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}") from e
        except TypeError as e:
            raise ConfigurationError(f"Configuration in '{config_file}' is malformed: {e}") from e

        check_isolation_routing(config)
        logger.info(f"Loaded configuration with databases {list(config.databases)} from {config_file}")
        return config

    def locate_config_file(self, config_path: Optional[PathLike] = None) -> Path:
        """Return the configuration file to load.

        Raises:
            ConfigurationError: If an explicit path does not exist or no default file is found.
        """
        if config_path:
            path = Path(config_path)
            if not path.exists():
                raise ConfigurationError(f"Configuration file '{config_path}' not found")
            return path

        if self.env_settings.config_file:
            path = Path(self.env_settings.config_file)
            if path.exists():
                return path
            logger.warning(f"DBCONNECTORS_CONFIG_FILE points to missing file '{path}'")

        candidates = [Path.cwd() / name for name in CONFIG_FILE_NAMES]
        for candidate in candidates:
            if candidate.exists():
                return candidate

        raise ConfigurationError(f"No configuration file found in default locations: {candidates}")

    def _read_document(self, path: Path, included: bool = False) -> Dict[str, Any]:
        label = "included file" if included else "configuration file"
        try:
            with open(path, 'r', encoding='utf-8') as file:
                document = yaml.safe_load(file)
        except FileNotFoundError as e:
            raise ConfigurationError(f"{label.capitalize()} '{path}' not found") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {label} '{path}': {e}") from e

        if not document:
            if included:
                return {}
            raise ConfigurationError(f"Configuration file '{path}' is empty")
        if not isinstance(document, dict):
            raise ConfigurationError(f"The {label} '{path}' must contain a mapping")
        return document

    def _read_with_includes(self, path: Path, seen: Set[Path], included: bool = False) -> Dict[str, Any]:
        resolved = path.resolve()
        if resolved in seen:
            raise ConfigurationError(f"Circular include of '{path}'")
        seen = seen | {resolved}

        document = self._read_document(path, included)
        includes = document.pop('include', [])
        if not isinstance(includes, list):
            includes = [includes]

        merged: Dict[str, Any] = {}
        for include in includes:
            include_path = path.parent / str(expand_env_vars(include))
            logger.debug(f"Including {include_path} into {path}")
            merged = merge_config(merged, self._read_with_includes(include_path, seen, included=True))

        return merge_config(merged, document)

    def _normalize_isolation(self, document: Dict[str, Any]) -> None:
        isolation = document.get('test_isolation')
        if not isinstance(isolation, dict) or not isinstance(isolation.get('schemata'), dict):
            return

        isolation['schemata'] = {
            db_name: normalize_schema_rule(db_name, rule)
            for db_name, rule in isolation['schemata'].items()
        }

    def validate_config_file(self, config_path: PathLike) -> bool:
        """Validate a configuration file.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        self.load_config(config_path)
        return True

    def create_sample_config(self, output_path: PathLike) -> None:
        """Write a sample configuration with one MySQL and one ClickHouse database."""
        with open(output_path, 'w', encoding='utf-8') as file:
            yaml.safe_dump(SAMPLE_CONFIG, file, default_flow_style=False, sort_keys=False)
        logger.info(f"Sample configuration written to {output_path}")


# Global configuration instance
_config_parser = ConfigParser()
_loaded_config: Optional[DBConnectorsConfig] = None


def get_config(config_path: Optional[PathLike] = None, reload: bool = False) -> DBConnectorsConfig:
    """Return the process wide configuration, loading it on first use or on ``reload``."""
    global _loaded_config

    if _loaded_config is None or reload:
        _loaded_config = _config_parser.load_config(config_path)

    return _loaded_config


def validate_config_file(config_path: PathLike) -> bool:
    """Validate a configuration file."""
    return _config_parser.validate_config_file(config_path)


def create_sample_config(output_path: PathLike) -> None:
    """Create a sample configuration file."""
    _config_parser.create_sample_config(output_path)
