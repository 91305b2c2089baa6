"""Configuration management for dbconnectors."""

from dbconnectors.config.models import (
    DatabaseType,
    DatabaseConfig,
    ConnectionPoolConfig,
    IsolationSettings,
    TempTableSettings,
    DBConnectorsConfig,
    EnvironmentSettings,
)
from dbconnectors.config.parser import (
    ConfigParser,
    get_config,
    validate_config_file,
    create_sample_config,
)

__all__ = [
    # Models
    "DatabaseType",
    "DatabaseConfig",
    "ConnectionPoolConfig",
    "IsolationSettings",
    "TempTableSettings",
    "DBConnectorsConfig",
    "EnvironmentSettings",
    # Parser
    "ConfigParser",
    "get_config",
    "validate_config_file",
    "create_sample_config",
]
