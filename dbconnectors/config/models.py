"""Pydantic models for dbconnectors configuration."""

import re
from enum import Enum
from typing import Any, Dict, List, Optional

import pandas as pd
from pydantic import (
    BaseModel,
    Field,
    field_validator,
    model_validator,
    AliasChoices,
    ConfigDict,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


DURATION_UNITS = ('seconds', 'minutes', 'hours', 'days', 'weeks', 'months', 'years')
DURATION_PART = re.compile(r'\s*(\d+)\s*([A-Za-z]+)\s*')


def parse_duration(value: str) -> pd.DateOffset:
    """Parse a duration like ``"7 days"``, ``"2 weeks"`` or ``"1 day 12 hours"``.

    Units may be singular or plural, from seconds up to years. Months and
    years are calendar offsets, so subtracting ``"1 month"`` from March 31st
    lands on the last day of February.

    Raises:
        ValueError: If the value is not a positive duration.
    """
    text = str(value).strip()
    if not text or not re.fullmatch(rf'(?:{DURATION_PART.pattern})+', text):
        raise ValueError(f"Invalid duration '{value}', expected '<number> <unit>'")

    amounts: Dict[str, int] = {}
    for count, unit in DURATION_PART.findall(text):
        unit = unit.lower()
        if not unit.endswith('s'):
            unit += 's'
        if unit not in DURATION_UNITS:
            raise ValueError(f"Unknown unit '{unit}' in duration '{value}'")
        amounts[unit] = amounts.get(unit, 0) + int(count)

    if not any(amounts.values()):
        raise ValueError(f"Duration must be positive, got '{value}'")
    return pd.DateOffset(**amounts)


class DatabaseType(str, Enum):
    """Supported database types."""
    MYSQL = "mysql"
    CLICKHOUSE = "clickhouse"


class ConnectionPoolConfig(BaseModel):
    """Connection pool settings handed to the SQLAlchemy engine."""
    min_connections: int = Field(default=1, ge=0, le=100, description="Minimum number of connections to maintain")
    max_connections: int = Field(default=5, ge=1, le=1000, description="Maximum number of connections allowed")
    timeout: int = Field(default=30, ge=1, le=3600, description="Connection timeout in seconds")
    pool_recycle: int = Field(default=3600, ge=300, le=86400, description="Connection recycle time in seconds")
    pool_pre_ping: bool = Field(default=True, description="Validate connections before use")

    @model_validator(mode='after')
    def validate_connection_limits(self):
        """Ensure min_connections <= max_connections."""
        if self.min_connections > self.max_connections:
            raise ValueError("min_connections must be <= max_connections")
        return self


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    model_config = ConfigDict(populate_by_name=True)

    type: DatabaseType = Field(validation_alias=AliasChoices("type", "driver"))
    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    protocol: Optional[str] = None  # ClickHouse HTTP interface only
    temp_table_schema: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)
    # Passed as query parameters to the ClickHouse HTTP interface
    settings: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('port')
    def validate_port(cls, v):
        """Validate port number range."""
        if v is not None and (v < 1 or v > 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator('protocol')
    def validate_protocol(cls, v):
        if v is not None and v not in ('http', 'https'):
            raise ValueError("Protocol must be 'http' or 'https'")
        return v

    @model_validator(mode='after')
    def validate_database_config(self):
        """Validate database-specific required fields."""
        for field in ('host', 'username'):
            if not getattr(self, field):
                raise ValueError(f"{self.type.value} databases require '{field}' field")
        if self.protocol and self.type != DatabaseType.CLICKHOUSE:
            raise ValueError("'protocol' is only supported for clickhouse databases")
        return self


class IsolationSettings(BaseModel):
    """Settings for redirecting production tables into ephemeral test schemas."""

    enabled: bool = Field(default=True, description="Rewrite statements while tests run")
    auto_cleanup: bool = Field(default=True, description="Drop test schemas when the process exits")
    schemata: Dict[str, Optional[List[str]]] = Field(
        default_factory=dict,
        description="Database name -> schemas served by it (null for the default connector)",
    )


class TempTableSettings(BaseModel):
    """Settings for scratch tables managed by TempTableHandler."""
    ttl: str = Field(default="7 days", description="Retention period before GC drops a table")
    use_temporary_tables: bool = Field(default=False)

    @field_validator('ttl')
    def validate_ttl(cls, v):
        """Ensure the ttl is a positive duration."""
        parse_duration(v)
        return v


class DBConnectorsConfig(BaseModel):
    """Main configuration model for dbconnectors."""
    databases: Dict[str, DatabaseConfig]
    connection_pools: Dict[str, ConnectionPoolConfig] = Field(
        default_factory=lambda: {"default": ConnectionPoolConfig()}
    )
    default_database: Optional[str] = None
    test_isolation: IsolationSettings = Field(default_factory=IsolationSettings)
    temp_tables: TempTableSettings = Field(default_factory=TempTableSettings)

    @model_validator(mode='after')
    def validate_default_database(self):
        """Ensure default_database exists in databases."""
        if self.default_database and self.default_database not in self.databases:
            raise ValueError(f"default_database '{self.default_database}' not found in databases")
        return self

    @model_validator(mode='after')
    def validate_isolation_schemata(self):
        """Ensure every isolation rule refers to a configured database."""
        unknown = set(self.test_isolation.schemata) - set(self.databases)
        if unknown:
            raise ValueError(f"test_isolation.schemata refers to unknown databases: {sorted(unknown)}")
        return self

    @model_validator(mode='after')
    def set_default_database(self):
        """Set default database if not specified."""
        if not self.default_database and self.databases:
            self.default_database = next(iter(self.databases))
        return self


class EnvironmentSettings(BaseSettings):
    """Environment-specific settings."""
    log_level: str = Field(default="INFO")
    debug: bool = Field(default=False)
    config_file: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(env_prefix="DBCONNECTORS_", case_sensitive=False)
