"""Database connectivity, query execution and schema introspection."""

from dbconnectors.db.base import BaseConnector, QueryResult
from dbconnectors.db.schema import DatabaseTable, TableCollection
from dbconnectors.db.connection import (
    ConnectionManager,
    ConnectorFactory,
    get_connection_manager,
    set_connection_manager,
)
from dbconnectors.db.adapters import (
    ClickHouseConnector,
    MySQLConnector,
)

__all__ = [
    # Base classes
    "BaseConnector",
    "QueryResult",
    # Schema objects
    "DatabaseTable",
    "TableCollection",
    # Connection management
    "ConnectionManager",
    "ConnectorFactory",
    "get_connection_manager",
    "set_connection_manager",
    # Database connectors
    "ClickHouseConnector",
    "MySQLConnector",
]
