"""Database connection management and connector factory."""

import logging
import time
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type

from dbconnectors.config.models import ConnectionPoolConfig, DatabaseConfig, DatabaseType, DBConnectorsConfig
from dbconnectors.db.adapters.clickhouse import ClickHouseConnector
from dbconnectors.db.adapters.mysql import MySQLConnector
from dbconnectors.db.base import BaseConnector
from dbconnectors.exceptions import DatabaseError

if TYPE_CHECKING:
    from dbconnectors.testing.table_handler import TableHandler

logger = logging.getLogger(__name__)


class ConnectorFactory:
    """Factory for creating database connectors."""

    _connectors: Dict[DatabaseType, Type[BaseConnector]] = {
        DatabaseType.MYSQL: MySQLConnector,
        DatabaseType.CLICKHOUSE: ClickHouseConnector,
    }

    @classmethod
    def create_connector(
        cls,
        config: DatabaseConfig,
        pool_config: Optional[ConnectionPoolConfig] = None,
        table_handler: Optional["TableHandler"] = None,
    ) -> BaseConnector:
        """Create a database connector based on configuration.

        Args:
            config: Database configuration.
            pool_config: Connection pool configuration.
            table_handler: Test isolation session the connector rewrites through.

        Returns:
            Database connector instance.

        Raises:
            DatabaseError: If database type is not supported.
        """
        connector_class = cls._connectors.get(config.type)
        if not connector_class:
            supported_types = [db_type.value for db_type in cls._connectors]
            raise DatabaseError(
                f"Unsupported database type: {config.type}. "
                f"Supported types: {supported_types}"
            )

        return connector_class(config, pool_config, table_handler=table_handler)

    @classmethod
    def register_connector(cls, db_type: DatabaseType, connector_class: Type[BaseConnector]) -> None:
        """Register a custom connector class for a database type."""
        cls._connectors[db_type] = connector_class

    @classmethod
    def get_supported_types(cls) -> List[DatabaseType]:
        """Get list of supported database types."""
        return list(cls._connectors.keys())


class ConnectionManager:
    """Manages named database connectors built from configuration."""

    def __init__(
        self, config: DBConnectorsConfig, table_handler: Optional["TableHandler"] = None
    ) -> None:
        """Initialize connection manager.

        Args:
            config: dbconnectors configuration.
            table_handler: Session attached to every connector created from now on.
        """
        self.config = config
        self.table_handler = table_handler
        self._connectors: Dict[str, BaseConnector] = {}
        self._factory = ConnectorFactory()

    def get_connector(self, db_name: Optional[str] = None) -> BaseConnector:
        """Get database connector by name.

        Args:
            db_name: Database connection name. If None, uses default database.

        Returns:
            Database connector instance.

        Raises:
            DatabaseError: If database connection is not found or creation fails.
        """
        if db_name is None:
            db_name = self.config.default_database

        if not db_name:
            raise DatabaseError("No database specified and no default database configured")

        if db_name not in self.config.databases:
            available_dbs = list(self.config.databases.keys())
            raise DatabaseError(
                f"Database '{db_name}' not found in configuration. "
                f"Available databases: {available_dbs}"
            )

        if db_name in self._connectors:
            return self._connectors[db_name]

        try:
            db_config = self.config.databases[db_name]
            pool_config = self.config.connection_pools.get("default", ConnectionPoolConfig())

            connector = self._factory.create_connector(db_config, pool_config, self.table_handler)
            self._connectors[db_name] = connector

            return connector

        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError(f"Failed to create connector for database '{db_name}': {e}") from e

    def create_table_handler(self) -> "TableHandler":
        """Build a TableHandler from the ``test_isolation`` section.

        Every database listed under ``schemata`` is registered with its schema
        rules (null makes it the default connector of its type) and the
        handler is attached to all connectors of this manager.
        """
        from dbconnectors.testing.table_handler import TableHandler

        isolation = self.config.test_isolation
        handler = TableHandler(auto_cleanup=isolation.auto_cleanup)
        if not isolation.enabled:
            handler.disable()

        self.table_handler = handler
        for connector in self._connectors.values():
            connector.attach_table_handler(handler)

        for db_name, schemata in isolation.schemata.items():
            handler.register_connector(self.get_connector(db_name), schemata=schemata)

        return handler

    def test_connection(self, db_name: Optional[str] = None) -> Dict[str, Any]:
        """Test database connection.

        Returns:
            Connection test result with timing and status information.
        """
        start_time = time.time()

        try:
            connector = self.get_connector(db_name)
            connector.test_connection()

            end_time = time.time()

            return {
                'database': db_name or self.config.default_database,
                'status': 'success',
                'message': 'Connection successful',
                'response_time': round((end_time - start_time) * 1000, 2),
                'database_type': connector.config.type.value,
            }

        except DatabaseError as e:
            end_time = time.time()
            return {
                'database': db_name or self.config.default_database,
                'status': 'failed',
                'message': str(e),
                'response_time': round((end_time - start_time) * 1000, 2),
                'error': type(e).__name__,
            }

    def test_all_connections(self) -> Dict[str, Dict[str, Any]]:
        """Test all configured database connections."""
        results = {}

        for db_name in self.config.databases.keys():
            results[db_name] = self.test_connection(db_name)

        return results

    def close_all_connections(self) -> None:
        """Close all database connections and cleanup resources."""
        for db_name in list(self._connectors):
            self.close_connection(db_name)

    def close_connection(self, db_name: str) -> None:
        """Close specific database connection."""
        connector = self._connectors.pop(db_name, None)
        if connector is None:
            return

        try:
            connector.close()
        except Exception as e:
            logger.warning(f"Cannot close connector '{db_name}': {e}")

    def get_connection_status(self) -> Dict[str, Any]:
        """Get status of all database connections."""
        status = {
            'total_configured': len(self.config.databases),
            'total_active': len(self._connectors),
            'default_database': self.config.default_database,
            'connections': {},
        }

        for db_name in self.config.databases.keys():
            status['connections'][db_name] = {
                'active': db_name in self._connectors,
                'type': self.config.databases[db_name].type.value,
            }

        return status


# Global connection manager instance
_connection_manager: Optional[ConnectionManager] = None


def get_connection_manager(config: Optional[DBConnectorsConfig] = None) -> ConnectionManager:
    """Get the global connection manager instance.

    Args:
        config: dbconnectors configuration. If None, attempts to load from global config.

    Raises:
        DatabaseError: If no configuration is available.
    """
    global _connection_manager

    if _connection_manager is None:
        if config is None:
            try:
                from dbconnectors.config import get_config
                config = get_config()
            except Exception as e:
                raise DatabaseError("No configuration available for connection manager") from e

        _connection_manager = ConnectionManager(config)

    return _connection_manager


def set_connection_manager(manager: Optional[ConnectionManager]) -> None:
    """Set the global connection manager instance (None resets it)."""
    global _connection_manager
    _connection_manager = manager
