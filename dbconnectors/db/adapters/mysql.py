"""MySQL database connector."""

import inspect
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote_plus

from pymysql.converters import escape_string
from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from dbconnectors.config.models import ConnectionPoolConfig, DatabaseConfig, DatabaseType
from dbconnectors.db.base import BaseConnector, QueryResult
from dbconnectors.db.schema import TableCollection
from dbconnectors.exceptions import DatabaseError, ExecutionError

logger = logging.getLogger(__name__)


class MySQLConnector(BaseConnector):
    """MySQL connector on top of a single SQLAlchemy connection in autocommit mode."""

    connector_key = DatabaseType.MYSQL.value

    DEFAULT_PORT = 3306
    DEFAULT_CONNECTION_TIMEOUT = 20
    DEFAULT_TEMP_SCHEMA = "test"

    def __init__(
        self,
        config: DatabaseConfig,
        pool_config: Optional[ConnectionPoolConfig] = None,
        table_handler=None,
    ) -> None:
        """Initialize MySQL connector."""
        super().__init__(config, pool_config, table_handler)

        if self.config.port is None:
            self.config.port = self.DEFAULT_PORT

        self._engine: Optional[Engine] = None
        self._connection: Optional[Connection] = None
        self._in_transaction = False
        self._last_insert_id: Optional[int] = None
        self._last_affected_rows = 0

    def get_driver_name(self) -> str:
        """Get the driver name for MySQL."""
        return "pymysql"

    def get_credentials(self) -> Dict[str, Any]:
        credentials = super().get_credentials()
        credentials['temp_table_schema'] = self.config.temp_table_schema
        return credentials

    def build_connection_string(self) -> str:
        """Build MySQL connection string.

        Raises:
            DatabaseError: If required configuration is missing.
        """
        if not all([self.config.host, self.config.username]):
            raise DatabaseError("MySQL requires host and username", database_type=self.connector_key)

        password_encoded = quote_plus(self.config.password or "")

        connection_string = (
            f"mysql+pymysql://{self.config.username}:{password_encoded}@"
            f"{self.config.host}:{self.config.port}/{self.config.database or ''}"
        )

        options = {
            key: value for key, value in self.config.options.items() if key != 'connect_timeout'
        }
        if 'charset' not in options:
            options['charset'] = 'utf8mb4'

        option_string = "&".join([f"{k}={v}" for k, v in options.items()])
        return f"{connection_string}?{option_string}"

    def get_engine(self) -> Engine:
        """Get or create SQLAlchemy engine.

        Raises:
            DatabaseError: If engine creation fails.
        """
        if self._engine is None:
            try:
                self._engine = create_engine(
                    self.build_connection_string(),
                    pool_size=self.pool_config.max_connections,
                    max_overflow=0,
                    pool_timeout=self.pool_config.timeout,
                    pool_recycle=self.pool_config.pool_recycle,
                    pool_pre_ping=self.pool_config.pool_pre_ping,
                    connect_args={
                        'connect_timeout': self.config.options.get(
                            'connect_timeout', self.DEFAULT_CONNECTION_TIMEOUT
                        ),
                    },
                )
            except DatabaseError:
                raise
            except Exception as e:
                raise DatabaseError(
                    f"Failed to create database engine: {e}", database_type=self.connector_key
                ) from e

        return self._engine

    def connect(self) -> None:
        """Open the connection used for every following statement.

        Raises:
            DatabaseError: If the server cannot be reached.
        """
        if self._connection is not None:
            return

        try:
            connection = self.get_engine().connect()
        except SQLAlchemyError as e:
            logger.error(
                f"Cannot connect to the database {self.config.host}:{self.config.port} "
                f"as {self.config.username}"
            )
            raise DatabaseError(
                f"Cannot connect to the database {self.config.host}:{self.config.port}: {e}",
                database_type=self.connector_key,
            ) from e

        # no_parameters keeps '%' in statements away from pymysql's parameter interpolation
        self._connection = connection.execution_options(
            isolation_level="AUTOCOMMIT", no_parameters=True
        )

    def close(self) -> None:
        """Close the connection and dispose of the engine."""
        if self._connection is not None:
            try:
                self._connection.close()
            finally:
                self._connection = None
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
        self._in_transaction = False

    def is_connected(self) -> bool:
        return self._connection is not None

    def _get_connection(self) -> Connection:
        if self._connection is None:
            self.connect()
        return self._connection

    def _run(self, statement: str):
        try:
            return self._get_connection().exec_driver_sql(statement)
        except SQLAlchemyError as e:
            raise ExecutionError(
                f"Error on execution ({e}) on query: {statement}",
                statement=statement,
                database_type=self.connector_key,
            ) from e

    def _execute_write(self, statement: str) -> int:
        result = self._run(statement)
        if result.returns_rows:
            result.close()
            raise DatabaseError(
                f"Read operation in write function: {statement}", database_type=self.connector_key
            )

        self._last_affected_rows = max(result.rowcount, 0)
        self._last_insert_id = result.lastrowid
        return self._last_affected_rows

    def _execute_read(self, statement: str, ignore_write_queries: bool) -> QueryResult:
        result = self._run(statement)
        if not result.returns_rows:
            self._last_affected_rows = max(result.rowcount, 0)
            if not ignore_write_queries:
                raise DatabaseError(
                    f"Write operation in read function: {statement}",
                    database_type=self.connector_key,
                )
            return QueryResult(rows_affected=self._last_affected_rows)

        columns = list(result.keys())
        return QueryResult.from_tuples(columns, result.fetchall())

    def escape(self, value: Any) -> str:
        if value is None:
            return 'NULL'
        if isinstance(value, bool):
            return str(int(value))
        return escape_string(str(value))

    def begin_transaction(self) -> bool:
        """Start a transaction; returns False if one is already open."""
        if self._in_transaction:
            return False
        self.exec('START TRANSACTION')
        self._in_transaction = True
        return True

    def commit(self, context: Optional[str] = None, additional_info: Optional[str] = None) -> bool:
        """Commit the open transaction, tagging the statement with its caller."""
        self._in_transaction = False
        self.exec(f"COMMIT /*{self._comment(context, additional_info)}*/")
        return True

    def rollback(self, context: Optional[str] = None, additional_info: Optional[str] = None) -> bool:
        """Roll back the open transaction, tagging the statement with its caller."""
        self._in_transaction = False
        self.exec(f"ROLLBACK /*{self._comment(context, additional_info)}*/")
        return True

    def in_transaction(self) -> bool:
        return self._in_transaction

    @staticmethod
    def _comment(context: Optional[str], additional_info: Optional[str]) -> str:
        caller = inspect.stack()[2]
        call_site = f"{caller.filename}: (l {caller.lineno})"
        text = f"{context or ''} {additional_info or ''} CallStack: {call_site}"
        # a stray '*/' would end the comment early
        return text.replace('*/', '* /')

    def get_insert_id(self) -> Optional[int]:
        return self._last_insert_id

    def get_affected_rows(self) -> int:
        return self._last_affected_rows

    def clone_table_structure(
        self, source_table: str, destination_table: str, temporary: bool = False
    ) -> None:
        temporary_statement = " TEMPORARY" if temporary else ""
        self.exec(
            f"CREATE{temporary_statement} TABLE IF NOT EXISTS {destination_table} LIKE {source_table}"
        )

    def list_tables(self, where_condition: str = "true") -> TableCollection:
        """List all tables matching a WHERE condition on information_schema.TABLES."""
        sql = f"""
            SELECT `TABLE_SCHEMA`, `TABLE_NAME`, `ENGINE`, `TABLE_ROWS`
            FROM `information_schema`.`TABLES`
            WHERE {where_condition}
        """
        return TableCollection.from_mysql_table_data(self, self.query_all(sql))

    def list_tables_in_database(self, database: str) -> TableCollection:
        return self.list_tables(f"`TABLE_SCHEMA` = '{self.escape(database)}'")

    def has_table(
        self, schema: str, table_name: Optional[str] = None, is_temporary_table: bool = False
    ) -> bool:
        if table_name is not None:
            condition = (
                f"`TABLE_SCHEMA` = '{self.escape(schema)}' "
                f"AND `TABLE_NAME` = '{self.escape(table_name)}'"
            )
        else:
            condition = f"CONCAT(`TABLE_SCHEMA`, '.', `TABLE_NAME`) = '{self.escape(schema)}'"

        source = 'TEMPORARY_TABLES' if is_temporary_table else 'TABLES'
        row = self.query_first(
            f"SELECT COUNT(*) AS count FROM `information_schema`.`{source}` WHERE {condition}"
        )
        return int(row['count']) > 0

    def get_column_list(self, schema_name: str, table_name: Optional[str] = None) -> List[str]:
        if table_name is None:
            condition = schema_name
        else:
            condition = (
                f"TABLE_SCHEMA = '{self.escape(schema_name)}' "
                f"AND TABLE_NAME = '{self.escape(table_name)}'"
            )

        return self.query_all_flat(f"""
            SELECT COLUMN_NAME
            FROM information_schema.COLUMNS
            WHERE {condition}
            ORDER BY ORDINAL_POSITION ASC
        """)

    def get_column_count(self, schema_name: str, table_name: str) -> int:
        row = self.query_first(f"""
            SELECT COUNT(*) AS count
            FROM information_schema.COLUMNS
            WHERE TABLE_SCHEMA = '{self.escape(schema_name)}'
              AND TABLE_NAME = '{self.escape(table_name)}'
        """)
        return int(row['count'])

    def get_key_column_names(
        self, table: str, key_name: str = 'PRIMARY', is_temporary_table: bool = False
    ) -> List[str]:
        """Return the columns of an index of a schema-qualified table in index order.

        Raises:
            DatabaseError: If the table does not exist.
        """
        schema_name, table_name = table.split('.', 1)
        if not self.has_table(schema_name, table_name, is_temporary_table):
            raise DatabaseError(f"Table '{table}' does not exist in DB!", database_type=self.connector_key)

        indices = self.query_all(
            f"SHOW INDEXES FROM {table} WHERE Key_name = '{self.escape(key_name)}'"
        )
        indices.sort(key=lambda index: int(index['Seq_in_index']))
        return [index['Column_name'] for index in indices]

    def get_mutual_columns_array(self, table1: str, table2: str) -> List[str]:
        """Columns present in both schema-qualified tables, in the order of the first."""
        columns1 = self.get_column_list(
            f"CONCAT(`TABLE_SCHEMA`, '.', `TABLE_NAME`) = '{self.escape(table1)}'"
        )
        columns2 = set(self.get_column_list(
            f"CONCAT(`TABLE_SCHEMA`, '.', `TABLE_NAME`) = '{self.escape(table2)}'"
        ))
        return [column for column in columns1 if column in columns2]

    def get_mutual_columns_list(self, table1: str, table2: str) -> str:
        return ','.join(self.get_mutual_columns_array(table1, table2))

    def get_temporary_schema(self, temporary_table: bool) -> str:
        return self.config.temp_table_schema or self.DEFAULT_TEMP_SCHEMA

    def get_default_storage_engine(self) -> str:
        return 'InnoDB'
