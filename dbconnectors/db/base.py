"""Base connector contract shared by the MySQL and ClickHouse backends."""

import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Dict, List, Optional, Sequence

import pandas as pd

from dbconnectors.config.models import ConnectionPoolConfig, DatabaseConfig
from dbconnectors.db.schema import TableCollection
from dbconnectors.exceptions import DatabaseError

if TYPE_CHECKING:
    from dbconnectors.testing.table_handler import TableHandler

logger = logging.getLogger(__name__)


class QueryResult:
    """Container for query results with metadata."""

    def __init__(
        self,
        rows: Optional[List[Dict[str, Any]]] = None,
        columns: Optional[List[str]] = None,
        rows_affected: Optional[int] = None,
        execution_time: Optional[float] = None,
    ) -> None:
        """Initialize query result.

        Args:
            rows: Result rows as column -> value mappings, in backend order.
            columns: Column names for the result.
            rows_affected: Number of rows affected by a write statement.
            execution_time: Query execution time in seconds.
        """
        self.columns = columns or []
        self.rows_affected = rows_affected or 0
        self.execution_time = execution_time or 0.0
        self._rows = rows or []
        self._pointer = 0
        self._data: Optional[pd.DataFrame] = None

    @classmethod
    def from_tuples(
        cls,
        columns: Sequence[str],
        tuples: Sequence[Sequence[Any]],
        execution_time: Optional[float] = None,
    ) -> "QueryResult":
        columns = list(columns)
        rows = [dict(zip(columns, values)) for values in tuples]
        return cls(rows=rows, columns=columns, execution_time=execution_time)

    @property
    def data(self) -> pd.DataFrame:
        """Result data as DataFrame, built on first access."""
        if self._data is None:
            self._data = pd.DataFrame(self._rows, columns=self.columns)
        return self._data

    @property
    def is_empty(self) -> bool:
        """Check if result is empty."""
        return not self._rows

    @property
    def row_count(self) -> int:
        """Get number of rows in result."""
        return len(self._rows)

    def fetch_row(self) -> Optional[Dict[str, Any]]:
        """Return the next row as a mapping, or None once exhausted."""
        if self._pointer >= len(self._rows):
            return None
        row = self._rows[self._pointer]
        self._pointer += 1
        return dict(row)

    def records(self) -> List[Dict[str, Any]]:
        """Return all rows as mappings, independent of the fetch pointer."""
        return [dict(row) for row in self._rows]

    def rewind(self) -> None:
        self._pointer = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary."""
        return {
            'data': self.records(),
            'rows_affected': self.rows_affected,
            'execution_time': self.execution_time,
            'columns': self.columns,
            'row_count': self.row_count,
            'is_empty': self.is_empty,
        }


class BaseConnector(ABC):
    """Base class for schema-aware database connectors.

    Every statement sent through exec() or query() is first handed to the
    attached TableHandler (if any) so that references to tracked production
    tables are redirected into the ephemeral test schema.
    """

    #: Identifies the logical connector class inside a TableHandler.
    connector_key: ClassVar[str] = "base"

    COUNTER_READ = 'read'
    COUNTER_WRITE = 'write'
    COUNTER_TOTAL_QUERIES = 'total_queries'
    COUNTER_TOTAL_EXECUTION_TIME = 'total_execution_time'
    COUNTER_ROWS_READ = 'rows_read'
    COUNTER_ROWS_WRITTEN = 'rows_written'
    COUNTER_CREATION_TIME = 'creation_time'
    COUNTER_TOTAL_ELAPSED_TIME = 'total_elapsed_time'
    COUNTER_TOTAL_OUT_OF_DATABASE_TIME = 'total_outofdatabase_time'

    def __init__(
        self,
        config: DatabaseConfig,
        pool_config: Optional[ConnectionPoolConfig] = None,
        table_handler: Optional["TableHandler"] = None,
    ) -> None:
        """Initialize database connector.

        Args:
            config: Database configuration.
            pool_config: Connection pool configuration.
            table_handler: Test isolation session used to rewrite statements.
        """
        self.config = config
        self.pool_config = pool_config or ConnectionPoolConfig()
        self.read_only = False
        self._table_handler = table_handler
        self._handler_key: Optional[str] = None
        self._counters: Dict[str, float] = {
            self.COUNTER_READ: 0,
            self.COUNTER_WRITE: 0,
            self.COUNTER_TOTAL_QUERIES: 0,
            self.COUNTER_ROWS_WRITTEN: 0,
            self.COUNTER_ROWS_READ: 0,
            self.COUNTER_TOTAL_EXECUTION_TIME: 0.0,
            self.COUNTER_CREATION_TIME: time.time(),
        }

    @property
    def table_handler(self) -> Optional["TableHandler"]:
        return self._table_handler

    def attach_table_handler(
        self, table_handler: Optional["TableHandler"], connector_key: Optional[str] = None
    ) -> None:
        """Route all further statements through the given TableHandler (None detaches).

        Args:
            table_handler: The session to rewrite through.
            connector_key: Key the connector is registered under in that session,
                defaults to the connector's own key.
        """
        self._table_handler = table_handler
        self._handler_key = connector_key if table_handler is not None else None

    @property
    def handler_key(self) -> str:
        """Key under which statements are rewritten."""
        return self._handler_key or self.connector_key

    def rewrite(self, statement: str) -> str:
        """Apply test isolation rewriting to a statement."""
        if self._table_handler is None:
            return statement
        return self._table_handler.rewrite_statement(self.handler_key, statement)

    def get_credentials(self) -> Dict[str, Any]:
        """Get the credentials used for the connection."""
        return {
            'host': self.config.host,
            'port': self.config.port,
            'username': self.config.username,
            'password': self.config.password,
            'database': self.config.database,
        }

    def get_counters(self) -> Dict[str, float]:
        """Return statistics about the statements sent through this connector."""
        counters = dict(self._counters)
        creation_time = counters.pop(self.COUNTER_CREATION_TIME)
        counters[self.COUNTER_TOTAL_ELAPSED_TIME] = time.time() - creation_time
        counters[self.COUNTER_TOTAL_OUT_OF_DATABASE_TIME] = (
            counters[self.COUNTER_TOTAL_ELAPSED_TIME] - counters[self.COUNTER_TOTAL_EXECUTION_TIME]
        )
        return counters

    def exec(self, statement: str) -> int:
        """WRITE function: execute a statement and return the number of affected rows.

        Raises:
            ExecutionError: If the backend rejects the statement.
        """
        statement = self.rewrite(statement)
        if self.read_only:
            raise DatabaseError(
                f"Write operation on read-only connection: {statement}",
                database_type=self.connector_key,
            )

        logger.debug(f"[{self.connector_key}] exec: {statement}")
        start_time = time.time()
        self._counters[self.COUNTER_TOTAL_QUERIES] += 1

        affected_rows = self._execute_write(statement)

        self._counters[self.COUNTER_WRITE] += 1
        self._counters[self.COUNTER_ROWS_WRITTEN] += affected_rows
        self._counters[self.COUNTER_TOTAL_EXECUTION_TIME] += time.time() - start_time
        return affected_rows

    def query(self, statement: str, ignore_write_queries: bool = False) -> QueryResult:
        """READ function: execute a statement and return its result set.

        Raises:
            ExecutionError: If the backend rejects the statement.
        """
        statement = self.rewrite(statement)

        logger.debug(f"[{self.connector_key}] query: {statement}")
        start_time = time.time()
        self._counters[self.COUNTER_TOTAL_QUERIES] += 1

        result = self._execute_read(statement, ignore_write_queries)

        execution_time = time.time() - start_time
        result.execution_time = execution_time
        self._counters[self.COUNTER_READ] += 1
        self._counters[self.COUNTER_ROWS_READ] += result.row_count
        self._counters[self.COUNTER_TOTAL_EXECUTION_TIME] += execution_time
        return result

    @abstractmethod
    def _execute_write(self, statement: str) -> int:
        """Send an already rewritten write statement to the backend."""
        pass

    @abstractmethod
    def _execute_read(self, statement: str, ignore_write_queries: bool) -> QueryResult:
        """Send an already rewritten read statement to the backend."""
        pass

    @abstractmethod
    def connect(self) -> None:
        """Open the connection using the configured credentials."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the connection if it was opened."""
        pass

    @abstractmethod
    def escape(self, value: Any) -> str:
        """Escape a value for use inside a string literal."""
        pass

    def fetch_row(self, result: QueryResult) -> Optional[Dict[str, Any]]:
        """Fetch the next row from a result set."""
        return result.fetch_row()

    def fetch_all(self, result: QueryResult, key_name: Optional[str] = None) -> Any:
        """Fetch all remaining rows, optionally keyed by the value of a column."""
        rows = []
        keyed: Dict[Any, Dict[str, Any]] = {}
        while True:
            row = result.fetch_row()
            if row is None:
                break
            if key_name is not None:
                keyed[row[key_name]] = row
            else:
                rows.append(row)
        return keyed if key_name is not None else rows

    def query_first(self, statement: str) -> Optional[Dict[str, Any]]:
        """Run a query and return its first row, or None for an empty result."""
        return self.query(statement).fetch_row()

    def query_all(self, statement: str, key_name: Optional[str] = None) -> Any:
        """Run a query and return all rows (a dict keyed by key_name if given)."""
        return self.fetch_all(self.query(statement), key_name)

    def query_all_flat(
        self, statement: str, column_key: Any = 0, key_name: Optional[str] = None
    ) -> Any:
        """Run a query and collapse one column of every row into a flat list.

        Args:
            statement: The query to execute.
            column_key: Column name or positional index to collect.
            key_name: If given, return a dict keyed by this column instead.

        Raises:
            DatabaseError: If the column does not exist on a non-empty result.
        """
        result = self.query(statement)
        flat: List[Any] = []
        keyed: Dict[Any, Any] = {}
        for row in result.records():
            value = self._column_value(row, column_key)
            if key_name is not None:
                keyed[row[key_name]] = value
            else:
                flat.append(value)
        return keyed if key_name is not None else flat

    def _column_value(self, row: Dict[str, Any], column_key: Any) -> Any:
        if isinstance(column_key, int):
            values = list(row.values())
            if column_key >= len(values):
                raise DatabaseError(
                    f"Column index {column_key} does not exist in result",
                    database_type=self.connector_key,
                )
            return values[column_key]
        if column_key not in row:
            raise DatabaseError(
                f"Column '{column_key}' does not exist in result",
                database_type=self.connector_key,
            )
        return row[column_key]

    def test_connection(self) -> bool:
        """Test database connection.

        Raises:
            DatabaseError: If connection test fails.
        """
        try:
            self.query("SELECT 1 AS test")
            return True
        except DatabaseError:
            raise
        except Exception as e:
            raise DatabaseError(f"Connection test failed: {e}", database_type=self.connector_key) from e

    @abstractmethod
    def clone_table_structure(
        self, source_table: str, destination_table: str, temporary: bool = False
    ) -> None:
        """Create an empty table based on the definition of another table."""
        pass

    @abstractmethod
    def list_tables_in_database(self, database: str) -> TableCollection:
        """List all tables in a given schema."""
        pass

    @abstractmethod
    def has_table(
        self, schema: str, table_name: Optional[str] = None, is_temporary_table: bool = False
    ) -> bool:
        """Check whether a table exists; without table_name, schema holds the qualified name."""
        pass

    @abstractmethod
    def get_column_list(self, schema_name: str, table_name: Optional[str] = None) -> List[str]:
        """List column names; with only schema_name, it is used as a WHERE condition."""
        pass

    @abstractmethod
    def get_column_count(self, schema_name: str, table_name: str) -> int:
        """Count the columns of a table."""
        pass

    @abstractmethod
    def get_temporary_schema(self, temporary_table: bool) -> str:
        """Schema in which scratch tables are created ("" for none)."""
        pass

    @abstractmethod
    def get_default_storage_engine(self) -> str:
        """Storage engine used for scratch tables when none is given."""
        pass

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(host={self.config.host!r}, "
            f"username={self.config.username!r}, read_only={self.read_only})"
        )
