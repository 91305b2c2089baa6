"""Shared fixtures for dbconnectors tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest
import yaml

from dbconnectors.config import parser as config_parser
from dbconnectors.config.models import DatabaseConfig, DatabaseType
from dbconnectors.db import set_connection_manager
from dbconnectors.db.base import BaseConnector, QueryResult
from dbconnectors.db.schema import DatabaseTable, TableCollection
from dbconnectors.exceptions import ExecutionError
from dbconnectors.testing import TableHandler


class RecordingConnector(BaseConnector):
    """In-memory connector that records every statement it receives."""

    connector_key = DatabaseType.MYSQL.value

    def __init__(
        self,
        connector_key: Optional[str] = None,
        host: str = "localhost",
        table_handler: Optional[TableHandler] = None,
    ) -> None:
        config = DatabaseConfig(type=DatabaseType.MYSQL, host=host, username="tester")
        super().__init__(config, table_handler=table_handler)
        if connector_key is not None:
            self.connector_key = connector_key

        self.executed: List[str] = []
        self.queries: List[str] = []
        self.clones: List[Tuple[str, str, bool]] = []
        self.query_results: Dict[str, List[Dict[str, Any]]] = {}
        self.tables: Dict[str, List[str]] = {}
        self.columns: Dict[Tuple[str, str], List[str]] = {}
        self.fail_on: List[str] = []
        self.fail_on_close = False
        self.closed = False

    def _check_failure(self, statement: str) -> None:
        for fragment in self.fail_on:
            if fragment in statement:
                raise ExecutionError(f"Simulated failure: {statement}", statement=statement)

    def _execute_write(self, statement: str) -> int:
        self._check_failure(statement)
        self.executed.append(statement)
        return 1

    def _execute_read(self, statement: str, ignore_write_queries: bool) -> QueryResult:
        self._check_failure(statement)
        self.queries.append(statement)
        rows = self.query_results.get(statement, [])
        columns = list(rows[0].keys()) if rows else []
        return QueryResult(rows=rows, columns=columns)

    def connect(self) -> None:
        self.closed = False

    def close(self) -> None:
        if self.fail_on_close:
            raise RuntimeError("close failed")
        self.closed = True

    def escape(self, value: Any) -> str:
        return str(value).replace("'", "\\'")

    def clone_table_structure(self, source_table: str, destination_table: str, temporary: bool = False) -> None:
        self.clones.append((source_table, destination_table, temporary))
        self.exec(f"CREATE TABLE IF NOT EXISTS {destination_table} LIKE {source_table}")

    def list_tables_in_database(self, database: str) -> TableCollection:
        return TableCollection(
            DatabaseTable(schema=database, name=name, database=self) for name in self.tables.get(database, [])
        )

    def has_table(self, schema: str, table_name: Optional[str] = None, is_temporary_table: bool = False) -> bool:
        if table_name is None:
            schema, table_name = schema.split('.', 1)
        return table_name in self.tables.get(schema, [])

    def get_column_list(self, schema_name: str, table_name: Optional[str] = None) -> List[str]:
        return list(self.columns.get((schema_name, table_name), []))

    def get_column_count(self, schema_name: str, table_name: str) -> int:
        return len(self.columns.get((schema_name, table_name), []))

    def get_temporary_schema(self, temporary_table: bool) -> str:
        return "" if temporary_table else "scratch"

    def get_default_storage_engine(self) -> str:
        return "Memory"


@pytest.fixture
def make_connector():
    """Factory for recording connectors."""
    def _make(connector_key: Optional[str] = None, host: str = "localhost") -> RecordingConnector:
        return RecordingConnector(connector_key=connector_key, host=host)
    return _make


@pytest.fixture
def recording_connector(make_connector) -> RecordingConnector:
    return make_connector()


@pytest.fixture
def table_handler():
    """TableHandler without exit hook, shut down after the test."""
    handler = TableHandler(auto_cleanup=False)
    yield handler
    handler.shutdown()


@pytest.fixture
def sample_config_dict() -> Dict[str, Any]:
    return {
        'databases': {
            'warehouse': {
                'type': 'mysql',
                'host': 'mysql.local',
                'username': 'etl',
                'password': 'secret',
                'temp_table_schema': 'scratch',
            },
            'analytics': {
                'type': 'clickhouse',
                'host': 'clickhouse.local',
                'port': 8123,
                'username': 'default',
            },
        },
        'default_database': 'warehouse',
        'test_isolation': {
            'schemata': {
                'warehouse': None,
                'analytics': ['events'],
            },
        },
        'temp_tables': {
            'ttl': '7 days',
        },
    }


@pytest.fixture
def config_file(tmp_path: Path, sample_config_dict) -> Path:
    path = tmp_path / "dbconnectors.yaml"
    path.write_text(yaml.safe_dump(sample_config_dict), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def reset_globals(monkeypatch):
    """Forget cached configuration and connection manager between tests."""
    monkeypatch.setattr(config_parser, "_loaded_config", None)
    set_connection_manager(None)
    yield
    set_connection_manager(None)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: fast tests without a database")
    config.addinivalue_line("markers", "integration: tests that talk to a real database")
