"""Database connectors for the supported engines."""

from dbconnectors.db.adapters.clickhouse import ClickHouseConnector
from dbconnectors.db.adapters.mysql import MySQLConnector

__all__ = [
    "ClickHouseConnector",
    "MySQLConnector",
]
