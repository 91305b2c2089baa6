"""Test isolation for code running against production schemas."""

from dbconnectors.testing.table_handler import ConnectorRegistration, TableHandler

__all__ = [
    "ConnectorRegistration",
    "TableHandler",
]
