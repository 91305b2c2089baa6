"""Scratch table management with crash-safe garbage collection."""

from dbconnectors.temp_tables.handler import TempTableHandler, creation_time_from_name, parse_ttl
from dbconnectors.temp_tables.registry import TableRegistry

__all__ = [
    "TempTableHandler",
    "TableRegistry",
    "creation_time_from_name",
    "parse_ttl",
]
