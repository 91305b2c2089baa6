"""Value objects describing tables returned by schema introspection."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable, Iterator, List, Optional

if TYPE_CHECKING:
    from dbconnectors.db.base import BaseConnector


@dataclass
class DatabaseTable:
    """A table as listed by a connector."""

    schema: str
    name: str
    engine: Optional[str] = None
    rows: Optional[int] = None
    database: Optional["BaseConnector"] = field(default=None, repr=False, compare=False)

    def get_full_name(self, escaped: bool = False) -> str:
        if not self.schema:
            return f"`{self.name}`" if escaped else self.name
        if escaped:
            return f"`{self.schema}`.`{self.name}`"
        return f"{self.schema}.{self.name}"

    def list_columns(self) -> List[str]:
        return self._require_database().get_column_list(self.schema, self.name)

    def count_columns(self) -> int:
        return self._require_database().get_column_count(self.schema, self.name)

    def _require_database(self) -> "BaseConnector":
        if self.database is None:
            raise ValueError(f"Table {self.get_full_name()} is not bound to a connector")
        return self.database


class TableCollection:
    """Ordered, read-only collection of DatabaseTable objects."""

    def __init__(self, tables: Optional[Iterable[DatabaseTable]] = None) -> None:
        self._tables: List[DatabaseTable] = list(tables or [])

    @classmethod
    def from_mysql_table_data(
        cls, database: "BaseConnector", data: Iterable[Dict[str, Any]]
    ) -> "TableCollection":
        """Build a collection from information_schema.TABLES rows."""
        return cls(
            DatabaseTable(
                schema=row['TABLE_SCHEMA'],
                name=row['TABLE_NAME'],
                engine=row.get('ENGINE'),
                rows=_to_int(row.get('TABLE_ROWS')),
                database=database,
            )
            for row in data
        )

    @classmethod
    def from_clickhouse_table_data(
        cls, database: "BaseConnector", data: Iterable[Dict[str, Any]]
    ) -> "TableCollection":
        """Build a collection from system.tables rows; ClickHouse reports no row estimate."""
        return cls(
            DatabaseTable(
                schema=row['database'],
                name=row['name'],
                engine=row.get('engine'),
                database=database,
            )
            for row in data
        )

    def __iter__(self) -> Iterator[DatabaseTable]:
        return iter(self._tables)

    def __len__(self) -> int:
        return len(self._tables)

    def __getitem__(self, index: int) -> DatabaseTable:
        return self.get(index)

    def get(self, index: int) -> DatabaseTable:
        try:
            return self._tables[index]
        except IndexError:
            raise IndexError(f"Invalid table requested: {index}") from None

    def has_exactly_one_table(self) -> bool:
        return len(self._tables) == 1

    def has_at_least_one_table(self) -> bool:
        return len(self._tables) >= 1

    def names(self) -> List[str]:
        return [table.name for table in self._tables]


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
