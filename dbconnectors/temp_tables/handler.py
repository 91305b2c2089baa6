"""Lifecycle management for scratch tables of long running jobs.

Generated names encode their creation time::

    [schema.]tmp_<class_unique_key>_<slug>_<YYYYMMDDHHMMSS UTC>_<7 random digits>

which lets ``run_gc()`` find and drop tables left behind by crashed
processes without any state besides the table list of the temp schema.
"""

import logging
import random
from datetime import datetime, timezone
from typing import Iterable, List, Mapping, Optional

import pandas as pd

from dbconnectors.config.models import TempTableSettings, parse_duration
from dbconnectors.db.base import BaseConnector
from dbconnectors.exceptions import ConfigurationError, TableLookupError
from dbconnectors.temp_tables.registry import TableRegistry

logger = logging.getLogger(__name__)

TEMP_TABLE_PREFIX = 'tmp'
TIMESTAMP_FORMAT = '%Y%m%d%H%M%S'


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


def parse_ttl(ttl: str) -> pd.DateOffset:
    """Parse a retention period like ``"7 days"``, ``"2 weeks"`` or ``"1 month"``.

    Raises:
        ConfigurationError: If the value is not a positive duration.
    """
    try:
        return parse_duration(ttl)
    except (ValueError, KeyError) as e:
        raise ConfigurationError(f"Invalid ttl '{ttl}': {e}") from e


def creation_time_from_name(table_name: str) -> datetime:
    """Extract the UTC creation time from a generated table name.

    The timestamp is the second to last ``_`` component, or the third to last
    if text was appended after the random number.

    Raises:
        ValueError: If that component is missing or not a timestamp.
    """
    components = table_name.split('_')
    if len(components) < 3:
        raise ValueError(f"Table name '{table_name}' carries no creation timestamp")

    if components[-1].isdigit():
        creation_date = components[-2]
    else:
        creation_date = components[-3]

    return datetime.strptime(creation_date, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


class TempTableHandler:
    """Creates, tracks and drops the scratch tables of one job instance.

    Subclasses override ``class_unique_key`` so that different job types
    never share a name prefix.
    """

    class_unique_key = 'TTH'

    def __init__(
        self,
        database: BaseConnector,
        ttl_temp_table: str,
        use_temporary_tables: bool = False,
    ) -> None:
        """Initialize the handler.

        Args:
            database: Connector the tables live on.
            ttl_temp_table: Retention period used by the garbage collection.
            use_temporary_tables: Create backend native temporary tables.

        Raises:
            ConfigurationError: If the ttl cannot be parsed.
        """
        self.database = database
        self.ttl_temp_table = ttl_temp_table
        self.ttl = parse_ttl(ttl_temp_table)
        self.use_temporary_tables = use_temporary_tables
        self._registry = TableRegistry()

    @classmethod
    def from_settings(cls, database: BaseConnector, settings: TempTableSettings) -> "TempTableHandler":
        """Create a handler from the ``temp_tables`` configuration section."""
        return cls(database, settings.ttl, settings.use_temporary_tables)

    @property
    def managed_tables(self) -> Mapping[str, str]:
        """Read-only slug -> table name mapping."""
        return self._registry.as_mapping()

    @property
    def temporary_schema(self) -> str:
        return self.database.get_temporary_schema(self.use_temporary_tables)

    def generate_table_name(self, slug: str) -> str:
        """Build a new unique table name for a slug."""
        schema = self.temporary_schema
        prefix = f"{schema}." if schema else ""
        timestamp = utc_now().strftime(TIMESTAMP_FORMAT)
        suffix = random.randint(1000000, 9999999)

        return f"{prefix}{TEMP_TABLE_PREFIX}_{self.class_unique_key}_{slug}_{timestamp}_{suffix}"

    def create_temp_table(self, slug: str, columns: Iterable[str], engine: Optional[str] = None) -> str:
        """Create a scratch table and return its generated name.

        Args:
            slug: Name of the table within this handler.
            columns: Column definitions, e.g. ``"`value` INTEGER NOT NULL"``.
            engine: Storage engine, defaults to the one of the database.

        Raises:
            ConfigurationError: If the slug is already in use.
            ExecutionError: If the table cannot be created.
        """
        if self._registry.has_slug(slug):
            raise ConfigurationError(f"The table {slug} is already created")

        if self.use_temporary_tables:
            temporary_statement = 'TEMPORARY '
            engine_statement = ''
        else:
            temporary_statement = ''
            engine_statement = f" ENGINE = {engine or self.database.get_default_storage_engine()}"

        table_name = self.generate_table_name(slug)
        column_list = ",\n            ".join(columns)

        self.database.exec(
            f"CREATE {temporary_statement}TABLE {table_name} (\n            {column_list}\n        ){engine_statement}"
        )
        self._registry.add(slug, table_name)
        logger.debug(f"Created temp table {table_name} for '{slug}'")

        return table_name

    def _resolve_name(self, name_or_slug: str) -> str:
        if self._registry.has_slug(name_or_slug):
            return self._registry.name_for(name_or_slug)
        return name_or_slug

    def drop_table(self, name_or_slug: str, strict: bool = False) -> None:
        """Drop a table given by slug or generated name.

        A name this handler does not manage is still dropped, with a warning,
        unless ``strict`` is set.

        Raises:
            TableLookupError: If ``strict`` is set and the table is not managed.
            ExecutionError: If the table cannot be dropped.
        """
        if name_or_slug in self._registry:
            slug, table_name = self._registry.resolve(name_or_slug)
        elif strict:
            raise TableLookupError(f"Table '{name_or_slug}' is not managed by this handler", key=name_or_slug)
        else:
            logger.warning(f"Dropping table '{name_or_slug}' which is not managed by this handler")
            slug, table_name = None, name_or_slug

        self.database.exec(f"DROP TABLE {table_name}")

        if slug is not None:
            self._registry.remove_slug(slug)

    def drop_all_tables(self) -> None:
        """Drop every managed table in creation order; the first failure propagates."""
        for slug, table_name in self._registry:
            self.database.exec(f"DROP TABLE {table_name}")
            self._registry.remove_slug(slug)

        self._registry.clear()

    def clean_table(self, name_or_slug: str) -> None:
        """Remove all rows of a table; it stays managed."""
        self.database.exec(f"TRUNCATE TABLE {self._resolve_name(name_or_slug)}")

    def get_column_names(self, name_or_slug: str, excluded: Iterable[str] = ()) -> List[str]:
        """List the columns of a table in backend order, minus the excluded ones."""
        full_name = self._resolve_name(name_or_slug)
        if '.' in full_name:
            schema, table = full_name.split('.', 1)
        else:
            schema, table = '', full_name

        excluded = set(excluded)
        return [column for column in self.database.get_column_list(schema, table) if column not in excluded]

    def get_table_name(self, slug: str) -> str:
        return self._registry.name_for(slug)

    def get_slug(self, table_name: str) -> str:
        return self._registry.slug_for(table_name)

    def run_gc(self) -> List[str]:
        """Drop zombie tables: generated tables created before the retention period.

        The reference point is ``now - ttl`` truncated to midnight (UTC).

        Returns:
            Full names of the dropped tables.

        Raises:
            ValueError: If a ``tmp_`` table carries no parsable timestamp.
        """
        reference_date = (pd.Timestamp(utc_now()) - self.ttl).to_pydatetime().replace(
            hour=0, minute=0, second=0, microsecond=0
        )

        dropped = []
        for table in self.database.list_tables_in_database(self.temporary_schema):
            if not table.name.startswith(f"{TEMP_TABLE_PREFIX}_"):
                continue

            if creation_time_from_name(table.name) < reference_date:
                full_name = table.get_full_name(escaped=True)
                self.database.exec(f"DROP TABLE {full_name}")
                logger.info(f"Dropped zombie table {full_name}")
                dropped.append(full_name)

        return dropped

    def drop_zombie_tables(self) -> List[str]:
        """Alias for run_gc()."""
        return self.run_gc()
