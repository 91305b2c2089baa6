"""ClickHouse database connector using the HTTP interface."""

import logging
import re
import shlex
import subprocess
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx

from dbconnectors.config.models import ConnectionPoolConfig, DatabaseConfig, DatabaseType
from dbconnectors.db.base import BaseConnector, QueryResult
from dbconnectors.db.schema import TableCollection
from dbconnectors.exceptions import DatabaseError, ExecutionError

logger = logging.getLogger(__name__)

REPLICATED_ENGINE_PATTERN = re.compile(r'Replicated([A-Za-z]*)MergeTree\([^)]*\)')


class ClickHouseConnector(BaseConnector):
    """ClickHouse connector.

    ClickHouse has no permanent connection: every statement is a separate
    POST request. Read statements ask for the ``JSONCompact`` format and are
    turned into a QueryResult; write statements report zero affected rows as
    the HTTP interface does not return a row count.
    """

    connector_key = DatabaseType.CLICKHOUSE.value

    DEFAULT_PORT = 8443
    DEFAULT_PROTOCOL = 'http'
    DEFAULT_TIMEOUT = 900.0
    RETURN_FORMAT = 'JSONCompact'
    SESSION_ID_PREFIX = 'chs'
    DEFAULT_PORT_CLIENT = 9000
    CLIENT_TIMEOUT = 3600

    def __init__(
        self,
        config: DatabaseConfig,
        pool_config: Optional[ConnectionPoolConfig] = None,
        table_handler=None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        """Initialize ClickHouse connector.

        Args:
            config: Database configuration.
            pool_config: Connection pool configuration.
            table_handler: Test isolation session used to rewrite statements.
            transport: Custom httpx transport, used by tests to fake the server.
        """
        super().__init__(config, pool_config, table_handler)

        if self.config.port is None:
            self.config.port = self.DEFAULT_PORT

        self.settings: Dict[str, Any] = dict(self.config.settings)
        self.session_id: Optional[str] = None
        self.max_threads_client = 8
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    @property
    def base_url(self) -> str:
        protocol = self.config.protocol or self.DEFAULT_PROTOCOL
        return f"{protocol}://{self.config.host}:{self.config.port}/"

    def get_credentials(self) -> Dict[str, Any]:
        credentials = super().get_credentials()
        credentials['protocol'] = self.config.protocol or self.DEFAULT_PROTOCOL
        return credentials

    def connect(self) -> None:
        """Create the HTTP client; no request is sent."""
        if self._client is not None:
            return

        timeout = self.config.options.get('timeout', self.DEFAULT_TIMEOUT)
        self._client = httpx.Client(
            base_url=self.base_url,
            auth=(self.config.username or '', self.config.password or ''),
            timeout=timeout,
            transport=self._transport,
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self.connect()
        return self._client

    def _send(self, statement: str, return_format: Optional[str] = None) -> httpx.Response:
        params = dict(self.settings)
        if self.session_id is not None:
            params['session_id'] = self.session_id

        content = statement + "\n" + (f"FORMAT {return_format}" if return_format else "")

        try:
            response = self._get_client().post(
                "",
                params=params,
                content=content.encode('utf-8'),
                headers={'Content-Type': 'application/x-www-form-urlencoded'},
            )
        except httpx.HTTPError as e:
            raise ExecutionError(
                f"Request to ClickHouse server failed ({e}) for query: {statement}",
                statement=statement,
                database_type=self.connector_key,
            ) from e

        if response.status_code != 200:
            raise ExecutionError(
                f"{response.text}\n{statement}",
                statement=statement,
                database_type=self.connector_key,
                details={'status_code': response.status_code},
            )

        return response

    def _execute_write(self, statement: str) -> int:
        self._send(statement)
        return 0

    def _execute_read(self, statement: str, ignore_write_queries: bool) -> QueryResult:
        response = self._send(statement, self.RETURN_FORMAT)

        try:
            payload = response.json()
        except ValueError as e:
            raise DatabaseError(
                f"Could not decode result: {e}", database_type=self.connector_key
            ) from e

        columns = [column['name'] for column in payload.get('meta', [])]
        return QueryResult.from_tuples(columns, payload.get('data', []))

    def exec_client(
        self,
        statement: str,
        input_file: Optional[Union[str, Path]] = None,
        command_prefix: Optional[str] = None,
    ) -> int:
        """Run a statement through the ``clickhouse-client`` binary.

        Used for work the HTTP interface is poorly suited for, such as bulk
        inserts from a file or ``SELECT ... INTO OUTFILE``. The statement is
        rewritten like any other statement of this connector.

        Args:
            statement: Statement passed with ``--query``.
            input_file: File piped to the client's stdin, e.g. for ``INSERT ... FORMAT CSV``.
            command_prefix: Command line put in front of the client, e.g. ``"nice -n 10"``.

        Returns:
            Exit code of the client. "No data to insert" counts as success.

        Raises:
            ExecutionError: If the client cannot be started.
        """
        if not statement:
            return 0

        statement = self.rewrite(statement)
        command = self._client_command(statement)
        if command_prefix:
            command = shlex.split(command_prefix) + command

        logger.debug(f"Executing with clickhouse-client: {statement}")
        try:
            if input_file:
                with open(input_file, 'rb') as stdin:
                    completed = self._run_client(command, stdin)
            else:
                completed = self._run_client(command, subprocess.DEVNULL)
        except OSError as e:
            raise ExecutionError(
                f"Cannot run clickhouse-client: {e}",
                statement=statement,
                database_type=self.connector_key,
            ) from e

        if completed.returncode == 0:
            return 0

        output = completed.stdout or ''
        if 'No data to insert' in output:
            logger.debug("No data to insert")
            return 0

        logger.critical(f"Error from clickhouse-client (exit code {completed.returncode}): {output}")
        return completed.returncode

    def _client_command(self, statement: str) -> List[str]:
        port = self.config.options.get('cmd_port', self.DEFAULT_PORT_CLIENT)
        command = ['clickhouse-client', f"--host={self.config.host}", '--port', str(port)]
        if self.config.username:
            command += ['--user', self.config.username]
        if self.config.password:
            command += ['--password', self.config.password]
        command += [
            f"--max_threads={self.max_threads_client}",
            '--receive_timeout', str(self.CLIENT_TIMEOUT),
            '--send_timeout', str(self.CLIENT_TIMEOUT),
            f"--query={statement}",
        ]
        return command

    def _run_client(self, command: List[str], stdin) -> subprocess.CompletedProcess:
        return subprocess.run(
            command,
            stdin=stdin,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )

    def escape(self, value: Any) -> str:
        """Backslash-escape quotes, backslashes and NUL bytes."""
        text = str(value)
        for char in ('\\', "'", '"'):
            text = text.replace(char, '\\' + char)
        return text.replace('\0', '\\0')

    def start_session(self) -> None:
        """Start sending a session id with every request (needed e.g. for temporary tables)."""
        self.session_id = f"{self.SESSION_ID_PREFIX}{uuid.uuid4().hex}"

    def stop_session(self) -> None:
        """Invalidate the current session on the server and stop sending its id."""
        if self.session_id is not None:
            settings = self.settings
            self.settings = dict(settings, session_timeout=1)
            try:
                self._send('SELECT 1;')
            finally:
                self.settings = settings
        self.session_id = None

    def begin_transaction(self) -> bool:
        raise NotImplementedError("Transactions are not supported by ClickHouse")

    def commit(self, context: Optional[str] = None, additional_info: Optional[str] = None) -> bool:
        raise NotImplementedError("Transactions are not supported by ClickHouse")

    def rollback(self, context: Optional[str] = None, additional_info: Optional[str] = None) -> bool:
        raise NotImplementedError("Transactions are not supported by ClickHouse")

    def in_transaction(self) -> bool:
        raise NotImplementedError("Transactions are not supported by ClickHouse")

    def get_insert_id(self) -> Optional[int]:
        raise NotImplementedError("ClickHouse has no insert ids")

    def clone_table_structure(
        self, source_table: str, destination_table: str, temporary: bool = False
    ) -> None:
        """Recreate a table from its SHOW CREATE TABLE output under a new name.

        Replicated engines are replaced with their plain counterpart so the copy
        does not join the replication of the source table.
        """
        source_table = source_table.replace('`', '')

        row = self.query_first(f"SHOW CREATE TABLE {source_table}")
        if row is None:
            raise ExecutionError(
                f"No create statement returned for {source_table}",
                statement=f"SHOW CREATE TABLE {source_table}",
                database_type=self.connector_key,
            )
        create_statement = row['statement']

        new_statement = re.sub(re.escape(source_table), lambda _: destination_table, create_statement)
        new_statement = REPLICATED_ENGINE_PATTERN.sub(r'\1MergeTree()', new_statement)

        if new_statement != create_statement:
            self.exec(new_statement)
        else:
            logger.warning(f"Create statement of {source_table} could not be rewritten, nothing cloned")

    def list_tables_in_database(self, database: str) -> TableCollection:
        sql = f"""
            SELECT `database`, `name`, `engine`
            FROM `system`.`tables`
            WHERE `database` = '{self.escape(database)}'
        """
        return TableCollection.from_clickhouse_table_data(self, self.query_all(sql))

    def has_table(
        self, schema: str, table_name: Optional[str] = None, is_temporary_table: bool = False
    ) -> bool:
        if table_name is not None:
            condition = f"`database` = '{self.escape(schema)}' AND `name` = '{self.escape(table_name)}'"
        else:
            condition = f"CONCAT(database, '.', name) = '{self.escape(schema)}'"

        condition += f" AND is_temporary = {1 if is_temporary_table else 0}"
        row = self.query_first(f"SELECT COUNT(*) count FROM `system`.`tables` WHERE {condition}")
        return int(row['count']) > 0

    def get_column_list(self, schema_name: str, table_name: Optional[str] = None) -> List[str]:
        if table_name is None:
            condition = schema_name
        else:
            condition = (
                f"`database` = '{self.escape(schema_name)}' "
                f"AND `table` = '{self.escape(table_name)}'"
            )

        return self.query_all_flat(f"""
            SELECT name
            FROM system.columns
            WHERE {condition}
            ORDER BY position
        """)

    def get_column_count(self, schema_name: str, table_name: str) -> int:
        row = self.query_first(f"""
            SELECT COUNT(*) AS count
            FROM system.columns
            WHERE `database` = '{self.escape(schema_name)}'
              AND `table` = '{self.escape(table_name)}'
        """)
        return int(row['count'])

    def get_temporary_schema(self, temporary_table: bool) -> str:
        if temporary_table:
            return ""
        return "default"

    def get_default_storage_engine(self) -> str:
        return 'Log'
