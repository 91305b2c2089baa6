"""dbconnectors: schema-aware MySQL and ClickHouse connectors.

dbconnectors provides:
- A common connector interface for MySQL (SQLAlchemy/pymysql) and ClickHouse (HTTP)
- Schema introspection through table collections
- Test isolation that redirects production tables into ephemeral test schemas
- Scratch table management with crash-safe garbage collection
- YAML-based configuration and a small CLI
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Core exports
from dbconnectors.exceptions import (
    DBConnectorsError,
    ConfigurationError,
    DatabaseError,
    ExecutionError,
    TableLookupError,
)

__all__ = [
    "__version__",
    "DBConnectorsError",
    "ConfigurationError",
    "DatabaseError",
    "ExecutionError",
    "TableLookupError",
]
