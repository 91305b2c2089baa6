"""Core exceptions for dbconnectors."""

from typing import Any, Dict, Optional


class DBConnectorsError(Exception):
    """Base exception for all dbconnectors errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(DBConnectorsError):
    """Raised when connectors, rules or settings are missing or invalid."""
    pass


class DatabaseError(DBConnectorsError):
    """Raised when there's an error connecting to or talking with a database."""

    def __init__(
        self,
        message: str,
        database_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.database_type = database_type


class ExecutionError(DatabaseError):
    """Raised when the backend rejects a statement."""

    def __init__(
        self,
        message: str,
        statement: Optional[str] = None,
        database_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, database_type, details)
        self.statement = statement


class TableLookupError(DBConnectorsError, LookupError):
    """Raised when a managed table cannot be resolved by slug or name."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key
