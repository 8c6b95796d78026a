"""
Exception classes for the model layer.

Compile-time problems (bad options, malformed conditions) are raised as
subclasses of ActiveModelError before any statement reaches the backend.
Driver errors are never wrapped: the DatabaseError group below lists the
driver and SQLAlchemy classes callers can catch.
"""
import re
import sqlite3

import psycopg
import sqlalchemy.exc

RETRYABLE_PATTERNS = [
    r'ssl',
    r'tls',
    r'connection.*(closed|reset|refused|lost|terminated|broken)',
    r'server closed',
    r'eof detected',
    r'broken pipe',
    r'timeout',
    r'timed out',
    r'could not connect',
    r'no route to host',
    r'network.*(unreachable|error)',
    r'database.*unavailable',
    r'too many connections',
]

_RETRYABLE_REGEX = re.compile('|'.join(RETRYABLE_PATTERNS), re.IGNORECASE)


def is_retryable_error(exc: BaseException) -> bool:
    """Check if an exception represents a transient error worth retrying.

    Syntax errors, constraint violations and missing tables are not
    retryable; dropped connections and timeouts are.

    :param exc: The exception to check.
    :returns: True if the error is likely transient and worth retrying.
    """
    return bool(_RETRYABLE_REGEX.search(str(exc)))


class ActiveModelError(Exception):
    """Base class for all model layer errors.
    """


class ConfigurationError(ActiveModelError):
    """Invalid configuration or model declaration.
    """


class BuilderError(ActiveModelError):
    """Malformed or ambiguous condition or statement input.
    """


class UnknownOptionError(BuilderError, ConfigurationError):
    """Options structure contained an unrecognized key.
    """

    def __init__(self, keys):
        self.keys = list(keys)
        super().__init__(f"Unknown key(s): {', '.join(self.keys)}")


class NotFoundError(ActiveModelError):
    """A primary key lookup did not return the requested rows.
    """


RecordNotFound = NotFoundError


class ReadOnlyError(ActiveModelError):
    """A writer method was called on a readonly model.
    """

    def __init__(self, class_name: str, method_name: str):
        super().__init__(f"{class_name}.{method_name}() cannot be invoked because this model is set to read only")


class UndefinedPropertyError(ActiveModelError, AttributeError):
    """Attribute name could not be resolved on a model.
    """

    def __init__(self, class_name: str, names):
        if isinstance(names, str):
            names = [names]
        self.names = list(names)
        super().__init__(f"Undefined property: {class_name}.{', '.join(self.names)}")


class TypeConversionError(ActiveModelError, ValueError):
    """Value could not be cast to the column's type.
    """


class TransactionError(ActiveModelError, RuntimeError):
    """Transaction misuse, such as nesting on one connection.
    """


DbConnectionError = (
    psycopg.OperationalError,
    psycopg.InterfaceError,
    sqlite3.OperationalError,
    sqlite3.InterfaceError,
    sqlalchemy.exc.OperationalError,
    sqlalchemy.exc.InterfaceError,
    )

DatabaseError = (
    psycopg.Error,
    sqlite3.Error,
    sqlalchemy.exc.DBAPIError,
    sqlalchemy.exc.NoSuchTableError,
    )

IntegrityError = (
    psycopg.IntegrityError,
    sqlite3.IntegrityError,
    sqlalchemy.exc.IntegrityError,
    )

UniqueViolation = (
    psycopg.errors.UniqueViolation,
    sqlite3.IntegrityError,
    )
