"""
SQL Server database lifecycle operations.

This module issues the administrative statements that create, drop, rename
and look up databases. Conditions that mean the server already matches the
desired state are reported as an OperationOutcome instead of an exception,
so callers branch on the returned data.

Every operation opens its own connection to the administrative catalog and
closes it on every exit path. Operations are blocking and are meant to be
run in a worker thread by async callers.
"""

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import pymssql

from ..constants import (
    DEFAULT_LOGIN_TIMEOUT,
    SQL_ERROR_DATABASE_EXISTS,
    SQL_ERROR_DATABASE_NOT_FOUND,
)
from ..errors import BackendOperationError
from ..models.database import ConnectionDescriptor
from ..observability.logging import OperatorLogger
from ..observability.metrics import metrics_collector

logger = OperatorLogger(__name__)


class OperationOutcome(StrEnum):
    """Result classification of a lifecycle operation."""

    SUCCEEDED = "succeeded"
    ALREADY_SATISFIED = "already_satisfied"
    ALREADY_ABSENT = "already_absent"
    FAILED = "failed"


@dataclass(frozen=True)
class OperationResult:
    """Outcome of one lifecycle operation against SQL Server."""

    operation: str
    database: str
    outcome: OperationOutcome
    error_number: int | None = None
    message: str = ""
    may_be_single_user: bool = False
    renamed_to: str | None = None

    @property
    def converged(self) -> bool:
        """True when the server is known to be in the desired state."""
        return self.outcome is not OperationOutcome.FAILED

    def to_error(self) -> BackendOperationError:
        """Build the error surfaced for a failed operation."""
        user_action = None
        if self.may_be_single_user:
            names = [self.database]
            if self.renamed_to:
                names.append(self.renamed_to)
            restore = " or ".join(
                f"ALTER DATABASE {quote_identifier(name)} SET MULTI_USER;"
                for name in names
            )
            user_action = (
                f"Check {' or '.join(quote_identifier(n) for n in names)}: the "
                "database may be left in SINGLE_USER mode under either name; "
                f"restore access with: {restore}"
            )
        return BackendOperationError(
            operation=self.operation,
            database=self.database,
            message=self.message,
            error_number=self.error_number,
            user_action=user_action,
        )


def quote_identifier(name: str) -> str:
    """Quote a database name as a bracketed SQL Server identifier."""
    return "[" + name.replace("]", "]]") + "]"


def _error_number(error: Exception) -> int | None:
    number = getattr(error, "number", None)
    if number is None and error.args and isinstance(error.args[0], int):
        number = error.args[0]
    return number


def _error_message(error: Exception) -> str:
    if len(error.args) > 1:
        message = error.args[1]
        if isinstance(message, bytes):
            return message.decode("utf-8", errors="replace")
        return str(message)
    return str(error)


class DatabaseOperations:
    """Idempotent create, drop, rename and existence checks for databases."""

    def __init__(
        self,
        connect: Callable[..., Any] = pymssql.connect,
        login_timeout: int = DEFAULT_LOGIN_TIMEOUT,
    ):
        """
        Initialize database operations.

        Args:
            connect: DB-API connect function, pymssql.connect by default
            login_timeout: Seconds to wait when opening a connection
        """
        self._connect = connect
        self.login_timeout = login_timeout

    @contextmanager
    def _open(
        self, connection: ConnectionDescriptor, operation: str, database: str
    ) -> Iterator[Any]:
        """Open a connection for one operation and always close it."""
        try:
            conn = self._connect(
                server=connection.server,
                user=connection.user,
                password=connection.password,
                database=connection.database,
                login_timeout=self.login_timeout,
                autocommit=True,
            )
        except pymssql.Error as e:
            raise BackendOperationError(
                operation=operation,
                database=database,
                message=f"cannot connect to {connection.server}: {_error_message(e)}",
                error_number=_error_number(e),
                user_action=f"Check that SQL Server '{connection.server}' is reachable",
                cause=e,
            ) from e
        try:
            yield conn
        finally:
            conn.close()

    def _execute(
        self,
        connection: ConnectionDescriptor,
        operation: str,
        database: str,
        statement: str,
        expected: dict[int, OperationOutcome],
    ) -> OperationResult:
        start_time = time.time()
        with self._open(connection, operation, database) as conn:
            try:
                with conn.cursor() as cursor:
                    cursor.execute(statement)
                result = OperationResult(
                    operation, database, OperationOutcome.SUCCEEDED
                )
            except pymssql.Error as e:
                number = _error_number(e)
                result = OperationResult(
                    operation,
                    database,
                    expected.get(number, OperationOutcome.FAILED),
                    error_number=number,
                    message=_error_message(e),
                )

        logger.log_database_operation(
            operation=operation,
            database_name=database,
            outcome=result.outcome,
            duration=time.time() - start_time,
            error_number=result.error_number,
        )
        metrics_collector.record_database_operation(operation, result.outcome)
        return result

    def create(self, connection: ConnectionDescriptor, name: str) -> OperationResult:
        """
        Create a database.

        Returns ALREADY_SATISFIED when a database with this name exists.
        """
        return self._execute(
            connection,
            "create",
            name,
            f"CREATE DATABASE {quote_identifier(name)};",
            {SQL_ERROR_DATABASE_EXISTS: OperationOutcome.ALREADY_SATISFIED},
        )

    def drop(self, connection: ConnectionDescriptor, name: str) -> OperationResult:
        """
        Drop a database.

        Returns ALREADY_ABSENT when no database with this name exists. Other
        backend errors come back as FAILED; the caller decides whether they
        are fatal.
        """
        return self._execute(
            connection,
            "drop",
            name,
            f"DROP DATABASE {quote_identifier(name)};",
            {SQL_ERROR_DATABASE_NOT_FOUND: OperationOutcome.ALREADY_ABSENT},
        )

    def rename(
        self, connection: ConnectionDescriptor, old_name: str, new_name: str
    ) -> OperationResult:
        """
        Rename a database.

        Sends one batch that forces the database into single-user mode
        (disconnecting other sessions), renames it and restores multi-user
        mode. There is no compensating step: if the batch fails after the
        first statement, the database can be left in single-user mode, which
        the FAILED result flags with ``may_be_single_user``. The batch may have
        stopped before or after the rename itself, so the result names both
        the old and the new database.
        """
        old_quoted = quote_identifier(old_name)
        new_quoted = quote_identifier(new_name)
        statement = (
            f"ALTER DATABASE {old_quoted} SET SINGLE_USER WITH ROLLBACK IMMEDIATE;\n"
            f"ALTER DATABASE {old_quoted} MODIFY NAME = {new_quoted};\n"
            f"ALTER DATABASE {new_quoted} SET MULTI_USER;"
        )
        result = self._execute(connection, "rename", old_name, statement, {})
        if result.outcome is OperationOutcome.FAILED:
            return OperationResult(
                operation="rename",
                database=old_name,
                outcome=OperationOutcome.FAILED,
                error_number=result.error_number,
                message=f"rename to '{new_name}' failed: {result.message}",
                may_be_single_user=True,
                renamed_to=new_name,
            )
        return result

    def exists(self, connection: ConnectionDescriptor, name: str) -> bool:
        """
        Check whether a database with this name exists on the server.

        Raises:
            BackendOperationError: If the catalog query fails
        """
        with self._open(connection, "exists", name) as conn:
            try:
                with conn.cursor() as cursor:
                    cursor.execute(
                        "SELECT COUNT(*) FROM sys.databases WHERE name = %s;",
                        (name,),
                    )
                    row = cursor.fetchone()
            except pymssql.Error as e:
                raise BackendOperationError(
                    operation="exists",
                    database=name,
                    message=_error_message(e),
                    error_number=_error_number(e),
                    cause=e,
                ) from e
        return bool(row and row[0])
