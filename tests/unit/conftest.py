"""Shared pytest fixtures for the MSSQL operator unit tests."""

import re
import threading
import time
from unittest.mock import AsyncMock, MagicMock

import pymssql
import pytest

from mssql_operator.models.database import ConnectionDescriptor, DatabaseResource
from mssql_operator.services.database_operations import DatabaseOperations
from mssql_operator.services.database_reconciler import DatabaseReconciler
from mssql_operator.services.shadow_state import ShadowStateStore

_IDENTIFIER = r"\[((?:[^\]]|\]\])+)\]"
_CREATE = re.compile(rf"^CREATE DATABASE {_IDENTIFIER};$")
_DROP = re.compile(rf"^DROP DATABASE {_IDENTIFIER};$")
_RENAME = re.compile(rf"ALTER DATABASE {_IDENTIFIER} MODIFY NAME = {_IDENTIFIER};")


def _unquote(name: str) -> str:
    return name.replace("]]", "]")


class FakeCursor:
    """Cursor that applies DDL to the owning FakeSqlServer."""

    def __init__(self, server: "FakeSqlServer"):
        self.server = server
        self._row = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, statement, params=None):
        self.server.execute(statement, params, self)

    def fetchone(self):
        return self._row


class FakeConnection:
    """Connection handed out by FakeSqlServer.connect."""

    def __init__(self, server: "FakeSqlServer", kwargs: dict):
        self.server = server
        self.kwargs = kwargs
        self.closed = False

    def cursor(self):
        return FakeCursor(self.server)

    def close(self):
        self.closed = True


class FakeSqlServer:
    """
    In-memory stand-in for a SQL Server instance.

    Keeps a set of database names and raises the same error numbers the
    real server reports for duplicate creates and missing drops.
    """

    def __init__(self, databases=None, statement_delay: float = 0.0):
        self.databases: set[str] = set(databases or ())
        self.statements: list[str] = []
        self.connections: list[FakeConnection] = []
        self.connect_error: Exception | None = None
        self.fail_next: dict[str, Exception] = {}
        self.statement_delay = statement_delay
        self.active = 0
        self.max_active = 0
        self._counter_lock = threading.Lock()

    def connect(self, **kwargs):
        if self.connect_error is not None:
            raise self.connect_error
        connection = FakeConnection(self, kwargs)
        self.connections.append(connection)
        return connection

    def execute(self, statement, params, cursor):
        with self._counter_lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.statement_delay:
                time.sleep(self.statement_delay)
            self.statements.append(statement)
            self._apply(statement, params, cursor)
        finally:
            with self._counter_lock:
                self.active -= 1

    def _apply(self, statement, params, cursor):
        if statement.startswith("SELECT COUNT(*) FROM sys.databases"):
            if "exists" in self.fail_next:
                raise self.fail_next.pop("exists")
            cursor._row = (1 if params[0] in self.databases else 0,)
            return

        if match := _CREATE.match(statement):
            if "create" in self.fail_next:
                raise self.fail_next.pop("create")
            name = _unquote(match.group(1))
            if name in self.databases:
                raise pymssql.OperationalError(
                    1801, f"Database '{name}' already exists.".encode()
                )
            self.databases.add(name)
            return

        if match := _DROP.match(statement):
            if "drop" in self.fail_next:
                raise self.fail_next.pop("drop")
            name = _unquote(match.group(1))
            if name not in self.databases:
                raise pymssql.OperationalError(
                    3701,
                    f"Cannot drop the database '{name}', because it does not "
                    "exist or you do not have permission.".encode(),
                )
            self.databases.remove(name)
            return

        if match := _RENAME.search(statement):
            if "rename" in self.fail_next:
                raise self.fail_next.pop("rename")
            old, new = _unquote(match.group(1)), _unquote(match.group(2))
            if old not in self.databases:
                raise pymssql.OperationalError(
                    5011,
                    f"User does not have permission to alter database '{old}', "
                    "the database does not exist, or the database is not in a "
                    "state that allows access checks.".encode(),
                )
            if new in self.databases:
                raise pymssql.OperationalError(
                    1801, f"Database '{new}' already exists.".encode()
                )
            self.databases.remove(old)
            self.databases.add(new)
            return

        raise AssertionError(f"Unexpected statement: {statement}")


def _make_resource(
    name: str = "orders-db",
    db_name: str = "orders",
    namespace: str = "team-a",
    config_map: str = "sql-instance",
    credentials: str = "sql-login",
) -> DatabaseResource:
    """Build a DatabaseResource for tests."""
    return DatabaseResource.from_spec(
        {"dbName": db_name, "configMap": config_map, "credentials": credentials},
        name=name,
        namespace=namespace,
    )


@pytest.fixture
def make_resource():
    """Factory for DatabaseResource instances."""
    return _make_resource


@pytest.fixture
def connection():
    """Resolved connection descriptor for the administrative catalog."""
    return ConnectionDescriptor(
        server="sql.example.internal",
        user="sa",
        password="s3cret",
        database="master",
    )


@pytest.fixture
def sql_server_factory():
    """Build in-memory SQL Servers with custom settings."""
    return FakeSqlServer


@pytest.fixture
def sql_server():
    """Empty in-memory SQL Server."""
    return FakeSqlServer()


@pytest.fixture
def operations(sql_server):
    """DatabaseOperations bound to the in-memory server."""
    return DatabaseOperations(connect=sql_server.connect, login_timeout=5)


@pytest.fixture
def resolver(connection):
    """Credential resolver that always resolves to the same connection."""
    mock_resolver = MagicMock()
    mock_resolver.resolve = AsyncMock(return_value=connection)
    return mock_resolver


@pytest.fixture
def reconciler(resolver, operations):
    """Reconciler wired to the mock resolver and in-memory server."""
    return DatabaseReconciler(
        resolver=resolver,
        operations=operations,
        store=ShadowStateStore(),
    )
