"""Connection lifecycle for one monitored PostgreSQL server.

An Instance wraps a single SQLAlchemy async connection over asyncpg, knows
the server version, and can open short-lived connections to sibling
databases on the same server for collectors that fan out.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

import asyncpg
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from pgprobe.db.descriptor import asyncpg_connect_kwargs, parse_descriptor, rewrite_database
from pgprobe.db.version import (
    SERVER_VERSION_RE,
    VERBOSE_VERSION_RE,
    ServerVersion,
    match_version,
)
from pgprobe.exceptions import (
    ConnectionFailedError,
    QueryFailedError,
    TimeoutConfigurationError,
    VersionUnparseableError,
)

logger = logging.getLogger(__name__)

# Errors that mean "could not open a connection", as opposed to cancellation.
CONNECT_ERRORS: tuple[type[BaseException], ...] = (
    SQLAlchemyError,
    OSError,
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
)


def create_single_connection_engine(descriptor: str) -> AsyncEngine:
    """Create an engine whose pool holds exactly one connection.

    Statements run in autocommit mode so the exporter never holds a
    transaction open between queries.

    Args:
        descriptor: A libpq URI or key=value connection string.

    Returns:
        An AsyncEngine that connects lazily on first use.
    """
    connect_kwargs = asyncpg_connect_kwargs(descriptor)

    async def _connect() -> asyncpg.Connection:
        return await asyncpg.connect(**connect_kwargs)

    return create_async_engine(
        "postgresql+asyncpg://",
        async_creator=_connect,
        pool_size=1,
        max_overflow=0,
        execution_options={"isolation_level": "AUTOCOMMIT"},
    )


async def apply_statement_timeout(connection: AsyncConnection, timeout: float) -> None:
    """Set a session-scoped ``statement_timeout`` on ``connection``.

    Args:
        connection: The connection to configure.
        timeout: Timeout in seconds; 0 leaves the server default untouched.
            Positive values below 1 ms are rounded up to 1 ms.

    Raises:
        TimeoutConfigurationError: If the server rejects the setting.
    """
    if timeout <= 0:
        return
    timeout_ms = max(1, int(timeout * 1000))
    try:
        await connection.execute(text(f"SET statement_timeout = {timeout_ms}"))
    except SQLAlchemyError as exc:
        msg = f"failed to set statement timeout: {exc}"
        raise TimeoutConfigurationError(msg) from exc


async def query_version(connection: AsyncConnection) -> ServerVersion:
    """Detect the server version.

    ``SELECT version()`` is tried first; distributions that rebrand that
    string are handled by falling back to ``SHOW server_version``.

    Raises:
        QueryFailedError: If either query fails.
        VersionUnparseableError: If neither result contains a version.
    """
    try:
        result = await connection.execute(text("SELECT version()"))
        raw = result.scalar_one()
        version = match_version(raw, VERBOSE_VERSION_RE)
        if version is not None:
            return version

        result = await connection.execute(text("SHOW server_version"))
        raw = result.scalar_one()
    except SQLAlchemyError as exc:
        msg = f"error querying postgresql version: {exc}"
        raise QueryFailedError(msg) from exc

    version = match_version(raw, SERVER_VERSION_RE)
    if version is None:
        msg = f"could not parse version from {raw!r}"
        raise VersionUnparseableError(msg)
    return version


class Instance:
    """One logical connection to a PostgreSQL server.

    Creating an Instance only validates the descriptor. Call ``setup()`` to
    open a connection this Instance owns, or ``setup_with_connection()`` to
    borrow one; ``close()`` only releases what the Instance owns.

    Args:
        descriptor: A libpq URI or key=value connection string.
        statement_timeout: Session statement timeout in seconds (0 = disabled).

    Raises:
        InvalidDescriptorError: If ``descriptor`` cannot be parsed.
    """

    def __init__(self, descriptor: str, statement_timeout: float = 0.0) -> None:
        asyncpg_connect_kwargs(descriptor)
        self._descriptor = descriptor
        self._database = parse_descriptor(descriptor).database
        self._statement_timeout = statement_timeout
        self._engine: AsyncEngine | None = None
        self._connection: AsyncConnection | None = None
        self._owns_connection = False
        self._version: ServerVersion | None = None

    @property
    def descriptor(self) -> str:
        return self._descriptor

    @property
    def statement_timeout(self) -> float:
        return self._statement_timeout

    @property
    def owns_connection(self) -> bool:
        return self._owns_connection

    @property
    def connection(self) -> AsyncConnection:
        """Return the primary connection, raising if not set up."""
        if self._connection is None:
            msg = "Instance not connected. Call setup() first."
            raise ConnectionFailedError(msg)
        return self._connection

    @property
    def version(self) -> ServerVersion:
        """Return the detected server version, raising if not set up."""
        if self._version is None:
            msg = "Server version unknown. Call setup() first."
            raise VersionUnparseableError(msg)
        return self._version

    def copy(self) -> Instance:
        """Return an unconfigured Instance with the same descriptor and timeout."""
        return Instance(self._descriptor, self._statement_timeout)

    async def setup(self) -> None:
        """Open an owned connection, apply the timeout, and detect the version.

        Raises:
            ConnectionFailedError: If the server cannot be reached.
            TimeoutConfigurationError: If the statement timeout is rejected.
            QueryFailedError: If the version query fails.
            VersionUnparseableError: If the version cannot be parsed.
        """
        engine = create_single_connection_engine(self._descriptor)
        try:
            connection = await engine.connect()
        except CONNECT_ERRORS as exc:
            await engine.dispose()
            msg = f"failed to connect to database {self._database or '(default)'!r}: {exc}"
            raise ConnectionFailedError(msg) from exc

        self._engine = engine
        self._connection = connection
        self._owns_connection = True
        try:
            await self._configure(connection)
        except Exception:
            await self.close()
            raise

    async def setup_with_connection(self, connection: AsyncConnection) -> None:
        """Use a borrowed connection; ``close()`` will leave it open.

        The statement timeout, when configured, is applied to the shared
        session.

        Raises:
            TimeoutConfigurationError: If the statement timeout is rejected.
            QueryFailedError: If the version query fails.
            VersionUnparseableError: If the version cannot be parsed.
        """
        self._connection = connection
        self._owns_connection = False
        await self._configure(connection)

    async def _configure(self, connection: AsyncConnection) -> None:
        await apply_statement_timeout(connection, self._statement_timeout)
        self._version = await query_version(connection)
        logger.debug(
            "Instance ready",
            extra={
                "extra": {
                    "database": self._database,
                    "server_version": str(self._version),
                    "owns_connection": self._owns_connection,
                }
            },
        )

    @asynccontextmanager
    async def connect_to_database(self, database: str) -> AsyncIterator[AsyncConnection]:
        """Open a dedicated connection to another database on this server.

        The connection and its engine are released when the context exits,
        whether normally or by exception. The primary connection is untouched.

        Args:
            database: Name of the sibling database.

        Yields:
            An AsyncConnection to ``database``.

        Raises:
            ConnectionFailedError: If the database cannot be reached.
            TimeoutConfigurationError: If the statement timeout is rejected.
        """
        engine = create_single_connection_engine(rewrite_database(self._descriptor, database))
        try:
            try:
                connection = await engine.connect()
            except CONNECT_ERRORS as exc:
                msg = f"failed to connect to database {database!r}: {exc}"
                raise ConnectionFailedError(msg) from exc
            try:
                await apply_statement_timeout(connection, self._statement_timeout)
                yield connection
            finally:
                await connection.close()
        finally:
            await engine.dispose()

    async def close(self) -> None:
        """Release the connection if this Instance opened it. Idempotent."""
        connection, engine = self._connection, self._engine
        owned = self._owns_connection
        self._connection = None
        self._engine = None
        self._owns_connection = False
        if not owned:
            return
        try:
            if connection is not None:
                await connection.close()
        finally:
            if engine is not None:
                await engine.dispose()


InstanceFactory = Callable[[], Awaitable[Instance]]


def instance_factory_from_template(template: Instance) -> InstanceFactory:
    """Build a factory producing a freshly set-up copy of ``template`` per call.

    Args:
        template: An unconfigured Instance carrying descriptor and timeout.

    Returns:
        An async callable returning a connected Instance.
    """

    async def factory() -> Instance:
        instance = template.copy()
        await instance.setup()
        return instance

    return factory
