"""
Relational database connector.

Opens a fresh SQLAlchemy async engine per call (no pooling) from a
database credential, runs one operation inside a transaction and disposes
the engine again.
"""

from typing import Any, Awaitable, Callable, Dict, TypeVar
import logging

from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.exc import ArgumentError, InvalidRequestError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine
from sqlalchemy.pool import NullPool

from agentflow.engine.credentials import DatabaseCredential
from agentflow.engine.errors import ConfigurationError, ExternalCallError


logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_database_url(credential: DatabaseCredential) -> URL:
    """Build the SQLAlchemy URL for a database credential."""
    if credential.driver.startswith("sqlite"):
        return URL.create(credential.driver, database=credential.database)
    return URL.create(
        credential.driver,
        username=credential.user or None,
        password=credential.password or None,
        host=credential.host or None,
        port=credential.port,
        database=credential.database or None,
    )


def connect_args(credential: DatabaseCredential) -> Dict[str, Any]:
    """Driver-specific connection arguments."""
    if credential.ssl_mode and credential.driver.startswith("postgresql+asyncpg"):
        return {"ssl": credential.ssl_mode}
    return {}


class DatabaseConnector:
    """
    Runs operations against the database described by a credential.

    Usage:
        connector = DatabaseConnector()
        rows = await connector.run(credential, my_operation)
    """

    def __init__(self, echo: bool = False):
        self.echo = echo

    async def run(
        self,
        credential: DatabaseCredential,
        operation: Callable[[AsyncConnection], Awaitable[T]]
    ) -> T:
        """
        Run an operation on a new connection, committing on success.

        Raises:
            ConfigurationError: If the driver is unknown, not installed or
                not an asyncio driver
            ExternalCallError: If connecting or the operation fails at the
                database level
        """
        try:
            engine = create_async_engine(
                build_database_url(credential),
                poolclass=NullPool,
                connect_args=connect_args(credential),
                echo=self.echo,
            )
        except (ImportError, ArgumentError, InvalidRequestError) as e:
            raise ConfigurationError(
                f"unsupported database driver '{credential.driver}': {e}"
            ) from e

        try:
            async with engine.begin() as conn:
                return await operation(conn)
        except SQLAlchemyError as e:
            raise ExternalCallError(f"database operation failed: {e}") from e
        except OSError as e:
            raise ExternalCallError(f"failed to connect: {e}") from e
        finally:
            await engine.dispose()

    async def test_connection(self, credential: DatabaseCredential) -> None:
        """Open a connection and run a trivial query."""
        async def ping(conn: AsyncConnection) -> None:
            await conn.execute(text("SELECT 1"))

        await self.run(credential, ping)
        logger.info(f"Database connection to {credential.host or credential.database} ok")
