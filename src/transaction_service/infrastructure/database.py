from collections.abc import AsyncGenerator, Iterator
from contextlib import asynccontextmanager, contextmanager

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from transaction_service.domain.exceptions import PersistenceError


logger = structlog.get_logger()


class Database:
    """Async engine and session factory for the transaction store.

    ``statement_timeout_ms`` is applied server side to every connection so a
    stuck query surfaces as PersistenceError instead of hanging a settlement.
    """

    def __init__(
        self,
        database_url: str,
        pool_size: int = 10,
        max_overflow: int = 20,
        statement_timeout_ms: int = 5000,
    ) -> None:
        self.engine = create_async_engine(
            database_url,
            echo=False,
            pool_pre_ping=True,
            pool_size=pool_size,
            max_overflow=max_overflow,
            connect_args={"server_settings": {"statement_timeout": str(statement_timeout_ms)}},
        )
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def health_check(self) -> bool:
        try:
            async with self.engine.connect() as connection:
                await connection.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("database_health_check_failed", exc_info=True)
            return False
        return True

    async def close(self) -> None:
        await self.engine.dispose()


@contextmanager
def persistence_errors(operation: str) -> Iterator[None]:
    """Translate SQLAlchemy failures raised inside the block into PersistenceError."""
    try:
        yield
    except SQLAlchemyError as e:
        raise PersistenceError(operation, str(e)) from e
