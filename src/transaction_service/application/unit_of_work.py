from types import TracebackType
from typing import Self

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from transaction_service.infrastructure.database import persistence_errors
from transaction_service.infrastructure.repositories import (
    InterestAccrualRepository,
    InterestRateRepository,
    TransactionRepository,
)


logger = structlog.get_logger()


class UnitOfWork:
    """Repositories sharing one session.

    Services commit explicitly after every durable step; leaving the context
    with an exception rolls back whatever was not yet committed.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.transactions = TransactionRepository(session)
        self.accruals = InterestAccrualRepository(session)
        self.interest_rates = InterestRateRepository(session)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            return
        try:
            await self.rollback()
        except SQLAlchemyError:
            # the original exception keeps propagating
            logger.error("unit_of_work_rollback_failed", original_error=repr(exc_val), exc_info=True)

    async def commit(self) -> None:
        with persistence_errors("commit"):
            await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()
