"""Unit tests for UnitOfWork."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from transaction_service.application.unit_of_work import UnitOfWork
from transaction_service.domain.exceptions import PersistenceError
from transaction_service.infrastructure.repositories import (
    InterestAccrualRepository,
    InterestRateRepository,
    TransactionRepository,
)


class TestUnitOfWork:
    """Tests for UnitOfWork."""

    def test_exposes_repositories(self) -> None:
        uow = UnitOfWork(AsyncMock())

        assert isinstance(uow.transactions, TransactionRepository)
        assert isinstance(uow.accruals, InterestAccrualRepository)
        assert isinstance(uow.interest_rates, InterestRateRepository)

    @pytest.mark.asyncio
    async def test_clean_exit_does_not_roll_back(self) -> None:
        session = AsyncMock()

        async with UnitOfWork(session):
            pass

        session.rollback.assert_not_called()

    @pytest.mark.asyncio
    async def test_error_rolls_back(self) -> None:
        session = AsyncMock()

        with pytest.raises(ValueError):
            async with UnitOfWork(session):
                raise ValueError("boom")

        session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_rollback_keeps_original_error(self) -> None:
        session = AsyncMock()
        session.rollback.side_effect = SQLAlchemyError("connection lost")

        with pytest.raises(ValueError):
            async with UnitOfWork(session):
                raise ValueError("boom")

    @pytest.mark.asyncio
    async def test_commit_failure_becomes_persistence_error(self) -> None:
        session = AsyncMock()
        session.commit.side_effect = OperationalError("COMMIT", {}, Exception("server closed the connection"))

        with pytest.raises(PersistenceError) as exc_info:
            await UnitOfWork(session).commit()

        assert exc_info.value.operation == "commit"
