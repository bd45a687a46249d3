import json
from datetime import datetime
from decimal import Decimal
from typing import Any, cast

from sqlalchemy import CursorResult, Row, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from transaction_service.domain.exceptions import DuplicateAccrualPeriodError
from transaction_service.domain.models import AccrualStatus, InterestAccrual, InterestRate


_ACCRUAL_COLUMNS = """
    id, user_id, account_id, period, principal, interest, rate,
    status, metadata, applied_at, created_at
"""


def _to_accrual(row: Row[Any]) -> InterestAccrual:
    metadata = row.metadata
    if isinstance(metadata, str):
        metadata = json.loads(metadata)
    return InterestAccrual(
        id=row.id,
        user_id=row.user_id,
        account_id=row.account_id,
        period=row.period,
        principal=Decimal(row.principal),
        interest=Decimal(row.interest),
        rate=Decimal(row.rate),
        status=AccrualStatus(row.status),
        metadata=dict(metadata or {}),
        applied_at=row.applied_at,
        created_at=row.created_at,
    )


class InterestRateRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_effective(self, account_category: str, as_of: datetime) -> InterestRate | None:
        result = await self._session.execute(
            text("""
                SELECT id, account_category, rate, effective_from, effective_to
                FROM interest_rates
                WHERE account_category = :account_category
                  AND effective_from <= :as_of
                  AND (effective_to IS NULL OR effective_to >= :as_of)
                ORDER BY effective_from DESC
                LIMIT 1
            """),
            {"account_category": account_category, "as_of": as_of},
        )
        row = result.fetchone()
        if not row:
            return None
        return InterestRate(
            id=row.id,
            account_category=row.account_category,
            rate=Decimal(row.rate),
            effective_from=row.effective_from,
            effective_to=row.effective_to,
        )


class InterestAccrualRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, accrual: InterestAccrual) -> None:
        """
        Raises:
            DuplicateAccrualPeriodError: an accrual for the same user, account and period exists
        """
        try:
            await self._session.execute(
                text("""
                    INSERT INTO interest_accruals
                        (id, user_id, account_id, period, principal, interest, rate,
                         status, metadata, applied_at, created_at)
                    VALUES
                        (:id, :user_id, :account_id, :period, :principal, :interest, :rate,
                         :status, CAST(:metadata AS JSONB), :applied_at, :created_at)
                """),
                {
                    "id": accrual.id,
                    "user_id": accrual.user_id,
                    "account_id": accrual.account_id,
                    "period": accrual.period,
                    "principal": accrual.principal,
                    "interest": accrual.interest,
                    "rate": accrual.rate,
                    "status": accrual.status.value,
                    "metadata": json.dumps(accrual.metadata),
                    "applied_at": accrual.applied_at,
                    "created_at": accrual.created_at,
                },
            )
        except IntegrityError as e:
            raise DuplicateAccrualPeriodError(accrual.user_id, accrual.account_id, accrual.period) from e

    async def get_by_period(self, user_id: str, account_id: str, period: str) -> InterestAccrual | None:
        result = await self._session.execute(
            text(f"""
                SELECT {_ACCRUAL_COLUMNS}
                FROM interest_accruals
                WHERE user_id = :user_id AND account_id = :account_id AND period = :period
                LIMIT 1
            """),
            {"user_id": user_id, "account_id": account_id, "period": period},
        )
        row = result.fetchone()
        if not row:
            return None
        return _to_accrual(row)

    async def get_pending(self) -> list[InterestAccrual]:
        result = await self._session.execute(
            text(f"""
                SELECT {_ACCRUAL_COLUMNS}
                FROM interest_accruals
                WHERE status = 'PENDING'
                ORDER BY created_at ASC
            """),
        )
        return [_to_accrual(row) for row in result.fetchall()]

    async def get_by_user(self, user_id: str, limit: int, offset: int) -> list[InterestAccrual]:
        result = await self._session.execute(
            text(f"""
                SELECT {_ACCRUAL_COLUMNS}
                FROM interest_accruals
                WHERE user_id = :user_id
                ORDER BY created_at DESC
                LIMIT :limit OFFSET :offset
            """),
            {"user_id": user_id, "limit": limit, "offset": offset},
        )
        return [_to_accrual(row) for row in result.fetchall()]

    async def update_status(
        self,
        accrual_id: str,
        status: AccrualStatus,
        applied_at: datetime | None = None,
    ) -> bool:
        """Move a PENDING accrual to ``status``.

        Returns False when the row was no longer PENDING.
        """
        result = cast(
            "CursorResult[Any]",
            await self._session.execute(
                text("""
                    UPDATE interest_accruals
                    SET status = :status, applied_at = :applied_at
                    WHERE id = :id AND status = 'PENDING'
                """),
                {
                    "id": accrual_id,
                    "status": status.value,
                    "applied_at": applied_at,
                },
            ),
        )
        return (result.rowcount or 0) > 0
