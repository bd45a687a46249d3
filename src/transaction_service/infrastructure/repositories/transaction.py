import json
from datetime import datetime
from decimal import Decimal
from typing import Any, cast

from sqlalchemy import CursorResult, Row, text
from sqlalchemy.ext.asyncio import AsyncSession

from transaction_service.domain.models import (
    Transaction,
    TransactionStats,
    TransactionStatus,
    TransactionType,
)


_COLUMNS = """
    id, user_id, account_id, amount, currency, type, status,
    description, reference, metadata, created_at, updated_at
"""


def _load_metadata(raw: Any) -> dict[str, Any]:
    if raw is None:
        return {}
    if isinstance(raw, str):
        return cast(dict[str, Any], json.loads(raw))
    return dict(raw)


def _to_transaction(row: Row[Any]) -> Transaction:
    return Transaction(
        id=row.id,
        user_id=row.user_id,
        account_id=row.account_id,
        amount=Decimal(row.amount),
        currency=row.currency,
        type=TransactionType(row.type),
        status=TransactionStatus(row.status),
        description=row.description or "",
        reference=row.reference or "",
        metadata=_load_metadata(row.metadata),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class TransactionRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, transaction: Transaction) -> None:
        await self._session.execute(
            text("""
                INSERT INTO transactions
                    (id, user_id, account_id, amount, currency, type, status,
                     description, reference, metadata, created_at, updated_at)
                VALUES
                    (:id, :user_id, :account_id, :amount, :currency, :type, :status,
                     :description, :reference, CAST(:metadata AS JSONB), :created_at, :updated_at)
            """),
            {
                "id": transaction.id,
                "user_id": transaction.user_id,
                "account_id": transaction.account_id,
                "amount": transaction.amount,
                "currency": transaction.currency,
                "type": transaction.type.value,
                "status": transaction.status.value,
                "description": transaction.description,
                "reference": transaction.reference,
                "metadata": json.dumps(transaction.metadata),
                "created_at": transaction.created_at,
                "updated_at": transaction.updated_at,
            },
        )

    async def get(self, transaction_id: str) -> Transaction | None:
        result = await self._session.execute(
            text(f"SELECT {_COLUMNS} FROM transactions WHERE id = :id"),
            {"id": transaction_id},
        )
        row = result.fetchone()
        if not row:
            return None
        return _to_transaction(row)

    async def get_by_user(self, user_id: str, limit: int, offset: int) -> list[Transaction]:
        result = await self._session.execute(
            text(f"""
                SELECT {_COLUMNS}
                FROM transactions
                WHERE user_id = :user_id
                ORDER BY created_at DESC
                LIMIT :limit OFFSET :offset
            """),
            {"user_id": user_id, "limit": limit, "offset": offset},
        )
        return [_to_transaction(row) for row in result.fetchall()]

    async def update_status(
        self,
        transaction_id: str,
        status: TransactionStatus,
        updated_at: datetime,
    ) -> bool:
        """Move a PENDING transaction to ``status``.

        Returns False when the row was no longer PENDING.
        """
        result = cast(
            "CursorResult[Any]",
            await self._session.execute(
                text("""
                    UPDATE transactions
                    SET status = :status, updated_at = :updated_at
                    WHERE id = :id AND status = 'PENDING'
                """),
                {
                    "id": transaction_id,
                    "status": status.value,
                    "updated_at": updated_at,
                },
            ),
        )
        return (result.rowcount or 0) > 0

    async def get_user_stats(self, user_id: str) -> TransactionStats:
        result = await self._session.execute(
            text("""
                SELECT
                    COUNT(*) AS total_count,
                    COUNT(*) FILTER (WHERE status = 'COMPLETED') AS completed_count,
                    COUNT(*) FILTER (WHERE status = 'FAILED') AS failed_count,
                    COALESCE(SUM(amount) FILTER (WHERE type = 'DEPOSIT' AND status = 'COMPLETED'), 0)
                        AS total_deposits,
                    COALESCE(SUM(amount) FILTER (WHERE type = 'WITHDRAWAL' AND status = 'COMPLETED'), 0)
                        AS total_withdrawals
                FROM transactions
                WHERE user_id = :user_id
            """),
            {"user_id": user_id},
        )
        row = result.fetchone()
        if not row:
            return TransactionStats()
        return TransactionStats(
            total_count=row.total_count,
            completed_count=row.completed_count,
            failed_count=row.failed_count,
            total_deposits=Decimal(row.total_deposits),
            total_withdrawals=Decimal(row.total_withdrawals),
        )
