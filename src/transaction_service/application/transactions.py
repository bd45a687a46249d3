from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog

from transaction_service.application.access import require_access, resolve_page
from transaction_service.application.ports import AuthVerifier, LedgerGateway, ProjectionCache
from transaction_service.application.projections import BestEffortCache
from transaction_service.application.settlement import SettlementStep
from transaction_service.application.unit_of_work import UnitOfWork
from transaction_service.config import Settings
from transaction_service.domain.exceptions import (
    DomainError,
    IdentityMismatchError,
    InsufficientBalanceError,
    PersistenceError,
    TransactionNotFoundError,
    ValidationError,
)
from transaction_service.domain.metadata import validate_transaction_metadata
from transaction_service.domain.models import (
    AMOUNT_QUANTUM,
    MAX_AMOUNT,
    Transaction,
    TransactionStats,
    TransactionStatus,
    TransactionType,
)
from transaction_service.infrastructure.cache import (
    transaction_key,
    user_stats_key,
    user_transactions_key,
    user_views_prefix,
)
from transaction_service.infrastructure.database import persistence_errors
from transaction_service.infrastructure.metrics import (
    TERMINAL_STATUS_WRITE_FAILURES_TOTAL,
    TRANSACTIONS_REJECTED_TOTAL,
    TRANSACTIONS_TOTAL,
    track_transaction_duration,
)


logger = structlog.get_logger()


@dataclass
class ProcessTransactionRequest:
    user_id: str
    account_id: str
    amount: Decimal
    currency: str
    type: TransactionType
    credential: str = field(repr=False)
    description: str = ""
    reference: str = ""
    metadata: dict[str, Any] | None = None


@dataclass
class ProcessTransactionResult:
    transaction: Transaction
    new_balance: Decimal
    message: str = "Transaction processed successfully"


class TransactionService:
    """Drives a transaction from validation through settlement to its terminal status."""

    def __init__(
        self,
        uow: UnitOfWork,
        cache: ProjectionCache,
        auth: AuthVerifier,
        ledger: LedgerGateway,
        settings: Settings,
    ) -> None:
        self.uow = uow
        self._cache = BestEffortCache(cache)
        self._auth = auth
        self._ledger = ledger
        self._settlement = SettlementStep(ledger)
        self._settings = settings

    @track_transaction_duration
    async def process_transaction(self, request: ProcessTransactionRequest) -> ProcessTransactionResult:
        try:
            amount, tx_type, metadata = self._validate(request)
        except ValidationError as e:
            TRANSACTIONS_REJECTED_TOTAL.labels(error_code=e.code).inc()
            raise

        log = logger.bind(
            user_id=request.user_id,
            account_id=request.account_id,
            type=tx_type.value,
            amount=str(amount),
        )

        try:
            identity = await self._auth.verify(request.credential)
            if identity.user_id != request.user_id:
                raise IdentityMismatchError(request.user_id, identity.user_id)

            if tx_type is TransactionType.WITHDRAWAL:
                # not atomic with the settlement below; the ledger must serialize debits
                balance = await self._ledger.get_balance(request.account_id, request.credential)
                if balance.available < amount:
                    log.info("transaction_declined", reason="INSUFFICIENT_BALANCE", available=str(balance.available))
                    raise InsufficientBalanceError(request.account_id, amount, balance.available)
        except DomainError as e:
            TRANSACTIONS_REJECTED_TOTAL.labels(error_code=e.code).inc()
            raise

        transaction = Transaction.create(
            user_id=request.user_id,
            account_id=request.account_id,
            amount=amount,
            currency=request.currency.upper(),
            type=tx_type,
            description=request.description,
            reference=request.reference,
            metadata=metadata,
        )
        log = log.bind(transaction_id=transaction.id)

        async with self.uow:
            with persistence_errors("create_transaction"):
                await self.uow.transactions.add(transaction)
            await self.uow.commit()
            log.info("transaction_pending", step="1/3")

            try:
                settlement = await self._settlement.execute(
                    transaction.settlement_request(),
                    request.credential,
                    on_settled=lambda _result: self._finalize(transaction, TransactionStatus.COMPLETED, log),
                    on_failed=lambda _error: self._finalize(transaction, TransactionStatus.FAILED, log),
                )
            finally:
                await self._cache.invalidate(
                    keys=[transaction_key(transaction.id)],
                    prefixes=[user_views_prefix(transaction.user_id)],
                )

        log.info("transaction_completed", step="3/3", new_balance=str(settlement.new_balance))
        return ProcessTransactionResult(transaction=transaction, new_balance=settlement.new_balance)

    async def get_transaction_by_id(self, transaction_id: str, credential: str) -> Transaction:
        identity = await self._auth.verify(credential)

        key = transaction_key(transaction_id)
        found, cached = await self._cache.get(key)
        if found:
            try:
                transaction = Transaction.from_dict(cached)
            except (KeyError, TypeError, ValueError, InvalidOperation):
                logger.warning("cache_entry_discarded", key=key)
                found = False

        if not found:
            async with self.uow:
                with persistence_errors("get_transaction"):
                    loaded = await self.uow.transactions.get(transaction_id)
            if loaded is None:
                raise TransactionNotFoundError(transaction_id)
            transaction = loaded

        require_access(identity, transaction.user_id, f"transaction {transaction_id}")

        if not found:
            await self._cache.set(key, transaction.to_dict(), self._settings.cache_ttl_seconds)
        return transaction

    async def get_user_transactions(
        self,
        user_id: str,
        credential: str,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Transaction]:
        limit, offset = resolve_page(limit, offset, self._settings)
        identity = await self._auth.verify(credential)
        require_access(identity, user_id, f"transactions of user {user_id}")

        key = user_transactions_key(user_id, limit, offset)
        found, cached = await self._cache.get(key)
        if found:
            try:
                return [Transaction.from_dict(item) for item in cached]
            except (KeyError, TypeError, ValueError, InvalidOperation):
                logger.warning("cache_entry_discarded", key=key)

        async with self.uow:
            with persistence_errors("get_user_transactions"):
                transactions = await self.uow.transactions.get_by_user(user_id, limit, offset)

        await self._cache.set(key, [t.to_dict() for t in transactions], self._settings.cache_ttl_seconds)
        return transactions

    async def get_transaction_stats(self, user_id: str, credential: str) -> TransactionStats:
        identity = await self._auth.verify(credential)
        require_access(identity, user_id, f"statistics of user {user_id}")

        key = user_stats_key(user_id)
        found, cached = await self._cache.get(key)
        if found:
            try:
                return TransactionStats.from_dict(cached)
            except (KeyError, TypeError, ValueError, InvalidOperation):
                logger.warning("cache_entry_discarded", key=key)

        async with self.uow:
            with persistence_errors("get_transaction_stats"):
                stats = await self.uow.transactions.get_user_stats(user_id)

        await self._cache.set(key, stats.to_dict(), self._settings.stats_cache_ttl_seconds)
        return stats

    def _validate(self, request: ProcessTransactionRequest) -> tuple[Decimal, TransactionType, dict[str, Any]]:
        try:
            amount = request.amount if isinstance(request.amount, Decimal) else Decimal(str(request.amount))
        except InvalidOperation as e:
            raise ValidationError("amount", "must be a decimal number") from e
        if not amount.is_finite() or amount <= 0:
            raise ValidationError("amount", "must be positive")
        if amount >= MAX_AMOUNT:
            raise ValidationError("amount", f"must be less than {MAX_AMOUNT}")
        if amount.quantize(AMOUNT_QUANTUM) != amount:
            raise ValidationError("amount", "at most 4 decimal places are allowed")

        if not request.user_id:
            raise ValidationError("user_id", "user ID is required")
        if not request.account_id:
            raise ValidationError("account_id", "account ID is required")
        if not request.currency:
            raise ValidationError("currency", "currency is required")
        if len(request.currency) != 3 or not request.currency.isalpha():
            raise ValidationError("currency", "must be an ISO 4217 code (3 letters)")
        if not request.credential:
            raise ValidationError("credential", "access token is required")

        try:
            tx_type = TransactionType(request.type)
        except ValueError as e:
            raise ValidationError("type", f"unknown transaction type {request.type!r}") from e

        metadata = validate_transaction_metadata(request.metadata)
        if tx_type is TransactionType.TRANSFER and "counterparty_account_id" not in metadata:
            raise ValidationError("metadata.counterparty_account_id", "required for transfers")
        return amount, tx_type, metadata

    async def _finalize(
        self,
        transaction: Transaction,
        status: TransactionStatus,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        if status is TransactionStatus.COMPLETED:
            transaction.mark_completed()
        else:
            transaction.mark_failed()

        try:
            with persistence_errors("finalize_transaction"):
                updated = await self.uow.transactions.update_status(
                    transaction.id,
                    transaction.status,
                    transaction.updated_at,
                )
            await self.uow.commit()
        except PersistenceError:
            TERMINAL_STATUS_WRITE_FAILURES_TOTAL.labels(entity="transaction").inc()
            log.critical("transaction_finalize_failed", status=status.value, exc_info=True)
            raise

        if not updated:
            log.warning("transaction_already_terminal", status=status.value)
        TRANSACTIONS_TOTAL.labels(type=transaction.type.value, status=status.value).inc()
        log.info("transaction_finalized", step="2/3", status=status.value)
