from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog
from ulid import ULID

from transaction_service.application.transactions import (
    ProcessTransactionRequest,
    ProcessTransactionResult,
    TransactionService,
)
from transaction_service.domain.exceptions import DomainError


logger = structlog.get_logger()


@dataclass
class FailedTransaction:
    request: ProcessTransactionRequest
    error: DomainError

    @property
    def error_code(self) -> str:
        return self.error.code


@dataclass
class BatchResult:
    batch_id: str
    total: int
    successful: list[ProcessTransactionResult] = field(default_factory=list)
    failed: list[FailedTransaction] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.successful)

    @property
    def failure_count(self) -> int:
        return len(self.failed)


class BatchCoordinator:
    """
    Runs a list of transaction requests through the orchestrator one by one.

    Items are independent: a failed item is recorded and the batch moves on,
    nothing already settled is rolled back.
    """

    def __init__(self, transactions: TransactionService) -> None:
        self._transactions = transactions

    async def process_batch(self, requests: Sequence[ProcessTransactionRequest]) -> BatchResult:
        result = BatchResult(batch_id=str(ULID()), total=len(requests))
        log = logger.bind(batch_id=result.batch_id, total=result.total)
        log.info("batch_started")

        for index, request in enumerate(requests):
            try:
                processed = await self._transactions.process_transaction(request)
            except DomainError as e:
                log.info("batch_item_failed", index=index, error_code=e.code, error=str(e))
                result.failed.append(FailedTransaction(request=request, error=e))
            else:
                result.successful.append(processed)

        log.info(
            "batch_finished",
            success_count=result.success_count,
            failure_count=result.failure_count,
        )
        return result
