"""Application layer - services and use cases."""

from transaction_service.application.batch import BatchCoordinator, BatchResult, FailedTransaction
from transaction_service.application.interest import AccrualSweepItem, AccrualSweepResult, InterestService
from transaction_service.application.transactions import (
    ProcessTransactionRequest,
    ProcessTransactionResult,
    TransactionService,
)
from transaction_service.application.unit_of_work import UnitOfWork


__all__ = [
    "AccrualSweepItem",
    "AccrualSweepResult",
    "BatchCoordinator",
    "BatchResult",
    "FailedTransaction",
    "InterestService",
    "ProcessTransactionRequest",
    "ProcessTransactionResult",
    "TransactionService",
    "UnitOfWork",
]
