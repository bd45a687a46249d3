"""Clients for remote collaborators."""

from transaction_service.infrastructure.clients.auth import AuthVerifierClient
from transaction_service.infrastructure.clients.ledger import LedgerAverageBalanceClient, LedgerGatewayClient


__all__ = [
    "AuthVerifierClient",
    "LedgerAverageBalanceClient",
    "LedgerGatewayClient",
]
