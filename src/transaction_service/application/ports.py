"""Interfaces of the collaborators the application services depend on."""

from decimal import Decimal
from typing import Any, Protocol

from transaction_service.domain.models import AccountBalance, Identity, SettlementRequest, SettlementResult


class LedgerGateway(Protocol):
    async def get_balance(self, account_id: str, credential: str) -> AccountBalance: ...

    async def settle(self, request: SettlementRequest, credential: str) -> SettlementResult: ...


class AuthVerifier(Protocol):
    async def verify(self, credential: str) -> Identity: ...


class AverageBalanceProvider(Protocol):
    async def average_balance(self, account_id: str, period: str) -> Decimal: ...


class ProjectionCache(Protocol):
    async def get(self, key: str) -> tuple[bool, Any]: ...

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def delete_by_prefix(self, prefix: str) -> int: ...
