"""HTTP clients for the remote ledger (deposit) service."""

from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
import structlog

from transaction_service.domain.exceptions import DownstreamError
from transaction_service.domain.models import AccountBalance, SettlementRequest, SettlementResult


logger = structlog.get_logger()

REJECTED_STATUSES = frozenset({"FAILED", "REJECTED", "DECLINED"})


def _bearer(credential: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {credential}"}


def _amount(data: dict[str, Any], key: str) -> Decimal:
    try:
        return Decimal(str(data[key]))
    except (KeyError, InvalidOperation) as e:
        raise ValueError(f"missing or invalid {key}") from e


class LedgerGatewayClient:
    """Balance queries and settlement calls against the ledger service.

    The ledger is the system of record for balances. Every failure mode
    (timeout, transport error, non-2xx response, rejected settlement,
    unparseable body) is raised as DownstreamError.
    """

    SERVICE = "ledger"

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def get_balance(self, account_id: str, credential: str) -> AccountBalance:
        data = await self.fetch_json(
            "GET",
            f"{self.base_url}/api/accounts/{account_id}/balance",
            headers=_bearer(credential),
        )
        try:
            return AccountBalance(
                account_id=account_id,
                available=_amount(data, "available_balance"),
                locked=_amount(data, "locked_balance") if "locked_balance" in data else Decimal("0"),
                currency=str(data.get("currency", "")),
            )
        except ValueError as e:
            raise DownstreamError(self.SERVICE, f"invalid balance response: {e}") from e

    async def settle(self, request: SettlementRequest, credential: str) -> SettlementResult:
        payload: dict[str, Any] = {
            "amount": str(request.amount),
            "currency": request.currency,
            "type": request.type.value,
            "description": request.description,
            "reference": request.reference,
        }
        if request.from_account_id:
            payload["from_account_id"] = request.from_account_id
        if request.to_account_id:
            payload["to_account_id"] = request.to_account_id

        data = await self.fetch_json(
            "POST",
            f"{self.base_url}/api/transactions",
            json=payload,
            headers={**_bearer(credential), "Idempotency-Key": request.idempotency_key},
        )

        status = str(data.get("status", "")).upper()
        if status in REJECTED_STATUSES:
            logger.warning("ledger_settlement_rejected", reference=request.reference, status=status)
            raise DownstreamError(self.SERVICE, f"settlement rejected: {data.get('message') or status}")
        try:
            new_balance = _amount(data, "new_balance")
        except ValueError as e:
            raise DownstreamError(self.SERVICE, f"invalid settlement response: {e}") from e

        return SettlementResult(
            status=status or "COMPLETED",
            new_balance=new_balance,
            ledger_transaction_id=data.get("transaction_id"),
            message=data.get("message"),
        )

    async def fetch_json(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise DownstreamError(self.SERVICE, f"timeout after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise DownstreamError(
                self.SERVICE,
                f"returned status {e.response.status_code}: {e.response.text[:200]}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise DownstreamError(self.SERVICE, f"request failed: {e!r}") from e
        except ValueError as e:
            raise DownstreamError(self.SERVICE, "response is not valid JSON") from e
        if not isinstance(data, dict):
            raise DownstreamError(self.SERVICE, "response is not a JSON object")
        return data


class LedgerAverageBalanceClient:
    """Average principal balance of an account over a ``YYYY-MM`` period.

    The averaging algorithm belongs to the ledger service; this client only
    asks for the figure using the service credential.
    """

    def __init__(
        self,
        base_url: str,
        service_token: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._gateway = LedgerGatewayClient(base_url, timeout, client)
        self._service_token = service_token

    async def close(self) -> None:
        await self._gateway.close()

    async def average_balance(self, account_id: str, period: str) -> Decimal:
        data = await self._gateway.fetch_json(
            "GET",
            f"{self._gateway.base_url}/api/accounts/{account_id}/average-balance",
            params={"period": period},
            headers=_bearer(self._service_token),
        )
        try:
            return _amount(data, "average_balance")
        except ValueError as e:
            raise DownstreamError(LedgerGatewayClient.SERVICE, f"invalid average balance response: {e}") from e
