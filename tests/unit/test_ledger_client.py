"""Unit tests for the ledger HTTP clients."""

import json
from decimal import Decimal

import httpx
import pytest

from transaction_service.domain.exceptions import DownstreamError
from transaction_service.domain.models import SettlementRequest, TransactionType
from transaction_service.infrastructure.clients.ledger import LedgerAverageBalanceClient, LedgerGatewayClient


def gateway(handler) -> LedgerGatewayClient:
    return LedgerGatewayClient(
        "http://ledger.test/",
        timeout=1.0,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.fixture
def deposit_request() -> SettlementRequest:
    return SettlementRequest(
        amount=Decimal("100.00"),
        currency="USD",
        type=TransactionType.DEPOSIT,
        description="Salary",
        reference="01HTXN00000000000000000001",
        idempotency_key="01HTXN00000000000000000001",
        to_account_id="account-001",
    )


class TestGetBalance:
    """Tests for LedgerGatewayClient.get_balance."""

    @pytest.mark.asyncio
    async def test_parses_balance(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={"available_balance": "250.75", "locked_balance": "10.00", "currency": "USD"},
            )

        balance = await gateway(handler).get_balance("account-001", "user-token")

        assert balance.available == Decimal("250.75")
        assert balance.locked == Decimal("10.00")
        assert seen[0].url == "http://ledger.test/api/accounts/account-001/balance"
        assert seen[0].headers["Authorization"] == "Bearer user-token"

    @pytest.mark.asyncio
    async def test_missing_available_balance(self) -> None:
        client = gateway(lambda request: httpx.Response(200, json={"currency": "USD"}))

        with pytest.raises(DownstreamError, match="invalid balance response"):
            await client.get_balance("account-001", "user-token")

    @pytest.mark.asyncio
    async def test_http_error(self) -> None:
        client = gateway(lambda request: httpx.Response(404, text="no such account"))

        with pytest.raises(DownstreamError) as exc_info:
            await client.get_balance("account-001", "user-token")

        assert exc_info.value.status_code == 404
        assert exc_info.value.service == "ledger"


class TestSettle:
    """Tests for LedgerGatewayClient.settle."""

    @pytest.mark.asyncio
    async def test_posts_settlement_with_idempotency_key(self, deposit_request: SettlementRequest) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={"status": "COMPLETED", "new_balance": "1100.00", "transaction_id": "ledger-tx-9"},
            )

        result = await gateway(handler).settle(deposit_request, "user-token")

        assert result.new_balance == Decimal("1100.00")
        assert result.ledger_transaction_id == "ledger-tx-9"
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/api/transactions"
        assert request.headers["Idempotency-Key"] == deposit_request.idempotency_key
        body = json.loads(request.content)
        assert body == {
            "amount": "100.00",
            "currency": "USD",
            "type": "DEPOSIT",
            "description": "Salary",
            "reference": deposit_request.reference,
            "to_account_id": "account-001",
        }

    @pytest.mark.asyncio
    async def test_rejected_status(self, deposit_request: SettlementRequest) -> None:
        client = gateway(lambda request: httpx.Response(200, json={"status": "REJECTED", "message": "frozen"}))

        with pytest.raises(DownstreamError, match="frozen"):
            await client.settle(deposit_request, "user-token")

    @pytest.mark.asyncio
    async def test_server_error(self, deposit_request: SettlementRequest) -> None:
        client = gateway(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(DownstreamError) as exc_info:
            await client.settle(deposit_request, "user-token")

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_timeout(self, deposit_request: SettlementRequest) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(DownstreamError, match="timeout"):
            await gateway(handler).settle(deposit_request, "user-token")

    @pytest.mark.asyncio
    async def test_connection_error(self, deposit_request: SettlementRequest) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(DownstreamError, match="request failed"):
            await gateway(handler).settle(deposit_request, "user-token")

    @pytest.mark.asyncio
    async def test_non_json_body(self, deposit_request: SettlementRequest) -> None:
        client = gateway(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(DownstreamError, match="not valid JSON"):
            await client.settle(deposit_request, "user-token")

    @pytest.mark.asyncio
    async def test_missing_new_balance(self, deposit_request: SettlementRequest) -> None:
        client = gateway(lambda request: httpx.Response(200, json={"status": "COMPLETED"}))

        with pytest.raises(DownstreamError, match="invalid settlement response"):
            await client.settle(deposit_request, "user-token")


class TestAverageBalance:
    """Tests for LedgerAverageBalanceClient."""

    @pytest.mark.asyncio
    async def test_uses_service_token_and_period(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"average_balance": "1000.00"})

        client = LedgerAverageBalanceClient(
            "http://ledger.test",
            service_token="service-token",
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

        assert await client.average_balance("account-001", "2024-03") == Decimal("1000.00")
        assert seen[0].url.path == "/api/accounts/account-001/average-balance"
        assert seen[0].url.params["period"] == "2024-03"
        assert seen[0].headers["Authorization"] == "Bearer service-token"

    @pytest.mark.asyncio
    async def test_invalid_payload(self) -> None:
        client = LedgerAverageBalanceClient(
            "http://ledger.test",
            service_token="service-token",
            client=httpx.AsyncClient(
                transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"avg": 1}))
            ),
        )

        with pytest.raises(DownstreamError, match="invalid average balance response"):
            await client.average_balance("account-001", "2024-03")
