#!/usr/bin/env python3
"""One-shot accrual sweep.

Settles every PENDING interest accrual once using the service credential
and exits. Intended for cron or a Kubernetes CronJob when the in-process
sweeper is disabled.
"""
import asyncio
import signal

import structlog

from transaction_service.config import Settings
from transaction_service.infrastructure.accrual_sweeper import AccrualSweeper
from transaction_service.infrastructure.clients import (
    AuthVerifierClient,
    LedgerAverageBalanceClient,
    LedgerGatewayClient,
)
from transaction_service.infrastructure.database import Database
from transaction_service.infrastructure.redis_client import RedisClient
from transaction_service.logging import configure_logging


logger = structlog.get_logger()


async def main() -> int:
    """Run a single sweep. Exit status is 1 when any accrual ended FAILED."""
    settings = Settings()
    configure_logging(level=settings.log_level, log_format=settings.log_format)

    logger.info(
        "accrual_sweep_starting",
        database_url=settings.database_url.split("@")[-1],
        ledger_base_url=settings.ledger_base_url,
        timeout_seconds=settings.sweep_timeout_seconds,
    )

    database = Database(
        settings.database_url,
        pool_size=settings.database_pool_size,
        statement_timeout_ms=settings.database_statement_timeout_ms,
    )
    redis_client = RedisClient(settings.redis_url, socket_timeout=settings.redis_socket_timeout_seconds)
    await redis_client.connect()
    auth = AuthVerifierClient(settings.auth_check_token_url, timeout=settings.auth_timeout_seconds)
    ledger = LedgerGatewayClient(settings.ledger_base_url, timeout=settings.ledger_timeout_seconds)
    balances = LedgerAverageBalanceClient(
        settings.ledger_base_url,
        service_token=settings.service_token.get_secret_value(),
        timeout=settings.ledger_timeout_seconds,
    )
    sweeper = AccrualSweeper(
        database=database,
        cache=redis_client.cache(settings.cache_ttl_seconds),
        auth=auth,
        ledger=ledger,
        balances=balances,
        settings=settings,
    )

    sweep_task = asyncio.create_task(sweeper.run_once())

    def signal_handler() -> None:
        logger.info("shutdown_signal_received")
        sweep_task.cancel()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        result = await sweep_task
    except asyncio.CancelledError:
        logger.warning("accrual_sweep_interrupted")
        return 1
    finally:
        await ledger.close()
        await balances.close()
        await auth.close()
        await redis_client.close()
        await database.close()

    logger.info(
        "accrual_sweep_complete",
        total=result.total,
        success_count=result.success_count,
        failure_count=result.failure_count,
    )
    return 1 if result.failure_count else 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
