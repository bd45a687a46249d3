import asyncio
import contextlib
import signal

import structlog

from transaction_service.api.metrics_server import MetricsServer
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


async def main() -> None:
    settings = Settings()
    configure_logging(
        level=settings.log_level,
        log_format=settings.log_format,
    )

    logger.info(
        "starting_transaction_service",
        metrics_port=settings.metrics_port,
        log_level=settings.log_level,
        metrics_enabled=settings.metrics_enabled,
        sweep_enabled=settings.sweep_enabled,
        ledger_base_url=settings.ledger_base_url,
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

    metrics_server: MetricsServer | None = None
    if settings.metrics_enabled:
        metrics_server = MetricsServer(
            host=settings.metrics_host,
            port=settings.metrics_port,
            probes={"database": database.health_check, "redis": redis_client.health_check},
        )
        await metrics_server.start()

    sweeper = AccrualSweeper(
        database=database,
        cache=redis_client.cache(settings.cache_ttl_seconds),
        auth=auth,
        ledger=ledger,
        balances=balances,
        settings=settings,
    )

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_event.set)

    sweeper_task: asyncio.Task[None] | None = None
    if settings.sweep_enabled:
        sweeper_task = asyncio.create_task(sweeper.start())

    try:
        await shutdown_event.wait()
    finally:
        logger.info("shutting_down")
        await sweeper.stop()
        if sweeper_task:
            # let an in-flight sweep finish writing terminal statuses
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper_task
        if metrics_server:
            await metrics_server.stop()
        await ledger.close()
        await balances.close()
        await auth.close()
        await redis_client.close()
        await database.close()
        logger.info("transaction_service_stopped")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
