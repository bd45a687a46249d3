import asyncio
import contextlib
from collections.abc import Awaitable, Callable

import structlog
import uvicorn
from fastapi import FastAPI, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest


logger = structlog.get_logger()

HealthProbe = Callable[[], Awaitable[bool]]


def create_metrics_app(probes: dict[str, HealthProbe] | None = None) -> FastAPI:
    """Create the FastAPI application serving /metrics and /health."""
    app = FastAPI(
        title="Transaction Service Metrics",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    checks = dict(probes or {})

    @app.get("/metrics", response_class=PlainTextResponse)
    async def metrics() -> PlainTextResponse:
        return PlainTextResponse(
            content=generate_latest(),
            media_type=CONTENT_TYPE_LATEST,
        )

    @app.get("/health")
    async def health(response: Response) -> dict[str, object]:
        results = {name: await probe() for name, probe in checks.items()}
        healthy = all(results.values())
        if not healthy:
            response.status_code = 503
        return {"status": "healthy" if healthy else "degraded", "checks": results}

    return app


class MetricsServer:
    """Serves Prometheus metrics and health checks from a background uvicorn task."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 9090,
        probes: dict[str, HealthProbe] | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._probes = probes
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        config = uvicorn.Config(
            create_metrics_app(self._probes),
            host=self._host,
            port=self._port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._server.serve())
        logger.info("metrics_server_started", host=self._host, port=self._port)

    async def stop(self) -> None:
        if self._server:
            self._server.should_exit = True

        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=5.0)
            except TimeoutError:
                self._task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._task

        logger.info("metrics_server_stopped")
