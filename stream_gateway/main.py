"""
Stream Gateway main application.

Relays live frames from streamer connections to viewer and multi-viewer
connections over WebSockets.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from shared.config.logging import gateway_logger as logger, setup_logging
from shared.config.settings import Settings, get_settings
from shared.infrastructure.correlation import CorrelationIdMiddleware
from stream_gateway import __version__
from stream_gateway.components.endpoints.handlers import StreamEndpoint
from stream_gateway.components.metrics.prometheus import generate_prometheus_metrics
from stream_gateway.hub import StreamHub


# =============================================================================
# Background tasks
# =============================================================================


async def run_health_monitor(hub: StreamHub, interval: float) -> None:
    """
    Run the hub's health monitor every `interval` seconds.

    Each tick forces stale buffer flushes, cleans dead connections, prunes
    closed ones and emits streamStatus events. A failing tick is logged and
    the loop keeps going.
    """
    while True:
        try:
            await asyncio.sleep(interval)
            report = await hub.run_monitor_tick()

            if report.dead_cleaned > 0:
                logger.info("Cleaned up dead connections", count=report.dead_cleaned)

        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("Error in health monitor", error=str(e), exc_info=True)


# =============================================================================
# Routes
# =============================================================================

router = APIRouter()


def get_hub(request: Request) -> StreamHub:
    return request.app.state.hub


@router.get("/ws/health")
def health_check(request: Request):
    """Basic health check endpoint."""
    hub = get_hub(request)
    app_settings: Settings = request.app.state.settings
    try:
        stats = hub.get_stats()
    except Exception as e:
        logger.warning("Failed to get stats in health check", error=str(e))
        stats = {"error": "stats_unavailable"}
    return {
        "status": "shutting_down" if hub.is_shutting_down() else "healthy",
        "service": "stream-gateway",
        "version": __version__,
        "environment": app_settings.environment,
        "total_connections": stats.get("total_connections", 0),
        "active_streams": stats.get("active_streams", 0),
        "streams": stats.get("streams", []),
        "registry": stats.get("registry", {}),
        "dead_connections_pending": stats.get("dead_connections_pending", 0),
        **({"error": stats["error"]} if "error" in stats else {}),
    }


@router.get("/ws/metrics")
def prometheus_metrics(request: Request):
    """
    Prometheus-compatible metrics endpoint.

    Configure Prometheus scrape:
        scrape_configs:
          - job_name: 'stream-gateway'
            static_configs:
              - targets: ['localhost:5000']
            metrics_path: '/ws/metrics'
    """
    return PlainTextResponse(
        content=generate_prometheus_metrics(get_hub(request)),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


async def _serve_stream(websocket: WebSocket, endpoint_name: str) -> None:
    endpoint = StreamEndpoint(
        websocket,
        websocket.app.state.hub,
        endpoint_name,
        websocket.app.state.settings,
    )
    await endpoint.run()


@router.websocket("/")
async def root_websocket(websocket: WebSocket):
    """WebSocket endpoint for all client roles."""
    await _serve_stream(websocket, "/")


@router.websocket("/ws/stream")
async def stream_websocket(websocket: WebSocket):
    """Alias of the root WebSocket endpoint."""
    await _serve_stream(websocket, "/ws/stream")


# =============================================================================
# FastAPI Application
# =============================================================================


def create_app(
    app_settings: Settings | None = None,
    hub: StreamHub | None = None,
) -> FastAPI:
    """
    Build the application.

    The hub is created here (or injected by tests) and stored on app.state;
    handlers read it from there.
    """
    app_settings = app_settings or get_settings()
    hub = hub or StreamHub.from_settings(app_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.

        Starts the health monitor task; on shutdown stops it and closes
        every connection.
        """
        setup_logging()
        logger.info(
            "Starting Stream Gateway",
            port=app_settings.port,
            env=app_settings.environment,
            monitor_interval=app_settings.monitor_interval,
        )

        for error in app_settings.validate_production_settings():
            logger.warning("Configuration problem", problem=error)

        monitor_task = asyncio.create_task(
            run_health_monitor(hub, app_settings.monitor_interval),
            name="health_monitor",
        )

        yield

        logger.info("Shutting down Stream Gateway")
        monitor_task.cancel()
        try:
            await monitor_task
        except asyncio.CancelledError:
            pass

        await hub.shutdown()

    app = FastAPI(
        title="Stream Gateway",
        description="Real-time frame relay for streamers and viewers",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.hub = hub
    app.state.settings = app_settings

    allowed_origins = app_settings.get_allowed_origins()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        # Browsers reject credentials with a wildcard origin
        allow_credentials=allowed_origins != ["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type", CorrelationIdMiddleware.HEADER_NAME],
    )
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(router)
    return app


app = create_app()


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    from shared.config.settings import settings

    uvicorn.run(
        "stream_gateway.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
