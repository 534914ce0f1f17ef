"""FastAPI application entry point for the sandbox manager.

This module initializes the FastAPI application with all middleware,
routers, and event handlers configured.

Usage:
    uv run uvicorn main:app --port 8090
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import register_exception_handlers, router
from bridge import BridgeClient
from config import Settings, configure_logging, settings
from sandbox import DockerDriver, PortAllocator, SandboxRegistry
from sandbox_manager import BridgeSettings, ContainerSettings, SandboxManager
from sweeper import ReclamationSweeper

# Configure structured logging
configure_logging(settings.log_level, settings.log_format)

logger = structlog.get_logger(__name__)


def build_sandbox_manager(config: Settings) -> SandboxManager:
    """Construct the allocator, registry, driver and manager from settings."""
    ports = PortAllocator(
        config.port_range_start,
        config.port_range_end,
        bridge_offset=config.bridge_port_offset,
    )
    driver = DockerDriver(
        operation_timeout=config.docker_operation_timeout_seconds,
        launch_settle_timeout=config.docker_launch_settle_seconds,
    )
    return SandboxManager(
        ports,
        SandboxRegistry(),
        driver,
        container=ContainerSettings(
            image=config.sandbox_image,
            vnc_port=config.container_vnc_port,
            bridge_port=config.container_bridge_port,
            shm_size=config.container_shm_size,
            name_prefix=config.container_name_prefix,
            default_resolution=config.default_resolution,
            stop_timeout=config.stop_timeout_seconds,
        ),
        bridge=BridgeSettings(
            probe_host=config.bridge_probe_host,
            poll_interval=config.bridge_poll_interval_seconds,
            max_wait=config.bridge_max_wait_seconds,
            stability_window=config.bridge_stability_window_seconds,
        ),
        bridge_client=BridgeClient(request_timeout=config.bridge_request_timeout_seconds),
        public_host=config.public_host,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events.

    Builds the sandbox manager, starts the reclamation sweeper, and on
    shutdown stops the sweeper and deletes every remaining sandbox.

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.
    """
    logger.info(
        "application_starting",
        manager_port=settings.manager_port,
        log_level=settings.log_level,
        image=settings.sandbox_image,
    )

    sandbox_manager = build_sandbox_manager(settings)
    sweeper = ReclamationSweeper(
        sandbox_manager,
        sandbox_manager.registry,
        interval=settings.sweep_interval_seconds,
        max_age=settings.sandbox_max_age_seconds,
        delete_timeout=settings.sweep_delete_timeout_seconds,
    )

    app.state.sandbox_manager = sandbox_manager
    app.state.sweeper = sweeper
    sweeper.start()

    logger.info("application_started")

    yield

    logger.info("application_shutting_down")

    await sweeper.stop()
    await sandbox_manager.cleanup_all()

    logger.info("application_shutdown_complete")


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    application = FastAPI(
        title="DevPilot Sandbox Manager",
        description="Provision, track and reclaim isolated desktop sandboxes.",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    register_exception_handlers(application)
    application.include_router(router, tags=["sandboxes"])
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.manager_port,
        log_level=settings.log_level.lower(),
    )
