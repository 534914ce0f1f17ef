"""Application configuration using Pydantic Settings.

This module provides centralized configuration management for the sandbox
manager. All settings can be overridden via environment variables or a .env file.
"""

import json
import logging
from typing import Any

import structlog
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        sandbox_image: Docker image for desktop sandbox containers.
        port_range_start: First host port of the VNC port pool (inclusive).
        port_range_end: End of the VNC port pool (exclusive).
        bridge_port_offset: Fixed offset from a VNC port to its bridge port.
        container_vnc_port: noVNC port exposed inside the container.
        container_bridge_port: Bridge API port exposed inside the container.
        container_shm_size: Shared memory ceiling for each container.
        container_name_prefix: Prefix for container names.
        default_resolution: Desktop resolution used when none is requested.
        public_host: Host name placed in returned connection URLs.
        docker_operation_timeout_seconds: Timeout for container runtime calls.
        docker_launch_settle_seconds: How long to wait for a timed-out create
            to finish so its container can be removed.
        stop_timeout_seconds: Grace period handed to ``docker stop``.
        sweep_interval_seconds: Period of the reclamation sweeper.
        sandbox_max_age_seconds: Maximum sandbox lifetime before reclamation.
        sweep_delete_timeout_seconds: Bound on one sandbox delete during a sweep.
        bridge_poll_interval_seconds: Interval between bridge readiness probes.
        bridge_max_wait_seconds: Maximum time to wait for a bridge to come up.
        bridge_request_timeout_seconds: Timeout for a single bridge request.
        bridge_stability_window_seconds: Time the editor must stay up before
            it is reported ready.
        bridge_probe_host: Host the manager uses to reach published bridge ports.
        manager_port: Port for the FastAPI server.
        cors_origins: Allowed origins for CORS.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        log_format: Log format (json or text).
    """

    # Container Configuration
    sandbox_image: str = "devpilot-desktop"
    container_vnc_port: int = 6080
    container_bridge_port: int = 8091
    container_shm_size: str = "512m"
    container_name_prefix: str = "sandbox-"
    default_resolution: str = "1920x1080x24"

    # Port Pool
    port_range_start: int = 6100
    port_range_end: int = 6200
    # Bridge port = VNC port + offset (e.g. 6100 -> 7100)
    bridge_port_offset: int = 1000

    # Runtime Timeouts
    docker_operation_timeout_seconds: float = 30.0
    docker_launch_settle_seconds: float = 120.0
    stop_timeout_seconds: int = 5

    # Reclamation
    sweep_interval_seconds: float = 300.0
    sandbox_max_age_seconds: float = 7200.0
    sweep_delete_timeout_seconds: float = 60.0

    # Bridge Readiness
    bridge_poll_interval_seconds: float = 3.0
    bridge_max_wait_seconds: float = 90.0
    bridge_request_timeout_seconds: float = 5.0
    bridge_stability_window_seconds: float = 5.0
    bridge_probe_host: str = "127.0.0.1"

    # Server Configuration
    public_host: str = "localhost"
    manager_port: int = 8090
    cors_origins: str | list[str] = ["*"]
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> list[str]:
        """Parse CORS origins from string or list.

        Accepts:
        - JSON array: '["http://localhost:4200"]'
        - Comma-separated: 'http://localhost:4200,http://localhost:8080'
        - Single value: 'http://localhost:4200'
        - Already a list: ["http://localhost:4200"]
        """
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("["):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return ["*"]

    @model_validator(mode="after")
    def check_port_ranges(self) -> "Settings":
        """Reject empty pools and bridge ranges that collide with VNC ports."""
        if self.port_range_end <= self.port_range_start:
            raise ValueError("port_range_end must be greater than port_range_start")
        if self.bridge_port_offset <= 0:
            raise ValueError("bridge_port_offset must be positive")
        if self.port_range_start + self.bridge_port_offset < self.port_range_end:
            raise ValueError("bridge port range overlaps the VNC port range")
        if self.port_range_end - 1 + self.bridge_port_offset > 65535:
            raise ValueError("bridge port range exceeds 65535")
        return self

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


def configure_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structured logging for the application.

    Sets up structlog with appropriate processors for either JSON or console output.

    Args:
        log_level: The minimum log level to emit (DEBUG, INFO, WARNING, ERROR).
        log_format: Output format - 'json' for production, 'text' for development.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Global settings instance
settings = Settings()

# Configure logging on module import
configure_logging(settings.log_level, settings.log_format)

logger = structlog.get_logger(__name__)
