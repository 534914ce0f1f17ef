"""HTTP API routes for the sandbox manager.

This module defines the endpoints that create, inspect, stop and delete
sandboxes, plus health and bridge readiness checks. Error bodies are
rendered as ``{"error": ...}`` by the handlers in ``api.errors``.
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status

from bridge import BridgeTimeoutError
from models.schemas import (
    ActionResponse,
    BridgeReadinessResponse,
    CreateSandboxRequest,
    CreateSandboxResponse,
    ErrorResponse,
    HealthResponse,
    SandboxListResponse,
    SandboxStatusResponse,
    SandboxSummary,
)
from sandbox.docker_driver import ContainerRuntimeError
from sandbox.ports import PortPoolExhaustedError
from sandbox.registry import SandboxNotFoundError
from sandbox_manager import SandboxManager

logger = structlog.get_logger(__name__)

router = APIRouter()

SandboxId = Annotated[str, Path(description="The sandbox ID", max_length=64)]

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Unknown sandbox"}}
_SERVER_ERROR = {500: {"model": ErrorResponse, "description": "Container runtime failure"}}


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------


def get_sandbox_manager(request: Request) -> SandboxManager:
    """Return the SandboxManager stored on the application state.

    Raises:
        RuntimeError: If the application was started without a manager.
    """
    manager = getattr(request.app.state, "sandbox_manager", None)
    if manager is None:
        logger.error("sandbox_manager_not_configured")
        raise RuntimeError(
            "SandboxManager not configured. Set app.state.sandbox_manager during startup."
        )
    return manager


Manager = Annotated[SandboxManager, Depends(get_sandbox_manager)]


def _not_found(sandbox_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Sandbox {sandbox_id} not found",
    )


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Health check endpoint with Docker and port pool status.",
)
async def health_check(request: Request) -> HealthResponse:
    """Report liveness plus Docker reachability and remaining capacity.

    The status is always ``ok`` while the process serves requests; Docker
    availability is reported separately.
    """
    manager = getattr(request.app.state, "sandbox_manager", None)
    if manager is None:
        return HealthResponse()

    docker_available = False
    try:
        docker_available = manager.is_docker_available()
    except Exception as e:
        logger.warning("health_check_partial_failure", error=str(e))

    return HealthResponse(
        docker_available=docker_available,
        active_sandboxes=manager.get_active_sandbox_count(),
        capacity=manager.ports.capacity,
        free_ports=manager.ports.free_count(),
    )


@router.get(
    "/sandboxes",
    response_model=SandboxListResponse,
    summary="List sandboxes",
    description="List all live sandboxes with their container status.",
)
async def list_sandboxes(manager: Manager) -> SandboxListResponse:
    views = await manager.list()
    return SandboxListResponse(
        sandboxes=[
            SandboxSummary(
                id=view.record.sandbox_id,
                port=view.record.vnc_port,
                status=view.status,
                created_at=view.record.created_at,
            )
            for view in views
        ]
    )


@router.post(
    "/sandboxes",
    response_model=CreateSandboxResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a sandbox",
    description="Launch a new isolated desktop container.",
    responses={
        503: {"model": ErrorResponse, "description": "Port pool exhausted"},
        **_SERVER_ERROR,
    },
)
async def create_sandbox(
    manager: Manager,
    request: CreateSandboxRequest | None = None,
) -> CreateSandboxResponse:
    """Create a new sandbox and return its connection details.

    The response is sent as soon as the container is launched. Callers poll
    the bridge for readiness.

    Raises:
        HTTPException: 503 when no ports remain, 500 on runtime failure.
    """
    try:
        view = await manager.create(request or CreateSandboxRequest())
    except PortPoolExhaustedError as e:
        logger.warning("sandbox_capacity_exhausted", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No ports available",
        ) from e
    except ContainerRuntimeError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create sandbox",
        ) from e
    except Exception as e:
        logger.error("sandbox_create_unexpected_error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create sandbox",
        ) from e

    record = view.record
    return CreateSandboxResponse(
        id=record.sandbox_id,
        port=record.vnc_port,
        bridge_port=record.bridge_port,
        url=manager.vnc_url(record),
        bridge_url=manager.bridge_url(record),
        status=view.status,
    )


@router.get(
    "/sandboxes/{sandbox_id}",
    response_model=SandboxStatusResponse,
    summary="Get sandbox status",
    responses=_NOT_FOUND,
)
async def get_sandbox(sandbox_id: SandboxId, manager: Manager) -> SandboxStatusResponse:
    try:
        view = await manager.get(sandbox_id)
    except SandboxNotFoundError:
        raise _not_found(sandbox_id) from None

    record = view.record
    return SandboxStatusResponse(
        id=record.sandbox_id,
        port=record.vnc_port,
        status=view.status,
        bridge_port=record.bridge_port,
        url=manager.vnc_url(record),
        bridge_url=manager.bridge_url(record),
        created_at=record.created_at,
    )


@router.delete(
    "/sandboxes/{sandbox_id}",
    response_model=ActionResponse,
    summary="Delete a sandbox",
    description="Stop and remove the container and release its ports.",
    responses={**_NOT_FOUND, **_SERVER_ERROR},
)
async def delete_sandbox(sandbox_id: SandboxId, manager: Manager) -> ActionResponse:
    """Delete a sandbox. Succeeds if its container was already gone."""
    try:
        await manager.delete(sandbox_id)
    except SandboxNotFoundError:
        raise _not_found(sandbox_id) from None
    except ContainerRuntimeError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete sandbox",
        ) from e

    return ActionResponse(status="deleted")


@router.post(
    "/sandboxes/{sandbox_id}/stop",
    response_model=ActionResponse,
    summary="Stop a sandbox",
    description="Stop the container but keep the sandbox and its ports reserved.",
    responses={**_NOT_FOUND, **_SERVER_ERROR},
)
async def stop_sandbox(sandbox_id: SandboxId, manager: Manager) -> ActionResponse:
    try:
        await manager.stop(sandbox_id)
    except SandboxNotFoundError:
        raise _not_found(sandbox_id) from None
    except ContainerRuntimeError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to stop sandbox",
        ) from e

    return ActionResponse(status="stopped")


@router.get(
    "/sandboxes/{sandbox_id}/bridge",
    response_model=BridgeReadinessResponse,
    summary="Bridge readiness",
    description=(
        "Probe the sandbox's bridge API. With wait=true, poll until it is "
        "ready or the maximum wait elapses."
    ),
    responses={
        **_NOT_FOUND,
        504: {"model": ErrorResponse, "description": "Bridge not ready in time"},
    },
)
async def bridge_readiness(
    sandbox_id: SandboxId,
    manager: Manager,
    wait: Annotated[bool, Query(description="Poll until ready")] = False,
    editor: Annotated[
        bool, Query(description="Also wait for the editor window to settle")
    ] = False,
) -> BridgeReadinessResponse:
    try:
        health = await manager.bridge_readiness(
            sandbox_id, wait=wait, require_editor=editor
        )
    except SandboxNotFoundError:
        raise _not_found(sandbox_id) from None
    except BridgeTimeoutError as e:
        logger.warning("bridge_wait_timed_out", sandbox_id=sandbox_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="Bridge not ready in time",
        ) from e

    return BridgeReadinessResponse(
        id=sandbox_id,
        ready=health.ready,
        zed_running=health.zed_running,
        zed_window_id=health.zed_window_id,
    )
