"""Sandbox manager orchestrating ports, registry and containers.

This module provides the SandboxManager class that implements the sandbox
lifecycle on top of three collaborators:
- PortAllocator: reserves the host ports a sandbox binds
- SandboxRegistry: records which sandboxes exist
- DockerDriver: launches and tears down the containers

Locks live inside the allocator and the registry and are held only for the
in-memory update. Container runtime calls always happen outside them.

Usage:
    >>> ports = PortAllocator(6100, 6200, bridge_offset=1000)
    >>> manager = SandboxManager(ports, SandboxRegistry(), DockerDriver())
    >>> created = await manager.create(CreateSandboxRequest())
    >>> await manager.delete(created.record.sandbox_id)
"""

import asyncio
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from bridge import BridgeClient, BridgeHealth, poll_until, wait_until_stable
from models.schemas import CreateSandboxRequest, SandboxStatus
from sandbox.docker_driver import (
    MANAGED_LABEL,
    SANDBOX_ID_LABEL,
    ContainerNotFoundError,
    ContainerRuntimeError,
    ContainerSpec,
    DockerDriver,
)
from sandbox.environment import build_container_environment
from sandbox.ports import PortAllocator
from sandbox.registry import SandboxRecord, SandboxRegistry
from sandbox.security import redact_environment

logger = structlog.get_logger(__name__)


@dataclass
class SandboxView:
    """A registry record joined with its live container status."""

    record: SandboxRecord
    status: str


@dataclass
class ContainerSettings:
    """Container-side constants shared by every sandbox.

    Attributes:
        image: Desktop image name.
        vnc_port: noVNC port inside the container.
        bridge_port: Bridge API port inside the container.
        shm_size: Shared memory ceiling.
        name_prefix: Prefix for container names.
        default_resolution: Resolution used when a request has none.
        stop_timeout: Grace period for ``docker stop``.
    """

    image: str = "devpilot-desktop"
    vnc_port: int = 6080
    bridge_port: int = 8091
    shm_size: str = "512m"
    name_prefix: str = "sandbox-"
    default_resolution: str = "1920x1080x24"
    stop_timeout: int = 5


@dataclass
class BridgeSettings:
    """How the manager reaches and waits for sandbox bridges.

    Attributes:
        probe_host: Host the manager uses to reach published bridge ports.
        poll_interval: Seconds between readiness probes.
        max_wait: Maximum seconds to wait for readiness.
        stability_window: Seconds the editor must stay up before it counts
            as ready.
    """

    probe_host: str = "127.0.0.1"
    poll_interval: float = 3.0
    max_wait: float = 90.0
    stability_window: float = 5.0


class SandboxManager:
    """Manages the lifecycle of desktop sandboxes.

    Thread Safety:
        Port and registry bookkeeping is serialized by their own locks.
        Concurrent creates, deletes and sweeps may interleave freely.

    Attributes:
        ports: The host port pool.
        registry: The live sandbox registry.
        driver: The container runtime driver.
        public_host: Host name placed in connection URLs.
    """

    def __init__(
        self,
        ports: PortAllocator,
        registry: SandboxRegistry,
        driver: DockerDriver,
        *,
        container: ContainerSettings | None = None,
        bridge: BridgeSettings | None = None,
        bridge_client: BridgeClient | None = None,
        public_host: str = "localhost",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the SandboxManager.

        Args:
            ports: Port allocator shared with nothing else.
            registry: Registry shared with the sweeper.
            driver: Container runtime driver.
            container: Container-side constants.
            bridge: Bridge readiness settings.
            bridge_client: Client used to probe bridges.
            public_host: Host name placed in connection URLs.
            clock: Wall-clock source for ``created_at``.
        """
        self.ports = ports
        self.registry = registry
        self.driver = driver
        self.container = container or ContainerSettings()
        self.bridge = bridge or BridgeSettings()
        self.bridge_client = bridge_client or BridgeClient()
        self.public_host = public_host
        self._clock = clock
        logger.info(
            "sandbox_manager_initialized",
            port_range=f"{ports.start}-{ports.end - 1}",
            capacity=ports.capacity,
            image=self.container.image,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _generate_sandbox_id(self) -> str:
        """Generate a short sandbox identifier not present in the registry."""
        while True:
            sandbox_id = uuid.uuid4().hex[:8]
            if not self.registry.contains(sandbox_id):
                return sandbox_id

    def vnc_url(self, record: SandboxRecord) -> str:
        return f"http://{self.public_host}:{record.vnc_port}/vnc.html"

    def bridge_url(self, record: SandboxRecord) -> str:
        return f"http://{self.public_host}:{record.bridge_port}"

    def _build_spec(
        self, sandbox_id: str, vnc_port: int, bridge_port: int, environment: dict[str, str]
    ) -> ContainerSpec:
        return ContainerSpec(
            image=self.container.image,
            name=f"{self.container.name_prefix}{sandbox_id}",
            ports={
                f"{self.container.vnc_port}/tcp": vnc_port,
                f"{self.container.bridge_port}/tcp": bridge_port,
            },
            environment=environment,
            shm_size=self.container.shm_size,
            labels={MANAGED_LABEL: "true", SANDBOX_ID_LABEL: sandbox_id},
        )

    async def _container_status(self, record: SandboxRecord) -> str:
        """Inspect a container, mapping runtime problems to a status string."""
        try:
            return await self.driver.inspect(record.container_id)
        except ContainerNotFoundError:
            logger.warning("sandbox_container_missing", sandbox_id=record.sandbox_id)
            return SandboxStatus.MISSING
        except ContainerRuntimeError as e:
            logger.error(
                "sandbox_inspect_failed",
                sandbox_id=record.sandbox_id,
                error=str(e),
            )
            return SandboxStatus.UNKNOWN

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def create(self, request: CreateSandboxRequest) -> SandboxView:
        """Provision a new sandbox.

        Reserves a port, launches the container, then records the sandbox.
        A port reserved for a failed or cancelled attempt is always released,
        and a container that was launched but could not be recorded is removed.

        Args:
            request: The validated create request.

        Returns:
            The new sandbox with status ``starting``.

        Raises:
            PortPoolExhaustedError: If every port is in use.
            ContainerRuntimeError: If the container could not be launched.
        """
        sandbox_id = self._generate_sandbox_id()
        vnc_port = self.ports.acquire()
        bridge_port = self.ports.bridge_port_for(vnc_port)

        container_id: str | None = None
        registered = False
        try:
            environment = build_container_environment(
                sandbox_id,
                request,
                default_resolution=self.container.default_resolution,
                bridge_internal_port=self.container.bridge_port,
            )
            logger.info(
                "sandbox_creating",
                sandbox_id=sandbox_id,
                vnc_port=vnc_port,
                bridge_port=bridge_port,
                environment=redact_environment(environment),
            )

            spec = self._build_spec(sandbox_id, vnc_port, bridge_port, environment)
            container_id = await self.driver.create(spec)

            record = SandboxRecord(
                sandbox_id=sandbox_id,
                container_id=container_id,
                vnc_port=vnc_port,
                bridge_port=bridge_port,
                created_at=self._clock(),
            )
            self.registry.put(record)
            registered = True
        except ContainerRuntimeError as e:
            logger.error(
                "sandbox_creation_failed",
                sandbox_id=sandbox_id,
                operation=e.operation,
                error=str(e),
            )
            raise
        finally:
            if not registered:
                if container_id is not None:
                    await self._discard_container(sandbox_id, container_id)
                self.ports.release(vnc_port)
                logger.info("sandbox_port_released", sandbox_id=sandbox_id, port=vnc_port)

        logger.info(
            "sandbox_created",
            sandbox_id=sandbox_id,
            container_id=container_id[:12],
            vnc_port=vnc_port,
            bridge_port=bridge_port,
        )
        return SandboxView(record=record, status=SandboxStatus.STARTING)

    async def _discard_container(self, sandbox_id: str, container_id: str) -> None:
        try:
            await self.driver.remove(container_id)
        except ContainerRuntimeError as e:
            logger.error(
                "sandbox_orphan_remove_failed",
                sandbox_id=sandbox_id,
                container_id=container_id[:12],
                error=str(e),
            )

    async def list(self) -> list[SandboxView]:
        """Return every live sandbox with its current container status.

        Sandboxes whose containers vanished are reported as ``missing`` and
        kept in the registry until deleted.
        """
        records = self.registry.list()
        statuses = await asyncio.gather(
            *(self._container_status(record) for record in records)
        )
        return [
            SandboxView(record=record, status=status)
            for record, status in zip(records, statuses, strict=True)
        ]

    async def get(self, sandbox_id: str) -> SandboxView:
        """Return one sandbox with its current container status.

        Raises:
            SandboxNotFoundError: If the id is unknown.
        """
        record = self.registry.get(sandbox_id)
        status = await self._container_status(record)
        return SandboxView(record=record, status=status)

    async def delete(self, sandbox_id: str) -> None:
        """Stop and remove a sandbox, then release its ports.

        The record is claimed from the registry first, so of two concurrent
        deletes only one acts and the other sees not-found. A container that
        is already gone counts as removed. If the container cannot be removed
        the record is restored with its ports still held, so the next delete
        or sweep can retry.

        Raises:
            SandboxNotFoundError: If the id is unknown.
            ContainerRuntimeError: If the container could not be removed.
        """
        record = self.registry.remove(sandbox_id)
        try:
            await self._teardown(record)
        except BaseException:
            self.registry.put(record)
            logger.warning("sandbox_delete_rolled_back", sandbox_id=sandbox_id)
            raise

        self.ports.release(record.vnc_port)
        logger.info(
            "sandbox_deleted",
            sandbox_id=sandbox_id,
            vnc_port=record.vnc_port,
            bridge_port=record.bridge_port,
        )

    async def _teardown(self, record: SandboxRecord) -> None:
        """Stop (best-effort) then force-remove a sandbox's container."""
        try:
            await self.driver.stop(record.container_id, timeout=self.container.stop_timeout)
        except ContainerNotFoundError:
            logger.warning("sandbox_already_gone", sandbox_id=record.sandbox_id)
            return
        except ContainerRuntimeError as e:
            # Removal below is forced, so a failed stop is not fatal
            logger.warning(
                "sandbox_stop_failed",
                sandbox_id=record.sandbox_id,
                error=str(e),
            )

        try:
            await self.driver.remove(record.container_id)
        except ContainerRuntimeError as e:
            logger.error(
                "sandbox_remove_failed",
                sandbox_id=record.sandbox_id,
                operation=e.operation,
                error=str(e),
            )
            raise

    async def stop(self, sandbox_id: str) -> None:
        """Stop a sandbox's container but keep its record and ports.

        Raises:
            SandboxNotFoundError: If the id is unknown.
            ContainerRuntimeError: If the runtime could not stop the container.
        """
        record = self.registry.get(sandbox_id)
        try:
            await self.driver.stop(record.container_id, timeout=self.container.stop_timeout)
        except ContainerRuntimeError as e:
            logger.error(
                "sandbox_stop_failed",
                sandbox_id=sandbox_id,
                operation=e.operation,
                error=str(e),
            )
            raise
        logger.info("sandbox_stopped", sandbox_id=sandbox_id)

    async def cleanup_all(self) -> None:
        """Delete every sandbox.

        Called during shutdown to ensure no containers are left running.
        """
        for record in self.registry.list():
            try:
                await self.delete(record.sandbox_id)
            except Exception as e:
                logger.error(
                    "cleanup_failed",
                    sandbox_id=record.sandbox_id,
                    error=str(e),
                )

    # -------------------------------------------------------------------------
    # Bridge readiness
    # -------------------------------------------------------------------------

    async def bridge_readiness(
        self,
        sandbox_id: str,
        *,
        wait: bool = False,
        require_editor: bool = False,
    ) -> BridgeHealth:
        """Report whether a sandbox's bridge API is reachable.

        Args:
            sandbox_id: The sandbox to probe.
            wait: Poll until ready instead of probing once.
            require_editor: When waiting, also require the editor window to
                be up and unchanged for the stability window.

        Returns:
            The latest bridge health.

        Raises:
            SandboxNotFoundError: If the id is unknown.
            BridgeTimeoutError: If waiting exceeded the maximum wait.
        """
        record = self.registry.get(sandbox_id)
        url = f"http://{self.bridge.probe_host}:{record.bridge_port}"

        if not wait:
            return await self.bridge_client.health(url)

        if not require_editor:
            return await poll_until(
                lambda: self.bridge_client.health(url),
                poll_interval=self.bridge.poll_interval,
                max_wait=self.bridge.max_wait,
                predicate=lambda health: health.ready,
            )

        async def _editor_window() -> str | None:
            health = await self.bridge_client.health(url)
            return health.zed_window_id if health.editor_ready else None

        window_id = await wait_until_stable(
            _editor_window,
            poll_interval=self.bridge.poll_interval,
            stability_window=self.bridge.stability_window,
            max_wait=self.bridge.max_wait,
        )
        logger.info("sandbox_editor_ready", sandbox_id=sandbox_id, window_id=window_id)
        return BridgeHealth(ready=True, zed_running=True, zed_window_id=window_id)

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def is_docker_available(self) -> bool:
        return self.driver.ping()

    def get_active_sandbox_count(self) -> int:
        return len(self.registry)
