"""Docker-based container lifecycle driver for desktop sandboxes.

This module wraps the blocking Docker SDK behind async methods. Every call
runs in the default executor and is bounded by a timeout so a hung daemon
cannot stall the event loop or a caller indefinitely.
"""

import asyncio
import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import docker
import structlog
from docker.errors import DockerException, ImageNotFound, NotFound

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Labels stamped on every container so operators can find managed sandboxes.
MANAGED_LABEL = "devpilot.managed"
SANDBOX_ID_LABEL = "devpilot.sandbox_id"


class ContainerRuntimeError(RuntimeError):
    """Raised when the container runtime fails or does not answer in time."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation


class ContainerNotFoundError(ContainerRuntimeError):
    """Raised when a container no longer exists in the runtime."""


@dataclass
class ContainerSpec:
    """Everything needed to launch one sandbox container.

    Attributes:
        image: Image name to run.
        name: Container name (unique on the host).
        ports: Container port ("6080/tcp") to host port bindings.
        environment: Derived environment variables. May contain secrets.
        shm_size: Shared memory ceiling.
        labels: Container labels.
    """

    image: str
    name: str
    ports: dict[str, int]
    environment: dict[str, str]
    shm_size: str = "512m"
    labels: dict[str, str] = field(default_factory=dict)


class DockerDriver:
    """Creates, inspects, stops and removes sandbox containers.

    Attributes:
        operation_timeout: Seconds allowed for each runtime call.
        launch_settle_timeout: Seconds to wait for an abandoned create to
            finish before its cleanup is deferred.
    """

    def __init__(
        self,
        client: docker.DockerClient | None = None,
        operation_timeout: float = 30.0,
        launch_settle_timeout: float = 120.0,
    ) -> None:
        """Initialize the driver.

        Args:
            client: Docker client to use. Created from the environment on
                first use when omitted.
            operation_timeout: Seconds allowed for each runtime call.
            launch_settle_timeout: Seconds to wait for a timed-out create to
                finish so the container it launched can be removed.
        """
        self._client = client
        self.operation_timeout = operation_timeout
        self.launch_settle_timeout = launch_settle_timeout

    @property
    def client(self) -> docker.DockerClient:
        """Lazy initialization of Docker client."""
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    async def _run(
        self,
        operation: str,
        func: Callable[..., T],
        *args: object,
        timeout: float | None = None,
    ) -> T:
        """Run a blocking SDK call in the executor and translate its errors."""
        future = asyncio.get_running_loop().run_in_executor(None, func, *args)
        return await self._wait(operation, future, timeout)

    async def _wait(
        self,
        operation: str,
        future: Awaitable[T],
        timeout: float | None = None,
    ) -> T:
        limit = self.operation_timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(future, timeout=limit)
        except TimeoutError as e:
            raise ContainerRuntimeError(
                operation, f"timed out after {limit} seconds"
            ) from e
        except ImageNotFound as e:
            raise ContainerRuntimeError(operation, f"image not found: {e}") from e
        except NotFound as e:
            raise ContainerNotFoundError(operation, str(e)) from e
        except DockerException as e:
            raise ContainerRuntimeError(operation, str(e)) from e
        except Exception as e:
            # Connection failures surface from requests, not as DockerException
            raise ContainerRuntimeError(operation, f"runtime unreachable: {e}") from e

    async def create(self, spec: ContainerSpec) -> str:
        """Create and start a container.

        A worker thread cannot be interrupted, so a create that times out or
        is cancelled may still launch its container afterwards. Before the
        error propagates the driver waits for the launch to finish and
        removes whatever it left behind, so callers may release the
        container's host ports as soon as this raises.

        Args:
            spec: The container configuration.

        Returns:
            The Docker container id.

        Raises:
            ContainerRuntimeError: If the image is missing, the daemon is
                unreachable, or the call times out.
        """
        launch = asyncio.get_running_loop().run_in_executor(
            None, self._create_container, spec
        )
        try:
            container_id = await self._wait("create", asyncio.shield(launch))
        except ContainerRuntimeError as e:
            logger.error("container_create_failed", name=spec.name, error=str(e))
            await self._settle(launch, spec.name)
            await self._discard_by_name(spec.name)
            raise
        except asyncio.CancelledError:
            logger.warning("container_create_cancelled", name=spec.name)
            await self._settle(launch, spec.name)
            await self._discard_by_name(spec.name)
            raise

        logger.info("container_created", name=spec.name, container_id=container_id[:12])
        return container_id

    def _create_container(self, spec: ContainerSpec) -> str:
        """Run the container (blocking operation)."""
        container = self.client.containers.run(
            spec.image,
            name=spec.name,
            detach=True,
            remove=False,
            ports=spec.ports,
            shm_size=spec.shm_size,
            environment=spec.environment,
            labels=spec.labels,
        )
        return container.id

    async def _settle(self, launch: asyncio.Future[str], name: str) -> None:
        """Wait for an abandoned launch to finish.

        If it is still running after ``launch_settle_timeout`` the removal of
        its container is deferred until the worker thread returns.
        """
        if launch.done():
            return
        try:
            await asyncio.wait_for(
                asyncio.shield(launch), timeout=self.launch_settle_timeout
            )
        except TimeoutError:
            logger.error(
                "container_launch_unsettled",
                name=name,
                timeout=self.launch_settle_timeout,
            )
            launch.add_done_callback(functools.partial(self._discard_when_done, name))
        except Exception as e:
            logger.warning("container_launch_failed_late", name=name, error=str(e))
        else:
            logger.warning("container_launched_after_timeout", name=name)

    def _discard_when_done(self, name: str, launch: asyncio.Future[str]) -> None:
        """Done-callback removing the container of a launch that outlived its wait."""
        if not launch.cancelled():
            # Retrieve the outcome so a failed launch is not reported as unhandled
            launch.exception()
        asyncio.get_running_loop().run_in_executor(None, self._remove_quietly, name)

    def _remove_quietly(self, name: str) -> None:
        try:
            self._remove_container(name)
        except NotFound:
            return
        except Exception as e:
            logger.error("container_discard_failed", name=name, error=str(e))
            return
        logger.info("container_discarded", name=name)

    async def _discard_by_name(self, name: str) -> None:
        """Remove a half-created container left behind by a failed create.

        ``containers.run`` creates before it starts, so a failed start (for
        example a host port already bound) leaves a stopped container holding
        the name.
        """
        try:
            await self._run("discard", self._remove_container, name)
        except ContainerNotFoundError:
            pass
        except ContainerRuntimeError as e:
            logger.warning("container_discard_failed", name=name, error=str(e))

    async def inspect(self, container_id: str) -> str:
        """Return the container's current status (created, running, exited, ...).

        Raises:
            ContainerNotFoundError: If the container no longer exists.
            ContainerRuntimeError: On any other runtime failure.
        """
        return await self._run("inspect", self._container_status, container_id)

    def _container_status(self, container_id: str) -> str:
        container = self.client.containers.get(container_id)
        return container.status

    async def stop(self, container_id: str, timeout: int = 5) -> None:
        """Request a graceful stop.

        Docker kills the container after ``timeout`` seconds. The call as a
        whole is still bounded by ``operation_timeout``.

        Raises:
            ContainerNotFoundError: If the container no longer exists.
            ContainerRuntimeError: On any other runtime failure.
        """
        await self._run(
            "stop",
            self._stop_container,
            container_id,
            timeout,
            timeout=self.operation_timeout + timeout,
        )
        logger.info("container_stopped", container_id=container_id[:12])

    def _stop_container(self, container_id: str, timeout: int) -> None:
        container = self.client.containers.get(container_id)
        container.stop(timeout=timeout)

    async def remove(self, container_id: str) -> bool:
        """Force-remove a container and its writable layer.

        Returns:
            True if a container was removed, False if it was already gone.

        Raises:
            ContainerRuntimeError: On a runtime failure other than not-found.
        """
        try:
            await self._run("remove", self._remove_container, container_id)
        except ContainerNotFoundError:
            logger.warning("container_already_removed", container_id=container_id[:12])
            return False
        logger.info("container_removed", container_id=container_id[:12])
        return True

    def _remove_container(self, container_ref: str) -> None:
        container = self.client.containers.get(container_ref)
        container.remove(force=True, v=True)

    def ping(self) -> bool:
        """Check if the Docker daemon is reachable.

        Returns:
            True if the Docker daemon responds to a ping.
        """
        try:
            return bool(self.client.ping())
        except Exception:
            return False
