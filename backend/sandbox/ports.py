"""Fixed-range host port pool for sandbox containers.

Each sandbox holds one VNC port from the pool. Its bridge port is derived
from the VNC port by a fixed offset, so the pool only tracks VNC ports.
"""

import threading

import structlog

logger = structlog.get_logger(__name__)


class PortPoolExhaustedError(RuntimeError):
    """Raised when every port in the pool is in use."""


class PortAllocator:
    """Hands out and reclaims host ports from ``[start, end)``.

    The allocator only tracks occupancy. Which sandbox owns a port is the
    registry's concern. All methods hold an internal lock for the duration of
    the in-memory update only, so they are safe to call from the event loop
    and from executor threads alike.

    Attributes:
        start: First port of the pool (inclusive).
        end: End of the pool (exclusive).
        bridge_offset: Offset added to a VNC port to obtain its bridge port.
    """

    def __init__(self, start: int, end: int, bridge_offset: int = 1000) -> None:
        """Initialize the allocator.

        Args:
            start: First port of the pool (inclusive).
            end: End of the pool (exclusive).
            bridge_offset: Offset from a VNC port to its paired bridge port.

        Raises:
            ValueError: If the range is empty or the offset would make the
                bridge ports collide with the pool.
        """
        if end <= start:
            raise ValueError(f"Empty port range [{start}, {end})")
        if bridge_offset < end - start:
            raise ValueError(
                f"Bridge offset {bridge_offset} overlaps the pool [{start}, {end})"
            )
        self.start = start
        self.end = end
        self.bridge_offset = bridge_offset
        self._in_use: set[int] = set()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        """Total number of ports in the pool."""
        return self.end - self.start

    def acquire(self) -> int:
        """Reserve the lowest free port.

        Returns:
            The reserved port.

        Raises:
            PortPoolExhaustedError: If no free port remains.
        """
        with self._lock:
            for port in range(self.start, self.end):
                if port not in self._in_use:
                    self._in_use.add(port)
                    return port
        raise PortPoolExhaustedError(
            f"No ports available. Maximum {self.capacity} concurrent sandboxes reached."
        )

    def release(self, port: int) -> None:
        """Return a port to the pool. Releasing a free port is a no-op."""
        with self._lock:
            if port not in self._in_use:
                logger.debug("port_release_noop", port=port)
                return
            self._in_use.discard(port)

    def bridge_port_for(self, port: int) -> int:
        """Return the bridge port paired with a VNC port."""
        return port + self.bridge_offset

    def in_use(self) -> set[int]:
        """Return a snapshot of the ports currently reserved."""
        with self._lock:
            return set(self._in_use)

    def is_in_use(self, port: int) -> bool:
        with self._lock:
            return port in self._in_use

    def free_count(self) -> int:
        with self._lock:
            return self.capacity - len(self._in_use)
