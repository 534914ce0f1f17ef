"""In-memory registry of live sandboxes.

The registry is the single source of truth for which sandboxes exist. It is
process-local and starts empty on every restart.
"""

import threading
from dataclasses import dataclass


class SandboxNotFoundError(KeyError):
    """Raised when a sandbox id is not present in the registry."""

    def __init__(self, sandbox_id: str) -> None:
        super().__init__(sandbox_id)
        self.sandbox_id = sandbox_id

    def __str__(self) -> str:
        return f"Sandbox '{self.sandbox_id}' not found"


@dataclass(frozen=True)
class SandboxRecord:
    """Runtime record for one live sandbox.

    Attributes:
        sandbox_id: Short opaque identifier assigned at creation.
        container_id: Docker container id owned by this sandbox.
        vnc_port: Host port bound to the container's noVNC port.
        bridge_port: Host port bound to the container's bridge API port.
        created_at: Unix timestamp of creation, used for age-based reclamation.
    """

    sandbox_id: str
    container_id: str
    vnc_port: int
    bridge_port: int
    created_at: float

    def age(self, now: float) -> float:
        return now - self.created_at


class SandboxRegistry:
    """Thread-safe mapping from sandbox id to :class:`SandboxRecord`.

    A single registry-wide lock serializes mutations. The lock is never held
    across container runtime calls.
    """

    def __init__(self) -> None:
        self._records: dict[str, SandboxRecord] = {}
        self._lock = threading.Lock()

    def put(self, record: SandboxRecord) -> None:
        """Insert a record.

        Raises:
            ValueError: If a record with the same id already exists.
        """
        with self._lock:
            if record.sandbox_id in self._records:
                raise ValueError(f"Sandbox '{record.sandbox_id}' already exists")
            self._records[record.sandbox_id] = record

    def get(self, sandbox_id: str) -> SandboxRecord:
        """Return the record for ``sandbox_id``.

        Raises:
            SandboxNotFoundError: If the id is unknown.
        """
        with self._lock:
            record = self._records.get(sandbox_id)
        if record is None:
            raise SandboxNotFoundError(sandbox_id)
        return record

    def remove(self, sandbox_id: str) -> SandboxRecord:
        """Remove and return the record for ``sandbox_id``.

        Raises:
            SandboxNotFoundError: If the id is unknown.
        """
        with self._lock:
            record = self._records.pop(sandbox_id, None)
        if record is None:
            raise SandboxNotFoundError(sandbox_id)
        return record

    def contains(self, sandbox_id: str) -> bool:
        with self._lock:
            return sandbox_id in self._records

    def list(self) -> list[SandboxRecord]:
        """Return a point-in-time snapshot of all records."""
        with self._lock:
            return list(self._records.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
