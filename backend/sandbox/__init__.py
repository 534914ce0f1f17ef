"""Sandbox building blocks: port pool, registry and container driver.

This module exposes the components the SandboxManager composes to provision
isolated desktop containers.
"""

from sandbox.docker_driver import (
    ContainerNotFoundError,
    ContainerRuntimeError,
    ContainerSpec,
    DockerDriver,
)
from sandbox.ports import PortAllocator, PortPoolExhaustedError
from sandbox.registry import SandboxNotFoundError, SandboxRecord, SandboxRegistry

__all__ = [
    "ContainerNotFoundError",
    "ContainerRuntimeError",
    "ContainerSpec",
    "DockerDriver",
    "PortAllocator",
    "PortPoolExhaustedError",
    "SandboxNotFoundError",
    "SandboxRecord",
    "SandboxRegistry",
]
