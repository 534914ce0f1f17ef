"""Pydantic schemas for API request/response models.

This module defines all the data models used by the HTTP API.
All models use Pydantic v2 with strict type validation.
"""

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class SandboxStatus(StrEnum):
    """Container status as reported to callers.

    Docker reports its own states (created, running, exited, ...). The
    values below are added by the manager.
    """

    STARTING = "starting"
    MISSING = "missing"
    UNKNOWN = "unknown"


# -----------------------------------------------------------------------------
# AI provider configuration
# -----------------------------------------------------------------------------


class _AIConfigBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    model: str = Field(
        min_length=1,
        description="Model identifier passed to the editor agent",
        examples=["gpt-4o", "claude-sonnet-4-20250514", "llama3.1"],
    )


class OpenAIConfig(_AIConfigBase):
    """OpenAI hosted models."""

    provider: Literal["openai"]
    api_key: str | None = Field(
        default=None,
        min_length=1,
        description="OpenAI API key; the editor runs without one when omitted",
    )
    base_url: str | None = Field(
        default=None,
        description="Optional API base override",
    )


class AnthropicConfig(_AIConfigBase):
    """Anthropic hosted models."""

    provider: Literal["anthropic"]
    api_key: str | None = Field(default=None, min_length=1, description="Anthropic API key")


class OllamaConfig(_AIConfigBase):
    """Local Ollama server, no credentials."""

    provider: Literal["ollama"]
    base_url: str = Field(
        default="http://localhost:11434",
        min_length=1,
        description="Ollama server URL as seen from inside the sandbox",
    )


class CustomConfig(_AIConfigBase):
    """Any OpenAI-compatible endpoint."""

    provider: Literal["custom"]
    api_key: str | None = Field(
        default=None,
        min_length=1,
        description="API key for the endpoint",
    )
    base_url: str = Field(min_length=1, description="OpenAI-compatible base URL")


AIConfig = Annotated[
    OpenAIConfig | AnthropicConfig | OllamaConfig | CustomConfig,
    Field(discriminator="provider"),
]


# -----------------------------------------------------------------------------
# Requests
# -----------------------------------------------------------------------------


class CreateSandboxRequest(BaseModel):
    """Request body for creating a new sandbox."""

    model_config = ConfigDict(extra="forbid")

    resolution: str | None = Field(
        default=None,
        pattern=r"^\d{3,5}x\d{3,5}x\d{1,2}$",
        description="Desktop resolution as WIDTHxHEIGHTxDEPTH",
        examples=["1920x1080x24"],
    )
    repo_url: str | None = Field(
        default=None,
        description="Git repository to clone into the sandbox",
        examples=["https://github.com/octo/hello.git"],
    )
    repo_name: str | None = Field(default=None, description="Repository display name")
    repo_branch: str | None = Field(default=None, description="Branch to check out")
    github_token: str | None = Field(
        default=None,
        description="Token used to clone private GitHub repositories",
    )
    azure_devops_pat: str | None = Field(
        default=None,
        description="Personal access token used to clone Azure DevOps repositories",
    )
    ai_config: AIConfig | None = Field(
        default=None,
        description="AI provider configuration for the editor agent",
    )
    zed_settings: dict[str, Any] | None = Field(
        default=None,
        description="Complete editor settings; replaces the generated defaults",
    )


# -----------------------------------------------------------------------------
# Responses
# -----------------------------------------------------------------------------


class CreateSandboxResponse(BaseModel):
    """Response for sandbox creation."""

    id: str = Field(description="Sandbox identifier", examples=["a1b2c3d4"])
    port: int = Field(description="Host port serving noVNC")
    bridge_port: int = Field(description="Host port serving the bridge API")
    url: str = Field(
        description="Browser URL of the desktop",
        examples=["http://localhost:6100/vnc.html"],
    )
    bridge_url: str = Field(
        description="Base URL of the bridge API",
        examples=["http://localhost:7100"],
    )
    status: str = Field(default=SandboxStatus.STARTING, description="Initial status")


class SandboxSummary(BaseModel):
    """One entry of the sandbox listing."""

    id: str
    port: int
    status: str
    created_at: float = Field(description="Unix timestamp of sandbox creation")


class SandboxListResponse(BaseModel):
    sandboxes: list[SandboxSummary]


class SandboxStatusResponse(BaseModel):
    """Detailed status of a single sandbox."""

    id: str
    port: int
    status: str
    bridge_port: int
    url: str
    bridge_url: str
    created_at: float


class ActionResponse(BaseModel):
    """Acknowledgement of a lifecycle action."""

    status: Literal["deleted", "stopped"]


class BridgeReadinessResponse(BaseModel):
    """Readiness of a sandbox's bridge API."""

    id: str
    ready: bool
    zed_running: bool | None = None
    zed_window_id: str | None = None


class HealthResponse(BaseModel):
    """Health check response with infrastructure status."""

    status: Literal["ok"] = "ok"
    docker_available: bool = Field(
        default=False,
        description="Whether the Docker daemon is reachable",
    )
    active_sandboxes: int = Field(default=0, description="Live sandboxes")
    capacity: int = Field(default=0, description="Size of the port pool")
    free_ports: int = Field(default=0, description="Ports still available")


class ErrorResponse(BaseModel):
    error: str
