"""Models module for Pydantic schemas.

This module exposes all request/response models used by the API.
"""

from models.schemas import (
    ActionResponse,
    AIConfig,
    AnthropicConfig,
    BridgeReadinessResponse,
    CreateSandboxRequest,
    CreateSandboxResponse,
    CustomConfig,
    ErrorResponse,
    HealthResponse,
    OllamaConfig,
    OpenAIConfig,
    SandboxListResponse,
    SandboxStatus,
    SandboxStatusResponse,
    SandboxSummary,
)

__all__ = [
    "AIConfig",
    "ActionResponse",
    "AnthropicConfig",
    "BridgeReadinessResponse",
    "CreateSandboxRequest",
    "CreateSandboxResponse",
    "CustomConfig",
    "ErrorResponse",
    "HealthResponse",
    "OllamaConfig",
    "OpenAIConfig",
    "SandboxListResponse",
    "SandboxStatus",
    "SandboxStatusResponse",
    "SandboxSummary",
]
