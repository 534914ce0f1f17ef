"""Tests for models/schemas.py -- Pydantic request/response models.

Validates the create request rules and the provider-discriminated AI
configuration union.
"""

import pytest
from pydantic import ValidationError

from models.schemas import (
    AnthropicConfig,
    CreateSandboxRequest,
    CreateSandboxResponse,
    CustomConfig,
    HealthResponse,
    OllamaConfig,
    OpenAIConfig,
    SandboxStatus,
)

# =========================================================================
# Enums
# =========================================================================


class TestEnums:
    def test_status_values(self) -> None:
        assert SandboxStatus.STARTING == "starting"
        assert SandboxStatus.MISSING == "missing"
        assert SandboxStatus.UNKNOWN == "unknown"


# =========================================================================
# AI configuration union
# =========================================================================


class TestAIConfig:
    """ai_config is discriminated on ``provider``."""

    @pytest.mark.parametrize(
        ("payload", "expected"),
        [
            ({"provider": "openai", "model": "gpt-4o", "api_key": "k"}, OpenAIConfig),
            ({"provider": "anthropic", "model": "claude", "api_key": "k"}, AnthropicConfig),
            ({"provider": "ollama", "model": "llama3.1"}, OllamaConfig),
            (
                {"provider": "custom", "model": "m", "api_key": "k", "base_url": "http://x"},
                CustomConfig,
            ),
        ],
    )
    def test_dispatch(self, payload: dict, expected: type) -> None:
        request = CreateSandboxRequest.model_validate({"ai_config": payload})
        assert isinstance(request.ai_config, expected)

    def test_ollama_default_url(self) -> None:
        request = CreateSandboxRequest.model_validate(
            {"ai_config": {"provider": "ollama", "model": "llama3.1"}}
        )
        assert request.ai_config.base_url == "http://localhost:11434"

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValidationError):
            CreateSandboxRequest.model_validate(
                {"ai_config": {"provider": "acme", "model": "m"}}
            )

    @pytest.mark.parametrize("provider", ["openai", "anthropic"])
    def test_api_key_is_optional(self, provider: str) -> None:
        request = CreateSandboxRequest.model_validate(
            {"ai_config": {"provider": provider, "model": "m"}}
        )
        assert request.ai_config.api_key is None

    def test_empty_api_key_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CreateSandboxRequest.model_validate(
                {"ai_config": {"provider": "openai", "model": "m", "api_key": ""}}
            )

    def test_custom_requires_base_url(self) -> None:
        with pytest.raises(ValidationError):
            CreateSandboxRequest.model_validate(
                {"ai_config": {"provider": "custom", "model": "m", "api_key": "k"}}
            )

    def test_empty_model_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CreateSandboxRequest.model_validate(
                {"ai_config": {"provider": "ollama", "model": ""}}
            )

    def test_extra_provider_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CreateSandboxRequest.model_validate(
                {"ai_config": {"provider": "ollama", "model": "m", "api_key": "k"}}
            )


# =========================================================================
# CreateSandboxRequest
# =========================================================================


class TestCreateSandboxRequest:
    def test_all_fields_optional(self) -> None:
        request = CreateSandboxRequest()
        assert request.resolution is None
        assert request.ai_config is None
        assert request.zed_settings is None

    @pytest.mark.parametrize("resolution", ["1920x1080x24", "800x600x16", "3840x2160x8"])
    def test_valid_resolutions(self, resolution: str) -> None:
        assert CreateSandboxRequest(resolution=resolution).resolution == resolution

    @pytest.mark.parametrize("resolution", ["1920x1080", "big", "1920x1080x24; rm -rf /", ""])
    def test_invalid_resolutions(self, resolution: str) -> None:
        with pytest.raises(ValidationError):
            CreateSandboxRequest(resolution=resolution)

    def test_unknown_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CreateSandboxRequest.model_validate({"privileged": True})


# =========================================================================
# Responses
# =========================================================================


class TestResponses:
    def test_create_response_default_status(self) -> None:
        resp = CreateSandboxResponse(
            id="a1b2c3d4",
            port=6100,
            bridge_port=7100,
            url="http://localhost:6100/vnc.html",
            bridge_url="http://localhost:7100",
        )
        assert resp.model_dump()["status"] == "starting"

    def test_health_defaults(self) -> None:
        assert HealthResponse().model_dump() == {
            "status": "ok",
            "docker_available": False,
            "active_sandboxes": 0,
            "capacity": 0,
            "free_ports": 0,
        }
