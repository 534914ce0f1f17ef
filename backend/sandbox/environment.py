"""Derive the environment handed to a sandbox container.

Nothing from the request is passed through verbatim: each variable is built
from a validated field of :class:`CreateSandboxRequest`.
"""

import json
from typing import Any

from models.schemas import (
    AIConfig,
    AnthropicConfig,
    CreateSandboxRequest,
    CustomConfig,
    OllamaConfig,
    OpenAIConfig,
)
from sandbox.security import inject_repo_credentials

# Context window advertised to the editor for models routed through the bridge.
DEFAULT_MAX_TOKENS = 128000


def build_editor_settings(ai_config: AIConfig, bridge_internal_port: int) -> dict[str, Any]:
    """Build default Zed settings for an AI provider.

    Ollama talks to its own server directly. Every other provider is routed
    through the bridge proxy inside the container so conversations are
    captured. Custom endpoints present themselves to the editor as ``openai``.

    Args:
        ai_config: Validated provider configuration.
        bridge_internal_port: Bridge API port inside the container.

    Returns:
        A JSON-serializable settings document.
    """
    editor_provider = "openai" if isinstance(ai_config, CustomConfig) else ai_config.provider

    settings: dict[str, Any] = {
        "theme": "One Dark",
        "ui_font_size": 14,
        "buffer_font_size": 14,
        "agent": {
            "enabled": True,
            "default_model": {
                "provider": editor_provider,
                "model": ai_config.model,
            },
            "always_allow_tool_actions": True,
        },
        "features": {"edit_prediction_provider": "zed"},
        "terminal": {"env": {"LIBGL_ALWAYS_SOFTWARE": "1"}},
        "worktree": {"trust_by_default": True},
    }

    if isinstance(ai_config, OllamaConfig):
        settings["language_models"] = {"ollama": {"api_url": ai_config.base_url}}
    else:
        settings["language_models"] = {
            "openai": {
                "api_url": f"http://localhost:{bridge_internal_port}/v1",
                "available_models": [
                    {
                        "name": ai_config.model,
                        "display_name": ai_config.model,
                        "max_tokens": DEFAULT_MAX_TOKENS,
                    }
                ],
            }
        }

    return settings


def _provider_credentials(ai_config: AIConfig) -> dict[str, str]:
    """Return the provider-specific key variables.

    Ollama never gets one, and a provider configured without a key gets no
    key variable at all.
    """
    env: dict[str, str] = {}
    if isinstance(ai_config, OpenAIConfig | CustomConfig):
        if ai_config.api_key:
            env["OPENAI_API_KEY"] = ai_config.api_key
        if ai_config.base_url:
            env["OPENAI_API_BASE"] = ai_config.base_url
    elif isinstance(ai_config, AnthropicConfig) and ai_config.api_key:
        env["ANTHROPIC_API_KEY"] = ai_config.api_key
    return env


def build_container_environment(
    sandbox_id: str,
    request: CreateSandboxRequest,
    *,
    default_resolution: str,
    bridge_internal_port: int,
) -> dict[str, str]:
    """Build the container environment for a sandbox.

    Args:
        sandbox_id: Identifier of the sandbox being created.
        request: The validated create request.
        default_resolution: Resolution used when the request has none.
        bridge_internal_port: Bridge API port inside the container.

    Returns:
        Mapping of environment variable names to values. It contains secrets
        and must be passed through ``redact_environment`` before logging.
    """
    environment: dict[str, str] = {
        "SANDBOX_ID": sandbox_id,
        "RESOLUTION": request.resolution or default_resolution,
    }

    if request.repo_url:
        environment["REPO_URL"] = inject_repo_credentials(
            request.repo_url,
            github_token=request.github_token,
            azure_devops_pat=request.azure_devops_pat,
        )
    if request.repo_name:
        environment["REPO_NAME"] = request.repo_name
    if request.repo_branch:
        environment["REPO_BRANCH"] = request.repo_branch

    ai_config = request.ai_config
    if ai_config is not None:
        environment["DEVPILOT_MODEL"] = ai_config.model
        environment["DEVPILOT_PROVIDER"] = ai_config.provider
        environment.update(_provider_credentials(ai_config))

    # Caller-supplied settings win over the generated defaults; {} counts as none
    if request.zed_settings:
        environment["ZED_SETTINGS_JSON"] = json.dumps(request.zed_settings, indent=2)
    elif ai_config is not None:
        environment["ZED_SETTINGS_JSON"] = json.dumps(
            build_editor_settings(ai_config, bridge_internal_port), indent=2
        )

    return environment
