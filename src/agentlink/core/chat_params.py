"""
Builds ChatParams for POST /chat from the local configuration.

The model credentials travel with the request: the backend calls the model
provider on the user's behalf using ``api_key`` and ``api_url``.
"""
from __future__ import annotations

import os
import uuid
from typing import Any, Dict, List, Optional

from agentlink.models import ChatParams

DEFAULT_EMAIL = "user@agentlink.local"
DEFAULT_MODEL = "gpt-4o"
MODEL_PLATFORM = "openai-compatible-model"

# provider -> (api key config key, base url config key)
PROVIDER_KEYS = {
    "openrouter": ("openrouter_key", "openrouter_base_url"),
    "openai": ("openai_key", "openai_base_url"),
    "anthropic": ("anthropic_key", None),
}


def get_model_api_key(config: Dict[str, Any]) -> str:
    """Explicit model key, else the provider key, else any configured key."""
    if config.get("model_api_key"):
        return config["model_api_key"]

    provider = config.get("provider", "")
    key_name, _ = PROVIDER_KEYS.get(provider, (None, None))
    if key_name and config.get(key_name):
        return config[key_name]

    for fallback in ("openai_key", "openrouter_key", "anthropic_key"):
        if config.get(fallback):
            return config[fallback]

    return "not-provided"


def get_model_api_url(config: Dict[str, Any]) -> Optional[str]:
    """Explicit model URL, else a custom base URL for providers that support one."""
    if config.get("model_api_url"):
        return config["model_api_url"]

    provider = config.get("provider", "")
    _, url_name = PROVIDER_KEYS.get(provider, (None, None))
    if url_name and config.get(url_name):
        return config[url_name]
    return None


def build_chat_params(
    config: Dict[str, Any],
    question: str,
    images: Optional[List[str]] = None,
    workspace_path: Optional[str] = None,
) -> ChatParams:
    """
    Build ChatParams for a new task.

    Args:
        config: Loaded configuration (see core.config.load_config)
        question: The user's task
        images: Optional attachments (paths or data URLs)
        workspace_path: Workspace root; defaults to the current directory

    Returns:
        ChatParams with a fresh id used as both project and task id
    """
    task_id = str(uuid.uuid4())

    return ChatParams(
        task_id=task_id,
        project_id=task_id,
        question=question,
        email=config.get("email") or DEFAULT_EMAIL,
        attaches=list(images or []),
        model_platform=MODEL_PLATFORM,
        model_type=config.get("model") or DEFAULT_MODEL,
        api_key=get_model_api_key(config),
        api_url=get_model_api_url(config),
        language=config.get("language") or "en",
        allow_local_system=True,
        file_save_path=workspace_path or os.getcwd(),
    )
