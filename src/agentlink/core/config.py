"""Configuration and credential management for AgentLink."""

import json
import os
from pathlib import Path
from typing import Any

# Global config directory
AGENTLINK_HOME = Path.home() / ".agentlink"
GLOBAL_CONFIG_FILE = AGENTLINK_HOME / "config.json"

# Project-level config
PROJECT_CONFIG_DIR = ".agentlink"
PROJECT_CONFIG_FILE = "project.json"

DEFAULT_BACKEND_URL = "http://localhost:8000"

# Environment variable -> config key
ENV_OVERRIDES = {
    "AGENTLINK_BACKEND_URL": "backend_url",
    "AGENTLINK_API_KEY": "api_key",
    "AGENTLINK_MODEL": "model",
    "AGENTLINK_PROVIDER": "provider",
    "AGENTLINK_MODEL_API_KEY": "model_api_key",
    "AGENTLINK_MODEL_API_URL": "model_api_url",
    "OPENROUTER_API_KEY": "openrouter_key",
    "OPENAI_API_KEY": "openai_key",
    "ANTHROPIC_API_KEY": "anthropic_key",
}


def get_project_config_path() -> Path | None:
    """Get the path to the project-level config file, if it exists."""
    project_config = Path.cwd() / PROJECT_CONFIG_DIR / PROJECT_CONFIG_FILE
    if project_config.exists():
        return project_config
    return None


def _read_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path) as f:
        return json.load(f)


def load_config() -> dict[str, Any]:
    """Load configuration from global and project-level configs.

    Project-level config takes precedence over global config, and
    environment variables take precedence over both.
    """
    config = _read_json(GLOBAL_CONFIG_FILE)

    project_config_path = get_project_config_path()
    if project_config_path:
        config = {**config, **_read_json(project_config_path)}

    for env_name, key in ENV_OVERRIDES.items():
        if os.environ.get(env_name):
            config[key] = os.environ[env_name]

    return config


def save_config(config: dict[str, Any]):
    """Save the global configuration.

    Project-level config is only read; it is edited by hand per project.
    """
    GLOBAL_CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)

    with open(GLOBAL_CONFIG_FILE, "w") as f:
        json.dump(config, f, indent=2)

    # Holds the bearer token
    GLOBAL_CONFIG_FILE.chmod(0o600)


def update_config(**values: Any) -> dict[str, Any]:
    """Merge values into the stored global config (env overrides not persisted)."""
    config = _read_json(GLOBAL_CONFIG_FILE)
    config.update(values)
    save_config(config)
    return config


def get_backend_url(config: dict[str, Any] | None = None) -> str:
    """Get the backend base URL, falling back to localhost for dev."""
    config = load_config() if config is None else config
    return config.get("backend_url") or DEFAULT_BACKEND_URL


def get_api_key(config: dict[str, Any] | None = None) -> str | None:
    """Get the backend bearer token, if one is configured."""
    config = load_config() if config is None else config
    return config.get("api_key") or None


def set_api_key(api_key: str) -> None:
    """Store the backend bearer token in the global config."""
    update_config(api_key=api_key)


def clear_api_key() -> None:
    """Remove the backend bearer token from the global config."""
    config = _read_json(GLOBAL_CONFIG_FILE)
    if config.pop("api_key", None) is not None:
        save_config(config)
