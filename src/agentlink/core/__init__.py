"""AgentLink core modules."""

from agentlink.core.chat_params import build_chat_params
from agentlink.core.config import get_api_key, get_backend_url, load_config, save_config

__all__ = ["build_chat_params", "get_api_key", "get_backend_url", "load_config", "save_config"]
