"""Root pytest configuration for all tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import pytest

from agentlink.core import config as config_module

pytest_plugins = ("pytest_asyncio",)


def sse_frame(step: str, data: Optional[Dict[str, Any]] = None) -> bytes:
    """Encode one event the way the backend writes it."""
    return f"data: {json.dumps({'step': step, 'data': data or {}}, ensure_ascii=False)}\n\n".encode("utf-8")


def sse_stream(*events: tuple) -> bytes:
    return b"".join(sse_frame(*event) for event in events)


def split_every(payload: bytes, size: int) -> List[bytes]:
    return [payload[i:i + size] for i in range(0, len(payload), size)]


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """An empty workspace directory."""
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point global config at a temp dir, run from a clean cwd, clear env overrides."""
    home = tmp_path / "home" / ".agentlink"
    monkeypatch.setattr(config_module, "AGENTLINK_HOME", home)
    monkeypatch.setattr(config_module, "GLOBAL_CONFIG_FILE", home / "config.json")

    cwd = tmp_path / "cwd"
    cwd.mkdir()
    monkeypatch.chdir(cwd)

    for env_name in config_module.ENV_OVERRIDES:
        monkeypatch.delenv(env_name, raising=False)

    yield home / "config.json"
