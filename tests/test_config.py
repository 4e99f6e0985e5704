#!/usr/bin/env python3
"""
Test settings loading and engine configuration
"""

import pytest

from config import DEFAULT_ALLOWED_TOOLS, Settings
from engine import EngineFactory
from engine.implementations import SSEBackendEngine


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("ENGINE_TYPE", "ANTHROPIC_API_KEY", "BACKEND_URL", "ALLOWED_TOOLS", "PORT"):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.port == 3001
    assert settings.engine_type == "anthropic"
    assert settings.allowed_tools == DEFAULT_ALLOWED_TOOLS
    assert settings.cors_origins == ["http://localhost:5173"]
    assert "run maintenance" in settings.trigger_commands


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("PORT", "4000")
    monkeypatch.setenv("ALLOWED_TOOLS", '["Read", "Grep"]')

    settings = Settings(_env_file=None)

    assert settings.port == 4000
    assert settings.allowed_tools == ["Read", "Grep"]


def test_anthropic_engine_requires_api_key():
    with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
        Settings(_env_file=None).get_engine_config()


def test_sse_engine_requires_backend_url(monkeypatch):
    monkeypatch.setenv("ENGINE_TYPE", "sse")

    with pytest.raises(ValueError, match="BACKEND_URL"):
        Settings(_env_file=None).get_engine_config()


def test_sse_engine_config_builds_engine(monkeypatch):
    monkeypatch.setenv("ENGINE_TYPE", "sse")
    monkeypatch.setenv("BACKEND_URL", "http://agent.test")
    settings = Settings(_env_file=None)

    engine = EngineFactory.create_engine(settings.engine_type, settings.get_engine_config())

    assert isinstance(engine, SSEBackendEngine)
    assert engine.backend_url == "http://agent.test"


def test_unknown_engine_type(monkeypatch):
    monkeypatch.setenv("ENGINE_TYPE", "carrier-pigeon")

    with pytest.raises(ValueError, match="Unsupported ENGINE_TYPE"):
        Settings(_env_file=None).get_engine_config()
