"""Config 模块测试。

测试 CREW_* 环境变量解析和配置管理。
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest import mock

import pytest

from crew_mcp.config import Config, get_config, load_config, reload_config

_CREW_VARS = (
    "CREW_PROVIDER",
    "CREW_TIMEOUT_MS",
    "CREW_MAX_STDOUT",
    "CREW_LOG_DEBUG",
    "CREW_SIGINT_DOUBLE_TAP_WINDOW",
)


def _env(**overrides: str) -> dict[str, str]:
    """去掉所有 CREW_* 变量后再叠加 overrides。"""
    env = {k: v for k, v in os.environ.items() if k not in _CREW_VARS}
    env.update(overrides)
    return env


class TestDefaults:
    """默认值测试。"""

    def test_defaults(self):
        with mock.patch.dict(os.environ, _env(), clear=True):
            config = load_config()
        assert config.provider == "claude"
        assert config.timeout_ms == 300000
        assert config.default_timeout == 300.0
        assert config.max_stdout == 10 * 1024 * 1024
        assert config.log_debug is False
        assert config.log_file is None
        assert config.sigint_double_tap_window == 1.0


class TestProvider:
    """调用方 agent 解析测试。"""

    @pytest.mark.parametrize("value,expected", [
        ("codex", "codex"),
        ("GEMINI", "gemini"),
        (" claude ", "claude"),
        ("unknown", "claude"),
        ("", "claude"),
    ])
    def test_parse(self, value, expected):
        with mock.patch.dict(os.environ, _env(CREW_PROVIDER=value), clear=True):
            assert load_config().provider == expected

    def test_provider_tool_hidden(self):
        config = Config(provider="gemini")
        assert config.hidden_agents == {"gemini"}
        assert not config.is_agent_allowed("gemini")
        assert config.is_agent_allowed("codex")
        assert config.is_agent_allowed("CLAUDE")

    def test_unknown_agent_not_allowed(self):
        assert not Config().is_agent_allowed("copilot")


class TestNumbers:
    """数值配置测试。"""

    def test_timeout(self):
        with mock.patch.dict(os.environ, _env(CREW_TIMEOUT_MS="1500"), clear=True):
            config = load_config()
        assert config.timeout_ms == 1500
        assert config.default_timeout == 1.5

    @pytest.mark.parametrize("value", ["abc", "0", "-5", "1.5"])
    def test_invalid_timeout_uses_default(self, value):
        with mock.patch.dict(os.environ, _env(CREW_TIMEOUT_MS=value), clear=True):
            assert load_config().timeout_ms == 300000

    def test_max_stdout(self):
        with mock.patch.dict(os.environ, _env(CREW_MAX_STDOUT="2048"), clear=True):
            assert load_config().max_stdout == 2048

    @pytest.mark.parametrize("value,expected", [
        ("0.5", 0.5),
        ("0.01", 0.1),
        ("100", 10.0),
        ("bad", 1.0),
    ])
    def test_double_tap_window(self, value, expected):
        env = _env(CREW_SIGINT_DOUBLE_TAP_WINDOW=value)
        with mock.patch.dict(os.environ, env, clear=True):
            assert load_config().sigint_double_tap_window == expected


class TestLogDebug:
    """日志调试模式测试。"""

    @pytest.mark.parametrize("value", ["true", "1", "YES", "on"])
    def test_enabled(self, value, tmp_path):
        with mock.patch.dict(os.environ, _env(CREW_LOG_DEBUG=value), clear=True), \
                mock.patch("crew_mcp.config.tempfile.gettempdir", return_value=str(tmp_path)):
            config = load_config()
        assert config.log_debug is True
        log_file = Path(config.log_file)
        assert log_file.parent == (tmp_path / "crew-mcp").resolve()
        assert log_file.name.startswith("crew_debug_")

    def test_disabled(self):
        with mock.patch.dict(os.environ, _env(CREW_LOG_DEBUG="no"), clear=True):
            config = load_config()
        assert config.log_debug is False
        assert config.log_file is None


class TestGlobalConfig:
    """全局配置实例测试。"""

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_reload_config(self):
        with mock.patch.dict(os.environ, _env(CREW_PROVIDER="codex"), clear=True):
            config = reload_config()
            assert get_config() is config
            assert config.provider == "codex"
        reload_config()

    def test_repr(self):
        text = repr(Config(provider="codex"))
        assert "provider=codex" in text
        assert "timeout_ms=300000" in text
