"""Tests for the typed settings view."""

import pytest

from maxproxy.core.exceptions import ConfigurationError
from maxproxy.settings import DEFAULT_AUTH_SOURCES, ProxySettings


class TestProxySettings:
    def test_defaults_from_empty_config(self):
        settings = ProxySettings.from_config({})
        assert settings.host == "127.0.0.1"
        assert settings.port == 3456
        assert settings.backend == "api"
        assert settings.upstream.api_url == "https://api.anthropic.com/v1/messages"
        assert settings.upstream.api_version == "2023-06-01"
        assert settings.upstream.default_max_tokens == 8192
        assert settings.auth.sources == DEFAULT_AUTH_SOURCES
        assert settings.cli.command == "claude"
        assert settings.cli.wrapper == "unbuffer"
        assert settings.cli.timeout_ms == 300000

    def test_none_config(self):
        assert ProxySettings.from_config(None).port == 3456

    def test_reads_sections(self):
        settings = ProxySettings.from_config(
            {
                "proxy_settings": {
                    "server": {"host": "0.0.0.0", "port": 8080},
                    "backend": "CLI",
                    "logging": {"level": "DEBUG"},
                },
                "upstream": {"timeout": "30", "default_max_tokens": 1024},
                "auth": {"sources": ["config"], "api_key": "sk-ant-api03-x"},
                "cli": {"wrapper": None, "timeout_ms": 1000, "cwd": "/tmp"},
                "model_aliases": {"fast": "claude-haiku-4-20250514"},
            }
        )
        assert settings.host == "0.0.0.0"
        assert settings.port == 8080
        assert settings.backend == "cli"
        assert settings.log_level == "DEBUG"
        assert settings.upstream.timeout == 30.0
        assert settings.upstream.default_max_tokens == 1024
        assert settings.auth.sources == ("config",)
        assert settings.auth.api_key == "sk-ant-api03-x"
        assert settings.cli.wrapper is None
        assert settings.cli.timeout_ms == 1000
        assert settings.cli.cwd == "/tmp"
        assert settings.model_aliases == {"fast": "claude-haiku-4-20250514"}

    def test_environment_overrides_server(self, monkeypatch):
        monkeypatch.setenv("MAXPROXY_HOST", "0.0.0.0")
        monkeypatch.setenv("MAXPROXY_PORT", "9000")
        settings = ProxySettings.from_config({"proxy_settings": {"server": {"port": 8080}}})
        assert settings.host == "0.0.0.0"
        assert settings.port == 9000

    def test_malformed_numbers_fall_back(self):
        settings = ProxySettings.from_config(
            {"proxy_settings": {"server": {"port": "abc"}}, "cli": {"timeout_ms": "soon"}}
        )
        assert settings.port == 3456
        assert settings.cli.timeout_ms == 300000

    def test_unknown_backend_rejected(self):
        with pytest.raises(ConfigurationError, match="Unknown backend"):
            ProxySettings.from_config({"proxy_settings": {"backend": "grpc"}})
