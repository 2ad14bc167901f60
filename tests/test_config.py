"""Tests for browserbridge.core.config: configuration loading."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from browserbridge.core.config import (
    BridgeConfig,
    PackageConfig,
    RequestConfig,
    ServerConfig,
    StartupConfig,
)
from browserbridge.core.types import CommandDomain

_ENV_KEYS = [
    "BROWSERBRIDGE_HOST",
    "BROWSERBRIDGE_PORT",
    "BROWSERBRIDGE_PACKAGE",
    "BROWSERBRIDGE_INSTALL_DIR",
    "BROWSERBRIDGE_NPM",
    "BROWSERBRIDGE_STARTUP_ATTEMPTS",
    "BROWSERBRIDGE_AUDIT_TIMEOUT",
    "BROWSERBRIDGE_REQUEST_TIMEOUT",
    "BROWSERBRIDGE_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestBridgeConfigDefaults:
    def test_from_env_defaults(self):
        config = BridgeConfig.from_env()
        assert config.server.host == "127.0.0.1"
        assert config.server.port == 3025
        assert config.package.package_spec == "@agentdeskai/browser-tools-server@1.2.0"
        assert config.startup.max_attempts == 10
        assert config.log_level == "info"

    def test_endpoint_from_server_config(self):
        endpoint = ServerConfig(host="localhost", port=3030).endpoint()
        assert endpoint.base_url == "http://localhost:3030"
        assert endpoint.reachable is False

    def test_ensure_directories(self, tmp_path):
        config = BridgeConfig(package=PackageConfig(install_dir=str(tmp_path / "npm")))
        config.ensure_directories()
        assert (tmp_path / "npm").is_dir()


class TestEnvOverrides:
    def test_server_and_package(self, tmp_path):
        env = {
            "BROWSERBRIDGE_HOST": "0.0.0.0",
            "BROWSERBRIDGE_PORT": "4025",
            "BROWSERBRIDGE_PACKAGE": "@agentdeskai/browser-tools-server@1.1.0",
            "BROWSERBRIDGE_INSTALL_DIR": str(tmp_path),
            "BROWSERBRIDGE_NPM": "/opt/node/bin/npm",
        }
        with patch.dict(os.environ, env):
            config = BridgeConfig.from_env()
        assert config.server.host == "0.0.0.0"
        assert config.server.port == 4025
        assert config.package.package_spec.endswith("@1.1.0")
        assert config.package.install_dir == str(tmp_path)
        assert config.package.npm_command == "/opt/node/bin/npm"

    def test_domain_timeout_override(self):
        with patch.dict(os.environ, {"BROWSERBRIDGE_AUDIT_TIMEOUT": "300"}):
            config = BridgeConfig.from_env()
        assert config.requests.timeout_for(CommandDomain.AUDIT) == 300.0
        assert config.requests.timeout_for(CommandDomain.CAPTURE) == 30.0

    def test_empty_package_env_uses_default(self):
        with patch.dict(os.environ, {"BROWSERBRIDGE_PACKAGE": ""}):
            config = BridgeConfig.from_env()
        assert config.package.package_spec == "@agentdeskai/browser-tools-server@1.2.0"

    def test_package_spec_must_not_be_empty(self):
        with pytest.raises(ValidationError):
            PackageConfig(package_spec="")

    def test_invalid_values_fall_back(self):
        env = {"BROWSERBRIDGE_PORT": "not-a-port", "BROWSERBRIDGE_AUDIT_TIMEOUT": "-5"}
        with patch.dict(os.environ, env):
            config = BridgeConfig.from_env()
        assert config.server.port == 3025
        assert config.requests.timeout_for(CommandDomain.AUDIT) == 120.0


class TestYamlConfig:
    def test_from_yaml(self, tmp_path):
        path = tmp_path / "bridge.yaml"
        path.write_text(
            "server:\n"
            "  port: 3999\n"
            "requests:\n"
            "  domain_timeouts_sec:\n"
            "    audit: 200\n"
            "startup:\n"
            "  max_attempts: 4\n",
            encoding="utf-8",
        )
        config = BridgeConfig.from_yaml(str(path))
        assert config.server.port == 3999
        assert config.server.host == "127.0.0.1"
        assert config.startup.max_attempts == 4
        assert config.requests.timeout_for(CommandDomain.AUDIT) == 200.0

    def test_missing_yaml_uses_env(self, tmp_path):
        config = BridgeConfig.from_yaml(str(tmp_path / "absent.yaml"))
        assert config.server.port == 3025


class TestEditorSettings:
    def test_from_settings(self):
        config = BridgeConfig.from_settings(
            {"host": "localhost", "port": 3100, "npx_command": "@agentdeskai/browser-tools-server@1.2.1"}
        )
        assert config.server.host == "localhost"
        assert config.server.port == 3100
        assert config.package.package_spec.endswith("@1.2.1")

    def test_empty_settings(self):
        config = BridgeConfig.from_settings(None)
        assert config.server.port == 3025

    def test_empty_package_spec_falls_back_to_defaults(self):
        config = BridgeConfig.from_settings({"port": 3100, "npx_command": ""})
        assert config.package.package_spec == "@agentdeskai/browser-tools-server@1.2.0"
        assert config.server.port == 3025

    def test_invalid_settings_fall_back_to_defaults(self):
        config = BridgeConfig.from_settings({"port": "not a port"})
        assert config.server.port == 3025
        assert config.server.host == "127.0.0.1"


class TestSubConfigs:
    def test_startup_defaults(self):
        cfg = StartupConfig()
        assert cfg.unhealthy_threshold == 2
        assert cfg.probe_timeout_sec == 1.5

    def test_request_default_timeout_used_for_missing_domain(self):
        cfg = RequestConfig(domain_timeouts_sec={}, default_timeout_sec=12.0)
        assert cfg.timeout_for(CommandDomain.DEBUG) == 12.0
