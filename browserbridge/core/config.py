"""
BrowserBridge Configuration
---------------------------
Centralized configuration for the supervisor, installer and request bridge.
Loads from defaults, environment variables, YAML files, or an editor settings
blob.
"""

import os
import logging
from pathlib import Path
from typing import Optional, Dict, Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from browserbridge.core.types import CommandDomain, ServerEndpoint
from browserbridge.platform import get_default_install_dir

logger = logging.getLogger("BrowserBridge.Config")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3025
DEFAULT_PACKAGE_SPEC = "@agentdeskai/browser-tools-server@1.2.0"
DEFAULT_REQUEST_TIMEOUT_SEC = 30.0


def _parse_positive_float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
        if value <= 0:
            raise ValueError
        return value
    except ValueError:
        logger.warning(
            "Invalid %s value '%s'; expected positive float. Using %s.",
            name,
            raw,
            default,
        )
        return default


def _parse_positive_int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
        if value <= 0:
            raise ValueError
        return value
    except ValueError:
        logger.warning(
            "Invalid %s value '%s'; expected positive integer. Using %s.",
            name,
            raw,
            default,
        )
        return default


class ServerConfig(BaseModel):
    """Where the instrumentation server listens."""
    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)

    def endpoint(self) -> ServerEndpoint:
        return ServerEndpoint(host=self.host, port=self.port)


class PackageConfig(BaseModel):
    """npm package that provides the server."""
    package_spec: str = Field(default=DEFAULT_PACKAGE_SPEC, min_length=1)
    install_dir: str = Field(default_factory=lambda: str(get_default_install_dir()))
    npm_command: Optional[str] = None
    install_timeout_sec: float = 300.0


class StartupConfig(BaseModel):
    """Startup polling, health thresholds and shutdown grace."""
    max_attempts: int = 10
    initial_delay_sec: float = 0.2
    backoff_factor: float = 1.6
    max_delay_sec: float = 2.5
    probe_timeout_sec: float = 1.5
    unhealthy_threshold: int = 2
    shutdown_grace_sec: float = 5.0
    lock_timeout_sec: float = 8.0


class RequestConfig(BaseModel):
    """Per-domain request timeouts; audits run far longer than captures."""
    default_timeout_sec: float = DEFAULT_REQUEST_TIMEOUT_SEC
    domain_timeouts_sec: Dict[CommandDomain, float] = Field(
        default_factory=lambda: {
            CommandDomain.CAPTURE: 30.0,
            CommandDomain.AUDIT: 120.0,
            CommandDomain.DEBUG: 60.0,
        }
    )
    retry_delay_sec: float = 0.5
    source: str = "browserbridge"

    def timeout_for(self, domain: CommandDomain) -> float:
        return self.domain_timeouts_sec.get(domain, self.default_timeout_sec)


class BridgeConfig(BaseModel):
    """Root configuration for the bridge."""
    server: ServerConfig = Field(default_factory=ServerConfig)
    package: PackageConfig = Field(default_factory=PackageConfig)
    startup: StartupConfig = Field(default_factory=StartupConfig)
    requests: RequestConfig = Field(default_factory=RequestConfig)
    log_level: str = "info"

    @classmethod
    def from_env(cls) -> "BridgeConfig":
        """
        Load configuration from environment variables.

        Environment variables override defaults:
        - BROWSERBRIDGE_HOST / BROWSERBRIDGE_PORT: Server address
        - BROWSERBRIDGE_PACKAGE: npm package spec for the server
        - BROWSERBRIDGE_INSTALL_DIR: npm prefix for the private install
        - BROWSERBRIDGE_NPM: npm executable
        - BROWSERBRIDGE_STARTUP_ATTEMPTS: Readiness probes after spawning
        - BROWSERBRIDGE_CAPTURE_TIMEOUT / _AUDIT_TIMEOUT / _DEBUG_TIMEOUT: seconds
        - BROWSERBRIDGE_LOG_LEVEL: Logging level for the CLI
        """
        defaults = RequestConfig()
        domain_timeouts = {
            domain: _parse_positive_float_env(
                f"BROWSERBRIDGE_{domain.name}_TIMEOUT",
                defaults.domain_timeouts_sec[domain],
            )
            for domain in CommandDomain
        }
        return cls(
            server=ServerConfig(
                host=os.environ.get("BROWSERBRIDGE_HOST", DEFAULT_HOST),
                port=_parse_positive_int_env("BROWSERBRIDGE_PORT", DEFAULT_PORT),
            ),
            package=PackageConfig(
                package_spec=os.environ.get("BROWSERBRIDGE_PACKAGE") or DEFAULT_PACKAGE_SPEC,
                install_dir=os.environ.get(
                    "BROWSERBRIDGE_INSTALL_DIR", str(get_default_install_dir())
                ),
                npm_command=os.environ.get("BROWSERBRIDGE_NPM") or None,
                install_timeout_sec=_parse_positive_float_env(
                    "BROWSERBRIDGE_INSTALL_TIMEOUT", 300.0
                ),
            ),
            startup=StartupConfig(
                max_attempts=_parse_positive_int_env("BROWSERBRIDGE_STARTUP_ATTEMPTS", 10),
            ),
            requests=RequestConfig(
                default_timeout_sec=_parse_positive_float_env(
                    "BROWSERBRIDGE_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT_SEC
                ),
                domain_timeouts_sec=domain_timeouts,
            ),
            log_level=os.environ.get("BROWSERBRIDGE_LOG_LEVEL", "info"),
        )

    @classmethod
    def from_yaml(cls, path: str) -> "BridgeConfig":
        """Load configuration from a YAML file; a missing file yields env defaults."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.warning("Config file not found: %s; using environment defaults", path)
            return cls.from_env()
        return cls(**data)

    @classmethod
    def from_settings(cls, settings: Optional[Dict[str, Any]]) -> "BridgeConfig":
        """
        Build a config from an editor context-server settings blob
        (``{"host": ..., "port": ..., "npx_command": ...}``).

        Invalid settings fall back to defaults rather than failing the launch.
        """
        settings = settings or {}
        try:
            server = ServerConfig(
                host=settings.get("host", DEFAULT_HOST),
                port=settings.get("port", DEFAULT_PORT),
            )
            package = PackageConfig(
                package_spec=settings.get("npx_command", DEFAULT_PACKAGE_SPEC),
            )
        except (ValidationError, AttributeError) as exc:
            logger.warning("Invalid editor settings %r; using defaults: %s", settings, exc)
            return cls()
        return cls(server=server, package=package)

    def ensure_directories(self) -> None:
        """Create the install prefix if it doesn't exist."""
        Path(self.package.install_dir).mkdir(parents=True, exist_ok=True)
