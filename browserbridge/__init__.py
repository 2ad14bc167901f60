"""
BrowserBridge: editor command bridge for the BrowserTools MCP server
"""

from browserbridge.bridge import BrowserToolsBridge, SlashOutput
from browserbridge.core.config import BridgeConfig
from browserbridge.core.types import (
    Command,
    CommandDomain,
    CommandResult,
    Degraded,
    ErrorKind,
    Failed,
    Ok,
)
from browserbridge.errors import BridgeError
from browserbridge.version import __version__

__all__ = [
    "__version__",
    "BrowserToolsBridge",
    "SlashOutput",
    "BridgeConfig",
    "Command",
    "CommandDomain",
    "CommandResult",
    "Ok",
    "Degraded",
    "Failed",
    "ErrorKind",
    "BridgeError",
]
