from browserbridge.core.config import BridgeConfig
from browserbridge.core.types import (
    Command,
    CommandDomain,
    CommandResult,
    Degraded,
    ErrorKind,
    Failed,
    ManagedProcess,
    Ok,
    ProcessStatus,
    ServerEndpoint,
)

__all__ = [
    "BridgeConfig",
    "Command",
    "CommandDomain",
    "CommandResult",
    "Degraded",
    "ErrorKind",
    "Failed",
    "ManagedProcess",
    "Ok",
    "ProcessStatus",
    "ServerEndpoint",
]
