"""
BrowserBridge Core Types
------------------------
Pydantic models and enums shared by the supervisor, router and request bridge.
"""

import time
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class CommandDomain(str, Enum):
    CAPTURE = "capture"
    AUDIT = "audit"
    DEBUG = "debug"

    @classmethod
    def from_name(cls, name: str) -> "CommandDomain":
        """
        Resolve a domain from either its bare value ("audit") or the editor
        slash-command name ("browser-audit").
        """
        candidate = (name or "").strip().lower()
        if candidate.startswith("browser-"):
            candidate = candidate[len("browser-"):]
        return cls(candidate)

    @property
    def command_name(self) -> str:
        return f"browser-{self.value}"


class ProcessStatus(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    UNHEALTHY = "unhealthy"
    STOPPED = "stopped"


class ErrorKind(str, Enum):
    INSTALL_ERROR = "install_error"
    STARTUP_TIMEOUT = "startup_timeout"
    SERVER_UNAVAILABLE = "server_unavailable"
    UNKNOWN_COMMAND = "unknown_command"
    INVALID_ARGUMENTS = "invalid_arguments"
    TRANSPORT_ERROR = "transport_error"
    REQUEST_TIMEOUT = "request_timeout"
    SERVER_ERROR = "server_error"
    MALFORMED_RESPONSE = "malformed_response"


class ServerEndpoint(BaseModel):
    """
    Address of the instrumentation server.

    host/port never change after construction; ``reachable`` is refreshed in
    place by every probe.
    """
    host: str = Field(default="127.0.0.1", frozen=True)
    port: int = Field(default=3025, frozen=True, ge=1, le=65535)
    reachable: bool = False

    @property
    def base_url(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"http://{host}:{self.port}"

    def url(self, path: str) -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


class ManagedProcess(BaseModel):
    """A server process whose lifecycle belongs to the supervisor."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    pid: int
    started_by_us: bool = True
    status: ProcessStatus = ProcessStatus.STARTING
    started_at: float = Field(default_factory=time.time)
    restarts: int = 0

    # OS handle (subprocess.Popen or a test double); never serialized
    handle: Any = Field(default=None, exclude=True, repr=False)

    @property
    def is_active(self) -> bool:
        return self.status in (ProcessStatus.STARTING, ProcessStatus.RUNNING)

    def has_exited(self) -> bool:
        if self.handle is None:
            return False
        return self.handle.poll() is not None


class Command(BaseModel):
    """One user command: domain + action + positional arguments."""
    model_config = ConfigDict(frozen=True)

    domain: CommandDomain
    action: str
    arguments: Tuple[str, ...] = ()

    def __str__(self) -> str:
        parts = [self.domain.command_name, self.action, *self.arguments]
        return " ".join(p for p in parts if p)


# ---------------------------------------------------------------------------
# Command results (tagged on ``status``)
# ---------------------------------------------------------------------------

class _ResultBase(BaseModel):
    route: Optional[str] = None
    label: Optional[str] = None

    @property
    def ok(self) -> bool:
        return False


class Ok(_ResultBase):
    status: Literal["ok"] = "ok"
    payload: Any = None

    @property
    def ok(self) -> bool:
        return True


class Degraded(_ResultBase):
    """The server completed part of the operation and reported warnings."""
    status: Literal["degraded"] = "degraded"
    payload: Any = None
    warnings: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return True


class Failed(_ResultBase):
    status: Literal["failed"] = "failed"
    kind: ErrorKind
    message: str
    hint: Optional[str] = None


CommandResult = Annotated[Union[Ok, Degraded, Failed], Field(discriminator="status")]
