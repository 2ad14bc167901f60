"""
Command routing: (domain, action, arguments) -> request descriptor.

Routing is a pure table lookup plus argument validation. It never touches the
network or the supervisor, so an invalid command fails before any resource is
acquired.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field

from browserbridge.core.types import Command, CommandDomain
from browserbridge.errors import EXTENSION_HINT, InvalidArguments, UnknownCommand


class RequestDescriptor(BaseModel):
    """Everything the request bridge needs to issue one call."""
    model_config = ConfigDict(frozen=True)

    domain: CommandDomain
    action: str
    method: str
    path: str
    body: Optional[Dict[str, Any]] = None
    idempotent: bool = False
    label: str
    hint: Optional[str] = None
    timeout: Optional[float] = Field(default=None, gt=0)


def _validate_url(value: str) -> Optional[str]:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return f"must be an absolute http(s) URL, got {value!r}"
    return None


@dataclass(frozen=True)
class ArgumentSpec:
    name: str
    required: bool = True
    validator: Optional[Callable[[str], Optional[str]]] = None
    body_key: Optional[str] = None


@dataclass(frozen=True)
class Route:
    method: str
    path: str
    label: str
    error: str
    idempotent: bool = False
    category: Optional[str] = None
    stamped: bool = False
    arguments: Tuple[ArgumentSpec, ...] = field(default_factory=tuple)


_AUDIT_URL = (ArgumentSpec("url", required=False, validator=_validate_url, body_key="url"),)
_CAPTURE_ERROR = "Failed to {}. " + EXTENSION_HINT
_AUDIT_ERROR = "Failed to run audit. " + EXTENSION_HINT

ROUTES: Dict[CommandDomain, Dict[str, Route]] = {
    CommandDomain.CAPTURE: {
        "screenshot": Route("POST", "capture-screenshot", "Browser Screenshot",
                            _CAPTURE_ERROR.format("capture screenshot")),
        "logs": Route("GET", "console-logs", "Browser Console Logs",
                      _CAPTURE_ERROR.format("retrieve console logs"), idempotent=True),
        "errors": Route("GET", "console-errors", "Browser Console Errors",
                        _CAPTURE_ERROR.format("retrieve console errors"), idempotent=True),
        "network": Route("GET", "network-success", "Browser Network Logs",
                         _CAPTURE_ERROR.format("retrieve network logs"), idempotent=True),
        "network-errors": Route("GET", "network-errors", "Browser Network Errors",
                                _CAPTURE_ERROR.format("retrieve network errors"), idempotent=True),
        "clear": Route("POST", "wipelogs", "Clear Logs", _CAPTURE_ERROR.format("clear logs")),
        "element": Route("GET", "selected-element", "DOM Element",
                         _CAPTURE_ERROR.format("get DOM element"), idempotent=True),
    },
    CommandDomain.AUDIT: {
        "accessibility": Route("POST", "accessibility-audit", "Accessibility Audit", _AUDIT_ERROR,
                               category="accessibility", stamped=True, arguments=_AUDIT_URL),
        "performance": Route("POST", "performance-audit", "Performance Audit", _AUDIT_ERROR,
                             category="performance", stamped=True, arguments=_AUDIT_URL),
        "seo": Route("POST", "seo-audit", "SEO Audit", _AUDIT_ERROR,
                     category="seo", stamped=True, arguments=_AUDIT_URL),
        "best-practices": Route("POST", "best-practices-audit", "Best Practices Audit", _AUDIT_ERROR,
                                category="best-practices", stamped=True, arguments=_AUDIT_URL),
        "nextjs": Route("POST", "nextjs-audit", "NextJS Audit", _AUDIT_ERROR,
                        stamped=True, arguments=_AUDIT_URL),
        "all": Route("POST", "audit-all", "All Audits", _AUDIT_ERROR,
                     stamped=True, arguments=_AUDIT_URL),
    },
    CommandDomain.DEBUG: {
        "start": Route("POST", "debug-mode", "Debugger Mode",
                       "Failed to start debugger. " + EXTENSION_HINT, stamped=True),
    },
}

# Editor completion labels, in menu order
_COMPLETION_LABELS: Dict[CommandDomain, List[Tuple[str, str]]] = {
    CommandDomain.CAPTURE: [
        ("Screenshot", "screenshot"),
        ("Console Logs", "logs"),
        ("Console Errors", "errors"),
        ("Network Logs", "network"),
        ("Network Errors", "network-errors"),
        ("Clear Logs", "clear"),
        ("DOM Element", "element"),
    ],
    CommandDomain.AUDIT: [
        ("Accessibility", "accessibility"),
        ("Performance", "performance"),
        ("SEO", "seo"),
        ("Best Practices", "best-practices"),
        ("NextJS", "nextjs"),
        ("Run All Audits", "all"),
    ],
    CommandDomain.DEBUG: [
        ("Start Debugger Mode", "start"),
    ],
}


class CommandRouter:
    def __init__(
        self,
        source: str = "browserbridge",
        clock: Callable[[], float] = time.time,
        timeouts: Optional[Dict[CommandDomain, float]] = None,
    ):
        self.source = source
        self._clock = clock
        self._timeouts = dict(timeouts or {})

    def route(self, command: Command) -> RequestDescriptor:
        action = (command.action or "").strip()
        if not action:
            raise InvalidArguments("action", "No argument provided. Please select an option.")

        route = ROUTES.get(command.domain, {}).get(action)
        if route is None:
            raise UnknownCommand(
                f"Unknown command or argument: {command.domain.command_name} {action}",
                hint=self._known_actions_hint(command.domain),
            )

        body: Optional[Dict[str, Any]] = None
        if route.method == "POST":
            body = {}
            if route.category:
                body["category"] = route.category
            if route.stamped:
                body["source"] = self.source
                body["timestamp"] = int(self._clock() * 1000)
        body_fields = self._bind_arguments(route, command.arguments)
        if body_fields:
            body = {**(body or {}), **body_fields}

        return RequestDescriptor(
            domain=command.domain,
            action=action,
            method=route.method,
            path=route.path,
            body=body,
            idempotent=route.idempotent,
            label=route.label,
            hint=route.error,
            timeout=self._timeouts.get(command.domain),
        )

    def _bind_arguments(self, route: Route, arguments: Tuple[str, ...]) -> Dict[str, Any]:
        specs = route.arguments
        if len(arguments) > len(specs):
            position = len(specs) + 1
            raise InvalidArguments(
                f"#{position}",
                f"unexpected value {arguments[len(specs)]!r}; "
                f"'{route.label}' accepts at most {len(specs)}",
            )

        bound: Dict[str, Any] = {}
        for index, spec in enumerate(specs):
            if index >= len(arguments):
                if spec.required:
                    raise InvalidArguments(spec.name, "missing required argument")
                continue
            value = arguments[index].strip()
            if not value:
                raise InvalidArguments(spec.name, "must not be empty")
            if spec.validator is not None:
                problem = spec.validator(value)
                if problem:
                    raise InvalidArguments(spec.name, problem)
            bound[spec.body_key or spec.name] = value
        return bound

    def _known_actions_hint(self, domain: CommandDomain) -> str:
        actions = ", ".join(sorted(ROUTES.get(domain, {})))
        return f"Known {domain.command_name} actions: {actions}"

    @staticmethod
    def completions(domain: CommandDomain) -> List[Tuple[str, str]]:
        """``(label, action)`` pairs for the editor's argument completion menu."""
        return list(_COMPLETION_LABELS.get(domain, []))
