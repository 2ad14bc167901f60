"""
BrowserBridge facade: structured command in, CommandResult out.

Usage:
    from browserbridge import BrowserToolsBridge, Command, CommandDomain

    async with BrowserToolsBridge() as bridge:
        result = await bridge.run(Command(domain=CommandDomain.CAPTURE, action="screenshot"))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from browserbridge.client import RequestBridge
from browserbridge.commands.formatting import render_result, section_label
from browserbridge.commands.router import CommandRouter
from browserbridge.core.config import BridgeConfig
from browserbridge.core.types import Command, CommandDomain, CommandResult, ErrorKind, Failed
from browserbridge.errors import BridgeError
from browserbridge.server.installer import DependencyInstaller
from browserbridge.server.locator import ProcessLocator
from browserbridge.server.lock import get_startup_lock
from browserbridge.server.supervisor import ProcessSupervisor

logger = logging.getLogger("BrowserBridge")


@dataclass(frozen=True)
class SlashOutput:
    label: str
    text: str
    result: CommandResult


class BrowserToolsBridge:
    def __init__(
        self,
        config: Optional[BridgeConfig] = None,
        *,
        supervisor: Optional[ProcessSupervisor] = None,
        router: Optional[CommandRouter] = None,
        request_bridge: Optional[RequestBridge] = None,
    ):
        self.config = config or BridgeConfig.from_env()
        self._owned_locator: Optional[ProcessLocator] = None

        if supervisor is None:
            self._owned_locator = ProcessLocator(timeout=self.config.startup.probe_timeout_sec)
            endpoint = self.config.server.endpoint()
            supervisor = ProcessSupervisor(
                endpoint,
                self._owned_locator,
                DependencyInstaller(
                    Path(self.config.package.install_dir),
                    npm_command=self.config.package.npm_command,
                    timeout=self.config.package.install_timeout_sec,
                ),
                self.config.package.package_spec,
                self.config.startup,
                startup_lock=get_startup_lock(endpoint, timeout=self.config.startup.lock_timeout_sec),
            )
        self.supervisor = supervisor
        self.router = router or CommandRouter(
            source=self.config.requests.source,
            timeouts=self.config.requests.domain_timeouts_sec,
        )
        self.request_bridge = request_bridge or RequestBridge(self.config.requests)

    async def close(self, *, stop_server: bool = True) -> None:
        """Stop a server this bridge started and release HTTP clients."""
        try:
            if stop_server:
                await self.supervisor.shutdown()
        finally:
            await self.request_bridge.close()
            if self._owned_locator is not None:
                await self._owned_locator.close()

    async def __aenter__(self) -> "BrowserToolsBridge":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def run(self, command: Command) -> CommandResult:
        try:
            descriptor = self.router.route(command)
        except BridgeError as exc:
            logger.info("Rejected command %r: %s", str(command), exc)
            return exc.to_result()

        try:
            endpoint = await self.supervisor.ensure_running()
        except BridgeError as exc:
            logger.error("No BrowserTools server for %r: %s", str(command), exc)
            return exc.to_result(route=descriptor.path, label=descriptor.label)

        return await self.request_bridge.execute(descriptor, endpoint)

    async def run_slash(self, name: str, args: Sequence[str]) -> SlashOutput:
        """Run an editor slash command such as ``browser-capture screenshot``."""
        try:
            domain = CommandDomain.from_name(name)
        except ValueError:
            result = Failed(kind=ErrorKind.UNKNOWN_COMMAND, message=f'unknown slash command: "{name}"')
        else:
            action, *arguments = list(args) or [""]
            result = await self.run(Command(domain=domain, action=action, arguments=tuple(arguments)))
        return SlashOutput(label=section_label(result), text=render_result(result), result=result)

    @staticmethod
    def complete(name: str) -> List[Tuple[str, str]]:
        """Argument completions ``(label, action)`` for a slash command."""
        try:
            domain = CommandDomain.from_name(name)
        except ValueError as exc:
            raise ValueError(f'unknown slash command: "{name}"') from exc
        return CommandRouter.completions(domain)
