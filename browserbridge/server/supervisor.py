"""
Lifecycle supervision for the BrowserTools server.

One ProcessSupervisor owns one endpoint. It adopts a compatible server that is
already running, or installs and spawns its own, and it is the only place the
ManagedProcess record is created or transitioned.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from browserbridge.core.config import StartupConfig
from browserbridge.core.types import ManagedProcess, ProcessStatus, ServerEndpoint
from browserbridge.errors import BridgeError, ServerUnavailable, StartupTimeout
from browserbridge.platform import spawn_process, terminate_process
from browserbridge.server.installer import DependencyInstaller
from browserbridge.server.locator import ProcessLocator
from browserbridge.server.lock import StartupLock

logger = logging.getLogger("BrowserBridge.Supervisor")

RESTART_BUDGET = 1


def backoff_delay(config: StartupConfig, attempt: int) -> float:
    """Delay after the ``attempt``-th failed readiness probe (1-based)."""
    return min(config.initial_delay_sec * config.backoff_factor ** (attempt - 1), config.max_delay_sec)


class ProcessSupervisor:
    def __init__(
        self,
        endpoint: ServerEndpoint,
        locator: ProcessLocator,
        installer: DependencyInstaller,
        package_spec: str,
        startup: Optional[StartupConfig] = None,
        *,
        spawner: Callable = spawn_process,
        terminator: Callable = terminate_process,
        startup_lock: Optional[StartupLock] = None,
        sleep: Callable = asyncio.sleep,
    ):
        self.endpoint = endpoint
        self.locator = locator
        self.installer = installer
        self.package_spec = package_spec
        self.startup = startup or StartupConfig()
        self._spawner = spawner
        self._terminator = terminator
        self._startup_lock = startup_lock
        self._sleep = sleep

        self.managed: Optional[ManagedProcess] = None
        self.external = False
        self.spawn_count = 0
        self._restarts_used = 0
        self._unavailable: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def status(self) -> ProcessStatus:
        if self.managed is None:
            return ProcessStatus.STOPPED
        return self.managed.status

    async def ensure_running(self) -> ServerEndpoint:
        """
        Guarantee a reachable, compatible server on the endpoint.

        Raises InstallError, StartupTimeout or ServerUnavailable.
        """
        async with self._lock:
            if self._unavailable is not None:
                raise ServerUnavailable(self._unavailable)

            managed = self.managed
            if managed is not None and managed.status == ProcessStatus.STARTING:
                # A cancelled caller left our child mid-startup; never spawn twice.
                await self._await_startup(managed)
                return self.endpoint

            if managed is not None and managed.status == ProcessStatus.RUNNING:
                if not await self._is_healthy(managed):
                    await self._recover(managed)
                return self.endpoint

            if await self.locator.probe(self.endpoint):
                self._adopt_external()
                return self.endpoint

            self.external = False
            await self._start()
            return self.endpoint

    async def shutdown(self) -> None:
        """Stop the server only if this supervisor started it."""
        async with self._lock:
            managed = self.managed
            if managed is None or not managed.started_by_us:
                if self.external or managed is not None:
                    logger.info("Leaving externally owned server on %s running", self.endpoint)
                return
            if managed.status == ProcessStatus.STOPPED:
                return
            logger.info("Stopping managed server pid=%s on %s", managed.pid, self.endpoint)
            await self._terminate(managed)

    # -- health ---------------------------------------------------------------

    async def _is_healthy(self, managed: ManagedProcess) -> bool:
        failures = 0
        while failures < self.startup.unhealthy_threshold:
            if managed.has_exited():
                logger.warning(
                    "Managed server pid=%s exited with code %s",
                    managed.pid,
                    managed.handle.poll(),
                )
                break
            if await self.locator.probe(self.endpoint):
                if failures:
                    logger.info("Managed server on %s recovered after %d failed probe(s)", self.endpoint, failures)
                return True
            failures += 1
            if failures < self.startup.unhealthy_threshold:
                await self._sleep(backoff_delay(self.startup, failures))
        managed.status = ProcessStatus.UNHEALTHY
        logger.warning("Managed server pid=%s on %s is unhealthy", managed.pid, self.endpoint)
        return False

    async def _recover(self, managed: ManagedProcess) -> None:
        if self._restarts_used >= RESTART_BUDGET:
            await self._terminate(managed)
            self._latch_unavailable(
                f"Server on {self.endpoint} failed again after its restart; giving up"
            )
            raise ServerUnavailable(self._unavailable)

        self._restarts_used += 1
        logger.warning("Restarting managed server on %s (attempt %d)", self.endpoint, self._restarts_used)
        await self._terminate(managed)
        try:
            await self._start()
        except BridgeError as exc:
            self._latch_unavailable(f"Server on {self.endpoint} became unreachable and restart failed: {exc.message}")
            raise ServerUnavailable(self._unavailable, hint=exc.hint) from exc

    def _latch_unavailable(self, message: str) -> None:
        self._unavailable = message
        logger.error(message)

    def _adopt_external(self) -> None:
        if not self.external:
            logger.info("Using already running BrowserTools server on %s", self.endpoint)
        self.external = True

    # -- startup --------------------------------------------------------------

    async def _start(self) -> None:
        acquired = await self._acquire_startup_lock()
        try:
            if not acquired:
                # Another bridge process is spawning; wait for its server instead.
                if await self._wait_for_foreign_server():
                    self._adopt_external()
                    return
                raise StartupTimeout(
                    f"Another process held the startup lock for {self.endpoint} "
                    "but no server became reachable"
                )

            if await self.locator.probe(self.endpoint):
                self._adopt_external()
                return

            await self.installer.ensure_available(self.package_spec)
            command = self.installer.server_command(self.package_spec)
            managed = self._spawn(command)
            await self._await_startup(managed)
        finally:
            if acquired and self._startup_lock is not None:
                self._startup_lock.release()

    async def _acquire_startup_lock(self) -> bool:
        lock = self._startup_lock
        if lock is None:
            return True
        task = asyncio.ensure_future(asyncio.to_thread(lock.acquire))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            task.add_done_callback(
                lambda t: lock.release() if not t.cancelled() and t.exception() is None and t.result() else None
            )
            raise

    def _spawn(self, command: list) -> ManagedProcess:
        env = {"PORT": str(self.endpoint.port), "HOST": self.endpoint.host}
        try:
            handle = self._spawner(command, env=env)
        except OSError as exc:
            raise StartupTimeout(f"Could not launch {command[0]}: {exc}") from exc

        self.spawn_count += 1
        managed = ManagedProcess(
            pid=handle.pid,
            started_by_us=True,
            status=ProcessStatus.STARTING,
            restarts=self._restarts_used,
            handle=handle,
        )
        self.managed = managed
        logger.info("Spawned BrowserTools server pid=%s for %s", managed.pid, self.endpoint)
        return managed

    async def _await_startup(self, managed: ManagedProcess) -> None:
        attempts = self.startup.max_attempts
        started = time.monotonic()
        for attempt in range(1, attempts + 1):
            if managed.has_exited():
                code = managed.handle.poll()
                managed.status = ProcessStatus.STOPPED
                raise StartupTimeout(
                    f"Server process pid={managed.pid} exited with code {code} during startup"
                )
            if await self.locator.probe(self.endpoint):
                managed.status = ProcessStatus.RUNNING
                logger.info(
                    "Server on %s is running (pid=%s, %d probe(s), %.1fs)",
                    self.endpoint,
                    managed.pid,
                    attempt,
                    time.monotonic() - started,
                )
                return
            if attempt < attempts:
                await self._sleep(backoff_delay(self.startup, attempt))

        await self._terminate(managed)
        raise StartupTimeout(
            f"Server on {self.endpoint} not reachable after {attempts} probes "
            f"({time.monotonic() - started:.1f}s)"
        )

    async def _wait_for_foreign_server(self) -> bool:
        for attempt in range(1, self.startup.max_attempts + 1):
            if await self.locator.probe(self.endpoint):
                return True
            if attempt < self.startup.max_attempts:
                await self._sleep(backoff_delay(self.startup, attempt))
        return False

    async def _terminate(self, managed: ManagedProcess) -> None:
        if managed.handle is not None:
            code = await asyncio.to_thread(self._terminator, managed.handle, self.startup.shutdown_grace_sec)
            logger.debug("Server pid=%s exited with code %s", managed.pid, code)
        managed.status = ProcessStatus.STOPPED
