"""
Dependency installer for the npm-distributed BrowserTools server.

The package is installed into a private npm prefix owned by the bridge, so the
user's global npm tree is never modified and repeated launches reuse the same
install.
"""

import re
import json
import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from browserbridge.errors import InstallError
from browserbridge.platform import find_node_executable, find_npm_executable

logger = logging.getLogger("BrowserBridge.Installer")

_EXACT_VERSION_RE = re.compile(r"^\d+\.\d+\.\d+(?:[-+][0-9A-Za-z.+-]+)?$")

INSTALL_HINT = (
    "Install Node.js (which ships npm) and check network access to the npm "
    "registry, then retry."
)


def parse_package_spec(package_spec: str) -> Tuple[str, Optional[str]]:
    """
    Split ``name@version`` into its parts. Scoped names keep their leading '@':

    >>> parse_package_spec("@agentdeskai/browser-tools-server@1.2.0")
    ('@agentdeskai/browser-tools-server', '1.2.0')
    >>> parse_package_spec("left-pad")
    ('left-pad', None)
    """
    spec = (package_spec or "").strip()
    if not spec:
        raise ValueError("Package spec must not be empty")
    at = spec.rfind("@")
    if at <= 0:
        return spec, None
    name, version = spec[:at], spec[at + 1:]
    return name, (version or None)


def _split_spec(package_spec: str) -> Tuple[str, Optional[str]]:
    try:
        return parse_package_spec(package_spec)
    except ValueError as exc:
        raise InstallError(f"Invalid package spec {package_spec!r}: {exc}", hint=INSTALL_HINT) from exc


class DependencyInstaller:
    def __init__(
        self,
        install_dir: str | Path,
        npm_command: Optional[str] = None,
        timeout: float = 300.0,
    ):
        self.install_dir = Path(install_dir)
        self.npm_command = npm_command
        self.timeout = timeout
        self._ready: set = set()
        self._lock = asyncio.Lock()

    def package_dir(self, package_spec: str) -> Path:
        name, _ = _split_spec(package_spec)
        return self.install_dir / "node_modules" / Path(*name.split("/"))

    def _read_manifest(self, package_spec: str) -> Optional[Dict]:
        manifest_path = self.package_dir(package_spec) / "package.json"
        try:
            return json.loads(manifest_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning("Unreadable manifest %s: %s", manifest_path, exc)
            return None

    def is_installed(self, package_spec: str) -> bool:
        """Whether the package is present and matches an exact pinned version."""
        manifest = self._read_manifest(package_spec)
        if not isinstance(manifest, dict):
            return False
        _, wanted = _split_spec(package_spec)
        if wanted and _EXACT_VERSION_RE.match(wanted):
            installed = manifest.get("version")
            if installed != wanted:
                logger.info(
                    "Installed %s is version %s; %s required",
                    package_spec,
                    installed,
                    wanted,
                )
                return False
        return True

    async def ensure_available(self, package_spec: str) -> bool:
        if package_spec in self._ready:
            return True
        async with self._lock:
            if package_spec in self._ready:
                return True
            if not self.is_installed(package_spec):
                await self._install(package_spec)
                if not self.is_installed(package_spec):
                    raise InstallError(
                        f"npm reported success but {package_spec} is not resolvable "
                        f"under {self.install_dir}",
                        hint=INSTALL_HINT,
                    )
            self._ready.add(package_spec)
        return True

    async def _install(self, package_spec: str) -> None:
        npm = self.npm_command or find_npm_executable()
        if not npm:
            raise InstallError("npm executable not found", hint=INSTALL_HINT)

        self.install_dir.mkdir(parents=True, exist_ok=True)
        args = [
            npm,
            "install",
            "--prefix",
            str(self.install_dir),
            "--no-audit",
            "--no-fund",
            package_spec,
        ]
        logger.info("Installing %s into %s", package_spec, self.install_dir)
        returncode, stderr = await self._run_npm(args)
        if returncode != 0:
            tail = stderr.strip().splitlines()[-5:]
            raise InstallError(
                f"npm install {package_spec} failed with exit code {returncode}: "
                + " | ".join(tail),
                hint=INSTALL_HINT,
            )

    async def _run_npm(self, args: List[str]) -> Tuple[int, str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise InstallError(f"Could not run npm: {exc}", hint=INSTALL_HINT) from exc

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise InstallError(
                f"npm install timed out after {self.timeout:.0f}s",
                hint=INSTALL_HINT,
            )
        except asyncio.CancelledError:
            proc.kill()
            raise
        return proc.returncode, stderr.decode("utf-8", errors="replace")

    def server_command(self, package_spec: str) -> List[str]:
        """Resolve the package's ``bin`` script to a ``[node, script]`` launch command."""
        manifest = self._read_manifest(package_spec)
        if not isinstance(manifest, dict):
            raise InstallError(f"{package_spec} is not installed", hint=INSTALL_HINT)

        name, _ = _split_spec(package_spec)
        bin_field = manifest.get("bin")
        if isinstance(bin_field, str):
            script = bin_field
        elif isinstance(bin_field, dict) and bin_field:
            script = bin_field.get(name.split("/")[-1]) or next(iter(bin_field.values()))
        else:
            raise InstallError(f"{package_spec} declares no executable", hint=INSTALL_HINT)

        node = find_node_executable()
        if not node:
            raise InstallError("node executable not found", hint=INSTALL_HINT)
        return [node, str(self.package_dir(package_spec) / script)]
