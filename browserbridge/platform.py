"""
BrowserBridge Platform Abstraction
----------------------------------
Cross-platform path resolution, process management, and executable discovery.

Keeps every OS-specific decision (where the npm prefix lives, how the server
child is spawned and torn down, where Node.js is installed) behind one small API
so the supervisor and installer stay platform-agnostic.
"""

import os
import sys
import shutil
import logging
import subprocess
from pathlib import Path
from typing import Dict, Any, Optional

import platformdirs

logger = logging.getLogger("BrowserBridge.Platform")

# ---------------------------------------------------------------------------
# Platform detection
# ---------------------------------------------------------------------------

IS_WINDOWS = sys.platform == "win32"
IS_MACOS = sys.platform == "darwin"
IS_LINUX = sys.platform.startswith("linux")

_APP_NAME = "browserbridge"
_APP_AUTHOR = "BrowserBridge"


def get_platform_info() -> Dict[str, Any]:
    """Return platform diagnostic information for the CLI status output."""
    return {
        "os": sys.platform,
        "python": sys.version,
        "is_windows": IS_WINDOWS,
        "is_macos": IS_MACOS,
        "is_linux": IS_LINUX,
        "cache_dir": str(get_cache_dir()),
        "log_dir": str(get_log_dir()),
        "node": find_node_executable(),
        "npm": find_npm_executable(),
    }


# ---------------------------------------------------------------------------
# Directory resolution
# ---------------------------------------------------------------------------

def _resolve_dir(env_var: str, platformdirs_fn: str) -> Path:
    """
    Resolve a directory path with priority:
    1. Environment variable override
    2. platformdirs location for this OS
    """
    env_val = os.environ.get(env_var)
    if env_val:
        return Path(env_val)
    fn = getattr(platformdirs, platformdirs_fn)
    return Path(fn(_APP_NAME, _APP_AUTHOR))


def get_cache_dir() -> Path:
    """
    Get the BrowserBridge cache directory.

    Priority: BROWSERBRIDGE_CACHE_DIR env var > platformdirs user cache dir.
    Contains: npm/ (the private install prefix for the server package)
    """
    return _resolve_dir("BROWSERBRIDGE_CACHE_DIR", "user_cache_dir")


def get_log_dir() -> Path:
    """
    Get the BrowserBridge log directory.

    Priority: BROWSERBRIDGE_LOG_DIR env var > platformdirs user log dir.
    """
    return _resolve_dir("BROWSERBRIDGE_LOG_DIR", "user_log_dir")


def get_default_install_dir() -> Path:
    """npm prefix the server package is installed into."""
    return get_cache_dir() / "npm"


# ---------------------------------------------------------------------------
# Process management (cross-platform)
# ---------------------------------------------------------------------------

def get_process_creation_flags() -> int:
    """
    Get subprocess creation flags for the server child.

    Windows: CREATE_NO_WINDOW | CREATE_NEW_PROCESS_GROUP
    Unix: 0 (a new session is requested via start_new_session instead)
    """
    if IS_WINDOWS:
        CREATE_NO_WINDOW = 0x08000000
        CREATE_NEW_PROCESS_GROUP = 0x00000200
        return CREATE_NO_WINDOW | CREATE_NEW_PROCESS_GROUP
    return 0


def spawn_process(
    args: list,
    cwd: str | Path | None = None,
    env: dict | None = None,
) -> subprocess.Popen:
    """
    Launch the server child in its own process group.

    The child does not share the caller's console or stdio, and it can be
    signalled as a group so that Node.js wrappers (npx, .cmd shims) go down
    together with the real server.

    Args:
        args: Command and arguments list.
        cwd: Working directory for the subprocess.
        env: Optional environment variable overrides (merged with os.environ).

    Returns:
        The Popen object for the spawned process.
    """
    merged_env = {**os.environ, **(env or {})}
    kwargs = {
        "args": args,
        "cwd": str(cwd) if cwd else None,
        "env": merged_env,
        "close_fds": True,
        "shell": False,
        "stdout": subprocess.DEVNULL,
        "stderr": subprocess.DEVNULL,
        "stdin": subprocess.DEVNULL,
    }

    if IS_WINDOWS:
        kwargs["creationflags"] = get_process_creation_flags()
    else:
        kwargs["start_new_session"] = True

    logger.debug("Spawning %s", args)
    return subprocess.Popen(**kwargs)


def terminate_process(proc, grace_sec: float = 5.0) -> Optional[int]:
    """
    Stop a process started by spawn_process: terminate, wait, then kill.

    Returns the exit code, or None if the process could not be reaped.
    """
    if proc.poll() is not None:
        return proc.returncode
    try:
        proc.terminate()
        return proc.wait(timeout=grace_sec)
    except subprocess.TimeoutExpired:
        logger.warning("Process %s ignored SIGTERM for %.1fs; killing", proc.pid, grace_sec)
        proc.kill()
        try:
            return proc.wait(timeout=grace_sec)
        except subprocess.TimeoutExpired:
            logger.error("Process %s could not be reaped after kill", proc.pid)
            return None


# ---------------------------------------------------------------------------
# Node.js detection (cross-platform)
# ---------------------------------------------------------------------------

def _find_executable(name: str) -> str | None:
    """
    Locate a Node.js toolchain executable across platforms.

    Returns:
        Full path to the binary, or None if not found.
    """
    found = shutil.which(name)
    if found:
        return found

    candidates = []
    if IS_WINDOWS:
        suffix = ".exe" if name == "node" else ".cmd"
        program_files = os.environ.get("ProgramFiles", "C:/Program Files")
        candidates.append(Path(program_files) / "nodejs" / f"{name}{suffix}")
        app_data = os.environ.get("APPDATA", "")
        if app_data:
            candidates.append(Path(app_data) / "npm" / f"{name}{suffix}")
    elif IS_MACOS:
        candidates.append(Path("/opt/homebrew/bin") / name)
        candidates.append(Path("/usr/local/bin") / name)
    else:
        candidates.append(Path("/usr/local/bin") / name)
        candidates.append(Path("/usr/bin") / name)
        candidates.append(Path.home() / ".local" / "bin" / name)

    for candidate in candidates:
        if candidate.exists():
            return str(candidate)

    return None


def find_node_executable() -> str | None:
    return _find_executable("node")


def find_npm_executable() -> str | None:
    return _find_executable("npm")
