"""Host helpers: machine name for branch naming, path normalization and git detection."""

import platform
import shutil
import socket
import subprocess
from functools import lru_cache
from pathlib import Path
from typing import Optional, Union


def sanitize_branch_component(name: str) -> str:
    """
    Reduce a machine name to characters valid in a git branch name.

    Returns:
        Lowercase name without domain suffix, or "unknown-host"
    """
    short = name.split(".")[0].strip().lower()
    cleaned = "".join(ch if ch.isalnum() or ch in "-_" else "-" for ch in short)
    return cleaned.strip("-") or "unknown-host"


@lru_cache(maxsize=1)
def get_hostname() -> str:
    """Hostname used to name per-machine branches; read once and stable for the process."""
    return sanitize_branch_component(socket.gethostname() or platform.node())


def normalize_path(path: Union[str, Path]) -> Path:
    """Absolute path with ``~`` expanded."""
    return Path(path).expanduser().resolve()


def get_git_executable() -> str:
    """The git executable on PATH, falling back to the platform default name."""
    default = "git.exe" if platform.system().lower() == "windows" else "git"
    return shutil.which("git") or default


def validate_git_availability() -> tuple[bool, Optional[str]]:
    """
    Check that git can be executed.

    Returns:
        Tuple of (is_available, error_message)
    """
    git_cmd = get_git_executable()

    try:
        result = subprocess.run([git_cmd, "--version"], capture_output=True, text=True, timeout=10)
    except FileNotFoundError:
        return False, f"Git executable '{git_cmd}' not found"
    except subprocess.TimeoutExpired:
        return False, "Git command timed out"

    if result.returncode != 0:
        return False, f"Git command failed: {result.stderr.strip()}"
    return True, None
