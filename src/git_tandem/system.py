import logging
import os
import subprocess
import sys
from pathlib import Path

from .constants import APP_NAME, REGISTRY_FILE, SSH_KEY_CANDIDATES

logger = logging.getLogger(APP_NAME)


def get_registered_repos() -> list[Path]:
    """Reads the registry file and returns a list of registered repository paths."""
    if not REGISTRY_FILE.exists():
        return []
    with open(REGISTRY_FILE, "r") as f:
        return [Path(line.strip()) for line in f if line.strip()]


def _write_registry(paths: list[Path]) -> None:
    """Rewrites the registry atomically."""
    REGISTRY_FILE.parent.mkdir(parents=True, exist_ok=True)
    tmp_file = REGISTRY_FILE.with_suffix(".tmp")
    try:
        with open(tmp_file, "w") as f:
            for path in paths:
                f.write(f"{path}\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_file, REGISTRY_FILE)
    except OSError:
        if tmp_file.exists():
            tmp_file.unlink()
        raise


def register_repo(path: Path) -> bool:
    """Adds a repository path to the registry.

    Args:
        path (Path): The working copy to register.

    Returns:
        bool: True if the path was added, False if it was already registered.
    """
    path = path.resolve()
    repos = get_registered_repos()
    if path in repos:
        return False
    repos.append(path)
    _write_registry(repos)
    logger.info(f"REGISTERED: {path}")
    return True


def unregister_repo(path: Path) -> bool:
    """Removes a repository path from the registry.

    Args:
        path (Path): The working copy to forget. Matched as given and resolved.

    Returns:
        bool: True if an entry was removed.
    """
    targets = {path, path.resolve()}
    repos = get_registered_repos()
    remaining = [p for p in repos if p not in targets]
    if len(remaining) == len(repos):
        return False
    _write_registry(remaining)
    logger.info(f"UNREGISTERED: {path}")
    return True


class SystemStrategy:
    """Base class defining the interface for OS-level interactions."""

    def ssh_command(self, key_path: str) -> str:
        """Builds the GIT_SSH_COMMAND value for a private key.

        Host-key checking is disabled so first contact with a host never
        blocks on an interactive prompt.

        Args:
            key_path (str): Absolute path to the private key.

        Returns:
            str: The ssh invocation git should use.
        """
        return f"ssh -i {key_path} -o StrictHostKeyChecking=no"

    def open_folder(self, path: Path) -> None:
        """Opens a folder in the desktop file manager (best-effort).

        Args:
            path (Path): The folder to reveal.
        """
        self._launch(["xdg-open", str(path)])

    @staticmethod
    def _launch(cmd: list[str]) -> None:
        try:
            subprocess.run(cmd, stderr=subprocess.DEVNULL)
        except OSError as e:
            logger.debug(f"Could not run {cmd[0]}: {e}")


class WindowsStrategy(SystemStrategy):
    """System strategy implementation for Windows."""

    def ssh_command(self, key_path: str) -> str:
        """Quotes the key path, since Windows profile paths often contain spaces."""
        return f'ssh -i "{key_path}" -o StrictHostKeyChecking=no'

    def open_folder(self, path: Path) -> None:
        """Opens the folder in Explorer."""
        self._launch(["explorer", str(path)])


class MacOSStrategy(SystemStrategy):
    """System strategy implementation for macOS."""

    def open_folder(self, path: Path) -> None:
        """Opens the folder in Finder."""
        self._launch(["open", str(path)])


class LinuxStrategy(SystemStrategy):
    """System strategy implementation for Linux."""


def get_system() -> SystemStrategy:
    """Factory function to retrieve the platform-specific system strategy.

    Returns:
        SystemStrategy: An instance of WindowsStrategy, MacOSStrategy,
        LinuxStrategy, or the base SystemStrategy depending on the operating system.
    """
    if sys.platform == "win32":
        return WindowsStrategy()
    elif sys.platform == "darwin":
        return MacOSStrategy()
    elif sys.platform.startswith("linux"):
        return LinuxStrategy()
    else:
        return SystemStrategy()


def get_ssh_dir() -> Path:
    """Returns the user's SSH directory (where keys live by default)."""
    return Path.home() / ".ssh"


def detect_default_ssh_key() -> Path | None:
    """Finds the first conventional private key under ~/.ssh.

    Returns:
        Path | None: The key path, or None if no candidate exists.
    """
    ssh_dir = get_ssh_dir()
    if not ssh_dir.exists():
        return None
    for name in SSH_KEY_CANDIDATES:
        candidate = ssh_dir / name
        if candidate.exists():
            return candidate
    return None


def git_version() -> str | None:
    """Returns the installed git version string, or None if git is unavailable."""
    try:
        res = subprocess.run(
            ["git", "--version"], capture_output=True, text=True, check=True
        )
        return res.stdout.strip()
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug(f"git --version failed: {e}")
        return None
