"""Transient credential, proxy and SSH environment for authenticated git calls.

Every network operation (clone, push, pull) runs inside ``authenticated()``,
which holds the process-wide ``AUTH_LOCK``, activates a ``CredentialEnvironment``
and hands its mapping to the git subprocess. Deactivation happens in a
``finally`` block, so no override outlives the operation that needed it.
"""

import logging
import os
import subprocess
import threading
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from pathlib import Path

from .config import PlatformAuthConfig
from .constants import APP_NAME
from .system import get_system

logger = logging.getLogger(APP_NAME)

SSH_VAR = "GIT_SSH_COMMAND"
PROXY_VARS = ("HTTP_PROXY", "HTTPS_PROXY", "http_proxy", "https_proxy")
MANAGED_VARS = (*PROXY_VARS, SSH_VAR)

AUTH_LOCK = threading.RLock()
"""Serializes authenticated scopes; only one may be active at a time."""


def resolve_private_key(key_path: str) -> Path:
    """Maps a public key path to its private sibling by dropping '.pub'."""
    if key_path.endswith(".pub"):
        key_path = key_path[:-4]
    return Path(key_path).expanduser()


def normalize_proxy(proxy_url: str) -> str:
    """Prefixes 'http://' when the proxy URL carries no scheme."""
    if proxy_url.startswith(("http://", "https://")):
        return proxy_url
    return f"http://{proxy_url}"


def apply_global_identity(username: str, email: str) -> None:
    """Writes user.name/user.email to the global git config (best-effort)."""
    try:
        for key, value in (("user.name", username), ("user.email", email)):
            subprocess.run(
                ["git", "config", "--global", key, value],
                capture_output=True,
                text=True,
                check=True,
            )
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug(f"Could not set global git identity: {e}")


class CredentialEnvironment:
    """An environment mapping carrying the overrides for one authenticated call.

    The mapping starts as a copy of the process environment (or ``base``) and
    is passed to subprocesses explicitly; the parent process environment is
    never modified.

    Attributes:
        environ (MutableMapping[str, str]): The environment handed to git.
    """

    def __init__(self, base: MutableMapping[str, str] | None = None):
        self.environ: MutableMapping[str, str] = dict(
            os.environ if base is None else base
        )

    def activate(self, config: PlatformAuthConfig) -> None:
        """Sets the SSH, proxy and identity overrides described by ``config``.

        Args:
            config (PlatformAuthConfig): The platform auth policy to apply.
        """
        if config.ssh_key:
            key = resolve_private_key(config.ssh_key)
            if key.exists():
                self.environ[SSH_VAR] = get_system().ssh_command(str(key))
            else:
                logger.debug(f"SSH key {key} not found; using default ssh settings.")

        if config.proxy:
            proxy = normalize_proxy(config.proxy)
            self.environ["HTTP_PROXY"] = proxy
            self.environ["HTTPS_PROXY"] = proxy

        if config.has_identity:
            apply_global_identity(config.username, config.email)

    def deactivate(self) -> None:
        """Removes every variable this class may set, whether or not it was set."""
        for key in MANAGED_VARS:
            self.environ.pop(key, None)


@contextmanager
def authenticated(
    config: PlatformAuthConfig | None,
    base: MutableMapping[str, str] | None = None,
) -> Iterator[MutableMapping[str, str]]:
    """Context manager scoping one authenticated git operation.

    Args:
        config (PlatformAuthConfig | None): Auth policy; None runs with the
                                            plain environment.
        base (MutableMapping[str, str] | None): Environment to start from.
                                                Defaults to os.environ.

    Yields:
        MutableMapping[str, str]: The environment to pass to git subprocesses.
    """
    with AUTH_LOCK:
        cred_env = CredentialEnvironment(base)
        try:
            if config is not None:
                cred_env.activate(config)
            yield cred_env.environ
        finally:
            cred_env.deactivate()
