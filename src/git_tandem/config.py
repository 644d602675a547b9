import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_REMOTE,
    LOCAL_CONFIG_NAME,
    PLATFORMS,
)

logger = logging.getLogger(APP_NAME)

AUTH_SSH = "ssh"
AUTH_PASSWORD = "password"


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def sanitize(values: dict[str, Any]) -> dict[str, Any]:
    """Drops entries whose values are not plain scalars (str, int, float, bool)."""
    return {
        k: v
        for k, v in values.items()
        if v is not None and isinstance(v, (str, int, float, bool))
    }


@dataclass
class PlatformAuthConfig:
    """Credential policy for one hosting platform.

    Only the fields relevant to ``auth_type`` take effect; the accessors below
    hide stale values left over from a previous mode.

    Attributes:
        auth_type (str): Either 'ssh' or 'password'.
        username (str): Commit author name, and the HTTPS user for tokens.
        email (str): Commit author email.
        password (str): Access token used when auth_type is 'password'.
        ssh_key_path (str): Key file used when auth_type is 'ssh'.
        use_proxy (bool): Whether network calls go through ``proxy_url``.
        proxy_url (str): An HTTP(S) proxy or a GitHub mirror prefix.
    """

    auth_type: str = AUTH_SSH
    username: str = ""
    email: str = ""
    password: str = ""
    ssh_key_path: str = ""
    use_proxy: bool = False
    proxy_url: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any], section: str = "platforms") -> "PlatformAuthConfig":
        """Builds a config from a loosely-typed mapping, ignoring unknown keys."""
        valid_keys = cls.__dataclass_fields__.keys()
        values = sanitize(data)
        invalid_keys = set(values) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )
        instance = cls(**{k: v for k, v in values.items() if k in valid_keys})
        if instance.auth_type not in (AUTH_SSH, AUTH_PASSWORD):
            logger.warning(
                f"Config error in [{section}].auth_type: '{instance.auth_type}'. "
                "Falling back to 'ssh'."
            )
            instance.auth_type = AUTH_SSH
        instance.use_proxy = bool(instance.use_proxy)
        return instance

    @property
    def ssh_key(self) -> str | None:
        """The configured key path, or None unless SSH authentication is active."""
        if self.auth_type == AUTH_SSH and self.ssh_key_path:
            return self.ssh_key_path
        return None

    @property
    def token(self) -> str | None:
        """The configured token, or None unless password authentication is active."""
        if self.auth_type == AUTH_PASSWORD and self.password:
            return self.password
        return None

    @property
    def proxy(self) -> str | None:
        """The proxy URL, or None when proxying is disabled."""
        if self.use_proxy and self.proxy_url:
            return self.proxy_url
        return None

    @property
    def has_identity(self) -> bool:
        return bool(self.username and self.email)

    def with_identity_from(self, other: "PlatformAuthConfig") -> "PlatformAuthConfig":
        """Returns a copy whose missing username/email are taken from ``other``."""
        if self.has_identity or not other.has_identity:
            return replace(self)
        return replace(self, username=other.username, email=other.email)


@dataclass
class CoreConfig:
    """Core application settings.

    Attributes:
        remote_name (str): The git remote pushed to and pulled from.
    """

    remote_name: str = DEFAULT_REMOTE


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class SyncConfig:
    """Mirroring settings.

    Attributes:
        ignore (list[str]): Extra names or '*suffix' patterns never mirrored
                            (appended to the built-in set).
        default_message (str): Commit message used when none is given.
    """

    ignore: list[str] = field(default_factory=list)
    default_message: str = "Update"


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        limits (LimitsConfig): Resource limits.
        sync (SyncConfig): Mirroring settings.
        platforms (dict[str, PlatformAuthConfig]): Credential policy per platform tag.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    platforms: dict[str, PlatformAuthConfig] = field(default_factory=dict)

    # Cache for the base global configuration
    _global_cache: "Config | None" = None

    @classmethod
    def load(cls, repo_path: Path | None = None) -> "Config":
        """Loads and merges configuration from defaults, global, and local sources.

        Args:
            repo_path (Path | None): The repository root to search for local config.

        Returns:
            Config: The fully merged configuration object.
        """
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                instance._merge_from_file(CONFIG_FILE)
            cls._global_cache = instance

        base = cls._global_cache
        instance = replace(
            base,
            sync=replace(base.sync, ignore=list(base.sync.ignore)),
            platforms=dict(base.platforms),
        )

        if repo_path:
            local_toml = repo_path / LOCAL_CONFIG_NAME
            if local_toml.exists():
                instance._merge_from_file(local_toml)

        return instance

    def platform_auth(self, platform: str) -> PlatformAuthConfig:
        """Returns the auth config for a platform tag, or an empty default."""
        return replace(self.platforms.get(platform) or PlatformAuthConfig())

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if not data:
                return

            if "core" in data:
                self.core = self._update_dataclass("core", self.core, data["core"])
            if "limits" in data:
                self.limits = self._update_dataclass(
                    "limits", self.limits, data["limits"]
                )
            if "sync" in data:
                # Extract ignore list to prevent it from being overwritten during dataclass update
                new_ignores = data["sync"].pop("ignore", [])
                self.sync = self._update_dataclass("sync", self.sync, data["sync"])
                if new_ignores:
                    self.sync.ignore.extend(new_ignores)
                    self.sync.ignore = list(dict.fromkeys(self.sync.ignore))
            if "platforms" in data:
                for name, values in data["platforms"].items():
                    if name not in PLATFORMS:
                        logger.warning(f"Unknown platform [platforms.{name}]. Ignoring.")
                        continue
                    if not isinstance(values, dict):
                        continue
                    self.platforms[name] = PlatformAuthConfig.from_dict(
                        values, section=f"platforms.{name}"
                    )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(invalid_keys)}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
