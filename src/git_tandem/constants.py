import os
from pathlib import Path

"""Global constants and configuration path definitions for Git Tandem.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, platform tags, and the fixed name sets used when
classifying remotes and mirroring working trees.
"""

# --- Identity ---
APP_NAME = "git-tandem"
"""str: The human-readable application name."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-tandem"
"""Path: The directory for runtime state data (logs, registry, sync groups)."""

# Ensure state directory exists immediately upon module import.
STATE_DIR.mkdir(parents=True, exist_ok=True)

REGISTRY_FILE = STATE_DIR / "registry"
"""Path: The file path storing the list of registered repositories."""

SYNC_FILE = STATE_DIR / "sync.json"
"""Path: The file path storing the serialized sync-group topology."""

LOG_FILE = STATE_DIR / "tandem.log"
"""Path: The file path for operation logs."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/git-tandem"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

LOCAL_CONFIG_NAME = "tandem.toml"
"""str: Name of the optional per-repository configuration file."""

# --- Platforms ---
GITHUB = "GitHub"
GITEE = "Gitee"
GITCODE = "GitCode"
GITLAB = "GitLab"
OTHER = "Other"
UNKNOWN = "Unknown"

PLATFORMS = [GITHUB, GITEE, GITCODE, GITLAB, OTHER]
"""list[str]: Platform tags that may carry an authentication configuration."""

GITHUB_PROXY_HOSTS = ("gh-proxy.com", "ghproxy.net", "ghproxy.com")
"""tuple[str, ...]: GitHub mirror hosts that prefix the original URL."""

GITCODE_HOSTS = ("gitcode.net", "gitcode.com")
"""tuple[str, ...]: Hostnames identifying the GitCode platform."""

# --- Git / Logic Constants ---
DEFAULT_REMOTE = "origin"
"""str: The remote every push and pull targets unless configured otherwise."""

NO_BRANCH = "no-branch"
"""str: Branch sentinel for a repository without a checked-out branch."""

EMPTY_REPO = "empty-repo"
"""str: Branch sentinel for a repository whose state could not be read."""

GIT_DIR_NAME = ".git"

SYNC_IGNORE = [
    ".git",
    "node_modules",
    "__pycache__",
    ".venv",
    "venv",
    "env",
    ".env",
    "dist",
    "build",
    ".next",
    ".nuxt",
    ".cache",
    "coverage",
    ".nyc_output",
    ".idea",
    ".vscode",
    ".vs",
    "*.pyc",
    ".DS_Store",
    "Thumbs.db",
]
"""
list[str]: Entry names never copied from a main repository into a subordinate.
Entries starting with '*' match by suffix.
"""

SSH_KEY_CANDIDATES = ["id_ed25519", "id_rsa"]
"""list[str]: Private key names probed (in order) under ~/.ssh."""

# --- Commit Summary Labels ---
LABEL_MODIFIED = "修改"
LABEL_ADDED = "新增"
LABEL_DELETED = "删除"
LABEL_LINES = "行"
