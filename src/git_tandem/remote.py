"""Remote URL classification and rewriting.

``classify`` tags a remote URL with its hosting platform; ``transform_url``
rewrites a URL for a platform's auth policy (HTTPS to SSH, embedded token,
GitHub mirror prefix). Both are pure functions.
"""

import re

from .config import PlatformAuthConfig
from .constants import (
    GITCODE_HOSTS,
    GITEE,
    GITCODE,
    GITHUB,
    GITHUB_PROXY_HOSTS,
    GITLAB,
    OTHER,
    UNKNOWN,
)

_HTTP_URL = re.compile(r"^https?://(?:www\.)?([^/]+)/(.+)$")
_HTTPS_URL = re.compile(r"^https://([^/]+)/(.+)$")
_CREDENTIALS = re.compile(r"^(https?://)[^/@]+@")


def classify(url: str) -> str:
    """Determines the hosting platform of a remote URL.

    Matching is a case-insensitive substring test against the whole URL, so
    mirror-prefixed URLs (``https://gh-proxy.com/https://github.com/...``) are
    still recognized.

    Args:
        url (str): The remote URL (HTTPS, SSH or mirror-prefixed).

    Returns:
        str: One of GitHub, Gitee, GitCode, GitLab, Other or Unknown.
    """
    if not url:
        return UNKNOWN
    lower = url.lower()
    if any(host in lower for host in GITHUB_PROXY_HOSTS):
        return GITHUB
    if "github.com" in lower or "github.io" in lower:
        return GITHUB
    if "gitee.com" in lower:
        return GITEE
    if any(host in lower for host in GITCODE_HOSTS):
        return GITCODE
    if "gitlab.com" in lower or "gitlab.io" in lower:
        return GITLAB
    return OTHER


def normalize_remote(url: str | None) -> str:
    """Trims whitespace and a single trailing slash for remote comparison."""
    url = (url or "").strip()
    if url.endswith("/"):
        url = url[:-1]
    return url


def same_remote(first: str | None, second: str | None) -> bool:
    """True when both URLs are non-empty and equal after normalization."""
    a, b = normalize_remote(first), normalize_remote(second)
    return bool(a and b and a == b)


def is_github_mirror(proxy_url: str) -> bool:
    """True when ``proxy_url`` points at a known GitHub mirror host."""
    lower = proxy_url.lower()
    return "ghproxy" in lower or any(host in lower for host in GITHUB_PROXY_HOSTS)


def to_ssh(url: str) -> str:
    """Rewrites an HTTP(S) URL to ``git@host:path.git``; other forms pass through."""
    if not url.startswith(("http://", "https://")):
        return url
    match = _HTTP_URL.match(url)
    if not match:
        return url
    host, path = match.group(1), match.group(2)
    if path.endswith(".git"):
        path = path[:-4]
    return f"git@{host}:{path}.git"


def transform_url(url: str, config: PlatformAuthConfig | None) -> str:
    """Rewrites a remote URL according to a platform's auth policy.

    Steps, each applied only when its precondition holds:

    1. SSH auth: HTTP(S) URLs become ``git@host:path.git``.
    2. Password auth with a token: HTTPS URLs embed ``user:token@``
       (user defaults to 'token').
    3. Proxy enabled with a GitHub mirror: HTTPS URLs are prefixed with the
       mirror URL unless already prefixed.

    Args:
        url (str): The original remote URL.
        config (PlatformAuthConfig | None): The platform's auth config.

    Returns:
        str: The rewritten URL (unchanged when no step applies).
    """
    if not url or config is None:
        return url

    if config.auth_type == "ssh":
        url = to_ssh(url)

    if config.token and url.startswith("https://"):
        match = _HTTPS_URL.match(url)
        if match:
            host, path = match.group(1), match.group(2)
            username = config.username or "token"
            url = f"https://{username}:{config.token}@{host}/{path}"

    proxy = config.proxy
    if proxy and url.startswith("https://") and is_github_mirror(proxy):
        if not url.startswith(proxy):
            prefix = proxy[:-1] if proxy.endswith("/") else proxy
            url = f"{prefix}/{url}"

    return url


def redact_url(url: str) -> str:
    """Masks embedded credentials so a URL can be logged."""
    return _CREDENTIALS.sub(r"\1***@", url)


def repo_name_from_url(url: str) -> str:
    """Derives a working-copy folder name from a remote URL."""
    tail = re.split(r"[/:]", normalize_remote(url))[-1]
    return tail[:-4] if tail.endswith(".git") else tail
