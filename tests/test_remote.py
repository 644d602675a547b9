"""Tests for remote URL classification and rewriting."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from git_tandem.config import PlatformAuthConfig
from git_tandem.remote import (
    classify,
    normalize_remote,
    redact_url,
    repo_name_from_url,
    same_remote,
    to_ssh,
    transform_url,
)

segment = st.text(
    alphabet=st.characters(whitelist_categories=("Ll", "Nd")), min_size=1, max_size=12
)


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://github.com/u/r.git", "GitHub"),
        ("git@github.com:u/r.git", "GitHub"),
        ("https://gh-proxy.com/https://github.com/u/r", "GitHub"),
        ("https://GITEE.com/u/r", "Gitee"),
        ("git@gitcode.net:u/r.git", "GitCode"),
        ("https://gitcode.com/u/r", "GitCode"),
        ("https://gitlab.com/u/r", "GitLab"),
        ("https://git.example.org/u/r", "Other"),
        ("", "Unknown"),
    ],
)
def test_classify(url: str, expected: str) -> None:
    """Verifies platform tagging for common URL shapes."""
    assert classify(url) == expected


def test_transform_ssh_rewrites_https() -> None:
    config = PlatformAuthConfig(auth_type="ssh")
    assert transform_url("https://github.com/u/r", config) == "git@github.com:u/r.git"
    assert transform_url("https://www.github.com/u/r.git", config) == "git@github.com:u/r.git"


def test_transform_password_embeds_token() -> None:
    """Verifies the token is embedded, with 'token' as the fallback user."""
    config = PlatformAuthConfig(auth_type="password", username="alice", password="T")
    assert transform_url("https://gitee.com/u/r.git", config) == "https://alice:T@gitee.com/u/r.git"

    anonymous = PlatformAuthConfig(auth_type="password", password="T")
    assert transform_url("https://gitee.com/u/r.git", anonymous) == "https://token:T@gitee.com/u/r.git"


def test_transform_ignores_stale_fields_from_other_mode() -> None:
    """A password left over in ssh mode must never reach the URL."""
    config = PlatformAuthConfig(auth_type="ssh", password="stale", ssh_key_path="~/.ssh/k")
    result = transform_url("https://github.com/u/r", config)
    assert "stale" not in result
    assert result == "git@github.com:u/r.git"


def test_transform_github_mirror_prefix() -> None:
    config = PlatformAuthConfig(
        auth_type="password", use_proxy=True, proxy_url="https://gh-proxy.com/"
    )
    url = "https://github.com/u/r.git"
    assert transform_url(url, config) == "https://gh-proxy.com/https://github.com/u/r.git"

    already = "https://gh-proxy.com/https://github.com/u/r.git"
    assert transform_url(already, config) == already


def test_transform_plain_proxy_leaves_url() -> None:
    """A non-mirror proxy is applied through the environment, not the URL."""
    config = PlatformAuthConfig(
        auth_type="password", use_proxy=True, proxy_url="http://127.0.0.1:7890"
    )
    assert transform_url("https://github.com/u/r", config) == "https://github.com/u/r"


def test_transform_without_config_is_identity() -> None:
    assert transform_url("https://github.com/u/r", None) == "https://github.com/u/r"
    assert transform_url("", PlatformAuthConfig()) == ""


def test_same_remote_ignores_trailing_slash_and_whitespace() -> None:
    assert same_remote("https://github.com/u/r/", " https://github.com/u/r")
    assert not same_remote("https://github.com/u/r", "https://gitee.com/u/r")
    assert not same_remote("", "")
    assert normalize_remote(None) == ""


def test_redact_url_masks_credentials() -> None:
    assert redact_url("https://alice:T@gitee.com/u/r") == "https://***@gitee.com/u/r"
    assert redact_url("git@github.com:u/r.git") == "git@github.com:u/r.git"


@pytest.mark.parametrize(
    ("url", "name"),
    [
        ("https://github.com/u/project.git", "project"),
        ("git@gitee.com:u/project.git", "project"),
        ("https://gitlab.com/u/project/", "project"),
    ],
)
def test_repo_name_from_url(url: str, name: str) -> None:
    assert repo_name_from_url(url) == name


@given(
    host=segment.filter(lambda s: s != "www"),
    owner=segment,
    repo=segment,
    dotgit=st.booleans(),
)
def test_ssh_transform_shape(host: str, owner: str, repo: str, dotgit: bool) -> None:
    """
    Property: In SSH mode every HTTP(S) URL becomes 'git@host:path.git' with
    exactly one '.git' suffix.
    """
    url = f"https://{host}.com/{owner}/{repo}" + (".git" if dotgit else "")
    result = transform_url(url, PlatformAuthConfig(auth_type="ssh"))
    assert result == f"git@{host}.com:{owner}/{repo}.git"


auth_configs = st.builds(
    PlatformAuthConfig,
    auth_type=st.sampled_from(["ssh", "password"]),
    username=st.sampled_from(["", "alice"]),
    password=st.sampled_from(["", "T0ken"]),
    ssh_key_path=st.sampled_from(["", "~/.ssh/id_ed25519"]),
    use_proxy=st.booleans(),
    proxy_url=st.sampled_from(
        ["", "http://127.0.0.1:7890", "https://gh-proxy.com/", "https://ghproxy.net"]
    ),
)


@given(host=segment, path=segment, config=auth_configs)
def test_ssh_urls_pass_through(host: str, path: str, config: PlatformAuthConfig) -> None:
    """Property: An SSH URL is never rewritten, whatever the auth policy."""
    url = f"git@{host}:{path}.git"
    assert to_ssh(url) == url
    assert transform_url(url, config) == url


@given(url=st.text(max_size=40).filter(lambda s: s.strip() and not s.strip().endswith("/")))
def test_same_remote_is_reflexive_under_trailing_slash(url: str) -> None:
    """Property: A URL matches itself with one trailing slash appended."""
    stripped = url.strip()
    assert same_remote(stripped, stripped + "/") == bool(normalize_remote(stripped))
