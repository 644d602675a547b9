"""Tests for the configuration management subsystem."""

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from git_tandem.config import Config, PlatformAuthConfig, parse_size


@pytest.fixture(autouse=True)
def clear_config_cache() -> Any:
    """Ensures every test starts with a clean config cache."""
    Config._global_cache = None
    yield
    Config._global_cache = None


def test_config_defaults() -> None:
    """Verifies that the configuration initializes with sensible defaults."""
    conf = Config()
    assert conf.core.remote_name == "origin"
    assert conf.limits.max_log_size == 5 * 1024 * 1024
    assert conf.sync.ignore == []
    assert conf.sync.default_message == "Update"
    assert conf.platforms == {}


def test_config_load_merges_layers(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies the cascading merge logic (Defaults -> Global -> Local).

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        mocker (MagicMock): Pytest fixture for mocking.
    """
    global_config_path = tmp_path / "global_config.toml"
    global_config_path.write_text(
        '[core]\nremote_name = "upstream"\n'
        '[sync]\nignore = ["*.log"]\n'
        "[platforms.GitHub]\n"
        'auth_type = "ssh"\nusername = "alice"\nemail = "a@x.io"\n'
        'ssh_key_path = "~/.ssh/id_ed25519.pub"\n'
    )

    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / "tandem.toml").write_text(
        '[sync]\nignore = ["*.tmp", "*.log"]\ndefault_message = "Sync"\n'
        "[platforms.Gitee]\n"
        'auth_type = "password"\npassword = "T"\n'
    )

    mocker.patch("git_tandem.config.CONFIG_FILE", global_config_path)

    conf = Config.load(repo)

    assert conf.core.remote_name == "upstream"
    assert conf.sync.ignore == ["*.log", "*.tmp"]
    assert conf.sync.default_message == "Sync"
    assert conf.platforms["GitHub"].username == "alice"
    assert conf.platforms["Gitee"].token == "T"

    # The cached global layer is not polluted by the local file.
    assert Config.load().sync.ignore == ["*.log"]
    assert "Gitee" not in Config.load().platforms


def test_config_warns_on_unknown_keys(
    tmp_path: Path, mocker: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        "[core]\nbogus = 1\n"
        "[platforms.Bitbucket]\nusername = 'x'\n"
        "[platforms.GitLab]\nauth_type = 'kerberos'\ncolour = 'red'\n"
    )
    mocker.patch("git_tandem.config.CONFIG_FILE", config_path)

    conf = Config.load()

    assert "Unknown config keys in [core]: bogus" in caplog.text
    assert "Unknown platform [platforms.Bitbucket]" in caplog.text
    assert "colour" in caplog.text
    assert conf.platforms["GitLab"].auth_type == "ssh"
    assert "Bitbucket" not in conf.platforms


def test_config_syntax_error_is_logged(
    tmp_path: Path, mocker: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("[core\nremote_name = ")
    mocker.patch("git_tandem.config.CONFIG_FILE", config_path)

    conf = Config.load()

    assert conf.core.remote_name == "origin"
    assert "Config syntax error" in caplog.text


@pytest.mark.parametrize(
    ("value", "expected"),
    [(1024, 1024), ("5mb", 5 * 1024**2), ("1.5 KB", 1536), ("2g", 2 * 1024**3)],
)
def test_parse_size(value: int | str, expected: int) -> None:
    assert parse_size(value) == expected


def test_parse_size_invalid_falls_back(
    tmp_path: Path, mocker: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text('[limits]\nmax_log_size = "lots"\n')
    mocker.patch("git_tandem.config.CONFIG_FILE", config_path)

    assert Config.load().limits.max_log_size == 5 * 1024 * 1024
    assert "Falling back to default" in caplog.text


def test_platform_auth_returns_copy() -> None:
    conf = Config(platforms={"GitHub": PlatformAuthConfig(username="alice")})

    auth = conf.platform_auth("GitHub")
    auth.username = "mallory"

    assert conf.platforms["GitHub"].username == "alice"
    assert conf.platform_auth("Gitee") == PlatformAuthConfig()


def test_auth_accessors_follow_mode() -> None:
    """Stale fields from the inactive auth mode are hidden by the accessors."""
    ssh = PlatformAuthConfig(auth_type="ssh", password="old", ssh_key_path="~/.ssh/k")
    assert ssh.ssh_key == "~/.ssh/k"
    assert ssh.token is None

    password = PlatformAuthConfig(auth_type="password", password="T", ssh_key_path="~/.ssh/k")
    assert password.ssh_key is None
    assert password.token == "T"

    assert PlatformAuthConfig(proxy_url="http://p").proxy is None
    assert PlatformAuthConfig(use_proxy=True, proxy_url="http://p").proxy == "http://p"


def test_with_identity_from() -> None:
    main = PlatformAuthConfig(username="alice", email="a@x.io")

    borrowed = PlatformAuthConfig(auth_type="password").with_identity_from(main)
    assert (borrowed.username, borrowed.email) == ("alice", "a@x.io")
    assert borrowed.auth_type == "password"

    own = PlatformAuthConfig(username="bob", email="b@x.io").with_identity_from(main)
    assert own.username == "bob"


def test_from_dict_drops_non_scalars() -> None:
    auth = PlatformAuthConfig.from_dict(
        {"username": "alice", "use_proxy": 1, "email": ["a", "b"]}
    )
    assert auth.username == "alice"
    assert auth.use_proxy is True
    assert auth.email == ""
