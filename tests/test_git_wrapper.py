import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_tandem.errors import GitError
from git_tandem.git_wrapper import CommitInfo, GitRepo


@pytest.fixture
def repo(tmp_path: Path) -> GitRepo:
    (tmp_path / ".git").mkdir()
    return GitRepo(tmp_path)


def test_init_rejects_non_repo(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        GitRepo(tmp_path)
    assert not GitRepo.is_repo(tmp_path)


def test_run_raises_git_error_with_stderr(mocker: MagicMock, repo: GitRepo) -> None:
    """Verifies that a failing git call surfaces its verbatim stderr and exit code."""
    mocker.patch(
        "subprocess.run",
        side_effect=subprocess.CalledProcessError(
            128, ["git", "push"], output="", stderr="fatal: repository not found\n"
        ),
    )

    with pytest.raises(GitError) as exc:
        repo.push("origin")

    assert exc.value.returncode == 128
    assert exc.value.stderr == "fatal: repository not found"
    assert str(exc.value) == "fatal: repository not found"


def test_commit_failure_uses_stdout(mocker: MagicMock, repo: GitRepo) -> None:
    """git reports 'nothing to commit' on stdout, which becomes the message."""
    mocker.patch(
        "subprocess.run",
        side_effect=subprocess.CalledProcessError(
            1, ["git", "commit"], output="nothing to commit, working tree clean\n", stderr=""
        ),
    )

    with pytest.raises(GitError, match="nothing to commit"):
        repo.commit("msg")


def test_commit_runs_plain_commit(mocker: MagicMock, repo: GitRepo) -> None:
    """Commits keep hooks enabled and pass only the message."""
    mock_run = mocker.patch("subprocess.run")
    mock_run.return_value.stdout = ""

    repo.commit("release [1 修改]")

    assert mock_run.call_args.args[0] == ["git", "commit", "-m", "release [1 修改]"]


def test_status_reads_whole_tree(mocker: MagicMock, repo: GitRepo) -> None:
    mock_run = mocker.patch("subprocess.run")
    mock_run.return_value.stdout = ""

    assert repo.status_porcelain() == []
    assert mock_run.call_args.args[0] == ["git", "status", "--porcelain"]


def test_missing_git_binary(mocker: MagicMock, repo: GitRepo) -> None:
    mocker.patch("subprocess.run", side_effect=FileNotFoundError("git"))
    with pytest.raises(GitError, match="Could not run git"):
        repo.current_branch()


def test_push_passes_env(mocker: MagicMock, repo: GitRepo) -> None:
    mock_run = mocker.patch("subprocess.run")
    mock_run.return_value.stdout = ""

    repo.push("origin", "main", env={"HTTPS_PROXY": "http://p:1"})

    args, kwargs = mock_run.call_args
    assert args[0] == ["git", "push", "origin", "main"]
    assert kwargs["env"] == {"HTTPS_PROXY": "http://p:1"}
    assert kwargs["cwd"] == repo.path


def test_status_keeps_leading_space(mocker: MagicMock, repo: GitRepo) -> None:
    """The first porcelain line must keep its leading status column."""
    mock_run = mocker.patch("subprocess.run")
    mock_run.return_value.stdout = " M a.py\n?? b.py\n"

    status = repo.status()

    assert status.modified == ["a.py"]
    assert status.untracked == ["b.py"]


def test_remote_urls_parsing(mocker: MagicMock, repo: GitRepo) -> None:
    mocker.patch.object(
        repo,
        "_run",
        return_value=(
            "origin\thttps://github.com/u/r.git (fetch)\n"
            "origin\thttps://github.com/u/r.git (push)\n"
            "mirror\tgit@gitee.com:u/r.git (push)"
        ),
    )

    assert repo.remote_urls() == [
        ("origin", "https://github.com/u/r.git"),
        ("mirror", "git@gitee.com:u/r.git"),
    ]
    assert repo.first_remote_url() == "https://github.com/u/r.git"


def test_first_remote_url_is_best_effort(mocker: MagicMock, repo: GitRepo) -> None:
    mocker.patch.object(repo, "_run", side_effect=GitError("boom"))
    assert repo.first_remote_url() == ""


def test_set_identity_skips_blank(mocker: MagicMock, repo: GitRepo) -> None:
    mock_run = mocker.patch.object(repo, "_run")
    repo.set_identity("alice", "")
    mock_run.assert_called_once_with(["config", "user.name", "alice"])


def test_last_commit(mocker: MagicMock, repo: GitRepo) -> None:
    mock_run = mocker.patch.object(repo, "_run")
    mock_run.return_value = "Fix bug\n2026-01-02T03:04:05+00:00"
    assert repo.last_commit() == CommitInfo("Fix bug", "2026-01-02T03:04:05+00:00")

    mock_run.side_effect = GitError("does not have any commits yet")
    assert repo.last_commit() is None


def test_stash_commands(mocker: MagicMock, repo: GitRepo) -> None:
    mock_run = mocker.patch.object(repo, "_run")
    repo.stash_push()
    mock_run.assert_called_with(["stash", "push", "-m", "stash"], capture=False)

    mock_run.return_value = "stash@{0}: On main: wip"
    assert repo.stash_list() == ["stash@{0}: On main: wip"]


def test_run_raw_never_raises(mocker: MagicMock, repo: GitRepo) -> None:
    mock_run = mocker.patch("subprocess.run")
    mock_run.return_value = MagicMock(returncode=1, stdout="", stderr="unknown option")

    result = repo.run_raw("log", ["--bogus"])

    assert not result.success
    assert result.exit_code == 1
    assert result.stderr == "unknown option"

    mock_run.side_effect = OSError("no git")
    assert repo.run_raw("log", []).exit_code is None


def test_clone_targets_directory(mocker: MagicMock, tmp_path: Path) -> None:
    target = tmp_path / "clone"

    def fake_run(cmd, **kwargs):
        (target / ".git").mkdir(parents=True)
        return MagicMock(stdout="")

    mock_run = mocker.patch("subprocess.run", side_effect=fake_run)

    cloned = GitRepo.clone("git@github.com:u/r.git", target, env={"A": "1"})

    assert cloned.path == target
    assert mock_run.call_args.args[0] == ["git", "clone", "git@github.com:u/r.git", str(target)]


def test_staged_shortstat_regex_parsing(mocker: MagicMock, repo: GitRepo) -> None:
    """Verifies that shortstat parses correctly, handling missing clauses."""
    mock_run = mocker.patch.object(repo, "_run")

    mock_run.return_value = " 3 files changed, 25 insertions(+), 4 deletions(-)"
    assert repo.staged_shortstat() == (3, 25, 4)

    mock_run.return_value = " 1 file changed, 10 insertions(+)"
    assert repo.staged_shortstat() == (1, 10, 0)

    mock_run.return_value = ""
    assert repo.staged_shortstat() == (0, 0, 0)

    mock_run.side_effect = GitError("bad revision")
    assert repo.staged_shortstat() == (0, 0, 0)
