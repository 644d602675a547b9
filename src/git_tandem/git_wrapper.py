import logging
import re
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME, GIT_DIR_NAME
from .errors import GitError
from .summary import WorkingTreeStatus

logger = logging.getLogger(APP_NAME)


@dataclass
class GitResult:
    """Outcome of a pass-through git command.

    Attributes:
        success (bool): True if git exited with status 0.
        stdout (str): Captured standard output.
        stderr (str): Captured standard error.
        exit_code (int | None): The exit status, or None if git could not start.
    """

    success: bool
    stdout: str
    stderr: str
    exit_code: int | None


@dataclass
class CommitInfo:
    """The subject and author date of a commit."""

    message: str
    date: str


def _execute(
    args: list[str],
    cwd: Path | None = None,
    capture: bool = True,
    env: Mapping[str, str] | None = None,
    strip: bool = True,
) -> str:
    """Runs git and returns its stdout, raising GitError on failure."""
    try:
        res = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=capture,
            text=True,
            check=True,
            env=dict(env) if env is not None else None,
        )
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        # git prints "nothing to commit" on stdout.
        detail = stderr or (e.stdout or "").strip() or str(e)
        raise GitError(detail, returncode=e.returncode, stderr=stderr) from e
    except OSError as e:
        raise GitError(f"Could not run git: {e}") from e
    if not capture:
        return ""
    return res.stdout.strip() if strip else res.stdout.rstrip("\n")


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    This class provides methods to execute common Git operations using `subprocess`,
    abstracting away the command construction and output handling. Network
    operations accept an ``env`` mapping so credentials travel with the call.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.

        Raises:
            ValueError: If the specified path does not contain a .git directory.
        """
        self.path = Path(path)
        if not (self.path / GIT_DIR_NAME).exists():
            raise ValueError(f"Not a git repository: {self.path}")

    @staticmethod
    def is_repo(path: Path) -> bool:
        """True when ``path`` is a directory holding a .git marker."""
        return path.is_dir() and (path / GIT_DIR_NAME).exists()

    def _run(
        self,
        args: list[str],
        capture: bool = True,
        env: Mapping[str, str] | None = None,
        strip: bool = True,
    ) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional):   Whether to capture and return stdout.
                                        Defaults to True.
            env (Optional[Mapping], optional): Environment for the subprocess.
                                               Defaults to the inherited one.
            strip (bool, optional): Strip surrounding whitespace from stdout
                                    (only trailing newlines when False).

        Returns:
            str: The stdout of the command if capture is True, otherwise ''.

        Raises:
            GitError: If the git command returns a non-zero exit code.
        """
        return _execute(args, cwd=self.path, capture=capture, env=env, strip=strip)

    def current_branch(self) -> str:
        """Retrieves the name of the currently checked-out branch.

        Returns:
            str: The name of the current branch ('' when detached).
        """
        return self._run(["branch", "--show-current"])

    def status_porcelain(self) -> list[str]:
        """Returns the porcelain (machine-readable) status of the repository.

        Returns:
            list[str]: A list of status lines returned by `git status --porcelain`.
        """
        output = self._run(["status", "--porcelain"], strip=False)
        return output.splitlines() if output else []

    def status(self) -> WorkingTreeStatus:
        """Parses the porcelain status into a WorkingTreeStatus."""
        return WorkingTreeStatus.from_porcelain(self.status_porcelain())

    def add_all(self) -> None:
        """
        Stages all changes (modified, deleted, and untracked files)
        in the working directory.
        """
        self._run(["add", "."], capture=False)

    def commit(self, message: str) -> None:
        """Creates a new commit with the provided message.

        Args:
            message (str): The commit message.

        Raises:
            GitError: If git rejects the commit (e.g. nothing to commit).
        """
        self._run(["commit", "-m", message])

    def set_identity(self, username: str | None, email: str | None) -> None:
        """Writes user.name / user.email to the repository's local config."""
        if username:
            self._run(["config", "user.name", username])
        if email:
            self._run(["config", "user.email", email])

    def remote_urls(self) -> list[tuple[str, str]]:
        """Lists configured remotes as (name, url) pairs in `git remote -v` order.

        The fetch URL is preferred; the push URL is used when no fetch URL is set.
        """
        output = self._run(["remote", "-v"])
        remotes: dict[str, dict[str, str]] = {}
        for line in output.splitlines():
            parts = line.split()
            if len(parts) < 2:
                continue
            kind = parts[2].strip("()") if len(parts) > 2 else "fetch"
            remotes.setdefault(parts[0], {})[kind] = parts[1]
        return [
            (name, (urls.get("fetch") or urls.get("push") or "").strip())
            for name, urls in remotes.items()
        ]

    def first_remote_url(self) -> str:
        """Returns the first remote's URL, or '' when none is configured or git fails."""
        try:
            remotes = self.remote_urls()
        except Exception as e:
            logger.debug(f"Could not read remotes for {self.path.name}: {e}")
            return ""
        return remotes[0][1] if remotes else ""

    def push(
        self,
        remote: str,
        branch: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Pushes to a remote (the upstream of the current branch when no branch is given)."""
        cmd = ["push", remote]
        if branch:
            cmd.append(branch)
        self._run(cmd, env=env)

    def pull(
        self,
        remote: str,
        branch: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Pulls from a remote, merging into the current branch."""
        cmd = ["pull", remote]
        if branch:
            cmd.append(branch)
        self._run(cmd, env=env)

    @classmethod
    def clone(
        cls, url: str, target: Path, env: Mapping[str, str] | None = None
    ) -> "GitRepo":
        """Clones ``url`` into ``target`` and returns the new repository."""
        _execute(["clone", url, str(target)], env=env)
        return cls(target)

    def stash_list(self) -> list[str]:
        """Returns the stash entries, newest first."""
        output = self._run(["stash", "list"])
        return output.splitlines() if output else []

    def stash_push(self, message: str = "") -> None:
        """Stashes working-tree changes under a message."""
        self._run(["stash", "push", "-m", message or "stash"], capture=False)

    def stash_pop(self) -> None:
        """Restores the most recent stash entry."""
        self._run(["stash", "pop"], capture=False)

    def last_commit(self) -> CommitInfo | None:
        """Returns the subject and date of HEAD, or None for an unborn branch."""
        try:
            output = self._run(["log", "-1", "--format=%s%n%aI"])
        except GitError as e:
            logger.debug(f"No commits in {self.path.name}: {e}")
            return None
        if not output:
            return None
        message, _, date = output.partition("\n")
        return CommitInfo(message=message, date=date)

    def run_raw(self, command: str, args: list[str]) -> GitResult:
        """Runs an arbitrary git subcommand without raising.

        Args:
            command (str): The git subcommand (e.g., 'log', 'checkout').
            args (list[str]): Additional arguments.

        Returns:
            GitResult: The structured outcome.
        """
        try:
            res = subprocess.run(
                ["git", command, *args],
                cwd=self.path,
                capture_output=True,
                text=True,
            )
        except OSError as e:
            return GitResult(success=False, stdout="", stderr=str(e), exit_code=None)
        return GitResult(
            success=res.returncode == 0,
            stdout=res.stdout,
            stderr=res.stderr,
            exit_code=res.returncode,
        )

    def staged_shortstat(self) -> tuple[int, int, int]:
        """Retrieves the shortstat of the staged change set.

        Executes `git diff --cached --shortstat` to determine the number of files
        changed, insertions, and deletions about to be committed.

        Returns:
            tuple[int, int, int]: A tuple containing (files_changed, insertions, deletions).
                                  Returns (0, 0, 0) if there are no differences or parsing fails.
        """
        try:
            output = self._run(["diff", "--cached", "--shortstat"])
            if not output:
                return 0, 0, 0

            files_match = re.search(r"(\d+)\s+file", output)
            insertions_match = re.search(r"(\d+)\s+insertion", output)
            deletions_match = re.search(r"(\d+)\s+deletion", output)

            files = int(files_match.group(1)) if files_match else 0
            insertions = int(insertions_match.group(1)) if insertions_match else 0
            deletions = int(deletions_match.group(1)) if deletions_match else 0

            return files, insertions, deletions
        except Exception as e:
            logger.warning(f"Failed to parse staged shortstat for {self.path.name}: {e}")
            return 0, 0, 0
