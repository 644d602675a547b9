"""Main -> subordinate repository reconciliation.

A sync always commits and pushes the main repository first. The subordinate
is then either pulled (both sides share one remote) or rebuilt from the main
working tree by an ignore-aware mirror copy, committed and pushed to its own
remote.

Failures stop the sequence and are returned as data. Nothing is rolled back:
a mirror that fails after clearing the subordinate leaves that tree modified,
which ``SyncResult.tree_modified`` reports.
"""

import logging
import shutil
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .config import PlatformAuthConfig
from .constants import APP_NAME, DEFAULT_REMOTE, GIT_DIR_NAME, SYNC_IGNORE
from .credentials import AUTH_LOCK, authenticated
from .errors import (
    CommitError,
    ConfigError,
    FilesystemError,
    GitError,
    RemoteError,
    TandemError,
    ValidationError,
)
from .git_wrapper import GitRepo
from .remote import normalize_remote, redact_url, same_remote
from .summary import build_commit_message, summarize

logger = logging.getLogger(APP_NAME)


class SyncStage(str, Enum):
    """The step a sync reached (the failing step when it did not finish)."""

    UNSTARTED = "unstarted"
    STAGING_MAIN = "staging-main"
    COMMITTING_MAIN = "committing-main"
    PUSHING_MAIN = "pushing-main"
    PULLING_SUBORDINATE = "pulling-subordinate"
    MIRRORING = "mirroring"
    COMMITTING_SUBORDINATE = "committing-subordinate"
    PUSHING_SUBORDINATE = "pushing-subordinate"
    DONE = "done"


@dataclass
class SyncResult:
    """Outcome of reconciling one subordinate with its main.

    Attributes:
        main (Path): The main repository root.
        subordinate (Path): The subordinate repository root.
        success (bool): True once every step completed.
        stage (SyncStage): DONE on success, otherwise the step that failed.
        same_remote (bool): True if the fast path (pull) was taken.
        commit_message (str): Message used for the commits, once computed.
        tree_modified (bool): True if the subordinate working tree was touched.
        error (str | None): The underlying error message on failure.
        error_kind (str | None): The error class name on failure.
    """

    main: Path
    subordinate: Path
    success: bool = False
    stage: SyncStage = SyncStage.UNSTARTED
    same_remote: bool = False
    commit_message: str = ""
    tree_modified: bool = False
    error: str | None = None
    error_kind: str | None = None

    def fail(self, exc: Exception) -> "SyncResult":
        self.success = False
        self.error = str(exc)
        self.error_kind = type(exc).__name__
        return self


@dataclass
class PublishedMain:
    """The main repository after its commit and push."""

    repo: GitRepo
    remote_url: str
    commit_message: str


@dataclass
class SubordinateTarget:
    """A subordinate opened ahead of publishing the main."""

    repo: GitRepo
    remote_url: str
    auth: PlatformAuthConfig | None


def should_ignore(name: str, patterns: Iterable[str] = SYNC_IGNORE) -> bool:
    """Decides whether an entry name is excluded from mirroring.

    A pattern starting with '*' matches by suffix. Any other pattern matches
    the whole name or a '.<pattern>' suffix. Comparison is case-insensitive.

    Args:
        name (str): A file or directory name (not a path).
        patterns (Iterable[str]): The ignore set.

    Returns:
        bool: True if the entry must not be copied.
    """
    if not name:
        return True
    lower = name.lower()
    for pattern in patterns:
        pattern = pattern.lower()
        if pattern.startswith("*"):
            if lower.endswith(pattern[1:]):
                return True
        elif lower == pattern or lower.endswith(f".{pattern}"):
            return True
    return False


def clear_worktree(root: Path) -> int:
    """Deletes every entry directly under ``root`` except the .git directory.

    Returns:
        int: The number of top-level entries removed.
    """
    removed = 0
    for entry in list(root.iterdir()):
        if entry.name == GIT_DIR_NAME:
            continue
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
        removed += 1
    return removed


def mirror_tree(src: Path, dest: Path, patterns: Iterable[str] = SYNC_IGNORE) -> int:
    """Recursively copies ``src`` into ``dest``, skipping ignored names at every depth.

    Args:
        src (Path): Source directory.
        dest (Path): Destination directory (created if missing).
        patterns (Iterable[str]): The ignore set.

    Returns:
        int: The number of files copied.
    """
    patterns = list(patterns)
    dest.mkdir(parents=True, exist_ok=True)
    copied = 0
    for entry in sorted(src.iterdir()):
        if should_ignore(entry.name, patterns):
            continue
        target = dest / entry.name
        if entry.is_dir():
            copied += mirror_tree(entry, target, patterns)
        else:
            shutil.copy2(entry, target)
            copied += 1
    return copied


def resolve_identity(
    sub_auth: PlatformAuthConfig | None, main_auth: PlatformAuthConfig | None
) -> tuple[str, str]:
    """Picks the subordinate commit identity, falling back to the main's.

    Raises:
        ConfigError: If neither config carries both username and email.
    """
    for auth in (sub_auth, main_auth):
        if auth is not None and auth.has_identity:
            return auth.username, auth.email
    raise ConfigError("platform username/email not configured")


class RepositorySyncEngine:
    """Reconciles subordinate repositories with their main.

    Attributes:
        remote_name (str): Remote pushed to and pulled from.
        ignore (list[str]): Names/patterns excluded from mirroring.
        default_message (str): Message used when the caller gives none.
    """

    def __init__(
        self,
        remote_name: str = DEFAULT_REMOTE,
        extra_ignore: Iterable[str] = (),
        default_message: str = "Update",
    ):
        self.remote_name = remote_name
        self.ignore = list(dict.fromkeys([*SYNC_IGNORE, *extra_ignore]))
        self.default_message = default_message

    def sync(
        self,
        main_path: Path,
        subordinate_path: Path,
        message: str,
        main_auth: PlatformAuthConfig | None = None,
        sub_auth: PlatformAuthConfig | None = None,
    ) -> SyncResult:
        """Commits and pushes the main repository, then reconciles one subordinate.

        Args:
            main_path (Path): The main repository root.
            subordinate_path (Path): The subordinate repository root.
            message (str): The user's commit message.
            main_auth (PlatformAuthConfig | None): Auth for the main's remote.
            sub_auth (PlatformAuthConfig | None): Auth for the subordinate's remote.

        Returns:
            SyncResult: The outcome; never raises for operational failures.
        """
        return self.sync_many(main_path, [(subordinate_path, sub_auth)], message, main_auth)[0]

    def sync_many(
        self,
        main_path: Path,
        targets: list[tuple[Path, PlatformAuthConfig | None]],
        message: str,
        main_auth: PlatformAuthConfig | None = None,
    ) -> list[SyncResult]:
        """Publishes the main once, then reconciles each subordinate in order.

        Every subordinate is opened and its remote read before the main is
        touched. A target that is not a working copy fails at the UNSTARTED
        stage, and when no target is usable the main is not published. If
        publishing the main fails, every remaining target reports that failure.

        Args:
            main_path (Path): The main repository root.
            targets (list[tuple[Path, PlatformAuthConfig | None]]): Subordinates
                with their auth configs.
            message (str): The user's commit message.
            main_auth (PlatformAuthConfig | None): Auth for the main's remote.

        Returns:
            list[SyncResult]: One result per target, in order.
        """
        results = [SyncResult(main=main_path, subordinate=path) for path, _ in targets]
        if not results:
            return results

        with AUTH_LOCK:
            ready: list[tuple[SyncResult, SubordinateTarget]] = []
            for result, (path, sub_auth) in zip(results, targets):
                try:
                    ready.append((result, self.open_subordinate(path, sub_auth)))
                except ValidationError as e:
                    result.fail(e)
                    logger.error(f"SYNC FAILED {main_path.name} -> {path.name}: {e}")
            if not ready:
                return results

            pending = [result for result, _ in ready]
            try:
                published = self.publish_main(main_path, message, main_auth, pending)
            except (TandemError, OSError) as e:
                logger.error(f"SYNC FAILED {main_path.name}: {e}")
                for result in pending:
                    result.fail(e)
                return results

            for result, target in ready:
                result.commit_message = published.commit_message
                try:
                    self.reconcile(published, target, main_auth, result)
                except (TandemError, OSError) as e:
                    result.fail(e)
                    logger.error(
                        f"SYNC FAILED {main_path.name} -> {target.repo.path.name} "
                        f"at {result.stage.value}: {e}"
                    )
                    if result.tree_modified:
                        logger.warning(
                            f"{target.repo.path.name}: working tree was modified before "
                            "the failure and may be inconsistent."
                        )
        return results

    def open_subordinate(
        self, path: Path, sub_auth: PlatformAuthConfig | None
    ) -> SubordinateTarget:
        """Opens a subordinate working copy and reads its first remote.

        Raises:
            ValidationError: If ``path`` is not a git working copy.
        """
        try:
            repo = GitRepo(path)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        return SubordinateTarget(repo=repo, remote_url=repo.first_remote_url(), auth=sub_auth)

    def publish_main(
        self,
        main_path: Path,
        message: str,
        main_auth: PlatformAuthConfig | None,
        results: list[SyncResult],
    ) -> PublishedMain:
        """Stages, commits (with change summary) and pushes the main repository.

        Raises:
            ValidationError: If ``main_path`` is not a git working copy.
            CommitError: If the commit is rejected.
            RemoteError: If the push fails.
        """

        def advance(stage: SyncStage) -> None:
            for r in results:
                r.stage = stage

        try:
            repo = GitRepo(main_path)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        remote_url = normalize_remote(repo.first_remote_url())

        advance(SyncStage.STAGING_MAIN)
        repo.add_all()
        status = repo.status()
        _, insertions, deletions = repo.staged_shortstat()
        suffix = summarize(status, (insertions, deletions))
        commit_message = build_commit_message(message, suffix, self.default_message)

        if main_auth is not None and main_auth.has_identity:
            repo.set_identity(main_auth.username, main_auth.email)

        advance(SyncStage.COMMITTING_MAIN)
        try:
            repo.commit(commit_message)
        except GitError as e:
            raise CommitError(str(e)) from e
        logger.info(f"COMMITTED {main_path.name}: {commit_message}")

        advance(SyncStage.PUSHING_MAIN)
        with authenticated(main_auth) as env:
            try:
                repo.push(self.remote_name, env=env)
            except GitError as e:
                raise RemoteError(str(e)) from e
        logger.info(f"PUSHED {main_path.name} -> {redact_url(remote_url)}")

        return PublishedMain(repo=repo, remote_url=remote_url, commit_message=commit_message)

    def reconcile(
        self,
        published: PublishedMain,
        target: SubordinateTarget,
        main_auth: PlatformAuthConfig | None,
        result: SyncResult,
    ) -> SyncResult:
        """Brings one subordinate in line with an already-published main."""
        sub, sub_url, sub_auth = target.repo, target.remote_url, target.auth
        subordinate_path = sub.path
        result.same_remote = same_remote(published.remote_url, sub_url)

        if result.same_remote:
            result.stage = SyncStage.PULLING_SUBORDINATE
            with authenticated(sub_auth) as env:
                try:
                    sub.pull(self.remote_name, env=env)
                except GitError as e:
                    raise RemoteError(str(e)) from e
            logger.info(f"PULLED {subordinate_path.name} (shared remote)")
            result.stage = SyncStage.DONE
            result.success = True
            return result

        result.stage = SyncStage.MIRRORING
        result.tree_modified = True
        try:
            clear_worktree(subordinate_path)
            copied = mirror_tree(published.repo.path, subordinate_path, self.ignore)
        except OSError as e:
            raise FilesystemError(f"Mirroring into {subordinate_path} failed: {e}") from e
        logger.info(f"MIRRORED {published.repo.path.name} -> {subordinate_path.name} ({copied} files)")

        result.stage = SyncStage.COMMITTING_SUBORDINATE
        sub.add_all()
        username, email = resolve_identity(sub_auth, main_auth)
        sub.set_identity(username, email)
        try:
            sub.commit(published.commit_message)
        except GitError as e:
            raise CommitError(str(e)) from e

        result.stage = SyncStage.PUSHING_SUBORDINATE
        with authenticated(sub_auth) as env:
            try:
                sub.push(self.remote_name, env=env)
            except GitError as e:
                raise RemoteError(str(e)) from e
        logger.info(f"PUSHED {subordinate_path.name} -> {redact_url(normalize_remote(sub_url))}")

        result.stage = SyncStage.DONE
        result.success = True
        return result
