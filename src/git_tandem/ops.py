import datetime
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import Config, PlatformAuthConfig
from .constants import APP_NAME
from .credentials import authenticated
from .errors import CommitError, GitError, RemoteError, TandemError
from .fleet import Repository, find_by_name
from .git_wrapper import GitRepo, GitResult
from .remote import classify, redact_url, repo_name_from_url, transform_url
from .summary import build_commit_message, summarize
from .sync import RepositorySyncEngine, SyncResult
from .topology import Role, SyncGroupTopology

logger = logging.getLogger(APP_NAME)

BATCH_OPERATIONS = ("commit", "push", "pull")


@dataclass
class OperationResult:
    """Outcome of a single-repository operation.

    Attributes:
        success (bool): True if the operation completed.
        message (str): A short description of what was done.
        error (str | None): The underlying error message on failure.
        error_kind (str | None): The error class name on failure.
        data (Any): Operation-specific payload (commit message, stash list, path).
    """

    success: bool
    message: str = ""
    error: str | None = None
    error_kind: str | None = None
    data: Any = None

    @classmethod
    def failed(cls, exc: Exception) -> "OperationResult":
        return cls(success=False, error=str(exc), error_kind=type(exc).__name__)


@dataclass
class GroupSyncReport:
    """Outcome of pushing a main repository out to its subordinates.

    Attributes:
        main (str): The main repository name.
        publish (OperationResult | None): Set when the repo was not a main with
            subordinates and a plain commit + push ran instead.
        results (list[SyncResult]): One entry per reconciled subordinate.
        skipped (list[str]): Subordinates not found among registered repositories.
    """

    main: str
    publish: OperationResult | None = None
    results: list[SyncResult] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        if self.publish is not None:
            return self.publish.success
        return all(r.success for r in self.results)


@dataclass
class BatchReport:
    """Per-repository outcomes of a batch operation."""

    operation: str
    results: dict[str, OperationResult] = field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results.values() if r.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded


def commit_repo(
    path: Path,
    message: str | None,
    auth: PlatformAuthConfig | None = None,
    default_message: str = "Update",
) -> OperationResult:
    """Stages everything and commits with a change-summary suffix.

    Args:
        path (Path): The repository root.
        message (str | None): The user's message ('' falls back to the default).
        auth (PlatformAuthConfig | None): Supplies the local commit identity.
        default_message (str): Message used when ``message`` is blank.

    Returns:
        OperationResult: ``data`` holds the full commit message.
    """
    try:
        repo = GitRepo(path)
        if auth is not None and auth.has_identity:
            repo.set_identity(auth.username, auth.email)
        repo.add_all()
        _, insertions, deletions = repo.staged_shortstat()
        full_message = build_commit_message(
            message, summarize(repo.status(), (insertions, deletions)), default_message
        )
        try:
            repo.commit(full_message)
        except GitError as e:
            raise CommitError(str(e)) from e
    except (TandemError, OSError, ValueError) as e:
        logger.error(f"COMMIT FAILED {path.name}: {e}")
        return OperationResult.failed(e)

    logger.info(f"COMMITTED {path.name}: {full_message}")
    return OperationResult(success=True, message=f"Committed: {full_message}", data=full_message)


def _network_op(
    verb: str,
    path: Path,
    auth: PlatformAuthConfig | None,
    remote: str,
    branch: str | None,
) -> OperationResult:
    try:
        repo = GitRepo(path)
        target = branch or repo.current_branch() or None
        with authenticated(auth) as env:
            try:
                getattr(repo, verb)(remote, target, env=env)
            except GitError as e:
                raise RemoteError(str(e)) from e
    except (TandemError, OSError, ValueError) as e:
        logger.error(f"{verb.upper()} FAILED {path.name}: {e}")
        return OperationResult.failed(e)

    logger.info(f"{verb.upper()} {path.name}: {remote}/{target or 'HEAD'}")
    return OperationResult(success=True, message=f"{verb.capitalize()} {remote}/{target or 'HEAD'}")


def push_repo(
    path: Path,
    auth: PlatformAuthConfig | None = None,
    remote: str = "origin",
    branch: str | None = None,
) -> OperationResult:
    """Pushes the current (or given) branch inside an authenticated scope."""
    return _network_op("push", path, auth, remote, branch)


def pull_repo(
    path: Path,
    auth: PlatformAuthConfig | None = None,
    remote: str = "origin",
    branch: str | None = None,
) -> OperationResult:
    """Pulls the current (or given) branch inside an authenticated scope."""
    return _network_op("pull", path, auth, remote, branch)


def commit_and_push(
    path: Path,
    message: str | None,
    auth: PlatformAuthConfig | None = None,
    remote: str = "origin",
    default_message: str = "Update",
) -> OperationResult:
    """Commits then pushes; the push is skipped if the commit fails."""
    committed = commit_repo(path, message, auth, default_message)
    if not committed.success:
        return committed
    pushed = push_repo(path, auth, remote)
    if not pushed.success:
        return pushed
    return OperationResult(
        success=True, message=f"{committed.message}; pushed", data=committed.data
    )


def clone_repo(
    url: str,
    target_dir: Path,
    name: str | None = None,
    auth: PlatformAuthConfig | None = None,
) -> OperationResult:
    """Clones a remote after rewriting its URL for the platform's auth policy.

    Args:
        url (str): The remote URL as entered by the user.
        target_dir (Path): Parent directory for the new working copy.
        name (str | None): Folder name; derived from the URL when omitted.
        auth (PlatformAuthConfig | None): Auth policy of the URL's platform.

    Returns:
        OperationResult: ``data`` holds the new working-copy path.
    """
    target = target_dir / (name or repo_name_from_url(url))
    effective_url = transform_url(url, auth)
    logger.info(f"CLONE {redact_url(effective_url)} -> {target} ({classify(url)})")
    try:
        with authenticated(auth) as env:
            try:
                GitRepo.clone(effective_url, target, env=env)
            except GitError as e:
                raise RemoteError(str(e)) from e
    except (TandemError, OSError, ValueError) as e:
        logger.error(f"CLONE FAILED {redact_url(url)}: {e}")
        return OperationResult.failed(e)
    return OperationResult(success=True, message=f"Cloned into {target}", data=target)


def stash_push(path: Path, message: str = "") -> OperationResult:
    try:
        GitRepo(path).stash_push(message)
    except (TandemError, ValueError) as e:
        return OperationResult.failed(e)
    return OperationResult(success=True, message="Changes stashed")


def stash_pop(path: Path) -> OperationResult:
    try:
        GitRepo(path).stash_pop()
    except (TandemError, ValueError) as e:
        return OperationResult.failed(e)
    return OperationResult(success=True, message="Stash restored")


def stash_list(path: Path) -> OperationResult:
    try:
        entries = GitRepo(path).stash_list()
    except (TandemError, ValueError) as e:
        return OperationResult(
            success=False, error=str(e), error_kind=type(e).__name__, data=[]
        )
    return OperationResult(success=True, data=entries)


def run_git(path: Path, command: str, args: list[str]) -> GitResult:
    """Passes a subcommand straight to git in ``path``."""
    try:
        repo = GitRepo(path)
    except ValueError as e:
        return GitResult(success=False, stdout="", stderr=str(e), exit_code=None)
    return repo.run_raw(command, args)


def sync_group(
    main: Repository,
    repos: list[Repository],
    topology: SyncGroupTopology,
    config: Config,
    message: str | None,
) -> GroupSyncReport:
    """Commits and pushes ``main``, then reconciles each of its subordinates.

    A repository that does not lead a group (or leads one with no
    subordinates) is simply committed and pushed. Subordinates that are not
    registered are skipped. Each subordinate uses its own platform's auth
    config, borrowing the main's username/email when it has none.

    Args:
        main (Repository): The repository the user is publishing.
        repos (list[Repository]): All registered repositories.
        topology (SyncGroupTopology): The current sync groups.
        config (Config): Loaded configuration.
        message (str | None): The user's commit message.

    Returns:
        GroupSyncReport: Per-subordinate outcomes.
    """
    report = GroupSyncReport(main=main.name)
    main_auth = config.platform_auth(main.platform)
    subordinates = (
        topology.subordinates_of(main.name)
        if topology.role_of(main.name) is Role.MAIN
        else []
    )

    if not subordinates:
        report.publish = commit_and_push(
            main.path,
            message,
            main_auth,
            config.core.remote_name,
            config.sync.default_message,
        )
        return report

    targets = []
    for name in subordinates:
        sub = find_by_name(repos, name)
        if sub is None:
            logger.warning(f"Subordinate {name} is not registered. Skipping.")
            report.skipped.append(name)
            continue
        sub_auth = config.platform_auth(sub.platform).with_identity_from(main_auth)
        targets.append((sub.path, sub_auth))

    if not targets:
        report.publish = commit_and_push(
            main.path,
            message,
            main_auth,
            config.core.remote_name,
            config.sync.default_message,
        )
        return report

    engine = RepositorySyncEngine(
        remote_name=config.core.remote_name,
        extra_ignore=config.sync.ignore,
        default_message=config.sync.default_message,
    )
    report.results = engine.sync_many(main.path, targets, message or "", main_auth)
    return report


def run_batch(operation: str, repos: list[Repository], config: Config) -> BatchReport:
    """Runs commit, push or pull over several repositories, one after another.

    Args:
        operation (str): One of BATCH_OPERATIONS.
        repos (list[Repository]): Target repositories.
        config (Config): Loaded configuration.

    Returns:
        BatchReport: Outcome per repository name.

    Raises:
        ValueError: If the operation is unknown.
    """
    if operation not in BATCH_OPERATIONS:
        raise ValueError(f"Unknown batch operation '{operation}'")

    report = BatchReport(operation=operation)
    remote = config.core.remote_name
    batch_message = f"Batch update: {datetime.datetime.now():%Y-%m-%d %H:%M:%S}"
    for repo in repos:
        auth = config.platform_auth(repo.platform)
        if operation == "commit":
            result = commit_repo(repo.path, batch_message, auth, config.sync.default_message)
        elif operation == "push":
            result = push_repo(repo.path, auth, remote)
        else:
            result = pull_repo(repo.path, auth, remote)
        report.results[repo.name] = result
    return report
