"""Discovery and inspection of registered working copies."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME, EMPTY_REPO, NO_BRANCH, UNKNOWN
from .git_wrapper import CommitInfo, GitRepo
from .remote import classify
from .summary import WorkingTreeStatus

logger = logging.getLogger(APP_NAME)


@dataclass
class Repository:
    """A registered working copy as seen on the last refresh.

    Attributes:
        path (Path): The repository root (unique key).
        name (str): The folder name, used to reference the repo in sync groups.
        branch (str): Current branch, or NO_BRANCH / EMPTY_REPO sentinels.
        remote_url (str): First remote URL ('' if none).
        platform (str): Hosting platform classification of remote_url.
        modified (int): Count of modified files.
        staged (int): Count of staged files.
        untracked (int): Count of untracked files.
        has_changes (bool): True if the status lists any entry.
        last_commit (CommitInfo | None): HEAD subject/date (detailed inspection only).
    """

    path: Path
    name: str
    branch: str = NO_BRANCH
    remote_url: str = ""
    platform: str = UNKNOWN
    modified: int = 0
    staged: int = 0
    untracked: int = 0
    has_changes: bool = False
    last_commit: CommitInfo | None = None


def inspect_repository(path: Path, detailed: bool = False) -> Repository | None:
    """Builds a Repository snapshot for one path.

    Each git query is best-effort: a failed query leaves its default in place.

    Args:
        path (Path): Candidate repository root.
        detailed (bool): Also read the last commit.

    Returns:
        Repository | None: None if the path is not a git working copy.
    """
    if not GitRepo.is_repo(path):
        return None

    name = path.name
    try:
        repo = GitRepo(path)
    except ValueError as e:
        logger.debug(f"Skipping {path}: {e}")
        return Repository(path=path, name=name, branch=EMPTY_REPO)

    remote_url = repo.first_remote_url()

    try:
        branch = repo.current_branch() or NO_BRANCH
    except Exception as e:
        logger.debug(f"Could not read branch of {name}: {e}")
        branch = EMPTY_REPO

    status = WorkingTreeStatus()
    try:
        status = repo.status()
    except Exception as e:
        logger.debug(f"Could not read status of {name}: {e}")

    return Repository(
        path=path,
        name=name,
        branch=branch,
        remote_url=remote_url,
        platform=classify(remote_url),
        modified=len(status.modified),
        staged=len(status.staged),
        untracked=len(status.untracked),
        has_changes=status.has_changes,
        last_commit=repo.last_commit() if detailed else None,
    )


def scan_repositories(paths: Iterable[Path]) -> list[Repository]:
    """Inspects every registered path, skipping missing or non-git ones."""
    repos = []
    for path in paths:
        if not path.exists():
            logger.debug(f"Registered path missing: {path}")
            continue
        repo = inspect_repository(path)
        if repo is not None:
            repos.append(repo)
    return repos


def find_by_name(repos: Iterable[Repository], name: str) -> Repository | None:
    """Returns the first repository with the given name."""
    return next((r for r in repos if r.name == name), None)
