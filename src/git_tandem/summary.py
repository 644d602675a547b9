"""Working-tree status parsing and commit-message change summaries."""

from dataclasses import dataclass, field

from .constants import LABEL_ADDED, LABEL_DELETED, LABEL_LINES, LABEL_MODIFIED


@dataclass(frozen=True)
class StatusEntry:
    """One line of ``git status --porcelain``.

    Attributes:
        index (str): The staging-area marker (first column).
        worktree (str): The working-tree marker (second column).
        path (str): The path, or 'old -> new' target for renames.
    """

    index: str
    worktree: str
    path: str

    @classmethod
    def parse(cls, line: str) -> "StatusEntry":
        path = line[3:]
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        return cls(index=line[0:1], worktree=line[1:2], path=path.strip('"'))

    @property
    def is_untracked(self) -> bool:
        return self.index == "?" and self.worktree == "?"

    @property
    def is_modified(self) -> bool:
        return "M" in (self.index, self.worktree)

    @property
    def is_added(self) -> bool:
        return self.is_untracked or self.index == "A"

    @property
    def is_deleted(self) -> bool:
        return "D" in (self.index, self.worktree)

    @property
    def is_staged(self) -> bool:
        return self.index not in (" ", "?", "!", "")


@dataclass
class WorkingTreeStatus:
    """Aggregated view of a repository's porcelain status."""

    entries: list[StatusEntry] = field(default_factory=list)

    @classmethod
    def from_porcelain(cls, lines: list[str]) -> "WorkingTreeStatus":
        return cls([StatusEntry.parse(line) for line in lines if len(line) > 3])

    @property
    def modified(self) -> list[str]:
        return [e.path for e in self.entries if e.is_modified]

    @property
    def added(self) -> list[str]:
        return [e.path for e in self.entries if e.is_added]

    @property
    def deleted(self) -> list[str]:
        return [e.path for e in self.entries if e.is_deleted]

    @property
    def staged(self) -> list[str]:
        return [e.path for e in self.entries if e.is_staged]

    @property
    def untracked(self) -> list[str]:
        return [e.path for e in self.entries if e.is_untracked]

    @property
    def has_changes(self) -> bool:
        return bool(self.entries)


@dataclass(frozen=True)
class ChangeSummary:
    """File and line counts for one commit."""

    modified: int = 0
    added: int = 0
    deleted: int = 0
    insertions: int = 0
    deletions: int = 0

    @classmethod
    def from_status(
        cls, status: WorkingTreeStatus, insertions: int = 0, deletions: int = 0
    ) -> "ChangeSummary":
        return cls(
            modified=len(status.modified),
            added=len(status.added),
            deleted=len(status.deleted),
            insertions=insertions,
            deletions=deletions,
        )

    def suffix(self) -> str:
        """Renders ' [<n> 修改, <n> 新增, <n> 删除, +<i> -<d> 行]', omitting zero clauses."""
        parts = []
        if self.modified:
            parts.append(f"{self.modified} {LABEL_MODIFIED}")
        if self.added:
            parts.append(f"{self.added} {LABEL_ADDED}")
        if self.deleted:
            parts.append(f"{self.deleted} {LABEL_DELETED}")
        if self.insertions or self.deletions:
            parts.append(f"+{self.insertions} -{self.deletions} {LABEL_LINES}")
        if not parts:
            return ""
        return f" [{', '.join(parts)}]"


def summarize(
    status: WorkingTreeStatus, staged_diff: tuple[int, int] | None = None
) -> str:
    """Builds the bracketed change suffix appended to commit messages.

    Args:
        status (WorkingTreeStatus): The repository status after staging.
        staged_diff (tuple[int, int] | None): (insertions, deletions) of the
            staged diff; None when it could not be computed.

    Returns:
        str: The suffix, or an empty string when nothing changed.
    """
    insertions, deletions = staged_diff or (0, 0)
    return ChangeSummary.from_status(status, insertions, deletions).suffix()


def build_commit_message(message: str | None, suffix: str, default: str = "Update") -> str:
    """Joins the trimmed user message (or ``default``) with the change suffix."""
    return ((message or "").strip() or default) + suffix
