"""In-memory index of main -> subordinate synchronization groups.

``SyncGroupTopology`` owns both directions of the mapping (group id to group,
repository name to group id). All mutation goes through ``bind``, ``remove``
and ``clear`` so the two maps stay consistent; persistence is left to the
caller (see ``store``).
"""

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .constants import APP_NAME
from .errors import ValidationError

logger = logging.getLogger(APP_NAME)


class Role(str, Enum):
    """A repository's position in the topology."""

    MAIN = "main"
    SUBORDINATE = "subordinate"
    NONE = "none"


@dataclass
class SyncGroup:
    """One main repository and the subordinates mirrored from it.

    Attributes:
        group_id (str): Opaque unique token.
        main (str): Name of the main repository.
        subordinates (list[str]): Names of the subordinate repositories, in binding order.
    """

    group_id: str
    main: str
    subordinates: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"main": self.main, "subordinates": list(self.subordinates)}


def new_group_id() -> str:
    return f"group_{uuid.uuid4().hex[:12]}"


class SyncGroupTopology:
    """Bidirectional repository <-> sync group index."""

    def __init__(self) -> None:
        self._groups: dict[str, SyncGroup] = {}
        self._repo_to_group: dict[str, str] = {}

    def bind(self, main: str, subordinates: Iterable[str]) -> str:
        """Creates a group binding ``main`` to ``subordinates``.

        Any previous group led by ``main`` is dropped, and each subordinate is
        detached from the group it belonged to (that group is deleted if it
        runs out of subordinates).

        Args:
            main (str): The main repository name.
            subordinates (Iterable[str]): Subordinate names (duplicates collapse).

        Returns:
            str: The new group id.

        Raises:
            ValidationError: If no subordinate is given or main is among them.
        """
        subs = list(dict.fromkeys(subordinates))
        if not subs:
            raise ValidationError("A sync group needs at least one subordinate.")
        if main in subs:
            raise ValidationError(f"'{main}' cannot be its own subordinate.")

        self._detach(main)
        for sub in subs:
            self._detach(sub)

        group_id = new_group_id()
        while group_id in self._groups:
            group_id = new_group_id()

        self._groups[group_id] = SyncGroup(group_id, main, subs)
        self._repo_to_group[main] = group_id
        for sub in subs:
            self._repo_to_group[sub] = group_id

        logger.info(f"GROUP {group_id}: {main} -> {', '.join(subs)}")
        return group_id

    def _detach(self, name: str) -> None:
        """Removes ``name`` from whatever group it belongs to."""
        group_id = self._repo_to_group.get(name)
        if group_id is None:
            return
        group = self._groups.get(group_id)
        if group is None:
            del self._repo_to_group[name]
            return
        if group.main == name:
            # A group without its main is meaningless.
            self.remove(group_id)
            return
        group.subordinates = [s for s in group.subordinates if s != name]
        del self._repo_to_group[name]
        if not group.subordinates:
            self.remove(group_id)

    def role_of(self, name: str) -> Role:
        """Returns whether ``name`` is a main, a subordinate, or unbound."""
        group = self.group_of(name)
        if group is None:
            return Role.NONE
        if group.main == name:
            return Role.MAIN
        if name in group.subordinates:
            return Role.SUBORDINATE
        return Role.NONE

    def group_of(self, name: str) -> SyncGroup | None:
        group_id = self._repo_to_group.get(name)
        return self._groups.get(group_id) if group_id else None

    def subordinates_of(self, main: str) -> list[str]:
        """Returns the subordinates of ``main`` (empty unless it leads a group)."""
        group = self.group_of(main)
        if group is None or group.main != main:
            return []
        return list(group.subordinates)

    def remove(self, group_id: str) -> bool:
        """Deletes a group and scrubs all its members from the index.

        Returns:
            bool: True if the group existed.
        """
        group = self._groups.pop(group_id, None)
        if group is None:
            return False
        for name in (group.main, *group.subordinates):
            if self._repo_to_group.get(name) == group_id:
                del self._repo_to_group[name]
        return True

    def clear(self) -> None:
        """Drops every group."""
        self._groups = {}
        self._repo_to_group = {}

    @property
    def groups(self) -> list[SyncGroup]:
        """Snapshot of the current groups (copies; mutating them has no effect)."""
        return [
            SyncGroup(g.group_id, g.main, list(g.subordinates))
            for g in self._groups.values()
        ]

    def __len__(self) -> int:
        return len(self._groups)

    def to_dict(self) -> dict[str, Any]:
        """Serializes to ``{sync_groups: {id: {main, subordinates}}, repo_to_group: {name: id}}``."""
        return {
            "sync_groups": {gid: g.to_dict() for gid, g in self._groups.items()},
            "repo_to_group": dict(self._repo_to_group),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SyncGroupTopology":
        """Rebuilds a topology from its serialized form.

        The reverse index is re-derived from the groups; entries in
        ``repo_to_group`` that disagree with them are dropped. Groups without
        a main or without subordinates are skipped.
        """
        topology = cls()
        groups = data.get("sync_groups") if isinstance(data, dict) else None
        if not isinstance(groups, dict):
            return topology
        for group_id, raw in groups.items():
            if not isinstance(raw, dict):
                continue
            main = raw.get("main")
            raw_subs = raw.get("subordinates")
            if not isinstance(raw_subs, list) or not all(isinstance(s, str) for s in raw_subs):
                logger.warning(f"Dropping sync group {group_id}: subordinates is not a list of names.")
                continue
            subs = [s for s in dict.fromkeys(raw_subs) if s and s != main]
            if not isinstance(main, str) or not main or not subs:
                logger.warning(f"Dropping malformed sync group {group_id}.")
                continue
            if main in topology._repo_to_group or any(
                s in topology._repo_to_group for s in subs
            ):
                logger.warning(f"Dropping overlapping sync group {group_id}.")
                continue
            topology._groups[group_id] = SyncGroup(group_id, main, subs)
            topology._repo_to_group[main] = group_id
            for sub in subs:
                topology._repo_to_group[sub] = group_id
        return topology
