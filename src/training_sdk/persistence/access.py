"""Access levels and the gate that resolves them for a caller."""

import logging
from abc import ABC, abstractmethod
from enum import IntEnum
from typing import Iterable, Optional

from ..core.errors import AccessDeniedError

logger = logging.getLogger("TrainingStudio.persistence.access")


class AccessLevel(IntEnum):
    NONE = 0
    VIEWER = 1
    EDITOR = 2
    ADMIN = 3
    OWNER = 4


class AccessGate(ABC):
    @abstractmethod
    def resolve_access_level(self, project_id: str, identity: str) -> AccessLevel: ...


class StaticAccessGate(AccessGate):
    """Access from fixed lists of identities.

    Global lists apply to every project; ``project_levels`` grants
    per-project levels and wins when it is higher. Identities are compared
    case-insensitively (they are e-mail addresses in practice).
    """

    def __init__(self, owners: Iterable[str] = (), admins: Iterable[str] = (),
                 editors: Iterable[str] = (), viewers: Iterable[str] = (),
                 project_levels: Optional[dict[str, dict[str, AccessLevel]]] = None,
                 default: AccessLevel = AccessLevel.NONE):
        self._global: dict[str, AccessLevel] = {}
        for level, identities in (
            (AccessLevel.VIEWER, viewers),
            (AccessLevel.EDITOR, editors),
            (AccessLevel.ADMIN, admins),
            (AccessLevel.OWNER, owners),
        ):
            for identity in identities:
                self._global[identity.strip().lower()] = level
        self._projects = {
            pid: {who.lower(): lvl for who, lvl in levels.items()}
            for pid, levels in (project_levels or {}).items()
        }
        self.default = default

    def resolve_access_level(self, project_id: str, identity: str) -> AccessLevel:
        who = (identity or "").strip().lower()
        level = self._global.get(who, self.default)
        project_level = self._projects.get(project_id, {}).get(who)
        if project_level is not None and project_level > level:
            level = project_level
        return level


def require_access(gate: Optional[AccessGate], project_id: str, identity: str,
                   minimum: AccessLevel) -> AccessLevel:
    """Raise AccessDeniedError unless ``identity`` has at least ``minimum``.

    A missing gate means access control is off and grants OWNER.
    """
    if gate is None:
        return AccessLevel.OWNER
    level = gate.resolve_access_level(project_id, identity)
    if level < minimum:
        logger.warning(
            f"Access denied for {identity or 'anonymous'} on {project_id}: "
            f"{level.name} < {minimum.name}"
        )
        raise AccessDeniedError(
            f"{identity or 'anonymous'} needs {minimum.name} access to {project_id}"
        )
    return level
