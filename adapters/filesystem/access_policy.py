from __future__ import annotations

from pathlib import Path

from adapters.filesystem.json_utils import load_json, write_json_atomic
from domain.errors import PersistenceError

MANAGER_ROLES = frozenset({"owner", "admin"})
MEMBERSHIPS_FILE = "memberships.json"


class FileSystemAccessPolicy:
    """Reads ``memberships.json``: ``{"<organization>": {"<user>": "<role>"}}``."""

    def __init__(self, root_dir: Path) -> None:
        self.path = root_dir / MEMBERSHIPS_FILE

    def can_read(self, user_id: str, organization_id: str) -> bool:
        return self._role(user_id, organization_id) is not None

    def can_manage(self, user_id: str, organization_id: str) -> bool:
        return self._role(user_id, organization_id) in MANAGER_ROLES

    def grant(self, user_id: str, organization_id: str, role: str) -> None:
        payload = self._load()
        payload.setdefault(organization_id, {})[user_id] = role.strip().lower()
        try:
            write_json_atomic(self.path, payload)
        except OSError as exc:
            msg = f"Cannot write memberships: {exc}"
            raise PersistenceError(msg) from exc

    def _role(self, user_id: str, organization_id: str) -> str | None:
        if not user_id:
            return None
        members = self._load().get(organization_id)
        if not isinstance(members, dict):
            return None
        role = members.get(user_id)
        return str(role).strip().lower() if role else None

    def _load(self) -> dict[str, dict[str, str]]:
        try:
            return load_json(self.path)
        except OSError as exc:
            msg = f"Cannot read memberships: {exc}"
            raise PersistenceError(msg) from exc
