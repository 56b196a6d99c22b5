from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeVar

from filelock import FileLock
from pydantic import ValidationError

from adapters.filesystem.json_utils import load_json, write_json_atomic
from domain.errors import (
    DraftConflictError,
    PersistenceError,
    ProcessNotFoundError,
    ReferenceIntegrityError,
)
from domain.models import Department, PersistedStep, ProcessRecord, Role
from domain.normalizers import normalize_name_key
from domain.ports.repositories import NewDepartmentRow, NewRoleRow

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEPARTMENTS_FILE = "departments.json"


class FileSystemProcessStore:
    """JSON file store: one departments file per organization, one file per process.

    Layout under ``root_dir``::

        organizations/<organization_id>/departments.json
        processes/<process_id>.json

    Writes go through a ``FileLock`` and an atomic rename, so a batch either
    lands in full or not at all.
    """

    def __init__(self, root_dir: Path, id_factory: Callable[[], str] | None = None) -> None:
        self.root_dir = root_dir
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

    def list_departments(self, organization_id: str) -> list[Department]:
        return self._guard(lambda: self._read_departments(organization_id))

    def list_roles(self, department_id: str) -> list[Role]:
        def read() -> list[Role]:
            for org_dir in self._organizations_dir().glob("*"):
                for department in self._read_departments(org_dir.name):
                    if department.id == department_id:
                        return list(department.roles)
            return []

        return self._guard(read)

    def batch_create_departments(
        self, organization_id: str, rows: Sequence[NewDepartmentRow]
    ) -> list[Department]:
        if not rows:
            return []

        def create() -> list[Department]:
            with self._org_lock(organization_id):
                departments = self._read_departments(organization_id)
                taken = {normalize_name_key(item.name) for item in departments}
                conflicts = _collect_conflicts((row.name for row in rows), taken)
                if conflicts:
                    raise DraftConflictError("department", conflicts)
                now = _utcnow()
                created = [
                    Department(
                        id=self._id_factory(),
                        organization_id=organization_id,
                        name=row.name,
                        color=row.color,
                        created_at=now,
                        updated_at=now,
                    )
                    for row in rows
                ]
                self._write_departments(organization_id, [*departments, *created])
            logger.info("Created %d department(s) in %s", len(created), organization_id)
            return created

        return self._guard(create)

    def batch_create_roles(self, organization_id: str, rows: Sequence[NewRoleRow]) -> list[Role]:
        if not rows:
            return []

        def create() -> list[Role]:
            with self._org_lock(organization_id):
                departments = {item.id: item for item in self._read_departments(organization_id)}
                conflicts: list[str] = []
                pending: dict[str, set[str | None]] = {}
                for row in rows:
                    department = departments.get(row.department_id)
                    if department is None:
                        msg = f"Unknown department: {row.department_id}"
                        raise ReferenceIntegrityError("unknown_department", msg)
                    taken = pending.setdefault(
                        department.id, {normalize_name_key(role.name) for role in department.roles}
                    )
                    key = normalize_name_key(row.name)
                    if key in taken:
                        conflicts.append(row.name)
                    taken.add(key)
                if conflicts:
                    raise DraftConflictError("role", conflicts)

                now = _utcnow()
                created: list[Role] = []
                for row in rows:
                    role = Role(
                        id=self._id_factory(),
                        department_id=row.department_id,
                        name=row.name,
                        color=row.color,
                        created_at=now,
                        updated_at=now,
                    )
                    department = departments[row.department_id]
                    departments[row.department_id] = department.model_copy(
                        update={"roles": _sorted_roles([*department.roles, role])}
                    )
                    created.append(role)
                self._write_departments(organization_id, list(departments.values()))
            logger.info("Created %d role(s) in %s", len(created), organization_id)
            return created

        return self._guard(create)

    def create_process(
        self, organization_id: str, title: str, steps: Sequence[PersistedStep]
    ) -> ProcessRecord:
        record = ProcessRecord(
            id=self._id_factory(),
            organization_id=organization_id,
            title=title,
            steps=list(steps),
            updated_at=_utcnow(),
        )
        return self._guard(lambda: self._write_record(record))

    def load_process(self, process_id: str) -> ProcessRecord:
        return self._guard(lambda: self._read_record(process_id))

    def list_processes(self, organization_id: str) -> list[ProcessRecord]:
        def read() -> list[ProcessRecord]:
            records = [
                _parse_record(path)
                for path in sorted(self._processes_dir().glob("*.json"))
            ]
            matching = [record for record in records if record.organization_id == organization_id]
            return sorted(matching, key=lambda record: (record.title.lower(), record.id))

        return self._guard(read)

    def write_process(
        self, process_id: str, title: str, steps: Sequence[PersistedStep]
    ) -> ProcessRecord:
        def write() -> ProcessRecord:
            with self._lock(self._process_path(process_id)):
                current = self._read_record(process_id)
                updated = ProcessRecord(
                    id=current.id,
                    organization_id=current.organization_id,
                    title=title,
                    steps=list(steps),
                    updated_at=_utcnow(),
                )
                write_json_atomic(self._process_path(process_id), updated.to_wire())
            return updated

        return self._guard(write)

    def rename_process(self, process_id: str, title: str) -> ProcessRecord:
        def rename() -> ProcessRecord:
            with self._lock(self._process_path(process_id)):
                current = self._read_record(process_id)
                updated = current.model_copy(update={"title": title, "updated_at": _utcnow()})
                write_json_atomic(self._process_path(process_id), updated.to_wire())
            return updated

        return self._guard(rename)

    def _read_departments(self, organization_id: str) -> list[Department]:
        path = self._departments_path(organization_id)
        items: list[dict[str, Any]] = load_json(path).get("departments", [])
        try:
            departments = [Department.model_validate(item) for item in items]
        except ValidationError as exc:
            msg = f"Invalid departments file: {path}"
            raise PersistenceError(msg) from exc
        return sorted(departments, key=lambda item: (item.name.lower(), item.id))

    def _write_departments(self, organization_id: str, departments: list[Department]) -> None:
        payload = {"departments": [department.to_wire() for department in departments]}
        write_json_atomic(self._departments_path(organization_id), payload)

    def _read_record(self, process_id: str) -> ProcessRecord:
        path = self._process_path(process_id)
        if not path.exists():
            msg = f"Process not found: {process_id}"
            raise ProcessNotFoundError(msg)
        return _parse_record(path)

    def _write_record(self, record: ProcessRecord) -> ProcessRecord:
        path = self._process_path(record.id)
        with self._lock(path):
            write_json_atomic(path, record.to_wire())
        return record

    def _organizations_dir(self) -> Path:
        return self.root_dir / "organizations"

    def _processes_dir(self) -> Path:
        return self.root_dir / "processes"

    def _departments_path(self, organization_id: str) -> Path:
        if not _is_safe_segment(organization_id):
            msg = f"Invalid organization id: {organization_id!r}"
            raise ReferenceIntegrityError("invalid_identifier", msg)
        return self._organizations_dir() / organization_id.strip() / DEPARTMENTS_FILE

    def _process_path(self, process_id: str) -> Path:
        if not _is_safe_segment(process_id):
            msg = f"Process not found: {process_id}"
            raise ProcessNotFoundError(msg)
        return self._processes_dir() / f"{process_id.strip()}.json"

    def _org_lock(self, organization_id: str) -> FileLock:
        return self._lock(self._departments_path(organization_id))

    @staticmethod
    def _lock(path: Path) -> FileLock:
        path.parent.mkdir(parents=True, exist_ok=True)
        return FileLock(str(path.with_suffix(f"{path.suffix}.lock")))

    @staticmethod
    def _guard(operation: Callable[[], T]) -> T:
        with _wrap_os_errors():
            return operation()


@contextmanager
def _wrap_os_errors() -> Iterator[None]:
    try:
        yield
    except OSError as exc:
        logger.exception("Process store I/O failed")
        msg = f"Process store is unavailable: {exc}"
        raise PersistenceError(msg) from exc


def _parse_record(path: Path) -> ProcessRecord:
    try:
        return ProcessRecord.model_validate(load_json(path))
    except ValidationError as exc:
        msg = f"Invalid process file: {path}"
        raise PersistenceError(msg) from exc


def _collect_conflicts(names: Iterable[str], taken: set[str | None]) -> list[str]:
    seen = set(taken)
    conflicts: list[str] = []
    for name in names:
        key = normalize_name_key(name)
        if key in seen:
            conflicts.append(name)
        seen.add(key)
    return conflicts


def _is_safe_segment(value: str) -> bool:
    cleaned = value.strip()
    return bool(cleaned) and "/" not in cleaned and "\\" not in cleaned and cleaned not in {".", ".."}


def _sorted_roles(roles: list[Role]) -> list[Role]:
    return sorted(roles, key=lambda role: (role.name.lower(), role.id))


def _utcnow() -> datetime:
    return datetime.now(UTC)
