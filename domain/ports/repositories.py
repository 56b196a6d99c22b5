from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from domain.models import Department, PersistedStep, ProcessRecord, Role


@dataclass(frozen=True)
class NewDepartmentRow:
    name: str
    color: str


@dataclass(frozen=True)
class NewRoleRow:
    department_id: str
    name: str
    color: str


class ProcessStore(Protocol):
    def list_departments(self, organization_id: str) -> list[Department]: ...

    def list_roles(self, department_id: str) -> list[Role]: ...

    def batch_create_departments(
        self, organization_id: str, rows: Sequence[NewDepartmentRow]
    ) -> list[Department]: ...

    def batch_create_roles(
        self, organization_id: str, rows: Sequence[NewRoleRow]
    ) -> list[Role]: ...

    def create_process(
        self, organization_id: str, title: str, steps: Sequence[PersistedStep]
    ) -> ProcessRecord: ...

    def load_process(self, process_id: str) -> ProcessRecord: ...

    def list_processes(self, organization_id: str) -> list[ProcessRecord]: ...

    def write_process(
        self, process_id: str, title: str, steps: Sequence[PersistedStep]
    ) -> ProcessRecord: ...

    def rename_process(self, process_id: str, title: str) -> ProcessRecord: ...


class AccessPolicy(Protocol):
    def can_read(self, user_id: str, organization_id: str) -> bool: ...

    def can_manage(self, user_id: str, organization_id: str) -> bool: ...
