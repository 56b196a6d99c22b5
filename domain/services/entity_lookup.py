from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from domain.models import Department, Role, Step
from domain.normalizers import normalize_name_key


@dataclass(frozen=True)
class RoleEntry:
    role: Role
    department: Department | None


@dataclass
class EntityLookup:
    departments_by_id: dict[str, Department] = field(default_factory=dict)
    departments_by_key: dict[str, Department] = field(default_factory=dict)
    roles_by_id: dict[str, RoleEntry] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        departments: Sequence[Department],
        roles: Iterable[Role] | None = None,
    ) -> EntityLookup:
        lookup = cls()
        for department in departments:
            lookup.departments_by_id.setdefault(department.id, department)
            key = normalize_name_key(department.name)
            if key:
                lookup.departments_by_key.setdefault(key, department)
            for role in department.roles:
                lookup.roles_by_id.setdefault(role.id, RoleEntry(role=role, department=department))
        for role in roles or ():
            if role.id in lookup.roles_by_id:
                continue
            owner = lookup.departments_by_id.get(role.department_id)
            lookup.roles_by_id[role.id] = RoleEntry(role=role, department=owner)
        return lookup

    def department(self, department_id: str | None) -> Department | None:
        if not department_id:
            return None
        return self.departments_by_id.get(department_id)

    def department_by_name(self, name: str | None) -> Department | None:
        key = normalize_name_key(name)
        if not key:
            return None
        return self.departments_by_key.get(key)

    def role(self, role_id: str | None) -> RoleEntry | None:
        if not role_id:
            return None
        return self.roles_by_id.get(role_id)

    def role_by_name(self, department_id: str, name: str | None) -> Role | None:
        key = normalize_name_key(name)
        department = self.departments_by_id.get(department_id)
        if not key or department is None:
            return None
        for role in department.roles:
            if normalize_name_key(role.name) == key:
                return role
        for entry in self.roles_by_id.values():
            if entry.role.department_id == department_id and normalize_name_key(entry.role.name) == key:
                return entry.role
        return None

    def step_department(self, step: Step) -> Department | None:
        department = self.department(step.department_id)
        if department is not None:
            return department
        entry = self.role(step.role_id)
        if entry is not None and entry.department is not None:
            return entry.department
        return self.department_by_name(step.draft_department_name)

    def step_role(self, step: Step) -> Role | None:
        entry = self.role(step.role_id)
        if entry is not None:
            return entry.role
        if not step.draft_role_name:
            return None
        department = self.step_department(step)
        if department is None:
            return None
        return self.role_by_name(department.id, step.draft_role_name)
