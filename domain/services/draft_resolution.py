"""Turn draft department/role names on process steps into persisted identifiers.

Planning is pure: :func:`plan_drafts` walks the step list once against a
snapshot of the organization's departments and roles and decides, for every
draft reference, whether it matches an existing entity or needs to be created.
Pending creations are deduplicated by normalized name (``trim().lower()``), so
"Sales" and "sales " on two steps become one department.

:class:`DraftResolver` executes a plan against a :class:`ProcessStore`:
departments are created in one batch, then roles in a second batch because
role rows need the department ids produced by the first. Uniqueness conflicts
raised by the store propagate unchanged so the caller can re-fetch and retry;
re-running resolution afterwards matches the already-created entities by name
and creates nothing new.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from domain.colors import ColorPalette
from domain.errors import (
    DraftConflictError,
    PersistenceError,
    ProcessValidationError,
    ReferenceIntegrityError,
)
from domain.models import Department, DraftRef, PersistedStep, ResolvedRef, Role, Step
from domain.normalizers import normalize_draft_name, normalize_name_key
from domain.ports.repositories import NewDepartmentRow, NewRoleRow, ProcessStore
from domain.services.entity_lookup import EntityLookup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DraftKey:
    entity: Literal["department", "role"]
    department_key: str
    role_key: str | None = None

    @classmethod
    def for_department(cls, name_key: str) -> DraftKey:
        return cls("department", f"name:{name_key}")

    @classmethod
    def for_role(cls, department: ResolvedRef | DraftKey, name_key: str) -> DraftKey:
        if isinstance(department, ResolvedRef):
            scope = f"id:{department.id}"
        else:
            scope = department.department_key
        return cls("role", scope, name_key)

    def __str__(self) -> str:
        if self.role_key is None:
            return f"{self.entity}:{self.department_key}"
        return f"{self.entity}:{self.department_key}/{self.role_key}"


Binding = ResolvedRef | DraftKey


@dataclass(frozen=True)
class DepartmentCreate:
    key: DraftKey
    name: str
    color: str


@dataclass(frozen=True)
class RoleCreate:
    key: DraftKey
    department: Binding
    name: str
    color: str


@dataclass(frozen=True)
class StepBinding:
    step: Step
    department: Binding | None
    role: Binding | None


@dataclass(frozen=True)
class DraftPlan:
    department_creates: list[DepartmentCreate]
    role_creates: list[RoleCreate]
    bindings: list[StepBinding]

    @property
    def is_empty(self) -> bool:
        return not self.department_creates and not self.role_creates

    @property
    def creates(self) -> dict[str, list[DepartmentCreate] | list[RoleCreate]]:
        return {"departments": list(self.department_creates), "roles": list(self.role_creates)}


@dataclass(frozen=True)
class DraftResolution:
    plan: DraftPlan
    created_departments: list[Department]
    created_roles: list[Role]
    remap: dict[DraftKey, str]
    resolved_steps: list[Step]

    @property
    def creates(self) -> dict[str, list[Department] | list[Role]]:
        return {"departments": list(self.created_departments), "roles": list(self.created_roles)}

    def persisted_steps(self) -> list[PersistedStep]:
        return [step.to_persisted() for step in self.resolved_steps]


@dataclass
class _PlanBuilder:
    lookup: EntityLookup
    palette: ColorPalette
    departments: dict[DraftKey, DepartmentCreate] = field(default_factory=dict)
    roles: dict[DraftKey, RoleCreate] = field(default_factory=dict)

    def bind_department(self, step: Step) -> Binding | None:
        reference = step.department_ref
        if reference is None:
            return None
        if isinstance(reference, ResolvedRef):
            if self.lookup.department(reference.id) is None:
                msg = f"Department {reference.id} is not accessible for this process"
                raise ReferenceIntegrityError("unknown_department", msg, step_id=step.id)
            return reference
        return self._bind_draft_department(reference)

    def _bind_draft_department(self, reference: DraftRef) -> Binding | None:
        name = normalize_draft_name(reference.name)
        name_key = normalize_name_key(name)
        if name is None or name_key is None:
            return None
        existing = self.lookup.department_by_name(name)
        if existing is not None:
            return ResolvedRef(existing.id)
        key = DraftKey.for_department(name_key)
        if key not in self.departments:
            self.departments[key] = DepartmentCreate(
                key=key,
                name=name,
                color=self.palette.color_for(name, scope="department"),
            )
        return key

    def bind_role(self, step: Step, department: Binding | None) -> tuple[Binding | None, Binding | None]:
        reference = step.role_ref
        if reference is None:
            return department, None
        if isinstance(reference, ResolvedRef):
            return self._bind_persisted_role(step, reference, department)
        return department, self._bind_draft_role(step, reference, department)

    def _bind_persisted_role(
        self, step: Step, reference: ResolvedRef, department: Binding | None
    ) -> tuple[Binding | None, Binding | None]:
        entry = self.lookup.role(reference.id)
        if entry is None:
            msg = f"Role {reference.id} is not accessible for this process"
            raise ReferenceIntegrityError("unknown_role", msg, step_id=step.id)
        if department is None:
            return None, reference
        if department != ResolvedRef(entry.role.department_id):
            msg = f"Role {reference.id} does not belong to the department of step {step.id}"
            raise ReferenceIntegrityError("role_department_mismatch", msg, step_id=step.id)
        return department, reference

    def _bind_draft_role(
        self, step: Step, reference: DraftRef, department: Binding | None
    ) -> Binding | None:
        name = normalize_draft_name(reference.name)
        name_key = normalize_name_key(name)
        if name is None or name_key is None:
            return None
        if department is None:
            msg = f"Role '{name}' on step {step.id} has no department"
            raise ProcessValidationError("role_without_department", msg, step_id=step.id)
        if isinstance(department, ResolvedRef):
            existing = self.lookup.role_by_name(department.id, name)
            if existing is not None:
                return ResolvedRef(existing.id)
        key = DraftKey.for_role(department, name_key)
        if key not in self.roles:
            self.roles[key] = RoleCreate(
                key=key,
                department=department,
                name=name,
                color=self.palette.color_for(name, scope=key.department_key),
            )
        return key


def plan_drafts(
    steps: Sequence[Step],
    departments: Sequence[Department],
    roles: Sequence[Role] | None = None,
    palette: ColorPalette | None = None,
) -> DraftPlan:
    builder = _PlanBuilder(
        lookup=EntityLookup.build(departments, roles),
        palette=palette or ColorPalette(),
    )
    bindings: list[StepBinding] = []
    for step in steps:
        department = builder.bind_department(step)
        department, role = builder.bind_role(step, department)
        bindings.append(StepBinding(step=step, department=department, role=role))
    return DraftPlan(
        department_creates=list(builder.departments.values()),
        role_creates=list(builder.roles.values()),
        bindings=bindings,
    )


class DraftResolver:
    def __init__(self, store: ProcessStore, palette: ColorPalette | None = None) -> None:
        self.store = store
        self.palette = palette or ColorPalette()

    def resolve(
        self,
        organization_id: str,
        steps: Sequence[Step],
        departments: Sequence[Department] | None = None,
        roles: Sequence[Role] | None = None,
    ) -> DraftResolution:
        if departments is None:
            departments = self.store.list_departments(organization_id)
        if roles is None:
            roles = [role for department in departments for role in self.store.list_roles(department.id)]

        plan = plan_drafts(steps, departments, roles, self.palette)
        remap: dict[DraftKey, str] = {}
        created_departments = self._create_departments(organization_id, plan, remap)
        created_roles = self._create_roles(organization_id, plan, remap)
        if not plan.is_empty:
            logger.info(
                "Materialized %d department(s) and %d role(s) for organization %s",
                len(created_departments),
                len(created_roles),
                organization_id,
            )
        resolved = [self._resolve_step(binding, remap) for binding in plan.bindings]
        return DraftResolution(
            plan=plan,
            created_departments=created_departments,
            created_roles=created_roles,
            remap=remap,
            resolved_steps=resolved,
        )

    def _create_departments(
        self, organization_id: str, plan: DraftPlan, remap: dict[DraftKey, str]
    ) -> list[Department]:
        if not plan.department_creates:
            return []
        rows = [NewDepartmentRow(name=item.name, color=item.color) for item in plan.department_creates]
        try:
            created = self.store.batch_create_departments(organization_id, rows)
        except DraftConflictError:
            logger.warning("Department creation conflicted for organization %s", organization_id)
            raise
        _ensure_batch_size("department", rows, created)
        for item, department in zip(plan.department_creates, created):
            remap[item.key] = department.id
        return created

    def _create_roles(
        self, organization_id: str, plan: DraftPlan, remap: dict[DraftKey, str]
    ) -> list[Role]:
        if not plan.role_creates:
            return []
        rows = [
            NewRoleRow(
                department_id=_binding_id(item.department, remap),
                name=item.name,
                color=item.color,
            )
            for item in plan.role_creates
        ]
        try:
            created = self.store.batch_create_roles(organization_id, rows)
        except DraftConflictError:
            logger.warning("Role creation conflicted for organization %s", organization_id)
            raise
        _ensure_batch_size("role", rows, created)
        for item, role in zip(plan.role_creates, created):
            remap[item.key] = role.id
        return created

    def _resolve_step(self, binding: StepBinding, remap: dict[DraftKey, str]) -> Step:
        department_id = _binding_id(binding.department, remap) if binding.department else None
        role_id = _binding_id(binding.role, remap) if binding.role else None
        step = binding.step
        if (
            department_id == step.department_id
            and role_id == step.role_id
            and not step.has_drafts
        ):
            return step
        return step.model_copy(
            update={
                "department_id": department_id,
                "role_id": role_id,
                "draft_department_name": None,
                "draft_role_name": None,
            }
        )


def _binding_id(binding: Binding, remap: dict[DraftKey, str]) -> str:
    if isinstance(binding, ResolvedRef):
        return binding.id
    try:
        return remap[binding]
    except KeyError as exc:
        msg = f"Draft {binding} was not materialized"
        raise RuntimeError(msg) from exc


def _ensure_batch_size(entity: str, rows: Sequence[object], created: Sequence[object]) -> None:
    if len(rows) != len(created):
        msg = f"Store returned {len(created)} {entity}(s) for {len(rows)} requested"
        raise PersistenceError(msg)
