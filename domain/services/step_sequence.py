from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime

from domain.colors import ColorPalette
from domain.errors import ProcessValidationError
from domain.models import (
    EDITABLE_STEP_TYPES,
    TERMINAL_STEP_TYPES,
    BranchName,
    Department,
    Role,
    Step,
    default_steps,
)
from domain.normalizers import normalize_draft_name, normalize_identifier, normalize_name_key
from domain.services.entity_lookup import EntityLookup

NEW_STEP_LABELS: dict[str, str] = {"action": "New action", "decision": "New decision"}


class StepSequenceError(ProcessValidationError):
    pass


def _new_step_id() -> str:
    return str(uuid.uuid4())


class StepSequence:
    """Ordered, editable list of steps bracketed by a fixed start and finish."""

    def __init__(
        self,
        steps: Iterable[Step] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._steps: list[Step] = [Step.model_validate(step.model_dump()) for step in steps or default_steps()]
        self._id_factory = id_factory or _new_step_id
        self._ensure_terminals()

    @classmethod
    def create_default(cls, id_factory: Callable[[], str] | None = None) -> StepSequence:
        return cls(default_steps(), id_factory=id_factory)

    @property
    def steps(self) -> tuple[Step, ...]:
        return tuple(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def index_of(self, step_id: str) -> int:
        for index, step in enumerate(self._steps):
            if step.id == step_id:
                return index
        msg = f"Unknown step: {step_id}"
        raise StepSequenceError("unknown_step", msg, step_id=step_id)

    def get(self, step_id: str) -> Step:
        return self._steps[self.index_of(step_id)]

    def add(self, step_type: str, after_id: str | None = None, label: str | None = None) -> Step:
        if step_type not in EDITABLE_STEP_TYPES:
            msg = f"Only action and decision steps can be added, got {step_type}"
            raise StepSequenceError("not_editable_type", msg)
        step = Step(
            id=self._id_factory(),
            label=label if label is not None else NEW_STEP_LABELS[step_type],
            type=step_type,  # type: ignore[arg-type]
        )
        finish_index = len(self._steps) - 1
        if after_id is None:
            insertion = finish_index
        else:
            insertion = min(self.index_of(after_id) + 1, finish_index)
        self._steps.insert(max(insertion, 1), step)
        return step

    def remove(self, step_id: str) -> None:
        index = self.index_of(step_id)
        if self._steps[index].type in TERMINAL_STEP_TYPES:
            msg = "Start and finish steps cannot be removed"
            raise StepSequenceError("terminal_step_locked", msg, step_id=step_id)
        del self._steps[index]
        for position, step in enumerate(self._steps):
            if step.type != "decision":
                continue
            if step.yes_target_id == step_id or step.no_target_id == step_id:
                self._steps[position] = step.model_copy(
                    update={
                        "yes_target_id": None if step.yes_target_id == step_id else step.yes_target_id,
                        "no_target_id": None if step.no_target_id == step_id else step.no_target_id,
                    }
                )

    def move(self, step_id: str, target_index: int) -> int:
        index = self.index_of(step_id)
        if self._steps[index].type in TERMINAL_STEP_TYPES:
            msg = "Start and finish steps cannot be moved"
            raise StepSequenceError("terminal_step_locked", msg, step_id=step_id)
        last_movable = len(self._steps) - 2
        clamped = min(max(target_index, 1), last_movable)
        if clamped != index:
            step = self._steps.pop(index)
            self._steps.insert(clamped, step)
        return clamped

    def update_label(self, step_id: str, label: str) -> Step:
        return self._replace(step_id, label=label)

    def set_department(
        self,
        step_id: str,
        department_id: str | None = None,
        draft_name: str | None = None,
        lookup: EntityLookup | None = None,
    ) -> Step:
        step = self.get(step_id)
        normalized_id = normalize_identifier(department_id)
        keep_role = False
        if normalized_id and step.role_id and lookup is not None:
            entry = lookup.role(step.role_id)
            keep_role = entry is not None and entry.role.department_id == normalized_id
        updates: dict[str, object] = {
            "department_id": normalized_id,
            "draft_department_name": None if normalized_id else normalize_draft_name(draft_name),
        }
        if not keep_role:
            updates["role_id"] = None
        return self._replace(step_id, **updates)

    def set_role(self, step_id: str, role_id: str | None, lookup: EntityLookup) -> Step:
        normalized_id = normalize_identifier(role_id)
        entry = lookup.role(normalized_id)
        if entry is None:
            return self._replace(step_id, role_id=None)
        return self._replace(
            step_id,
            role_id=entry.role.id,
            draft_role_name=None,
            department_id=entry.role.department_id,
            draft_department_name=None,
        )

    def set_draft_role(self, step_id: str, name: str | None) -> Step:
        return self._replace(step_id, role_id=None, draft_role_name=normalize_draft_name(name))

    def set_branch(self, step_id: str, branch: BranchName, target_id: str | None) -> Step:
        step = self.get(step_id)
        if step.type != "decision":
            msg = "Only decision steps have branches"
            raise StepSequenceError("not_a_decision", msg, step_id=step_id)
        field_name = "yes_target_id" if branch == "yes" else "no_target_id"
        return self._replace(step_id, **{field_name: normalize_identifier(target_id)})

    def _replace(self, step_id: str, **updates: object) -> Step:
        index = self.index_of(step_id)
        payload = self._steps[index].model_dump()
        payload.update(updates)
        updated = Step.model_validate(payload)
        self._steps[index] = updated
        return updated

    def _ensure_terminals(self) -> None:
        if len(self._steps) < 2:
            msg = "A process needs at least a start and a finish step"
            raise StepSequenceError("min_steps", msg)
        if self._steps[0].type != "start" or self._steps[-1].type != "finish":
            msg = "A process must begin with start and end with finish"
            raise StepSequenceError("terminal_order", msg)


def merge_draft_entities(
    steps: Sequence[Step],
    departments: Sequence[Department],
    palette: ColorPalette | None = None,
    id_factory: Callable[[], str] | None = None,
) -> list[Department]:
    """Return ``departments`` extended with client-side drafts named by ``steps``."""
    palette = palette or ColorPalette()
    make_id = id_factory or _new_step_id
    now = datetime.now(UTC)
    by_key: dict[str, Department] = {}
    for department in departments:
        key = normalize_name_key(department.name)
        if key and key not in by_key:
            by_key[key] = department.model_copy(update={"roles": list(department.roles)})

    for step in steps:
        department_name = normalize_draft_name(step.draft_department_name)
        department_key = normalize_name_key(department_name)
        if department_name is None or department_key is None:
            continue
        department = by_key.get(department_key)
        if department is None:
            department = Department(
                id=make_id(),
                name=department_name,
                color=palette.color_for(department_name, scope="department"),
                created_at=now,
                updated_at=now,
            )
        role_name = normalize_draft_name(step.draft_role_name)
        role_key = normalize_name_key(role_name)
        if role_name and role_key:
            if not any(normalize_name_key(role.name) == role_key for role in department.roles):
                role = Role(
                    id=make_id(),
                    department_id=department.id,
                    name=role_name,
                    color=palette.color_for(role_name, scope=department.id),
                    created_at=now,
                    updated_at=now,
                )
                department = department.model_copy(
                    update={
                        "roles": sorted(
                            [*department.roles, role], key=lambda item: (item.name.lower(), item.id)
                        )
                    }
                )
        by_key[department_key] = department
    return list(by_key.values())
