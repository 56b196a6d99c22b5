from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Literal, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from domain.normalizers import clean_optional, normalize_hex_color

StepType = Literal["start", "action", "decision", "finish"]
BranchName = Literal["yes", "no"]

STEP_TYPES: tuple[str, ...] = ("start", "action", "decision", "finish")
TERMINAL_STEP_TYPES: frozenset[str] = frozenset({"start", "finish"})
EDITABLE_STEP_TYPES: frozenset[str] = frozenset({"action", "decision"})

DEFAULT_PROCESS_TITLE = "Process steps"
DEFAULT_DEPARTMENT_COLOR = "#C7D2FE"
DEFAULT_ROLE_COLOR = "#C7D2FE"
NAME_MAX_LENGTH = 120
TITLE_MAX_LENGTH = 120


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


@dataclass(frozen=True)
class ResolvedRef:
    id: str


@dataclass(frozen=True)
class DraftRef:
    name: str


EntityRef = ResolvedRef | DraftRef


class Step(WireModel):
    id: str = Field(..., min_length=1)
    label: str = ""
    type: StepType
    department_id: Optional[str] = None
    draft_department_name: Optional[str] = None
    role_id: Optional[str] = None
    draft_role_name: Optional[str] = None
    yes_target_id: Optional[str] = None
    no_target_id: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def normalize_slots(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = dict(data)
        if isinstance(payload.get("id"), str):
            payload["id"] = payload["id"].strip()
        for python_name, wire_name in (
            ("department_id", "departmentId"),
            ("draft_department_name", "draftDepartmentName"),
            ("role_id", "roleId"),
            ("draft_role_name", "draftRoleName"),
            ("yes_target_id", "yesTargetId"),
            ("no_target_id", "noTargetId"),
        ):
            for key in (python_name, wire_name):
                if key in payload:
                    payload[key] = clean_optional(payload[key])
        return payload

    @model_validator(mode="after")
    def apply_slot_precedence(self) -> Step:
        # A persisted id always wins over a draft name for the same slot.
        if self.department_id is not None:
            self.draft_department_name = None
        if self.role_id is not None:
            self.draft_role_name = None
        if self.type != "decision":
            self.yes_target_id = None
            self.no_target_id = None
        return self

    @property
    def department_ref(self) -> EntityRef | None:
        if self.department_id:
            return ResolvedRef(self.department_id)
        if self.draft_department_name:
            return DraftRef(self.draft_department_name)
        return None

    @property
    def role_ref(self) -> EntityRef | None:
        if self.role_id:
            return ResolvedRef(self.role_id)
        if self.draft_role_name:
            return DraftRef(self.draft_role_name)
        return None

    @property
    def has_drafts(self) -> bool:
        return self.draft_department_name is not None or self.draft_role_name is not None

    def branch_target(self, branch: BranchName) -> Optional[str]:
        return self.yes_target_id if branch == "yes" else self.no_target_id

    def to_persisted(self) -> PersistedStep:
        if self.has_drafts:
            msg = f"Step {self.id} still carries draft references"
            raise ValueError(msg)
        return PersistedStep(
            id=self.id,
            label=self.label,
            type=self.type,
            department_id=self.department_id,
            role_id=self.role_id,
            yes_target_id=self.yes_target_id,
            no_target_id=self.no_target_id,
        )


class PersistedStep(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1)
    label: str = ""
    type: StepType
    department_id: Optional[str] = None
    role_id: Optional[str] = None
    yes_target_id: Optional[str] = None
    no_target_id: Optional[str] = None

    def to_step(self) -> Step:
        return Step.model_validate(self.model_dump())


class Role(WireModel):
    id: str = Field(..., min_length=1)
    department_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    color: str = DEFAULT_ROLE_COLOR
    created_at: datetime
    updated_at: datetime

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @field_validator("color", mode="before")
    @classmethod
    def normalize_color(cls, value: object) -> str:
        return normalize_hex_color(value, DEFAULT_ROLE_COLOR)


class Department(WireModel):
    id: str = Field(..., min_length=1)
    organization_id: str = ""
    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    color: str = DEFAULT_DEPARTMENT_COLOR
    created_at: datetime
    updated_at: datetime
    roles: List[Role] = Field(default_factory=list)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @field_validator("color", mode="before")
    @classmethod
    def normalize_color(cls, value: object) -> str:
        return normalize_hex_color(value, DEFAULT_DEPARTMENT_COLOR)

    @field_validator("roles", mode="after")
    @classmethod
    def order_roles_by_name(cls, roles: List[Role]) -> List[Role]:
        return sorted(roles, key=lambda role: (role.name.lower(), role.id))


class ProcessRecord(WireModel):
    id: str = Field(..., min_length=1)
    organization_id: str = ""
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    steps: List[PersistedStep] = Field(..., min_length=2)
    updated_at: Optional[datetime] = None

    @field_validator("steps", mode="after")
    @classmethod
    def ensure_unique_step_ids(cls, steps: List[PersistedStep]) -> List[PersistedStep]:
        seen: Set[str] = set()
        for step in steps:
            if step.id in seen:
                msg = f"Duplicate step id found: {step.id}"
                raise ValueError(msg)
            seen.add(step.id)
        return steps


class DiagramOptions(BaseModel):
    direction: Literal["TD", "LR"] = "TD"
    group_by_department: bool = True
    show_departments: bool = True
    color_by_role: bool = True


def default_steps() -> List[Step]:
    return [
        Step(id="start", label="Start", type="start"),
        Step(id="finish", label="Finish", type="finish"),
    ]


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class Size:
    width: float
    height: float


@dataclass(frozen=True)
class PositionedNode:
    step_id: str
    step_type: str
    center: Point
    size: Size
    lines: tuple[str, ...]
    fill: str
    stroke: str
    role_name: str | None = None
    department_name: str | None = None

    @property
    def half_height(self) -> float:
        return self.size.height / 2

    @property
    def top(self) -> Point:
        return Point(self.center.x, self.center.y - self.half_height)

    @property
    def bottom(self) -> Point:
        return Point(self.center.x, self.center.y + self.half_height)


@dataclass(frozen=True)
class EdgePath:
    source_id: str
    target_id: str
    start: Point
    end: Point
    path: str


@dataclass(frozen=True)
class LayoutPlan:
    nodes: List[PositionedNode]
    edges: List[EdgePath]
    canvas: Size
    line_height: float = 26.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "canvas": {"width": self.canvas.width, "height": self.canvas.height},
            "lineHeight": self.line_height,
            "nodes": [
                {
                    "stepId": node.step_id,
                    "type": node.step_type,
                    "x": node.center.x,
                    "y": node.center.y,
                    "width": node.size.width,
                    "height": node.size.height,
                    "lines": list(node.lines),
                    "fill": node.fill,
                    "stroke": node.stroke,
                    "roleName": node.role_name,
                    "departmentName": node.department_name,
                }
                for node in self.nodes
            ],
            "edges": [
                {"source": edge.source_id, "target": edge.target_id, "path": edge.path}
                for edge in self.edges
            ],
        }
