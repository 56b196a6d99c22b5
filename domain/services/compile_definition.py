from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from domain.colors import CLUSTER_FILL_OPACITY, FALLBACK_STEP_FILL_ALPHA, blend_hex
from domain.models import DEFAULT_DEPARTMENT_COLOR, Department, DiagramOptions, Role, Step
from domain.normalizers import is_hex_color, step_display_label, step_type_placeholder
from domain.services.branch_resolution import BranchLabels, ResolvedEdge, resolve_edges
from domain.services.entity_lookup import EntityLookup
from domain.services.label_wrapping import escape_html, wrap_step_label

TEXT_COLOR = "#0F172A"
DEFAULT_STROKE = "#0F172A"
BASE_FILL = "#FFFFFF"
DEPARTMENT_TOKEN_PREFIX = "dept_"
FALLBACK_TOKEN_PREFIX = "n_"
DECISION_CLASS = "decision"
STEP_CLASS = "step"

_NON_IDENTIFIER = re.compile(r"[^A-Za-z0-9]")
_RESERVED_TOKENS = frozenset(
    {
        "end",
        "subgraph",
        "graph",
        "flowchart",
        "direction",
        "style",
        "classdef",
        "class",
        "click",
        "linkstyle",
        "default",
        "call",
        "href",
    }
)


def sanitize_token(value: str) -> str:
    return _NON_IDENTIFIER.sub("_", value)


def step_token(step_id: str) -> str:
    token = sanitize_token(step_id)
    if (
        not token
        or token[0].isdigit()
        or token.lower() in _RESERVED_TOKENS
        or token.startswith(DEPARTMENT_TOKEN_PREFIX)
        or token.startswith(FALLBACK_TOKEN_PREFIX)
    ):
        token = f"{FALLBACK_TOKEN_PREFIX}{token}"
    return token


def department_token(department_id: str) -> str:
    return f"{DEPARTMENT_TOKEN_PREFIX}{sanitize_token(department_id)}"


def _unique(token: str, used: set[str]) -> str:
    if token not in used:
        used.add(token)
        return token
    suffix = 2
    while f"{token}_{suffix}" in used:
        suffix += 1
    unique = f"{token}_{suffix}"
    used.add(unique)
    return unique


def assign_tokens(steps: Sequence[Step]) -> dict[str, str]:
    used: set[str] = set()
    tokens: dict[str, str] = {}
    for step in steps:
        if step.id in tokens:
            continue
        tokens[step.id] = _unique(step_token(step.id), used)
    return tokens


@dataclass(frozen=True)
class _Block:
    token: str
    department: Department
    declarations: list[str]


class DefinitionCompiler:
    def __init__(
        self,
        options: DiagramOptions | None = None,
        labels: BranchLabels | None = None,
    ) -> None:
        self.options = options or DiagramOptions()
        self.labels = labels or BranchLabels()

    def compile(
        self,
        steps: Sequence[Step],
        departments: Sequence[Department],
        roles: Sequence[Role] | None = None,
    ) -> str:
        header = f"flowchart {self.options.direction}"
        if not steps:
            return header

        lookup = EntityLookup.build(departments, roles)
        tokens = assign_tokens(steps)
        class_by_token: dict[str, str] = {}
        role_classes: dict[str, str] = {}
        for step in steps:
            class_by_token[tokens[step.id]] = self._class_for_step(step, lookup, role_classes)

        lines = [header]
        lines.append(f"classDef {DECISION_CLASS} {self._class_style(None)};")
        lines.append(f"classDef {STEP_CLASS} {self._class_style(None)};")
        for class_name, color in role_classes.items():
            lines.append(f"classDef {class_name} {self._class_style(color)};")

        node_lines, block_styles = self._node_declarations(steps, tokens, lookup)
        lines.extend(node_lines)
        lines.extend(self._edge_declarations(resolve_edges(steps), tokens))
        lines.extend(f"class {token} {class_name};" for token, class_name in class_by_token.items())
        lines.extend(block_styles)
        return "\n".join(lines)

    def _class_for_step(self, step: Step, lookup: EntityLookup, role_classes: dict[str, str]) -> str:
        if step.type == "decision":
            return DECISION_CLASS
        if self.options.color_by_role:
            role = lookup.step_role(step)
            if role is not None and is_hex_color(role.color):
                class_name = f"role_{role.color.upper().lstrip('#')}"
                role_classes.setdefault(class_name, role.color.upper())
                return class_name
        return STEP_CLASS

    def _class_style(self, color: str | None) -> str:
        fill = blend_hex(color, FALLBACK_STEP_FILL_ALPHA, BASE_FILL) if color else BASE_FILL
        stroke = color or DEFAULT_STROKE
        return f"fill:{fill},stroke:{stroke},color:{TEXT_COLOR},stroke-width:2px"

    def _node_declaration(self, step: Step, token: str) -> str:
        lines = wrap_step_label(
            step_display_label(step.label, step.type),
            placeholder=step_type_placeholder(step.type),
        )
        label = "<br/>".join(escape_html(line) for line in lines)
        if step.type == "action":
            return f'{token}["{label}"]'
        if step.type == "decision":
            return f'{token}{{"{label}"}}'
        return f'{token}(["{label}"])'

    def _node_declarations(
        self,
        steps: Sequence[Step],
        tokens: dict[str, str],
        lookup: EntityLookup,
    ) -> tuple[list[str], list[str]]:
        grouped = self.options.group_by_department
        blocks: dict[str, _Block] = {}
        department_by_step: dict[str, Department] = {}
        if grouped:
            used = set(tokens.values())
            for step in steps:
                department = lookup.step_department(step)
                if department is None:
                    continue
                department_by_step[step.id] = department
                block = blocks.get(department.id)
                if block is None:
                    block = _Block(
                        token=_unique(department_token(department.id), used),
                        department=department,
                        declarations=[],
                    )
                    blocks[department.id] = block
                block.declarations.append(self._node_declaration(step, tokens[step.id]))

        lines: list[str] = []
        emitted: set[str] = set()
        block_direction = "TB" if self.options.direction == "TD" else self.options.direction
        for step in steps:
            department = department_by_step.get(step.id)
            if department is None:
                lines.append(self._node_declaration(step, tokens[step.id]))
                continue
            if department.id in emitted:
                continue
            emitted.add(department.id)
            block = blocks[department.id]
            lines.append(f'subgraph {block.token}["{self._block_label(department.name)}"]')
            lines.append(f"  direction {block_direction}")
            lines.extend(f"  {declaration}" for declaration in block.declarations)
            lines.append("end")

        styles = [self._block_style(block) for block in blocks.values()]
        return lines, styles

    def _block_label(self, name: str) -> str:
        return escape_html(name.strip() or "Department")

    def _block_style(self, block: _Block) -> str:
        color = block.department.color if is_hex_color(block.department.color) else DEFAULT_DEPARTMENT_COLOR
        return (
            f"style {block.token} fill:{color},stroke:{color},color:{TEXT_COLOR},"
            f"stroke-width:2px,fill-opacity:{CLUSTER_FILL_OPACITY};"
        )

    def _edge_declarations(self, edges: Sequence[ResolvedEdge], tokens: dict[str, str]) -> list[str]:
        declarations: list[str] = []
        index = 0
        while index < len(edges):
            edge = edges[index]
            following = edges[index + 1] if index + 1 < len(edges) else None
            source = tokens[edge.source_id]
            target = tokens[edge.target_id]
            if edge.branch is None:
                declarations.append(f"{source} --> {target}")
                index += 1
                continue
            if (
                following is not None
                and following.source_id == edge.source_id
                and following.branch is not None
                and following.target_id == edge.target_id
            ):
                label = f"{self._edge_label(self.labels.yes)}/{self._edge_label(self.labels.no)}"
                declarations.append(f"{source} -->|{label}| {target}")
                index += 2
                continue
            label = self._edge_label(self.labels.label_for(edge.branch))
            declarations.append(f"{source} -->|{label}| {target}")
            index += 1
        return declarations

    def _edge_label(self, value: str) -> str:
        return escape_html(value.replace("|", "/"))
