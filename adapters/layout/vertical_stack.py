from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import List

from domain.colors import FALLBACK_STEP_FILL_ALPHA, to_rgba
from domain.models import (
    TERMINAL_STEP_TYPES,
    DiagramOptions,
    EdgePath,
    LayoutPlan,
    Point,
    PositionedNode,
    Size,
    Step,
)
from domain.normalizers import step_display_label, step_type_placeholder
from domain.ports.layout import LayoutEngine
from domain.services.branch_resolution import BranchLabels, branch_summaries
from domain.services.entity_lookup import EntityLookup
from domain.services.label_wrapping import MAX_CHARS_PER_LINE, wrap_step_label


@dataclass(frozen=True)
class LayoutConfig:
    canvas_width: float = 900.0
    horizontal_padding: float = 64.0
    vertical_padding: float = 120.0
    stack_spacing: float = 80.0
    char_width: float = 9.0
    line_height: float = 26.0
    min_width: float = 180.0
    max_width: float = 320.0
    content_padding_y: float = 36.0
    min_terminal_height: float = 80.0
    min_action_height: float = 88.0
    min_decision_height: float = 120.0
    curve_offset: float = 48.0
    max_chars_per_line: int = MAX_CHARS_PER_LINE
    fill_alpha: float = FALLBACK_STEP_FILL_ALPHA
    terminal_fill: str = "#F8FAFC"
    step_fill: str = "#FFFFFF"
    ink_color: str = "#0F172A"

    @property
    def center_x(self) -> float:
        return self.canvas_width / 2


@dataclass(frozen=True)
class MetadataLabels:
    role_prefix: str = "Role"
    department_prefix: str = "Department"
    default_role_name: str = "Unassigned"
    default_department_name: str = "Unassigned"
    branches: BranchLabels = BranchLabels()


@dataclass(frozen=True)
class _NodeText:
    lines: List[str]
    role_name: str | None
    department_name: str | None
    color: str | None


class VerticalStackLayoutEngine(LayoutEngine):
    def __init__(
        self,
        config: LayoutConfig | None = None,
        labels: MetadataLabels | None = None,
    ) -> None:
        self.config = config or LayoutConfig()
        self.labels = labels or MetadataLabels()

    def compute_layout(
        self,
        steps: Sequence[Step],
        lookup: EntityLookup,
        options: DiagramOptions,
    ) -> LayoutPlan:
        config = self.config
        nodes: List[PositionedNode] = []
        previous: PositionedNode | None = None

        for step in steps:
            text = self._node_text(step, steps, lookup, options)
            size = self._node_size(step.type, text.lines)
            half_height = size.height / 2
            if previous is None:
                center_y = config.vertical_padding + half_height
            else:
                center_y = previous.center.y + previous.half_height + config.stack_spacing + half_height
            base_fill = config.terminal_fill if step.type in TERMINAL_STEP_TYPES else config.step_fill
            node = PositionedNode(
                step_id=step.id,
                step_type=step.type,
                center=Point(config.center_x, center_y),
                size=size,
                lines=tuple(text.lines),
                fill=to_rgba(text.color, config.fill_alpha, base_fill) if text.color else base_fill,
                stroke=text.color or config.ink_color,
                role_name=text.role_name,
                department_name=text.department_name,
            )
            nodes.append(node)
            previous = node

        edges = [self._edge_path(source, target) for source, target in zip(nodes, nodes[1:])]
        if nodes:
            last = nodes[-1]
            canvas_height = last.center.y + last.half_height + config.vertical_padding
        else:
            canvas_height = config.vertical_padding * 2
        return LayoutPlan(
            nodes=nodes,
            edges=edges,
            canvas=Size(config.canvas_width, canvas_height),
            line_height=config.line_height,
        )

    def _node_text(
        self,
        step: Step,
        steps: Sequence[Step],
        lookup: EntityLookup,
        options: DiagramOptions,
    ) -> _NodeText:
        labels = self.labels
        lines = wrap_step_label(
            step_display_label(step.label, step.type),
            max_chars=self.config.max_chars_per_line,
            placeholder=step_type_placeholder(step.type),
        )
        role = lookup.step_role(step)
        department = lookup.step_department(step)
        role_name = role.name if role else step.draft_role_name
        department_name = department.name if department else step.draft_department_name

        metadata = [f"{labels.role_prefix}: {role_name or labels.default_role_name}"]
        if options.show_departments:
            metadata.append(
                f"{labels.department_prefix}: {department_name or labels.default_department_name}"
            )
        lines.append("")
        lines.extend(metadata)

        summaries = branch_summaries(step, steps, labels.branches)
        if summaries:
            lines.append("")
            lines.extend(summaries)

        color: str | None = None
        if options.color_by_role and role is not None:
            color = role.color
        if color is None and options.show_departments and department is not None:
            color = department.color
        return _NodeText(
            lines=lines,
            role_name=role_name,
            department_name=department_name if options.show_departments else None,
            color=color,
        )

    def _node_size(self, step_type: str, lines: Sequence[str]) -> Size:
        config = self.config
        longest = max((len(line) for line in lines), default=0)
        raw_width = longest * config.char_width + config.horizontal_padding
        width = min(config.max_width, max(config.min_width, raw_width))
        height = max(len(lines), 1) * config.line_height + config.content_padding_y
        if step_type == "action":
            height = max(height, config.min_action_height)
        elif step_type == "decision":
            height = max(height, config.min_decision_height)
        else:
            height = max(height, config.min_terminal_height)
        return Size(width, height)

    def _edge_path(self, source: PositionedNode, target: PositionedNode) -> EdgePath:
        offset = self.config.curve_offset
        start = source.bottom
        end = target.top
        path = (
            f"M {_fmt(start.x)} {_fmt(start.y)} "
            f"C {_fmt(start.x)} {_fmt(start.y + offset)} "
            f"{_fmt(end.x)} {_fmt(end.y - offset)} "
            f"{_fmt(end.x)} {_fmt(end.y)}"
        )
        return EdgePath(
            source_id=source.step_id,
            target_id=target.step_id,
            start=start,
            end=end,
            path=path,
        )


def _fmt(value: float) -> str:
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return text or "0"
