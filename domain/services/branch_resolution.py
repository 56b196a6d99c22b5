from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from domain.models import BranchName, Step
from domain.normalizers import step_display_label

BRANCHES: tuple[BranchName, ...] = ("yes", "no")
MISSING_TARGET_LABEL = "—"


@dataclass(frozen=True)
class ResolvedEdge:
    source_id: str
    target_id: str
    branch: BranchName | None = None
    is_fallback: bool = False


@dataclass(frozen=True)
class BranchLabels:
    yes: str = "Yes"
    no: str = "No"
    arrow: str = "→"

    def label_for(self, branch: BranchName) -> str:
        return self.yes if branch == "yes" else self.no


def live_branch_target(step: Step, branch: BranchName, step_ids: set[str]) -> str | None:
    target = step.branch_target(branch)
    if not target or target == step.id or target not in step_ids:
        return None
    return target


def has_live_override(step: Step, step_ids: set[str]) -> bool:
    if step.type != "decision":
        return False
    return any(live_branch_target(step, branch, step_ids) for branch in BRANCHES)


def resolve_edges(steps: Sequence[Step]) -> list[ResolvedEdge]:
    step_ids = {step.id for step in steps}
    edges: list[ResolvedEdge] = []

    for index, step in enumerate(steps):
        default_next = steps[index + 1].id if index + 1 < len(steps) else None

        if not has_live_override(step, step_ids):
            if default_next is not None:
                edges.append(ResolvedEdge(source_id=step.id, target_id=default_next))
            continue

        for branch in BRANCHES:
            target = live_branch_target(step, branch, step_ids)
            if target is not None:
                edges.append(ResolvedEdge(step.id, target, branch=branch))
            elif default_next is not None:
                # Unknown or absent targets fall back to the sequential edge.
                edges.append(ResolvedEdge(step.id, default_next, branch=branch, is_fallback=True))
    return edges


def resolve_branch_target(steps: Sequence[Step], step_id: str, branch: BranchName) -> str | None:
    for index, step in enumerate(steps):
        if step.id != step_id:
            continue
        target = live_branch_target(step, branch, {item.id for item in steps})
        if target is not None:
            return target
        return steps[index + 1].id if index + 1 < len(steps) else None
    return None


def branch_summaries(
    step: Step,
    steps: Sequence[Step],
    labels: BranchLabels | None = None,
) -> list[str]:
    if step.type != "decision":
        return []
    labels = labels or BranchLabels()
    by_id = {item.id: item for item in steps}
    summaries: list[str] = []
    for branch in BRANCHES:
        target_id = resolve_branch_target(steps, step.id, branch)
        target = by_id.get(target_id) if target_id else None
        target_label = (
            step_display_label(target.label, target.type) if target else MISSING_TARGET_LABEL
        )
        summaries.append(f"{labels.label_for(branch)} {labels.arrow} {target_label}")
    return summaries
