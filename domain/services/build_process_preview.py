from __future__ import annotations

import itertools
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from domain.colors import ColorPalette
from domain.models import Department, DiagramOptions, LayoutPlan, Role, Step
from domain.ports.layout import LayoutEngine
from domain.services.branch_resolution import BranchLabels, ResolvedEdge, resolve_edges
from domain.services.compile_definition import DefinitionCompiler
from domain.services.entity_lookup import EntityLookup
from domain.services.step_sequence import merge_draft_entities

DRAFT_ID_PREFIX = "draft-"


@dataclass(frozen=True)
class ProcessPreview:
    definition: str
    layout: LayoutPlan
    edges: list[ResolvedEdge]

    def to_dict(self) -> dict[str, Any]:
        return {
            "definition": self.definition,
            "layout": self.layout.to_dict(),
            "edges": [
                {
                    "source": edge.source_id,
                    "target": edge.target_id,
                    "branch": edge.branch,
                    "fallback": edge.is_fallback,
                }
                for edge in self.edges
            ],
        }


class BuildProcessPreview:
    """Compile the definition, layout and edges of an unsaved step list.

    Draft department and role names are merged into the entity snapshot first,
    so draft steps are grouped and colored the same way they will be after save.
    """

    def __init__(
        self,
        layout_engine: LayoutEngine,
        labels: BranchLabels | None = None,
        palette: ColorPalette | None = None,
    ) -> None:
        self.layout_engine = layout_engine
        self.labels = labels or BranchLabels()
        self.palette = palette or ColorPalette()

    def build(
        self,
        steps: Sequence[Step],
        departments: Sequence[Department],
        options: DiagramOptions | None = None,
        roles: Sequence[Role] | None = None,
    ) -> ProcessPreview:
        options = options or DiagramOptions()
        counter = itertools.count(1)
        merged = merge_draft_entities(
            steps,
            departments,
            self.palette,
            id_factory=lambda: f"{DRAFT_ID_PREFIX}{next(counter)}",
        )
        lookup = EntityLookup.build(merged, roles)
        compiler = DefinitionCompiler(options, self.labels)
        return ProcessPreview(
            definition=compiler.compile(steps, merged, roles),
            layout=self.layout_engine.compute_layout(steps, lookup, options),
            edges=resolve_edges(steps),
        )
