from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from domain.models import DiagramOptions, LayoutPlan, Step
from domain.services.entity_lookup import EntityLookup


class LayoutEngine(Protocol):
    def compute_layout(
        self,
        steps: Sequence[Step],
        lookup: EntityLookup,
        options: DiagramOptions,
    ) -> LayoutPlan:
        ...
