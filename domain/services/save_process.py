from __future__ import annotations

import logging
from collections.abc import Sequence
from collections import Counter

from domain.errors import ProcessValidationError
from domain.models import TITLE_MAX_LENGTH, ProcessRecord, Step
from domain.ports.repositories import AccessPolicy, ProcessStore
from domain.services.access import require_manage
from domain.services.draft_resolution import DraftResolver

logger = logging.getLogger(__name__)

MIN_STEPS = 2


def validate_title(title: str | None) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ProcessValidationError("title_required", "The title must contain at least one character")
    if len(cleaned) > TITLE_MAX_LENGTH:
        msg = f"The title cannot exceed {TITLE_MAX_LENGTH} characters"
        raise ProcessValidationError("title_too_long", msg)
    return cleaned


def validate_steps(steps: Sequence[Step]) -> None:
    if len(steps) < MIN_STEPS:
        msg = f"A process needs at least {MIN_STEPS} steps"
        raise ProcessValidationError("min_steps", msg)

    duplicates = sorted(step_id for step_id, count in Counter(s.id for s in steps).items() if count > 1)
    if duplicates:
        msg = f"Duplicate step ids: {', '.join(duplicates)}"
        raise ProcessValidationError("duplicate_step_id", msg, step_id=duplicates[0])

    types = Counter(step.type for step in steps)
    if types["start"] != 1:
        msg = f"A process needs exactly one start step, found {types['start']}"
        raise ProcessValidationError("single_start", msg)
    if types["finish"] != 1:
        msg = f"A process needs exactly one finish step, found {types['finish']}"
        raise ProcessValidationError("single_finish", msg)
    if steps[0].type != "start":
        raise ProcessValidationError("start_first", "The start step must come first", step_id=steps[0].id)
    if steps[-1].type != "finish":
        raise ProcessValidationError("finish_last", "The finish step must come last", step_id=steps[-1].id)


class SaveProcess:
    def __init__(
        self,
        store: ProcessStore,
        access_policy: AccessPolicy,
        resolver: DraftResolver | None = None,
    ) -> None:
        self.store = store
        self.access_policy = access_policy
        self.resolver = resolver or DraftResolver(store)

    def save(
        self,
        user_id: str,
        process_id: str,
        title: str | None,
        steps: Sequence[Step],
    ) -> ProcessRecord:
        current = self.store.load_process(process_id)
        organization_id = current.organization_id
        require_manage(self.access_policy, user_id, organization_id)

        cleaned_title = validate_title(title)
        validate_steps(steps)

        resolution = self.resolver.resolve(organization_id, steps)
        record = self.store.write_process(process_id, cleaned_title, resolution.persisted_steps())
        logger.info(
            "Saved process %s with %d step(s) for organization %s",
            process_id,
            len(record.steps),
            organization_id,
        )
        return record
