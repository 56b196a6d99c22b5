from __future__ import annotations

from collections.abc import Iterable


class ProcessFlowError(Exception):
    kind = "error"


class ProcessValidationError(ProcessFlowError):
    """Input rejected before any persistence call."""

    kind = "validation"

    def __init__(self, rule: str, message: str, *, step_id: str | None = None) -> None:
        super().__init__(message)
        self.rule = rule
        self.message = message
        self.step_id = step_id


class ReferenceIntegrityError(ProcessValidationError):
    """A step names a department or role the organization does not own."""

    kind = "reference_integrity"


class DraftConflictError(ProcessFlowError):
    """A concurrent writer created an entity with the same normalized name.

    Never retried automatically; the caller re-reads state and resubmits.
    """

    kind = "conflict"

    def __init__(self, entity: str, names: Iterable[str]) -> None:
        self.entity = entity
        self.names = sorted(set(names))
        joined = ", ".join(self.names)
        super().__init__(f"{entity.capitalize()} name already exists: {joined}")


class AccessDeniedError(ProcessFlowError):
    kind = "forbidden"


class ProcessNotFoundError(ProcessFlowError):
    kind = "not_found"


class PersistenceError(ProcessFlowError):
    """Transient or unknown store failure."""

    kind = "persistence"
