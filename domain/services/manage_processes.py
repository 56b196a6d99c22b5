from __future__ import annotations

import logging

from domain.models import DEFAULT_PROCESS_TITLE, Department, ProcessRecord, default_steps
from domain.normalizers import normalize_process_title
from domain.ports.repositories import AccessPolicy, ProcessStore
from domain.services.access import require_manage, require_read
from domain.services.save_process import validate_title

logger = logging.getLogger(__name__)


class ManageProcesses:
    def __init__(self, store: ProcessStore, access_policy: AccessPolicy) -> None:
        self.store = store
        self.access_policy = access_policy

    def create(self, user_id: str, organization_id: str, title: str | None = None) -> ProcessRecord:
        require_manage(self.access_policy, user_id, organization_id)
        cleaned = validate_title(normalize_process_title(title, DEFAULT_PROCESS_TITLE))
        steps = [step.to_persisted() for step in default_steps()]
        record = self.store.create_process(organization_id, cleaned, steps)
        logger.info("Created process %s for organization %s", record.id, organization_id)
        return record

    def load(self, user_id: str, process_id: str) -> ProcessRecord:
        record = self.store.load_process(process_id)
        require_read(self.access_policy, user_id, record.organization_id)
        return record

    def list(self, user_id: str, organization_id: str) -> list[ProcessRecord]:
        require_read(self.access_policy, user_id, organization_id)
        return self.store.list_processes(organization_id)

    def rename(self, user_id: str, process_id: str, title: str | None) -> ProcessRecord:
        current = self.store.load_process(process_id)
        require_manage(self.access_policy, user_id, current.organization_id)
        return self.store.rename_process(process_id, validate_title(title))

    def departments(self, user_id: str, organization_id: str) -> list[Department]:
        require_read(self.access_policy, user_id, organization_id)
        return self.store.list_departments(organization_id)
