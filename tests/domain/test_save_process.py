from __future__ import annotations

import pytest

from adapters.filesystem.access_policy import FileSystemAccessPolicy
from domain.errors import AccessDeniedError, ProcessNotFoundError, ProcessValidationError
from domain.models import Step
from domain.services.draft_resolution import DraftResolver
from domain.services.manage_processes import ManageProcesses
from domain.services.save_process import SaveProcess, validate_steps, validate_title
from tests.helpers.process_fixtures import CountingStore, action, decision, finish, start


@pytest.fixture
def processes(store: CountingStore, access_policy: FileSystemAccessPolicy) -> ManageProcesses:
    return ManageProcesses(store, access_policy)


@pytest.fixture
def saver(store: CountingStore, access_policy: FileSystemAccessPolicy) -> SaveProcess:
    return SaveProcess(store, access_policy, DraftResolver(store))


def test_create_starts_with_default_steps(processes: ManageProcesses) -> None:
    record = processes.create("owner-1", "org-1")

    assert record.title == "Process steps"
    assert [step.type for step in record.steps] == ["start", "finish"]
    assert processes.load("member-1", record.id) == record


def test_save_materializes_drafts_and_persists_ids(
    processes: ManageProcesses, saver: SaveProcess, store: CountingStore
) -> None:
    record = processes.create("owner-1", "org-1", "Onboarding")
    steps = [
        start(),
        decision("check", "Signed?", yes_target_id="finish"),
        action("call", "Call customer", draft_department_name="Sales", draft_role_name="Rep"),
        finish(),
    ]

    saved = saver.save("owner-1", record.id, "  Onboarding v2 ", steps)

    assert saved.title == "Onboarding v2"
    department = store.list_departments("org-1")[0]
    assert department.name == "Sales"
    assert [role.name for role in department.roles] == ["Rep"]
    call = saved.steps[2]
    assert call.department_id == department.id
    assert call.role_id == department.roles[0].id
    assert saved.steps[1].yes_target_id == "finish"
    assert store.load_process(record.id) == saved


def test_members_cannot_save(
    processes: ManageProcesses, saver: SaveProcess, store: CountingStore
) -> None:
    record = processes.create("owner-1", "org-1")
    steps = [start(), action("a", draft_department_name="Sales"), finish()]

    with pytest.raises(AccessDeniedError):
        saver.save("member-1", record.id, "Title", steps)

    assert store.department_batches == []


def test_outsiders_cannot_read(processes: ManageProcesses) -> None:
    record = processes.create("owner-1", "org-1")

    with pytest.raises(AccessDeniedError):
        processes.load("stranger", record.id)
    with pytest.raises(AccessDeniedError):
        processes.create("member-1", "org-1")


def test_validation_runs_before_any_draft_is_created(
    processes: ManageProcesses, saver: SaveProcess, store: CountingStore
) -> None:
    record = processes.create("owner-1", "org-1")
    steps = [start(), action("a", draft_department_name="Sales"), finish()]

    with pytest.raises(ProcessValidationError) as excinfo:
        saver.save("owner-1", record.id, "   ", steps)

    assert excinfo.value.rule == "title_required"
    assert store.department_batches == []
    assert store.list_departments("org-1") == []


def test_unknown_process_is_not_found(saver: SaveProcess) -> None:
    with pytest.raises(ProcessNotFoundError):
        saver.save("owner-1", "missing", "Title", [start(), finish()])


def test_rename_trims_title(processes: ManageProcesses) -> None:
    record = processes.create("owner-1", "org-1")

    renamed = processes.rename("owner-1", record.id, "  Hiring ")

    assert renamed.title == "Hiring"
    assert renamed.steps == record.steps


def test_list_is_scoped_to_the_organization(
    processes: ManageProcesses, access_policy: FileSystemAccessPolicy
) -> None:
    access_policy.grant("owner-1", "org-2", "admin")
    processes.create("owner-1", "org-1", "B process")
    processes.create("owner-1", "org-1", "a process")
    processes.create("owner-1", "org-2", "Other")

    assert [record.title for record in processes.list("member-1", "org-1")] == ["a process", "B process"]


@pytest.mark.parametrize(
    ("title", "rule"),
    [("", "title_required"), (None, "title_required"), ("x" * 121, "title_too_long")],
)
def test_title_rules(title: str | None, rule: str) -> None:
    with pytest.raises(ProcessValidationError) as excinfo:
        validate_title(title)

    assert excinfo.value.rule == rule


def test_title_at_the_limit_is_accepted() -> None:
    assert validate_title(" " + "x" * 120 + " ") == "x" * 120


@pytest.mark.parametrize(
    ("steps", "rule"),
    [
        ([start()], "min_steps"),
        ([start(), action("a"), action("a"), finish()], "duplicate_step_id"),
        ([start(), start("s2"), finish()], "single_start"),
        ([start(), finish(), finish("f2")], "single_finish"),
        ([action("a"), start(), finish()], "start_first"),
        ([start(), finish(), action("a")], "finish_last"),
    ],
)
def test_step_rules(steps: list[Step], rule: str) -> None:
    with pytest.raises(ProcessValidationError) as excinfo:
        validate_steps(steps)

    assert excinfo.value.rule == rule
