from __future__ import annotations

from pathlib import Path

import orjson
import pytest

from adapters.filesystem.access_policy import FileSystemAccessPolicy
from adapters.filesystem.process_store import FileSystemProcessStore
from domain.errors import (
    DraftConflictError,
    PersistenceError,
    ProcessNotFoundError,
    ReferenceIntegrityError,
)
from domain.models import PersistedStep
from domain.ports.repositories import NewDepartmentRow, NewRoleRow
from tests.helpers.process_fixtures import sequential_ids


@pytest.fixture
def fs_store(tmp_path: Path) -> FileSystemProcessStore:
    return FileSystemProcessStore(tmp_path / "store", id_factory=sequential_ids("id"))


def _steps() -> list[PersistedStep]:
    return [PersistedStep(id="start", label="Start", type="start"), PersistedStep(id="finish", type="finish")]


def test_departments_are_created_and_listed_by_name(fs_store: FileSystemProcessStore) -> None:
    created = fs_store.batch_create_departments(
        "org-1",
        [NewDepartmentRow(name="Sales", color="#bbf7d0"), NewDepartmentRow(name="Ops", color="#C7D2FE")],
    )

    assert [department.id for department in created] == ["id-1", "id-2"]
    assert created[0].color == "#BBF7D0"
    assert [department.name for department in fs_store.list_departments("org-1")] == ["Ops", "Sales"]
    assert fs_store.list_departments("org-2") == []
    payload = orjson.loads((fs_store.root_dir / "organizations" / "org-1" / "departments.json").read_bytes())
    assert {item["organizationId"] for item in payload["departments"]} == {"org-1"}


def test_department_batch_is_all_or_nothing(fs_store: FileSystemProcessStore) -> None:
    fs_store.batch_create_departments("org-1", [NewDepartmentRow(name="Sales", color="#BBF7D0")])

    with pytest.raises(DraftConflictError) as excinfo:
        fs_store.batch_create_departments(
            "org-1",
            [NewDepartmentRow(name="Ops", color="#C7D2FE"), NewDepartmentRow(name=" SALES", color="#C7D2FE")],
        )

    assert excinfo.value.names == [" SALES"]
    assert [department.name for department in fs_store.list_departments("org-1")] == ["Sales"]


def test_duplicate_names_within_a_batch_conflict(fs_store: FileSystemProcessStore) -> None:
    with pytest.raises(DraftConflictError):
        fs_store.batch_create_departments(
            "org-1",
            [NewDepartmentRow(name="Ops", color="#C7D2FE"), NewDepartmentRow(name="ops", color="#C7D2FE")],
        )

    assert fs_store.list_departments("org-1") == []


def test_same_name_in_another_organization_is_allowed(fs_store: FileSystemProcessStore) -> None:
    fs_store.batch_create_departments("org-1", [NewDepartmentRow(name="Ops", color="#C7D2FE")])

    created = fs_store.batch_create_departments("org-2", [NewDepartmentRow(name="Ops", color="#C7D2FE")])

    assert created[0].organization_id == "org-2"


def test_roles_are_unique_per_department(fs_store: FileSystemProcessStore) -> None:
    ops, sales = fs_store.batch_create_departments(
        "org-1",
        [NewDepartmentRow(name="Ops", color="#C7D2FE"), NewDepartmentRow(name="Sales", color="#BBF7D0")],
    )
    fs_store.batch_create_roles(
        "org-1",
        [
            NewRoleRow(department_id=ops.id, name="Lead", color="#F97316"),
            NewRoleRow(department_id=sales.id, name="Lead", color="#F97316"),
        ],
    )

    with pytest.raises(DraftConflictError) as excinfo:
        fs_store.batch_create_roles("org-1", [NewRoleRow(department_id=ops.id, name="lead", color="#F97316")])

    assert excinfo.value.entity == "role"
    assert [role.name for role in fs_store.list_roles(ops.id)] == ["Lead"]
    assert [role.department_id for role in fs_store.list_roles(sales.id)] == [sales.id]


def test_roles_need_a_department_of_the_organization(fs_store: FileSystemProcessStore) -> None:
    (ops,) = fs_store.batch_create_departments("org-1", [NewDepartmentRow(name="Ops", color="#C7D2FE")])

    with pytest.raises(ReferenceIntegrityError):
        fs_store.batch_create_roles("org-2", [NewRoleRow(department_id=ops.id, name="Lead", color="#F97316")])


def test_process_lifecycle(fs_store: FileSystemProcessStore) -> None:
    created = fs_store.create_process("org-1", "Onboarding", _steps())

    loaded = fs_store.load_process(created.id)
    assert loaded == created

    steps = [_steps()[0], PersistedStep(id="a", label="Call", type="action"), _steps()[1]]
    written = fs_store.write_process(created.id, "Onboarding v2", steps)
    assert [step.id for step in fs_store.load_process(created.id).steps] == ["start", "a", "finish"]
    assert written.organization_id == "org-1"

    renamed = fs_store.rename_process(created.id, "Hiring")
    assert renamed.title == "Hiring"
    assert fs_store.load_process(created.id).steps == steps
    assert [record.id for record in fs_store.list_processes("org-1")] == [created.id]
    assert fs_store.list_processes("org-2") == []


@pytest.mark.parametrize("process_id", ["missing", "../escape", ""])
def test_unknown_process_is_not_found(fs_store: FileSystemProcessStore, process_id: str) -> None:
    with pytest.raises(ProcessNotFoundError):
        fs_store.load_process(process_id)


def test_io_failures_become_persistence_errors(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    store = FileSystemProcessStore(blocker)

    with pytest.raises(PersistenceError):
        store.batch_create_departments("org-1", [NewDepartmentRow(name="Ops", color="#C7D2FE")])


def test_corrupted_files_are_persistence_errors(fs_store: FileSystemProcessStore) -> None:
    path = fs_store.root_dir / "organizations" / "org-1" / "departments.json"
    path.parent.mkdir(parents=True)
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(PersistenceError):
        fs_store.list_departments("org-1")


def test_invalid_process_files_are_persistence_errors(fs_store: FileSystemProcessStore) -> None:
    path = fs_store.root_dir / "processes" / "broken.json"
    path.parent.mkdir(parents=True)
    path.write_text('{"id": "broken", "steps": "nope"}', encoding="utf-8")

    with pytest.raises(PersistenceError):
        fs_store.load_process("broken")
    with pytest.raises(PersistenceError):
        fs_store.list_processes("org-1")


def test_access_policy_roles(tmp_path: Path) -> None:
    policy = FileSystemAccessPolicy(tmp_path)
    policy.grant("alice", "org-1", "Owner")
    policy.grant("bob", "org-1", "member")

    assert policy.can_manage("alice", "org-1")
    assert policy.can_read("bob", "org-1")
    assert not policy.can_manage("bob", "org-1")
    assert not policy.can_read("alice", "org-2")
    assert not policy.can_read("", "org-1")
