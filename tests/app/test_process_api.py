from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from adapters.filesystem.access_policy import FileSystemAccessPolicy
from app.config import AppSettings
from app.web_main import create_app
from domain.errors import DraftConflictError, PersistenceError
from domain.models import Department, ProcessRecord
from domain.ports.repositories import NewDepartmentRow
from tests.helpers.process_fixtures import CountingStore

OWNER = {"X-User-Id": "owner-1"}
MEMBER = {"X-User-Id": "member-1"}


def _steps_payload() -> list[dict[str, Any]]:
    return [
        {"id": "start", "label": "Start", "type": "start"},
        {"id": "check", "label": "Signed?", "type": "decision", "yesTargetId": "finish"},
        {
            "id": "call",
            "label": "Call customer",
            "type": "action",
            "draftDepartmentName": "Sales",
            "draftRoleName": "Rep",
        },
        {"id": "finish", "label": "Finish", "type": "finish"},
    ]


@pytest.fixture
def client(
    app_settings: AppSettings,
    store: CountingStore,
    access_policy: FileSystemAccessPolicy,
) -> TestClient:
    return TestClient(create_app(app_settings, store=store, access_policy=access_policy))


def _create_process(client: TestClient) -> dict[str, Any]:
    response = client.post("/api/processes", json={"organizationId": "org-1"}, headers=OWNER)
    assert response.status_code == 201
    return response.json()


def test_create_and_read_process(client: TestClient) -> None:
    created = _create_process(client)

    response = client.get(f"/api/processes/{created['id']}", headers=MEMBER)

    assert response.status_code == 200
    assert response.json()["title"] == "Process steps"
    assert [step["type"] for step in response.json()["steps"]] == ["start", "finish"]


def test_save_materializes_drafts(client: TestClient) -> None:
    created = _create_process(client)

    response = client.put(
        f"/api/processes/{created['id']}",
        json={"title": "Onboarding", "steps": _steps_payload()},
        headers=OWNER,
    )

    assert response.status_code == 200
    call = response.json()["steps"][2]
    assert call["departmentId"]
    assert call["roleId"]
    assert "draftDepartmentName" not in call
    departments = client.get("/api/organizations/org-1/departments", headers=MEMBER).json()["departments"]
    assert [(item["name"], [role["name"] for role in item["roles"]]) for item in departments] == [
        ("Sales", ["Rep"])
    ]


def test_rename_and_list(client: TestClient) -> None:
    created = _create_process(client)

    response = client.patch(f"/api/processes/{created['id']}", json={"title": " Hiring "}, headers=OWNER)

    assert response.json()["title"] == "Hiring"
    listed = client.get("/api/organizations/org-1/processes", headers=MEMBER).json()["processes"]
    assert [item["title"] for item in listed] == ["Hiring"]


def test_diagram_for_saved_process(client: TestClient) -> None:
    created = _create_process(client)
    client.put(
        f"/api/processes/{created['id']}",
        json={"title": "Onboarding", "steps": _steps_payload()},
        headers=OWNER,
    )

    diagram = client.get(f"/api/processes/{created['id']}/diagram", headers=MEMBER)
    svg = client.get(f"/api/processes/{created['id']}/diagram?format=svg", headers=MEMBER)

    assert diagram.status_code == 200
    payload = diagram.json()
    assert payload["definition"].startswith("flowchart TD")
    assert 'subgraph dept_' in payload["definition"]
    assert len(payload["layout"]["nodes"]) == 4
    assert svg.headers["content-type"].startswith("image/svg+xml")
    assert svg.text.startswith("<svg")


def test_preview_does_not_need_a_stored_process(client: TestClient) -> None:
    response = client.post(
        "/api/diagram/preview",
        json={"steps": _steps_payload(), "options": {"direction": "LR", "show_departments": False}},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["definition"].splitlines()[0] == "flowchart LR"
    assert payload["layout"]["nodes"][2]["lines"][-1] == "Role: Rep"


def test_preview_groups_new_draft_department(client: TestClient) -> None:
    response = client.post("/api/diagram/preview", json={"steps": _steps_payload()})

    assert response.status_code == 200
    payload = response.json()
    lines = payload["definition"].splitlines()
    assert 'subgraph dept_draft_1["Sales"]' in lines
    assert '  n_call["Call customer"]' in lines
    assert any(line.startswith("style dept_draft_1 ") for line in lines)
    assert payload["layout"]["nodes"][2]["departmentName"] == "Sales"


def test_missing_user_header_is_unauthorized(client: TestClient) -> None:
    assert client.get("/api/processes/anything").status_code == 401


def test_error_classes_map_to_statuses(client: TestClient) -> None:
    created = _create_process(client)
    url = f"/api/processes/{created['id']}"

    forbidden = client.put(url, json={"title": "T", "steps": _steps_payload()}, headers=MEMBER)
    assert forbidden.status_code == 403
    assert forbidden.json()["error"] == "forbidden"

    assert client.get("/api/processes/missing", headers=OWNER).status_code == 404

    invalid = client.put(url, json={"title": " ", "steps": _steps_payload()}, headers=OWNER)
    assert invalid.status_code == 422
    assert invalid.json()["rule"] == "title_required"

    orphan_role = [
        {"id": "start", "type": "start"},
        {"id": "a", "type": "action", "draftRoleName": "Rep"},
        {"id": "finish", "type": "finish"},
    ]
    orphan = client.put(url, json={"title": "T", "steps": orphan_role}, headers=OWNER)
    assert orphan.status_code == 422
    assert orphan.json() == {
        "error": "validation",
        "detail": "Role 'Rep' on step a has no department",
        "rule": "role_without_department",
        "stepId": "a",
    }

    unknown = [
        {"id": "start", "type": "start"},
        {"id": "a", "type": "action", "departmentId": "nope"},
        {"id": "finish", "type": "finish"},
    ]
    reference = client.put(url, json={"title": "T", "steps": unknown}, headers=OWNER)
    assert reference.status_code == 422
    assert reference.json()["error"] == "reference_integrity"


class RacingStore(CountingStore):
    def batch_create_departments(
        self, organization_id: str, rows: Sequence[NewDepartmentRow]
    ) -> list[Department]:
        raise DraftConflictError("department", [row.name for row in rows])


class UnavailableStore(CountingStore):
    def write_process(self, process_id: str, title: str, steps: Sequence[Any]) -> ProcessRecord:
        msg = "disk full"
        raise PersistenceError(msg)


@pytest.mark.parametrize(
    ("store_cls", "status", "kind"),
    [(RacingStore, 409, "conflict"), (UnavailableStore, 503, "persistence")],
)
def test_store_failures_map_to_statuses(
    app_settings: AppSettings,
    access_policy: FileSystemAccessPolicy,
    store_root: Path,
    store_cls: type[CountingStore],
    status: int,
    kind: str,
) -> None:
    client = TestClient(create_app(app_settings, store=store_cls(store_root), access_policy=access_policy))
    created = _create_process(client)

    response = client.put(
        f"/api/processes/{created['id']}",
        json={"title": "Onboarding", "steps": _steps_payload()},
        headers=OWNER,
    )

    assert response.status_code == status
    assert response.json()["error"] == kind
    if kind == "conflict":
        assert response.json()["names"] == ["Sales"]
