from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Literal, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import ORJSONResponse, Response
from pydantic import Field

from app.config import AppSettings, load_settings
from app.wiring import Services, build_services
from domain.errors import DraftConflictError, ProcessFlowError, ProcessValidationError
from domain.models import Department, DiagramOptions, ProcessRecord, Role, Step, WireModel
from domain.ports.repositories import AccessPolicy, ProcessStore
from domain.services.render_layout_svg import render_layout_svg

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[str, int] = {
    "validation": 422,
    "reference_integrity": 422,
    "conflict": 409,
    "forbidden": 403,
    "not_found": 404,
    "persistence": 503,
}


class CreateProcessPayload(WireModel):
    organization_id: str = Field(..., min_length=1)
    title: Optional[str] = None


class SaveProcessPayload(WireModel):
    title: Optional[str] = None
    steps: List[Step] = Field(default_factory=list)


class RenamePayload(WireModel):
    title: Optional[str] = None


class PreviewPayload(WireModel):
    steps: List[Step] = Field(..., min_length=1)
    departments: List[Department] = Field(default_factory=list)
    roles: Optional[List[Role]] = None
    options: Optional[DiagramOptions] = None


@dataclass
class ApiContext:
    settings: AppSettings
    services: Services


def process_payload(record: ProcessRecord) -> dict[str, Any]:
    return record.to_wire()


def error_payload(exc: ProcessFlowError) -> dict[str, Any]:
    payload: dict[str, Any] = {"error": exc.kind, "detail": str(exc)}
    if isinstance(exc, ProcessValidationError):
        payload["rule"] = exc.rule
        if exc.step_id:
            payload["stepId"] = exc.step_id
    if isinstance(exc, DraftConflictError):
        payload["entity"] = exc.entity
        payload["names"] = list(exc.names)
    return payload


def create_app(
    settings: AppSettings,
    store: ProcessStore | None = None,
    access_policy: AccessPolicy | None = None,
) -> FastAPI:
    app = FastAPI(title="Process Flow")
    context = ApiContext(
        settings=settings,
        services=build_services(settings, store=store, access_policy=access_policy),
    )
    app.state.context = context

    def get_context(request: Request) -> ApiContext:
        return request.app.state.context

    def current_user(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str:
        user_id = (x_user_id or "").strip()
        if not user_id:
            raise HTTPException(status_code=401, detail="X-User-Id header is required")
        return user_id

    @app.exception_handler(ProcessFlowError)
    async def handle_process_flow_error(request: Request, exc: ProcessFlowError) -> ORJSONResponse:
        status = ERROR_STATUS.get(exc.kind, 500)
        if status >= 500:
            logger.error("Request %s %s failed: %s", request.method, request.url.path, exc)
        return ORJSONResponse(error_payload(exc), status_code=status)

    @app.post("/api/processes", status_code=201)
    def api_create_process(
        payload: CreateProcessPayload,
        user_id: str = Depends(current_user),
        context: ApiContext = Depends(get_context),
    ) -> ORJSONResponse:
        record = context.services.processes.create(user_id, payload.organization_id, payload.title)
        return ORJSONResponse(process_payload(record), status_code=201)

    @app.get("/api/organizations/{organization_id}/processes")
    def api_list_processes(
        organization_id: str,
        user_id: str = Depends(current_user),
        context: ApiContext = Depends(get_context),
    ) -> ORJSONResponse:
        records = context.services.processes.list(user_id, organization_id)
        return ORJSONResponse({"processes": [process_payload(record) for record in records]})

    @app.get("/api/processes/{process_id}")
    def api_get_process(
        process_id: str,
        user_id: str = Depends(current_user),
        context: ApiContext = Depends(get_context),
    ) -> ORJSONResponse:
        return ORJSONResponse(process_payload(context.services.processes.load(user_id, process_id)))

    @app.put("/api/processes/{process_id}")
    def api_save_process(
        process_id: str,
        payload: SaveProcessPayload,
        user_id: str = Depends(current_user),
        context: ApiContext = Depends(get_context),
    ) -> ORJSONResponse:
        record = context.services.saver.save(user_id, process_id, payload.title, payload.steps)
        return ORJSONResponse(process_payload(record))

    @app.patch("/api/processes/{process_id}")
    def api_rename_process(
        process_id: str,
        payload: RenamePayload,
        user_id: str = Depends(current_user),
        context: ApiContext = Depends(get_context),
    ) -> ORJSONResponse:
        record = context.services.processes.rename(user_id, process_id, payload.title)
        return ORJSONResponse(process_payload(record))

    @app.get("/api/processes/{process_id}/diagram")
    def api_process_diagram(
        process_id: str,
        output: Literal["json", "svg"] = Query(default="json", alias="format"),
        user_id: str = Depends(current_user),
        context: ApiContext = Depends(get_context),
    ) -> Response:
        services = context.services
        record = services.processes.load(user_id, process_id)
        departments = services.processes.departments(user_id, record.organization_id)
        preview = services.preview.build(
            [step.to_step() for step in record.steps],
            departments,
            context.settings.diagram.to_options(),
        )
        if output == "svg":
            return Response(render_layout_svg(preview.layout), media_type="image/svg+xml")
        return ORJSONResponse(preview.to_dict())

    @app.post("/api/diagram/preview")
    def api_preview(
        payload: PreviewPayload,
        context: ApiContext = Depends(get_context),
    ) -> ORJSONResponse:
        options = payload.options or context.settings.diagram.to_options()
        preview = context.services.preview.build(
            payload.steps, payload.departments, options, payload.roles
        )
        return ORJSONResponse(preview.to_dict())

    @app.get("/api/organizations/{organization_id}/departments")
    def api_departments(
        organization_id: str,
        user_id: str = Depends(current_user),
        context: ApiContext = Depends(get_context),
    ) -> ORJSONResponse:
        departments = context.services.processes.departments(user_id, organization_id)
        return ORJSONResponse({"departments": [item.to_wire() for item in departments]})

    return app


app = create_app(load_settings())
