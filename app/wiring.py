from __future__ import annotations

from dataclasses import dataclass

from adapters.filesystem.access_policy import FileSystemAccessPolicy
from adapters.filesystem.process_store import FileSystemProcessStore
from adapters.layout.vertical_stack import VerticalStackLayoutEngine
from app.config import AppSettings
from domain.ports.repositories import AccessPolicy, ProcessStore
from domain.services.build_process_preview import BuildProcessPreview
from domain.services.draft_resolution import DraftResolver
from domain.services.manage_processes import ManageProcesses
from domain.services.save_process import SaveProcess


@dataclass(frozen=True)
class Services:
    store: ProcessStore
    access_policy: AccessPolicy
    processes: ManageProcesses
    saver: SaveProcess
    preview: BuildProcessPreview


def build_layout_engine(settings: AppSettings) -> VerticalStackLayoutEngine:
    return VerticalStackLayoutEngine(
        settings.layout.to_layout_config(),
        settings.diagram.to_metadata_labels(),
    )


def build_preview(settings: AppSettings) -> BuildProcessPreview:
    return BuildProcessPreview(
        build_layout_engine(settings),
        settings.diagram.to_branch_labels(),
        settings.diagram.to_palette(),
    )


def build_services(
    settings: AppSettings,
    store: ProcessStore | None = None,
    access_policy: AccessPolicy | None = None,
) -> Services:
    store = store or FileSystemProcessStore(settings.store.root_dir)
    access_policy = access_policy or FileSystemAccessPolicy(settings.store.root_dir)
    resolver = DraftResolver(store, settings.diagram.to_palette())
    return Services(
        store=store,
        access_policy=access_policy,
        processes=ManageProcesses(store, access_policy),
        saver=SaveProcess(store, access_policy, resolver),
        preview=build_preview(settings),
    )
