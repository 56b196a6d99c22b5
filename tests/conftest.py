from __future__ import annotations

import os
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from adapters.filesystem.access_policy import FileSystemAccessPolicy
from app.config import AppSettings, DiagramSettings, LayoutSettings, StoreSettings
from tests.helpers.process_fixtures import CountingStore


def _clear_pflow_env() -> None:
    for key in list(os.environ):
        if key.startswith("PFLOW_"):
            os.environ.pop(key, None)


_clear_pflow_env()


@pytest.fixture(autouse=True)
def clear_pflow_env() -> Generator[None, None, None]:
    _clear_pflow_env()
    yield
    _clear_pflow_env()


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    return tmp_path / "store"


@pytest.fixture
def store(store_root: Path) -> CountingStore:
    return CountingStore(store_root)


@pytest.fixture
def access_policy(store_root: Path) -> FileSystemAccessPolicy:
    policy = FileSystemAccessPolicy(store_root)
    policy.grant("owner-1", "org-1", "owner")
    policy.grant("member-1", "org-1", "member")
    return policy


@pytest.fixture
def diagram_settings() -> DiagramSettings:
    return DiagramSettings()


@pytest.fixture
def diagram_settings_factory(diagram_settings: DiagramSettings) -> Callable[..., DiagramSettings]:
    def _factory(**overrides: object) -> DiagramSettings:
        return diagram_settings.model_copy(update=overrides)

    return _factory


@pytest.fixture
def app_settings(store_root: Path, diagram_settings: DiagramSettings) -> AppSettings:
    return AppSettings(
        store=StoreSettings(root_dir=store_root),
        diagram=diagram_settings,
        layout=LayoutSettings(),
    )


@pytest.fixture
def app_settings_factory(
    store_root: Path,
    diagram_settings_factory: Callable[..., DiagramSettings],
) -> Callable[..., AppSettings]:
    def _factory(**overrides: object) -> AppSettings:
        return AppSettings(
            store=StoreSettings(root_dir=store_root),
            diagram=diagram_settings_factory(**overrides),
        )

    return _factory
