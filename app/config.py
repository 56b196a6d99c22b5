from __future__ import annotations

import os
from pathlib import Path
from typing import ClassVar, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import PydanticBaseSettingsSource, YamlConfigSettingsSource

from adapters.layout.vertical_stack import LayoutConfig, MetadataLabels
from domain.colors import DEFAULT_PALETTE, FALLBACK_STEP_FILL_ALPHA, ColorPalette
from domain.models import DiagramOptions
from domain.normalizers import is_hex_color, normalize_hex_color
from domain.services.branch_resolution import BranchLabels
from domain.services.label_wrapping import MAX_CHARS_PER_LINE

DEFAULT_CONFIG_PATH = Path("config/app.yaml")


class StoreSettings(BaseModel):
    root_dir: Path = Path("data/store")


class DiagramSettings(BaseModel):
    direction: Literal["TD", "LR"] = "TD"
    group_by_department: bool = True
    show_departments: bool = True
    color_by_role: bool = True
    yes_label: str = "Yes"
    no_label: str = "No"
    role_prefix: str = "Role"
    department_prefix: str = "Department"
    unassigned_label: str = "Unassigned"
    palette: list[str] = Field(default_factory=lambda: list(DEFAULT_PALETTE))

    @field_validator("direction", mode="before")
    @classmethod
    def normalize_direction(cls, value: object) -> str:
        raw = str(value or "TD").strip().upper()
        return "TD" if raw == "TB" else raw

    @field_validator("palette", mode="before")
    @classmethod
    def normalize_palette(cls, value: object) -> list[str]:
        if value is None or value == "":
            return list(DEFAULT_PALETTE)
        items = value.split(",") if isinstance(value, str) else list(value)  # type: ignore[call-overload]
        colors = [str(item).strip() for item in items if str(item).strip()]
        invalid = [color for color in colors if not is_hex_color(color)]
        if invalid:
            msg = f"diagram.palette contains invalid colors: {', '.join(invalid)}"
            raise ValueError(msg)
        return [normalize_hex_color(color, color) for color in colors] or list(DEFAULT_PALETTE)

    def to_options(self) -> DiagramOptions:
        return DiagramOptions(
            direction=self.direction,
            group_by_department=self.group_by_department,
            show_departments=self.show_departments,
            color_by_role=self.color_by_role,
        )

    def to_branch_labels(self) -> BranchLabels:
        return BranchLabels(yes=self.yes_label, no=self.no_label)

    def to_metadata_labels(self) -> MetadataLabels:
        return MetadataLabels(
            role_prefix=self.role_prefix,
            department_prefix=self.department_prefix,
            default_role_name=self.unassigned_label,
            default_department_name=self.unassigned_label,
            branches=self.to_branch_labels(),
        )

    def to_palette(self) -> ColorPalette:
        return ColorPalette(tuple(self.palette))


class LayoutSettings(BaseModel):
    canvas_width: float = Field(default=900.0, gt=0)
    horizontal_padding: float = Field(default=64.0, ge=0)
    vertical_padding: float = Field(default=120.0, ge=0)
    stack_spacing: float = Field(default=80.0, ge=0)
    char_width: float = Field(default=9.0, gt=0)
    line_height: float = Field(default=26.0, gt=0)
    min_width: float = Field(default=180.0, gt=0)
    max_width: float = Field(default=320.0, gt=0)
    content_padding_y: float = Field(default=36.0, ge=0)
    min_terminal_height: float = Field(default=80.0, gt=0)
    min_action_height: float = Field(default=88.0, gt=0)
    min_decision_height: float = Field(default=120.0, gt=0)
    max_chars_per_line: int = Field(default=MAX_CHARS_PER_LINE, ge=4)
    fill_alpha: float = Field(default=FALLBACK_STEP_FILL_ALPHA, ge=0, le=1)

    def to_layout_config(self) -> LayoutConfig:
        return LayoutConfig(**self.model_dump())


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PFLOW_", env_nested_delimiter="__")

    store: StoreSettings = StoreSettings()
    diagram: DiagramSettings = DiagramSettings()
    layout: LayoutSettings = LayoutSettings()

    _yaml_path: ClassVar[Path | None] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: list[PydanticBaseSettingsSource] = [
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        ]
        if cls._yaml_path:
            sources.append(YamlConfigSettingsSource(settings_cls, yaml_file=cls._yaml_path))
        return tuple(sources)


def load_settings(config_path: Path | None = None) -> AppSettings:
    env_path = os.getenv("PFLOW_CONFIG_PATH")
    resolved_path: Path | None = None

    if config_path is not None:
        resolved_path = config_path
    elif env_path:
        resolved_path = Path(env_path)
    elif DEFAULT_CONFIG_PATH.exists():
        resolved_path = DEFAULT_CONFIG_PATH

    previous = AppSettings._yaml_path
    try:
        if resolved_path is not None:
            if not resolved_path.exists():
                msg = f"Config file not found: {resolved_path}"
                raise FileNotFoundError(msg)
            AppSettings._yaml_path = resolved_path
        return AppSettings()
    finally:
        AppSettings._yaml_path = previous
