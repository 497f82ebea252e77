"""Visualization / table column configuration as stored on a template."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Alignment = Literal["Left", "Center", "Right"]
Format = Literal["Text", "Number", "Currency", "Percent"]
ColorScale = Literal[
    "Low green, high red",
    "Low red, high green",
    "Low green, high white",
    "Low white, high green",
]


class ColumnConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    alignment: Alignment = "Center"
    format: Format = "Text"
    decimal_places: int = Field(default=2, alias="decimalPlaces", ge=0, le=10)
    currency: str = "$ (USD)"
    conditional_formatting: bool = Field(default=False, alias="conditionalFormatting")
    color_scale: ColorScale = Field(default="Low green, high red", alias="colorScale")

    @field_validator("alignment", "format", mode="before")
    @classmethod
    def _capitalize(cls, v):
        return v.strip().capitalize() if isinstance(v, str) else v

    @field_validator("conditional_formatting", mode="before")
    @classmethod
    def _yes_no(cls, v):
        if isinstance(v, str):
            return v.strip().lower() in ("yes", "true", "1")
        return v


class VizConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str | None = None
    query_mode: str | None = Field(default=None, alias="queryMode")
    table_config: dict[str, dict] = Field(default_factory=dict, alias="tableConfig")

    @classmethod
    def from_json(cls, raw: dict | None) -> "VizConfig":
        """Lenient parse: a broken config renders with defaults instead of failing."""
        if not raw:
            return cls()
        try:
            return cls.model_validate(raw)
        except ValueError:
            return cls()

    def column(self, name: str) -> ColumnConfig:
        raw = self.table_config.get(name)
        if not raw:
            return ColumnConfig()
        try:
            return ColumnConfig.model_validate(raw)
        except ValueError:
            return ColumnConfig()
