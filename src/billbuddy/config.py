"""Configuration models for the bill analysis workflow.

Each model maps to one section of ``configs/config.json`` and is injected
into workflow steps with ``ResourceConfig``.
"""

import json
import logging
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

CONFIG_FILE = "configs/config.json"
ANALYSIS_COLLECTION = "bill-analyses"


class ParseSettings(BaseModel):
    tier: str = "agentic"
    version: str = "latest"


class ParseConfig(BaseModel):
    """Settings for OCR parsing of uploaded bills."""

    settings: ParseSettings = ParseSettings()


class ExtractConfig(BaseModel):
    """Which LLM turns OCR text into a structured bill."""

    provider: Literal["openai", "anthropic"] = "openai"
    model: str | None = None
    temperature: float = 0.1
    max_tokens: int = 4000


class ReportConfig(BaseModel):
    """Which LLM writes the patient report and dispute documents."""

    provider: Literal["openai", "anthropic"] = "openai"
    model: str | None = None
    temperature: float = 0.3


class EquivalentCodeSet(BaseModel):
    """Codes that bill the same clinical service under different numbers."""

    name: str
    codes: list[str] = Field(min_length=2)
    description: str | None = None

    @field_validator("codes")
    @classmethod
    def _normalize(cls, codes: list[str]) -> list[str]:
        return [code.strip().upper() for code in codes]

    @property
    def key(self) -> str:
        return "/".join(sorted(self.codes))


DEFAULT_EQUIVALENT_CODE_SETS: list[EquivalentCodeSet] = [
    EquivalentCodeSet(
        name="ct_abdomen_pelvis",
        codes=["74176", "74177"],
        description="CT abdomen and pelvis billed with and without contrast",
    ),
    EquivalentCodeSet(
        name="medical_supplies",
        codes=["0270", "0272"],
        description="General and sterile medical/surgical supply revenue codes",
    ),
]


class ValidationConfig(BaseModel):
    """Policy and reference data for the validation engine."""

    overcharge_tolerance_percent: float = Field(default=0.0, ge=0)
    benchmark_overrides: dict[str, float] = {}
    equivalent_code_sets: list[EquivalentCodeSet] = DEFAULT_EQUIVALENT_CODE_SETS


def load_config_section(section: str, path: str | Path = CONFIG_FILE) -> dict:
    """Read one section of the JSON config file, or {} if the file is absent."""
    config_path = Path(path)
    if not config_path.exists():
        logger.info("Config file %s not found, using defaults", config_path)
        return {}
    config = json.loads(config_path.read_text())
    return config.get(section, {})


def load_validation_config(path: str | Path = CONFIG_FILE) -> ValidationConfig:
    return ValidationConfig.model_validate(load_config_section("validation", path))
