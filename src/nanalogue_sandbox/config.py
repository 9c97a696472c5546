# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

import math
from typing import Any, Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Token estimation ---
BYTES_PER_TOKEN = 4
OUTPUT_BUDGET_FRACTION = 0.15

# --- Output size limits ---
MIN_OUTPUT_BYTES = 4 * 1024
MAX_OUTPUT_BYTES = 80 * 1024

# --- File operation limits ---
DEFAULT_MAX_READ_BYTES = 1024 * 1024
DEFAULT_MAX_WRITE_BYTES = 50 * 1024 * 1024
MAX_FILENAME_LENGTH = 255

# --- Listing and output directory ---
MAX_LS_ENTRIES = 500
AI_CHAT_OUTPUT_DIR = "ai_chat_output"

# --- Session facts ---
MAX_FACTS_BYTES = 2048

EXTERNAL_FUNCTIONS: tuple[str, ...] = (
    "peek",
    "read_info",
    "bam_mods",
    "window_reads",
    "seq_table",
    "ls",
    "read_file",
    "write_file",
    "continue_thinking",
)


class FieldSpec(NamedTuple):
    """Validation range for a numeric limit."""

    minimum: float
    maximum: float
    fallback: float
    label: str
    integral: bool = True


FIELD_SPECS: dict[str, FieldSpec] = {
    # Short enough to be interactive, long enough for whole-genome scans.
    "max_duration_secs": FieldSpec(1, 3600, 600, "max duration seconds", integral=False),
    "max_memory_mb": FieldSpec(16, 65_536, 512, "max memory MB"),
    "max_allocations": FieldSpec(10_000, 100_000_000, 1_000_000, "max allocations"),
    "max_output_bytes": FieldSpec(MIN_OUTPUT_BYTES, MAX_OUTPUT_BYTES, 20 * 1024, "max output bytes"),
    "max_records_read_info": FieldSpec(100, 1_000_000, 200_000, "max read_info records"),
    "max_records_bam_mods": FieldSpec(100, 100_000, 5_000, "max bam_mods records"),
    "max_records_window_reads": FieldSpec(100, 100_000, 5_000, "max window_reads records"),
    "max_records_seq_table": FieldSpec(100, 100_000, 5_000, "max seq_table records"),
    "max_print_bytes": FieldSpec(1024, 16 * 1024 * 1024, 1_048_576, "max print bytes"),
}


def validate_field_specs(specs: dict[str, FieldSpec]) -> None:
    """Check that every spec satisfies minimum <= fallback <= maximum.

    Raises:
        ValueError: If any spec is inconsistent.
    """
    for name, spec in specs.items():
        if spec.minimum > spec.maximum:
            raise ValueError(f"FIELD_SPECS.{name}: min ({spec.minimum}) > max ({spec.maximum})")
        if not spec.minimum <= spec.fallback <= spec.maximum:
            raise ValueError(
                f"FIELD_SPECS.{name}: fallback ({spec.fallback}) outside [{spec.minimum}, {spec.maximum}]"
            )


validate_field_specs(FIELD_SPECS)


def _coerce_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


class ResourceLimits(BaseModel):
    """Immutable per-invocation resource limits.

    Missing or non-numeric values fall back to the field default; numeric values
    outside the allowed range are rejected.
    """

    model_config = ConfigDict(frozen=True)

    max_duration_secs: float = FIELD_SPECS["max_duration_secs"].fallback
    max_memory_mb: int = int(FIELD_SPECS["max_memory_mb"].fallback)
    max_allocations: int = int(FIELD_SPECS["max_allocations"].fallback)
    max_output_bytes: int = int(FIELD_SPECS["max_output_bytes"].fallback)
    max_records_read_info: int = int(FIELD_SPECS["max_records_read_info"].fallback)
    max_records_bam_mods: int = int(FIELD_SPECS["max_records_bam_mods"].fallback)
    max_records_window_reads: int = int(FIELD_SPECS["max_records_window_reads"].fallback)
    max_records_seq_table: int = int(FIELD_SPECS["max_records_seq_table"].fallback)
    max_print_bytes: int = int(FIELD_SPECS["max_print_bytes"].fallback)

    @field_validator("*", mode="before")
    @classmethod
    def _apply_field_spec(cls, value: Any, info: ValidationInfo) -> float | int:
        spec = FIELD_SPECS[info.field_name]
        number = _coerce_number(value)
        if number is None:
            number = spec.fallback
        if spec.integral:
            number = round(number)
        if number < spec.minimum or number > spec.maximum:
            raise ValueError(
                f"{spec.label} must be between {spec.minimum:,} and {spec.maximum:,} (got {number:,})"
            )
        return number

    @property
    def max_memory_bytes(self) -> int:
        return self.max_memory_mb * 1024 * 1024


def derive_max_output_bytes(context_budget_tokens: int) -> int:
    """Derive an output budget from the model's context window.

    Uses 15% of the window (at ~4 bytes per token), clamped to
    [MIN_OUTPUT_BYTES, MAX_OUTPUT_BYTES].
    """
    derived = round(context_budget_tokens * BYTES_PER_TOKEN * OUTPUT_BUDGET_FRACTION)
    return max(MIN_OUTPUT_BYTES, min(MAX_OUTPUT_BYTES, derived))


class SandboxConfig(BaseSettings):
    """
    Configuration for the sandbox bridge.
    """

    limits: ResourceLimits = Field(default_factory=ResourceLimits)
    log_level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_dir: str | None = None

    model_config = SettingsConfigDict(
        env_prefix="NANALOGUE_SANDBOX_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )
