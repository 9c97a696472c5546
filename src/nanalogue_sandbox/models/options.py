# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

"""Typed option bags for the alignment data functions.

Interpreted code passes snake_case keyword arguments; they are validated here
field by field and unknown keys are rejected.
"""

from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from nanalogue_sandbox.errors import ErrorKind, SandboxError


class ReadOptions(BaseModel):
    """Options shared by read_info, bam_mods, seq_table and window_reads."""

    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)

    bam_path: str
    limit: int | None = None
    offset: int | None = None
    sample_fraction: float | None = None
    sample_seed: int | None = None
    region: str | None = None
    full_region: bool | None = None
    min_seq_len: int | None = None
    min_align_len: int | None = None
    read_id_set: list[str] | None = None
    read_filter: str | None = None
    mapq_filter: int | None = None
    exclude_mapq_unavail: bool | None = None
    tag: str | None = None
    mod_strand: str | None = None
    min_mod_qual: int | None = None
    reject_mod_qual_non_inclusive: list[int] | None = None
    trim_read_ends_mod: int | None = None
    base_qual_filter_mod: int | None = None
    mod_region: str | None = None


class WindowOptions(ReadOptions):
    """Options for window_reads."""

    win: int | None = None
    step: int | None = None
    win_op: Literal["density", "grad_density"] | None = None


OptionsT = TypeVar("OptionsT", bound=ReadOptions)


def reject_treat_as_url(options: dict[str, Any]) -> None:
    """Refuse network access requested from sandbox code."""
    if options.get("treat_as_url"):
        raise SandboxError(ErrorKind.OS_ERROR, "URL access is not permitted in sandbox")


def build_options(
    model: type[OptionsT],
    resolved_path: str,
    options: dict[str, Any],
    default_limit: int | None = None,
) -> OptionsT:
    """Translate keyword arguments from sandbox code into a typed options model.

    Args:
        model: ReadOptions or WindowOptions.
        resolved_path: The confined absolute path of the BAM file.
        options: Keyword arguments passed by sandbox code.
        default_limit: Record limit applied when the caller gives none.

    Raises:
        SandboxError: VALUE_ERROR for unknown keys or badly typed values.
    """
    options = {key: value for key, value in options.items() if key != "treat_as_url"}
    if "bam_path" in options:
        raise SandboxError(ErrorKind.VALUE_ERROR, "bam_path is taken from the path argument")
    data = {**options, "bam_path": resolved_path}
    if data.get("limit") is None:
        data["limit"] = default_limit
    try:
        return model.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in e.errors()
        )
        raise SandboxError(ErrorKind.VALUE_ERROR, f"Invalid options: {problems}") from e
