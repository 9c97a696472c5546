# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

import pytest

from nanalogue_sandbox.errors import ErrorKind, SandboxError
from nanalogue_sandbox.models.options import ReadOptions, WindowOptions, build_options, reject_treat_as_url


def test_default_limit_applied_when_missing() -> None:
    options = build_options(ReadOptions, "/data/a.bam", {"region": "chr1"}, 5_000)
    assert options.bam_path == "/data/a.bam"
    assert options.limit == 5_000
    assert options.region == "chr1"


def test_explicit_limit_is_kept() -> None:
    options = build_options(ReadOptions, "/data/a.bam", {"limit": 10}, 5_000)
    assert options.limit == 10


def test_window_options_accept_window_fields() -> None:
    options = build_options(WindowOptions, "/data/a.bam", {"win": 10, "step": 5, "win_op": "grad_density"}, 100)
    assert (options.win, options.step, options.win_op) == (10, 5, "grad_density")


def test_unknown_key_is_rejected() -> None:
    with pytest.raises(SandboxError) as exc_info:
        build_options(ReadOptions, "/data/a.bam", {"regoin": "chr1"})
    assert exc_info.value.kind == ErrorKind.VALUE_ERROR
    assert exc_info.value.message.startswith("Invalid options: regoin:")


def test_values_are_not_coerced() -> None:
    with pytest.raises(SandboxError, match="Invalid options: mapq_filter"):
        build_options(ReadOptions, "/data/a.bam", {"mapq_filter": "20"})


def test_unknown_window_operation_is_rejected() -> None:
    with pytest.raises(SandboxError, match="win_op"):
        build_options(WindowOptions, "/data/a.bam", {"win_op": "mean"})


def test_bam_path_cannot_be_overridden() -> None:
    with pytest.raises(SandboxError, match="bam_path is taken from the path argument"):
        build_options(ReadOptions, "/data/a.bam", {"bam_path": "/etc/passwd"})


def test_treat_as_url_is_refused() -> None:
    with pytest.raises(SandboxError) as exc_info:
        reject_treat_as_url({"treat_as_url": True})
    assert exc_info.value.kind == ErrorKind.OS_ERROR
    assert exc_info.value.message == "URL access is not permitted in sandbox"


def test_false_treat_as_url_is_dropped() -> None:
    reject_treat_as_url({"treat_as_url": False})
    options = build_options(ReadOptions, "/data/a.bam", {"treat_as_url": False})
    assert "treat_as_url" not in options.model_dump()
