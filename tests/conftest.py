# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

import os
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from nanalogue_sandbox.config import ResourceLimits
from nanalogue_sandbox.registry import ExecutionContext


@pytest.fixture
def allowed_dir(tmp_path: Path) -> str:
    root = tmp_path / "allowed"
    root.mkdir()
    return os.path.realpath(root)


@pytest.fixture
def outside_dir(tmp_path: Path) -> str:
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "secret.txt").write_text("top secret")
    return os.path.realpath(outside)


@pytest.fixture
def limits() -> ResourceLimits:
    return ResourceLimits()


@pytest.fixture
def context(allowed_dir: str, limits: ResourceLimits) -> ExecutionContext:
    return ExecutionContext(allowed_dir=allowed_dir, limits=limits)


@pytest.fixture
def mock_data_access() -> Any:
    data_access = MagicMock()
    data_access.peek = AsyncMock(return_value={"contigs": {"chr1": 1000}, "modifications": []})
    data_access.read_info = AsyncMock(return_value=[{"read_id": "r1", "length": 100}])
    data_access.bam_mods = AsyncMock(return_value=[{"read_id": "r1", "mods": []}])
    data_access.window_reads = AsyncMock(return_value='[{"read_id": "r1", "win": 0.5}]')
    data_access.seq_table = AsyncMock(return_value="read_id\tseq\nr1\tACGT\n")
    return data_access
