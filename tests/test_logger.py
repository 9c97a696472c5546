# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

import json
from pathlib import Path
from typing import Iterator

import pytest

from nanalogue_sandbox.utils.logger import configure_logging, logger


@pytest.fixture(autouse=True)
def restore_default_sinks() -> Iterator[None]:
    yield
    configure_logging()


def test_stderr_only_by_default(capsys: pytest.CaptureFixture[str]) -> None:
    # GIVEN logging configured without a directory
    configure_logging("INFO")

    # WHEN we log a message
    logger.info("Sandbox message", run_id="abc")

    # THEN it appears on stderr with its extra fields
    err = capsys.readouterr().err
    assert "Sandbox message" in err
    assert "abc" in err
    assert len(logger._core.handlers) == 1


def test_file_sink_writes_json(tmp_path: Path) -> None:
    # GIVEN logging configured with a directory
    log_dir = tmp_path / "logs"
    configure_logging("DEBUG", log_dir)
    assert len(logger._core.handlers) == 2

    # WHEN we log and flush the queued file sink
    logger.debug("Written to file", path="out.txt")
    logger.complete()
    logger.remove()

    # THEN the record is serialized as JSON
    lines = (log_dir / "app.log").read_text().splitlines()
    record = json.loads(lines[-1])["record"]
    assert record["message"] == "Written to file"
    assert record["extra"]["path"] == "out.txt"


def test_level_filters_messages(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging("WARNING")
    logger.info("hidden")
    logger.warning("shown")
    err = capsys.readouterr().err
    assert "hidden" not in err
    assert "shown" in err
