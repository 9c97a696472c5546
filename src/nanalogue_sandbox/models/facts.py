# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

import time
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


def _now_ms() -> int:
    return int(time.time() * 1000)


class FileFact(BaseModel):
    """A data file referenced by executed code."""

    type: Literal["file"] = "file"
    filename: str
    round_id: str
    timestamp: int = Field(default_factory=_now_ms)


class FilterFact(BaseModel):
    """Filters applied during one execution round."""

    type: Literal["filter"] = "filter"
    description: str
    round_id: str
    timestamp: int = Field(default_factory=_now_ms)


class OutputFact(BaseModel):
    """A file written to the output directory."""

    type: Literal["output"] = "output"
    path: str
    round_id: str
    timestamp: int = Field(default_factory=_now_ms)


Fact = Annotated[Union[FileFact, FilterFact, OutputFact], Field(discriminator="type")]
