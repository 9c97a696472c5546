# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

"""Results of the sandbox file operations."""

from pydantic import BaseModel, Field


class Listing(BaseModel):
    """Files found under the allowed directory, relative to it."""

    files: list[str] = Field(default_factory=list)
    capped: bool = False


class ReadFileResult(BaseModel):
    """A page of a file read from the allowed directory."""

    content: str
    bytes_read: int
    total_size: int
    offset: int


class WriteFileResult(BaseModel):
    """A file created in the output directory."""

    path: str
    bytes_written: int
