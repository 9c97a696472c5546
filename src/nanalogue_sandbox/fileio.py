# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

"""Paginated reads and no-overwrite writes for sandbox code."""

import os
from typing import Any

import aiofiles  # type: ignore[import-untyped]
import aiofiles.os  # type: ignore[import-untyped]

from nanalogue_sandbox.config import (
    AI_CHAT_OUTPUT_DIR,
    DEFAULT_MAX_READ_BYTES,
    DEFAULT_MAX_WRITE_BYTES,
    MAX_FILENAME_LENGTH,
)
from nanalogue_sandbox.confinement import assert_inside, outside_message, resolve_path
from nanalogue_sandbox.errors import ErrorKind, SandboxError
from nanalogue_sandbox.models.files import ReadFileResult, WriteFileResult
from nanalogue_sandbox.utils.logger import logger


def _require_non_negative_int(name: str, value: Any) -> int:
    # bool is an int subclass; floats are never coerced.
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise SandboxError(
            ErrorKind.VALUE_ERROR,
            f"read_file: {name} must be a non-negative integer, got {value}",
        )
    return value


def _has_control_chars(text: str) -> bool:
    return any(ord(char) < 0x20 or ord(char) == 0x7F for char in text)


async def read_file(
    allowed_dir: str,
    file_path: str,
    offset: Any = 0,
    max_bytes: Any = DEFAULT_MAX_READ_BYTES,
) -> ReadFileResult:
    """Read up to max_bytes of a file starting at offset.

    Repeated calls with increasing offsets page through files of any size;
    the length is clamped to DEFAULT_MAX_READ_BYTES.

    Raises:
        SandboxError: VALUE_ERROR for bad offset/max_bytes, OS_ERROR for paths
            outside the allowed directory or directories.
    """
    offset = _require_non_negative_int("offset", offset)
    requested = min(_require_non_negative_int("max_bytes", max_bytes), DEFAULT_MAX_READ_BYTES)
    resolved = resolve_path(allowed_dir, file_path)
    if await aiofiles.os.path.isdir(resolved):
        raise SandboxError(ErrorKind.OS_ERROR, f'read_file: "{file_path}" is a directory')

    async with aiofiles.open(resolved, "rb") as f:
        total_size = os.fstat(f.fileno()).st_size
        if offset >= total_size:
            data = b""
        else:
            await f.seek(offset)
            data = await f.read(requested)

    return ReadFileResult(
        content=data.decode("utf-8", errors="replace"),
        bytes_read=len(data),
        total_size=total_size,
        offset=offset,
    )


def _validate_components(file_path: str) -> None:
    for component in file_path.split("/"):
        if len(component) > MAX_FILENAME_LENGTH:
            raise SandboxError(
                ErrorKind.VALUE_ERROR,
                f'Filename component "{component[:50]}..." exceeds {MAX_FILENAME_LENGTH} character limit',
            )
        if _has_control_chars(component):
            raise SandboxError(ErrorKind.VALUE_ERROR, f"Filename {component!r} contains control characters")


async def write_file(allowed_dir: str, file_path: str, content: Any) -> WriteFileResult:
    """Create a new text file under the output directory.

    The target is confined to ``<allowed_dir>/ai_chat_output`` and re-resolved
    against allowed_dir, so a symlinked output directory cannot redirect the
    write. Existing files are never replaced.

    Raises:
        SandboxError: VALUE_ERROR for bad names or content, OS_ERROR for
            escapes, FILE_EXISTS_ERROR when the target already exists.
    """
    if not isinstance(file_path, str):
        raise SandboxError(ErrorKind.VALUE_ERROR, f"write_file: path must be a string, got {type(file_path).__name__}")
    if not isinstance(content, str):
        raise SandboxError(
            ErrorKind.VALUE_ERROR, f"write_file: content must be a string, got {type(content).__name__}"
        )
    _validate_components(file_path)
    encoded = content.encode("utf-8")
    if len(encoded) > DEFAULT_MAX_WRITE_BYTES:
        raise SandboxError(
            ErrorKind.VALUE_ERROR,
            f"Content size {len(encoded)} bytes exceeds write limit of {DEFAULT_MAX_WRITE_BYTES} bytes "
            f"({DEFAULT_MAX_WRITE_BYTES // (1024 * 1024)} MB)",
        )

    output_dir = os.path.join(allowed_dir, AI_CHAT_OUTPUT_DIR)
    tentative = os.path.normpath(os.path.join(output_dir, file_path))
    assert_inside(output_dir, tentative, outside_message(file_path))
    if tentative == os.path.normpath(output_dir):
        raise SandboxError(ErrorKind.VALUE_ERROR, "write_file: path must name a file")

    relative = os.path.relpath(tentative, allowed_dir)
    # Confirm the parent chain stays inside before creating anything.
    parent = resolve_path(allowed_dir, os.path.dirname(relative))
    await aiofiles.os.makedirs(parent, exist_ok=True)
    resolved = resolve_path(allowed_dir, relative)

    try:
        async with aiofiles.open(resolved, "x", encoding="utf-8", newline="") as f:
            await f.write(content)
    except FileExistsError as e:
        raise SandboxError(
            ErrorKind.FILE_EXISTS_ERROR,
            f'File "{file_path}" already exists in {AI_CHAT_OUTPUT_DIR}/. Choose a different name.',
        ) from e

    logger.info("Wrote sandbox output file", path=file_path, bytes_written=len(encoded))
    return WriteFileResult(path=f"{AI_CHAT_OUTPUT_DIR}/{file_path}", bytes_written=len(encoded))
