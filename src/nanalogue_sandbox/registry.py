# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

"""Host functions callable from sandbox code.

Every entry is wrapped so that any host exception surfaces as a SandboxError
carrying the interpreter exception kind to raise.
"""

import functools
import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import anyio

from nanalogue_sandbox.config import DEFAULT_MAX_READ_BYTES, MAX_LS_ENTRIES, ResourceLimits
from nanalogue_sandbox.confinement import resolve_path
from nanalogue_sandbox.data_access import DataAccess
from nanalogue_sandbox.errors import ErrorKind, SandboxError, to_sandbox_error
from nanalogue_sandbox.fileio import read_file, write_file
from nanalogue_sandbox.limiters import enforce_data_size_limit, enforce_record_limit
from nanalogue_sandbox.listing import list_files
from nanalogue_sandbox.models.options import ReadOptions, WindowOptions, build_options, reject_treat_as_url
from nanalogue_sandbox.utils.logger import logger

HostFunction = Callable[..., Awaitable[Any]]

LS_CAP_MESSAGE = (
    f"Listing capped at {MAX_LS_ENTRIES} entries. "
    "Use a glob pattern to narrow results (e.g. ls('**/*.bam'))."
)


class PrintBuffer:
    """Collects printed segments up to a byte cap; later prints are dropped."""

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes
        self.segments: list[str] = []
        self.size = 0
        self.dropped = 0

    def write(self, text: str) -> None:
        size = len(text.encode("utf-8"))
        if self.size + size > self.max_bytes:
            self.dropped += 1
            return
        self.segments.append(text)
        self.size += size


@dataclass
class ExecutionContext:
    """State scoped to a single sandbox run."""

    allowed_dir: str
    limits: ResourceLimits
    prints: PrintBuffer = field(init=False)
    continue_thinking_called: bool = False

    def __post_init__(self) -> None:
        self.prints = PrintBuffer(self.limits.max_print_bytes)


def wrap_host_function(name: str, fn: HostFunction) -> HostFunction:
    """Normalise every exception raised by fn into a SandboxError."""

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await fn(*args, **kwargs)
        except SandboxError:
            raise
        except Exception as e:
            error = to_sandbox_error(e)
            logger.debug("Host function failed", function=name, kind=error.kind.value, error=error.message)
            raise error from e

    return wrapper


def _merge_options(options: Any, kwargs: dict[str, Any]) -> dict[str, Any]:
    # Options may arrive as a dict positional argument, as keywords, or both.
    if options is None:
        return dict(kwargs)
    if not isinstance(options, dict):
        raise SandboxError(ErrorKind.VALUE_ERROR, f"options must be a dict, got {type(options).__name__}")
    return {**options, **kwargs}


def build_registry(context: ExecutionContext, data_access: DataAccess) -> dict[str, HostFunction]:
    """Build the external function table for one run.

    Args:
        context: Per-run state; paths are confined to context.allowed_dir.
        data_access: The alignment readers backing the data functions.

    Returns:
        A mapping from function name to wrapped async callable.
    """
    allowed_dir = context.allowed_dir
    limits = context.limits

    async def continue_thinking() -> None:
        context.continue_thinking_called = True
        return None

    async def peek(bam_path: str, options: Any = None, **kwargs: Any) -> Any:
        merged = _merge_options(options, kwargs)
        reject_treat_as_url(merged)
        merged.pop("treat_as_url", None)
        if merged:
            raise SandboxError(ErrorKind.VALUE_ERROR, f"peek does not accept options: {', '.join(sorted(merged))}")
        resolved = resolve_path(allowed_dir, bam_path)
        return await data_access.peek(resolved)

    def _read_options(bam_path: str, options: Any, kwargs: dict[str, Any], max_records: int) -> ReadOptions:
        merged = _merge_options(options, kwargs)
        reject_treat_as_url(merged)
        resolved = resolve_path(allowed_dir, bam_path)
        return build_options(ReadOptions, resolved, merged, max_records)

    async def read_info(bam_path: str, options: Any = None, **kwargs: Any) -> list[Any]:
        max_records = limits.max_records_read_info
        records = await data_access.read_info(_read_options(bam_path, options, kwargs, max_records))
        enforce_record_limit(records, "read_info", max_records)
        return records

    async def bam_mods(bam_path: str, options: Any = None, **kwargs: Any) -> list[Any]:
        max_records = limits.max_records_bam_mods
        records = await data_access.bam_mods(_read_options(bam_path, options, kwargs, max_records))
        enforce_record_limit(records, "bam_mods", max_records)
        return records

    async def window_reads(bam_path: str, options: Any = None, **kwargs: Any) -> list[Any]:
        max_records = limits.max_records_window_reads
        merged = _merge_options(options, kwargs)
        reject_treat_as_url(merged)
        resolved = resolve_path(allowed_dir, bam_path)
        text = await data_access.window_reads(build_options(WindowOptions, resolved, merged, max_records))
        records = json.loads(text)
        if not isinstance(records, list):
            raise SandboxError(ErrorKind.RUNTIME_ERROR, "window_reads returned non-array JSON")
        enforce_record_limit(records, "window_reads", max_records)
        return records

    async def seq_table(bam_path: str, options: Any = None, **kwargs: Any) -> str:
        max_records = limits.max_records_seq_table
        tsv = await data_access.seq_table(_read_options(bam_path, options, kwargs, max_records))
        return enforce_data_size_limit(tsv, "seq_table", limits.max_output_bytes)

    async def ls(pattern: Any = None) -> Any:
        if pattern is not None and not isinstance(pattern, str):
            raise SandboxError(ErrorKind.VALUE_ERROR, f"ls: pattern must be a string, got {type(pattern).__name__}")
        listing = await anyio.to_thread.run_sync(list_files, allowed_dir, pattern)
        if listing.capped:
            return {"files": listing.files, "_truncated": {"message": LS_CAP_MESSAGE, "cap": MAX_LS_ENTRIES}}
        return listing.files

    async def read_file_(file_path: str, offset: Any = 0, max_bytes: Any = DEFAULT_MAX_READ_BYTES) -> dict[str, Any]:
        result = await read_file(allowed_dir, file_path, offset=offset, max_bytes=max_bytes)
        return result.model_dump()

    async def write_file_(file_path: str, content: Any) -> dict[str, Any]:
        result = await write_file(allowed_dir, file_path, content)
        return result.model_dump()

    functions: dict[str, HostFunction] = {
        "peek": peek,
        "read_info": read_info,
        "bam_mods": bam_mods,
        "window_reads": window_reads,
        "seq_table": seq_table,
        "ls": ls,
        "read_file": read_file_,
        "write_file": write_file_,
        "continue_thinking": continue_thinking,
    }
    return {name: wrap_host_function(name, fn) for name, fn in functions.items()}
