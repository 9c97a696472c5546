# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

from typing import Any, Protocol

from nanalogue_sandbox.errors import ErrorKind, SandboxError
from nanalogue_sandbox.models.options import ReadOptions, WindowOptions


class DataAccess(Protocol):
    """Alignment-file readers exposed to sandbox code.

    Paths handed to these methods are already confined to the allowed
    directory. Implementations may raise any exception; the registry maps it
    onto an interpreter exception kind.
    """

    async def peek(self, bam_path: str) -> Any: ...  # pragma: no cover

    async def read_info(self, options: ReadOptions) -> list[Any]: ...  # pragma: no cover

    async def bam_mods(self, options: ReadOptions) -> list[Any]: ...  # pragma: no cover

    async def window_reads(self, options: WindowOptions) -> str:
        """Return windowed modification data as JSON text."""
        ...  # pragma: no cover

    async def seq_table(self, options: ReadOptions) -> str:
        """Return a tab-separated sequence table."""
        ...  # pragma: no cover


NOT_CONFIGURED_MESSAGE = "Alignment data access is not configured"


class UnconfiguredDataAccess:
    """Stand-in used when the host provides no alignment reader."""

    async def peek(self, bam_path: str) -> Any:
        raise SandboxError(ErrorKind.RUNTIME_ERROR, NOT_CONFIGURED_MESSAGE)

    async def read_info(self, options: ReadOptions) -> list[Any]:
        raise SandboxError(ErrorKind.RUNTIME_ERROR, NOT_CONFIGURED_MESSAGE)

    async def bam_mods(self, options: ReadOptions) -> list[Any]:
        raise SandboxError(ErrorKind.RUNTIME_ERROR, NOT_CONFIGURED_MESSAGE)

    async def window_reads(self, options: WindowOptions) -> str:
        raise SandboxError(ErrorKind.RUNTIME_ERROR, NOT_CONFIGURED_MESSAGE)

    async def seq_table(self, options: ReadOptions) -> str:
        raise SandboxError(ErrorKind.RUNTIME_ERROR, NOT_CONFIGURED_MESSAGE)
