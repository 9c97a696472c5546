# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

"""Resource ceilings enforced from a trace hook inside the interpreter process."""

import sys
import time
import tracemalloc
from types import FrameType
from typing import Any

from nanalogue_sandbox.config import ResourceLimits
from nanalogue_sandbox.errors import LimitKind

SANDBOX_FILENAME = "<sandbox>"

# Trace events between two limit checks.
CHECK_INTERVAL = 256


def duration_message(limits: ResourceLimits) -> str:
    return f"time limit exceeded: code ran longer than {limits.max_duration_secs:g} seconds"


class LimitExceeded(BaseException):
    """Raised into interpreted code when a ceiling is crossed.

    Derives from BaseException so ``except Exception`` in interpreted code
    cannot swallow it.
    """

    def __init__(self, message: str, limit: LimitKind):
        super().__init__(message)
        self.message = message
        self.limit = limit


class LimitTracker:
    """Checks wall clock, traced memory and allocated blocks for one run.

    Only frames compiled from sandbox source are counted, so host-side helpers
    called from interpreted code are never interrupted.
    """

    def __init__(self, limits: ResourceLimits):
        self.limits = limits
        self.deadline = time.monotonic() + limits.max_duration_secs
        self.tripped: LimitExceeded | None = None
        self._events = 0
        self._memory_baseline = 0
        self._blocks_baseline = 0
        self._owns_tracemalloc = False

    def install(self) -> None:
        """Start tracing the calling thread."""
        if not tracemalloc.is_tracing():
            tracemalloc.start()
            self._owns_tracemalloc = True
        self._memory_baseline = tracemalloc.get_traced_memory()[0]
        self._blocks_baseline = sys.getallocatedblocks()
        sys.settrace(self._trace_call)

    def uninstall(self) -> None:
        sys.settrace(None)
        if self._owns_tracemalloc:
            tracemalloc.stop()
            self._owns_tracemalloc = False

    def _trace_call(self, frame: FrameType, event: str, arg: Any) -> Any:
        if frame.f_code.co_filename != SANDBOX_FILENAME:
            return None
        self._tick()
        return self._trace_line

    def _trace_line(self, frame: FrameType, event: str, arg: Any) -> Any:
        if event == "exception" and issubclass(arg[0], MemoryError):
            raise self.memory_exhausted()
        self._tick()
        return self._trace_line

    def _tick(self) -> None:
        self._events += 1
        if self._events % CHECK_INTERVAL == 0:
            self.check()

    def check(self) -> None:
        """Raise LimitExceeded when a ceiling has been crossed."""
        limits = self.limits
        if time.monotonic() > self.deadline:
            self._trip(LimitKind.DURATION, duration_message(limits))
        used = tracemalloc.get_traced_memory()[0] - self._memory_baseline
        if used > limits.max_memory_bytes:
            self._trip(
                LimitKind.MEMORY,
                f"memory limit exceeded: {used:,} bytes in use, limit is {limits.max_memory_bytes:,}",
            )
        blocks = sys.getallocatedblocks() - self._blocks_baseline
        if blocks > limits.max_allocations:
            self._trip(
                LimitKind.ALLOCATIONS,
                f"allocation limit exceeded: {blocks:,} live allocations, limit is {limits.max_allocations:,}",
            )

    def memory_exhausted(self) -> LimitExceeded:
        """Record a failed allocation as a memory limit trip."""
        if self.tripped is None:
            self.tripped = LimitExceeded(
                f"memory limit exceeded: allocation failed, limit is {self.limits.max_memory_bytes:,} bytes",
                LimitKind.MEMORY,
            )
        return self.tripped

    def overrun(self) -> LimitExceeded | None:
        """The tripped limit, or a duration trip if the run finished past its deadline."""
        if self.tripped is None and time.monotonic() > self.deadline:
            self.tripped = LimitExceeded(duration_message(self.limits), LimitKind.DURATION)
        return self.tripped

    def _trip(self, limit: LimitKind, message: str) -> None:
        self.tripped = LimitExceeded(message, limit)
        raise self.tripped
