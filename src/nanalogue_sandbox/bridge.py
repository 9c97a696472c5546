# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

import asyncio
import functools
from typing import Any

import anyio

from nanalogue_sandbox.cancel import CancelToken
from nanalogue_sandbox.config import ResourceLimits, SandboxConfig
from nanalogue_sandbox.data_access import DataAccess, UnconfiguredDataAccess
from nanalogue_sandbox.errors import ErrorKind, FailureKind, LimitKind, SandboxCancelledError, SandboxError
from nanalogue_sandbox.gate import gate_output_size
from nanalogue_sandbox.models.execution import SandboxFailure, SandboxOutcome, SandboxSuccess
from nanalogue_sandbox.registry import ExecutionContext, HostFunction, build_registry
from nanalogue_sandbox.runtime.base import (
    Complete,
    Interpreter,
    InterpreterRuntimeError,
    InterpreterSyntaxError,
    PrintCallback,
    Snapshot,
    StepResult,
)
from nanalogue_sandbox.runtime.restricted import RestrictedInterpreter
from nanalogue_sandbox.utils.logger import logger

CANCELLED_MESSAGE = "Cancelled"


def looks_like_timeout(message: str) -> bool:
    """Fallback timeout detection for errors that carry no structured limit."""
    lowered = message.lower()
    return "time limit" in lowered or "timed out" in lowered


async def _resume(snapshot: Snapshot, **kwargs: Any) -> StepResult:
    return await anyio.to_thread.run_sync(functools.partial(snapshot.resume, **kwargs))


async def run_interpreter(
    interpreter: Interpreter,
    inputs: dict[str, Any],
    limits: ResourceLimits,
    print_callback: PrintCallback,
    registry: dict[str, HostFunction],
    cancel: CancelToken | None = None,
) -> Complete:
    """Drive the interpreter until it completes, answering each external call.

    Raises:
        SandboxCancelledError: If cancel was set between two round trips.
        InterpreterRuntimeError: If the interpreted code failed or hit a limit.
    """
    step = await anyio.to_thread.run_sync(interpreter.start, inputs, limits, print_callback)
    while isinstance(step, Snapshot):
        if cancel is not None and cancel.cancelled:
            step.abandon()
            raise SandboxCancelledError(CANCELLED_MESSAGE)

        name = step.function_name
        fn = registry.get(name)
        if fn is None:
            step = await _resume(step, exception=(ErrorKind.KEY_ERROR, f"External function '{name}' not found"))
            continue

        try:
            value = await fn(*step.args, **step.kwargs)
        except SandboxError as e:
            step = await _resume(step, exception=(e.kind, e.message))
        except anyio.get_cancelled_exc_class():
            step.abandon()
            raise
        else:
            step = await _resume(step, return_value=value)
    return step


async def run_sandbox_code(
    code: str,
    allowed_dir: str,
    limits: ResourceLimits | None = None,
    data_access: DataAccess | None = None,
    cancel: CancelToken | None = None,
) -> SandboxOutcome:
    """Run untrusted code against allowed_dir and return a bounded outcome.

    Failures of the interpreted code are reported in the outcome; this
    coroutine does not raise for them.

    Args:
        code: Source text to execute.
        allowed_dir: Directory all file access is confined to.
        limits: Resource ceilings; defaults apply when omitted.
        data_access: Alignment readers; data functions fail without one.
        cancel: Optional token checked between external calls.

    Returns:
        SandboxOutcome: SandboxSuccess or SandboxFailure.
    """
    limits = limits or ResourceLimits()
    context = ExecutionContext(allowed_dir=allowed_dir, limits=limits)
    registry = build_registry(context, data_access or UnconfiguredDataAccess())
    logger.info("Starting sandbox run", allowed_dir=allowed_dir, code_length=len(code))

    try:
        interpreter = RestrictedInterpreter(code, registry.keys())
        complete = await run_interpreter(interpreter, {}, limits, context.prints.write, registry, cancel)
    except InterpreterSyntaxError as e:
        logger.info("Sandbox code rejected", error=str(e))
        return SandboxFailure(error_type=FailureKind.SYNTAX_ERROR, message=str(e), prints=context.prints.segments)
    except SandboxCancelledError:
        logger.info("Sandbox run cancelled")
        return SandboxFailure(
            error_type=FailureKind.CANCELLED, message=CANCELLED_MESSAGE, prints=context.prints.segments
        )
    except InterpreterRuntimeError as e:
        if e.limit is not None:
            is_timeout = e.limit == LimitKind.DURATION
        else:
            is_timeout = looks_like_timeout(e.message)
        logger.info("Sandbox run failed", error=e.message, limit=e.limit, is_timeout=is_timeout)
        return SandboxFailure(
            error_type=FailureKind.RUNTIME_ERROR,
            message=e.message,
            is_timeout=is_timeout,
            limit=e.limit,
            prints=context.prints.segments,
        )
    except Exception as e:
        logger.exception("Unexpected sandbox failure")
        message = str(e) or type(e).__name__
        return SandboxFailure(
            error_type=FailureKind.GENERIC_ERROR,
            message=message,
            is_timeout=looks_like_timeout(message),
            prints=context.prints.segments,
        )

    gated = gate_output_size(complete.output, limits.max_output_bytes)
    logger.info(
        "Sandbox run completed",
        truncated=gated.truncated,
        continue_thinking=context.continue_thinking_called,
        dropped_prints=context.prints.dropped,
    )
    return SandboxSuccess(
        value=gated.value,
        truncated=gated.truncated,
        ended_with_expression=complete.ended_with_expression and complete.output is not None,
        continue_thinking_called=context.continue_thinking_called,
        prints=context.prints.segments,
    )


class SandboxBridge:
    """Async sandbox service owning configuration, data access and a run lock."""

    def __init__(self, config: SandboxConfig | None = None, data_access: DataAccess | None = None):
        """Initializes the SandboxBridge.

        Args:
            config: Configuration for the sandbox.
            data_access: Alignment readers exposed to sandbox code.
        """
        self.config = config or SandboxConfig()
        self.data_access = data_access
        self._run_lock = asyncio.Lock()

    async def run(self, code: str, allowed_dir: str, cancel: CancelToken | None = None) -> SandboxOutcome:
        """Runs code with the configured limits.

        Args:
            code: The source code to execute.
            allowed_dir: The directory file access is confined to.
            cancel: Optional cancellation token.

        Returns:
            SandboxOutcome: The outcome of the run.
        """
        return await run_sandbox_code(code, allowed_dir, self.config.limits, self.data_access, cancel)

    async def run_guarded(self, code: str, allowed_dir: str, cancel: CancelToken | None = None) -> SandboxOutcome:
        """Runs code with at most one run in flight per bridge.

        Raises:
            SandboxCancelledError: If cancel is set before or just after the
                lock is acquired.
        """
        if cancel is not None and cancel.cancelled:
            raise SandboxCancelledError(CANCELLED_MESSAGE)
        async with self._run_lock:
            if cancel is not None and cancel.cancelled:
                logger.info("Skipping sandbox run cancelled while waiting for the lock")
                raise SandboxCancelledError(CANCELLED_MESSAGE)
            return await self.run(code, allowed_dir, cancel)


class Sandbox:
    """Sync Facade for SandboxBridge.

    Wraps SandboxBridge and executes methods via anyio.run.
    """

    def __init__(self, config: SandboxConfig | None = None, data_access: DataAccess | None = None):
        self._async = SandboxBridge(config, data_access)

    def run(self, code: str, allowed_dir: str) -> SandboxOutcome:
        """Runs code synchronously.

        Args:
            code: The source code to execute.
            allowed_dir: The directory file access is confined to.

        Returns:
            SandboxOutcome: The outcome of the run.
        """
        return anyio.run(self._async.run, code, allowed_dir)
