# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

import sys
import time
from typing import Any

import pytest

from nanalogue_sandbox.config import ResourceLimits
from nanalogue_sandbox.errors import ErrorKind, LimitKind
from nanalogue_sandbox.runtime import (
    Complete,
    InterpreterRuntimeError,
    InterpreterSyntaxError,
    RestrictedInterpreter,
    Snapshot,
)
from nanalogue_sandbox.runtime import restricted
from nanalogue_sandbox.runtime.limits import LimitTracker
from nanalogue_sandbox.runtime.restricted import UntransferableValue


def _start(code: str, external_functions: tuple[str, ...] = (), **limits: Any) -> Any:
    prints: list[str] = []
    step = RestrictedInterpreter(code, external_functions).start({}, ResourceLimits(**limits), prints.append)
    return step, prints


def test_trailing_expression_is_the_output() -> None:
    step, _ = _start("x = 20\nx * 2 + 2")
    assert step == Complete(output=42, ended_with_expression=True)


def test_statement_only_code_has_no_output() -> None:
    step, _ = _start("x = 1")
    assert step == Complete(output=None, ended_with_expression=False)


def test_inputs_are_bound_in_namespace() -> None:
    step = RestrictedInterpreter("base + 1").start({"base": 9}, ResourceLimits(), lambda _: None)
    assert step.output == 10


def test_external_call_suspends_and_resumes() -> None:
    step, _ = _start('x = peek("a.bam", region="chr1")\nx + 1', ("peek",))

    assert isinstance(step, Snapshot)
    assert step.function_name == "peek"
    assert step.args == ("a.bam",)
    assert step.kwargs == {"region": "chr1"}

    final = step.resume(41)
    assert final == Complete(output=42, ended_with_expression=True)


def test_successive_external_calls() -> None:
    step, _ = _start("[ls(), ls()]", ("ls",))
    step = step.resume(["a"])
    assert isinstance(step, Snapshot)
    assert step.resume(["b"]).output == [["a"], ["b"]]


def test_snapshot_can_only_be_resumed_once() -> None:
    step, _ = _start("ls()\nls()", ("ls",))
    step.resume([])
    with pytest.raises(RuntimeError, match="already been resumed"):
        step.resume([])


def test_resumed_exception_is_catchable() -> None:
    code = "\n".join(
        [
            "try:",
            '    read_file("missing.txt")',
            "except OSError as e:",
            "    message = str(e)",
            "message",
        ]
    )
    step, _ = _start(code, ("read_file",))
    final = step.resume(exception=(ErrorKind.OS_ERROR, "no such file"))
    assert final.output == "no such file"


def test_resumed_exception_escapes_when_uncaught() -> None:
    step, _ = _start('write_file("a.txt", "x")', ("write_file",))
    with pytest.raises(InterpreterRuntimeError) as exc_info:
        step.resume(exception=(ErrorKind.FILE_EXISTS_ERROR, "exists"))
    assert exc_info.value.message == "FileExistsError: exists"
    assert exc_info.value.limit is None


def test_uncaught_exception() -> None:
    with pytest.raises(InterpreterRuntimeError) as exc_info:
        _start("1 / 0")
    assert exc_info.value.message == "ZeroDivisionError: division by zero"


def test_unknown_name_is_a_runtime_error() -> None:
    with pytest.raises(InterpreterRuntimeError, match="NameError"):
        _start("undefined_function()")


@pytest.mark.parametrize(
    "code",
    [
        "def broken(:\n    pass",
        "try:\n    pass\nexcept:\n    pass",
        "try:\n    pass\nexcept BaseException:\n    pass",
        "try:\n    pass\nexcept (ValueError, BaseException):\n    pass",
        "().__class__",
    ],
)
def test_rejected_at_compile_time(code: str) -> None:
    with pytest.raises(InterpreterSyntaxError):
        RestrictedInterpreter(code)


def test_imports_fail_at_runtime() -> None:
    with pytest.raises(InterpreterRuntimeError, match="ImportError"):
        _start("import os")


def test_print_segments_are_forwarded() -> None:
    _, prints = _start('print("a", 1)\nprint("b", end="")')
    assert prints == ["a 1\n", "b"]


def test_augmented_assignment_and_loops() -> None:
    step, _ = _start("total = 0\nfor i, j in enumerate(range(4)):\n    total += i * j\ntotal")
    assert step.output == 14


def test_time_limit() -> None:
    with pytest.raises(InterpreterRuntimeError) as exc_info:
        _start("while True:\n    pass", max_duration_secs=1)
    assert exc_info.value.limit == LimitKind.DURATION
    assert exc_info.value.message.startswith("time limit exceeded")


def test_time_limit_cannot_be_swallowed() -> None:
    code = "try:\n    while True:\n        pass\nexcept Exception:\n    pass\n'survived'"
    with pytest.raises(InterpreterRuntimeError) as exc_info:
        _start(code, max_duration_secs=1)
    assert exc_info.value.limit == LimitKind.DURATION


def test_memory_limit() -> None:
    code = "x = []\nwhile True:\n    x.append('a' * 100000)"
    with pytest.raises(InterpreterRuntimeError) as exc_info:
        _start(code, max_memory_mb=16)
    assert exc_info.value.limit == LimitKind.MEMORY
    assert exc_info.value.message.startswith("memory limit exceeded")


def test_allocation_limit() -> None:
    code = "x = []\nwhile True:\n    x.append([1])"
    with pytest.raises(InterpreterRuntimeError) as exc_info:
        _start(code, max_allocations=10_000)
    assert exc_info.value.limit == LimitKind.ALLOCATIONS


def test_abandon_kills_the_interpreter_process() -> None:
    step, _ = _start("ls()\nwhile True:\n    pass", ("ls",))
    step.abandon()
    step.abandon()

    assert step.consumed is True
    step._run.process.join(timeout=5)
    assert not step._run.process.is_alive()


def test_builtin_running_past_the_deadline_is_killed() -> None:
    interpreter = RestrictedInterpreter("pause(60)")
    started = time.monotonic()

    with pytest.raises(InterpreterRuntimeError) as exc_info:
        interpreter.start({"pause": time.sleep}, ResourceLimits(max_duration_secs=1), lambda _: None)

    assert exc_info.value.limit == LimitKind.DURATION
    assert exc_info.value.message.startswith("time limit exceeded")
    assert time.monotonic() - started < 10


def test_run_finishing_after_its_deadline_is_a_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    # Wait long enough that the process itself reports the late finish.
    monkeypatch.setattr(restricted, "HOST_GRACE_SECS", 30.0)
    interpreter = RestrictedInterpreter("pause(1.5)\n'done'")

    with pytest.raises(InterpreterRuntimeError) as exc_info:
        interpreter.start({"pause": time.sleep}, ResourceLimits(max_duration_secs=1), lambda _: None)

    assert exc_info.value.limit == LimitKind.DURATION


def test_unpicklable_result_is_replaced() -> None:
    step, _ = _start("lambda: 1")
    assert isinstance(step.output, UntransferableValue)
    assert step.ended_with_expression is True


def test_unpicklable_call_arguments_raise_type_error() -> None:
    code = "try:\n    ls(lambda: 1)\nexcept TypeError as e:\n    msg = str(e)\nmsg"
    step, _ = _start(code, ("ls",))
    assert step.output == "ls() arguments must be plain data"


@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="address space cap needs /proc and RLIMIT_AS")
@pytest.mark.parametrize(
    "code",
    [
        "'a' * (2 * 1024 ** 3)",
        "try:\n    x = 'a' * (2 * 1024 ** 3)\nexcept Exception:\n    pass\n'survived'",
    ],
)
def test_huge_single_allocation_hits_memory_limit(code: str) -> None:
    with pytest.raises(InterpreterRuntimeError) as exc_info:
        _start(code, max_memory_mb=16)
    assert exc_info.value.limit == LimitKind.MEMORY
    assert exc_info.value.message.startswith("memory limit exceeded")


def test_tracker_reports_overrun_after_deadline() -> None:
    tracker = LimitTracker(ResourceLimits(max_duration_secs=1))
    assert tracker.overrun() is None

    tracker.deadline = time.monotonic() - 0.1

    tripped = tracker.overrun()
    assert tripped is not None
    assert tripped.limit == LimitKind.DURATION
    assert tracker.overrun() is tripped
