# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

"""RestrictedPython-backed interpreter with suspend/resume on external calls.

Interpreted code runs in a spawned child process. Each external function is
a stub that sends the call to the host over a pipe and blocks until the host
replies, so the host drives the run as a plain sequence of Snapshot/Complete
steps. The host kills the process once the wall-clock deadline has passed,
which also stops long C-level builtins the trace hook cannot interrupt.
"""

import ast
import multiprocessing
import operator
import os
import pickle
import time
from collections.abc import Iterable
from multiprocessing.connection import Connection
from typing import Any, Callable

from RestrictedPython import safe_builtins
from RestrictedPython.Eval import default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)
from RestrictedPython.transformer import RestrictingNodeTransformer

from nanalogue_sandbox.config import ResourceLimits
from nanalogue_sandbox.errors import INTERPRETER_EXCEPTIONS, ErrorKind, LimitKind
from nanalogue_sandbox.runtime.base import (
    Complete,
    ExternalCall,
    Interpreter,
    InterpreterRuntimeError,
    InterpreterSyntaxError,
    PrintCallback,
    Snapshot,
    StepResult,
)
from nanalogue_sandbox.runtime.limits import SANDBOX_FILENAME, LimitExceeded, LimitTracker, duration_message
from nanalogue_sandbox.utils.logger import logger

try:
    import resource
except ImportError:  # pragma: no cover - not available on Windows
    resource = None  # type: ignore[assignment]

RESULT_NAME = "__sandbox_result__"

# Extra time the host waits past the deadline before killing the process.
HOST_GRACE_SECS = 0.5

# Time allowed for the interpreter process to import and compile.
STARTUP_TIMEOUT_SECS = 30.0

# Address space granted above the memory limit for the interpreter itself.
ADDRESS_SPACE_HEADROOM = 256 * 1024 * 1024

NOT_PLAIN_DATA_MESSAGE = "External function returned a value that is not plain data"

BLOCKED_BUILTINS = ("BaseException", "SystemExit", "KeyboardInterrupt", "GeneratorExit")

SAFE_ADDITIONS: dict[str, Any] = {
    "all": all,
    "any": any,
    "dict": dict,
    "enumerate": enumerate,
    "filter": filter,
    "frozenset": frozenset,
    "iter": iter,
    "list": list,
    "map": map,
    "max": max,
    "min": min,
    "next": next,
    "reversed": reversed,
    "set": set,
    "sum": sum,
    "Exception": Exception,
}

INPLACE_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
    "<<=": operator.ilshift,
    ">>=": operator.irshift,
    "&=": operator.iand,
    "^=": operator.ixor,
    "|=": operator.ior,
}


def _names_base_exception(node: ast.expr) -> bool:
    if isinstance(node, ast.Name):
        return node.id == "BaseException"
    if isinstance(node, ast.Tuple):
        return any(_names_base_exception(element) for element in node.elts)
    return False


class SandboxPolicy(RestrictingNodeTransformer):
    """RestrictedPython policy that also forbids catch-all exception handlers.

    Resource-limit interrupts must reach the host, so handlers may only name
    Exception or narrower classes.
    """

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> ast.AST:
        if node.type is None:
            self.error(node, "Bare 'except:' is not allowed; catch Exception or a specific error instead.")
        elif _names_base_exception(node.type):
            self.error(node, "Catching BaseException is not allowed; catch Exception instead.")
        return super().visit_ExceptHandler(node)


def compile_sandbox_code(code: str) -> tuple[Any, bool]:
    """Compile source under the sandbox policy.

    The trailing expression statement, if any, is rewritten to store its value
    in RESULT_NAME.

    Returns:
        The code object and whether the source ended with an expression.

    Raises:
        InterpreterSyntaxError: On parse errors or policy violations.
    """
    try:
        tree = ast.parse(code, filename=SANDBOX_FILENAME, mode="exec")
    except SyntaxError as e:
        raise InterpreterSyntaxError(f"{e.msg} (line {e.lineno})") from e

    errors: list[str] = []
    warnings: list[str] = []
    used_names: dict[str, bool] = {}
    tree = SandboxPolicy(errors, warnings, used_names).visit(tree)
    if errors:
        raise InterpreterSyntaxError("\n".join(errors))

    ends_with_expression = bool(tree.body) and isinstance(tree.body[-1], ast.Expr)
    if ends_with_expression:
        tail = tree.body[-1]
        assign = ast.Assign(targets=[ast.Name(id=RESULT_NAME, ctx=ast.Store())], value=tail.value)
        tree.body[-1] = ast.copy_location(assign, tail)
    ast.fix_missing_locations(tree)

    try:
        return compile(tree, SANDBOX_FILENAME, "exec"), ends_with_expression
    except (SyntaxError, ValueError) as e:
        raise InterpreterSyntaxError(str(e)) from e


class _PrintCollector:
    """Target of RestrictedPython's rewritten print() calls."""

    def __init__(self, callback: PrintCallback):
        self._callback = callback

    def _call_print(
        self, *objects: Any, sep: Any = " ", end: Any = "\n", file: Any = None, flush: bool = False
    ) -> None:
        if sep is not None and not isinstance(sep, str):
            raise TypeError("sep must be None or a string")
        if end is not None and not isinstance(end, str):
            raise TypeError("end must be None or a string")
        actual_sep = " " if sep is None else sep
        actual_end = "\n" if end is None else end
        self._callback(actual_sep.join(str(obj) for obj in objects) + actual_end)


def _inplacevar(op: str, target: Any, value: Any) -> Any:
    try:
        return INPLACE_OPERATORS[op](target, value)
    except KeyError:
        raise SyntaxError(f"Unsupported augmented assignment {op}") from None


def _apply(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    return func(*args, **kwargs)


def _getitem(obj: Any, key: Any) -> Any:
    return obj[key]


def build_builtins() -> dict[str, Any]:
    builtins = dict(safe_builtins)
    builtins.update(SAFE_ADDITIONS)
    for exc_type in INTERPRETER_EXCEPTIONS.values():
        builtins[exc_type.__name__] = exc_type
    for blocked in BLOCKED_BUILTINS:
        builtins.pop(blocked, None)
    return builtins


def build_namespace(inputs: dict[str, Any], print_callback: PrintCallback) -> dict[str, Any]:
    """Globals for a run: guarded builtins, RestrictedPython hooks and inputs."""
    collector = _PrintCollector(print_callback)
    namespace: dict[str, Any] = {
        "__builtins__": build_builtins(),
        "__name__": "sandbox",
        "__metaclass__": type,
        "_getattr_": safer_getattr,
        "_getitem_": _getitem,
        "_getiter_": default_guarded_getiter,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_write_": full_write_guard,
        "_inplacevar_": _inplacevar,
        "_apply_": _apply,
        "_print_": lambda _getattr=None: collector,
    }
    namespace.update(inputs)
    return namespace


class UntransferableValue:
    """Stands in for a result that cannot be sent back from the interpreter process."""

    def __init__(self, type_name: str):
        self.type_name = type_name

    def __repr__(self) -> str:
        return f"<untransferable {self.type_name}>"


def _address_space_in_use() -> int | None:
    try:
        with open("/proc/self/statm") as f:
            pages = int(f.read().split()[0])
    except (OSError, ValueError, IndexError):
        return None
    return pages * os.sysconf("SC_PAGE_SIZE")


def _cap_address_space(limits: ResourceLimits) -> None:
    """Bound the interpreter process's address space so large C-level allocations fail fast."""
    if resource is None:
        return
    in_use = _address_space_in_use()
    if in_use is None:
        return
    soft = in_use + limits.max_memory_bytes + ADDRESS_SPACE_HEADROOM
    _, hard = resource.getrlimit(resource.RLIMIT_AS)
    if hard != resource.RLIM_INFINITY:
        soft = min(soft, hard)
    resource.setrlimit(resource.RLIMIT_AS, (soft, hard))


def _make_stub(conn: Connection, name: str) -> Callable[..., Any]:
    def stub(*args: Any, **kwargs: Any) -> Any:
        try:
            conn.send(("call", name, args, kwargs))
        except (pickle.PicklingError, TypeError, AttributeError):
            raise TypeError(f"{name}() arguments must be plain data") from None
        try:
            reply = conn.recv()
        except EOFError:
            raise SystemExit(0) from None
        if reply[0] == "return":
            return reply[1]
        _, kind, message = reply
        raise INTERPRETER_EXCEPTIONS[kind](message)

    stub.__name__ = name
    return stub


def _child_main(
    conn: Connection,
    code: str,
    external_functions: tuple[str, ...],
    inputs: dict[str, Any],
    limits: ResourceLimits,
) -> None:
    """Entry point of the interpreter process.

    Messages to the host are tuples tagged "ready", "print", "call",
    "complete" or "error".
    """
    _cap_address_space(limits)
    code_obj, ends_with_expression = compile_sandbox_code(code)
    namespace = build_namespace(inputs, lambda text: conn.send(("print", text)))
    for name in external_functions:
        namespace[name] = _make_stub(conn, name)

    conn.send(("ready",))
    tracker = LimitTracker(limits)
    failure: LimitExceeded | InterpreterRuntimeError | None = None
    tracker.install()
    try:
        exec(code_obj, namespace)
    except LimitExceeded as e:
        failure = e
    except MemoryError:
        failure = tracker.memory_exhausted()
    except Exception as e:
        failure = InterpreterRuntimeError(f"{type(e).__name__}: {e}")
    finally:
        tracker.uninstall()

    # A tripped limit is authoritative even if the code swallowed it.
    failure = tracker.overrun() or failure
    if failure is not None:
        conn.send(("error", failure.message, failure.limit))
        return

    output = namespace.get(RESULT_NAME)
    try:
        conn.send(("complete", output, ends_with_expression))
    except (pickle.PicklingError, TypeError, AttributeError, RecursionError):
        conn.send(("complete", UntransferableValue(type(output).__name__), ends_with_expression))
    conn.close()


class _Run:
    """One execution of sandbox code in its own process."""

    def __init__(
        self,
        code: str,
        external_functions: tuple[str, ...],
        inputs: dict[str, Any],
        limits: ResourceLimits,
        print_callback: PrintCallback,
    ):
        self.limits = limits
        self.print_callback = print_callback
        self.deadline: float | None = None
        context = multiprocessing.get_context("spawn")
        self.conn, child_conn = context.Pipe()
        self.process = context.Process(
            target=_child_main,
            args=(child_conn, code, external_functions, inputs, limits),
            name="sandbox-interpreter",
            daemon=True,
        )
        self._child_conn = child_conn

    def start(self) -> StepResult:
        self.process.start()
        self._child_conn.close()
        return self.next_step()

    def _timeout(self) -> float:
        if self.deadline is None:
            return STARTUP_TIMEOUT_SECS
        return max(0.0, self.deadline - time.monotonic()) + HOST_GRACE_SECS

    def _duration_error(self) -> InterpreterRuntimeError:
        return InterpreterRuntimeError(duration_message(self.limits), limit=LimitKind.DURATION)

    def next_step(self) -> StepResult:
        while True:
            if not self.conn.poll(self._timeout()):
                self.abandon()
                if self.deadline is None:
                    raise RuntimeError("Interpreter process did not start in time")
                logger.warning("Interpreter process missed its deadline; killing it", pid=self.process.pid)
                raise self._duration_error()
            try:
                message = self.conn.recv()
            except EOFError:
                self.abandon()
                raise RuntimeError(
                    f"Interpreter process exited unexpectedly (exit code {self.process.exitcode})"
                ) from None

            tag = message[0]
            if tag == "ready":
                self.deadline = time.monotonic() + self.limits.max_duration_secs
            elif tag == "print":
                self.print_callback(message[1])
            elif tag == "call":
                _, name, args, kwargs = message
                return _RestrictedSnapshot(self, ExternalCall(name, args, kwargs))
            elif tag == "complete":
                self._finish()
                return Complete(output=message[1], ended_with_expression=message[2])
            else:
                self._finish()
                _, text, limit = message
                raise InterpreterRuntimeError(text, limit=limit)

    def reply(self, message: tuple[Any, ...]) -> StepResult:
        try:
            payload = pickle.dumps(message)
        except (pickle.PicklingError, TypeError, AttributeError):
            payload = pickle.dumps(("raise", ErrorKind.TYPE_ERROR, NOT_PLAIN_DATA_MESSAGE))
        try:
            self.conn.send_bytes(payload)
        except OSError:
            # The process is gone; next_step reports its exit.
            logger.debug("Interpreter process closed its pipe", pid=self.process.pid)
        return self.next_step()

    def _finish(self) -> None:
        self.process.join(timeout=HOST_GRACE_SECS)
        self.abandon()

    def abandon(self) -> None:
        if self.process.is_alive():
            self.process.kill()
        self.process.join()
        self.conn.close()


class _RestrictedSnapshot(Snapshot):
    def __init__(self, run: _Run, call: ExternalCall):
        super().__init__(call.function_name, call.args, call.kwargs)
        self._run = run

    def _resume(self, return_value: Any, exception: tuple[ErrorKind, str] | None) -> StepResult:
        if exception is None:
            return self._run.reply(("return", return_value))
        kind, message = exception
        return self._run.reply(("raise", kind, message))

    def _abandon(self) -> None:
        self._run.abandon()


class RestrictedInterpreter(Interpreter):
    """Runs untrusted source under RestrictedPython in a child process.

    Args:
        code: The source text.
        external_functions: Names callable from the code; each call suspends
            the run and surfaces as a Snapshot.

    Raises:
        InterpreterSyntaxError: If the code does not compile under the policy.
    """

    def __init__(self, code: str, external_functions: Iterable[str] = ()):
        self.code = code
        self.external_functions = tuple(external_functions)
        compile_sandbox_code(code)

    def start(
        self,
        inputs: dict[str, Any],
        limits: ResourceLimits,
        print_callback: PrintCallback,
    ) -> StepResult:
        run = _Run(self.code, self.external_functions, inputs, limits, print_callback)
        return run.start()
