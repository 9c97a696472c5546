# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

"""Error vocabulary shared by the host functions and the embedded interpreter."""

from enum import Enum


class ErrorKind(str, Enum):
    """Exception kinds that host functions may raise inside interpreted code.

    The value is the name of the interpreter's native exception type.
    """

    OS_ERROR = "OSError"
    VALUE_ERROR = "ValueError"
    FILE_EXISTS_ERROR = "FileExistsError"
    KEY_ERROR = "KeyError"
    TYPE_ERROR = "TypeError"
    RUNTIME_ERROR = "RuntimeError"
    SYNTAX_ERROR = "SyntaxError"


class FailureKind(str, Enum):
    """Terminal failure categories reported to the orchestrator."""

    RUNTIME_ERROR = "RuntimeError"
    SYNTAX_ERROR = "SyntaxError"
    GENERIC_ERROR = "GenericError"
    CANCELLED = "Cancelled"


class LimitKind(str, Enum):
    """Resource ceilings enforced by the interpreter host."""

    DURATION = "duration"
    MEMORY = "memory"
    ALLOCATIONS = "allocations"


# Interpreter-side exception class for each kind.
INTERPRETER_EXCEPTIONS: dict[ErrorKind, type[Exception]] = {
    ErrorKind.OS_ERROR: OSError,
    ErrorKind.VALUE_ERROR: ValueError,
    ErrorKind.FILE_EXISTS_ERROR: FileExistsError,
    ErrorKind.KEY_ERROR: KeyError,
    ErrorKind.TYPE_ERROR: TypeError,
    ErrorKind.RUNTIME_ERROR: RuntimeError,
    ErrorKind.SYNTAX_ERROR: SyntaxError,
}

# Host exception classes, most specific first.
HOST_EXCEPTION_KINDS: tuple[tuple[type[BaseException], ErrorKind], ...] = (
    (FileExistsError, ErrorKind.FILE_EXISTS_ERROR),
    (OSError, ErrorKind.OS_ERROR),
    (KeyError, ErrorKind.KEY_ERROR),
    (ValueError, ErrorKind.VALUE_ERROR),
    (TypeError, ErrorKind.TYPE_ERROR),
)


class SandboxError(Exception):
    """A host-side failure carrying the interpreter exception kind to raise."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"SandboxError({self.kind.value}, {self.message!r})"


class SandboxCancelledError(Exception):
    """Raised when a guarded sandbox run is refused because its request was cancelled."""


def classify_exception(exc: BaseException) -> ErrorKind:
    """Map an arbitrary host exception onto an ErrorKind.

    Unrecognised exception types become RUNTIME_ERROR.
    """
    if isinstance(exc, SandboxError):
        return exc.kind
    for exc_type, kind in HOST_EXCEPTION_KINDS:
        if isinstance(exc, exc_type):
            return kind
    return ErrorKind.RUNTIME_ERROR


def to_sandbox_error(exc: BaseException) -> SandboxError:
    """Normalise a host exception into a SandboxError."""
    if isinstance(exc, SandboxError):
        return exc
    kind = classify_exception(exc)
    # KeyError's str() wraps the message in quotes; unwrap single-argument keys.
    if isinstance(exc, KeyError) and len(exc.args) == 1:
        message = str(exc.args[0])
    else:
        message = str(exc) or type(exc).__name__
    return SandboxError(kind, message)
