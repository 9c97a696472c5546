# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Union

from nanalogue_sandbox.config import ResourceLimits
from nanalogue_sandbox.errors import ErrorKind, LimitKind

PrintCallback = Callable[[str], None]


class InterpreterSyntaxError(Exception):
    """The source could not be compiled, or was rejected by the execution policy."""


class InterpreterRuntimeError(Exception):
    """Interpreted code stopped with an uncaught exception or hit a resource limit.

    Attributes:
        limit: The resource ceiling that stopped the run, or None for an
            ordinary uncaught exception.
    """

    def __init__(self, message: str, limit: LimitKind | None = None):
        super().__init__(message)
        self.message = message
        self.limit = limit


@dataclass
class Complete:
    """Terminal state: the code ran to the end.

    Attributes:
        output: Value of the trailing expression statement, or None.
        ended_with_expression: Whether the last statement was an expression.
    """

    output: Any = None
    ended_with_expression: bool = False


class Snapshot(ABC):
    """Suspended run waiting for the host to answer an external function call.

    A snapshot is consumed exactly once, by resume() or abandon().
    """

    def __init__(self, function_name: str, args: tuple[Any, ...], kwargs: dict[str, Any]):
        self.function_name = function_name
        self.args = args
        self.kwargs = kwargs
        self._consumed = False

    def _consume(self) -> None:
        if self._consumed:
            raise RuntimeError(f"Snapshot for {self.function_name!r} has already been resumed")
        self._consumed = True

    @property
    def consumed(self) -> bool:
        return self._consumed

    def resume(
        self,
        return_value: Any = None,
        exception: tuple[ErrorKind, str] | None = None,
    ) -> Union["Snapshot", Complete]:
        """Continue the run with the external function's result.

        Args:
            return_value: Value returned to interpreted code.
            exception: (kind, message) to raise inside interpreted code instead.

        Returns:
            The next Snapshot, or Complete when the code finished.

        Raises:
            InterpreterRuntimeError: If the code failed or hit a limit.
            RuntimeError: If this snapshot was already consumed.
        """
        self._consume()
        return self._resume(return_value, exception)

    def abandon(self) -> None:
        """Discard the suspended run without resuming it."""
        if self._consumed:
            return
        self._consumed = True
        self._abandon()

    @abstractmethod
    def _resume(
        self, return_value: Any, exception: tuple[ErrorKind, str] | None
    ) -> Union["Snapshot", Complete]:  # pragma: no cover
        pass

    @abstractmethod
    def _abandon(self) -> None:  # pragma: no cover
        pass


StepResult = Union[Snapshot, Complete]


class Interpreter(ABC):
    """
    An embedded interpreter that suspends whenever interpreted code calls an
    external function.
    """

    @abstractmethod
    def start(
        self,
        inputs: dict[str, Any],
        limits: ResourceLimits,
        print_callback: PrintCallback,
    ) -> StepResult:  # pragma: no cover
        """
        Begins execution and runs until the first external call or the end.

        Args:
            inputs: Variables bound in the code's global namespace.
            limits: Resource ceilings for the whole run.
            print_callback: Receives each printed segment.

        Returns:
            A Snapshot for the first external call, or Complete.

        Raises:
            InterpreterRuntimeError: If the code failed or hit a limit.
        """
        pass


@dataclass
class ExternalCall:
    """A call sent by the interpreter process to the host."""

    function_name: str
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)
