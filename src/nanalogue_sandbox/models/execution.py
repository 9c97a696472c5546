# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

from typing import Any, Literal, Union

from pydantic import BaseModel, Field

from nanalogue_sandbox.errors import FailureKind, LimitKind


class SandboxSuccess(BaseModel):
    """Outcome of a sandbox run that terminated with a value.

    Attributes:
        value: The gated result value.
        truncated: Whether the output gate shrank the value.
        ended_with_expression: Whether the code ended in an expression with a non-None value.
        continue_thinking_called: Whether continue_thinking() was called during the run.
        prints: Captured print() segments.
    """

    success: Literal[True] = True
    value: Any = None
    truncated: bool = False
    ended_with_expression: bool = False
    continue_thinking_called: bool = False
    prints: list[str] = Field(default_factory=list)


class SandboxFailure(BaseModel):
    """Outcome of a sandbox run that failed.

    Attributes:
        error_type: The failure category.
        message: Human-readable error message.
        is_timeout: Whether the run was stopped by the duration limit.
        limit: Which resource limit stopped the run, if any.
        prints: Print segments captured before the failure.
    """

    success: Literal[False] = False
    error_type: FailureKind
    message: str
    is_timeout: bool = False
    limit: LimitKind | None = None
    prints: list[str] = Field(default_factory=list)

    @property
    def is_fatal(self) -> bool:
        """True when the code never ran or was stopped by a resource ceiling."""
        return self.error_type == FailureKind.SYNTAX_ERROR or self.limit is not None


SandboxOutcome = Union[SandboxSuccess, SandboxFailure]
