# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

"""Conversation-level models exchanged between the session and the orchestrator."""

from typing import Any, Literal, Union

from pydantic import BaseModel, Field


class HistoryEntry(BaseModel):
    """A single message in the conversation history."""

    role: Literal["user", "assistant"]
    content: str
    is_execution_result: bool = False
    execution_status: Literal["ok", "error"] | None = None


class StepResult(BaseModel):
    success: bool
    value: Any = None
    error_type: str | None = None
    message: str | None = None


class StepInfo(BaseModel):
    """One sandbox execution performed while answering a turn."""

    code: str
    result: StepResult


class TurnResult(BaseModel):
    """What the orchestrator returns for a completed turn."""

    text: str
    steps: list[StepInfo] = Field(default_factory=list)


class ChatEvent(BaseModel):
    """Progress event emitted to the caller of ChatSession.send."""

    type: Literal["turn_cancelled", "turn_error"]
    error: str | None = None
    is_timeout: bool = False


class SendSuccess(BaseModel):
    success: Literal[True] = True
    text: str
    steps: list[StepInfo] = Field(default_factory=list)


class SendFailure(BaseModel):
    success: Literal[False] = False
    error: str
    is_timeout: bool = False


SendResult = Union[SendSuccess, SendFailure]
