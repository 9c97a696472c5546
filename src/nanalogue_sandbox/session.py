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
from dataclasses import dataclass, field
from typing import Callable, Protocol

from nanalogue_sandbox.cancel import CancelToken
from nanalogue_sandbox.facts import extract_facts
from nanalogue_sandbox.models.chat import ChatEvent, HistoryEntry, SendFailure, SendResult, SendSuccess, TurnResult
from nanalogue_sandbox.models.execution import SandboxOutcome
from nanalogue_sandbox.models.facts import Fact
from nanalogue_sandbox.utils.logger import logger

EventCallback = Callable[[ChatEvent], None]

CANCELLED = "Cancelled"
SUPERSEDED = "Request superseded"


def _discard_event(event: ChatEvent) -> None:
    pass


@dataclass
class TurnRequest:
    """Everything the orchestrator needs to answer one user message.

    history and facts are the session's own lists; the orchestrator appends
    to them as the turn progresses.
    """

    message: str
    allowed_dir: str
    history: list[HistoryEntry]
    facts: list[Fact]
    cancel: CancelToken
    emit_event: EventCallback = field(default=_discard_event)


class Orchestrator(Protocol):
    async def __call__(self, request: TurnRequest) -> TurnResult: ...  # pragma: no cover


def is_timeout_error(error: BaseException) -> bool:
    return isinstance(error, (TimeoutError, asyncio.TimeoutError)) or "timed out" in str(error)


class ChatSession:
    """Conversation state for one AI Chat session.

    Owns history, facts and the in-flight request token, so a new message
    supersedes or cancels the previous one.
    """

    def __init__(self, orchestrator: Orchestrator):
        """Initializes the ChatSession.

        Args:
            orchestrator: Answers each turn, running sandbox code as needed.
        """
        self.orchestrator = orchestrator
        self.history: list[HistoryEntry] = []
        self.facts: list[Fact] = []
        self.request_id = 0
        self.cancel_token: CancelToken | None = None

    async def send(self, message: str, allowed_dir: str, emit_event: EventCallback | None = None) -> SendResult:
        """Send a user message through the orchestrator.

        Args:
            message: The user's message text.
            allowed_dir: Directory the sandbox may access during this turn.
            emit_event: Receives turn_cancelled and turn_error events.

        Returns:
            SendResult: The assistant reply, or a cancellation, supersession
            or error result.
        """
        emit = emit_event or _discard_event
        self.request_id += 1
        this_request_id = self.request_id
        if self.cancel_token is not None:
            self.cancel_token.cancel()
        token = CancelToken()
        self.cancel_token = token

        request = TurnRequest(
            message=message,
            allowed_dir=allowed_dir,
            history=self.history,
            facts=self.facts,
            cancel=token,
            emit_event=emit,
        )
        try:
            result = await self.orchestrator(request)
        except Exception as e:
            timed_out = is_timeout_error(e)
            # A timeout also aborts the token; it is still reported as an error.
            if token.cancelled and not timed_out:
                return self._cancelled(emit)
            if this_request_id != self.request_id:
                return SendFailure(error=SUPERSEDED)
            error = str(e) or type(e).__name__
            logger.warning("Chat turn failed", request_id=this_request_id, error=error, is_timeout=timed_out)
            emit(ChatEvent(type="turn_error", error=error, is_timeout=timed_out))
            return SendFailure(error=error, is_timeout=timed_out)

        # Cancel also bumps request_id, so the token is checked first.
        if token.cancelled:
            return self._cancelled(emit)
        if this_request_id != self.request_id:
            return SendFailure(error=SUPERSEDED)
        return SendSuccess(text=result.text, steps=result.steps)

    def _cancelled(self, emit: EventCallback) -> SendFailure:
        logger.info("Chat turn cancelled", request_id=self.request_id)
        emit(ChatEvent(type="turn_cancelled"))
        return SendFailure(error=CANCELLED)

    def cancel(self) -> None:
        """Cancel the in-flight request, if any."""
        self.request_id += 1
        if self.cancel_token is not None:
            self.cancel_token.cancel()
        self.cancel_token = None

    def reset(self) -> None:
        """Clear history and facts and cancel the in-flight request."""
        self.history = []
        self.facts = []
        self.cancel()

    def record_step(self, code: str, outcome: SandboxOutcome, round_id: str) -> None:
        """Fold facts from a finished sandbox run into the session."""
        extract_facts(outcome, code, round_id, self.facts)
