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
from unittest.mock import AsyncMock, MagicMock

import pytest

from nanalogue_sandbox.errors import FailureKind
from nanalogue_sandbox.models.chat import (
    ChatEvent,
    HistoryEntry,
    SendFailure,
    SendSuccess,
    StepInfo,
    StepResult,
    TurnResult,
)
from nanalogue_sandbox.models.execution import SandboxFailure, SandboxSuccess
from nanalogue_sandbox.session import ChatSession, TurnRequest, is_timeout_error


@pytest.mark.asyncio
async def test_send_returns_orchestrator_reply() -> None:
    steps = [StepInfo(code="1 + 1", result=StepResult(success=True, value=2))]
    orchestrator = AsyncMock(return_value=TurnResult(text="two", steps=steps))
    session = ChatSession(orchestrator)

    result = await session.send("what is 1 + 1?", "/data")

    assert result == SendSuccess(text="two", steps=steps)


@pytest.mark.asyncio
async def test_orchestrator_shares_session_state() -> None:
    orchestrator = AsyncMock(return_value=TurnResult(text="ok"))
    session = ChatSession(orchestrator)

    await session.send("hi", "/data")

    request: TurnRequest = orchestrator.await_args.args[0]
    assert request.message == "hi"
    assert request.allowed_dir == "/data"
    assert request.history is session.history
    assert request.facts is session.facts
    assert request.cancel is session.cancel_token


@pytest.mark.asyncio
async def test_cancel_during_turn_reports_cancelled() -> None:
    session: ChatSession

    async def orchestrator(request: TurnRequest) -> TurnResult:
        session.cancel()
        return TurnResult(text="late answer")

    session = ChatSession(orchestrator)
    emit = MagicMock()

    result = await session.send("hi", "/data", emit)

    assert result == SendFailure(error="Cancelled")
    emit.assert_called_once_with(ChatEvent(type="turn_cancelled"))


@pytest.mark.asyncio
async def test_new_message_cancels_previous_turn() -> None:
    release = asyncio.Event()
    tokens = []

    async def orchestrator(request: TurnRequest) -> TurnResult:
        tokens.append(request.cancel)
        if request.message == "first":
            await release.wait()
        return TurnResult(text=request.message)

    session = ChatSession(orchestrator)
    first = asyncio.create_task(session.send("first", "/data"))
    await asyncio.sleep(0)

    second = await session.send("second", "/data")
    release.set()

    assert second == SendSuccess(text="second")
    assert await first == SendFailure(error="Cancelled")
    assert tokens[0].cancelled is True
    assert tokens[1].cancelled is False


@pytest.mark.asyncio
async def test_superseded_request() -> None:
    session: ChatSession

    async def orchestrator(request: TurnRequest) -> TurnResult:
        session.request_id += 1
        return TurnResult(text="stale")

    session = ChatSession(orchestrator)

    assert await session.send("hi", "/data") == SendFailure(error="Request superseded")


@pytest.mark.asyncio
async def test_orchestrator_error_emits_event() -> None:
    session = ChatSession(AsyncMock(side_effect=RuntimeError("model unavailable")))
    emit = MagicMock()

    result = await session.send("hi", "/data", emit)

    assert result == SendFailure(error="model unavailable", is_timeout=False)
    emit.assert_called_once_with(ChatEvent(type="turn_error", error="model unavailable", is_timeout=False))


@pytest.mark.asyncio
async def test_timeout_error_is_flagged() -> None:
    session = ChatSession(AsyncMock(side_effect=TimeoutError("LLM request timed out")))

    result = await session.send("hi", "/data")

    assert result == SendFailure(error="LLM request timed out", is_timeout=True)


@pytest.mark.asyncio
async def test_cancelled_turn_that_raises_is_cancelled() -> None:
    session: ChatSession

    async def orchestrator(request: TurnRequest) -> TurnResult:
        session.cancel()
        raise RuntimeError("aborted")

    session = ChatSession(orchestrator)
    emit = MagicMock()

    assert await session.send("hi", "/data", emit) == SendFailure(error="Cancelled")
    emit.assert_called_once_with(ChatEvent(type="turn_cancelled"))


@pytest.mark.asyncio
async def test_cancelled_turn_that_times_out_is_superseded() -> None:
    session: ChatSession

    async def orchestrator(request: TurnRequest) -> TurnResult:
        session.cancel()
        raise asyncio.TimeoutError()

    session = ChatSession(orchestrator)

    assert await session.send("hi", "/data") == SendFailure(error="Request superseded")


def test_is_timeout_error() -> None:
    assert is_timeout_error(TimeoutError())
    assert is_timeout_error(RuntimeError("request timed out after 60s"))
    assert not is_timeout_error(RuntimeError("boom"))


@pytest.mark.asyncio
async def test_reset_clears_state_and_cancels() -> None:
    release = asyncio.Event()

    async def orchestrator(request: TurnRequest) -> TurnResult:
        request.history.append(HistoryEntry(role="user", content=request.message))
        await release.wait()
        return TurnResult(text="done")

    session = ChatSession(orchestrator)
    task = asyncio.create_task(session.send("hi", "/data"))
    await asyncio.sleep(0)
    old_history = session.history

    session.reset()
    release.set()

    assert await task == SendFailure(error="Cancelled")
    assert session.history == []
    assert session.history is not old_history
    assert session.facts == []
    assert session.cancel_token is None


def test_record_step_extracts_facts() -> None:
    session = ChatSession(AsyncMock())

    session.record_step('read_info("a.bam")', SandboxSuccess(value=[]), "round-1")
    session.record_step('read_info("b.bam")', SandboxFailure(error_type=FailureKind.RUNTIME_ERROR, message="x"), "r2")

    assert [fact.filename for fact in session.facts] == ["a.bam"]
