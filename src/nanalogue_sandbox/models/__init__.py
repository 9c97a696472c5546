# src/nanalogue_sandbox/models/__init__.py

"""
Data models for the sandbox bridge.
"""

from .chat import (
    ChatEvent,
    HistoryEntry,
    SendFailure,
    SendResult,
    SendSuccess,
    StepInfo,
    StepResult,
    TurnResult,
)
from .execution import SandboxFailure, SandboxOutcome, SandboxSuccess
from .facts import Fact, FileFact, FilterFact, OutputFact
from .files import Listing, ReadFileResult, WriteFileResult
from .options import ReadOptions, WindowOptions

__all__ = [
    "ChatEvent",
    "Fact",
    "FileFact",
    "FilterFact",
    "HistoryEntry",
    "Listing",
    "OutputFact",
    "ReadFileResult",
    "ReadOptions",
    "SandboxFailure",
    "SandboxOutcome",
    "SandboxSuccess",
    "SendFailure",
    "SendResult",
    "SendSuccess",
    "StepInfo",
    "StepResult",
    "TurnResult",
    "WindowOptions",
    "WriteFileResult",
]
