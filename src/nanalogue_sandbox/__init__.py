# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

"""
nanalogue-sandbox
"""

__version__ = "0.1.0"

from .bridge import Sandbox, SandboxBridge, run_interpreter, run_sandbox_code
from .cancel import CancelToken
from .config import ResourceLimits, SandboxConfig, derive_max_output_bytes
from .data_access import DataAccess
from .errors import ErrorKind, FailureKind, LimitKind, SandboxCancelledError, SandboxError
from .models.execution import SandboxFailure, SandboxOutcome, SandboxSuccess
from .session import ChatSession, Orchestrator, TurnRequest
from .utils.logger import configure_logging

__all__ = [
    "CancelToken",
    "ChatSession",
    "DataAccess",
    "ErrorKind",
    "FailureKind",
    "LimitKind",
    "Orchestrator",
    "ResourceLimits",
    "Sandbox",
    "SandboxBridge",
    "SandboxCancelledError",
    "SandboxConfig",
    "SandboxError",
    "SandboxFailure",
    "SandboxOutcome",
    "SandboxSuccess",
    "TurnRequest",
    "configure_logging",
    "derive_max_output_bytes",
    "run_interpreter",
    "run_sandbox_code",
]
