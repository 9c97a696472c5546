# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

"""Backstop limits on data returned by the alignment data functions.

The data layer receives its own ``limit`` parameter, but these checks run
regardless of what it actually returned.
"""

from collections.abc import Sized

from nanalogue_sandbox.errors import ErrorKind, SandboxError

NARROWING_HINT = (
    "Use region, sample_fraction, or stricter filters to reduce result size. "
    "Or write to file and read back the first few lines."
)


def enforce_record_limit(records: Sized, fn_name: str, max_records: int) -> None:
    """Reject results holding more than max_records records.

    Raises:
        SandboxError: VALUE_ERROR naming the function and the limit.
    """
    if len(records) > max_records:
        raise SandboxError(
            ErrorKind.VALUE_ERROR,
            f"{fn_name} returned {len(records)} records, exceeds limit of {max_records}. {NARROWING_HINT}",
        )


def enforce_data_size_limit(data: str, fn_name: str, max_bytes: int) -> str:
    """Truncate line-oriented text at a newline boundary within max_bytes.

    Each kept line stays complete; a notice reporting kept vs. total lines is
    appended when truncation happens.
    """
    encoded = data.encode("utf-8")
    if len(encoded) <= max_bytes:
        return data

    last_newline = encoded.rfind(b"\n", 0, max_bytes + 1)
    cut_point = last_newline if last_newline > 0 else max_bytes
    kept = encoded[:cut_point].decode("utf-8", errors="ignore")
    total_lines = data.count("\n") + 1
    kept_lines = kept.count("\n") + 1
    return (
        f"{kept}\n[TRUNCATED by {fn_name}: showing {kept_lines} of {total_lines} lines. "
        "Use region, sample_fraction, win/step, or stricter filters to reduce result size. "
        "Or write to file and read back the first few lines. ]"
    )
