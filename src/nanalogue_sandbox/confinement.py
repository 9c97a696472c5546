# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

"""Confines user-supplied paths to an allowed root directory."""

import os

from nanalogue_sandbox.errors import ErrorKind, SandboxError
from nanalogue_sandbox.utils.logger import logger


def outside_message(file_path: str) -> str:
    return f'Path "{file_path}" is outside the allowed directory'


def is_inside(base: str, candidate: str) -> bool:
    """Textual containment check of an absolute candidate against base."""
    try:
        rel = os.path.relpath(candidate, base)
    except ValueError:
        # Different drives on Windows.
        return False
    if os.path.isabs(rel):
        return False
    return rel != os.pardir and not rel.startswith(os.pardir + os.sep)


def assert_inside(base: str, candidate: str, error_message: str) -> None:
    """Raise an OS-level SandboxError unless candidate lies within base.

    Args:
        base: The directory the candidate must stay within.
        candidate: The absolute path to validate.
        error_message: The message carried by the raised error.

    Raises:
        SandboxError: If the candidate escapes base.
    """
    if not is_inside(base, candidate):
        raise SandboxError(ErrorKind.OS_ERROR, error_message)


def resolve_path(allowed_dir: str, file_path: str) -> str:
    """Resolve file_path inside allowed_dir, following symlinks.

    Existing targets are returned in canonical form. For a target that does not
    exist yet (a new write target) the joined, non-canonical path is returned
    once its parent and its own symlink-resolved form are confirmed inside the
    allowed directory.

    Raises:
        SandboxError: OS_ERROR if the path resolves outside allowed_dir.
    """
    error_message = outside_message(file_path)
    if "\x00" in file_path:
        raise SandboxError(ErrorKind.OS_ERROR, error_message)

    resolved = os.path.normpath(os.path.join(allowed_dir, file_path))
    assert_inside(allowed_dir, resolved, error_message)

    allowed_real = os.path.realpath(allowed_dir)
    if os.path.exists(resolved):
        candidate_real = os.path.realpath(resolved)
        if not is_inside(allowed_real, candidate_real):
            logger.warning("Rejected path escaping the allowed directory", path=file_path)
            raise SandboxError(ErrorKind.OS_ERROR, error_message)
        return candidate_real

    parent_real = os.path.realpath(os.path.dirname(resolved))
    # Non-strict resolution follows dangling symlinks, so a leaf or ancestor
    # link pointing outside is caught before the file exists.
    leaf_real = os.path.realpath(resolved)
    if not (is_inside(allowed_real, parent_real) and is_inside(allowed_real, leaf_real)):
        logger.warning("Rejected new path escaping the allowed directory", path=file_path)
        raise SandboxError(ErrorKind.OS_ERROR, error_message)
    return resolved
