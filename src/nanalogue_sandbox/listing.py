# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

"""Recursive file listing under the allowed directory."""

import fnmatch
import os
from pathlib import PurePath

from nanalogue_sandbox.config import MAX_LS_ENTRIES
from nanalogue_sandbox.confinement import resolve_path
from nanalogue_sandbox.errors import SandboxError
from nanalogue_sandbox.models.files import Listing
from nanalogue_sandbox.utils.logger import logger


def _match_segments(parts: list[str], patterns: list[str]) -> bool:
    if not patterns:
        return not parts
    head, rest = patterns[0], patterns[1:]
    if head == "**":
        return any(_match_segments(parts[start:], rest) for start in range(len(parts) + 1))
    return bool(parts) and fnmatch.fnmatchcase(parts[0], head) and _match_segments(parts[1:], rest)


def matches_pattern(relative_path: str, pattern: str) -> bool:
    """Glob-match a POSIX relative path segment by segment.

    ``*``, ``?`` and ``[...]`` never cross ``/``; a ``**`` segment matches zero
    or more directories, so ``**/*.bam`` also matches top-level files.
    """
    return _match_segments(relative_path.split("/"), pattern.split("/"))


class _ListingWalk:
    """State for one listing: visited directories, collected files, cap flag."""

    def __init__(self, root_real: str, pattern: str | None, max_entries: int):
        self.root_real = root_real
        self.pattern = pattern
        self.max_entries = max_entries
        self.visited: set[str] = set()
        self.seen: set[str] = set()
        self.files: list[str] = []
        self.capped = False

    def walk(self, directory: str) -> None:
        directory_real = os.path.realpath(directory)
        if directory_real in self.visited:
            return
        self.visited.add(directory_real)

        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda entry: entry.name)
        except OSError as e:
            logger.debug("Skipping unreadable directory", directory=directory, error=str(e))
            return

        for entry in entries:
            if len(self.files) >= self.max_entries:
                self.capped = True
                return
            try:
                resolved = resolve_path(self.root_real, os.path.relpath(entry.path, self.root_real))
            except SandboxError:
                continue
            try:
                if os.path.isdir(resolved):
                    self.walk(resolved)
                    if self.capped:
                        return
                elif os.path.isfile(resolved):
                    self._collect(resolved)
            except OSError:
                # Permission errors and entries removed mid-walk.
                continue

    def _collect(self, resolved: str) -> None:
        relative = PurePath(os.path.relpath(resolved, self.root_real)).as_posix()
        if relative in self.seen:
            return
        if self.pattern is not None and not matches_pattern(relative, self.pattern):
            return
        self.seen.add(relative)
        self.files.append(relative)


def list_files(allowed_dir: str, pattern: str | None = None, max_entries: int = MAX_LS_ENTRIES) -> Listing:
    """List files under allowed_dir, depth first in name order.

    Symlinks are followed only while they resolve inside the allowed directory,
    and each real directory is visited once, so symlink cycles terminate.
    Paths are reported relative to the canonical root in POSIX form.

    Args:
        allowed_dir: The sandbox root.
        pattern: Optional glob the relative path must match.
        max_entries: Hard cap on the number of files returned.

    Returns:
        Listing: The files found and whether the cap cut the listing short.
    """
    walk = _ListingWalk(os.path.realpath(allowed_dir), pattern, max_entries)
    walk.walk(walk.root_real)
    logger.debug("Listed files", count=len(walk.files), capped=walk.capped, pattern=pattern)
    return Listing(files=walk.files, capped=walk.capped)
