# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

import os
from pathlib import Path

import pytest

from nanalogue_sandbox.confinement import assert_inside, is_inside, resolve_path
from nanalogue_sandbox.errors import ErrorKind, SandboxError


def _assert_outside(allowed_dir: str, path: str) -> None:
    with pytest.raises(SandboxError) as exc_info:
        resolve_path(allowed_dir, path)
    assert exc_info.value.kind == ErrorKind.OS_ERROR
    assert exc_info.value.message == f'Path "{path}" is outside the allowed directory'


def test_resolves_existing_file(allowed_dir: str) -> None:
    Path(allowed_dir, "data.bam").write_text("x")
    assert resolve_path(allowed_dir, "data.bam") == os.path.join(allowed_dir, "data.bam")


def test_resolves_new_file_without_canonicalizing(allowed_dir: str) -> None:
    assert resolve_path(allowed_dir, "new/out.txt") == os.path.join(allowed_dir, "new", "out.txt")


@pytest.mark.parametrize("path", ["..", "../secret.txt", "a/../../secret.txt", "/etc/passwd"])
def test_rejects_textual_escapes(allowed_dir: str, path: str) -> None:
    _assert_outside(allowed_dir, path)


def test_rejects_nul_byte(allowed_dir: str) -> None:
    _assert_outside(allowed_dir, "bad\x00name")


def test_rejects_symlinked_file(allowed_dir: str, outside_dir: str) -> None:
    os.symlink(os.path.join(outside_dir, "secret.txt"), os.path.join(allowed_dir, "link.txt"))
    _assert_outside(allowed_dir, "link.txt")


def test_rejects_symlinked_directory(allowed_dir: str, outside_dir: str) -> None:
    os.symlink(outside_dir, os.path.join(allowed_dir, "linkdir"))
    _assert_outside(allowed_dir, "linkdir/secret.txt")


def test_rejects_new_file_under_symlinked_ancestor(allowed_dir: str, outside_dir: str) -> None:
    os.symlink(outside_dir, os.path.join(allowed_dir, "linkdir"))
    _assert_outside(allowed_dir, "linkdir/deeper/new.txt")


def test_rejects_dangling_symlink_to_outside(allowed_dir: str, outside_dir: str) -> None:
    target = os.path.join(outside_dir, "missing", "grandchild.txt")
    os.symlink(target, os.path.join(allowed_dir, "dangling"))
    _assert_outside(allowed_dir, "dangling")


def test_allows_symlink_inside_root(allowed_dir: str) -> None:
    real = Path(allowed_dir, "real.txt")
    real.write_text("ok")
    os.symlink(real, os.path.join(allowed_dir, "alias.txt"))
    assert resolve_path(allowed_dir, "alias.txt") == str(real)


def test_symlinked_root_resolves_to_canonical_paths(tmp_path: Path, allowed_dir: str) -> None:
    Path(allowed_dir, "a.txt").write_text("a")
    root_link = tmp_path / "root_link"
    os.symlink(allowed_dir, root_link)
    assert resolve_path(str(root_link), "a.txt") == os.path.join(allowed_dir, "a.txt")


def test_is_inside() -> None:
    assert is_inside("/data", "/data/x")
    assert is_inside("/data", "/data")
    assert not is_inside("/data", "/data2/x")
    assert not is_inside("/data", "/")


def test_assert_inside_uses_given_message() -> None:
    with pytest.raises(SandboxError, match="nope"):
        assert_inside("/data", "/elsewhere", "nope")
