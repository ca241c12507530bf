"""Pytest fixtures for crossbuild tests."""

from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from crossbuild.config import Project
from crossbuild.context import Context, GitInfo

GOOD_MAIN = "package main\nvar a = 1\nfunc main() {println(0)}"


@pytest.fixture
def ctx() -> Context:
    """Context with fixed version, tag, commit and date, and an empty env."""
    return Context(
        config=Project(project_name="foo"),
        version="1.2.3",
        git=GitInfo(current_tag="5.6.7", commit="0123456789abcdef"),
        env={},
        date=datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone.utc),
    )


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """cwd switched to an empty temporary directory."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def good_main(workdir: Path) -> Path:
    (workdir / "main.go").write_text(GOOD_MAIN)
    return workdir


@pytest.fixture
def go_run() -> Iterator[MagicMock]:
    """Replace the go toolchain call with a successful no-op."""
    with patch("crossbuild.builders.golang._run") as m:
        m.return_value = MagicMock(returncode=0, stdout="", stderr="")
        yield m
