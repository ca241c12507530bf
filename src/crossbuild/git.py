"""Read tag and commit from the project's git repository."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from pathlib import Path

from crossbuild.context import GitInfo
from crossbuild.helpers import short_commit

log = logging.getLogger(__name__)


def _run(
    cmd: Sequence[str],
    cwd: Path | None = None,
) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        cmd,
        cwd=cwd,
        capture_output=True,
        text=True,
    )


def _git(args: Sequence[str], cwd: Path) -> str | None:
    """Stripped stdout of `git <args>`, or None when git fails or is not installed."""
    try:
        r = _run(["git", *args], cwd=cwd)
    except OSError as e:
        log.debug("git %s failed: %s", " ".join(args), e)
        return None
    if r.returncode != 0:
        log.debug("git %s failed: %s", " ".join(args), (r.stderr or "").strip())
        return None
    return r.stdout.strip()


def describe(project_root: Path) -> GitInfo:
    """Latest tag reachable from HEAD and the HEAD commit. Missing tag/commit become ''."""
    return GitInfo(
        current_tag=_git(["describe", "--tags", "--abbrev=0"], project_root) or "",
        commit=_git(["show", "--format=%H", "-s", "HEAD"], project_root) or "",
    )


def version_from(info: GitInfo) -> str:
    """Tag without a leading 'v', or a snapshot version when there is no tag."""
    if info.current_tag:
        return info.current_tag.lstrip("v")
    suffix = short_commit(info.commit) or "none"
    return f"0.0.0-SNAPSHOT-{suffix}"
