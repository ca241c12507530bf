"""Run context threaded through every build: version, git metadata, env, artifacts."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from crossbuild.artifact import Artifacts
from crossbuild.config import Project
from crossbuild.helpers import merge_env


@dataclass
class GitInfo:
    current_tag: str = ""
    commit: str = ""


@dataclass
class Context:
    config: Project = field(default_factory=Project)
    version: str = ""
    git: GitInfo = field(default_factory=GitInfo)
    env: dict[str, str] = field(default_factory=dict)
    artifacts: Artifacts = field(default_factory=Artifacts)
    date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    # None means the current working directory
    project_root: Path | None = None

    @classmethod
    def new(cls, config: Project, project_root: Path | None = None) -> Context:
        """Context for config with the process environment plus config.env.

        main, dir and dist of every build resolve against project_root.
        """
        return cls(
            config=config,
            env=merge_env(os.environ, config.env),
            project_root=project_root,
        )
