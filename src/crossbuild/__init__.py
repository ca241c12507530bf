"""Cross-compilation orchestrator: target matrix, templated flags, toolchain runs, artifact registry."""

from crossbuild.artifact import Artifact, Artifacts, ArtifactType
from crossbuild.builders import BuildOptions, GoBuilder
from crossbuild.config import BuildConfig, Project, load_project
from crossbuild.context import Context, GitInfo
from crossbuild.errors import (
    BuildError,
    ConfigError,
    FileResolutionError,
    InvalidTargetError,
    MissingMainError,
    TemplateError,
    ToolchainError,
)
from crossbuild.targets import matrix, parse_target, with_target_defaults
from crossbuild.tmpl import Template

__version__ = "0.1.0"

__all__ = [
    "Artifact",
    "ArtifactType",
    "Artifacts",
    "BuildConfig",
    "BuildError",
    "BuildOptions",
    "ConfigError",
    "Context",
    "FileResolutionError",
    "GitInfo",
    "GoBuilder",
    "InvalidTargetError",
    "MissingMainError",
    "Project",
    "Template",
    "TemplateError",
    "ToolchainError",
    "load_project",
    "matrix",
    "parse_target",
    "with_target_defaults",
]
