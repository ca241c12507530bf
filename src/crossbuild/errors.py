"""Build failure taxonomy. Each error carries a kind and its message is the exact user-facing text."""

from __future__ import annotations


class BuildError(Exception):
    """Base for every failure that stops a single target build."""

    kind = "build"

    @property
    def message(self) -> str:
        return str(self)


class InvalidTargetError(BuildError):
    kind = "invalid_target"

    def __init__(self, target: str) -> None:
        super().__init__(f"{target} is not a valid build target")
        self.target = target


class TemplateError(BuildError):
    """Raised by the template engine; text mirrors Go's text/template errors."""

    kind = "template"


class MissingMainError(BuildError):
    kind = "missing_main"

    def __init__(self, build_id: str) -> None:
        super().__init__(f"build for {build_id} does not contain a main function")
        self.build_id = build_id


class FileResolutionError(BuildError):
    """Configured entry point could not be read; message is the OS error text."""

    kind = "file_resolution"


class ToolchainError(BuildError):
    """Compiler exited non-zero or could not be spawned; diagnostic is embedded verbatim."""

    kind = "toolchain"


class ConfigError(Exception):
    kind = "config"
