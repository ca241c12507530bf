"""Builders by language. `go` is registered by default; register() adds or replaces one."""

from __future__ import annotations

from typing import Protocol

from crossbuild.artifact import Artifact
from crossbuild.config import BuildConfig
from crossbuild.context import Context

from .golang import BuildOptions, GoBuilder, check_main, join_ldflags, process_flags


class Builder(Protocol):
    def with_defaults(self, build: BuildConfig) -> BuildConfig: ...

    def build(self, ctx: Context, build: BuildConfig, options: BuildOptions) -> Artifact: ...


_BUILDERS: dict[str, Builder] = {"go": GoBuilder()}


def register(lang: str, builder: Builder) -> None:
    _BUILDERS[lang] = builder


def get(lang: str) -> Builder:
    """Builder for lang. Raises KeyError naming the language when none is registered."""
    try:
        return _BUILDERS[lang]
    except KeyError:
        msg = f"no builder registered for lang {lang!r}"
        raise KeyError(msg) from None


__all__ = [
    "BuildOptions",
    "Builder",
    "GoBuilder",
    "check_main",
    "get",
    "join_ldflags",
    "process_flags",
    "register",
]
