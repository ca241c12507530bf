"""Go builder: defaults, flag rendering, main detection and `go build` per target.

The toolchain is reached only through `_run`, so tests (and callers that want a
different compiler front-end) can replace it without spawning `go`.
"""

from __future__ import annotations

import glob
import logging
import os
import re
import stat
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass, replace
from pathlib import Path

from crossbuild.artifact import Artifact, ArtifactType
from crossbuild.config import BuildConfig
from crossbuild.context import Context
from crossbuild.errors import (
    FileResolutionError,
    MissingMainError,
    ToolchainError,
)
from crossbuild.helpers import join_env, split_env
from crossbuild.targets import Target, parse_target, with_target_defaults
from crossbuild.tmpl import Template

log = logging.getLogger(__name__)

DEFAULT_LDFLAGS = (
    "-s -w -X main.version={{.Version}} -X main.commit={{.Commit}} "
    "-X main.date={{.Date}} -X main.builtBy=crossbuild"
)

_LINE_COMMENT = re.compile(r"//[^\n]*")
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_PACKAGE_MAIN = re.compile(r"^\s*package\s+main\b", re.MULTILINE)
_FUNC_MAIN = re.compile(r"^func\s+main\s*\(\s*\)", re.MULTILINE)


@dataclass(frozen=True)
class BuildOptions:
    """Per-target parameters supplied by the caller."""

    target: str
    name: str = ""
    path: str = ""
    ext: str = ""


def _run(
    cmd: Sequence[str],
    env: dict[str, str],
    cwd: Path | None = None,
) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        list(cmd),
        cwd=cwd,
        env=env,
        capture_output=True,
        text=True,
    )


# --- Flags ---


def process_flags(
    ctx: Context,
    artifact: Artifact,
    env: Sequence[str],
    flags: Sequence[str],
    prefix: str,
) -> list[str]:
    """Render each flag template and prepend prefix. Any template error aborts the batch."""
    t = Template(ctx).with_env(split_env(env)).with_artifact(artifact)
    return [prefix + t.apply(flag) for flag in flags]


def join_ldflags(flags: Sequence[str]) -> str:
    """All ldflags as one argument; go does not combine repeated -ldflags."""
    return "-ldflags=" + " ".join(flags)


def render_ldflags(
    ctx: Context,
    artifact: Artifact,
    env: Sequence[str],
    ldflags: Sequence[str],
) -> list[str]:
    """Rendered ldflags joined into a single -ldflags= argument, or [] when there are none."""
    rendered = process_flags(ctx, artifact, env, ldflags, "")
    return [join_ldflags(rendered)] if rendered else []


# --- Main detection ---


def _has_main_func(source: str) -> bool:
    code = _LINE_COMMENT.sub("", _BLOCK_COMMENT.sub("", source))
    return bool(_PACKAGE_MAIN.search(code) and _FUNC_MAIN.search(code))


def _go_sources(paths: Sequence[Path]) -> list[Path]:
    return [p for p in paths if p.suffix == ".go" and not p.name.endswith("_test.go")]


def build_dir(build: BuildConfig, root: Path | None = None) -> Path | None:
    """Directory the toolchain runs in: build.dir under root. None means the cwd."""
    if root is None:
        return Path(build.dir) if build.dir else None
    return root / build.dir if build.dir else root


def _os_error(op: str, path: object, e: OSError) -> str:
    # same shape as Go's *PathError: "stat foo.go: no such file or directory"
    reason = (e.strerror or str(e)).lower()
    return f"{op} {path}: {reason}"


def check_main(build: BuildConfig, root: Path | None = None) -> None:
    """Ensure build.main (file, directory or glob) holds `package main` with `func main()`.

    build.main is relative to build.dir, itself relative to root (default: cwd).
    Raises FileResolutionError if the path does not exist and MissingMainError if
    no Go file in it declares main.
    """
    main = build.main or "."
    base = build_dir(build, root)
    path = str(base / main) if base is not None else main
    if glob.has_magic(path):
        files = _go_sources([Path(p) for p in sorted(glob.glob(path))])
    else:
        try:
            st = os.stat(path)
        except OSError as e:
            raise FileResolutionError(_os_error("stat", path, e)) from e
        if stat.S_ISDIR(st.st_mode):
            files = _go_sources(sorted(Path(path).iterdir()))
        else:
            files = [Path(path)]
    for f in files:
        try:
            source = f.read_text(errors="replace")
        except OSError as e:
            raise FileResolutionError(_os_error("open", f, e)) from e
        if _has_main_func(source):
            return
    raise MissingMainError(build.id or build.binary)


# --- Builder ---


def _platform_env(target: Target) -> list[str]:
    env = [f"GOOS={target.os}", f"GOARCH={target.arch}"]
    if target.arm:
        env.append(f"GOARM={target.arm}")
    return env


class GoBuilder:
    """Builds Go binaries with `go build`, one process per target."""

    def __init__(self, tool: str = "go") -> None:
        self.tool = tool

    def with_defaults(self, build: BuildConfig) -> BuildConfig:
        """Return a copy with main, ldflags and the target matrix defaulted."""
        build = replace(
            build,
            main=build.main or ".",
            ldflags=list(build.ldflags) or [DEFAULT_LDFLAGS],
        )
        return with_target_defaults(build)

    def build(self, ctx: Context, build: BuildConfig, options: BuildOptions) -> Artifact:
        """Compile one target and record it in ctx.artifacts.

        Raises a BuildError subclass on failure; nothing is recorded then.
        """
        target = parse_target(options.target)
        artifact = Artifact(
            name=options.name,
            path=options.path,
            goos=target.os,
            goarch=target.arch,
            goarm=target.arm,
            type=ArtifactType.BINARY,
            extra={"Binary": build.binary, "ID": build.id, "Ext": options.ext},
        )

        t = Template(ctx).with_artifact(artifact)
        env = join_env({k: t.apply(v) for k, v in split_env(build.env).items()})

        cmd = [self.tool, "build"]
        cmd.extend(process_flags(ctx, artifact, env, build.flags, ""))
        cmd.extend(process_flags(ctx, artifact, env, build.asmflags, "-asmflags="))
        cmd.extend(process_flags(ctx, artifact, env, build.gcflags, "-gcflags="))
        cmd.extend(render_ldflags(ctx, artifact, env, build.ldflags))

        cwd = build_dir(build, ctx.project_root)
        check_main(build, ctx.project_root)
        out = str(Path(options.path).absolute()) if cwd is not None else options.path
        cmd.extend(["-o", out, build.main or "."])

        run_env = dict(ctx.env)
        run_env.update(split_env(env))
        run_env.update(split_env(_platform_env(target)))
        self._exec(cmd, run_env, target, cwd)

        ctx.artifacts.add(artifact)
        log.info("Built %s for %s -> %s", build.id, target, options.path)
        return artifact

    def _exec(
        self,
        cmd: list[str],
        env: dict[str, str],
        target: Target,
        cwd: Path | None,
    ) -> None:
        log.debug("Running %s (%s)", " ".join(cmd), " ".join(_platform_env(target)))
        try:
            r = _run(cmd, env, cwd)
        except OSError as e:
            msg = f"failed to run {self.tool} for {target}: {e}"
            raise ToolchainError(msg) from e
        if r.returncode != 0:
            output = ((r.stderr or "") + (r.stdout or "")).strip()
            msg = f"failed to build for {target}: {output}"
            raise ToolchainError(msg)
