"""Drive every configured build over its target matrix and collect per-target failures.

A failing target never stops the others; the registry ends up holding exactly the
targets that succeeded.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from pathlib import Path

from crossbuild import builders
from crossbuild.artifact import Artifact
from crossbuild.builders import BuildOptions
from crossbuild.config import BuildConfig
from crossbuild.context import Context
from crossbuild.errors import BuildError
from crossbuild.targets import host_target, parse_target
from crossbuild.tmpl import Template

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildFailure:
    build_id: str
    target: str
    error: BuildError

    @property
    def kind(self) -> str:
        return self.error.kind

    def __str__(self) -> str:
        return f"{self.build_id} ({self.target}): {self.error}"


def ext_for(target: str) -> str:
    """Binary extension for a target identifier: .exe on windows, .wasm for js_wasm."""
    if target.startswith("windows"):
        return ".exe"
    if target == "js_wasm":
        return ".wasm"
    return ""


def build_options(
    ctx: Context,
    build: BuildConfig,
    target: str,
) -> tuple[BuildConfig, BuildOptions]:
    """Resolve the binary name for target and the options for one build.

    Returns build with binary rendered, plus options whose path is
    <dist>/<id>_<target>/<binary><ext>, with a relative dist taken from ctx.project_root.
    """
    t = parse_target(target)
    platform = Artifact(goos=t.os, goarch=t.arch, goarm=t.arm)
    binary = Template(ctx).with_artifact(platform).apply(build.binary)
    ext = ext_for(target)
    name = binary + ext
    dist = Path(ctx.config.dist)
    if ctx.project_root is not None:
        dist = ctx.project_root / dist
    path = dist / f"{build.id}_{target}" / name
    return replace(build, binary=binary), BuildOptions(
        target=target, name=name, path=str(path), ext=ext
    )


def _build_one(ctx: Context, build: BuildConfig, target: str) -> BuildFailure | None:
    builder = builders.get(build.lang)
    try:
        resolved, options = build_options(ctx, build, target)
        builder.build(ctx, resolved, options)
    except BuildError as e:
        log.warning("Build %s failed for %s: %s", build.id, target, e)
        return BuildFailure(build.id, target, e)
    return None


def _select(builds: Iterable[BuildConfig], ids: Iterable[str] | None) -> list[BuildConfig]:
    if not ids:
        return list(builds)
    wanted = set(ids)
    return [b for b in builds if b.id in wanted]


def run(
    ctx: Context,
    parallelism: int = 1,
    ids: Iterable[str] | None = None,
    single_target: bool = False,
) -> list[BuildFailure]:
    """Build every (build, target) pair. Returns the failures; successes land in ctx.artifacts."""
    jobs: list[tuple[BuildConfig, str]] = []
    for build in _select(ctx.config.builds, ids):
        build = builders.get(build.lang).with_defaults(build)
        targets = [host_target(ctx.env)] if single_target else build.targets
        jobs.extend((build, target) for target in targets)
    log.info("Building %d target(s) with parallelism %d", len(jobs), parallelism)

    if parallelism <= 1:
        results = [_build_one(ctx, b, t) for b, t in jobs]
    else:
        with ThreadPoolExecutor(max_workers=parallelism) as pool:
            results = list(pool.map(lambda job: _build_one(ctx, *job), jobs))
    return [r for r in results if r is not None]
