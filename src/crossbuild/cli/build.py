"""`crossbuild build` and `crossbuild targets`."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Iterable
from pathlib import Path

from crossbuild import builders, git, pipeline
from crossbuild.config import load_project
from crossbuild.context import Context
from crossbuild.errors import ConfigError


def _common_args(ap: argparse.ArgumentParser) -> None:
    ap.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Config file (default: .crossbuild.yml)",
    )
    ap.add_argument(
        "--project-root",
        type=Path,
        default=Path.cwd(),
        help="Project root (default: cwd)",
    )
    ap.add_argument("--debug", action="store_true", help="Verbose logging")


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def run_build(
    project_root: Path,
    config_path: Path | None = None,
    parallelism: int = 1,
    ids: Iterable[str] | None = None,
    single_target: bool = False,
) -> int:
    """Load config, read git metadata, build all targets. Returns 0 or 1."""
    try:
        project = load_project(config_path, project_root)
    except ConfigError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    ctx = Context.new(project, project_root)
    ctx.git = git.describe(project_root)
    ctx.version = git.version_from(ctx.git)

    print(f"🔨 Building {project.project_name} {ctx.version}...")
    failures = pipeline.run(ctx, parallelism=parallelism, ids=ids, single_target=single_target)
    for a in ctx.artifacts.list():
        platform = "/".join(p for p in (a.goos, a.goarch, a.goarm) if p)
        print(f"  ✅ {a.extra.get('ID')} {platform} -> {a.path}")
    if failures:
        for f in failures:
            print(f"  ❌ {f}", file=sys.stderr)
        print(f"❌ {len(failures)} target(s) failed", file=sys.stderr)
        return 1
    print(f"🎉 Built {len(ctx.artifacts)} binary(ies)")
    return 0


def run_targets(project_root: Path, config_path: Path | None = None) -> int:
    """Print the resolved target matrix for each build. Returns 0 or 1."""
    try:
        project = load_project(config_path, project_root)
    except ConfigError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    for build in project.builds:
        resolved = builders.get(build.lang).with_defaults(build)
        print(f"{resolved.id}:")
        for target in resolved.targets:
            print(f"  {target}")
    return 0


def run_build_argv(argv: list[str] | None = None) -> None:
    """Parse argv and run the build (--config, --parallelism, --id, --single-target)."""
    if argv is None:
        argv = sys.argv[2:] if len(sys.argv) > 2 else []  # skip 'crossbuild build'
    ap = argparse.ArgumentParser(
        prog="crossbuild build",
        description="Cross-compile all targets",
    )
    _common_args(ap)
    ap.add_argument(
        "-p",
        "--parallelism",
        type=int,
        default=1,
        help="Concurrent builds (default: 1)",
    )
    ap.add_argument(
        "--id",
        action="append",
        dest="ids",
        default=None,
        help="Only build this build id (repeatable)",
    )
    ap.add_argument("--single-target", action="store_true", help="Build only for the host target")
    args = ap.parse_args(argv)
    _setup_logging(args.debug)
    rc = run_build(
        args.project_root,
        config_path=args.config,
        parallelism=args.parallelism,
        ids=args.ids,
        single_target=args.single_target,
    )
    sys.exit(rc)


def run_targets_argv(argv: list[str] | None = None) -> None:
    if argv is None:
        argv = sys.argv[2:] if len(sys.argv) > 2 else []
    ap = argparse.ArgumentParser(
        prog="crossbuild targets",
        description="Show the target matrix",
    )
    _common_args(ap)
    args = ap.parse_args(argv)
    _setup_logging(args.debug)
    sys.exit(run_targets(args.project_root, config_path=args.config))
