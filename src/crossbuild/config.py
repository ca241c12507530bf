"""Project configuration: build definitions and the YAML loader.

Config YAML format (.crossbuild.yml):
- project_name: defaults to the config directory name
- dist: output directory for binaries (default: dist)
- env: list of KEY=VALUE applied on top of the process environment
- builds: list of build definitions; keys mirror BuildConfig fields
  (id, binary, main, dir, lang, goos, goarch, goarm, targets, ignore,
  flags, asmflags, gcflags, ldflags, env, hooks)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from crossbuild.errors import ConfigError
from crossbuild.helpers import as_str_list, find_config_file

log = logging.getLogger(__name__)

CONFIG_FILE_NAMES = (".crossbuild.yml", ".crossbuild.yaml")

_LIST_KEYS = (
    "goos",
    "goarch",
    "goarm",
    "targets",
    "flags",
    "asmflags",
    "gcflags",
    "ldflags",
    "env",
)
_BUILD_KEYS = frozenset(
    {"id", "binary", "main", "dir", "lang", "ignore", "hooks", *_LIST_KEYS}
)
_PROJECT_KEYS = frozenset({"project_name", "dist", "env", "builds"})


@dataclass(frozen=True)
class Hooks:
    """Pre/post build commands. Carried through untouched; executed elsewhere."""

    pre: str = ""
    post: str = ""


@dataclass(frozen=True)
class IgnoredTarget:
    """A (goos, goarch, goarm) combination removed from the matrix. Empty goarm matches any."""

    goos: str
    goarch: str
    goarm: str = ""


@dataclass
class BuildConfig:
    """One buildable unit. Treated as immutable: defaulting returns a new value."""

    id: str = ""
    binary: str = ""
    main: str = ""
    dir: str = ""
    lang: str = "go"
    goos: list[str] = field(default_factory=list)
    goarch: list[str] = field(default_factory=list)
    goarm: list[str] = field(default_factory=list)
    targets: list[str] = field(default_factory=list)
    ignore: list[IgnoredTarget] = field(default_factory=list)
    flags: list[str] = field(default_factory=list)
    asmflags: list[str] = field(default_factory=list)
    gcflags: list[str] = field(default_factory=list)
    ldflags: list[str] = field(default_factory=list)
    env: list[str] = field(default_factory=list)
    hooks: Hooks = field(default_factory=Hooks)


@dataclass
class Project:
    project_name: str = ""
    dist: str = "dist"
    env: list[str] = field(default_factory=list)
    builds: list[BuildConfig] = field(default_factory=list)


def _parse_ignore(raw: Any, where: str) -> list[IgnoredTarget]:
    out: list[IgnoredTarget] = []
    for item in raw or []:
        if not isinstance(item, dict) or not item.get("goos") or not item.get("goarch"):
            msg = f"{where}: ignore entries need goos and goarch"
            raise ConfigError(msg)
        out.append(
            IgnoredTarget(
                goos=str(item["goos"]),
                goarch=str(item["goarch"]),
                goarm=str(item.get("goarm") or ""),
            )
        )
    return out


def _parse_hooks(raw: Any) -> Hooks:
    if not raw:
        return Hooks()
    if not isinstance(raw, dict):
        msg = f"hooks must be a mapping, got {type(raw).__name__}"
        raise ConfigError(msg)
    return Hooks(pre=str(raw.get("pre") or ""), post=str(raw.get("post") or ""))


def parse_build(raw: dict[str, Any], project_name: str, index: int) -> BuildConfig:
    """Build one BuildConfig from its YAML mapping. id and binary default to project_name."""
    where = f"builds[{index}]"
    if not isinstance(raw, dict):
        msg = f"{where} must be a mapping"
        raise ConfigError(msg)
    unknown = set(raw) - _BUILD_KEYS
    if unknown:
        msg = f"{where}: unknown keys: {', '.join(sorted(unknown))}"
        raise ConfigError(msg)
    lists = {k: as_str_list(raw.get(k)) for k in _LIST_KEYS}
    return BuildConfig(
        id=str(raw.get("id") or project_name),
        binary=str(raw.get("binary") or project_name),
        main=str(raw.get("main") or ""),
        dir=str(raw.get("dir") or ""),
        lang=str(raw.get("lang") or "go"),
        ignore=_parse_ignore(raw.get("ignore"), where),
        hooks=_parse_hooks(raw.get("hooks")),
        **lists,
    )


def parse_project(data: dict[str, Any], default_name: str = "") -> Project:
    """Normalize a loaded YAML document into a Project. Raises ConfigError on bad input."""
    if not isinstance(data, dict):
        msg = "config root must be a mapping"
        raise ConfigError(msg)
    unknown = set(data) - _PROJECT_KEYS
    if unknown:
        msg = f"unknown keys: {', '.join(sorted(unknown))}"
        raise ConfigError(msg)
    name = str(data.get("project_name") or default_name)
    raw_builds = data.get("builds") or [{}]
    builds = [parse_build(b, name, i) for i, b in enumerate(raw_builds)]
    seen: set[str] = set()
    for b in builds:
        if b.id in seen:
            msg = f"found 2 builds with the ID '{b.id}', please fix your config"
            raise ConfigError(msg)
        seen.add(b.id)
    return Project(
        project_name=name,
        dist=str(data.get("dist") or "dist"),
        env=as_str_list(data.get("env")),
        builds=builds,
    )


def load_project(config_path: Path | None = None, project_root: Path | None = None) -> Project:
    """Load project config from config_path, or the first of CONFIG_FILE_NAMES under project_root."""
    root = project_root or Path.cwd()
    path = config_path or find_config_file(root, CONFIG_FILE_NAMES)
    if path is None:
        msg = f"no config file found in {root} (tried {', '.join(CONFIG_FILE_NAMES)})"
        raise ConfigError(msg)
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        msg = f"could not read {path}: {e}"
        raise ConfigError(msg) from e
    log.debug("Loaded config %s", path)
    return parse_project(data, default_name=path.resolve().parent.name)
