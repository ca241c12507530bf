"""Shared helpers for crossbuild (env lists, list coercion, commit, path).

Used by config, context, tmpl, builders and pipeline.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

# --- Env ---


def split_env(entries: Iterable[str]) -> dict[str, str]:
    """Turn KEY=VALUE strings into a dict. Later entries win; entries without '=' map to ''."""
    out: dict[str, str] = {}
    for entry in entries:
        key, _, value = entry.partition("=")
        if key:
            out[key] = value
    return out


def join_env(env: Mapping[str, str]) -> list[str]:
    """Inverse of split_env, in mapping order."""
    return [f"{k}={v}" for k, v in env.items()]


def merge_env(base: Mapping[str, str], *overlays: Iterable[str]) -> dict[str, str]:
    """Copy base and apply each KEY=VALUE overlay in order."""
    out = dict(base)
    for overlay in overlays:
        out.update(split_env(overlay))
    return out


# --- Config values ---


def as_str_list(value: Any) -> list[str]:
    """None -> [], scalar -> [str(scalar)], sequence -> [str, ...]."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


# --- Git ---


def short_commit(commit: str, length: int = 7) -> str:
    """Abbreviated commit hash (first `length` chars)."""
    return commit[:length]


# --- Path ---


def find_config_file(root: Path, names: Iterable[str]) -> Path | None:
    """First existing file among names under root, else None."""
    for name in names:
        p = root / name
        if p.is_file():
            return p
    return None
