"""Target matrix: expand goos/goarch/goarm lists into validated `os_arch[_arm]` identifiers.

The compatibility table is data, not logic: extend VALID_TARGETS (or pass your own
table to matrix/parse_target) to support more platforms.
"""

from __future__ import annotations

import logging
import platform
import sys
from collections.abc import Collection
from dataclasses import dataclass, replace

from crossbuild.config import BuildConfig, IgnoredTarget
from crossbuild.errors import InvalidTargetError

log = logging.getLogger(__name__)

DEFAULT_GOOS = ("linux", "darwin")
DEFAULT_GOARCH = ("amd64", "386")
DEFAULT_GOARM = ("6",)

VALID_GOARM = frozenset({"5", "6", "7"})

# Known-good (os, arch) pairs for the Go toolchain.
VALID_TARGETS: frozenset[tuple[str, str]] = frozenset(
    {
        ("aix", "ppc64"),
        ("android", "386"),
        ("android", "amd64"),
        ("android", "arm"),
        ("android", "arm64"),
        ("darwin", "386"),
        ("darwin", "amd64"),
        ("darwin", "arm64"),
        ("dragonfly", "amd64"),
        ("freebsd", "386"),
        ("freebsd", "amd64"),
        ("freebsd", "arm"),
        ("freebsd", "arm64"),
        ("illumos", "amd64"),
        ("js", "wasm"),
        ("linux", "386"),
        ("linux", "amd64"),
        ("linux", "arm"),
        ("linux", "arm64"),
        ("linux", "mips"),
        ("linux", "mips64"),
        ("linux", "mips64le"),
        ("linux", "mipsle"),
        ("linux", "ppc64"),
        ("linux", "ppc64le"),
        ("linux", "riscv64"),
        ("linux", "s390x"),
        ("netbsd", "386"),
        ("netbsd", "amd64"),
        ("netbsd", "arm"),
        ("openbsd", "386"),
        ("openbsd", "amd64"),
        ("openbsd", "arm"),
        ("openbsd", "arm64"),
        ("plan9", "386"),
        ("plan9", "amd64"),
        ("solaris", "amd64"),
        ("windows", "386"),
        ("windows", "amd64"),
    }
)

_HOST_OS = {"linux": "linux", "darwin": "darwin", "win32": "windows", "cygwin": "windows"}
_HOST_ARCH = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv6l": "arm",
    "armv7l": "arm",
}


@dataclass(frozen=True)
class Target:
    os: str
    arch: str
    arm: str = ""

    def __str__(self) -> str:
        if self.arm:
            return f"{self.os}_{self.arch}_{self.arm}"
        return f"{self.os}_{self.arch}"


def _is_supported(t: Target, valid: Collection[tuple[str, str]]) -> bool:
    if (t.os, t.arch) not in valid:
        return False
    if t.arm:
        return t.arch == "arm" and t.arm in VALID_GOARM
    return True


def parse_target(
    target: str, valid: Collection[tuple[str, str]] = VALID_TARGETS
) -> Target:
    """Split `os_arch` or `os_arch_arm` and check it against the table. Raises InvalidTargetError."""
    parts = target.split("_")
    if len(parts) not in (2, 3) or not all(parts):
        raise InvalidTargetError(target)
    t = Target(*parts)
    if not _is_supported(t, valid):
        raise InvalidTargetError(target)
    return t


def _ignored(t: Target, ignore: Collection[IgnoredTarget]) -> bool:
    for ig in ignore:
        if ig.goos == t.os and ig.goarch == t.arch and (not ig.goarm or ig.goarm == t.arm):
            return True
    return False


def matrix(build: BuildConfig, valid: Collection[tuple[str, str]] = VALID_TARGETS) -> list[str]:
    """Product of goos x goarch (x goarm for arm), filtered and deduplicated, in product order."""
    goos = build.goos or list(DEFAULT_GOOS)
    goarch = build.goarch or list(DEFAULT_GOARCH)
    goarm = build.goarm or list(DEFAULT_GOARM)
    candidates: list[Target] = []
    for os_ in goos:
        for arch in goarch:
            if arch == "arm":
                candidates.extend(Target(os_, arch, arm) for arm in goarm)
            else:
                candidates.append(Target(os_, arch))

    result: dict[str, None] = {}
    for t in candidates:
        if not _is_supported(t, valid):
            log.debug("Skipping unsupported target %s", t)
            continue
        if _ignored(t, build.ignore):
            log.debug("Skipping ignored target %s", t)
            continue
        result[str(t)] = None
    return list(result)


def with_target_defaults(
    build: BuildConfig, valid: Collection[tuple[str, str]] = VALID_TARGETS
) -> BuildConfig:
    """Return a copy with goos/goarch/goarm defaulted and targets resolved. No-op when targets is set."""
    if build.targets:
        return build
    resolved = replace(
        build,
        goos=list(build.goos or DEFAULT_GOOS),
        goarch=list(build.goarch or DEFAULT_GOARCH),
        goarm=list(build.goarm or DEFAULT_GOARM),
    )
    resolved.targets = matrix(resolved, valid)
    log.debug("Build %s targets: %s", build.id, ", ".join(resolved.targets))
    return resolved


def host_target(env: dict[str, str] | None = None) -> str:
    """Target identifier for this machine; GOOS/GOARCH/GOARM in env take precedence."""
    env = env or {}
    os_ = env.get("GOOS") or _HOST_OS.get(sys.platform, sys.platform)
    arch = env.get("GOARCH") or _HOST_ARCH.get(platform.machine().lower(), platform.machine().lower())
    arm = env.get("GOARM", "") if arch == "arm" else ""
    return str(Target(os_, arch, arm))
