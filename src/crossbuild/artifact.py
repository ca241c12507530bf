"""Artifacts produced by a run and the shared, append-only registry that holds them."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any


class ArtifactType(str, Enum):
    BINARY = "Binary"


@dataclass(frozen=True)
class Artifact:
    name: str = ""
    path: str = ""
    goos: str = ""
    goarch: str = ""
    goarm: str = ""
    type: ArtifactType = ArtifactType.BINARY
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # read-only snapshot; the caller's dict stays independent
        object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))


class Artifacts:
    """Insertion-ordered registry. Appends are serialized so concurrent builds can record safely."""

    def __init__(self) -> None:
        self._items: list[Artifact] = []
        self._lock = threading.Lock()

    def add(self, artifact: Artifact) -> None:
        with self._lock:
            self._items.append(artifact)

    def list(self) -> list[Artifact]:
        with self._lock:
            return list(self._items)

    def filter(
        self,
        *,
        type: ArtifactType | None = None,
        goos: str | None = None,
        ids: Iterable[str] | None = None,
    ) -> list[Artifact]:
        """Artifacts matching every given criterion. ids matches Extra["ID"]."""
        wanted = set(ids) if ids is not None else None
        out: list[Artifact] = []
        for a in self.list():
            if type is not None and a.type != type:
                continue
            if goos is not None and a.goos != goos:
                continue
            if wanted is not None and a.extra.get("ID") not in wanted:
                continue
            out.append(a)
        return out

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
