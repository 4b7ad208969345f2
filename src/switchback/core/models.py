"""Data models for switch inventory and backup outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class Classification(str, Enum):
    """How a retrieved configuration relates to the archived one."""

    NEW = "new"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


@dataclass(frozen=True, slots=True)
class Device:
    """A switch entry produced by the inventory loader."""

    name: str
    ip: str
    community: str
    group: str
    local_ip: str
    source: Path | None = None
    line: int | None = None

    @property
    def label(self) -> str:
        return f"{self.group}/{self.name}"


@dataclass(slots=True)
class DeviceResult:
    """Outcome of one device iteration."""

    name: str
    group: str
    ip: str
    status: str = "failed"
    classification: Classification | None = None
    archive_path: Path | None = None
    committed: bool = False
    nvram_written: bool = False
    error: str | None = None
    latency: float | None = None
