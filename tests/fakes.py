"""Test doubles shared by the test modules."""

from __future__ import annotations

import difflib
import sys
import threading
import time
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from switchback.core.events import BackupEvent  # noqa: E402
from switchback.snmp.client import SnmpTransportError  # noqa: E402
from switchback.vcs.store import VersionStoreError  # noqa: E402


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[BackupEvent] = []

    def handle(self, event: BackupEvent) -> None:
        self.events.append(event)

    def matching(self, component: str, action: str) -> list[BackupEvent]:
        return [event for event in self.events if event.component == component and event.action == action]


class MemoryStore:
    """Version store keeping committed revisions in memory.

    Stores and checkouts are still created as directories so that the
    repository manager and orchestrator see them on disk.
    """

    def __init__(
        self,
        fail_stores: set[str] | None = None,
        fail_commit: bool = False,
        commit_delay: float = 0.0,
    ) -> None:
        self.fail_stores = fail_stores or set()
        self.fail_commit = fail_commit
        self.commit_delay = commit_delay
        self.init_calls: list[Path] = []
        self.checkout_calls: list[tuple[Path, Path]] = []
        self.added: list[Path] = []
        self.commits: list[tuple[Path, str]] = []
        self.heads: dict[Path, str] = {}
        self.max_concurrent: dict[str, int] = {}
        self._active: dict[str, int] = {}
        self._guard = threading.Lock()

    def init_store(self, path: Path) -> None:
        self.init_calls.append(path)
        if path.name in self.fail_stores:
            raise VersionStoreError(f"cannot create {path}")
        path.mkdir(parents=True)

    def checkout(self, store_path: Path, work_dir: Path) -> None:
        self.checkout_calls.append((store_path, work_dir))
        work_dir.mkdir(parents=True)

    def add(self, path: Path) -> None:
        self.added.append(path)

    def commit(self, path: Path, message: str) -> str | None:
        group = path.parent.name
        with self._guard:
            self._active[group] = self._active.get(group, 0) + 1
            self.max_concurrent[group] = max(self.max_concurrent.get(group, 0), self._active[group])
        try:
            if self.commit_delay:
                time.sleep(self.commit_delay)
            if self.fail_commit:
                raise VersionStoreError("commit rejected")
            if path not in self.added and path not in self.heads:
                raise VersionStoreError(f"{path.name} is not tracked")
            content = path.read_text(encoding="utf-8")
            if self.heads.get(path) == content:
                return None
            self.heads[path] = content
            self.commits.append((path, message))
            return f"rev{len(self.commits)}"
        finally:
            with self._guard:
                self._active[group] -= 1

    def diff_against_head(self, path: Path) -> str:
        head = self.heads.get(path, "")
        current = path.read_text(encoding="utf-8")
        return "".join(difflib.unified_diff(head.splitlines(True), current.splitlines(True)))

    def cat_head(self, path: Path) -> str:
        if path not in self.heads:
            raise VersionStoreError(f"{path.name} has no committed revision")
        return self.heads[path]


class ScriptedTransport:
    """SNMP stand-in that delivers a scripted configuration per switch IP.

    A payload of ``None`` means the switch acknowledges but never delivers;
    an exception instance is raised from the trigger.
    """

    def __init__(self, drop_dir: Path, payloads: dict[str, object], nvram_error: bool = False) -> None:
        self.drop_dir = drop_dir
        self.payloads = payloads
        self.nvram_error = nvram_error
        self.triggers: list[tuple[str, str, str, str]] = []
        self.nvram_calls: list[tuple[str, str]] = []

    async def trigger_remote_write(
        self, ip: str, community: str, local_ip: str, token: str, *, device: str = "-"
    ) -> None:
        self.triggers.append((ip, community, local_ip, token))
        payload = self.payloads.get(ip)
        if isinstance(payload, Exception):
            raise payload
        if payload is None:
            return
        target = self.drop_dir / token
        with target.open("w", encoding="utf-8", newline="") as handle:
            handle.write(str(payload))

    async def commit_to_nvram(self, ip: str, community: str, *, device: str = "-") -> None:
        self.nvram_calls.append((ip, community))
        if self.nvram_error:
            raise SnmpTransportError(f"no response from {ip}")
