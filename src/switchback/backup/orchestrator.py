"""Per-device backup workflow.

For every switch the orchestrator walks the same steps: make sure the
group's repository exists, trigger the TFTP push over SNMP, wait for the
file, compare it with the archived copy, commit it and, when the
configuration changed, ask the switch to save it to NVRAM. A failure ends
the current device only.

Devices run concurrently up to ``workers``. Everything that touches a
group's checkout (provisioning, archive writes, commits) holds that group's
lock, so a checkout never has two writers.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Protocol

from switchback.common.console import ConsoleReporter
from switchback.common.diff import DiffOutcome, compare
from switchback.core.events import EventEmitter
from switchback.core.models import Classification, Device, DeviceResult
from switchback.snmp.client import SnmpTransportError
from switchback.transfer.watcher import TransferError, TransferWatcher
from switchback.vcs.repository import RepositoryError, RepositoryManager
from switchback.vcs.store import VersionStoreError

logger = logging.getLogger(__name__)

COMMIT_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
ARCHIVE_MODE = 0o644


class SwitchTransport(Protocol):
    async def trigger_remote_write(
        self, ip: str, community: str, local_ip: str, token: str, *, device: str = "-"
    ) -> None: ...

    async def commit_to_nvram(self, ip: str, community: str, *, device: str = "-") -> None: ...


def _read_archive(path: Path) -> str:
    with path.open("r", encoding="utf-8", errors="replace", newline="") as handle:
        return handle.read()


def _write_archive(path: Path, content: str) -> None:
    """Replace the archive atomically so a failed write keeps the previous copy."""

    handle, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(handle, "w", encoding="utf-8", newline="") as stream:
            stream.write(content)
        # mkstemp creates 0600
        os.chmod(temp_name, ARCHIVE_MODE)
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise


class BackupOrchestrator:
    def __init__(
        self,
        repositories: RepositoryManager,
        transport: SwitchTransport,
        watcher: TransferWatcher,
        *,
        events: EventEmitter | None = None,
        console: ConsoleReporter | None = None,
        nvram_write: bool = True,
        workers: int = 4,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.repositories = repositories
        self.store = repositories.store
        self.transport = transport
        self.watcher = watcher
        self.events = events or EventEmitter()
        self.console = console or ConsoleReporter()
        self.nvram_write = nvram_write
        self.workers = max(1, workers)
        self.now = now
        self._locks: dict[str, asyncio.Lock] = {}

    def group_lock(self, group: str) -> asyncio.Lock:
        lock = self._locks.get(group)
        if lock is None:
            lock = self._locks[group] = asyncio.Lock()
        return lock

    async def run(self, devices: Iterable[Device]) -> list[DeviceResult]:
        """Back up every device; results come back in input order."""

        semaphore = asyncio.Semaphore(self.workers)

        async def bounded(device: Device) -> DeviceResult:
            async with semaphore:
                return await self.backup_device(device)

        return list(await asyncio.gather(*(bounded(device) for device in devices)))

    async def backup_device(self, device: Device) -> DeviceResult:
        result = DeviceResult(name=device.name, group=device.group, ip=device.ip)
        started = time.monotonic()
        self.events.emit(
            "orchestrator", "device", "start", device=device.name, ip=device.ip, detail=f"group={device.group}"
        )
        try:
            await self._process(device, result)
        except Exception as exc:
            logger.exception("Backup failed for device.", extra={"device": device.name})
            self._fail(device, result, "unexpected", exc)
        finally:
            result.latency = time.monotonic() - started

        self.events.emit(
            "orchestrator",
            "device",
            "ok" if result.status == "success" else "failed",
            device=device.name,
            ip=device.ip,
            latency=result.latency,
            detail=result.classification.value if result.classification else result.error,
        )
        return result

    async def _process(self, device: Device, result: DeviceResult) -> None:
        lock = self.group_lock(device.group)

        try:
            async with lock:
                checkout = await asyncio.to_thread(self.repositories.ensure, device.group)
        except RepositoryError as exc:
            self._fail(device, result, "ensure-repo", exc)
            return

        archive = checkout / device.name
        existed = archive.exists()
        result.archive_path = archive

        try:
            content = await self._transfer(device)
        except (SnmpTransportError, TransferError) as exc:
            self._fail(device, result, "transfer", exc)
            return

        async with lock:
            try:
                outcome = await asyncio.to_thread(self._store_archive, device, archive, existed, content)
            except OSError as exc:
                self._fail(device, result, "archive", exc)
                return
            result.classification = outcome.classification
            result.status = "success"
            result.committed = await self._commit(device, archive)

        self._report(device, outcome)

        if outcome.changed:
            await self._write_nvram(device, result)

    async def _transfer(self, device: Device) -> str:
        token = self.watcher.create_token()
        try:
            await self.transport.trigger_remote_write(
                device.ip, device.community, device.local_ip, token.name, device=device.name
            )
            with self.events.timed("transfer", "receive", device=device.name, ip=device.ip) as context:
                content = await self.watcher.await_transfer(token)
                context["detail"] = f"file={token.name} bytes={len(content)}"
            return content
        finally:
            self.watcher.discard(token)

    def _store_archive(self, device: Device, archive: Path, existed: bool, content: str) -> DiffOutcome:
        if existed:
            previous = _read_archive(archive)
            outcome = compare(previous, content, device=device.name, group=device.group, ip=device.ip)
        else:
            outcome = DiffOutcome(classification=Classification.NEW)

        _write_archive(archive, content)
        logger.debug(
            "archive written path=%s classification=%s",
            archive,
            outcome.classification.value,
            extra={"device": device.name},
        )
        return outcome

    async def _commit(self, device: Device, archive: Path) -> bool:
        message = f"{device.name} {device.ip} {self.now().strftime(COMMIT_TIME_FORMAT)}"
        try:
            with self.events.timed("vcs", "commit", device=device.name, ip=device.ip) as context:
                await asyncio.to_thread(self.store.add, archive)
                revision = await asyncio.to_thread(self.store.commit, archive, message)
                context["detail"] = f"revision={revision}" if revision else "no changes"
        except VersionStoreError as exc:
            logger.error(
                "commit failed for switch %s %s: %s", device.name, device.ip, exc, extra={"device": device.name}
            )
            return False
        return revision is not None

    async def _write_nvram(self, device: Device, result: DeviceResult) -> None:
        if not self.nvram_write:
            self.events.emit("snmp", "write-mem", "skipped", device=device.name, ip=device.ip, detail="disabled")
            return
        try:
            await self.transport.commit_to_nvram(device.ip, device.community, device=device.name)
        except SnmpTransportError as exc:
            logger.warning(
                "write to nvram failed for switch %s %s: %s", device.name, device.ip, exc, extra={"device": device.name}
            )
            return
        result.nvram_written = True

    def _report(self, device: Device, outcome: DiffOutcome) -> None:
        if outcome.classification is Classification.NEW:
            self.console.new_device(device)
        elif outcome.classification is Classification.CHANGED and outcome.report:
            logger.info(
                "config_changed=true added=%d removed=%d", outcome.added, outcome.removed, extra={"device": device.name}
            )
            self.console.changed(outcome.report)
        else:
            logger.info("config_changed=false", extra={"device": device.name})

    def _fail(self, device: Device, result: DeviceResult, step: str, exc: BaseException) -> None:
        result.status = "failed"
        result.error = f"{step}: {exc}"
        logger.error(
            "error backing up switch %s %s step=%s reason=\"%s\"",
            device.name,
            device.ip,
            step,
            exc,
            extra={"device": device.name},
        )
        self.console.error(device, str(exc))
