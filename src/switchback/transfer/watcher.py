"""Correlate an SNMP-triggered push with the file the switch delivers.

The switch writes its configuration over TFTP into the drop directory using
the file name it was given in the SNMP request. The watcher creates that
file up front (many TFTP servers only accept writes to existing,
world-writable files), then waits for it to fill up.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "switchback-"
TOKEN_MODE = 0o666

# last line of an IOS configuration dump
END_MARKER = "end"
END_PROBE_BYTES = 64


class TransferError(RuntimeError):
    """Base exception for transfer failures."""


class TransferTimeoutError(TransferError):
    """Raised when no complete file arrives before the deadline."""


@dataclass(frozen=True, slots=True)
class TransferToken:
    """The file name handed to the switch and where it will land."""

    name: str
    path: Path


TokenFactory = Callable[[Path], Path]


def temporary_token(drop_dir: Path) -> Path:
    """Create a unique empty file in ``drop_dir`` and return its path."""

    handle, name = tempfile.mkstemp(prefix=TOKEN_PREFIX, dir=drop_dir)
    os.close(handle)
    return Path(name)


class TransferWatcher:
    """Create transfer tokens and wait, with a deadline, for their content."""

    def __init__(
        self,
        drop_dir: Path,
        timeout: float = 30.0,
        poll_interval: float = 0.5,
        settle_time: float = 5.0,
        token_factory: TokenFactory = temporary_token,
    ) -> None:
        self.drop_dir = drop_dir
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.settle_time = settle_time
        self.token_factory = token_factory

    def create_token(self) -> TransferToken:
        try:
            path = self.token_factory(self.drop_dir)
            # the TFTP daemon runs unprivileged and must be able to overwrite it
            path.chmod(TOKEN_MODE)
        except OSError as exc:
            raise TransferError(f"unable to create transfer file in {self.drop_dir}: {exc}") from exc
        logger.debug("transfer token created path=%s", path)
        return TransferToken(name=path.name, path=path)

    async def await_transfer(self, token: TransferToken) -> str:
        """Wait until the token file holds a complete transfer, then consume it.

        A transfer counts as complete once the file is non-empty, its size did
        not change since the previous poll, and it either ends with the
        ``end`` line of a configuration dump or has not grown for
        ``settle_time`` seconds. The quiet period covers TFTP retransmit
        stalls in the middle of a transfer. The file is removed in every case.
        """

        deadline = time.monotonic() + self.timeout
        last_size = -1
        changed_at = time.monotonic()
        try:
            while True:
                size = self._size(token.path)
                now = time.monotonic()
                if size != last_size:
                    last_size = size
                    changed_at = now
                elif size > 0 and (now - changed_at >= self.settle_time or self._has_end_marker(token.path)):
                    break
                remaining = deadline - now
                if remaining <= 0:
                    raise TransferTimeoutError(
                        f"{token.name} not delivered within {self.timeout:.0f}s (size={max(size, 0)})"
                    )
                await asyncio.sleep(min(self.poll_interval, remaining))

            with token.path.open("r", encoding="utf-8", errors="replace", newline="") as handle:
                content = handle.read()
            logger.debug("transfer received file=%s bytes=%d", token.name, size)
            return content
        finally:
            self.discard(token)

    def discard(self, token: TransferToken) -> None:
        try:
            token.path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning('unable to remove transfer file=%s reason="%s"', token.path, exc)

    @staticmethod
    def _has_end_marker(path: Path) -> bool:
        try:
            with path.open("rb") as handle:
                handle.seek(0, os.SEEK_END)
                handle.seek(max(0, handle.tell() - END_PROBE_BYTES))
                tail = handle.read().decode("utf-8", errors="replace")
        except OSError:
            return False
        lines = tail.rstrip().splitlines()
        return bool(lines) and lines[-1].strip() == END_MARKER

    @staticmethod
    def _size(path: Path) -> int:
        try:
            return path.stat().st_size
        except FileNotFoundError:
            return -1
