"""Per-group store and working checkout provisioning."""

from __future__ import annotations

import logging
from pathlib import Path

from switchback.vcs.store import VersionStore, VersionStoreError

logger = logging.getLogger(__name__)

STORE_SUFFIX = ".git"


class RepositoryError(RuntimeError):
    """Raised when a group's store or checkout cannot be provisioned."""


class RepositoryManager:
    """Make sure every group has a store and a working checkout.

    ``ensure`` is cheap after the first call for a group: successes and
    failures are both remembered for the lifetime of the manager, so a group
    that could not be provisioned fails all of its devices without retrying.
    """

    def __init__(self, store: VersionStore, repository_root: Path, workdir: Path) -> None:
        self.store = store
        self.repository_root = repository_root
        self.workdir = workdir
        self._ready: dict[str, Path] = {}
        self._failed: dict[str, RepositoryError] = {}

    def store_path(self, group: str) -> Path:
        return self.repository_root / f"{group}{STORE_SUFFIX}"

    def checkout_path(self, group: str) -> Path:
        return self.workdir / group

    def archive_path(self, group: str, device_name: str) -> Path:
        return self.checkout_path(group) / device_name

    def ensure(self, group: str) -> Path:
        """Return the group's checkout, creating the store and checkout when missing."""

        if group in self._ready:
            return self._ready[group]
        if group in self._failed:
            raise self._failed[group]

        store_path = self.store_path(group)
        checkout = self.checkout_path(group)
        try:
            if not store_path.exists():
                logger.info("group=%s creating store path=%s", group, store_path)
                self.store.init_store(store_path)
            if not checkout.exists():
                logger.info("group=%s creating checkout path=%s", group, checkout)
                self.store.checkout(store_path, checkout)
        except (VersionStoreError, OSError) as exc:
            error = RepositoryError(f"group '{group}' could not be provisioned: {exc}")
            self._failed[group] = error
            raise error from exc

        self._ready[group] = checkout
        return checkout
