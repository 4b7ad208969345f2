"""Helpers for building and persisting machine-readable run summaries."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable

from switchback.core.models import Classification, DeviceResult


def device_result_to_dict(result: DeviceResult) -> dict[str, object]:
    return {
        "name": result.name,
        "group": result.group,
        "ip": result.ip,
        "status": result.status,
        "classification": result.classification.value if result.classification else None,
        "archive_path": str(result.archive_path) if result.archive_path else None,
        "committed": result.committed,
        "nvram_written": result.nvram_written,
        "error": result.error,
        "latency_seconds": round(result.latency, 3) if result.latency is not None else None,
    }


class RunSummaryBuilder:
    """Accumulate per-run data and store it as JSON."""

    def __init__(self, *, run_id: str, timestamp: str, groups: Iterable[str] | None = None) -> None:
        self.run_id = run_id
        self.timestamp = timestamp
        self.groups = sorted(set(groups or []))
        self.devices_total = 0
        self.devices_success = 0
        self.devices_failed = 0
        self.configs_new = 0
        self.configs_changed = 0
        self.configs_unchanged = 0
        self.commits = 0
        self.nvram_writes = 0
        self._devices: list[DeviceResult] = []

    def set_devices_total(self, total: int) -> None:
        self.devices_total = max(0, total)

    def add_device(self, result: DeviceResult) -> None:
        self._devices.append(result)

        if result.status == "success":
            self.devices_success += 1
        else:
            self.devices_failed += 1

        if result.classification is Classification.NEW:
            self.configs_new += 1
        elif result.classification is Classification.CHANGED:
            self.configs_changed += 1
        elif result.classification is Classification.UNCHANGED:
            self.configs_unchanged += 1

        if result.committed:
            self.commits += 1
        if result.nvram_written:
            self.nvram_writes += 1

    def build(self) -> dict[str, object]:
        return {
            "run_id": self.run_id,
            "timestamp": self.timestamp,
            "groups": self.groups,
            "totals": {
                "devices_total": self.devices_total,
                "devices_success": self.devices_success,
                "devices_failed": self.devices_failed,
                "configs_new": self.configs_new,
                "configs_changed": self.configs_changed,
                "configs_unchanged": self.configs_unchanged,
                "commits": self.commits,
                "nvram_writes": self.nvram_writes,
            },
            "devices": [device_result_to_dict(device) for device in self._devices],
        }

    def save(self, summary_dir: Path, logger: logging.Logger) -> Path:
        summary_dir.mkdir(parents=True, exist_ok=True)

        target = summary_dir / f"run_{self.run_id}.json"
        target.write_text(json.dumps(self.build(), indent=2, ensure_ascii=False), encoding="utf-8")

        logger.info("run_summary_json_saved path=%s", target)
        return target
