"""Human-readable run output on stdout and stderr."""

from __future__ import annotations

import sys
from typing import TextIO

from switchback.core.models import Device


class ConsoleReporter:
    """Write new-file banners and diff reports to ``out``, errors to ``err``."""

    def __init__(self, out: TextIO | None = None, err: TextIO | None = None) -> None:
        self.out = out or sys.stdout
        self.err = err or sys.stderr

    def new_device(self, device: Device) -> None:
        print(f"==== new switch {device.label} ({device.ip}) archived ====", file=self.out)

    def changed(self, report: str) -> None:
        self.out.write(report if report.endswith("\n") else report + "\n")

    def error(self, device: Device, reason: str | None = None) -> None:
        message = f"error backing up switch {device.name} {device.ip}"
        if reason:
            message += f": {reason}"
        print(message, file=self.err)

    def flush(self) -> None:
        self.out.flush()
        self.err.flush()
