"""Structured backup events and the sinks that render them.

Components report what they did as :class:`BackupEvent` values instead of
writing log lines directly. The :class:`LoggingSink` renders events into the
operational log; tests attach their own sink to observe a run.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, Mapping, Protocol


@dataclass(frozen=True, slots=True)
class BackupEvent:
    component: str
    action: str
    outcome: str
    device: str = "-"
    ip: str | None = None
    latency: float | None = None
    detail: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class EventSink(Protocol):
    def handle(self, event: BackupEvent) -> None: ...


_OUTCOME_LEVELS: Mapping[str, int] = {
    "ok": logging.INFO,
    "start": logging.INFO,
    "skipped": logging.INFO,
    "warning": logging.WARNING,
    "failed": logging.ERROR,
}


class LoggingSink:
    """Render events as ``key=value`` lines in the operational log."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger("switchback.events")

    def handle(self, event: BackupEvent) -> None:
        parts = [f"action={event.action}", f"outcome={event.outcome}"]
        if event.ip:
            parts.append(f"ip={event.ip}")
        if event.latency is not None:
            parts.append(f"latency={event.latency:.3f}s")
        if event.detail:
            parts.append(f'detail="{event.detail}"')
        level = _OUTCOME_LEVELS.get(event.outcome, logging.INFO)
        self.logger.log(level, " ".join(parts), extra={"device": event.device, "component": event.component})


class EventEmitter:
    """Fan events out to every registered sink."""

    def __init__(self, sinks: list[EventSink] | None = None) -> None:
        self.sinks: list[EventSink] = list(sinks) if sinks is not None else [LoggingSink()]

    def add_sink(self, sink: EventSink) -> None:
        self.sinks.append(sink)

    def emit(
        self,
        component: str,
        action: str,
        outcome: str,
        *,
        device: str = "-",
        ip: str | None = None,
        latency: float | None = None,
        detail: str | None = None,
    ) -> BackupEvent:
        event = BackupEvent(
            component=component,
            action=action,
            outcome=outcome,
            device=device,
            ip=ip,
            latency=latency,
            detail=detail,
        )
        for sink in self.sinks:
            sink.handle(event)
        return event

    @contextmanager
    def timed(
        self, component: str, action: str, *, device: str = "-", ip: str | None = None
    ) -> Iterator[dict[str, str]]:
        """Emit one event for the wrapped block, ``ok`` or ``failed`` with its latency.

        The yielded dict may receive a ``detail`` entry to attach to the event.
        Exceptions are re-raised after the failure event is emitted.
        """

        context: dict[str, str] = {}
        started = time.monotonic()
        try:
            yield context
        except BaseException as exc:
            reason = str(exc) or type(exc).__name__
            detail = context.get("detail")
            self.emit(
                component,
                action,
                "failed",
                device=device,
                ip=ip,
                latency=time.monotonic() - started,
                detail=f"{detail} error={reason}" if detail else reason,
            )
            raise
        self.emit(
            component,
            action,
            "ok",
            device=device,
            ip=ip,
            latency=time.monotonic() - started,
            detail=context.get("detail"),
        )
