"""Comparison of archived and freshly retrieved switch configurations."""

from __future__ import annotations

import difflib
from dataclasses import dataclass

from switchback.core.models import Classification
from switchback.core.normalize import normalized_body


@dataclass(slots=True)
class DiffOutcome:
    """Result of comparing an archived configuration with a new one."""

    classification: Classification
    added: int = 0
    removed: int = 0
    report: str | None = None

    @property
    def changed(self) -> bool:
        return self.classification is Classification.CHANGED


def _count_added_removed(diff_lines: list[str]) -> tuple[int, int]:
    added = sum(1 for line in diff_lines if line.startswith("+") and not line.startswith("+++"))
    removed = sum(1 for line in diff_lines if line.startswith("-") and not line.startswith("---"))
    return added, removed


def _generate_diff(prev: str, curr: str, from_label: str, to_label: str) -> tuple[str, int, int]:
    diff_lines = list(
        difflib.unified_diff(prev.splitlines(), curr.splitlines(), fromfile=from_label, tofile=to_label, lineterm="")
    )
    added, removed = _count_added_removed(diff_lines)
    diff_text = "\n".join(diff_lines)
    if diff_text:
        diff_text += "\n"
    return diff_text, added, removed


def _banner(device: str, group: str, ip: str | None) -> str:
    target = f"{group}/{device}" + (f" ({ip})" if ip else "")
    return f"==== configuration change on switch {target} ====\n"


def compare(previous: str, current: str, *, device: str, group: str, ip: str | None = None) -> DiffOutcome:
    """Compare two configuration texts after header removal and normalization.

    Returns ``UNCHANGED`` when the normalized bodies match; otherwise
    ``CHANGED`` with a report made of a banner and a unified diff.
    """

    prev_text = normalized_body(previous)
    curr_text = normalized_body(current)

    if prev_text == curr_text:
        return DiffOutcome(classification=Classification.UNCHANGED)

    label = f"{group}/{device}"
    diff_text, added, removed = _generate_diff(prev_text, curr_text, f"{label} (archived)", f"{label} (retrieved)")
    return DiffOutcome(
        classification=Classification.CHANGED,
        added=added,
        removed=removed,
        report=_banner(device, group, ip) + diff_text,
    )
