"""Inventory loader for per-group switch list files.

Every file in the inventory directory describes one group of switches, one
per line::

    # name          ip            [community]  [group]
    %community s3cr3t
    %interface eth1
    core-sw1        10.0.0.1
    access-sw7      10.0.7.1      other        access

Directive lines (``%community``, ``%group``, ``%interface``) change the
defaults applied to the lines that follow them in the same file. The parse
threads an immutable :class:`ParserState` through the file; only directive
lines produce a new state.
"""

from __future__ import annotations

import fcntl
import logging
import socket
import struct
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Iterable, TextIO

from switchback.core.models import Device

logger = logging.getLogger(__name__)

SIOCGIFADDR = 0x8915

InterfaceResolver = Callable[[str], str]


class InventoryError(ValueError):
    """Raised when the inventory directory cannot be read."""


@dataclass(frozen=True, slots=True)
class ParserState:
    """Defaults in effect for the next device line of a file."""

    community: str
    group: str
    local_ip: str


def resolve_interface_address(interface: str) -> str:
    """Return the IPv4 address assigned to ``interface`` or ``""`` when unknown."""

    encoded = interface.encode("utf-8")[:15]
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        try:
            packed = fcntl.ioctl(sock.fileno(), SIOCGIFADDR, struct.pack("256s", encoded))
        except OSError as exc:
            logger.warning("interface=%s has no IPv4 address reason=\"%s\"", interface, exc)
            return ""
    return socket.inet_ntoa(packed[20:24])


def inventory_files(directory: Path) -> list[Path]:
    """List inventory files in name order, ignoring hidden and backup files."""

    if not directory.is_dir():
        raise InventoryError(f"Inventory directory not found: {directory}")
    return sorted(
        path
        for path in directory.iterdir()
        if path.is_file() and not path.name.startswith(".") and not path.name.endswith("~")
    )


def _warn(source: Path, line_number: int, message: str, stream: TextIO | None) -> None:
    text = f"{source.name}:{line_number}: {message}"
    print(f"warning: {text}", file=stream or sys.stderr)
    logger.warning("%s", text)


def _apply_directive(
    state: ParserState,
    tokens: list[str],
    source: Path,
    line_number: int,
    resolve_interface: InterfaceResolver,
    stream: TextIO | None,
) -> ParserState:
    keyword = tokens[0][1:].lower()
    if len(tokens) < 2:
        _warn(source, line_number, f"directive '%{keyword}' needs a value; ignored", stream)
        return state

    value = tokens[1]
    if keyword == "community":
        return replace(state, community=value)
    if keyword == "group":
        return replace(state, group=value)
    if keyword == "interface":
        local_ip = resolve_interface(value)
        if not local_ip:
            _warn(source, line_number, f"interface '{value}' has no address; local IP left empty", stream)
        return replace(state, local_ip=local_ip)

    _warn(source, line_number, f"unknown directive '%{keyword}'; ignored", stream)
    return state


def parse_lines(
    lines: Iterable[str],
    source: Path,
    initial: ParserState,
    resolve_interface: InterfaceResolver = resolve_interface_address,
    stream: TextIO | None = None,
) -> list[Device]:
    """Parse the lines of one inventory file into device records.

    Warnings carry physical line numbers: blank and comment lines are counted.
    """

    state = initial
    devices: list[Device] = []

    for line_number, raw_line in enumerate(lines, start=1):
        stripped = raw_line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        tokens = stripped.split()
        if tokens[0].startswith("%"):
            state = _apply_directive(state, tokens, source, line_number, resolve_interface, stream)
            continue

        if len(tokens) < 2:
            _warn(source, line_number, f"device '{tokens[0]}' has no IP address; skipped", stream)
            continue

        if len(tokens) > 4:
            _warn(
                source,
                line_number,
                f"ignoring extra columns: {' '.join(tokens[4:])}",
                stream,
            )

        name, ip = tokens[0], tokens[1]
        community = tokens[2] if len(tokens) > 2 else state.community
        group = tokens[3] if len(tokens) > 3 else state.group
        devices.append(
            Device(
                name=name,
                ip=ip,
                community=community,
                group=group,
                local_ip=state.local_ip,
                source=source,
                line=line_number,
            )
        )

    return devices


def _report_duplicates(devices: list[Device], stream: TextIO | None) -> None:
    seen: dict[tuple[str, str], Device] = {}
    for device in devices:
        key = (device.group, device.name)
        first = seen.get(key)
        if first is None:
            seen[key] = device
            continue
        if device.source is not None and device.line is not None:
            _warn(
                device.source,
                device.line,
                f"device '{device.label}' ({device.ip}) shares its archive with "
                f"{first.source.name if first.source else '?'}:{first.line} ({first.ip})",
                stream,
            )


def load_inventory(
    directory: Path,
    community: str = "public",
    interface: str | None = None,
    resolve_interface: InterfaceResolver = resolve_interface_address,
    stream: TextIO | None = None,
) -> list[Device]:
    """Load every inventory file in ``directory``.

    Files are read in name order and each starts from the same defaults: the
    configured community, the file stem as group, and the address of the
    configured interface (empty when none is configured).
    """

    default_ip = resolve_interface(interface) if interface else ""
    devices: list[Device] = []

    for path in inventory_files(directory):
        initial = ParserState(community=community, group=path.stem, local_ip=default_ip)
        with path.open("r", encoding="utf-8", errors="replace") as handle:
            parsed = parse_lines(handle, path, initial, resolve_interface, stream)
        logger.debug("inventory file=%s devices=%d", path.name, len(parsed))
        devices.extend(parsed)

    _report_duplicates(devices, stream)
    logger.info("inventory loaded devices=%d directory=%s", len(devices), directory)
    return devices
