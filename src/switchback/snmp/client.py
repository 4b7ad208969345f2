"""SNMPv1 client for the two switch operations SwitchBack needs.

``writeNet`` (OLD-CISCO-SYS-MIB) makes the switch push its running
configuration over TFTP to the address encoded in the OID suffix, using the
file name given as value. ``writeMem`` copies the running configuration to
NVRAM.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from pysnmp.hlapi.v3arch.asyncio import (
    CommunityData,
    ContextData,
    ObjectIdentity,
    ObjectType,
    SnmpEngine,
    UdpTransportTarget,
    set_cmd,
)
from pysnmp.error import PySnmpError
from pysnmp.proto import errind
from pysnmp.proto.rfc1902 import Integer, OctetString

from switchback.core.events import EventEmitter

logger = logging.getLogger(__name__)

WRITE_NET_OID = "1.3.6.1.4.1.9.2.1.55"
WRITE_MEM_OID = "1.3.6.1.4.1.9.2.1.54.0"

SNMP_V1 = 0


class SnmpTransportError(RuntimeError):
    """Base exception for SNMP operation failures."""


class SnmpTimeoutError(SnmpTransportError):
    """Raised when the switch does not answer within the deadline."""


class SnmpResponseError(SnmpTransportError):
    """Raised when the switch answers with an error status."""


def write_net_oid(local_ip: str) -> str:
    """OID that triggers a TFTP push towards ``local_ip``."""

    if not local_ip:
        raise SnmpTransportError("no local address to receive the transfer")
    return f"{WRITE_NET_OID}.{local_ip}"


@dataclass(slots=True)
class SnmpClient:
    """Issue SNMP SET requests with a per-request timeout and bounded retries."""

    timeout: float = 30.0
    retries: int = 2
    port: int = 161
    events: EventEmitter = field(default_factory=EventEmitter)

    @property
    def deadline(self) -> float:
        """Upper bound for one SET including every retry."""

        return self.timeout * (self.retries + 1) + 2

    async def trigger_remote_write(
        self, ip: str, community: str, local_ip: str, token: str, *, device: str = "-"
    ) -> None:
        """Ask the switch to push its running configuration to ``local_ip`` as ``token``."""

        with self.events.timed("snmp", "write-net", device=device, ip=ip) as context:
            context["detail"] = f"tftp={local_ip or '-'} file={token}"
            oid = write_net_oid(local_ip)
            await self._set(ip, community, oid, OctetString(token), device=device)

    async def commit_to_nvram(self, ip: str, community: str, *, device: str = "-") -> None:
        """Ask the switch to copy its running configuration to NVRAM."""

        with self.events.timed("snmp", "write-mem", device=device, ip=ip):
            await self._set(ip, community, WRITE_MEM_OID, Integer(1), device=device)

    async def _set(self, ip: str, community: str, oid: str, value: Any, *, device: str = "-") -> None:
        log_extra = {"device": device}
        logger.debug("snmp set host=%s oid=%s", ip, oid, extra=log_extra)

        engine = SnmpEngine()
        try:
            transport = await UdpTransportTarget.create(
                (ip, self.port), timeout=self.timeout, retries=self.retries
            )
            error_indication, error_status, error_index, var_binds = await asyncio.wait_for(
                set_cmd(
                    engine,
                    CommunityData(community, mpModel=SNMP_V1),
                    transport,
                    ContextData(),
                    ObjectType(ObjectIdentity(oid), value),
                ),
                timeout=self.deadline,
            )
        except asyncio.TimeoutError as exc:
            raise SnmpTimeoutError(f"no response from {ip} within {self.deadline:.0f}s") from exc
        except (OSError, PySnmpError) as exc:
            # unresolvable or malformed addresses surface as PySnmpError
            raise SnmpTransportError(f"unable to reach {ip}: {exc}") from exc
        finally:
            engine.close_dispatcher()

        if error_indication:
            if isinstance(error_indication, errind.RequestTimedOut):
                raise SnmpTimeoutError(f"no response from {ip}: {error_indication}")
            raise SnmpTransportError(f"{ip}: {error_indication}")

        if error_status:
            position = var_binds[int(error_index) - 1][0] if error_index and var_binds else "?"
            raise SnmpResponseError(f"{ip}: {error_status.prettyPrint()} at {position}")

        logger.debug("snmp set ok host=%s oid=%s", ip, oid, extra=log_extra)
