import sys
import unittest
from pathlib import Path
from unittest import mock

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from fakes import RecordingSink
from pysnmp.error import PySnmpError
from pysnmp.proto import errind

from switchback.core.events import EventEmitter
from switchback.snmp import client as snmp_client
from switchback.snmp.client import (
    SnmpClient,
    SnmpResponseError,
    SnmpTimeoutError,
    SnmpTransportError,
    write_net_oid,
)


class WriteNetOidTests(unittest.TestCase):
    def test_oid_is_suffixed_with_local_address(self) -> None:
        self.assertEqual("1.3.6.1.4.1.9.2.1.55.192.0.2.10", write_net_oid("192.0.2.10"))

    def test_empty_local_address_is_rejected(self) -> None:
        with self.assertRaises(SnmpTransportError):
            write_net_oid("")


class SnmpClientTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.sink = RecordingSink()
        self.client = SnmpClient(timeout=30, retries=2, events=EventEmitter([self.sink]))

        self.set_cmd = mock.AsyncMock(return_value=(None, 0, 0, []))
        self.transport_target = mock.MagicMock()
        self.transport_target.create = mock.AsyncMock(return_value="udp-target")
        patches = {
            "set_cmd": self.set_cmd,
            "UdpTransportTarget": self.transport_target,
            "SnmpEngine": mock.MagicMock(),
            "CommunityData": mock.MagicMock(return_value="community"),
            "ObjectIdentity": mock.MagicMock(return_value="identity"),
            "ObjectType": mock.MagicMock(return_value="object-type"),
        }
        self.mocks = {}
        for name, replacement in patches.items():
            patcher = mock.patch.object(snmp_client, name, replacement)
            self.mocks[name] = patcher.start()
            self.addCleanup(patcher.stop)

    async def test_trigger_sets_write_net_to_token(self) -> None:
        await self.client.trigger_remote_write("10.0.0.1", "private", "192.0.2.10", "switchback-abc", device="sw1")

        self.mocks["ObjectIdentity"].assert_called_once_with("1.3.6.1.4.1.9.2.1.55.192.0.2.10")
        identity, value = self.mocks["ObjectType"].call_args.args
        self.assertEqual("identity", identity)
        self.assertEqual("switchback-abc", str(value))
        self.mocks["CommunityData"].assert_called_once_with("private", mpModel=0)
        self.transport_target.create.assert_awaited_once_with(("10.0.0.1", 161), timeout=30, retries=2)
        self.set_cmd.assert_awaited_once()
        [event] = self.sink.matching("snmp", "write-net")
        self.assertEqual(("ok", "sw1", "10.0.0.1"), (event.outcome, event.device, event.ip))

    async def test_commit_to_nvram_sets_write_mem_to_one(self) -> None:
        await self.client.commit_to_nvram("10.0.0.1", "private")

        self.mocks["ObjectIdentity"].assert_called_once_with("1.3.6.1.4.1.9.2.1.54.0")
        _, value = self.mocks["ObjectType"].call_args.args
        self.assertEqual(1, int(value))

    async def test_missing_local_address_fails_before_sending(self) -> None:
        with self.assertRaises(SnmpTransportError):
            await self.client.trigger_remote_write("10.0.0.1", "private", "", "switchback-abc")

        self.set_cmd.assert_not_awaited()
        [event] = self.sink.matching("snmp", "write-net")
        self.assertEqual("failed", event.outcome)

    async def test_no_response_raises_timeout(self) -> None:
        self.set_cmd.return_value = (errind.RequestTimedOut(), 0, 0, [])

        with self.assertRaises(SnmpTimeoutError):
            await self.client.commit_to_nvram("10.0.0.1", "private")

    async def test_error_status_raises_response_error(self) -> None:
        status = mock.MagicMock()
        status.prettyPrint.return_value = "noAccess"
        self.set_cmd.return_value = (None, status, 1, [("1.3.6.1.4.1.9.2.1.54.0", 1)])

        with self.assertRaises(SnmpResponseError) as caught:
            await self.client.commit_to_nvram("10.0.0.1", "private")

        self.assertIn("noAccess", str(caught.exception))

    async def test_unresolvable_host_raises_transport_error(self) -> None:
        self.transport_target.create.side_effect = PySnmpError("Bad IPv4/UDP transport address no-such-host.invalid")

        with self.assertRaises(SnmpTransportError) as caught:
            await self.client.trigger_remote_write(
                "no-such-host.invalid", "private", "192.0.2.10", "switchback-abc", device="sw1"
            )

        self.assertIn("no-such-host.invalid", str(caught.exception))
        self.set_cmd.assert_not_awaited()
        [event] = self.sink.matching("snmp", "write-net")
        self.assertEqual("failed", event.outcome)

    async def test_log_lines_carry_device_name(self) -> None:
        with self.assertLogs(snmp_client.logger, level="DEBUG") as captured:
            await self.client.commit_to_nvram("10.0.0.1", "private", device="sw1")

        self.assertTrue(captured.records)
        self.assertEqual({"sw1"}, {record.device for record in captured.records})

    def test_deadline_covers_every_retry(self) -> None:
        self.assertEqual(92, SnmpClient(timeout=30, retries=2).deadline)


if __name__ == "__main__":
    unittest.main()
