import sys
import unittest
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from switchback.core.normalize import normalize_config, normalized_body, strip_header


class NormalizeConfigTests(unittest.TestCase):
    def test_strips_volatile_lines(self) -> None:
        text = """hostname core
ntp clock-period 17179865
! Last configuration change at 10:15:02 UTC Mon Oct 12 2026
Current configuration : 4120 bytes
interface Vlan1
"""

        self.assertEqual("hostname core\ninterface Vlan1", normalize_config(text))

    def test_unifies_line_endings_and_trims_trailing_blank_lines(self) -> None:
        text = "hostname core\r\ninterface eth0\r\n\r\n\r\n"

        self.assertEqual("hostname core\ninterface eth0", normalize_config(text))

    def test_is_idempotent(self) -> None:
        text = "!\nversion 12.2\nntp clock-period 1\nhostname core\n\n"

        once = normalize_config(text)

        self.assertEqual(once, normalize_config(once))

    def test_strip_header_drops_first_five_lines(self) -> None:
        text = "line1\nline2\nline3\nline4\nline5\nconfig-A"

        self.assertEqual("config-A", strip_header(text))

    def test_body_ignores_header_changes(self) -> None:
        first = "!\n! generated 10:00\n!\nversion 12.2\n!\nhostname core\n"
        second = "!\n! generated 11:30\n!\nversion 12.2\n!\nhostname core\n"

        self.assertEqual(normalized_body(first), normalized_body(second))

    def test_short_text_has_empty_body(self) -> None:
        self.assertEqual("", normalized_body("one\ntwo\n"))


if __name__ == "__main__":
    unittest.main()
