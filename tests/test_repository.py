import shutil
import subprocess
import sys
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from fakes import MemoryStore

from switchback.vcs.repository import RepositoryError, RepositoryManager
from switchback.vcs.store import GitStore, VersionStoreError


class RepositoryManagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = TemporaryDirectory()
        base = Path(self._tmp.name)
        self.repository_root = base / "repository"
        self.workdir = base / "checkout"
        self.store = MemoryStore()
        self.manager = RepositoryManager(self.store, self.repository_root, self.workdir)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_first_ensure_creates_store_and_checkout(self) -> None:
        checkout = self.manager.ensure("sw1")

        self.assertEqual(self.workdir / "sw1", checkout)
        self.assertEqual([self.repository_root / "sw1.git"], self.store.init_calls)
        self.assertEqual([(self.repository_root / "sw1.git", checkout)], self.store.checkout_calls)

    def test_ensure_is_idempotent(self) -> None:
        for _ in range(3):
            self.manager.ensure("sw1")

        self.assertEqual(1, len(self.store.init_calls))
        self.assertEqual(1, len(self.store.checkout_calls))

    def test_existing_store_and_checkout_are_reused_across_runs(self) -> None:
        self.manager.ensure("sw1")
        second_run = RepositoryManager(self.store, self.repository_root, self.workdir)

        second_run.ensure("sw1")

        self.assertEqual(1, len(self.store.init_calls))
        self.assertEqual(1, len(self.store.checkout_calls))

    def test_missing_checkout_is_recreated_from_store(self) -> None:
        self.manager.ensure("sw1")
        shutil.rmtree(self.workdir / "sw1")

        RepositoryManager(self.store, self.repository_root, self.workdir).ensure("sw1")

        self.assertEqual(1, len(self.store.init_calls))
        self.assertEqual(2, len(self.store.checkout_calls))

    def test_failure_is_remembered_per_group(self) -> None:
        self.store.fail_stores = {"broken.git"}

        with self.assertRaises(RepositoryError):
            self.manager.ensure("broken")
        with self.assertRaises(RepositoryError):
            self.manager.ensure("broken")

        self.assertEqual(1, len(self.store.init_calls))
        self.assertEqual(self.workdir / "healthy", self.manager.ensure("healthy"))


@unittest.skipUnless(shutil.which("git"), "git is not installed")
class GitStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = TemporaryDirectory()
        base = Path(self._tmp.name)
        self.store_path = base / "repository" / "sw1.git"
        self.work_dir = base / "checkout" / "sw1"
        self.git = GitStore(timeout=30)
        self.git.init_store(self.store_path)
        self.git.checkout(self.store_path, self.work_dir)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _store_log(self) -> list[str]:
        result = subprocess.run(
            ["git", "--git-dir", str(self.store_path), "log", "--all", "--format=%s"],
            capture_output=True,
            text=True,
            check=True,
        )
        return [line for line in result.stdout.splitlines() if line]

    def test_commit_is_pushed_to_store(self) -> None:
        archive = self.work_dir / "core-sw1"
        archive.write_text("hostname core\n", encoding="utf-8")

        self.git.add(archive)
        revision = self.git.commit(archive, "core-sw1 10.0.0.1 2026-10-17 08:30:00")

        self.assertIsNotNone(revision)
        self.assertEqual(["core-sw1 10.0.0.1 2026-10-17 08:30:00"], self._store_log())
        self.assertEqual("hostname core\n", self.git.cat_head(archive))

    def test_commit_without_changes_is_a_no_op(self) -> None:
        archive = self.work_dir / "core-sw1"
        archive.write_text("hostname core\n", encoding="utf-8")
        self.git.add(archive)
        self.git.commit(archive, "first")

        self.assertIsNone(self.git.commit(archive, "second"))
        self.assertEqual(["first"], self._store_log())

    def test_commit_stages_untracked_file(self) -> None:
        archive = self.work_dir / "core-sw1"
        archive.write_text("hostname core\n", encoding="utf-8")

        revision = self.git.commit(archive, "core-sw1 10.0.0.1 2026-10-17 08:30:00")

        self.assertIsNotNone(revision)
        self.assertEqual("hostname core\n", self.git.cat_head(archive))

    def test_diff_against_head_shows_uncommitted_change(self) -> None:
        archive = self.work_dir / "core-sw1"
        archive.write_text("interface eth0\n", encoding="utf-8")
        self.git.add(archive)
        self.git.commit(archive, "first")

        self.assertEqual("", self.git.diff_against_head(archive))

        archive.write_text("interface eth1\n", encoding="utf-8")
        diff_text = self.git.diff_against_head(archive)

        self.assertIn("-interface eth0", diff_text)
        self.assertIn("+interface eth1", diff_text)

    def test_cat_head_of_unknown_file_raises(self) -> None:
        with self.assertRaises(VersionStoreError):
            self.git.cat_head(self.work_dir / "unknown")

    def test_checkout_of_missing_store_raises(self) -> None:
        with self.assertRaises(VersionStoreError):
            self.git.checkout(self.store_path.parent / "missing.git", self.work_dir.parent / "other")


if __name__ == "__main__":
    unittest.main()
