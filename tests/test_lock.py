"""Unit tests for the daemon lock file."""

import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from minicron.errors import LockError
from minicron.lock import LockFile


class TestLockFile(unittest.TestCase):
    """Test cases for LockFile."""

    def setUp(self) -> None:
        self.temp_dir = tempfile.mkdtemp()
        self.path = Path(self.temp_dir) / ".crontab.lock"
        self.lock = LockFile(self.path)

    def tearDown(self) -> None:
        if self.lock.held:
            self.lock.release()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_acquire_records_pid(self) -> None:
        self.lock.acquire()

        self.assertTrue(self.lock.held)
        self.assertTrue(self.path.exists())
        self.assertEqual(self.lock.read_pid(), os.getpid())
        self.assertEqual(self.path.stat().st_mode & 0o777, 0o600)

    def test_second_acquire_fails(self) -> None:
        """Test that only one holder can create the lock."""
        self.lock.acquire()

        with self.assertRaises(LockError) as ctx:
            LockFile(self.path).acquire()
        self.assertIn("crond already running", str(ctx.exception))

    def test_existing_file_blocks_acquire(self) -> None:
        self.path.write_text("12345\n")
        with self.assertRaises(LockError):
            self.lock.acquire()
        self.assertFalse(self.lock.held)
        self.assertTrue(self.path.exists())

    def test_missing_directory(self) -> None:
        lock = LockFile(Path(self.temp_dir) / "missing" / ".crontab.lock")
        with self.assertRaises(LockError) as ctx:
            lock.acquire()
        self.assertIn("failed to create lock file", str(ctx.exception))

    def test_release_removes_file(self) -> None:
        self.lock.acquire()
        self.lock.release()

        self.assertFalse(self.lock.held)
        self.assertFalse(self.path.exists())

    def test_release_without_acquire_is_noop(self) -> None:
        self.path.write_text("12345\n")
        self.lock.release()
        self.assertTrue(self.path.exists())

    def test_reacquire_after_release(self) -> None:
        self.lock.acquire()
        self.lock.release()
        self.lock.acquire()
        self.assertTrue(self.lock.held)

    def test_unlink_failure_is_logged(self) -> None:
        self.lock.acquire()
        self.path.unlink()

        with self.assertLogs("minicron.lock", level="ERROR") as logs:
            self.lock.release()
        self.assertIn("failed to remove lock file", logs.output[0])

    def test_close_failure_raises_after_unlink(self) -> None:
        self.lock.acquire()
        fd = self.lock._fd
        assert fd is not None

        with patch("minicron.lock.os.close", side_effect=OSError("bad fd")):
            with self.assertRaises(LockError):
                self.lock.release()
        os.close(fd)
        self.assertFalse(self.path.exists())


class TestHolderState(unittest.TestCase):
    """Test cases for inspecting the lock from outside the daemon."""

    def setUp(self) -> None:
        self.temp_dir = tempfile.mkdtemp()
        self.path = Path(self.temp_dir) / ".crontab.lock"
        self.lock = LockFile(self.path)

    def tearDown(self) -> None:
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_no_lock_file(self) -> None:
        self.assertEqual(self.lock.holder_state(), ("stopped", None))
        self.assertIsNone(self.lock.read_pid())

    def test_live_holder(self) -> None:
        self.path.write_text(f"{os.getpid()}\n")
        self.assertEqual(self.lock.holder_state(), ("running", os.getpid()))

    @patch("minicron.lock.psutil.pid_exists", return_value=False)
    def test_dead_holder_is_stale(self, mock_pid_exists) -> None:
        self.path.write_text("4242\n")
        self.assertEqual(self.lock.holder_state(), ("stale", 4242))
        mock_pid_exists.assert_called_once_with(4242)

    def test_garbage_pid_is_stale(self) -> None:
        self.path.write_text("not a pid\n")
        self.assertEqual(self.lock.holder_state(), ("stale", None))


if __name__ == "__main__":
    unittest.main()
