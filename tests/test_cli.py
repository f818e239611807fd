"""Tests for the minicrond and minicrontab command line entry points."""

import io
import logging
import os
import shutil
import stat
import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

from minicron.cli import crond_main, crontab_main
from minicron.daemon import EXIT_FAILURE, EXIT_SUCCESS

SCHEDULE = b"0 2 * * * backup.sh\n@hourly date\n"


class CliTestCase(unittest.TestCase):
    """Runs commands against a temporary home directory."""

    def setUp(self) -> None:
        self.temp_dir = tempfile.mkdtemp()
        self.home = Path(self.temp_dir)
        self.schedule_path = self.home / ".config" / ".crontab"
        self.env = patch.dict("os.environ", {"HOME": self.temp_dir, "LOGNAME": "alice"})
        self.env.start()

    def tearDown(self) -> None:
        self.env.stop()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def run_crontab(self, argv: list[str], stdin: bytes = b"") -> tuple[int, bytes, str]:
        """Run minicrontab and capture (exit code, stdout bytes, stderr text)."""
        stdout = SimpleNamespace(buffer=io.BytesIO())
        stderr = io.StringIO()
        with patch("sys.stdin", SimpleNamespace(buffer=io.BytesIO(stdin))), patch("sys.stdout", stdout), patch("sys.stderr", stderr):
            code = crontab_main(argv)
        return code, stdout.buffer.getvalue(), stderr.getvalue()


class TestCrontabMain(CliTestCase):
    """Test cases for minicrontab."""

    def test_install_from_file_and_list(self) -> None:
        source = self.home / "jobs.txt"
        source.write_bytes(SCHEDULE)

        code, _, _ = self.run_crontab([str(source)])
        self.assertEqual(code, EXIT_SUCCESS)

        code, out, _ = self.run_crontab(["-l"])
        self.assertEqual(code, EXIT_SUCCESS)
        self.assertEqual(out, SCHEDULE)

    def test_install_from_stdin(self) -> None:
        code, _, _ = self.run_crontab([], stdin=SCHEDULE)
        self.assertEqual(code, EXIT_SUCCESS)
        self.assertEqual(self.schedule_path.read_bytes(), SCHEDULE)

        code, _, _ = self.run_crontab(["-"], stdin=b"@daily true\n")
        self.assertEqual(code, EXIT_SUCCESS)
        self.assertEqual(self.schedule_path.read_bytes(), b"@daily true\n")

    def test_list_without_schedule(self) -> None:
        code, out, err = self.run_crontab(["-l"])

        self.assertEqual(code, EXIT_FAILURE)
        self.assertEqual(out, b"")
        self.assertTrue(err.startswith("crontab error: no crontab"))

    def test_remove(self) -> None:
        self.run_crontab([], stdin=SCHEDULE)

        code, _, _ = self.run_crontab(["-r"])

        self.assertEqual(code, EXIT_SUCCESS)
        self.assertFalse(self.schedule_path.exists())

    def test_edit(self) -> None:
        editor = self.home / "editor.sh"
        editor.write_text("#!/bin/sh\necho '@daily edited' >> \"$1\"\n", encoding="utf-8")
        editor.chmod(editor.stat().st_mode | stat.S_IXUSR)

        with patch.dict("os.environ", {"EDITOR": str(editor)}):
            code, _, _ = self.run_crontab(["-e"])

        self.assertEqual(code, EXIT_SUCCESS)
        self.assertEqual(self.schedule_path.read_bytes(), b"@daily edited\n")

    def test_conflicting_flags(self) -> None:
        for argv in (["-e", "-l"], ["-l", "-r"], ["-l", "jobs.txt"]):
            with self.subTest(argv=argv):
                code, _, err = self.run_crontab(argv)
                self.assertEqual(code, EXIT_FAILURE)
                self.assertEqual(err, "crontab error: Incorrect usage of flags\n")

    def test_too_many_files(self) -> None:
        code, _, err = self.run_crontab(["a.txt", "b.txt"])
        self.assertEqual(code, EXIT_FAILURE)
        self.assertEqual(err, "crontab error: Too many files\n")

    def test_missing_source_file(self) -> None:
        code, _, err = self.run_crontab([str(self.home / "missing.txt")])
        self.assertEqual(code, EXIT_FAILURE)
        self.assertIn("fopen", err)
        self.assertFalse(self.schedule_path.exists())


class TestCrondMain(CliTestCase):
    """Test cases for minicrond."""

    def tearDown(self) -> None:
        # Put the package logger back to its default state for other tests.
        package_logger = logging.getLogger("minicron")
        for handler in list(package_logger.handlers):
            package_logger.removeHandler(handler)
            handler.close()
        package_logger.propagate = True
        package_logger.setLevel(logging.NOTSET)
        super().tearDown()

    @patch("minicron.cli.print_info")
    def test_status_not_running(self, mock_info) -> None:
        self.assertEqual(crond_main(["--status"]), EXIT_SUCCESS)
        mock_info.assert_called_once_with("Daemon is not running")

    @patch("minicron.cli.print_success")
    def test_status_running(self, mock_success) -> None:
        self.schedule_path.parent.mkdir(parents=True)
        (self.schedule_path.parent / ".crontab.lock").write_text(f"{os.getpid()}\n")

        self.assertEqual(crond_main(["--status"]), EXIT_SUCCESS)
        mock_success.assert_called_once_with(f"Daemon is running (PID: {os.getpid()})")

    @patch("minicron.cli.print_warning")
    def test_stop_not_running(self, mock_warning) -> None:
        self.assertEqual(crond_main(["--stop"]), EXIT_FAILURE)
        mock_warning.assert_called_once_with("Daemon was not stopped")

    @patch("minicron.cli.CronDaemon")
    def test_runs_daemon_with_resolved_settings(self, mock_daemon_cls) -> None:
        mock_daemon_cls.return_value.run.return_value = EXIT_SUCCESS

        self.assertEqual(crond_main(["-v"]), EXIT_SUCCESS)

        settings = mock_daemon_cls.call_args.args[0]
        self.assertEqual(settings.schedule_path, self.schedule_path)
        self.assertEqual(settings.user_name, "alice")
        self.assertTrue(settings.verbose)

    @patch("minicron.cli.CronDaemon")
    def test_daemon_failure_status_returned(self, mock_daemon_cls) -> None:
        mock_daemon_cls.return_value.run.return_value = EXIT_FAILURE
        self.assertEqual(crond_main([]), EXIT_FAILURE)

    @patch("minicron.cli.CronDaemon")
    def test_bad_settings_file(self, mock_daemon_cls) -> None:
        settings_path = self.home / ".config" / "minicron.json"
        settings_path.parent.mkdir(parents=True)
        settings_path.write_text("{oops", encoding="utf-8")
        stderr = io.StringIO()

        with patch("sys.stderr", stderr):
            self.assertEqual(crond_main([]), EXIT_FAILURE)

        self.assertTrue(stderr.getvalue().startswith("crond: Invalid JSON"))
        mock_daemon_cls.assert_not_called()


if __name__ == "__main__":
    unittest.main()
