# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for daemon utility functions."""

import os
import stat
import unittest
from unittest.mock import patch

from steam_cli.daemon.utils import (
    cleanup_stale_files,
    get_daemon_log_path,
    get_daemon_pid_path,
    get_daemon_state_path,
    is_process_alive,
    read_daemon_pid,
    write_pid_file,
)
from steam_cli.store import DaemonState, daemon_state_store
from tests.fakes import TempHomeTestCase


class TestDaemonPaths(TempHomeTestCase):
    """Test daemon path generation."""

    def test_paths_in_config_dir(self):
        """PID and state files should live in the configuration directory."""
        self.assertEqual(get_daemon_pid_path(), os.path.join(self.home, 'daemon.pid'))
        self.assertEqual(get_daemon_state_path(), os.path.join(self.home, 'daemon_state.json'))

    def test_log_path_creates_directory(self):
        path = get_daemon_log_path()
        self.assertEqual(path, os.path.join(self.home, 'logs', 'daemon.log'))
        self.assertTrue(os.path.isdir(os.path.dirname(path)))


class TestPidFile(TempHomeTestCase):

    def test_write_and_read(self):
        write_pid_file(4242)
        self.assertEqual(read_daemon_pid(), 4242)
        self.assertEqual(stat.S_IMODE(os.stat(get_daemon_pid_path()).st_mode), 0o600)

    def test_missing(self):
        self.assertIsNone(read_daemon_pid())

    def test_garbage(self):
        with open(get_daemon_pid_path(), 'w') as f:
            f.write('not a pid')
        self.assertIsNone(read_daemon_pid())

    def test_falls_back_to_state(self):
        """Without a PID file the PID recorded in the state snapshot should be used."""
        daemon_state_store().save(DaemonState(pid=4343))
        self.assertEqual(read_daemon_pid(), 4343)

    def test_cleanup(self):
        write_pid_file(4242)
        daemon_state_store().save(DaemonState(pid=4242))
        cleanup_stale_files()
        self.assertFalse(os.path.exists(get_daemon_pid_path()))
        self.assertFalse(os.path.exists(get_daemon_state_path()))
        # Nothing left to remove
        cleanup_stale_files()


class TestProcessLiveness(unittest.TestCase):

    def test_own_process(self):
        self.assertTrue(is_process_alive(os.getpid()))

    def test_invalid_pid(self):
        self.assertFalse(is_process_alive(None))
        self.assertFalse(is_process_alive(0))
        self.assertFalse(is_process_alive(-1))

    def test_dead_process(self):
        with patch('steam_cli.daemon.utils.os.kill', side_effect=ProcessLookupError):
            self.assertFalse(is_process_alive(4242))

    def test_foreign_process(self):
        """A process we may not signal still exists."""
        with patch('steam_cli.daemon.utils.os.kill', side_effect=PermissionError):
            self.assertTrue(is_process_alive(1))


if __name__ == '__main__':
    unittest.main()
