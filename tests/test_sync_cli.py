"""Tests for the sync CLI and report formatting."""

import io
import json
import os
import tempfile
import unittest
from unittest import mock

import sync
from models import SyncStats
from orchestrator.sync_report import SyncReport


class TestExitCodes(unittest.TestCase):
    def test_mapping(self):
        self.assertEqual(sync.exit_code_for({'status': 'completed', 'statistics': {'errors': 0}}), 0)
        self.assertEqual(sync.exit_code_for({'status': 'completed', 'statistics': {'errors': 2}}), 1)
        self.assertEqual(sync.exit_code_for({'status': 'failed', 'statistics': {'errors': 1}}), 1)
        self.assertEqual(sync.exit_code_for({'status': 'cancelled', 'statistics': {'errors': 0}}), 130)


class TestArguments(unittest.TestCase):
    def test_defaults(self):
        args = sync.create_argument_parser().parse_args([])

        self.assertIsNone(args.dry_run)
        self.assertFalse(args.skip_users)
        self.assertEqual(args.verbose, 0)

    def test_flags(self):
        args = sync.create_argument_parser().parse_args(
            ['--no-dry-run', '--skip-users', '--workers', '3', '-vv', '--report', 'out.json']
        )

        self.assertFalse(args.dry_run)
        self.assertTrue(args.skip_users)
        self.assertEqual(args.workers, 3)
        self.assertEqual(args.verbose, 2)
        self.assertEqual(args.report, 'out.json')


class TestMain(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.config_path = os.path.join(self.tmpdir.name, 'config.yaml')

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_init_writes_template(self):
        with mock.patch('sys.argv', ['sync.py', '--init', '--config', self.config_path]):
            self.assertEqual(sync.main(), 0)
        self.assertTrue(os.path.exists(self.config_path))

        with mock.patch('sys.argv', ['sync.py', '--init', '--config', self.config_path]):
            self.assertEqual(sync.main(), 2)

    def test_missing_config_is_config_error(self):
        with mock.patch('sys.argv', ['sync.py', '--config', self.config_path]):
            self.assertEqual(sync.main(), 2)

    def test_invalid_config_is_config_error(self):
        with open(self.config_path, 'w', encoding='utf-8') as f:
            f.write('bookstack:\n  base_url: https://books.example.com\n')

        with mock.patch('sys.argv', ['sync.py', '--config', self.config_path]):
            self.assertEqual(sync.main(), 2)

    def test_config_failure_still_prints_summary(self):
        report_path = os.path.join(self.tmpdir.name, 'report.json')
        argv = ['sync.py', '--config', self.config_path, '--report', report_path]

        with mock.patch('sys.argv', argv), mock.patch('sys.stdout', new_callable=io.StringIO) as stdout:
            self.assertEqual(sync.main(), 2)

        self.assertIn('SYNC REPORT', stdout.getvalue())
        self.assertIn('Total Errors:        1', stdout.getvalue())
        with open(report_path, 'r', encoding='utf-8') as f:
            self.assertEqual(json.load(f)['status'], 'failed')


class TestSyncReport(unittest.TestCase):
    def test_console_report_lists_counters(self):
        stats = SyncStats()
        stats.increment('pages_created', 3)
        stats.increment('errors')
        reporter = SyncReport()

        text = reporter.format_console_report(reporter.generate_report(stats, 75.0, dry_run=True))

        self.assertIn('SYNC REPORT (DRY RUN)', text)
        self.assertIn('Pages Created:       3', text)
        self.assertIn('Total Errors:        1', text)
        self.assertIn('1m 15s', text)

    def test_export_json(self):
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        path = os.path.join(tmpdir.name, 'report.json')
        reporter = SyncReport()

        reporter.export_json_report(reporter.generate_report(SyncStats(), 1.0), path)

        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        self.assertEqual(data['status'], 'completed')
        self.assertEqual(data['statistics']['errors'], 0)


if __name__ == '__main__':
    unittest.main()
