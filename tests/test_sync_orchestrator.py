"""End-to-end tests of the sync orchestrator against in-memory ports."""

import json
import os
import tempfile
import unittest

from fakes import FakeSource, FakeTarget
from fetchers.bookstack_client import SourceAuthenticationError
from importers.wikijs_client import WikiJsConnectionError
from models import SyncSettings
from orchestrator.state_store import StateStore
from orchestrator.sync_orchestrator import SyncOrchestrator


class TestSyncOrchestrator(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.state_path = os.path.join(self.tmpdir.name, 'sync-state.json')
        self.assets_dir = os.path.join(self.tmpdir.name, 'assets')
        self.source = FakeSource()
        self.target = FakeTarget()

    def tearDown(self):
        self.tmpdir.cleanup()

    def make_orchestrator(self, **settings):
        settings.setdefault('progress_bars', False)
        settings.setdefault('assets_dir', self.assets_dir)
        settings.setdefault('default_user_email', 'admin@example.com')
        return SyncOrchestrator(
            source=self.source,
            target=self.target,
            state_store=StateStore(self.state_path),
            settings=SyncSettings(**settings)
        )

    def read_state(self):
        with open(self.state_path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def test_full_run(self):
        report = self.make_orchestrator().run()

        self.assertEqual(report['status'], 'completed')
        stats = report['statistics']
        self.assertEqual(stats['pages_created'], 3)
        self.assertEqual(stats['pages_updated'], 0)
        self.assertEqual(stats['assets_uploaded'], 2)
        self.assertEqual(stats['errors'], 0)

        self.assertEqual(
            set(self.target.pages),
            {'engineering/handbook/welcome', 'engineering/handbook/onboarding/first-day', 'uncategorized/orphan'}
        )
        welcome = self.target.pages['engineering/handbook/welcome']
        self.assertIn('![Architecture](/uploads/diagram.png)', welcome['content'])
        self.assertIn('[Manual](/uploads/Manual.pdf)', welcome['content'])
        self.assertEqual(welcome['creator_id'], 11)
        self.assertEqual(welcome['author_id'], 12)
        # BookStack user 3 has no Wiki.js account
        self.assertEqual(self.target.pages['uncategorized/orphan']['author_id'], 1)
        # Empty markdown keeps html fallback
        self.assertEqual(
            self.target.pages['engineering/handbook/onboarding/first-day']['content'], '<p>Day one</p>'
        )

        state = self.read_state()
        self.assertEqual(set(state['pageMap']), {'1000', '1001', '1002'})
        self.assertEqual(state['assetMap'], {'image:5': '/uploads/diagram.png', 'attachment:7': '/uploads/Manual.pdf'})
        self.assertEqual(state['userMap'], {'1': 11, '2': 12})
        self.assertIsNotNone(state['lastSync'])

    def test_pages_created_shallowest_first(self):
        self.make_orchestrator().run()

        created = [call[1] for call in self.target.calls if call[0] == 'create_page']

        self.assertEqual(created, [
            'uncategorized/orphan',
            'engineering/handbook/welcome',
            'engineering/handbook/onboarding/first-day'
        ])

    def test_second_run_is_idempotent(self):
        self.make_orchestrator().run()
        first_state = self.read_state()
        uploads_after_first = len(self.target.uploads)

        report = self.make_orchestrator().run()

        stats = report['statistics']
        self.assertEqual(stats['pages_created'], 0)
        self.assertEqual(stats['pages_updated'], 3)
        self.assertEqual(stats['assets_uploaded'], 0)
        self.assertEqual(stats['assets_skipped'], 2)
        self.assertEqual(len(self.target.uploads), uploads_after_first)
        self.assertEqual(len(self.source.download_calls), 2)

        second_state = self.read_state()
        self.assertEqual(second_state['pageMap'], first_state['pageMap'])
        self.assertEqual(second_state['assetMap'], first_state['assetMap'])

    def test_dry_run(self):
        report = self.make_orchestrator(dry_run=True).run()

        self.assertEqual(self.target.mutating_calls(), [])
        self.assertEqual(self.source.download_calls, [])
        self.assertFalse(os.path.exists(self.state_path))
        self.assertTrue(report['dry_run'])
        self.assertEqual(report['statistics']['pages_created'], 3)
        # Discovery still ran
        self.assertEqual(sorted(self.source.detail_calls), [1000, 1001, 1002])

    def test_detail_failure_isolated(self):
        self.source.failing_pages.add(1000)

        report = self.make_orchestrator().run()

        self.assertEqual(report['statistics']['pages_created'], 2)
        self.assertEqual(report['statistics']['errors'], 1)
        self.assertNotIn('1000', self.read_state()['pageMap'])

    def test_malformed_detail_does_not_abort_run(self):
        self.source.details[1000] = None

        report = self.make_orchestrator().run()

        self.assertEqual(report['status'], 'completed')
        self.assertEqual(report['statistics']['pages_created'], 2)
        self.assertEqual(report['statistics']['errors'], 1)
        self.assertEqual(set(self.read_state()['pageMap']), {'1001', '1002'})

    def test_incremental_run_retries_failed_page(self):
        self.target.failing_creates.add('engineering/handbook/welcome')
        first = self.make_orchestrator(incremental=True).run()
        self.assertEqual(first['statistics']['errors'], 1)
        self.assertIsNone(self.read_state()['lastSync'])

        self.target.failing_creates.clear()
        second = self.make_orchestrator(incremental=True).run()

        self.assertEqual(second['statistics']['errors'], 0)
        self.assertEqual(second['statistics']['pages_created'], 1)
        self.assertIn('engineering/handbook/welcome', self.target.pages)
        self.assertIsNotNone(self.read_state()['lastSync'])

        third = self.make_orchestrator(incremental=True).run()

        self.assertEqual(third['statistics']['pages_skipped'], 3)
        self.assertEqual(third['statistics']['pages_updated'], 0)

    def test_page_failure_isolated(self):
        self.target.failing_creates.add('engineering/handbook/welcome')

        report = self.make_orchestrator().run()

        self.assertEqual(report['status'], 'completed')
        self.assertEqual(report['statistics']['pages_created'], 2)
        self.assertEqual(report['statistics']['errors'], 1)

    def test_asset_failure_uses_placeholder(self):
        self.source.failing_assets.add('image:5')

        report = self.make_orchestrator().run()

        self.assertEqual(report['statistics']['errors'], 1)
        welcome = self.target.pages['engineering/handbook/welcome']
        # Unmapped image reference is kept as-is
        self.assertIn('(/uploads/images/gallery/2024-01/diagram.png)', welcome['content'])
        self.assertNotIn('image:5', self.read_state()['assetMap'])

    def test_unreachable_target_leaves_state_untouched(self):
        with open(self.state_path, 'w', encoding='utf-8') as f:
            json.dump({'lastSync': None, 'pageMap': {'1': 2}, 'assetMap': {}, 'userMap': {}}, f)
        with open(self.state_path, 'rb') as f:
            before = f.read()
        self.target.connection_error = WikiJsConnectionError('connection refused')

        report = self.make_orchestrator().run()

        self.assertEqual(report['status'], 'failed')
        self.assertEqual(report['statistics']['errors'], 1)
        self.assertEqual(self.source.list_calls, [])
        with open(self.state_path, 'rb') as f:
            self.assertEqual(f.read(), before)

    def test_source_authentication_failure_aborts(self):
        self.source.endpoint_errors['shelves'] = SourceAuthenticationError('rejected', status_code=401)

        report = self.make_orchestrator().run()

        self.assertEqual(report['status'], 'failed')
        self.assertEqual(self.target.mutating_calls(), [])
        self.assertFalse(os.path.exists(self.state_path))

    def test_skip_users(self):
        self.make_orchestrator(skip_user_mapping=True).run()

        self.assertEqual(self.source.user_calls, [])
        for page in self.target.pages.values():
            self.assertEqual(page['author_id'], 1)
            self.assertEqual(page['creator_id'], 1)

    def test_cancelled_run_persists_progress(self):
        orchestrator = self.make_orchestrator()
        original_upsert = orchestrator.upsert_engine.upsert

        def upsert_then_cancel(context, *args, **kwargs):
            result = original_upsert(context, *args, **kwargs)
            context.cancel_event.set()
            return result

        orchestrator.upsert_engine.upsert = upsert_then_cancel

        report = orchestrator.run()

        self.assertEqual(report['status'], 'cancelled')
        self.assertEqual(report['statistics']['pages_created'], 1)
        self.assertEqual(len(self.read_state()['pageMap']), 1)
        self.assertIsNone(self.read_state()['lastSync'])


if __name__ == '__main__':
    unittest.main()
