"""Tests for create-or-update of Wiki.js pages."""

import unittest

from fakes import FakeTarget, make_context
from importers.page_upsert import PageUpsertEngine, order_by_depth
from importers.path_resolver import resolve
from importers.wikijs_client import WikiJsApiError, WikiJsConnectionError
from models import AncestorSlugs, Page, ResolvedPath, UpsertResult


def make_page(page_id=1, slug='welcome', is_draft=False):
    return Page(id=page_id, slug=slug, title=slug.title(), content='body', is_draft=is_draft,
                ancestor_slugs=AncestorSlugs(book='handbook'))


class TestPageUpsertEngine(unittest.TestCase):
    def setUp(self):
        self.target = FakeTarget()
        self.context = make_context(target=self.target)
        self.engine = PageUpsertEngine()

    def test_creates_missing_page(self):
        page = make_page()
        path = resolve(page)

        result = self.engine.upsert(self.context, path, page, 'content', author_id=11, creator_id=12)

        self.assertEqual(result, UpsertResult.CREATED)
        created = self.target.pages['handbook/welcome']
        self.assertEqual(created['content'], 'content')
        self.assertTrue(created['is_published'])
        self.assertEqual(created['author_id'], 11)
        self.assertEqual(created['creator_id'], 12)
        self.assertEqual(self.context.state.page_map, {'1': created['id']})

    def test_updates_existing_page(self):
        page = make_page()
        path = resolve(page)
        self.engine.upsert(self.context, path, page, 'v1')

        result = self.engine.upsert(self.context, path, page, 'v2', author_id=11)

        self.assertEqual(result, UpsertResult.UPDATED)
        self.assertEqual(self.target.pages['handbook/welcome']['content'], 'v2')
        self.assertEqual(len(self.target.pages), 1)

    def test_update_does_not_touch_page_map(self):
        self.target.pages['handbook/welcome'] = {'id': 42, 'path': 'handbook/welcome', 'title': 'Welcome'}
        page = make_page()

        self.engine.upsert(self.context, resolve(page), page, 'content')

        self.assertEqual(self.context.state.page_map, {})

    def test_draft_is_unpublished(self):
        page = make_page(is_draft=True)

        self.engine.upsert(self.context, resolve(page), page, 'content')

        self.assertFalse(self.target.pages['handbook/welcome']['is_published'])

    def test_lookup_failure_attempts_create(self):
        self.target.find_error = WikiJsConnectionError('timeout')
        page = make_page()

        result = self.engine.upsert(self.context, resolve(page), page, 'content')

        self.assertEqual(result, UpsertResult.CREATED)
        self.assertIn(('create_page', 'handbook/welcome'), self.target.calls)

    def test_create_rejection_propagates(self):
        page = make_page()
        self.target.pages['handbook/welcome'] = {'id': 42, 'path': 'handbook/welcome', 'title': 'Welcome'}
        self.target.find_error = WikiJsConnectionError('timeout')

        with self.assertRaises(WikiJsApiError):
            self.engine.upsert(self.context, resolve(page), page, 'content')

    def test_dry_run_makes_no_mutations(self):
        context = make_context(target=self.target, dry_run=True)
        page = make_page()

        result = self.engine.upsert(context, resolve(page), page, 'content')

        self.assertEqual(result, UpsertResult.CREATED)
        self.assertEqual(self.target.mutating_calls(), [])
        self.assertEqual(context.state.page_map, {})


class TestOrderByDepth(unittest.TestCase):
    def test_shallowest_first(self):
        depths = [3, 1, 2, 1]
        items = [
            (ResolvedPath(segments=tuple(f's{i}' for i in range(depth))), name)
            for depth, name in zip(depths, 'abcd')
        ]

        ordered = order_by_depth(items)

        self.assertEqual([path.depth for path, _ in ordered], [1, 1, 2, 3])
        # Stable for equal depth
        self.assertEqual([name for _, name in ordered], ['b', 'd', 'c', 'a'])


if __name__ == '__main__':
    unittest.main()
