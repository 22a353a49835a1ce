"""Tests for loading and enriching the BookStack hierarchy."""

import unittest

from fakes import FakeSource, make_context
from fetchers.bookstack_client import SourceAuthenticationError, UnexpectedResponseError
from fetchers.hierarchy_loader import HierarchyLoader, extract_user_id, paginate
from models import SyncState


class TestPaginate(unittest.TestCase):
    def test_stops_on_short_page(self):
        source = FakeSource(collections={'books': [{'id': i, 'slug': f'b{i}'} for i in range(5)]})
        context = make_context(source=source, page_size=2)

        items = paginate(context, 'books')

        self.assertEqual([item['id'] for item in items], [0, 1, 2, 3, 4])
        self.assertEqual(source.list_calls, [('books', 1, 2), ('books', 2, 2), ('books', 3, 2)])

    def test_exact_multiple_ends_with_empty_page(self):
        source = FakeSource(collections={'books': [{'id': i, 'slug': f'b{i}'} for i in range(4)]})
        context = make_context(source=source, page_size=2)

        items = paginate(context, 'books')

        self.assertEqual(len(items), 4)
        self.assertEqual(source.list_calls[-1], ('books', 3, 2))

    def test_unexpected_response_returns_partial(self):
        source = FakeSource()
        source.endpoint_errors['shelves'] = UnexpectedResponseError("Unexpected response from /shelves")
        context = make_context(source=source)

        with self.assertLogs('bookstack_wikijs_sync.fetchers.hierarchy_loader', level='WARNING'):
            self.assertEqual(paginate(context, 'shelves'), [])

    def test_authentication_failure_propagates(self):
        source = FakeSource()
        source.endpoint_errors['shelves'] = SourceAuthenticationError("rejected", status_code=401)
        context = make_context(source=source)

        with self.assertRaises(SourceAuthenticationError):
            paginate(context, 'shelves')


class TestHierarchyLoader(unittest.TestCase):
    def setUp(self):
        self.loader = HierarchyLoader()

    def test_load_enriches_pages(self):
        context = make_context()

        tree = self.loader.load(context)

        self.assertEqual(len(tree.shelves), 1)
        self.assertEqual(len(tree.books), 1)
        self.assertEqual(len(tree.chapters), 1)
        pages = {page.id: page for page in tree.pages}
        self.assertEqual(set(pages), {1000, 1001, 1002})

        first_day = pages[1001]
        self.assertEqual(first_day.ancestor_slugs.shelf, 'engineering')
        self.assertEqual(first_day.ancestor_slugs.book, 'handbook')
        self.assertEqual(first_day.ancestor_slugs.chapter, 'onboarding')
        # Empty markdown falls back to html
        self.assertEqual(first_day.content, '<p>Day one</p>')

        welcome = pages[1000]
        self.assertIsNone(welcome.ancestor_slugs.chapter)
        self.assertIsNone(welcome.chapter_id)
        self.assertEqual(welcome.created_by, 1)
        self.assertEqual(welcome.updated_by, 2)

    def test_unknown_book_uses_uncategorized(self):
        tree = self.loader.load(make_context())

        orphan = next(page for page in tree.pages if page.id == 1002)

        self.assertEqual(orphan.ancestor_slugs.book, 'uncategorized')
        self.assertIsNone(orphan.ancestor_slugs.shelf)

    def test_collects_users(self):
        tree = self.loader.load(make_context())

        self.assertEqual(tree.users, {1, 2, 3})

    def test_detail_failure_excludes_only_that_page(self):
        source = FakeSource()
        source.failing_pages.add(1001)
        context = make_context(source=source)

        tree = self.loader.load(context)

        self.assertEqual(sorted(page.id for page in tree.pages), [1000, 1002])
        self.assertEqual(context.stats.errors, 1)

    def test_malformed_detail_excludes_only_that_page(self):
        source = FakeSource()
        source.details[1000] = None
        source.details[1001] = ['not', 'a', 'page']
        context = make_context(source=source)

        with self.assertLogs('bookstack_wikijs_sync.fetchers.hierarchy_loader', level='WARNING'):
            tree = self.loader.load(context)

        self.assertEqual([page.id for page in tree.pages], [1002])
        self.assertEqual(context.stats.errors, 2)

    def test_malformed_list_entries_skipped(self):
        source = FakeSource()
        source.collections['shelves'].append(None)
        source.collections['books'].append({'slug': 'no-id'})
        source.collections['pages'].append('garbage')
        context = make_context(source=source)

        tree = self.loader.load(context)

        self.assertEqual([shelf.id for shelf in tree.shelves], [1])
        self.assertEqual([book.id for book in tree.books], [10])
        self.assertEqual(sorted(page.id for page in tree.pages), [1000, 1001, 1002])

    def test_drafts_skipped_unless_included(self):
        source = FakeSource()
        source.collections['pages'][0]['draft'] = True

        tree = self.loader.load(make_context(source=source))
        self.assertNotIn(1001, [page.id for page in tree.pages])

        tree = self.loader.load(make_context(source=source, include_drafts=True))
        draft = next(page for page in tree.pages if page.id == 1001)
        self.assertTrue(draft.is_draft)
        self.assertFalse(draft.is_published)

    def test_incremental_skips_unchanged_pages(self):
        source = FakeSource()
        state = SyncState(last_sync='2024-01-15T00:00:00+00:00')
        context = make_context(source=source, state=state, incremental=True)

        tree = self.loader.load(context)

        self.assertEqual(sorted(page.id for page in tree.pages), [1001, 1002])
        self.assertNotIn(1000, source.detail_calls)
        self.assertEqual(context.stats.pages_skipped, 1)

    def test_incremental_without_previous_sync_loads_everything(self):
        context = make_context(incremental=True)

        tree = self.loader.load(context)

        self.assertEqual(len(tree.pages), 3)

    def test_cancellation_stops_enrichment(self):
        context = make_context()
        context.cancel_event.set()

        tree = self.loader.load(context)

        self.assertEqual(tree.pages, [])

    def test_authentication_failure_on_detail_propagates(self):
        source = FakeSource()

        def reject(page_id):
            raise SourceAuthenticationError("rejected", status_code=403)

        source.get_page = reject

        with self.assertRaises(SourceAuthenticationError):
            self.loader.load(make_context(source=source))


class TestExtractUserId(unittest.TestCase):
    def test_shapes(self):
        self.assertEqual(extract_user_id({'id': 4, 'name': 'x'}), 4)
        self.assertEqual(extract_user_id(7), 7)
        self.assertEqual(extract_user_id('9'), 9)
        self.assertIsNone(extract_user_id(None))
        self.assertIsNone(extract_user_id({'name': 'x'}))
        self.assertIsNone(extract_user_id('abc'))


if __name__ == '__main__':
    unittest.main()
