"""Loads the BookStack shelf/book/chapter/page tree and enriches pages."""

import logging
from typing import Any, Dict, List, Optional

from dateutil.parser import isoparse

from models import (
    AncestorSlugs,
    Book,
    Chapter,
    HierarchyTree,
    Page,
    Shelf,
    SyncContext
)
from .bookstack_client import SourceAuthenticationError, UnexpectedResponseError

logger = logging.getLogger('bookstack_wikijs_sync.fetchers.hierarchy_loader')

DEFAULT_BOOK_SLUG = "uncategorized"


def paginate(context: SyncContext, endpoint: str) -> List[Dict[str, Any]]:
    """
    Collect every item of a paginated source endpoint.

    Requests fixed-size pages starting at 1 and stops on the first page that
    returns fewer items than requested. A failing request ends the loop and the
    items collected so far are returned; authentication failures propagate.

    Args:
        context: Sync context holding the source port and settings
        endpoint: Collection name (e.g. "books")

    Returns:
        List of raw item dictionaries
    """
    page_size = context.settings.page_size
    results: List[Dict[str, Any]] = []
    page = 1

    while True:
        try:
            items = context.source.list_items(endpoint, page=page, count=page_size)
        except SourceAuthenticationError:
            raise
        except UnexpectedResponseError as e:
            logger.warning(str(e))
            break
        except Exception as e:
            logger.error(f"Failed to fetch /{endpoint} page {page}: {e}")
            break

        results.extend(items)

        if len(items) < page_size:
            break
        page += 1

    logger.debug(f"Fetched {len(results)} items from /{endpoint}")
    return results


def extract_user_id(user_field: Any) -> Optional[int]:
    """Pull a user id out of either ``{"id": ..}`` or a bare id."""
    if isinstance(user_field, dict):
        user_field = user_field.get('id')
    if isinstance(user_field, bool) or user_field is None:
        return None
    try:
        return int(user_field)
    except (TypeError, ValueError):
        return None


def _parse_timestamp(value: Optional[str]):
    if not value:
        return None
    try:
        return isoparse(value)
    except (TypeError, ValueError):
        return None


class HierarchyLoader:
    """
    Retrieves shelves, books, chapters and pages from the source.

    Each listed page is fetched individually for its body; a failed detail
    fetch drops only that page and counts one error.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('bookstack_wikijs_sync.fetchers.hierarchy_loader')

    def load(self, context: SyncContext) -> HierarchyTree:
        """
        Load and enrich the full hierarchy.

        Raises:
            SourceAuthenticationError: If the source rejects the credentials
        """
        tree = HierarchyTree()

        self.logger.info("Fetching shelves from BookStack")
        tree.shelves = self._build_nodes(paginate(context, 'shelves'), self._to_shelf, 'shelf')

        self.logger.info("Fetching books from BookStack")
        tree.books = self._build_nodes(paginate(context, 'books'), self._to_book, 'book')

        self.logger.info("Fetching chapters from BookStack")
        tree.chapters = self._build_nodes(paginate(context, 'chapters'), self._to_chapter, 'chapter')

        self.logger.info("Fetching pages from BookStack")
        listed_pages = [item for item in paginate(context, 'pages') if self._has_id(item, 'page')]

        shelves_by_id = {shelf.id: shelf for shelf in tree.shelves}
        books_by_id = {book.id: book for book in tree.books}
        chapters_by_id = {chapter.id: chapter for chapter in tree.chapters}

        since = _parse_timestamp(context.state.last_sync) if context.settings.incremental else None
        if since:
            self.logger.info(f"Incremental mode: skipping pages unchanged since {context.state.last_sync}")

        self.logger.info(f"Enriching {len(listed_pages)} pages")
        for item in listed_pages:
            if context.cancelled:
                self.logger.warning("Cancellation requested, stopping page enrichment")
                break

            if item.get('draft') and not context.settings.include_drafts:
                self.logger.debug(f"Skipping draft page {item.get('id')}")
                continue

            if since and not self._changed_since(item, since):
                self.logger.debug(f"Skipping unchanged page {item.get('id')}")
                context.stats.increment('pages_skipped')
                continue

            try:
                detail = context.source.get_page(item['id'])
                if not isinstance(detail, dict):
                    raise UnexpectedResponseError(f"Unexpected page detail body: {detail!r}"[:300])
                page = self._to_page(item, detail, shelves_by_id, books_by_id, chapters_by_id)
            except SourceAuthenticationError:
                raise
            except Exception as e:
                self.logger.warning(f"Failed to enrich page {item.get('id')}: {e}")
                context.stats.increment('errors')
                continue

            tree.pages.append(page)
            for user_id in (page.created_by, page.updated_by):
                if user_id is not None:
                    tree.users.add(user_id)

        self.logger.info(f"Loaded {tree.summary()}")
        return tree

    def _has_id(self, item: Any, kind: str) -> bool:
        if isinstance(item, dict) and item.get('id') is not None:
            return True
        self.logger.warning(f"Skipping malformed {kind} entry: {item!r}"[:300])
        return False

    def _build_nodes(self, items: List[Any], builder, kind: str) -> list:
        """Convert listed items, skipping entries without an id."""
        return [builder(item) for item in items if self._has_id(item, kind)]

    @staticmethod
    def _changed_since(item: Dict[str, Any], since) -> bool:
        updated = _parse_timestamp(item.get('updated_at'))
        if updated is None:
            return True
        if (updated.tzinfo is None) != (since.tzinfo is None):
            updated = updated.replace(tzinfo=None)
            since = since.replace(tzinfo=None)
        return updated > since

    @staticmethod
    def _to_shelf(item: Dict[str, Any]) -> Shelf:
        return Shelf(id=item['id'], slug=item.get('slug', ''), name=item.get('name', ''))

    @staticmethod
    def _to_book(item: Dict[str, Any]) -> Book:
        return Book(
            id=item['id'],
            slug=item.get('slug', ''),
            name=item.get('name', ''),
            shelf_id=item.get('shelf_id')
        )

    @staticmethod
    def _to_chapter(item: Dict[str, Any]) -> Chapter:
        return Chapter(
            id=item['id'],
            slug=item.get('slug', ''),
            name=item.get('name', ''),
            book_id=item.get('book_id')
        )

    @staticmethod
    def _to_page(
        item: Dict[str, Any],
        detail: Dict[str, Any],
        shelves_by_id: Dict[int, Shelf],
        books_by_id: Dict[int, Book],
        chapters_by_id: Dict[int, Chapter]
    ) -> Page:
        """Build an enriched page from list and detail payloads."""
        shelf = shelves_by_id.get(item.get('shelf_id'))
        book = books_by_id.get(item.get('book_id'))
        chapter = chapters_by_id.get(item.get('chapter_id'))

        ancestors = AncestorSlugs(
            shelf=shelf.slug if shelf else None,
            book=book.slug if book else DEFAULT_BOOK_SLUG,
            chapter=chapter.slug if chapter else None
        )

        html = detail.get('html') or ''
        return Page(
            id=item['id'],
            slug=item.get('slug', ''),
            title=item.get('name', ''),
            content=detail.get('markdown') or html,
            html=html,
            is_draft=bool(item.get('draft', False)),
            book_id=item.get('book_id'),
            chapter_id=item.get('chapter_id') or None,
            shelf_id=item.get('shelf_id'),
            created_by=extract_user_id(detail.get('created_by')),
            updated_by=extract_user_id(detail.get('updated_by')),
            created_at=item.get('created_at'),
            updated_at=item.get('updated_at'),
            ancestor_slugs=ancestors
        )


__all__ = ['HierarchyLoader', 'paginate', 'extract_user_id', 'DEFAULT_BOOK_SLUG']
