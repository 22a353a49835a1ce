"""
Create-or-update of Wiki.js pages at resolved paths.
"""

import logging
from typing import List, Optional, Sequence, Tuple, TypeVar

from models import Page, ResolvedPath, SyncContext, UpsertResult


T = TypeVar('T')


def order_by_depth(items: Sequence[Tuple[ResolvedPath, T]]) -> List[Tuple[ResolvedPath, T]]:
    """
    Order ``(path, item)`` pairs shallowest first.

    The sort is stable, so pages of equal depth keep their source order.
    """
    return sorted(items, key=lambda pair: pair[0].depth)


class PageUpsertEngine:
    """
    Upserts pages against the target wiki.

    A page found at its path is updated, otherwise it is created and the new
    target id is recorded in ``state.page_map``. A failed lookup is treated the
    same as a missing page. Mutation errors propagate to the caller.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('bookstack_wikijs_sync.importers.page_upsert')

    def find_existing(self, context: SyncContext, path: str) -> Optional[dict]:
        try:
            return context.target.find_page(path)
        except Exception as e:
            self.logger.warning(f"Lookup of '{path}' failed, assuming page does not exist: {e}")
            return None

    def upsert(
        self,
        context: SyncContext,
        path: ResolvedPath,
        page: Page,
        content: str,
        author_id: Optional[int] = None,
        creator_id: Optional[int] = None
    ) -> UpsertResult:
        """
        Create or update the page at ``path``.

        Args:
            context: Sync context
            path: Resolved target path
            page: Source page
            content: Transformed content
            author_id: Target user recorded as author/updater
            creator_id: Target user recorded as creator (create only)

        Returns:
            UpsertResult.CREATED or UpsertResult.UPDATED
        """
        existing = self.find_existing(context, path.path)

        if existing:
            if context.settings.dry_run:
                self.logger.info(f"[DRY RUN] Would update '{page.title}' at {path.path} (id {existing['id']})")
                return UpsertResult.UPDATED

            context.target.update_page(
                existing['id'],
                title=page.title,
                content=content,
                is_published=page.is_published,
                author_id=author_id
            )
            self.logger.info(f"Updated '{page.title}' at {path.path}")
            return UpsertResult.UPDATED

        if context.settings.dry_run:
            self.logger.info(f"[DRY RUN] Would create '{page.title}' at {path.path}")
            return UpsertResult.CREATED

        created = context.target.create_page(
            path.path,
            title=page.title,
            content=content,
            is_published=page.is_published,
            author_id=author_id,
            creator_id=creator_id
        )
        context.state.page_map[str(page.id)] = created['id']
        self.logger.info(f"Created '{page.title}' at {path.path} (id {created['id']})")
        return UpsertResult.CREATED


__all__ = ['PageUpsertEngine', 'order_by_depth']
