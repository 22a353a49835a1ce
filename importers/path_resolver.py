"""
Path resolution for BookStack pages.

Maps a page's shelf/book/chapter ancestry onto the flat Wiki.js path format
(e.g. ``engineering/handbook/onboarding/first-day``).
"""

import logging
import re
from typing import Optional

from models import AncestorSlugs, Page, ResolvedPath


# Constants
DEFAULT_PATH_SEPARATOR = "/"
INVALID_PATH_CHARS = re.compile(r'[^a-z0-9/_-]')


def sanitize_path(raw_path: str) -> str:
    """
    Lower-case a joined path and replace every disallowed character with '-'.

    Example:
        >>> sanitize_path("Docs_v2/Getting Started!")
        'docs_v2/getting-started-'
    """
    return INVALID_PATH_CHARS.sub('-', raw_path.lower())


def resolve(
    page: Page,
    ancestor_slugs: Optional[AncestorSlugs] = None,
    separator: str = DEFAULT_PATH_SEPARATOR
) -> ResolvedPath:
    """
    Build the Wiki.js path of a page from already-resolved ancestor slugs.

    Segments are ordered shelf, book, chapter, page. Missing ancestors are
    left out; the page slug is always the last segment.

    Args:
        page: Page to resolve
        ancestor_slugs: Ancestor slugs (defaults to ``page.ancestor_slugs``)
        separator: Separator placed between segments

    Returns:
        ResolvedPath with the segments and the sanitized joined path
    """
    ancestors = ancestor_slugs if ancestor_slugs is not None else page.ancestor_slugs

    segments = tuple(
        slug for slug in (ancestors.shelf, ancestors.book, ancestors.chapter)
        if slug
    ) + (page.slug,)

    return ResolvedPath(
        segments=segments,
        separator=separator,
        path=sanitize_path(separator.join(segments))
    )


def path_depth(path: ResolvedPath) -> int:
    """Number of segments in a resolved path."""
    return path.depth


class PathResolver:
    """Resolves page paths with a configured separator."""

    def __init__(self, separator: str = DEFAULT_PATH_SEPARATOR, logger: Optional[logging.Logger] = None):
        self.separator = separator
        self.logger = logger or logging.getLogger('bookstack_wikijs_sync.importers.path_resolver')

    def resolve(self, page: Page, ancestor_slugs: Optional[AncestorSlugs] = None) -> ResolvedPath:
        resolved = resolve(page, ancestor_slugs, self.separator)
        self.logger.debug(f"Resolved page {page.id} '{page.title}' -> {resolved.path}")
        return resolved


__all__ = ['PathResolver', 'resolve', 'sanitize_path', 'path_depth', 'DEFAULT_PATH_SEPARATOR']
