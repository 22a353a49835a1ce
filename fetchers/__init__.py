"""Fetchers package for reading the BookStack content hierarchy and assets."""

from .bookstack_client import (
    BookStackClient,
    BookStackApiError,
    SourceAuthenticationError,
    UnexpectedResponseError
)
from .hierarchy_loader import HierarchyLoader, paginate, extract_user_id

__all__ = [
    'BookStackClient',
    'BookStackApiError',
    'SourceAuthenticationError',
    'UnexpectedResponseError',
    'HierarchyLoader',
    'paginate',
    'extract_user_id'
]
