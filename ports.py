"""Abstract interfaces for the two external systems the sync engine talks to."""

from abc import ABC, abstractmethod
from typing import Any, BinaryIO, Dict, List, Optional

from models import Asset


class SourceContentPort(ABC):
    """Read-only access to the source content hierarchy and its assets."""

    @abstractmethod
    def list_items(self, endpoint: str, page: int, count: int) -> List[Dict[str, Any]]:
        """
        Fetch one page of a paginated list endpoint.

        Args:
            endpoint: Collection name (e.g. "shelves", "pages", "image-gallery")
            page: 1-based page number
            count: Page size

        Returns:
            Items of the requested page (fewer than ``count`` on the last page)
        """
        pass

    @abstractmethod
    def get_page(self, page_id: int) -> Dict[str, Any]:
        """Fetch page detail including body content and creator/updater."""
        pass

    @abstractmethod
    def get_user(self, user_id: int) -> Dict[str, Any]:
        """Fetch a source user record (id, name, email)."""
        pass

    @abstractmethod
    def download_asset(self, asset: Asset, destination: BinaryIO) -> int:
        """
        Stream an asset's bytes into ``destination``.

        Returns:
            Number of bytes written
        """
        pass


class TargetWikiPort(ABC):
    """Page and asset operations against the target wiki."""

    @abstractmethod
    def check_connection(self) -> None:
        """Raise if the target cannot be reached or rejects the credentials."""
        pass

    @abstractmethod
    def find_page(self, path: str) -> Optional[Dict[str, Any]]:
        """Return ``{id, path, title}`` for the page at ``path`` or None."""
        pass

    @abstractmethod
    def create_page(
        self,
        path: str,
        title: str,
        content: str,
        is_published: bool,
        author_id: Optional[int] = None,
        creator_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """Create a page and return ``{id, path}``."""
        pass

    @abstractmethod
    def update_page(
        self,
        page_id: int,
        title: str,
        content: str,
        is_published: bool,
        author_id: Optional[int] = None
    ) -> bool:
        """Update a page. Returns True on success."""
        pass

    @abstractmethod
    def list_users(self) -> List[Dict[str, Any]]:
        """Return all target users as ``{id, email, name}``."""
        pass

    @abstractmethod
    def upload_asset(self, filename: str, data: bytes) -> str:
        """Upload binary content and return its target-relative locator."""
        pass


__all__ = ['SourceContentPort', 'TargetWikiPort']
