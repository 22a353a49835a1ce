"""
Content transformer for the Wiki.js sync.

Rewrites BookStack asset references inside page content so they point at the
locators the assets were uploaded to in Wiki.js. No other markup is touched.
"""

import logging
import re
from dataclasses import dataclass
from typing import Mapping, Optional


# ![alt](/uploads/images/gallery/2024-01/foo.png)
IMAGE_REFERENCE = re.compile(r'!\[([^\]]*)\]\(/uploads/images/gallery/[^/]+/([^)]+)\)')
# [name](/attachments/12)
ATTACHMENT_REFERENCE = re.compile(r'\[([^\]]+)\]\(/attachments/(\d+)\)')

EMPTY_CONTENT_PLACEHOLDER = " "


@dataclass
class TransformResult:
    """Reference counts from the last transform call."""

    images_rewritten: int = 0
    attachments_rewritten: int = 0
    unresolved: int = 0

    @property
    def rewritten(self) -> int:
        return self.images_rewritten + self.attachments_rewritten


class ContentTransformer:
    """Rewrites image and attachment references using an asset map."""

    def __init__(self, asset_map: Mapping[str, str], logger: Optional[logging.Logger] = None):
        """
        Initialize content transformer.

        Args:
            asset_map: Asset map keyed by ``Asset.map_key`` with target locators as values
            logger: Optional logger instance
        """
        self.asset_map = asset_map
        self.logger = logger or logging.getLogger('bookstack_wikijs_sync.importers.content_transformer')
        self.last_result = TransformResult()

    def transform(self, raw_content: Optional[str]) -> str:
        """
        Return a copy of ``raw_content`` with resolvable asset references rewritten.

        Unresolvable references are left as they are and logged. Empty content
        becomes a single space.
        """
        self.last_result = TransformResult()

        if not raw_content:
            return EMPTY_CONTENT_PLACEHOLDER

        content = IMAGE_REFERENCE.sub(self._rewrite_image, raw_content)
        content = ATTACHMENT_REFERENCE.sub(self._rewrite_attachment, content)

        if self.last_result.rewritten or self.last_result.unresolved:
            self.logger.debug(
                f"Rewrote {self.last_result.images_rewritten} images and "
                f"{self.last_result.attachments_rewritten} attachments "
                f"({self.last_result.unresolved} unresolved)"
            )
        return content

    def find_image_locator(self, filename: str) -> Optional[str]:
        """
        First mapped locator containing ``filename``.

        Only correct while filenames are unique across all synced assets.
        """
        for locator in self.asset_map.values():
            if filename in locator:
                return locator
        return None

    def _rewrite_image(self, match: 're.Match') -> str:
        alt_text, filename = match.group(1), match.group(2)
        locator = self.find_image_locator(filename)
        if locator is None:
            self.logger.warning(f"No synced asset found for image '{filename}', keeping original reference")
            self.last_result.unresolved += 1
            return match.group(0)

        self.last_result.images_rewritten += 1
        return f"![{alt_text}]({locator})"

    def _rewrite_attachment(self, match: 're.Match') -> str:
        name, attachment_id = match.group(1), match.group(2)
        locator = self.asset_map.get(f"attachment:{attachment_id}")
        if locator is None:
            self.logger.warning(f"No synced asset found for attachment {attachment_id}, keeping original reference")
            self.last_result.unresolved += 1
            return match.group(0)

        self.last_result.attachments_rewritten += 1
        return f"[{name}]({locator})"


__all__ = ['ContentTransformer', 'TransformResult', 'EMPTY_CONTENT_PLACEHOLDER']
