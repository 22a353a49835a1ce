"""
Asset sync for BookStack images and attachments.

Downloads each gallery image and attachment from BookStack into a scoped
temporary file, uploads it to Wiki.js and records the returned locator in the
sync state so later runs never transfer the same asset twice.
"""

import logging
import os
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, Iterable, List, Optional

from tqdm import tqdm

from fetchers.hierarchy_loader import paginate
from models import Asset, AssetKind, SyncContext


logger = logging.getLogger('bookstack_wikijs_sync.importers.asset_sync')


IMAGE_ENDPOINT = 'image-gallery'
ATTACHMENT_ENDPOINT = 'attachments'


def _image_from_item(item: Dict[str, Any]) -> Asset:
    return Asset(
        id=item['id'],
        kind=AssetKind.IMAGE,
        name=item.get('name') or os.path.basename(item.get('path', '')) or f"image-{item['id']}",
        download_path=item.get('path') or item.get('url') or ''
    )


def _attachment_from_item(item: Dict[str, Any]) -> Asset:
    name = item.get('name') or f"attachment-{item['id']}"
    extension = item.get('extension')
    if extension and not name.lower().endswith(f".{extension.lower()}"):
        name = f"{name}.{extension}"
    return Asset(id=item['id'], kind=AssetKind.ATTACHMENT, name=name, download_path='')


class AssetSyncEngine:
    """
    Syncs source assets to the target at most once per state lifetime.

    Failures are isolated per asset: the error is logged and counted and the
    configured placeholder locator is returned in place of the real one.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('bookstack_wikijs_sync.importers.asset_sync')
        self._lock = threading.Lock()

    def enumerate_assets(self, context: SyncContext) -> List[Asset]:
        """
        List every gallery image and file attachment in BookStack.

        External link attachments carry no file and are not returned.
        """
        assets = [_image_from_item(item) for item in paginate(context, IMAGE_ENDPOINT)]

        for item in paginate(context, ATTACHMENT_ENDPOINT):
            if item.get('external'):
                self.logger.debug(f"Skipping external link attachment {item.get('id')}")
                continue
            assets.append(_attachment_from_item(item))

        self.logger.info(f"Discovered {len(assets)} assets")
        return assets

    def sync(self, context: SyncContext, asset: Asset) -> str:
        """
        Sync a single asset and return its target locator.

        Args:
            context: Sync context
            asset: Asset to sync

        Returns:
            Locator recorded in the asset map, or the placeholder locator when
            the asset could not be transferred or the run is a dry run
        """
        key = asset.map_key
        cached = context.state.asset_map.get(key)
        if cached:
            self.logger.debug(f"Asset {key} already synced -> {cached}")
            context.stats.increment('assets_skipped')
            return cached

        placeholder = context.settings.missing_asset_locator

        if context.settings.dry_run:
            self.logger.info(f"[DRY RUN] Would upload {asset.kind.value} '{asset.name}' ({key})")
            return placeholder

        try:
            data = self._download(context, asset)
            locator = context.target.upload_asset(asset.name, data)
        except Exception as e:
            self.logger.error(f"Failed to sync {asset.kind.value} '{asset.name}' ({key}): {e}")
            context.stats.increment('errors')
            return placeholder

        with self._lock:
            context.state.asset_map[key] = locator
        context.stats.increment('assets_uploaded')
        self.logger.debug(f"Uploaded {asset.kind.value} '{asset.name}' -> {locator}")
        return locator

    def _download(self, context: SyncContext, asset: Asset) -> bytes:
        """Download an asset through a temporary file that is always removed."""
        assets_dir = context.settings.assets_dir
        os.makedirs(assets_dir, exist_ok=True)

        with tempfile.NamedTemporaryFile(dir=assets_dir, prefix=f"{asset.kind.value}-{asset.id}-") as tmp:
            written = context.source.download_asset(asset, tmp)
            tmp.flush()
            tmp.seek(0)
            data = tmp.read()

        self.logger.debug(f"Downloaded {written} bytes for {asset.map_key}")
        return data

    def sync_all(self, context: SyncContext, assets: Iterable[Asset]) -> Dict[str, str]:
        """
        Sync a batch of assets, sequentially or in a bounded worker pool.

        Duplicate assets are synced once. Cancellation is checked before each
        asset starts.

        Returns:
            Dict mapping asset map keys to locators for the assets processed
        """
        unique: Dict[str, Asset] = {}
        for asset in assets:
            unique.setdefault(asset.map_key, asset)

        if not unique:
            return {}

        results: Dict[str, str] = {}
        max_workers = max(1, int(context.settings.max_workers or 1))
        progress = tqdm(
            total=len(unique),
            desc="Syncing assets",
            unit="asset",
            disable=not context.settings.progress_bars
        )

        try:
            if max_workers == 1:
                for key, asset in unique.items():
                    if context.cancelled:
                        self.logger.warning("Cancellation requested, stopping asset sync")
                        break
                    results[key] = self.sync(context, asset)
                    progress.update(1)
            else:
                with ThreadPoolExecutor(max_workers=max_workers) as executor:
                    future_to_key = {
                        executor.submit(self._sync_unless_cancelled, context, asset): key
                        for key, asset in unique.items()
                    }
                    for future in as_completed(future_to_key):
                        locator = future.result()
                        if locator is not None:
                            results[future_to_key[future]] = locator
                        progress.update(1)
                if context.cancelled:
                    self.logger.warning("Cancellation requested, remaining assets were not synced")
        finally:
            progress.close()

        return results

    def _sync_unless_cancelled(self, context: SyncContext, asset: Asset) -> Optional[str]:
        if context.cancelled:
            return None
        return self.sync(context, asset)


__all__ = ['AssetSyncEngine', 'IMAGE_ENDPOINT', 'ATTACHMENT_ENDPOINT']
