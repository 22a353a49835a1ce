"""Import package for writing BookStack content into Wiki.js.

Package Structure:
- wikijs_client: GraphQL client and upload endpoint for Wiki.js
- path_resolver: Maps shelf/book/chapter/page ancestry to flat Wiki.js paths
- asset_sync: Transfers images and attachments at most once per state file
- content_transformer: Rewrites asset references inside page content
- page_upsert: Creates or updates pages at their resolved paths
- user_mapper: Maps BookStack users to Wiki.js users by email

Configuration Referenced:
- wikijs.*: Wiki.js API settings, locale, editor and default identity
- sync.*: Dry run, user mapping, asset directory and worker settings
"""

from .wikijs_client import WikiJsClient, WikiJsApiError, WikiJsConnectionError, WikiJsUploadError
from .path_resolver import PathResolver, resolve, sanitize_path
from .asset_sync import AssetSyncEngine
from .content_transformer import ContentTransformer
from .page_upsert import PageUpsertEngine, order_by_depth
from .user_mapper import UserMapper, resolve_identity

__all__ = [
    'WikiJsClient',
    'WikiJsApiError',
    'WikiJsConnectionError',
    'WikiJsUploadError',
    'PathResolver',
    'resolve',
    'sanitize_path',
    'AssetSyncEngine',
    'ContentTransformer',
    'PageUpsertEngine',
    'order_by_depth',
    'UserMapper',
    'resolve_identity'
]
