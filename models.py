"""Data models for the BookStack to Wiki.js sync pipeline."""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple


class NodeKind(Enum):
    """Levels of the BookStack content hierarchy."""
    SHELF = "shelf"
    BOOK = "book"
    CHAPTER = "chapter"
    PAGE = "page"


@dataclass
class Shelf:
    """A BookStack shelf."""

    id: int
    slug: str
    name: str = ""
    kind: NodeKind = field(default=NodeKind.SHELF, init=False)


@dataclass
class Book:
    """A BookStack book, optionally placed on a shelf."""

    id: int
    slug: str
    name: str = ""
    shelf_id: Optional[int] = None
    kind: NodeKind = field(default=NodeKind.BOOK, init=False)


@dataclass
class Chapter:
    """A BookStack chapter inside a book."""

    id: int
    slug: str
    name: str = ""
    book_id: Optional[int] = None
    kind: NodeKind = field(default=NodeKind.CHAPTER, init=False)


@dataclass(frozen=True)
class AncestorSlugs:
    """Slugs of a page's ancestors, resolved at fetch time."""

    shelf: Optional[str] = None
    book: Optional[str] = None
    chapter: Optional[str] = None


@dataclass
class Page:
    """A BookStack page, always a leaf of the hierarchy."""

    id: int
    slug: str
    title: str
    content: str = ""
    html: str = ""
    is_draft: bool = False
    book_id: Optional[int] = None
    chapter_id: Optional[int] = None
    shelf_id: Optional[int] = None
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    ancestor_slugs: AncestorSlugs = field(default_factory=AncestorSlugs)
    kind: NodeKind = field(default=NodeKind.PAGE, init=False)

    @property
    def is_published(self) -> bool:
        """Published state is derived from the draft flag."""
        return not self.is_draft


@dataclass
class HierarchyTree:
    """The loaded source tree with enriched pages."""

    shelves: List[Shelf] = field(default_factory=list)
    books: List[Book] = field(default_factory=list)
    chapters: List[Chapter] = field(default_factory=list)
    pages: List[Page] = field(default_factory=list)
    users: Set[int] = field(default_factory=set)

    def summary(self) -> str:
        return (
            f"{len(self.shelves)} shelves, {len(self.books)} books, "
            f"{len(self.chapters)} chapters, {len(self.pages)} pages"
        )


@dataclass(frozen=True)
class ResolvedPath:
    """Sanitised slug sequence used as the Wiki.js page address."""

    segments: Tuple[str, ...]
    separator: str = "/"
    path: str = ""

    @property
    def depth(self) -> int:
        return len(self.segments)

    def __str__(self) -> str:
        return self.path


class AssetKind(Enum):
    """Binary asset types synced from BookStack."""
    IMAGE = "image"
    ATTACHMENT = "attachment"


@dataclass(frozen=True)
class Asset:
    """An image or attachment discovered in BookStack."""

    id: int
    kind: AssetKind
    name: str
    download_path: str

    @property
    def map_key(self) -> str:
        """Key of this asset in ``SyncState.asset_map``."""
        return f"{self.kind.value}:{self.id}"


class UpsertResult(Enum):
    """Outcome of a page upsert."""
    CREATED = "created"
    UPDATED = "updated"


@dataclass
class SyncState:
    """Persisted record of what previous runs synced."""

    last_sync: Optional[str] = None
    page_map: Dict[str, int] = field(default_factory=dict)
    asset_map: Dict[str, str] = field(default_factory=dict)
    user_map: Dict[str, int] = field(default_factory=dict)
    default_user_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize state to the on-disk JSON shape."""
        return {
            'lastSync': self.last_sync,
            'pageMap': dict(self.page_map),
            'assetMap': dict(self.asset_map),
            'userMap': dict(self.user_map),
            'defaultUserId': self.default_user_id
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SyncState':
        """Deserialize state, tolerating missing sections."""
        return cls(
            last_sync=data.get('lastSync'),
            page_map={str(k): v for k, v in (data.get('pageMap') or {}).items()},
            asset_map={str(k): v for k, v in (data.get('assetMap') or {}).items()},
            user_map={str(k): v for k, v in (data.get('userMap') or {}).items()},
            default_user_id=data.get('defaultUserId')
        )


STAT_FIELDS = (
    'pages_created',
    'pages_updated',
    'pages_skipped',
    'assets_uploaded',
    'assets_skipped',
    'user_mapping_errors',
    'errors'
)


class SyncStats:
    """Per-run counters. Never persisted."""

    def __init__(self):
        self._lock = threading.Lock()
        for name in STAT_FIELDS:
            setattr(self, name, 0)

    def increment(self, name: str, amount: int = 1) -> None:
        if name not in STAT_FIELDS:
            raise KeyError(f"Unknown statistic: {name}")
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)

    def reset(self) -> None:
        with self._lock:
            for name in STAT_FIELDS:
                setattr(self, name, 0)

    def to_dict(self) -> Dict[str, int]:
        return {name: getattr(self, name) for name in STAT_FIELDS}


@dataclass
class SyncSettings:
    """Run options derived from the configuration file and CLI."""

    dry_run: bool = False
    skip_user_mapping: bool = False
    include_drafts: bool = False
    incremental: bool = False
    separator: str = "/"
    page_size: int = 100
    assets_dir: str = "./sync-assets"
    max_workers: int = 1
    progress_bars: bool = True
    missing_asset_locator: str = "/missing-asset"
    default_user_email: Optional[str] = None
    default_user_id: Optional[int] = None

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'SyncSettings':
        sync_config = config.get('sync', {})
        wikijs_config = config.get('wikijs', {})
        return cls(
            dry_run=bool(sync_config.get('dry_run', False)),
            skip_user_mapping=bool(sync_config.get('skip_user_mapping', False)),
            include_drafts=bool(sync_config.get('include_drafts', False)),
            incremental=bool(sync_config.get('incremental', False)),
            separator=sync_config.get('hierarchy_separator', '/'),
            page_size=config.get('bookstack', {}).get('page_size', 100),
            assets_dir=sync_config.get('assets_dir', './sync-assets'),
            max_workers=sync_config.get('max_workers', 1),
            progress_bars=sync_config.get('progress_bars', True),
            missing_asset_locator=sync_config.get('missing_asset_locator', '/missing-asset'),
            default_user_email=wikijs_config.get('default_user_email'),
            default_user_id=wikijs_config.get('default_user_id')
        )


@dataclass
class SyncContext:
    """Everything a component needs for one run, passed explicitly."""

    source: Any  # SourceContentPort
    target: Any  # TargetWikiPort
    state: SyncState
    stats: SyncStats
    settings: SyncSettings = field(default_factory=SyncSettings)
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


__all__ = [
    'NodeKind',
    'Shelf',
    'Book',
    'Chapter',
    'Page',
    'AncestorSlugs',
    'HierarchyTree',
    'ResolvedPath',
    'AssetKind',
    'Asset',
    'UpsertResult',
    'SyncState',
    'SyncStats',
    'SyncSettings',
    'SyncContext'
]
