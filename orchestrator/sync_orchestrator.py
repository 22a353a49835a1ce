"""
Sync orchestrator for coordinating a complete BookStack to Wiki.js run.

Sequences the run phases: load state, preflight, load hierarchy, map users,
sync assets, transform and upsert pages, persist state, report.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from tqdm import tqdm

from fetchers import BookStackClient, HierarchyLoader, SourceAuthenticationError
from importers import (
    AssetSyncEngine,
    ContentTransformer,
    PageUpsertEngine,
    PathResolver,
    UserMapper,
    WikiJsClient,
    WikiJsConnectionError,
    order_by_depth
)
from logger import ProgressTracker, log_section
from models import HierarchyTree, Page, ResolvedPath, SyncContext, SyncSettings, SyncStats, UpsertResult
from orchestrator.state_store import StateStore
from orchestrator.sync_report import SyncReport

logger = logging.getLogger('bookstack_wikijs_sync.orchestrator.sync_orchestrator')


# Errors that abort the run before the state file is written
FATAL_ERRORS = (SourceAuthenticationError, WikiJsConnectionError)


class SyncOrchestrator:
    """Central coordinator owning the run's sync state and statistics."""

    def __init__(
        self,
        source,
        target,
        state_store: StateStore,
        settings: Optional[SyncSettings] = None,
        cancel_event: Optional[threading.Event] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize sync orchestrator.

        Args:
            source: SourceContentPort implementation (BookStack)
            target: TargetWikiPort implementation (Wiki.js)
            state_store: Store the sync state is loaded from and saved to
            settings: Run settings
            cancel_event: Event checked between items for cooperative cancellation
            logger: Optional logger instance
        """
        self.source = source
        self.target = target
        self.state_store = state_store
        self.settings = settings or SyncSettings()
        self.cancel_event = cancel_event or threading.Event()
        self.logger = logger or logging.getLogger('bookstack_wikijs_sync.orchestrator.sync_orchestrator')

        self.hierarchy_loader = HierarchyLoader()
        self.path_resolver = PathResolver(self.settings.separator)
        self.asset_engine = AssetSyncEngine()
        self.upsert_engine = PageUpsertEngine()
        self.user_mapper = UserMapper()
        self.report_generator = SyncReport()

        self.context: Optional[SyncContext] = None
        self.report: Dict[str, Any] = {}

    @classmethod
    def from_config(cls, config: Dict[str, Any], cancel_event: Optional[threading.Event] = None) -> 'SyncOrchestrator':
        """Build the orchestrator with real BookStack and Wiki.js clients."""
        return cls(
            source=BookStackClient.from_config(config),
            target=WikiJsClient.from_config(config),
            state_store=StateStore(config.get('sync', {}).get('state_path', './sync-state.json')),
            settings=SyncSettings.from_config(config),
            cancel_event=cancel_event
        )

    def run(self) -> Dict[str, Any]:
        """
        Execute a full sync run.

        Fatal errors are logged and counted; they end the run without writing
        the state file. Item-level failures are counted and the run continues.

        Returns:
            Report dictionary (see ``SyncReport.generate_report``)
        """
        start_time = time.time()
        started_at = datetime.now(timezone.utc).isoformat()

        log_section("Loading sync state")
        stats = SyncStats()
        self.context = SyncContext(
            source=self.source,
            target=self.target,
            state=self.state_store.load(),
            stats=stats,
            settings=self.settings,
            cancel_event=self.cancel_event
        )

        if self.settings.dry_run:
            self.logger.warning("DRY RUN: no pages or assets will be written to Wiki.js")

        try:
            self._preflight()

            log_section("Loading BookStack hierarchy")
            tree = self.hierarchy_loader.load(self.context)

            log_section("Mapping users")
            self.user_mapper.prepare(self.context, tree.users)

            log_section("Syncing assets")
            self._sync_assets()

            log_section("Syncing pages")
            self._sync_pages(tree)
        except FATAL_ERRORS as e:
            self.logger.error(f"Sync aborted: {e}")
            stats.increment('errors')
            return self._finish(start_time, 'failed')

        status = 'cancelled' if self.context.cancelled else 'completed'
        self._persist_state(started_at)
        return self._finish(start_time, status)

    def _preflight(self) -> None:
        """Check the target is reachable before any work is done."""
        self.logger.info("Checking Wiki.js connection")
        self.target.check_connection()

    def _sync_assets(self) -> None:
        context = self.context
        assets = self.asset_engine.enumerate_assets(context)
        if context.cancelled:
            return

        with ProgressTracker(len(assets), "assets") as tracker:
            errors_before = context.stats.errors
            results = self.asset_engine.sync_all(context, assets)
            failed = context.stats.errors - errors_before
            for _ in range(len(results) - failed):
                tracker.increment(True)
            for _ in range(failed):
                tracker.increment(False)

    def resolve_pages(self, tree: HierarchyTree) -> List[Tuple[ResolvedPath, Page]]:
        """Resolve every page's path and return the pairs shallowest first."""
        resolved = [(self.path_resolver.resolve(page), page) for page in tree.pages]

        seen: Dict[str, int] = {}
        for path, page in resolved:
            if path.path in seen:
                self.logger.warning(
                    f"Pages {seen[path.path]} and {page.id} resolve to the same path '{path.path}'"
                )
            else:
                seen[path.path] = page.id

        return order_by_depth(resolved)

    def _sync_pages(self, tree: HierarchyTree) -> None:
        context = self.context
        ordered = self.resolve_pages(tree)
        transformer = ContentTransformer(context.state.asset_map)

        with ProgressTracker(len(ordered), "pages") as tracker:
            for path, page in tqdm(ordered, desc="Syncing pages", unit="page",
                                   disable=not self.settings.progress_bars):
                if context.cancelled:
                    self.logger.warning("Cancellation requested, stopping page sync")
                    break

                try:
                    content = transformer.transform(page.content)
                    result = self.upsert_engine.upsert(
                        context,
                        path,
                        page,
                        content,
                        author_id=self.user_mapper.identity_for(context, page.updated_by),
                        creator_id=self.user_mapper.identity_for(context, page.created_by)
                    )
                except Exception as e:
                    self.logger.error(f"Failed to sync page {page.id} '{page.title}' at {path.path}: {e}")
                    context.stats.increment('errors')
                    tracker.increment(False)
                    continue

                if result == UpsertResult.CREATED:
                    context.stats.increment('pages_created')
                else:
                    context.stats.increment('pages_updated')
                tracker.increment(True)

    def _persist_state(self, started_at: str) -> None:
        """Write the state file once at the end of the run."""
        if self.settings.dry_run:
            self.logger.info("[DRY RUN] Sync state not written")
            return

        # Incremental runs skip pages older than last_sync, so it only advances
        # once every page of a run has reached Wiki.js.
        if self.context.stats.errors == 0 and not self.context.cancelled:
            self.context.state.last_sync = started_at
        else:
            self.logger.warning(
                f"Run incomplete, keeping last sync time {self.context.state.last_sync}"
            )
        try:
            self.state_store.save(self.context.state)
        except OSError as e:
            self.logger.error(f"Failed to save sync state: {e}")
            self.context.stats.increment('errors')

    def _finish(self, start_time: float, status: str) -> Dict[str, Any]:
        self.report = self.report_generator.generate_report(
            self.context.stats,
            time.time() - start_time,
            dry_run=self.settings.dry_run,
            state=self.context.state,
            status=status
        )
        self.logger.info(f"Sync {status}: {self.context.stats.to_dict()}")
        return self.report


__all__ = ['SyncOrchestrator', 'FATAL_ERRORS']
