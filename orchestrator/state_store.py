"""
JSON persistence for the sync state record.

The state file is read in full once at run start and written in full once at
run end by replacing the previous file.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from models import SyncState

logger = logging.getLogger('bookstack_wikijs_sync.orchestrator.state_store')


DEFAULT_STATE_PATH = "./sync-state.json"


class StateStore:
    """Loads and saves ``SyncState`` as a JSON document."""

    def __init__(self, path: Union[str, Path] = DEFAULT_STATE_PATH, logger: Optional[logging.Logger] = None):
        self.path = Path(path)
        self.logger = logger or logging.getLogger('bookstack_wikijs_sync.orchestrator.state_store')

    def load(self) -> SyncState:
        """
        Read the state file.

        Returns:
            The stored state, or a fresh state if the file is missing or unreadable
        """
        if not self.path.exists():
            self.logger.info(f"No sync state at {self.path}, starting fresh")
            return SyncState()

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.warning(f"Could not read sync state {self.path}: {e}. Starting fresh")
            return SyncState()

        if not isinstance(data, dict):
            self.logger.warning(f"Sync state {self.path} is not a JSON object. Starting fresh")
            return SyncState()

        state = SyncState.from_dict(data)
        self.logger.info(
            f"Loaded sync state from {self.path}: {len(state.page_map)} pages, "
            f"{len(state.asset_map)} assets, {len(state.user_map)} users "
            f"(last sync: {state.last_sync or 'never'})"
        )
        return state

    def save(self, state: SyncState) -> None:
        """
        Write the full state, replacing the previous file.

        Raises:
            OSError: If the file cannot be written
        """
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=str(directory), prefix=f".{self.path.name}.", suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(state.to_dict(), f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

        self.logger.info(f"Sync state saved to {self.path}")


__all__ = ['StateStore', 'DEFAULT_STATE_PATH']
