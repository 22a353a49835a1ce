"""
Maps BookStack users to Wiki.js users by email address.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from models import SyncContext


logger = logging.getLogger('bookstack_wikijs_sync.importers.user_mapper')


def resolve_identity(candidate: Optional[int], default_id: Optional[int]) -> Optional[int]:
    """
    Pick the target identity for a piece of content.

    Precedence: the mapped candidate, then the default identity. None means
    no identity is sent and Wiki.js applies the API key's owner.
    """
    if candidate is not None:
        return candidate
    return default_id


def _index_by_email(users: List[Dict[str, Any]]) -> Dict[str, int]:
    return {
        user['email'].strip().lower(): user['id']
        for user in users
        if user.get('email') and user.get('id') is not None
    }


class UserMapper:
    """Resolves creator/updater identities for synced pages."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('bookstack_wikijs_sync.importers.user_mapper')
        self.default_user_id: Optional[int] = None

    def prepare(self, context: SyncContext, user_ids: Iterable[int]) -> Dict[str, int]:
        """
        Resolve the default identity and map every source user id.

        Results are cached in ``state.user_map``. Lookup failures count a user
        mapping error and fall back to the default identity.

        Returns:
            The user map (source user id -> target user id)
        """
        settings = context.settings
        need_users = not settings.skip_user_mapping or (
            settings.default_user_id is None and settings.default_user_email
        )
        target_users = self._list_target_users(context) if need_users else {}

        self.default_user_id = self._resolve_default(context, target_users)
        context.state.default_user_id = self.default_user_id

        if settings.skip_user_mapping:
            self.logger.info(f"User mapping skipped, using default identity {self.default_user_id}")
            return context.state.user_map

        for user_id in sorted(set(user_ids)):
            if context.cancelled:
                break
            if str(user_id) in context.state.user_map:
                continue
            self._map_user(context, user_id, target_users)

        self.logger.info(f"Mapped {len(context.state.user_map)} users (default identity: {self.default_user_id})")
        return context.state.user_map

    def identity_for(self, context: SyncContext, source_user_id: Optional[int]) -> Optional[int]:
        """Target identity for a source user id."""
        candidate = None
        if source_user_id is not None and not context.settings.skip_user_mapping:
            candidate = context.state.user_map.get(str(source_user_id))
        return resolve_identity(candidate, self.default_user_id)

    def _list_target_users(self, context: SyncContext) -> Dict[str, int]:
        try:
            return _index_by_email(context.target.list_users())
        except Exception as e:
            self.logger.warning(f"Could not list Wiki.js users: {e}")
            context.stats.increment('user_mapping_errors')
            return {}

    def _resolve_default(self, context: SyncContext, target_users: Dict[str, int]) -> Optional[int]:
        settings = context.settings
        if settings.default_user_id is not None:
            return int(settings.default_user_id)

        if settings.default_user_email:
            default_id = target_users.get(settings.default_user_email.strip().lower())
            if default_id is not None:
                return default_id
            self.logger.warning(f"Default user '{settings.default_user_email}' not found in Wiki.js")

        return context.state.default_user_id

    def _map_user(self, context: SyncContext, user_id: int, target_users: Dict[str, int]) -> None:
        try:
            source_user = context.source.get_user(user_id)
        except Exception as e:
            self.logger.warning(f"Failed to fetch BookStack user {user_id}: {e}")
            context.stats.increment('user_mapping_errors')
            return

        email = (source_user.get('email') or '').strip().lower()
        target_id = target_users.get(email) if email else None
        if target_id is None:
            self.logger.warning(
                f"No Wiki.js user for BookStack user {user_id} ({email or 'no email'}), using default identity"
            )
            return

        context.state.user_map[str(user_id)] = target_id
        self.logger.debug(f"Mapped BookStack user {user_id} -> Wiki.js user {target_id}")


__all__ = ['UserMapper', 'resolve_identity']
