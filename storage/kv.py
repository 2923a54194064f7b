"""
Local key-value persistence.

Each key holds one JSON document in the kv_entries table.  This is the
on-device store for user profile, favourites, recent searches, settings and
notifications; the journey model itself never reads or writes it.
"""

import json
import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from db.models import KeyValueEntry

logger = logging.getLogger(__name__)

USER_PROFILE = "user_profile"
FAVORITES = "user_favorites"
RECENT_SEARCHES = "recent_searches"
APP_SETTINGS = "app_settings"
NOTIFICATIONS = "user_notifications"
NOTIFICATION_SETTINGS = "notification_settings"


class KeyValueStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, key: str) -> Any:
        """Stored JSON value for key, or None if the key is absent."""
        entry = self.session.get(KeyValueEntry, key)
        if entry is None:
            return None
        return json.loads(entry.value)

    def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        entry = self.session.get(KeyValueEntry, key)
        if entry is None:
            entry = KeyValueEntry(key=key)
            self.session.add(entry)
        entry.value = payload
        entry.updated_at = datetime.utcnow().isoformat()
        self.session.commit()
        logger.debug("Stored %s (%d bytes).", key, len(payload))

    def remove(self, key: str) -> None:
        entry = self.session.get(KeyValueEntry, key)
        if entry is not None:
            self.session.delete(entry)
            self.session.commit()
            logger.debug("Removed %s.", key)
