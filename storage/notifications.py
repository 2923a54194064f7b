"""
In-app notifications, stored newest first under a single key.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from storage.kv import NOTIFICATION_SETTINGS, NOTIFICATIONS, KeyValueStore

logger = logging.getLogger(__name__)

BOOKING_CONFIRMATION = "booking_confirmation"
TRIP_REMINDER = "trip_reminder"
DELAY_ALERT = "delay_alert"
PRICE_CHANGE = "price_change"
SYSTEM = "system"

NOTIFICATION_TYPES = (BOOKING_CONFIRMATION, TRIP_REMINDER, DELAY_ALERT, PRICE_CHANGE, SYSTEM)

DEFAULT_NOTIFICATION_SETTINGS: dict[str, bool] = {
    "enabled": True,
    "bookingAlerts": True,
    "delayAlerts": True,
    "priceAlerts": True,
    "systemAlerts": True,
    "vibrate": True,
    "sound": True,
}


def get_notifications(store: KeyValueStore) -> list[dict[str, Any]]:
    return store.get(NOTIFICATIONS) or []


def add_notification(
    store: KeyValueStore,
    type: str,
    title: str,
    message: str,
    data: Optional[dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type {type!r}.")
    notification = {
        "id": uuid.uuid4().hex,
        "type": type,
        "title": title,
        "message": message,
        "data": data or {},
        "timestamp": (now or datetime.utcnow()).isoformat(),
        "read": False,
    }
    notifications = get_notifications(store)
    notifications.insert(0, notification)
    store.set(NOTIFICATIONS, notifications)
    logger.debug("Notification added: %s %r", type, title)
    return notification


def mark_as_read(store: KeyValueStore, notification_id: str) -> bool:
    """Returns False if no notification has that id."""
    notifications = get_notifications(store)
    found = False
    for n in notifications:
        if n["id"] == notification_id:
            n["read"] = True
            found = True
    if found:
        store.set(NOTIFICATIONS, notifications)
    return found


def mark_all_as_read(store: KeyValueStore) -> int:
    notifications = get_notifications(store)
    changed = sum(1 for n in notifications if not n["read"])
    for n in notifications:
        n["read"] = True
    store.set(NOTIFICATIONS, notifications)
    return changed


def delete_notification(store: KeyValueStore, notification_id: str) -> bool:
    notifications = get_notifications(store)
    remaining = [n for n in notifications if n["id"] != notification_id]
    if len(remaining) == len(notifications):
        return False
    store.set(NOTIFICATIONS, remaining)
    return True


def clear_notifications(store: KeyValueStore) -> None:
    store.remove(NOTIFICATIONS)


def unread_count(store: KeyValueStore) -> int:
    return sum(1 for n in get_notifications(store) if not n["read"])


def get_notification_settings(store: KeyValueStore) -> dict[str, bool]:
    return {**DEFAULT_NOTIFICATION_SETTINGS, **(store.get(NOTIFICATION_SETTINGS) or {})}


def save_notification_settings(store: KeyValueStore, changes: dict[str, bool]) -> dict[str, bool]:
    unknown = set(changes) - set(DEFAULT_NOTIFICATION_SETTINGS)
    if unknown:
        raise ValueError(f"Unknown notification settings: {sorted(unknown)}.")
    settings = {**get_notification_settings(store), **changes}
    store.set(NOTIFICATION_SETTINGS, settings)
    return settings
