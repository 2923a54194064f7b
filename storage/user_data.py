"""
User preferences kept in the local key-value store: favourite trains,
recent searches, app settings and the (mock) user profile.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from config import DEFAULT_CURRENCY, MAX_RECENT_SEARCHES
from formatting.currency import SUPPORTED_CURRENCIES
from storage.kv import (
    APP_SETTINGS,
    FAVORITES,
    RECENT_SEARCHES,
    USER_PROFILE,
    KeyValueStore,
)

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: dict[str, Any] = {
    "currency": DEFAULT_CURRENCY,
    "language": "en",
    "darkMode": False,
}


# ---------------------------------------------------------------------------
# Favourites
# ---------------------------------------------------------------------------

def get_favorites(store: KeyValueStore) -> list[str]:
    return store.get(FAVORITES) or []


def add_favorite(store: KeyValueStore, train_id: str) -> list[str]:
    favorites = get_favorites(store)
    if train_id not in favorites:
        favorites.append(train_id)
        store.set(FAVORITES, favorites)
    return favorites


def remove_favorite(store: KeyValueStore, train_id: str) -> list[str]:
    favorites = [f for f in get_favorites(store) if f != train_id]
    store.set(FAVORITES, favorites)
    return favorites


# ---------------------------------------------------------------------------
# Recent searches
# ---------------------------------------------------------------------------

def get_recent_searches(store: KeyValueStore) -> list[dict[str, Any]]:
    return store.get(RECENT_SEARCHES) or []


def save_recent_search(
    store: KeyValueStore,
    source: str,
    destination: str,
    journey_date: Optional[str] = None,
    now: Optional[datetime] = None,
) -> list[dict[str, Any]]:
    """Newest first, one entry per (source, destination), at most MAX_RECENT_SEARCHES."""
    search = {
        "source": source,
        "destination": destination,
        "date": journey_date,
        "timestamp": (now or datetime.utcnow()).isoformat(),
    }
    searches = [
        s for s in get_recent_searches(store)
        if not (s["source"] == source and s["destination"] == destination)
    ]
    searches.insert(0, search)
    searches = searches[:MAX_RECENT_SEARCHES]
    store.set(RECENT_SEARCHES, searches)
    return searches


# ---------------------------------------------------------------------------
# Settings & profile
# ---------------------------------------------------------------------------

def get_settings(store: KeyValueStore) -> dict[str, Any]:
    return {**DEFAULT_SETTINGS, **(store.get(APP_SETTINGS) or {})}


def update_settings(store: KeyValueStore, changes: dict[str, Any]) -> dict[str, Any]:
    """
    Merge `changes` into the stored settings.

    Raises:
        ValueError: if a currency change names an unsupported currency.
    """
    if "currency" in changes:
        code = str(changes["currency"]).upper()
        if code not in SUPPORTED_CURRENCIES:
            raise ValueError(
                f"Unsupported currency {changes['currency']!r}; "
                f"expected one of {', '.join(SUPPORTED_CURRENCIES)}."
            )
        changes = {**changes, "currency": code}
    settings = {**get_settings(store), **changes}
    store.set(APP_SETTINGS, settings)
    logger.info("Settings updated: %s", sorted(changes))
    return settings


def get_profile(store: KeyValueStore) -> Optional[dict[str, Any]]:
    return store.get(USER_PROFILE)


def save_profile(store: KeyValueStore, profile: dict[str, Any]) -> dict[str, Any]:
    store.set(USER_PROFILE, profile)
    return profile
