"""
Process-wide store connection for entodm.

One store is active per process. init() establishes it, close() releases
it, and every entity operation looks it up through get_store().

Calling init() while a store is active re-initializes: the new store is
connected first, swapped in, and the previous one is closed.

Example:
    >>> await init("mongodb://localhost:27017/blog")
    >>> post = await Post.find_one({"title": "Hello"})
    >>> await close()
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from .config import OdmSettings, redact_url
from .errors import NotInitializedError
from .store.base import DocumentCollection, DocumentStore, create_store

logger = logging.getLogger(__name__)

_active_store: DocumentStore | None = None
_store_lock = threading.Lock()


async def init(
    connection_string: str | None = None,
    *,
    store: DocumentStore | None = None,
    settings: OdmSettings | None = None,
    **client_options: Any,
) -> DocumentStore:
    """Connect and install the process-wide store.

    Args:
        connection_string: MongoDB URL (overrides settings.url)
        store: Ready-made store to install instead of building one
        settings: Settings (loaded from ENTODM_* env vars if omitted)
        **client_options: Extra driver options

    Returns:
        The active, connected store

    Raises:
        StoreConnectionError: If the store cannot connect
    """
    global _active_store

    if store is None:
        settings = settings or OdmSettings()
        if connection_string is not None:
            settings = settings.model_copy(update={"url": connection_string})
        store = create_store(settings, **client_options)
        target = redact_url(settings.url)
    else:
        target = type(store).__name__

    await store.connect()

    with _store_lock:
        previous, _active_store = _active_store, store

    if previous is not None and previous is not store:
        logger.warning("Store re-initialized, closing previous store", extra={"target": target})
        await previous.close()

    logger.info("Document store initialized", extra={"target": target})
    return store


async def close() -> None:
    """Close and uninstall the active store (no-op if none)."""
    global _active_store

    with _store_lock:
        store, _active_store = _active_store, None

    if store is not None:
        await store.close()
        logger.info("Document store closed")


def get_store() -> DocumentStore:
    """Get the active store.

    Raises:
        NotInitializedError: If init() has not been called
    """
    store = _active_store
    if store is None:
        raise NotInitializedError()
    return store


def is_initialized() -> bool:
    """Whether a store is active."""
    return _active_store is not None


def get_collection(name: str) -> DocumentCollection:
    """Collection of the active store."""
    return get_store().collection(name)
