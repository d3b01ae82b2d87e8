"""Process-wide engine instance shared by the API routes.

The paper environment is in-memory; outcomes are additionally recorded to the
database when DATABASE_URL is set.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from flashlev.execution.paper import PaperEnvironment, build_paper_environment
from flashlev.storage import OperationStore, StorageConfig

logger = logging.getLogger(__name__)

_environment: PaperEnvironment | None = None
_store: OperationStore | None = None
_lock = threading.Lock()


def get_store() -> Optional[OperationStore]:
    """Get or initialize the operation store (None without DATABASE_URL)."""
    global _store
    if _store is None:
        config = StorageConfig.from_env()
        if config is None:
            return None
        _store = OperationStore(config=config)
        _store.create_schema()
    return _store


def get_environment() -> PaperEnvironment:
    """Get or initialize the paper engine."""
    global _environment
    with _lock:
        if _environment is None:
            _environment = build_paper_environment(recorder=get_store())
            logger.info("Paper engine initialized for asset %s", _environment.config.addresses.asset)
        return _environment


def reset() -> None:
    """Drop the shared engine and store (used by tests)."""
    global _environment, _store
    with _lock:
        _environment = None
        _store = None
