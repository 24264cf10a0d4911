from __future__ import annotations

import threading
from typing import Optional, Union
from urllib.parse import urlparse, urlunparse

from chirpauth.config import Settings, get_settings, reset_settings_cache
from chirpauth.logging import get_logger
from chirpauth.service.auth import AuthService
from chirpauth.storage.memory import MemoryStore
from chirpauth.storage.postgres import PostgresStore

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Mask password in URL for safe logging.

    Example: postgresql://app:secret@db:5432/chirpy -> postgresql://app:***@db:5432/chirpy
    """
    if not url:
        return url
    try:
        parsed = urlparse(url)
        if parsed.password:
            netloc = parsed.hostname or ""
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            if parsed.username:
                netloc = f"{parsed.username}:***@{netloc}"
            else:
                netloc = f":***@{netloc}"
            return urlunparse((
                parsed.scheme,
                netloc,
                parsed.path,
                parsed.params,
                parsed.query,
                parsed.fragment,
            ))
        return url
    except ValueError:
        return "***url_parse_error***"


class Runtime:
    """Holds the settings, store and auth service shared by the FastAPI app."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        store_type = "memory" if self.settings.use_memory_store else "postgres"
        logger.info(
            "runtime_init_started",
            store_type=store_type,
            platform=self.settings.platform,
        )

        try:
            self.store: Union[MemoryStore, PostgresStore] = (
                MemoryStore(fs_root=self.settings.shared_fs_root)
                if self.settings.use_memory_store
                else PostgresStore(self.settings.database_url)
            )
            logger.info(
                "runtime_store_initialized",
                store_type=store_type,
                database_url=None
                if self.settings.use_memory_store
                else _mask_url_password(self.settings.database_url),
            )
        except Exception as exc:
            logger.error(
                "runtime_store_init_failed",
                store_type=store_type,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise

        self.auth = AuthService(self.store, self.settings)

    def close(self) -> None:
        self.store.close()


runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton in a thread-safe manner.

    Uses double-checked locking: the unlocked read is the fast path, the locked
    re-check prevents two threads from building a runtime at once.
    """
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def reset_runtime_for_tests() -> Runtime:
    """Reinitialize the runtime singleton from a fresh read of the environment."""

    global runtime

    with _runtime_lock:
        if runtime is not None:
            runtime.close()
        reset_settings_cache()
        runtime = Runtime()
        return runtime
