"""Shared behavior of the local-first stores.

A store owns the in-memory snapshot of one entity family. Every mutation is
applied to memory synchronously, the whole snapshot is then written to
on-device storage, and the matching remote call is queued on a
``BackgroundSync``. Remote failures never reach the caller.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from ..local_storage import LocalStorage
from ..observability import log as obs_log
from ..sync import BackgroundSync

logger = logging.getLogger(__name__)

ReconcileListener = Callable[[str, str], None]


class LocalStore:
    """In-memory snapshot with on-device persistence and sync bookkeeping."""

    storage_key: str = ""
    label: str = "store"

    def __init__(
        self,
        storage: Optional[LocalStorage] = None,
        sync: Optional[BackgroundSync] = None,
    ):
        self.storage = storage
        self.sync = sync or BackgroundSync(self.label)
        self.is_loaded = False
        self.is_syncing = False
        self.sync_error: Optional[str] = None

    def snapshot(self) -> dict[str, Any]:
        """JSON-ready copy of the store's data."""
        raise NotImplementedError

    def restore(self, data: dict[str, Any]) -> None:
        """Replace the store's data with a previously persisted snapshot."""
        raise NotImplementedError

    def after_load(self) -> None:
        """Hook run once the on-device snapshot has been read."""

    def persist(self) -> None:
        """Write the current snapshot to on-device storage in the background.

        The JSON is captured now, so later mutations cannot leak into this
        write, and writes for one store land in call order.
        """
        if self.storage is None:
            return
        payload = json.dumps(self.snapshot())
        storage = self.storage
        key = self.storage_key
        self.sync.submit(
            f"snapshot:{key}",
            f"persist {self.label}",
            lambda: storage.aset_item(key, payload),
        )

    async def load(self) -> None:
        """Rehydrate from on-device storage and mark the store loaded.

        An unreadable snapshot is logged and the in-memory defaults are kept.
        """
        if self.storage is not None:
            raw = await self.storage.aget_item(self.storage_key)
            if raw:
                try:
                    self.restore(json.loads(raw))
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning(f"Ignoring unreadable {self.label} snapshot: {e}")
                    obs_log("store.restore_failed", store=self.label, error=str(e))
        self.is_loaded = True
        self.after_load()

    async def _refresh(
        self,
        fetch: Callable[[], Awaitable[Any]],
        apply: Callable[[Any], None],
    ) -> bool:
        """Run a full-refresh fetch; on failure keep the snapshot and record the error."""
        self.is_syncing = True
        self.sync_error = None
        try:
            result = await fetch()
        except Exception as e:
            self.sync_error = str(e) or e.__class__.__name__
            self.is_syncing = False
            logger.warning(f"{self.label}: fetch from server failed: {self.sync_error}")
            obs_log("sync.fetch", store=self.label, status="error", error=self.sync_error)
            return False

        apply(result)
        self.is_syncing = False
        self.persist()
        obs_log("sync.fetch", store=self.label, status="success")
        return True

    def _remote_missing(self) -> bool:
        self.sync_error = "Remote sync is not configured"
        logger.info(f"{self.label}: {self.sync_error}")
        return False


class ReconcilingStore(LocalStore):
    """Store whose records are created under temporary ids.

    After a successful remote create the record is re-keyed to the server id
    and an alias temp id -> server id is kept. Queries by a temporary id find
    nothing once reconciled, but mutations called with one are redirected to
    the reconciled record, and queued remote calls resolve the id when they
    start. All remote work for one entity shares a queue key derived from the
    id it was created under.
    """

    def __init__(
        self,
        storage: Optional[LocalStorage] = None,
        sync: Optional[BackgroundSync] = None,
    ):
        super().__init__(storage, sync)
        self._aliases: dict[str, str] = {}
        self._origins: dict[str, str] = {}
        self._listeners: list[ReconcileListener] = []

    @property
    def remote_enabled(self) -> bool:
        return getattr(self, "remote", None) is not None

    def resolve_id(self, entity_id: str) -> str:
        """Follow temp-id aliases to the id the record lives under now."""
        seen = set()
        while entity_id in self._aliases and entity_id not in seen:
            seen.add(entity_id)
            entity_id = self._aliases[entity_id]
        return entity_id

    def queue_key(self, entity_id: str) -> str:
        current = self.resolve_id(entity_id)
        return f"{self.label}:{self._origins.get(current, current)}"

    def add_reconcile_listener(self, listener: ReconcileListener) -> None:
        """Call ``listener(temp_id, server_id)`` whenever a record is re-keyed."""
        self._listeners.append(listener)

    def _record_alias(self, temp_id: str, server_id: str) -> None:
        if temp_id == server_id:
            return
        self._aliases[temp_id] = server_id
        self._origins[server_id] = self._origins.get(temp_id, temp_id)

    def _notify_reconciled(self, temp_id: str, server_id: str) -> None:
        for listener in self._listeners:
            listener(temp_id, server_id)

    def _mirror(
        self,
        entity_id: str,
        label: str,
        call: Callable[[str], Awaitable[Any]],
        on_success: Optional[Callable[[Any], None]] = None,
    ) -> None:
        """Queue ``call(current_id)`` for one entity when a remote is configured."""
        if not self.remote_enabled:
            return
        self.sync.submit(
            self.queue_key(entity_id),
            label,
            lambda: call(self.resolve_id(entity_id)),
            on_success,
        )
