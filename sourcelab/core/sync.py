"""
Client/server reconciliation for one document's annotations.

Two independent channels and no merge protocol:

* per-operation: create and delete go out immediately (persisted documents only);
* bulk snapshot: every local edit restarts a debounce timer, and when it
  elapses the complete annotation list replaces whatever the server holds.

The bulk channel is an authoritative overwrite: edits made by another client
session since our last load are lost when we sync (last bulk sync wins).

Remote calls are blocking (requests), so each one runs in a worker thread via
``asyncio.to_thread``, one at a time since the client shares a single
session. Bulk syncs are also serialized end to end. Payloads are built from a store snapshot on the loop
thread before the call, and acknowledgements are applied back on the loop
thread after it, so the store is only ever touched from one thread.
"""

from __future__ import annotations
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Optional, Protocol, Set
import asyncio
import logging

from .annotations import Annotation, SyncStatus, utcnow
from .errors import SourceLabError
from .events import AnnotationEvent, EventType, MUTATION_EVENTS
from .store import AnnotationStore
from .timer import CallLater, DebounceTimer

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 2000


class RemoteAnnotations(Protocol):
    """The slice of the REST API the sync engine needs (see ``ApiClient``)."""

    def create_annotation(self, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    def delete_annotation(self, annotation_id: str) -> None: ...

    def sync_annotations(self, document_id: str, annotations: List[Dict[str, Any]]) -> int: ...


class SyncEngine:
    def __init__(
        self,
        store: AnnotationStore,
        remote: RemoteAnnotations,
        document_id: Optional[str] = None,
        debounce_ms: float = DEFAULT_DEBOUNCE_MS,
        call_later: Optional[CallLater] = None,
    ):
        self.store = store
        self.remote = remote
        self.document_id = document_id
        self.events = store.events
        self.timer = DebounceTimer(debounce_ms, self._on_debounce_elapsed, call_later)
        self.last_synced_at: Optional[datetime] = None
        self.error: Optional[str] = None  # message of the last failed bulk sync, cleared on success
        self._in_flight = 0
        self._tasks: Set[asyncio.Future] = set()
        # Bulk syncs run one at a time; every remote call is serialized because the client session is shared
        self._bulk_lock = asyncio.Lock()
        self._remote_lock = asyncio.Lock()
        self._closed = False
        self.events.on_many(MUTATION_EVENTS, self._on_store_mutation)

    # ---- state ----
    @property
    def is_syncing(self) -> bool:
        return self._in_flight > 0

    @property
    def has_error(self) -> bool:
        return self.error is not None

    @property
    def has_unsynced_changes(self) -> bool:
        return any(r.sync_status != SyncStatus.SYNCED for r in self.store.list())

    def set_document(self, document_id: Optional[str]):
        self.document_id = document_id
        if document_id is None:
            self.timer.cancel()

    # ---- per-operation channel ----
    def annotation_created(self, record: Annotation) -> Optional[asyncio.Future]:
        if self.document_id is None or self._closed:
            return None
        # Payload and revision are captured now; edits before the task runs must not be acknowledged
        payload = record.to_wire(exclude={"id"})
        payload["documentId"] = self.document_id
        return self._spawn(self._create(record.id, payload, self.store.revision(record.id)))

    def annotation_deleted(self, annotation_id: str) -> Optional[asyncio.Future]:
        if self.document_id is None or self._closed:
            return None
        return self._spawn(self._delete(annotation_id))

    async def _create(self, local_id: str, payload: Dict[str, Any], revision: Optional[int]):
        try:
            created = await self._call(self.remote.create_annotation, payload)
        except SourceLabError as e:
            # Record stays Local; the next bulk sync is its only way to the server
            logger.warning("Failed to create annotation %s: %s", local_id, e)
            return
        server_id = str(created["id"])
        if local_id not in self.store:
            logger.info("Annotation %s was deleted before the server acknowledged it; removing %s", local_id, server_id)
            await self._delete(server_id)
            return
        if self.store.replace_id(local_id, server_id):
            self.store.mark_synced([server_id], revisions={server_id: revision})

    async def _delete(self, annotation_id: str):
        try:
            await self._call(self.remote.delete_annotation, annotation_id)
        except SourceLabError as e:
            logger.warning("Failed to delete annotation %s: %s", annotation_id, e)

    # ---- bulk snapshot channel ----
    def _on_store_mutation(self, event: AnnotationEvent):
        if self._closed or self.document_id is None:
            return
        self.timer.schedule()

    def _on_debounce_elapsed(self):
        self._spawn(self._bulk_sync())

    async def sync_now(self) -> bool:
        """Manual save: drop any pending debounce and sync the full snapshot right away."""
        self.timer.cancel()
        return await self._bulk_sync()

    async def _bulk_sync(self) -> bool:
        # Snapshot is taken under the lock so a later sync never lands before an earlier one
        async with self._bulk_lock:
            document_id = self.document_id
            if document_id is None:
                return False
            records, revisions = self.store.snapshot()
            payload = []
            for rec in records:
                item = rec.to_wire()
                item["documentId"] = document_id
                payload.append(item)
            self._in_flight += 1
            self.events.emit(EventType.SYNC_STARTED, {"document_id": document_id, "count": len(payload)})
            try:
                count = await self._call(self.remote.sync_annotations, document_id, payload)
            except SourceLabError as e:
                logger.warning("Bulk sync of document %s failed: %s", document_id, e)
                self.error = str(e)
                self.events.emit(EventType.SYNC_FAILED, {"document_id": document_id, "error": self.error})
                return False
            finally:
                self._in_flight -= 1
            self.store.mark_synced([r.id for r in records], revisions=revisions)
            self.error = None
            self.last_synced_at = utcnow()
            logger.debug("Bulk sync of document %s stored %s annotation(s)", document_id, count)
            self.events.emit(EventType.SYNC_COMPLETED, {"document_id": document_id, "count": count})
            return True

    async def _call(self, fn, *args):
        async with self._remote_lock:
            return await asyncio.to_thread(fn, *args)

    # ---- lifecycle ----
    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Future:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self):
        """Wait for every in-flight remote call (including ones they start) to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def close(self):
        """Teardown: cancel the pending debounce so no stale sync fires after the view is gone."""
        self._closed = True
        self.timer.cancel()
        for et in MUTATION_EVENTS:
            self.events.off(et, self._on_store_mutation)
