from __future__ import annotations
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
import logging

from .annotations import Annotation, SyncStatus
from .events import EventEmitter, EventType

logger = logging.getLogger(__name__)

# Fields a patch may never touch; ids and status change only through acknowledgements
_IMMUTABLE_FIELDS = {"id", "created_at", "document_id", "sync_status"}
_GEOMETRY_FIELDS = {"x", "y", "width", "height"}


class AnnotationStore:
    """In-memory ordered collection of annotations with per-record sync status.

    Records are treated as values: every mutation swaps in a new ``Annotation``
    so objects handed out by ``list()``/``get()`` never change under the caller.

    Each record carries a revision counter bumped on every local edit. The
    sync engine captures revisions with ``snapshot()`` and passes them back to
    ``mark_synced`` so an acknowledgement for an older state does not hide an
    edit made while the request was in flight.
    """

    def __init__(self, events: Optional[EventEmitter] = None):
        self.events = events if events is not None else EventEmitter()
        self._records: List[Annotation] = []
        self._revisions: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, annotation_id: object) -> bool:
        return annotation_id in self._revisions

    def _index_of(self, annotation_id: str) -> Optional[int]:
        for i, rec in enumerate(self._records):
            if rec.id == annotation_id:
                return i
        return None

    def get(self, annotation_id: str) -> Optional[Annotation]:
        idx = self._index_of(annotation_id)
        return self._records[idx] if idx is not None else None

    def list(self) -> List[Annotation]:
        return list(self._records)

    def revision(self, annotation_id: str) -> Optional[int]:
        return self._revisions.get(annotation_id)

    def add(self, record: Annotation) -> Annotation:
        if record.id in self._revisions:
            raise ValueError(f"Duplicate annotation id: {record.id}")
        rec = record.model_copy()
        self._records.append(rec)
        self._revisions[rec.id] = 0
        self.events.emit(EventType.ANNOTATION_ADDED, {"id": rec.id, "record": rec})
        return rec

    def update(self, annotation_id: str, patch: Mapping[str, Any]) -> Optional[Annotation]:
        idx = self._index_of(annotation_id)
        if idx is None:
            # Tolerates acknowledgements and edits arriving after a delete
            return None
        bad = _IMMUTABLE_FIELDS.intersection(patch)
        if bad:
            raise ValueError(f"Cannot patch immutable field(s): {sorted(bad)}")
        current = self._records[idx]
        if not patch:
            return current
        merged = current.model_dump()
        unknown = set(patch) - set(merged)
        if unknown:
            raise ValueError(f"Unknown annotation field(s): {sorted(unknown)}")
        merged.update(patch)
        if _GEOMETRY_FIELDS.intersection(patch):
            merged.update(_normalized_box(merged))
        if current.sync_status != SyncStatus.LOCAL:
            merged["sync_status"] = SyncStatus.DIRTY
        rec = Annotation.model_validate(merged)
        self._records[idx] = rec
        self._revisions[rec.id] += 1
        self.events.emit(EventType.ANNOTATION_UPDATED, {"id": rec.id, "record": rec, "patch": dict(patch)})
        return rec

    def remove(self, annotation_id: str) -> Optional[Annotation]:
        idx = self._index_of(annotation_id)
        if idx is None:
            return None
        rec = self._records.pop(idx)
        del self._revisions[annotation_id]
        self.events.emit(EventType.ANNOTATION_REMOVED, {"id": annotation_id, "record": rec})
        return rec

    def mark_synced(self, ids: Iterable[str], revisions: Optional[Mapping[str, int]] = None) -> List[str]:
        """Status-only acknowledgement. Idempotent; unknown ids are skipped.

        With ``revisions``, records whose revision moved on since the snapshot stay unsynced.
        """
        changed: List[str] = []
        for annotation_id in ids:
            idx = self._index_of(annotation_id)
            if idx is None:
                continue
            if revisions is not None and revisions.get(annotation_id) != self._revisions[annotation_id]:
                continue
            rec = self._records[idx]
            if rec.sync_status == SyncStatus.SYNCED:
                continue
            self._records[idx] = rec.model_copy(update={"sync_status": SyncStatus.SYNCED})
            changed.append(annotation_id)
        if changed:
            self.events.emit(EventType.SYNC_STATUS_CHANGED, {"ids": changed, "status": SyncStatus.SYNCED})
        return changed

    def replace_id(self, old_id: str, new_id: str) -> bool:
        """Swap a temporary id for the server-issued one, keeping position, revision and status."""
        idx = self._index_of(old_id)
        if idx is None:
            return False
        if old_id == new_id:
            return True
        if new_id in self._revisions:
            logger.warning("Server id %s already present locally; keeping %s", new_id, old_id)
            return False
        rec = self._records[idx]
        self._records[idx] = rec.model_copy(update={"id": new_id})
        self._revisions[new_id] = self._revisions.pop(old_id)
        self.events.emit(EventType.ANNOTATION_REKEYED, {"old_id": old_id, "new_id": new_id})
        return True

    def assign_document(self, document_id: Optional[str]):
        """Attach every record to a (newly persisted) document without counting it as an edit."""
        self._records = [r.model_copy(update={"document_id": document_id}) for r in self._records]

    def load(self, records: Iterable[Annotation]):
        """Replace the contents with server state; everything loaded counts as synced."""
        self._records = [r.model_copy(update={"sync_status": SyncStatus.SYNCED}) for r in records]
        self._revisions = {r.id: 0 for r in self._records}
        self.events.emit(EventType.ANNOTATIONS_LOADED, {"count": len(self._records)})

    def snapshot(self) -> Tuple[List[Annotation], Dict[str, int]]:
        return [r.model_copy() for r in self._records], dict(self._revisions)


def _normalized_box(fields: Mapping[str, Any]) -> Dict[str, float]:
    x, y, w, h = fields["x"], fields["y"], fields["width"], fields["height"]
    if w < 0:
        x, w = x + w, -w
    if h < 0:
        y, h = y + h, -h
    return {"x": x, "y": y, "width": w, "height": h}
