from __future__ import annotations
import os, json, threading, logging, uuid
from typing import Dict, List, Optional
from .config import ServerSettings
from .models import Annotation, Document

logger = logging.getLogger(__name__)

_STORAGE_LOCK = threading.RLock()


class DocStore:
    """Documents and their annotations, persisted as one JSON index file."""

    def __init__(self, base: str = "storage"):
        self.base = base
        os.makedirs(self.base, exist_ok=True)
        self._docs: Dict[str, Document] = {}
        self._by_token: Dict[str, str] = {}
        self._load_index()

    def _index_path(self):
        return os.path.join(self.base, 'index.json')

    def _load_index(self):
        if not os.path.exists(self._index_path()):
            return
        with open(self._index_path(), 'r', encoding='utf-8') as f:
            data = json.load(f)
        for d in data:
            doc = Document.model_validate(d)
            self._docs[doc.id] = doc
            self._by_token[doc.share_token] = doc.id
        logger.info("Loaded %d document(s) from %s", len(self._docs), self._index_path())

    def _persist_index(self):
        tmp = self._index_path() + '.tmp'
        with open(tmp, 'w', encoding='utf-8') as f:
            json.dump([d.model_dump(mode='json', by_alias=True) for d in self._docs.values()], f, indent=2)
        os.replace(tmp, self._index_path())

    # ---- documents ----
    def create_document(self, doc: Document) -> Document:
        with _STORAGE_LOCK:
            while doc.share_token in self._by_token:
                # uuid4 collision; tokens are never reused
                doc = doc.model_copy(update={"share_token": str(uuid.uuid4())})
            self._docs[doc.id] = doc
            self._by_token[doc.share_token] = doc.id
            self._persist_index()
        return doc

    def get_document(self, doc_id: str) -> Document | None:
        return self._docs.get(doc_id)

    def get_by_token(self, share_token: str) -> Document | None:
        doc_id = self._by_token.get(share_token)
        return self._docs.get(doc_id) if doc_id else None

    def list(self) -> List[Document]:
        return list(self._docs.values())

    # ---- annotations ----
    def _find_annotation(self, annotation_id: str):
        for doc in self._docs.values():
            for i, ann in enumerate(doc.annotations):
                if ann.id == annotation_id:
                    return doc, i
        return None, None

    def get_annotation(self, annotation_id: str) -> Optional[Annotation]:
        doc, i = self._find_annotation(annotation_id)
        return doc.annotations[i] if doc is not None else None

    def add_annotation(self, ann: Annotation) -> Annotation | None:
        with _STORAGE_LOCK:
            doc = self._docs.get(ann.document_id)
            if doc is None:
                return None
            doc.annotations.append(ann)
            self._persist_index()
        return ann

    def update_annotation(self, annotation_id: str, fields: dict) -> Annotation | None:
        with _STORAGE_LOCK:
            doc, i = self._find_annotation(annotation_id)
            if doc is None:
                return None
            updated = doc.annotations[i].model_copy(update=fields)
            doc.annotations[i] = updated
            self._persist_index()
        return updated

    def delete_annotation(self, annotation_id: str) -> bool:
        with _STORAGE_LOCK:
            doc, i = self._find_annotation(annotation_id)
            if doc is None:
                return False
            del doc.annotations[i]
            self._persist_index()
        return True

    def replace_annotations(self, doc_id: str, annotations: List[Annotation]) -> int | None:
        """Delete every annotation of the document, then insert ``annotations``."""
        with _STORAGE_LOCK:
            doc = self._docs.get(doc_id)
            if doc is None:
                return None
            doc.annotations = list(annotations)
            self._persist_index()
        return len(annotations)


_STORE: DocStore | None = None


def get_store() -> DocStore:
    """FastAPI dependency; tests override it with a store rooted in a temp directory."""
    global _STORE
    if _STORE is None:
        _STORE = DocStore(ServerSettings.from_env().storage_dir)
    return _STORE
