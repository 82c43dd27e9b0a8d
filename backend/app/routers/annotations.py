from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException, Response
from typing import List
import logging, uuid
from ..models import Annotation, AnnotationCreate, AnnotationUpdate, BulkSync, BulkSyncResult, Category, utcnow
from ..storage import DocStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/annotations", tags=["annotations"])


def _defaults(payload: AnnotationCreate) -> dict:
    fields = payload.model_dump(exclude_none=True)
    fields.setdefault("category", Category.GENERAL)
    return fields


@router.post('', response_model=Annotation, status_code=201)
def create_annotation(payload: AnnotationCreate, store: DocStore = Depends(get_store)):
    if store.get_document(payload.document_id) is None:
        raise HTTPException(status_code=404, detail='Document not found')
    ann = Annotation(**_defaults(payload))
    try:
        store.add_annotation(ann)
    except OSError:
        logger.exception("Failed to create annotation")
        raise HTTPException(status_code=500, detail='Failed to create annotation')
    return ann


@router.post('/bulk', response_model=BulkSyncResult)
def sync_annotations(payload: BulkSync, store: DocStore = Depends(get_store)):
    """Replace every annotation of the document with the given list (no merge)."""
    if store.get_document(payload.document_id) is None:
        raise HTTPException(status_code=404, detail='Document not found')
    seen = set()
    annotations: List[Annotation] = []
    for item in payload.annotations:
        fields = _defaults(item)
        fields["document_id"] = payload.document_id
        fields.setdefault("id", str(uuid.uuid4()))
        fields.setdefault("created_at", utcnow())
        if fields["id"] in seen:
            raise HTTPException(status_code=400, detail=f'Duplicate annotation id: {fields["id"]}')
        seen.add(fields["id"])
        annotations.append(Annotation(**fields))
    try:
        count = store.replace_annotations(payload.document_id, annotations)
    except OSError:
        logger.exception("Failed to sync annotations for %s", payload.document_id)
        raise HTTPException(status_code=500, detail='Failed to sync annotations')
    return BulkSyncResult(count=count)


@router.patch('/{annotation_id}', response_model=Annotation)
def update_annotation(annotation_id: str, payload: AnnotationUpdate, store: DocStore = Depends(get_store)):
    fields = payload.model_dump(exclude_unset=True, exclude_none=True)
    try:
        ann = store.update_annotation(annotation_id, fields)
    except OSError:
        logger.exception("Failed to update annotation %s", annotation_id)
        raise HTTPException(status_code=500, detail='Failed to update annotation')
    if ann is None:
        raise HTTPException(status_code=404, detail='Annotation not found')
    return ann


@router.delete('/{annotation_id}', status_code=204)
def delete_annotation(annotation_id: str, store: DocStore = Depends(get_store)):
    try:
        deleted = store.delete_annotation(annotation_id)
    except OSError:
        logger.exception("Failed to delete annotation %s", annotation_id)
        raise HTTPException(status_code=500, detail='Failed to delete annotation')
    if not deleted:
        raise HTTPException(status_code=404, detail='Annotation not found')
    return Response(status_code=204)
