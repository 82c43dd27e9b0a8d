from __future__ import annotations
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from typing import Optional
import base64, logging
from ..config import ServerSettings
from ..models import Document, DocumentCreate, UploadResponse
from ..storage import DocStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/documents", tags=["documents"])


def get_settings() -> ServerSettings:
    return ServerSettings.from_env()


@router.post('', response_model=Document, status_code=201)
def create_document(payload: DocumentCreate, store: DocStore = Depends(get_store)):
    doc = Document(title=payload.title, description=payload.description, image_url=payload.image_url)
    try:
        return store.create_document(doc)
    except OSError:
        logger.exception("Failed to create document")
        raise HTTPException(status_code=500, detail='Failed to create document')


@router.get('/{share_token}', response_model=Document)
def get_document(share_token: str, store: DocStore = Depends(get_store)):
    doc = store.get_by_token(share_token)
    if not doc:
        raise HTTPException(status_code=404, detail='Document not found')
    newest_first = sorted(doc.annotations, key=lambda a: a.created_at, reverse=True)
    return doc.model_copy(update={"annotations": newest_first})


@router.post('/upload', response_model=UploadResponse)
async def upload_image(file: Optional[UploadFile] = File(None), settings: ServerSettings = Depends(get_settings)):
    if file is None:
        raise HTTPException(status_code=400, detail='No file uploaded')
    data = await file.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail=f'File exceeds {settings.max_upload_mb:g}MB limit')
    # Embeddable data URL; the image itself is never stored server-side
    mime = file.content_type or 'application/octet-stream'
    encoded = base64.b64encode(data).decode('ascii')
    return UploadResponse(image_url=f"data:{mime};base64,{encoded}")
