from __future__ import annotations
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone
from enum import Enum
import uuid

# Wire shapes mirror the client models in sourcelab.core.annotations (camelCase on the wire)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Category(str, Enum):
    GENERAL = "general"
    TRANSCRIPTION = "transcription"
    CONTEXT = "context"
    QUESTION = "question"
    IMPORTANT = "important"
    TRANSLATION = "translation"


class _Wire(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Annotation(_Wire):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    document_id: str
    x: float
    y: float
    width: float = Field(ge=0)
    height: float = Field(ge=0)
    text: str
    color: str = "#3b82f6"
    category: Category = Category.GENERAL
    author: str = "Anonymous"
    created_at: datetime = Field(default_factory=utcnow)


class Document(_Wire):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    description: Optional[str] = None
    image_url: str
    share_token: str = Field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = Field(default_factory=utcnow)
    annotations: List[Annotation] = []


class DocumentCreate(_Wire):
    title: str
    description: Optional[str] = None
    image_url: str


class AnnotationCreate(_Wire):
    document_id: str
    x: float
    y: float
    width: float = Field(ge=0)
    height: float = Field(ge=0)
    text: str
    color: Optional[str] = None
    category: Optional[Category] = None
    author: Optional[str] = None


class AnnotationUpdate(_Wire):
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = Field(default=None, ge=0)
    height: Optional[float] = Field(default=None, ge=0)
    text: Optional[str] = None
    color: Optional[str] = None
    category: Optional[Category] = None


class BulkAnnotation(AnnotationCreate):
    # Client ids (temporary or server-issued) are kept so the client's records stay addressable
    id: Optional[str] = None
    document_id: Optional[str] = None
    created_at: Optional[datetime] = None


class BulkSync(_Wire):
    document_id: str
    annotations: List[BulkAnnotation] = []


class BulkSyncResult(BaseModel):
    count: int


class UploadResponse(_Wire):
    image_url: str
