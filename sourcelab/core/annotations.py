from __future__ import annotations
from typing import List, Optional, Any, Dict
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone
from enum import Enum
import uuid

# Coordinate system: image space (pixels of the source image at scale 1.0), rectangle = (x, y, width, height)

TEMP_ID_PREFIX = "tmp-"
ANONYMOUS_AUTHOR = "Anonymous"


class Category(str, Enum):
    GENERAL = "general"
    TRANSCRIPTION = "transcription"
    CONTEXT = "context"
    QUESTION = "question"
    IMPORTANT = "important"
    TRANSLATION = "translation"


class ToolMode(str, Enum):
    SELECT = "select"
    ANNOTATE = "annotate"


class SyncStatus(str, Enum):
    LOCAL = "local"    # created here, never acknowledged by the server
    DIRTY = "dirty"    # changed since last successful sync
    SYNCED = "synced"


# Stroke/fill color offered when a category is picked in the note editor
CATEGORY_COLORS: Dict[Category, str] = {
    Category.GENERAL: "#3b82f6",
    Category.TRANSCRIPTION: "#10b981",
    Category.CONTEXT: "#8b5cf6",
    Category.QUESTION: "#f59e0b",
    Category.IMPORTANT: "#ef4444",
    Category.TRANSLATION: "#ec4899",
}
DEFAULT_CATEGORY = Category.GENERAL
DEFAULT_COLOR = CATEGORY_COLORS[DEFAULT_CATEGORY]
DEFAULT_TEXT = "New annotation"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_temp_id() -> str:
    return TEMP_ID_PREFIX + uuid.uuid4().hex


def is_temp_id(annotation_id: str) -> bool:
    return annotation_id.startswith(TEMP_ID_PREFIX)


class Geometry(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    width: float
    height: float

    def normalize(self) -> 'Geometry':
        """Resolve negative extents to a positive-size rectangle anchored at the top-left corner."""
        x, width = (self.x + self.width, -self.width) if self.width < 0 else (self.x, self.width)
        y, height = (self.y + self.height, -self.height) if self.height < 0 else (self.y, self.height)
        return Geometry(x=x, y=y, width=width, height=height)

    def contains(self, px: float, py: float) -> bool:
        r = self.normalize()
        return r.x <= px <= r.x + r.width and r.y <= py <= r.y + r.height

    def as_patch(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


class Annotation(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=new_temp_id)
    document_id: Optional[str] = None
    x: float
    y: float
    width: float = Field(ge=0)
    height: float = Field(ge=0)
    text: str
    color: str = DEFAULT_COLOR
    category: Category = DEFAULT_CATEGORY
    author: str = ANONYMOUS_AUTHOR
    created_at: datetime = Field(default_factory=utcnow)
    sync_status: SyncStatus = SyncStatus.LOCAL

    @property
    def geometry(self) -> Geometry:
        return Geometry(x=self.x, y=self.y, width=self.width, height=self.height)

    def to_wire(self, exclude: Optional[set] = None) -> Dict[str, Any]:
        """JSON-ready payload for the REST API (sync status never leaves the client)."""
        return self.model_dump(mode="json", by_alias=True, exclude={"sync_status"} | (exclude or set()))

    @staticmethod
    def from_wire(data: Dict[str, Any], status: SyncStatus = SyncStatus.SYNCED) -> 'Annotation':
        ann = Annotation.model_validate(data)
        ann.sync_status = status
        return ann


class Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str
    description: Optional[str] = None
    image_url: str
    share_token: str
    created_at: Optional[datetime] = None
    annotations: List[Annotation] = []

    @staticmethod
    def from_wire(data: Dict[str, Any]) -> 'Document':
        doc = Document.model_validate(data)
        for ann in doc.annotations:
            ann.sync_status = SyncStatus.SYNCED
        return doc
