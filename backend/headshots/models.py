from datetime import datetime, timezone
from typing import Iterator, List, Optional

from pydantic import BaseModel, Field

from . import config
from .errors import ValidationError


class Identity(BaseModel):
    uid: str
    email: Optional[str] = None


class Profile(BaseModel):
    user_id: str
    email: Optional[str] = None
    credits: int = Field(0, ge=0, description="Remaining generation credits")


class GenerationRecord(BaseModel):
    id: Optional[str] = None
    user_id: str
    images: List[str] = Field(..., description="Generated images as data URIs, in upload order")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class StyleSuggestion(BaseModel):
    name: str
    description: str


class UploadedImage(BaseModel):
    data: bytes
    mime_type: Optional[str] = None
    filename: Optional[str] = None


class UploadBatch:
    """The user's current selection of selfies, never persisted."""

    def __init__(self, max_size: int = config.MAX_UPLOADS):
        self.max_size = max_size
        self._images: List[UploadedImage] = []

    def select(self, images: List[UploadedImage]) -> None:
        # an oversized selection leaves the previous one in place
        if len(images) > self.max_size:
            raise ValidationError(f"You can upload a maximum of {self.max_size} images.")
        self._images = list(images)

    def clear(self) -> None:
        self._images = []

    @property
    def images(self) -> List[UploadedImage]:
        return list(self._images)

    def __len__(self) -> int:
        return len(self._images)

    def __iter__(self) -> Iterator[UploadedImage]:
        return iter(list(self._images))
