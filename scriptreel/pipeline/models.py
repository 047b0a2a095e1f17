"""
Pydantic models and enums for the script → video pipeline.
"""

from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


# ── Scripts ──────────────────────────────────────────────────────────────────

class ScriptVariant(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=1)
    content: str


class ScriptSet(BaseModel):
    id: Optional[str] = None
    user_id: str
    topic: str
    scripts: list[ScriptVariant] = Field(default_factory=list)
    created_at: Optional[str] = None


# ── Aspect Ratio ─────────────────────────────────────────────────────────────

class AspectRatio(str, Enum):
    LANDSCAPE = "landscape"
    VERTICAL = "vertical"
    SQUARE = "square"
    PORTRAIT = "portrait"


class AspectRatioProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int
    height: int
    label: str
    ratio: str


# ── Video Status ─────────────────────────────────────────────────────────────

class VideoStatus(str, Enum):
    CREATED = "created"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    UNDETERMINED = "undetermined"


TERMINAL_STATUSES = {VideoStatus.COMPLETED, VideoStatus.FAILED, VideoStatus.UNDETERMINED}


class StatusReport(BaseModel):
    """Normalized answer from the video-status service."""
    video_id: str
    status: VideoStatus
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    error: Optional[str] = None
    endpoint_tag: Optional[str] = None


# ── Video Job ────────────────────────────────────────────────────────────────

class VideoJob(BaseModel):
    job_id: str = Field(default_factory=lambda: str(uuid4()))
    source_script_id: Optional[int] = None
    sanitized_text: str = ""
    avatar_id: str = ""
    voice_id: str = ""
    aspect_ratio: AspectRatio = AspectRatio.VERTICAL
    user_id: Optional[str] = None
    external_video_id: Optional[str] = None
    status: VideoStatus = VideoStatus.CREATED
    asset_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    error_reason: Optional[str] = None
    error_hint: Optional[str] = None
    ticks: int = 0
    ambiguous_streak: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


# ── HeyGen catalog ───────────────────────────────────────────────────────────

class Avatar(BaseModel):
    avatar_id: str
    name: str = "Unnamed"
    preview_image_url: Optional[str] = None
    is_custom: bool = False


class Voice(BaseModel):
    voice_id: str
    name: str = "Unnamed"
    language: Optional[str] = None
    gender: Optional[str] = None


# ── API Request / Response Models ────────────────────────────────────────────

class ScriptGenerateRequest(BaseModel):
    topic: str
    num_variations: int = Field(3, ge=1, le=5)
    user_id: Optional[str] = None


class ScriptBatch(BaseModel):
    topic: str
    scripts: list[ScriptVariant] = Field(default_factory=list)
    avatars: list[Avatar] = Field(default_factory=list)
    saved_id: Optional[str] = None


class ScriptEditRequest(BaseModel):
    """Persist a user-edited copy of one variant."""
    user_id: str
    content: str


class VideoCreateRequest(BaseModel):
    script_id: int = Field(1, ge=1)
    script: str = Field(..., description="Raw script text; sanitized before rendering")
    avatar_id: Optional[str] = None
    voice_id: Optional[str] = None
    aspect_ratio: Optional[str] = None
    user_id: Optional[str] = None
    title: Optional[str] = None


class StoredVideo(BaseModel):
    id: Optional[str] = None
    user_id: str
    external_video_id: str
    asset_url: str
    thumbnail_url: Optional[str] = None
    source_script_id: Optional[int] = None
    script: str = ""
    created_at: Optional[str] = None
