"""
Video request builder — turns a script + avatar/voice/aspect choice into
the body HeyGen expects.

HeyGen has accepted several request shapes over time; the prober tries
them in order, so one VideoRequest can render any of them.
"""

import os
import logging
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

from .errors import ValidationError
from .models import AspectRatio, AspectRatioProfile
from .sanitize import sanitize_script

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

DEFAULT_AVATAR_ID = os.getenv("HEYGEN_DEFAULT_AVATAR_ID") or "Daisy-inskirt-20220818"
DEFAULT_VOICE_ID = os.getenv("HEYGEN_DEFAULT_VOICE_ID") or "2d5b0e6cf36f460aa7fc47e3eee4ba54"
DEFAULT_AVATAR_STYLE = "normal"
DEFAULT_ASPECT_RATIO = AspectRatio.VERTICAL

ASPECT_RATIO_PROFILES: dict[AspectRatio, AspectRatioProfile] = {
    AspectRatio.LANDSCAPE: AspectRatioProfile(width=1920, height=1080, label="Landscape (16:9)", ratio="16:9"),
    AspectRatio.VERTICAL: AspectRatioProfile(width=1080, height=1920, label="Vertical (9:16)", ratio="9:16"),
    AspectRatio.SQUARE: AspectRatioProfile(width=1080, height=1080, label="Square (1:1)", ratio="1:1"),
    AspectRatio.PORTRAIT: AspectRatioProfile(width=1080, height=1350, label="Portrait (4:5)", ratio="4:5"),
}

_RATIO_ALIASES = {profile.ratio: key for key, profile in ASPECT_RATIO_PROFILES.items()}


class BodyShape(str, Enum):
    V2_VIDEO_INPUTS = "v2_video_inputs"
    V1_CLIPS = "v1_clips"
    FLAT = "flat"
    VIDEO_ID = "video_id"
    NONE = "none"


# ── Request ──────────────────────────────────────────────────────────────────

class VideoRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    avatar_id: str
    voice_id: str
    aspect_ratio: AspectRatio
    width: int
    height: int
    title: Optional[str] = None

    @property
    def ratio(self) -> str:
        return ASPECT_RATIO_PROFILES[self.aspect_ratio].ratio

    def render_body(self, shape: BodyShape, video_id: Optional[str] = None) -> Optional[dict]:
        """Render the JSON body for one request shape."""
        if shape == BodyShape.V2_VIDEO_INPUTS:
            body = {
                "video_inputs": [
                    {
                        "character": {
                            "type": "avatar",
                            "avatar_id": self.avatar_id,
                            "avatar_style": DEFAULT_AVATAR_STYLE,
                        },
                        "voice": {
                            "type": "text",
                            "input_text": self.text,
                            "voice_id": self.voice_id,
                        },
                    }
                ],
                "dimension": {"width": self.width, "height": self.height},
            }
        elif shape == BodyShape.V1_CLIPS:
            body = {
                "clips": [
                    {
                        "avatar_id": self.avatar_id,
                        "avatar_style": DEFAULT_AVATAR_STYLE,
                        "input_text": self.text,
                        "voice_id": self.voice_id,
                    }
                ],
                "ratio": self.ratio,
                "dimension": {"width": self.width, "height": self.height},
            }
        elif shape == BodyShape.FLAT:
            body = {
                "avatar_id": self.avatar_id,
                "voice_id": self.voice_id,
                "input_text": self.text,
                "width": self.width,
                "height": self.height,
            }
        elif shape == BodyShape.VIDEO_ID:
            return {"video_id": video_id}
        else:
            return None

        if self.title:
            body["title"] = self.title
        return body


def render_status_body(shape: BodyShape, video_id: str) -> Optional[dict]:
    """Status-check candidates only ever carry the video id (or nothing)."""
    if shape == BodyShape.VIDEO_ID:
        return {"video_id": video_id}
    return None


# ── Builder ──────────────────────────────────────────────────────────────────

def resolve_aspect_ratio(value: Union[AspectRatio, str, None]) -> AspectRatio:
    """
    Accepts the enum, its value ("square", case-insensitive) or a ratio
    string ("9:16"). Anything else falls back to vertical.
    """
    if isinstance(value, AspectRatio):
        return value
    if value:
        key = value.strip().lower()
        if key in _RATIO_ALIASES:
            return _RATIO_ALIASES[key]
        try:
            return AspectRatio(key)
        except ValueError:
            logger.info(f"Unknown aspect ratio {value!r}, using {DEFAULT_ASPECT_RATIO.value}")
    return DEFAULT_ASPECT_RATIO


def build_video_request(
    text: Optional[str],
    avatar_id: Optional[str] = None,
    voice_id: Optional[str] = None,
    aspect_ratio: Union[AspectRatio, str, None] = None,
    title: Optional[str] = None,
    default_avatar_id: str = DEFAULT_AVATAR_ID,
    default_voice_id: str = DEFAULT_VOICE_ID,
) -> VideoRequest:
    """
    Build the render request for one script.

    The text is sanitized here as well (sanitizing is idempotent), so an
    input that only held markup or whitespace is rejected.

    Raises:
        ValidationError: if nothing speakable is left.
    """
    spoken = sanitize_script(text)
    if not spoken:
        raise ValidationError("Script is empty after removing formatting — nothing to speak")

    ratio = resolve_aspect_ratio(aspect_ratio)
    profile = ASPECT_RATIO_PROFILES[ratio]

    return VideoRequest(
        text=spoken,
        avatar_id=(avatar_id or "").strip() or default_avatar_id,
        voice_id=(voice_id or "").strip() or default_voice_id,
        aspect_ratio=ratio,
        width=profile.width,
        height=profile.height,
        title=title or None,
    )


def list_aspect_ratios() -> list[dict]:
    """Profiles for UI pickers, in declaration order."""
    return [
        {"key": key.value, "label": p.label, "ratio": p.ratio, "width": p.width, "height": p.height}
        for key, p in ASPECT_RATIO_PROFILES.items()
    ]
