"""
Script → Video Pipeline

  Scripts — Claude drafts script variants; avatar catalog fetched alongside
  Videos  — Sanitize → Build request → Create (endpoint probing) → Poll → Store
"""

from .orchestrator import VideoGenerationService, ensure_complete
from .routes import script_router, heygen_router, video_router
from .models import VideoStatus, AspectRatio
from .sanitize import sanitize_script

__all__ = [
    "VideoGenerationService",
    "ensure_complete",
    "script_router",
    "heygen_router",
    "video_router",
    "VideoStatus",
    "AspectRatio",
    "sanitize_script",
]
