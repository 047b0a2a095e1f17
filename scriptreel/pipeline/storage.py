"""
Supabase persistence for script sets and rendered videos.

Tables:
  script_sets (id, user_id, topic, scripts jsonb, created_at, updated_at)
  videos      (id, user_id, external_video_id, asset_url, thumbnail_url,
               source_script_id, script, aspect_ratio, created_at)

All calls use the service-role client; ownership is checked here.
"""

import os
import logging
from datetime import datetime, timezone
from typing import Optional

from supabase import create_client, Client

from .models import ScriptSet, ScriptVariant, StoredVideo, VideoJob

logger = logging.getLogger(__name__)

SCRIPT_SETS_TABLE = "script_sets"
VIDEOS_TABLE = "videos"

# ── Supabase Service Client ──────────────────────────────────────────────────

_service_client: Optional[Client] = None


def _get_service_client() -> Client:
    """Lazy-init Supabase client using service role key."""
    global _service_client
    if _service_client is None:
        url = os.getenv("SUPABASE_URL", "")
        key = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
        if not url or not key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        _service_client = create_client(url, key)
    return _service_client


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_script_set(row: dict) -> ScriptSet:
    return ScriptSet(
        id=row.get("id"),
        user_id=row["user_id"],
        topic=row.get("topic", ""),
        scripts=[ScriptVariant(**s) for s in row.get("scripts") or []],
        created_at=row.get("created_at"),
    )


class ScriptStore:
    """Persistence collaborator. Pass a client in tests; production uses the lazy service client."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = _get_service_client()
        return self._client

    # ── Script sets ──────────────────────────────────────────────────────

    def save_script_set(self, user_id: str, topic: str, scripts: list[ScriptVariant]) -> str:
        now = _now_iso()
        result = self.client.table(SCRIPT_SETS_TABLE).insert({
            "user_id": user_id,
            "topic": topic,
            "scripts": [s.model_dump() for s in scripts],
            "created_at": now,
            "updated_at": now,
        }).execute()
        set_id = result.data[0]["id"]
        logger.info(f"Saved script set {set_id} ({len(scripts)} scripts) for user {user_id}")
        return set_id

    def list_script_sets(self, user_id: str) -> list[ScriptSet]:
        """Newest first."""
        result = (
            self.client.table(SCRIPT_SETS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .execute()
        )
        return [_row_to_script_set(row) for row in result.data or []]

    def _get_owned_row(self, set_id: str, user_id: str) -> dict:
        result = self.client.table(SCRIPT_SETS_TABLE).select("*").eq("id", set_id).execute()
        if not result.data:
            raise LookupError(f"Script set {set_id} not found")
        row = result.data[0]
        if row["user_id"] != user_id:
            raise PermissionError("You do not own this script set")
        return row

    def get_script_set(self, set_id: str, user_id: str) -> ScriptSet:
        return _row_to_script_set(self._get_owned_row(set_id, user_id))

    def update_script(self, set_id: str, user_id: str, script: ScriptVariant) -> ScriptSet:
        """Persist an edited copy of one variant (matched by id)."""
        row = self._get_owned_row(set_id, user_id)
        scripts = [ScriptVariant(**s) for s in row.get("scripts") or []]
        if not any(s.id == script.id for s in scripts):
            raise LookupError(f"Script {script.id} not found in set {set_id}")

        updated = [script if s.id == script.id else s for s in scripts]
        self.client.table(SCRIPT_SETS_TABLE).update({
            "scripts": [s.model_dump() for s in updated],
            "updated_at": _now_iso(),
        }).eq("id", set_id).execute()

        row["scripts"] = [s.model_dump() for s in updated]
        return _row_to_script_set(row)

    def delete_script_set(self, set_id: str, user_id: str):
        self._get_owned_row(set_id, user_id)
        self.client.table(SCRIPT_SETS_TABLE).delete().eq("id", set_id).execute()
        logger.info(f"Deleted script set {set_id} for user {user_id}")

    # ── Videos ───────────────────────────────────────────────────────────

    def save_video(self, user_id: str, job: VideoJob, script_text: str = "") -> str:
        if not job.asset_url or not job.external_video_id:
            raise ValueError(f"Job {job.job_id} has no completed asset to store")

        result = self.client.table(VIDEOS_TABLE).insert({
            "user_id": user_id,
            "external_video_id": job.external_video_id,
            "asset_url": job.asset_url,
            "thumbnail_url": job.thumbnail_url,
            "source_script_id": job.source_script_id,
            "script": script_text or job.sanitized_text,
            "aspect_ratio": job.aspect_ratio.value,
            "created_at": _now_iso(),
        }).execute()
        video_row_id = result.data[0]["id"]
        logger.info(f"[{job.job_id}] stored video {job.external_video_id} as {video_row_id}")
        return video_row_id

    def list_videos(self, user_id: str) -> list[StoredVideo]:
        result = (
            self.client.table(VIDEOS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .execute()
        )
        return [
            StoredVideo(
                id=row.get("id"),
                user_id=row["user_id"],
                external_video_id=row["external_video_id"],
                asset_url=row["asset_url"],
                thumbnail_url=row.get("thumbnail_url"),
                source_script_id=row.get("source_script_id"),
                script=row.get("script") or "",
                created_at=row.get("created_at"),
            )
            for row in result.data or []
        ]
