"""
HeyGen avatar-video client.

Video creation and status checks go through the EndpointProber because the
exact endpoint shapes were reverse-engineered and have moved between API
versions. Avatar and voice listing use the stable v2 endpoints directly.
"""

import os
import re
import logging
from typing import Optional

import httpx

from .errors import RemoteRejected
from .models import Avatar, StatusReport, VideoStatus, Voice
from .prober import EndpointCandidate, EndpointProber, error_message
from .request_builder import BodyShape, VideoRequest

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

HEYGEN_API_KEY = os.environ.get("HEYGEN_API_KEY", "")
HEYGEN_API_BASE = "https://api.heygen.com"
REQUEST_TIMEOUT = 60  # seconds

# Ordered most-likely first
CREATE_VIDEO_CANDIDATES = [
    EndpointCandidate(url=f"{HEYGEN_API_BASE}/v2/video/generate", method="POST",
                      body=BodyShape.V2_VIDEO_INPUTS, tag="v2_generate"),
    EndpointCandidate(url=f"{HEYGEN_API_BASE}/v1/video.generate", method="POST",
                      body=BodyShape.V1_CLIPS, tag="v1_generate"),
    EndpointCandidate(url=f"{HEYGEN_API_BASE}/v2/videos", method="POST",
                      body=BodyShape.FLAT, tag="v2_videos"),
]

VIDEO_STATUS_CANDIDATES = [
    EndpointCandidate(url=f"{HEYGEN_API_BASE}/v1/video_status.get?video_id={{video_id}}",
                      tag="v1_status_get"),
    EndpointCandidate(url=f"{HEYGEN_API_BASE}/v2/video/{{video_id}}", tag="v2_video"),
    EndpointCandidate(url=f"{HEYGEN_API_BASE}/v2/video/query?video_id={{video_id}}",
                      tag="v2_query"),
    EndpointCandidate(url=f"{HEYGEN_API_BASE}/v2/video/status/{{video_id}}", tag="v2_status"),
    EndpointCandidate(url=f"{HEYGEN_API_BASE}/v2/videos/{{video_id}}", tag="v2_videos"),
    EndpointCandidate(url=f"{HEYGEN_API_BASE}/v2/video/query", method="POST",
                      body=BodyShape.VIDEO_ID, tag="v2_query_post"),
    EndpointCandidate(url=f"{HEYGEN_API_BASE}/v1/video/{{video_id}}", tag="v1_video"),
]

AVATAR_NOT_FOUND_SIGNATURES = (
    "avatar_not_found",
    "avatar not found",
    "avatar does not exist",
    "invalid avatar",
    "avatar_id is invalid",
)

# (hint, substrings); first match wins
ERROR_HINTS = [
    ("avatar_not_found", AVATAR_NOT_FOUND_SIGNATURES),
    ("voice_not_found", ("voice_not_found", "voice not found", "invalid voice")),
    ("invalid_api_key", ("invalid api key", "unauthorized", "authentication", "api key")),
    ("quota_exceeded", ("quota", "insufficient credit", "credits")),
    ("rate_limit", ("rate limit", "too many requests")),
    ("text_too_long", ("too long", "exceeds the maximum")),
]

STATUS_ALIASES = {
    "completed": VideoStatus.COMPLETED,
    "success": VideoStatus.COMPLETED,
    "done": VideoStatus.COMPLETED,
    "failed": VideoStatus.FAILED,
    "error": VideoStatus.FAILED,
    "pending": VideoStatus.PENDING,
    "waiting": VideoStatus.PENDING,
    "queued": VideoStatus.PENDING,
    "processing": VideoStatus.PROCESSING,
    "rendering": VideoStatus.PROCESSING,
}

# ── Custom avatar heuristic ──────────────────────────────────────────────────
# HeyGen doesn't flag custom avatars; custom IDs are 32 hex chars while
# public ones are names like "Anna_public_3_20240108". Known exceptions are
# patched in through the allow-list.

_CUSTOM_ID = re.compile(r"^[a-f0-9]{32}$", re.IGNORECASE)
KNOWN_CUSTOM_AVATAR_IDS = [
    i.strip() for i in os.getenv("HEYGEN_KNOWN_CUSTOM_AVATAR_IDS", "").split(",") if i.strip()
]


def is_custom_avatar(avatar_id: str, known_ids: Optional[list[str]] = None) -> bool:
    known = KNOWN_CUSTOM_AVATAR_IDS if known_ids is None else known_ids
    return bool(_CUSTOM_ID.match(avatar_id or "")) or avatar_id in known


def split_avatars(
    avatars: list[Avatar], known_ids: Optional[list[str]] = None
) -> tuple[list[Avatar], list[Avatar]]:
    """
    Split into (custom, public). Known custom IDs missing from the list are
    added back as placeholders so the user can still pick them.
    """
    known = KNOWN_CUSTOM_AVATAR_IDS if known_ids is None else known_ids
    custom, public = [], []
    for avatar in avatars:
        if is_custom_avatar(avatar.avatar_id, known):
            custom.append(avatar.model_copy(update={"is_custom": True}))
        else:
            public.append(avatar)

    present = {a.avatar_id for a in custom}
    for missing_id in known:
        if missing_id not in present:
            logger.warning(f"Known custom avatar {missing_id} missing from HeyGen list, adding placeholder")
            custom.append(Avatar(avatar_id=missing_id, name="Custom avatar", is_custom=True))

    return custom, public


def derive_error_hint(text: str, status_code: Optional[int] = None) -> Optional[str]:
    lowered = (text or "").lower()
    for hint, signatures in ERROR_HINTS:
        if any(s in lowered for s in signatures):
            return hint
    if status_code == 401 or status_code == 403:
        return "invalid_api_key"
    if status_code == 429:
        return "rate_limit"
    return None


def _json_object(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def normalize_status(raw: Optional[str]) -> VideoStatus:
    """Unknown non-empty statuses are treated as still processing."""
    return STATUS_ALIASES.get((raw or "").strip().lower(), VideoStatus.PROCESSING)


# ── Client ───────────────────────────────────────────────────────────────────

class HeyGenClient:
    """
    Usage:
        async with HeyGenClient() as heygen:
            video_id = await heygen.create_video(request)
            report = await heygen.get_video_status(video_id)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = REQUEST_TIMEOUT,
        create_candidates: Optional[list[EndpointCandidate]] = None,
        status_candidates: Optional[list[EndpointCandidate]] = None,
    ):
        self.api_key = HEYGEN_API_KEY if api_key is None else api_key
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self.create_candidates = create_candidates or CREATE_VIDEO_CANDIDATES
        self.status_candidates = status_candidates or VIDEO_STATUS_CANDIDATES

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    def _headers(self) -> dict:
        if not self.api_key:
            raise RuntimeError("HEYGEN_API_KEY not set")
        return {
            "X-Api-Key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _prober(self) -> EndpointProber:
        return EndpointProber(self._client, headers=self._headers())

    @staticmethod
    def _reject(response: httpx.Response, endpoint: str) -> RemoteRejected:
        message = error_message(response) or f"HeyGen API error: {response.reason_phrase}"
        try:
            details = response.json()
        except ValueError:
            details = {"message": response.text[:500]}
        if not isinstance(details, dict):
            details = {"body": details}
        details["endpoint"] = endpoint
        return RemoteRejected(
            message,
            status_code=response.status_code,
            hint=derive_error_hint(response.text, response.status_code),
            details=details,
        )

    # ── Video creation ───────────────────────────────────────────────────

    async def create_video(self, request: VideoRequest) -> str:
        """
        Create a video and return HeyGen's video id.

        Raises:
            RemoteRejected: the resolved endpoint refused the request, or
                the avatar was not found (probing stops there).
            EndpointUnresolved: no candidate endpoint exists.
        """
        result = await self._prober().probe(
            self.create_candidates,
            request=request,
            operation="create_video",
            abort_signatures=AVATAR_NOT_FOUND_SIGNATURES,
        )
        response = result.response

        if response.is_error:
            logger.error(
                f"HeyGen create_video error {response.status_code} at {result.candidate.tag}: "
                f"{response.text[:300]}"
            )
            raise self._reject(response, result.candidate.url)

        data = _json_object(response)
        payload = data.get("data") if isinstance(data.get("data"), dict) else {}
        video_id = payload.get("video_id") or data.get("video_id") or payload.get("id")
        if not video_id:
            raise RemoteRejected(
                "HeyGen accepted the request but returned no video id",
                status_code=response.status_code,
                details=data,
            )

        logger.info(f"HeyGen video created: {video_id} via {result.candidate.tag}")
        return video_id

    # ── Video status ─────────────────────────────────────────────────────

    async def get_video_status(self, video_id: str) -> StatusReport:
        """
        Raises:
            EndpointUnresolved: every status endpoint 404'd (often just
                means the video is too fresh to be queryable).
            RemoteRejected: the status endpoint returned a definitive error.
        """
        result = await self._prober().probe(
            self.status_candidates,
            video_id=video_id,
            operation="video_status",
        )
        response = result.response

        if response.is_error:
            logger.error(
                f"HeyGen status error {response.status_code} for {video_id} "
                f"at {result.candidate.tag}"
            )
            raise self._reject(response, result.candidate.format_url(video_id))

        data = _json_object(response)
        record = data.get("data") if isinstance(data.get("data"), dict) else data
        status = normalize_status(record.get("status"))

        error = record.get("error")
        if isinstance(error, dict):
            error = error.get("message") or error.get("detail") or error.get("code")

        report = StatusReport(
            video_id=video_id,
            status=status,
            video_url=record.get("video_url") or record.get("url"),
            thumbnail_url=record.get("thumbnail_url"),
            error=str(error) if error else None,
            endpoint_tag=result.candidate.tag,
        )
        logger.debug(f"HeyGen status for {video_id}: {report.status.value}")
        return report

    # ── Catalog ──────────────────────────────────────────────────────────

    async def _get_list(self, path: str, key: str) -> list[dict]:
        response = await self._client.get(f"{HEYGEN_API_BASE}{path}", headers=self._headers())
        if response.is_error:
            raise self._reject(response, path)

        data = _json_object(response).get("data")
        if isinstance(data, list):
            return data
        if isinstance(data, dict) and isinstance(data.get(key), list):
            return data[key]
        return []

    async def list_avatars(self) -> list[Avatar]:
        """All avatars (custom and public), de-duplicated by id."""
        rows = await self._get_list("/v2/avatars", "avatars")
        seen: dict[str, Avatar] = {}
        for row in rows:
            avatar_id = row.get("avatar_id")
            if not avatar_id or avatar_id in seen:
                continue
            seen[avatar_id] = Avatar(
                avatar_id=avatar_id,
                name=row.get("avatar_name") or row.get("name") or "Unnamed",
                preview_image_url=row.get("preview_image_url"),
                is_custom=is_custom_avatar(avatar_id),
            )
        logger.info(f"Loaded {len(seen)} avatars from HeyGen ({len(rows)} rows)")
        return list(seen.values())

    async def list_voices(self) -> list[Voice]:
        rows = await self._get_list("/v2/voices", "voices")
        seen: dict[str, Voice] = {}
        for row in rows:
            voice_id = row.get("voice_id")
            if not voice_id or voice_id in seen:
                continue
            seen[voice_id] = Voice(
                voice_id=voice_id,
                name=row.get("name") or row.get("display_name") or "Unnamed",
                language=row.get("language"),
                gender=row.get("gender"),
            )
        return list(seen.values())
