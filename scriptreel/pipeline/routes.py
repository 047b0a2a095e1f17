"""
FastAPI routes for scripts, the HeyGen catalog and video jobs.

Script Endpoints:
  POST   /scripts/generate                       — Draft scripts (+ avatar list)
  GET    /scripts?user_id=                       — List saved script sets
  GET    /scripts/{id}?user_id=                  — Get one script set
  PUT    /scripts/{id}/variants/{variant_id}     — Save an edited variant
  DELETE /scripts/{id}?user_id=                  — Delete a script set

HeyGen Endpoints:
  GET    /heygen/avatars                         — Avatars split into custom/public
  GET    /heygen/voices
  GET    /heygen/aspect-ratios

Video Endpoints:
  POST   /videos                                 — Start rendering a script
  GET    /videos?user_id=                        — Stored (completed) videos
  GET    /videos/{job_id}                        — Job status
  POST   /videos/{job_id}/check                  — Manual "check again"
  GET    /videos/{job_id}/asset                  — Asset URL or still-processing
  DELETE /videos/{job_id}                        — Abandon polling
"""

import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from .errors import EndpointUnresolved, RemoteRejected, Undetermined
from .models import (
    ScriptBatch,
    ScriptEditRequest,
    ScriptGenerateRequest,
    ScriptSet,
    ScriptVariant,
    VideoCreateRequest,
    VideoJob,
)
from .orchestrator import VideoGenerationService, ensure_complete
from .request_builder import list_aspect_ratios
from .scripts import generate_script_batch
from .storage import ScriptStore
from .heygen import HeyGenClient, split_avatars
from .scriptwriter import ScriptWriter

logger = logging.getLogger(__name__)

# Singletons
_heygen = HeyGenClient()
_store = ScriptStore()
_writer = ScriptWriter()
_service = VideoGenerationService(heygen=_heygen, store=_store)


def _http_error(e: Exception) -> HTTPException:
    """Map pipeline errors to HTTP errors; unknown ones become 500."""
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, PermissionError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, LookupError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, RemoteRejected):
        return HTTPException(status_code=502, detail=e.to_dict())
    if isinstance(e, EndpointUnresolved):
        return HTTPException(status_code=503, detail={
            "error": str(e),
            "attempts": [a.model_dump() for a in e.attempts],
        })
    logger.error(f"Unexpected error: {e}", exc_info=True)
    return HTTPException(status_code=500, detail=str(e))


def _still_processing(e: Undetermined) -> JSONResponse:
    return JSONResponse(status_code=202, content={
        "job_id": e.job_id,
        "status": "undetermined",
        "message": "Video is still processing. Check again in a few moments.",
    })


# ═════════════════════════════════════════════════════════════════════════════
# Script Router
# ═════════════════════════════════════════════════════════════════════════════

script_router = APIRouter(prefix="/scripts", tags=["scripts"])


@script_router.post("/generate", response_model=ScriptBatch)
async def generate_scripts(request: ScriptGenerateRequest):
    try:
        return await generate_script_batch(
            request.topic,
            request.num_variations,
            user_id=request.user_id,
            writer=_writer,
            heygen=_heygen,
            store=_store,
        )
    except Exception as e:
        raise _http_error(e)


@script_router.get("", response_model=list[ScriptSet])
async def list_script_sets(user_id: str):
    try:
        return _store.list_script_sets(user_id)
    except Exception as e:
        raise _http_error(e)


@script_router.get("/{set_id}", response_model=ScriptSet)
async def get_script_set(set_id: str, user_id: str):
    try:
        return _store.get_script_set(set_id, user_id)
    except Exception as e:
        raise _http_error(e)


@script_router.put("/{set_id}/variants/{variant_id}", response_model=ScriptSet)
async def update_script(set_id: str, variant_id: int, request: ScriptEditRequest):
    try:
        edited = ScriptVariant(id=variant_id, content=request.content)
        return _store.update_script(set_id, request.user_id, edited)
    except Exception as e:
        raise _http_error(e)


@script_router.delete("/{set_id}")
async def delete_script_set(set_id: str, user_id: str):
    try:
        _store.delete_script_set(set_id, user_id)
        return {"status": "deleted", "id": set_id}
    except Exception as e:
        raise _http_error(e)


# ═════════════════════════════════════════════════════════════════════════════
# HeyGen Router
# ═════════════════════════════════════════════════════════════════════════════

heygen_router = APIRouter(prefix="/heygen", tags=["heygen"])


@heygen_router.get("/avatars")
async def list_avatars():
    try:
        custom, public = split_avatars(await _heygen.list_avatars())
        return {"custom": custom, "public": public}
    except Exception as e:
        raise _http_error(e)


@heygen_router.get("/voices")
async def list_voices():
    try:
        return {"voices": await _heygen.list_voices()}
    except Exception as e:
        raise _http_error(e)


@heygen_router.get("/aspect-ratios")
async def aspect_ratios():
    return {"aspect_ratios": list_aspect_ratios()}


# ═════════════════════════════════════════════════════════════════════════════
# Video Router
# ═════════════════════════════════════════════════════════════════════════════

video_router = APIRouter(prefix="/videos", tags=["videos"])


@video_router.post("", response_model=VideoJob)
async def create_video(request: VideoCreateRequest):
    """Validate now, render + poll in the background. Poll GET /videos/{job_id}."""
    try:
        return await _service.start_video(
            request.script_id,
            request.script,
            avatar_id=request.avatar_id,
            voice_id=request.voice_id,
            aspect_ratio=request.aspect_ratio,
            user_id=request.user_id,
            title=request.title,
        )
    except Exception as e:
        raise _http_error(e)


@video_router.get("", response_model=list)
async def list_videos(user_id: str):
    try:
        return _store.list_videos(user_id)
    except Exception as e:
        raise _http_error(e)


@video_router.get("/{job_id}", response_model=VideoJob)
async def get_video_job(job_id: str):
    try:
        return _service.get_job(job_id)
    except Exception as e:
        raise _http_error(e)


@video_router.post("/{job_id}/check", response_model=VideoJob)
async def check_video(job_id: str):
    try:
        return await _service.check_again(job_id)
    except Exception as e:
        raise _http_error(e)


@video_router.get("/{job_id}/asset")
async def get_video_asset(job_id: str):
    try:
        job = _service.get_job(job_id)
        return {"job_id": job_id, "asset_url": ensure_complete(job), "thumbnail_url": job.thumbnail_url}
    except Undetermined as e:
        return _still_processing(e)
    except Exception as e:
        raise _http_error(e)


@video_router.delete("/{job_id}", response_model=VideoJob)
async def abandon_video(job_id: str):
    try:
        return _service.abandon(job_id)
    except Exception as e:
        raise _http_error(e)
