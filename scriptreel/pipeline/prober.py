"""
Endpoint prober — tries an ordered list of candidate endpoints for one
logical operation until one of them turns out to exist.

HeyGen's endpoint shapes are not reliably documented, so each operation
carries a guess list, most-likely first. The rules:

  - 404                          → candidate does not exist, try the next one
  - transport failure            → recorded, try the next one
  - error body with an abort
    signature (avatar not found) → stop immediately, raise RemoteRejected
  - anything else (2xx, 400, …)  → this is the real endpoint, return it
  - nothing left                 → raise EndpointUnresolved with every attempt
"""

import time
import logging
from typing import Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .. import metrics
from .errors import EndpointUnresolved, RemoteRejected
from .request_builder import BodyShape, VideoRequest, render_status_body

logger = logging.getLogger(__name__)


# ── Candidates ───────────────────────────────────────────────────────────────

class EndpointCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str = Field(..., description="May contain a {video_id} placeholder")
    method: str = "GET"
    body: BodyShape = BodyShape.NONE
    tag: str

    def format_url(self, video_id: Optional[str] = None) -> str:
        if "{video_id}" in self.url:
            return self.url.format(video_id=video_id or "")
        return self.url


class ProbeAttempt(BaseModel):
    tag: str
    url: str
    method: str
    status_code: Optional[int] = None
    error: Optional[str] = None


class ProbeResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    response: httpx.Response
    candidate: EndpointCandidate
    attempts: list[ProbeAttempt] = Field(default_factory=list)


def matches_signature(text: str, signatures: Sequence[str]) -> Optional[str]:
    """Return the first signature found in text (case-insensitive)."""
    lowered = (text or "").lower()
    for signature in signatures:
        if signature.lower() in lowered:
            return signature
    return None


# ── Prober ───────────────────────────────────────────────────────────────────

class EndpointProber:
    """
    Usage:
        prober = EndpointProber(client, headers={"X-Api-Key": key})
        result = await prober.probe(CREATE_VIDEO_CANDIDATES, request=req,
                                    operation="create_video",
                                    abort_signatures=AVATAR_NOT_FOUND_SIGNATURES)
    """

    def __init__(self, client: httpx.AsyncClient, headers: Optional[dict] = None):
        self._client = client
        self._headers = headers or {}

    def _body_for(
        self,
        candidate: EndpointCandidate,
        request: Optional[VideoRequest],
        video_id: Optional[str],
    ) -> Optional[dict]:
        if request is not None:
            return request.render_body(candidate.body, video_id=video_id)
        return render_status_body(candidate.body, video_id or "")

    async def probe(
        self,
        candidates: Sequence[EndpointCandidate],
        request: Optional[VideoRequest] = None,
        video_id: Optional[str] = None,
        operation: str = "request",
        abort_signatures: Sequence[str] = (),
    ) -> ProbeResult:
        if not candidates:
            raise ValueError(f"No endpoint candidates configured for {operation}")

        attempts: list[ProbeAttempt] = []
        started = time.time()

        for candidate in candidates:
            url = candidate.format_url(video_id)
            method = candidate.method.upper()
            body = self._body_for(candidate, request, video_id)
            attempt = ProbeAttempt(tag=candidate.tag, url=url, method=method)
            attempts.append(attempt)
            metrics.inc_counter(f"probe.{operation}.attempts")

            try:
                response = await self._client.request(
                    method, url, headers=self._headers, json=body
                )
            except httpx.TransportError as e:
                attempt.error = f"{type(e).__name__}: {e}"
                metrics.inc_counter(f"probe.{operation}.transport_errors")
                logger.debug(f"{operation}: {candidate.tag} unreachable ({attempt.error})")
                continue

            attempt.status_code = response.status_code

            if response.is_error and abort_signatures:
                signature = matches_signature(response.text, abort_signatures)
                if signature:
                    metrics.inc_counter(f"probe.{operation}.aborted")
                    logger.warning(
                        f"{operation}: {candidate.tag} returned {response.status_code} "
                        f"matching '{signature}' — aborting probe"
                    )
                    raise RemoteRejected(
                        error_message(response) or "Avatar not found",
                        status_code=response.status_code,
                        hint="avatar_not_found",
                        details={"endpoint": url, "attempts": [a.model_dump() for a in attempts]},
                    )

            if response.status_code == 404:
                metrics.inc_counter(f"probe.{operation}.404")
                logger.debug(f"{operation}: {candidate.tag} → 404, trying next candidate")
                continue

            metrics.inc_counter(f"probe.{operation}.resolved.{candidate.tag}")
            metrics.record_latency(f"probe.{operation}", (time.time() - started) * 1000)
            logger.info(
                f"{operation}: endpoint resolved to {candidate.tag} "
                f"(status {response.status_code}, attempt {len(attempts)}/{len(candidates)})"
            )
            return ProbeResult(response=response, candidate=candidate, attempts=attempts)

        metrics.inc_counter(f"probe.{operation}.unresolved")
        raise EndpointUnresolved(operation, attempts)


def error_message(response: httpx.Response) -> str:
    """Best-effort message from a HeyGen error body."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:300]

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error.get("code") or "")
        if error:
            return str(error)
        return str(data.get("message") or data.get("msg") or "")
    return str(data)[:300]
