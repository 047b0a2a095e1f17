"""
Tests for scriptreel.pipeline.prober
"""

import asyncio

import httpx
import pytest

from scriptreel import metrics
from scriptreel.pipeline.heygen import AVATAR_NOT_FOUND_SIGNATURES
from scriptreel.pipeline.errors import EndpointUnresolved, RemoteRejected
from scriptreel.pipeline.prober import EndpointCandidate, EndpointProber, matches_signature
from scriptreel.pipeline.request_builder import BodyShape, build_video_request

CANDIDATES = [
    EndpointCandidate(url="https://api.test/one", method="POST", body=BodyShape.V2_VIDEO_INPUTS, tag="one"),
    EndpointCandidate(url="https://api.test/two", method="POST", body=BodyShape.V1_CLIPS, tag="two"),
    EndpointCandidate(url="https://api.test/three", method="POST", body=BodyShape.FLAT, tag="three"),
]

AVATAR_MISSING = {"error": {"code": "avatar_not_found", "message": "Avatar abc not found"}}


def _scripted(responses):
    """Transport answering each path from a dict; records the call order."""
    calls = []

    def handler(request: httpx.Request):
        path = request.url.path.strip("/")
        calls.append(path)
        outcome = responses[path]
        if isinstance(outcome, Exception):
            raise outcome
        status, body = outcome
        return httpx.Response(status, json=body)

    return httpx.MockTransport(handler), calls


def _probe(responses, **kwargs):
    transport, calls = _scripted(responses)

    async def run():
        async with httpx.AsyncClient(transport=transport) as client:
            prober = EndpointProber(client, headers={"X-Api-Key": "k"})
            return await prober.probe(CANDIDATES, request=build_video_request("Hi"), **kwargs)

    return run, calls


def test_skips_404s_and_returns_first_existing_endpoint():
    run, calls = _probe({
        "one": (404, {"message": "not found"}),
        "two": (404, {"message": "not found"}),
        "three": (200, {"data": {"video_id": "v1"}}),
    })
    result = asyncio.run(run())

    assert result.candidate.tag == "three"
    assert result.response.json()["data"]["video_id"] == "v1"
    assert [a.status_code for a in result.attempts] == [404, 404, 200]
    assert calls == ["one", "two", "three"]


def test_avatar_not_found_aborts_probe():
    run, calls = _probe({
        "one": (404, {"message": "not found"}),
        "two": (404, AVATAR_MISSING),
        "three": (200, {"data": {"video_id": "v1"}}),
    }, operation="create_video", abort_signatures=AVATAR_NOT_FOUND_SIGNATURES)

    with pytest.raises(RemoteRejected) as exc_info:
        asyncio.run(run())

    assert calls == ["one", "two"]
    assert exc_info.value.hint == "avatar_not_found"
    assert exc_info.value.status_code == 404
    assert metrics.get_counter("probe.create_video.aborted") == 1


def test_non_404_error_is_accepted_as_real_endpoint():
    run, calls = _probe({
        "one": (400, {"error": {"message": "bad dimension"}}),
        "two": (200, {}),
        "three": (200, {}),
    })
    result = asyncio.run(run())

    assert result.candidate.tag == "one"
    assert result.response.status_code == 400
    assert calls == ["one"]


def test_transport_errors_are_skipped():
    run, calls = _probe({
        "one": httpx.ConnectError("refused"),
        "two": (200, {"ok": True}),
        "three": (200, {}),
    })
    result = asyncio.run(run())

    assert result.candidate.tag == "two"
    assert result.attempts[0].status_code is None
    assert "ConnectError" in result.attempts[0].error


def test_all_candidates_missing_is_unresolved():
    run, _ = _probe({
        "one": (404, {}),
        "two": httpx.ConnectTimeout("slow"),
        "three": (404, {}),
    }, operation="video_status")

    with pytest.raises(EndpointUnresolved) as exc_info:
        asyncio.run(run())

    assert [a.tag for a in exc_info.value.attempts] == ["one", "two", "three"]
    assert exc_info.value.operation == "video_status"
    assert metrics.get_counter("probe.video_status.unresolved") == 1


def test_status_candidates_format_video_id():
    seen = []

    def handler(request: httpx.Request):
        seen.append((request.method, str(request.url), request.content))
        return httpx.Response(200, json={"data": {"status": "processing"}})

    candidates = [
        EndpointCandidate(url="https://api.test/video/{video_id}", tag="path"),
    ]

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await EndpointProber(client).probe(candidates, video_id="abc123")

    asyncio.run(run())
    assert seen == [("GET", "https://api.test/video/abc123", b"")]


def test_post_status_candidate_sends_video_id_body():
    bodies = []

    def handler(request: httpx.Request):
        bodies.append(request.content)
        return httpx.Response(200, json={})

    candidates = [
        EndpointCandidate(url="https://api.test/video/query", method="POST", body=BodyShape.VIDEO_ID, tag="q"),
    ]

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await EndpointProber(client).probe(candidates, video_id="abc")

    asyncio.run(run())
    assert b'"video_id"' in bodies[0] and b'"abc"' in bodies[0]


def test_empty_candidate_list_rejected():
    async def run():
        async with httpx.AsyncClient() as client:
            await EndpointProber(client).probe([])

    with pytest.raises(ValueError):
        asyncio.run(run())


def test_matches_signature_case_insensitive():
    assert matches_signature("AVATAR NOT FOUND", ["avatar not found"]) == "avatar not found"
    assert matches_signature("all good", ["avatar not found"]) is None
