"""Provider adapter tests against mocked OpenAI and Google HTTP APIs."""

import asyncio
import json

import httpx
import pytest

from videogen.errors import ContentFiltered, DownloadFailed, ProviderFailed, ProviderRejected
from videogen.schemas.video import JobStatus, VideoGenerationRequest
from videogen.services.providers import GoogleVideoAdapter, OpenAIVideoAdapter, ProviderUpdate
from videogen.services.providers.google_video import (
    VEO_FILTER_DEFAULT,
    VEO_FILTER_HEADING,
    derive_aspect_ratio,
    extract_progress,
)
from videogen.services.providers.openai_video import SORA_CONTENT_GUIDANCE, map_status

from conftest import PNG_BASE64


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ---------------------------------------------------------------------------
# OpenAI (polling-job family)
# ---------------------------------------------------------------------------

def test_openai_submit_sends_multipart_with_reference():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["content_type"] = request.headers["content-type"]
        seen["body"] = request.content
        return httpx.Response(200, json={"id": "video_123", "status": "queued", "progress": 0})

    async def scenario():
        adapter = OpenAIVideoAdapter(api_key="sk-test", base_url="https://api.test/v1", http_client=_client(handler))
        request = VideoGenerationRequest(
            prompt="A cat surfing",
            model="sora-2",
            size="1280x720",
            seconds=8,
            referenceImage={"base64": f"data:image/png;base64,{PNG_BASE64}", "mimeType": "image/png"},
        )
        return await adapter.submit(request)

    update = asyncio.run(scenario())
    assert update.handle == "video_123"
    assert update.status == JobStatus.QUEUED
    assert not update.done
    assert seen["url"] == "https://api.test/v1/videos"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["content_type"].startswith("multipart/form-data")
    assert b'name="input_reference"' in seen["body"]
    assert b'name="seconds"' in seen["body"]
    assert b"A cat surfing" in seen["body"]


def test_openai_remix_posts_json_to_remix_endpoint():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["json"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "video_456", "status": "in_progress", "progress": 12})

    async def scenario():
        adapter = OpenAIVideoAdapter(api_key="sk-test", base_url="https://api.test/v1", http_client=_client(handler))
        request = VideoGenerationRequest.model_validate({
            "prompt": "ignored",
            "model": "sora-2",
            "remixVideoId": "video_123",
            "remixPrompt": "Make it sunset",
            "seconds": 4,
        })
        return await adapter.submit(request)

    update = asyncio.run(scenario())
    assert seen["url"] == "https://api.test/v1/videos/video_123/remix"
    assert seen["json"] == {"prompt": "Make it sunset", "seconds": "4"}
    assert update.status == JobStatus.IN_PROGRESS
    assert update.progress == 12


@pytest.mark.parametrize("status_code", [400, 401, 403, 404])
def test_openai_poll_client_error_is_provider_failed(status_code):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json={"error": {"message": "Invalid API key"}})

    async def scenario():
        adapter = OpenAIVideoAdapter(api_key="sk-test", base_url="https://api.test/v1", http_client=_client(handler))
        await adapter.poll(ProviderUpdate(handle="video_1", status=JobStatus.QUEUED))

    with pytest.raises(ProviderFailed, match="OpenAI video status error: Invalid API key"):
        asyncio.run(scenario())


@pytest.mark.parametrize("status_code", [429, 500, 503])
def test_openai_poll_server_error_stays_retryable(status_code):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, text="try later")

    async def scenario():
        adapter = OpenAIVideoAdapter(api_key="sk-test", base_url="https://api.test/v1", http_client=_client(handler))
        await adapter.poll(ProviderUpdate(handle="video_1", status=JobStatus.QUEUED))

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(scenario())


def test_openai_submit_non_json_body_is_provider_rejected():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway</html>")

    async def scenario():
        adapter = OpenAIVideoAdapter(api_key="sk-test", base_url="https://api.test/v1", http_client=_client(handler))
        await adapter.submit(VideoGenerationRequest(prompt="x", model="sora-2"))

    with pytest.raises(ProviderRejected, match="non-JSON"):
        asyncio.run(scenario())


def test_openai_submit_error_is_provider_rejected():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": {"message": "Video not found"}})

    async def scenario():
        adapter = OpenAIVideoAdapter(api_key="sk-test", base_url="https://api.test/v1", http_client=_client(handler))
        await adapter.submit(VideoGenerationRequest(prompt="x", model="sora-2", remixOf="video_gone"))

    with pytest.raises(ProviderRejected, match="Video not found"):
        asyncio.run(scenario())


def test_openai_poll_and_download():
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/v1/videos/video_123":
            return httpx.Response(200, json={"id": "video_123", "status": "completed", "progress": 100})
        if path == "/v1/videos/video_123/content":
            variant = request.url.params["variant"]
            return httpx.Response(200, content=b"VIDEO" if variant == "video" else b"THUMB")
        return httpx.Response(404)

    async def scenario():
        adapter = OpenAIVideoAdapter(api_key="sk-test", base_url="https://api.test/v1", http_client=_client(handler))
        update = await adapter.poll(ProviderUpdate(handle="video_123", status=JobStatus.QUEUED))
        output = adapter.resolve_output(update)
        return update, await adapter.download_video(output), await adapter.download_thumbnail(output)

    update, video, thumbnail = asyncio.run(scenario())
    assert update.done and update.status == JobStatus.COMPLETED
    assert video == b"VIDEO"
    assert thumbnail == b"THUMB"


def test_openai_download_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    async def scenario():
        adapter = OpenAIVideoAdapter(api_key="sk-test", base_url="https://api.test/v1", http_client=_client(handler))
        output = adapter.resolve_output(ProviderUpdate(handle="video_1", status=JobStatus.COMPLETED, done=True))
        await adapter.download_video(output)

    with pytest.raises(DownloadFailed):
        asyncio.run(scenario())


def test_openai_moderation_block_appends_guidance():
    adapter = OpenAIVideoAdapter(api_key="sk-test", base_url="https://api.test/v1", http_client=_client(lambda r: httpx.Response(200)))
    update = ProviderUpdate(
        handle="video_9",
        status=JobStatus.FAILED,
        done=True,
        payload={"id": "video_9", "status": "failed", "error": {"type": "moderation_blocked", "message": "Blocked by moderation"}},
    )
    with pytest.raises(ContentFiltered) as exc_info:
        adapter.resolve_output(update)
    assert exc_info.value.message.startswith("Blocked by moderation")
    assert exc_info.value.message.endswith(SORA_CONTENT_GUIDANCE)
    assert exc_info.value.reasons == ["Blocked by moderation"]


def test_openai_other_failure_is_provider_failed():
    adapter = OpenAIVideoAdapter(api_key="sk-test", base_url="https://api.test/v1", http_client=_client(lambda r: httpx.Response(200)))
    update = ProviderUpdate(
        handle="video_9",
        status=JobStatus.FAILED,
        done=True,
        payload={"status": "failed", "error": {"code": "internal"}},
    )
    with pytest.raises(ProviderFailed, match="internal"):
        adapter.resolve_output(update)


def test_openai_status_mapping():
    assert map_status("queued") == JobStatus.QUEUED
    assert map_status("in_progress") == JobStatus.IN_PROGRESS
    assert map_status("completed") == JobStatus.COMPLETED
    assert map_status("failed") == JobStatus.FAILED
    assert map_status("something_new") == JobStatus.QUEUED
    assert map_status(None) == JobStatus.QUEUED


# ---------------------------------------------------------------------------
# Google (long-running-operation family)
# ---------------------------------------------------------------------------

def test_google_submit_builds_operation_request():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers["x-goog-api-key"]
        seen["json"] = json.loads(request.content)
        return httpx.Response(200, json={"name": "models/veo-3.0-generate-001/operations/op1"})

    async def scenario():
        adapter = GoogleVideoAdapter(api_key="g-key", base_url="https://gen.test/v1beta", http_client=_client(handler))
        request = VideoGenerationRequest(
            prompt="A lighthouse at dusk",
            model="veo-3.0-generate-001",
            size="720x1280",
            negativePrompt="text overlays",
            referenceImage={"base64": PNG_BASE64, "mimeType": "image/png"},
        )
        update = await adapter.submit(request)
        return adapter, update

    adapter, update = asyncio.run(scenario())
    assert seen["url"] == "https://gen.test/v1beta/models/veo-3.0-generate-001:predictLongRunning"
    assert seen["key"] == "g-key"
    body = seen["json"]
    assert body["instances"][0]["prompt"] == "A lighthouse at dusk"
    assert body["instances"][0]["image"] == {"bytesBase64Encoded": PNG_BASE64, "mimeType": "image/png"}
    assert body["parameters"] == {"aspectRatio": "9:16", "durationSeconds": 8, "negativePrompt": "text overlays"}

    assert update.handle == "models/veo-3.0-generate-001/operations/op1"
    assert not update.done
    assert adapter.initial_status(update) == JobStatus.QUEUED
    job_id = adapter.make_job_id(update)
    prefix, millis, suffix = job_id.split("_")
    assert prefix == "google" and millis.isdigit() and len(suffix) == 16


def test_google_poll_until_done_and_download():
    operation = "models/veo-3.0-generate-001/operations/op1"
    video_uri = "https://gen.test/v1beta/files/abc:download?alt=media"

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["x-goog-api-key"] == "g-key"
        if request.url.path.endswith("operations/op1"):
            return httpx.Response(200, json={
                "name": operation,
                "done": True,
                "metadata": {"progressPercent": 100},
                "response": {"generateVideoResponse": {"generatedSamples": [{"video": {"uri": video_uri}}]}},
            })
        if request.url.path.endswith("files/abc:download"):
            return httpx.Response(200, content=b"VEO")
        return httpx.Response(404)

    async def scenario():
        adapter = GoogleVideoAdapter(api_key="g-key", base_url="https://gen.test/v1beta", http_client=_client(handler))
        update = await adapter.poll(ProviderUpdate(handle=operation, status=JobStatus.IN_PROGRESS))
        output = adapter.resolve_output(update)
        return update, output, await adapter.download_video(output), await adapter.download_thumbnail(output)

    update, output, video, thumbnail = asyncio.run(scenario())
    assert update.done
    assert update.status == JobStatus.IN_PROGRESS
    assert update.progress == 100
    assert output.video_id == video_uri
    assert video == b"VEO"
    assert thumbnail is None


def _done_operation(response):
    return ProviderUpdate(
        handle="models/veo/operations/op",
        status=JobStatus.IN_PROGRESS,
        done=True,
        payload={"name": "models/veo/operations/op", "done": True, "response": response},
    )


def test_google_content_filter_with_reasons():
    adapter = GoogleVideoAdapter(api_key="g-key", base_url="https://gen.test/v1beta", http_client=_client(lambda r: httpx.Response(200)))
    update = _done_operation({
        "generateVideoResponse": {
            "raiMediaFilteredCount": 1,
            "raiMediaFilteredReasons": ["Contains a celebrity likeness"],
        }
    })
    with pytest.raises(ContentFiltered) as exc_info:
        adapter.resolve_output(update)
    assert exc_info.value.message == f"{VEO_FILTER_HEADING}Contains a celebrity likeness"
    assert exc_info.value.reasons == ["Contains a celebrity likeness"]


def test_google_content_filter_without_reasons():
    adapter = GoogleVideoAdapter(api_key="g-key", base_url="https://gen.test/v1beta", http_client=_client(lambda r: httpx.Response(200)))
    update = _done_operation({"generateVideoResponse": {"raiMediaFilteredCount": 2}})
    with pytest.raises(ContentFiltered) as exc_info:
        adapter.resolve_output(update)
    assert exc_info.value.message == f"{VEO_FILTER_HEADING}{VEO_FILTER_DEFAULT}"


def test_google_operation_error_and_missing_sample():
    adapter = GoogleVideoAdapter(api_key="g-key", base_url="https://gen.test/v1beta", http_client=_client(lambda r: httpx.Response(200)))

    errored = ProviderUpdate(
        handle="op", status=JobStatus.IN_PROGRESS, done=True,
        payload={"done": True, "error": {"code": 3, "message": "Invalid duration"}},
    )
    with pytest.raises(ProviderFailed, match="Invalid duration"):
        adapter.resolve_output(errored)

    with pytest.raises(ProviderFailed):
        adapter.resolve_output(_done_operation({"generateVideoResponse": {"generatedSamples": []}}))

    with pytest.raises(ProviderFailed, match="URI"):
        adapter.resolve_output(_done_operation({"generatedVideos": [{"video": {}}]}))


def test_google_submit_rejected():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": {"message": "Quota exceeded"}})

    async def scenario():
        adapter = GoogleVideoAdapter(api_key="g-key", base_url="https://gen.test/v1beta", http_client=_client(handler))
        await adapter.submit(VideoGenerationRequest(prompt="x", model="veo-3.0-fast-generate-001"))

    with pytest.raises(ProviderRejected, match="Quota exceeded"):
        asyncio.run(scenario())


def test_google_poll_missing_operation_is_provider_failed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": {"message": "Operation not found"}})

    async def scenario():
        adapter = GoogleVideoAdapter(api_key="g-key", base_url="https://gen.test/v1beta", http_client=_client(handler))
        await adapter.poll(ProviderUpdate(handle="models/veo/operations/gone", status=JobStatus.IN_PROGRESS))

    with pytest.raises(ProviderFailed, match="Google operation status error: Operation not found"):
        asyncio.run(scenario())


@pytest.mark.parametrize("body", ["not json", "[1, 2]"])
def test_google_submit_unparseable_body_is_provider_rejected(body):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=body)

    async def scenario():
        adapter = GoogleVideoAdapter(api_key="g-key", base_url="https://gen.test/v1beta", http_client=_client(handler))
        await adapter.submit(VideoGenerationRequest(prompt="x", model="veo-3.0-fast-generate-001"))

    with pytest.raises(ProviderRejected, match="non-JSON"):
        asyncio.run(scenario())


@pytest.mark.parametrize(
    ("size", "expected"),
    [
        ("1280x720", "16:9"),
        ("720x1280", "9:16"),
        ("1024x1024", "1:1"),
        (None, "16:9"),
        ("garbage", "16:9"),
        ("0x720", "16:9"),
    ],
)
def test_derive_aspect_ratio(size, expected):
    assert derive_aspect_ratio(size) == expected


def test_extract_progress_key_precedence():
    assert extract_progress({"progressPercent": 40, "progress": 10}) == 40
    assert extract_progress({"progressPercentage": 55.5}) == 55
    assert extract_progress({"progress": 7}) == 7
    assert extract_progress({"progress": "7"}) is None
    assert extract_progress(None) is None
