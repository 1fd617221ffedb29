import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from backend import api
from backend.config import Settings
from backend.errors import UpstreamError
from backend.llm_adapter import ChunkRelay
from backend.prompts import ContentKind
from navigator.client import GenerationClient, error_from_response


def _sse(*parts) -> bytes:
    frames = [
        "data: " + json.dumps({"choices": [{"delta": {"content": p}}]}) + "\n\n" for p in parts
    ]
    return ("".join(frames) + "data: [DONE]\n\n").encode("utf-8")


@pytest.fixture
def upstream():
    """Point get_relay at a mock provider; tests set `state["handler"]` / `state["key"]`."""
    state = {"key": "test-key", "requests": []}

    def handler(request):
        state["requests"].append(json.loads(request.content))
        return state["handler"](request)

    def relay():
        settings = Settings(model_api_key=state["key"], model_api_url="https://model.test/v1/chat/completions")
        return ChunkRelay(settings, transport=httpx.MockTransport(handler))

    api.app.dependency_overrides[api.get_relay] = relay
    yield state
    api.app.dependency_overrides.clear()


def test_outline_streams_plain_text(upstream):
    upstream["handler"] = lambda request: httpx.Response(200, content=_sse("<h3>Chap", "ter 1</h3>"))
    client = TestClient(api.app)

    response = client.post("/generate/outline", json={"action": "generateOutlineHTML", "topic": "Photosynthesis"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.text == "<h3>Chapter 1</h3>"
    sent = upstream["requests"][0]
    assert sent["stream"] is True
    assert "Photosynthesis" in sent["messages"][0]["content"]


def test_missing_key_returns_500_json(upstream):
    upstream["key"] = None
    upstream["handler"] = lambda request: httpx.Response(200, content=_sse("x"))
    client = TestClient(api.app)

    response = client.post("/generate/notes", json={"title": "Biology", "sectionTitle": "Cells", "subtopic": "Mitosis"})

    assert response.status_code == 500
    assert response.json()["error"] == "Model API key is not configured"
    assert upstream["requests"] == []


def test_upstream_status_is_propagated(upstream):
    upstream["handler"] = lambda request: httpx.Response(401, text="invalid api key")
    client = TestClient(api.app)

    response = client.post("/generate/quiz", json={"title": "Biology", "sectionTitle": "Cells", "subtopic": "Mitosis"})

    assert response.status_code == 401
    body = response.json()
    assert body["error"] == "Model API request failed"
    assert body["details"] == "invalid api key"


def test_wrong_action_is_rejected(upstream):
    upstream["handler"] = lambda request: httpx.Response(200, content=_sse("x"))
    client = TestClient(api.app)

    response = client.post("/generate/subOutline", json={"action": "other", "subtopic": "Cells", "mainTopic": "Biology"})

    assert response.status_code == 400
    assert upstream["requests"] == []


def test_missing_required_field_is_400(upstream):
    upstream["handler"] = lambda request: httpx.Response(200, content=_sse("x"))
    client = TestClient(api.app)

    response = client.post("/generate/diveDeeper", json={"topicChain": "Main Topic: 'Biology'"})

    assert response.status_code == 400
    assert "error" in response.json()


def test_notes_fields_default_when_omitted(upstream):
    upstream["handler"] = lambda request: httpx.Response(200, content=_sse("<p>ok</p>"))
    client = TestClient(api.app)

    response = client.post("/generate/notes", json={})

    assert response.status_code == 200
    assert "Unknown Subtopic" in upstream["requests"][0]["messages"][0]["content"]


def test_health():
    client = TestClient(api.app)
    assert client.get("/health").json() == {"status": "ok"}


def test_generation_client_streams_through_the_api(upstream):
    upstream["handler"] = lambda request: httpx.Response(200, content=_sse("<p>Chloro", "phyll</p>"))
    client = GenerationClient("http://testserver", transport=httpx.ASGITransport(app=api.app))

    async def run():
        payload = {"topicChain": "Main Topic: 'Biology'", "followUpQuestion": "Why green?"}
        return b"".join([chunk async for chunk in client.stream(ContentKind.DIVE_DEEPER, payload)])

    assert asyncio.run(run()) == b"<p>Chlorophyll</p>"


def test_generation_client_raises_error_from_json_body(upstream):
    upstream["key"] = None
    upstream["handler"] = lambda request: httpx.Response(200)
    client = GenerationClient("http://testserver", transport=httpx.ASGITransport(app=api.app))

    async def run():
        return [chunk async for chunk in client.stream(ContentKind.OUTLINE, {"action": "generateOutlineHTML", "topic": "X"})]

    with pytest.raises(UpstreamError) as exc:
        asyncio.run(run())
    assert exc.value.status_code == 500
    assert exc.value.message == "Model API key is not configured"


def test_error_from_response_handles_non_json():
    error = error_from_response(502, b"Bad Gateway")
    assert error.status_code == 502
    assert error.body == "Bad Gateway"
