import asyncio
import base64
import json

import httpx
import pytest

import gemini_client
from gemini_client import GeminiError, generate_image_edit, guess_mime_type
from settings import settings

PNG = b"\x89PNG\r\n\x1a\nsource"
EDITED = b"\x89PNG\r\n\x1a\nedited"


@pytest.fixture(autouse=True)
def gemini_settings(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", "test-key")
    monkeypatch.setattr(settings, "gemini_model", "test-model")
    monkeypatch.setattr(settings, "gemini_api_base", "https://gemini.test/v1beta/")


def _call(handler):
    return asyncio.run(generate_image_edit(PNG, "add a hat", transport=httpx.MockTransport(handler)))


def _image_response(parts):
    return httpx.Response(200, json={"candidates": [{"content": {"parts": parts}}]})


def test_returns_first_inline_image():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers["x-goog-api-key"]
        seen["body"] = json.loads(request.content)
        return _image_response([
            {"text": "Here you go"},
            {"inlineData": {"mimeType": "image/jpeg", "data": base64.b64encode(EDITED).decode()}},
        ])

    data, mime = _call(handler)
    assert (data, mime) == (EDITED, "image/jpeg")
    assert seen["url"] == "https://gemini.test/v1beta/models/test-model:generateContent"
    assert seen["key"] == "test-key"
    image_part, text_part = seen["body"]["contents"][0]["parts"]
    assert image_part["inlineData"]["mimeType"] == "image/png"
    assert base64.b64decode(image_part["inlineData"]["data"]) == PNG
    assert text_part == {"text": "add a hat"}


def test_error_status_uses_api_message():
    def handler(request):
        return httpx.Response(429, json={"error": {"code": 429, "message": "Resource has been exhausted"}})

    with pytest.raises(GeminiError, match=r"\(429\): Resource has been exhausted"):
        _call(handler)


def test_blocked_prompt():
    def handler(request):
        return httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}})

    with pytest.raises(GeminiError, match="blocked: SAFETY"):
        _call(handler)


def test_non_json_success_body_is_a_gemini_error():
    def handler(request):
        return httpx.Response(200, text="<html>gateway says hi</html>")

    with pytest.raises(GeminiError, match="non-JSON response"):
        _call(handler)


def test_text_only_answer_is_an_error():
    def handler(request):
        return _image_response([{"text": "I can't edit this image."}])

    with pytest.raises(GeminiError, match="No image was generated. Model response: I can't edit this image."):
        _call(handler)


def test_network_errors_become_gemini_errors():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GeminiError, match="connection refused"):
        _call(handler)


def test_missing_api_key(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", "")
    with pytest.raises(GeminiError, match="GEMINI_API_KEY"):
        _call(lambda request: httpx.Response(200))


@pytest.mark.parametrize(
    "data,expected",
    [
        (b"\xff\xd8\xff\xe0rest", "image/jpeg"),
        (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
        (b"GIF89a...", "image/gif"),
        (b"unknown", "image/png"),
    ],
)
def test_guess_mime_type(data, expected):
    assert gemini_client.guess_mime_type(data) == expected
    assert guess_mime_type(PNG) == "image/png"
