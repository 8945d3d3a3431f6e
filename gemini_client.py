# gemini_client.py
import base64
import logging
from typing import Optional, Tuple

import httpx

from errors import GenerationError
from settings import settings

log = logging.getLogger(__name__)


class GeminiError(GenerationError):
    pass


_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def guess_mime_type(data: bytes, default: str = "image/png") -> str:
    for magic, mime in _SIGNATURES:
        if data.startswith(magic):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return default


def _headers():
    api_key = settings.gemini_api_key
    if not api_key:
        raise GeminiError("GEMINI_API_KEY not set")
    return {
        "x-goog-api-key": api_key,
        "Content-Type": "application/json",
    }


def _payload(image_data: bytes, prompt_text: str) -> dict:
    return {
        "contents": [
            {
                "parts": [
                    {
                        "inlineData": {
                            "mimeType": guess_mime_type(image_data),
                            "data": base64.b64encode(image_data).decode("ascii"),
                        }
                    },
                    {"text": prompt_text},
                ]
            }
        ],
        "generationConfig": {"responseModalities": ["IMAGE", "TEXT"]},
    }


def _error_message(r: httpx.Response) -> str:
    detail = None
    try:
        body = r.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        detail = body["error"].get("message")
    return f"Gemini request failed ({r.status_code}): {detail or r.text}"


def _extract_image(data: dict) -> Tuple[bytes, str]:
    """
    Pull the first inline image out of a generateContent response.
    Text parts are the model explaining itself; keep the first one for the error.
    """
    feedback = data.get("promptFeedback") or {}
    if feedback.get("blockReason"):
        raise GeminiError(f"Request was blocked: {feedback['blockReason']}")

    text: Optional[str] = None
    for candidate in data.get("candidates") or []:
        for part in (candidate.get("content") or {}).get("parts") or []:
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and inline.get("data"):
                mime = inline.get("mimeType") or inline.get("mime_type") or "image/png"
                return base64.b64decode(inline["data"]), mime
            if part.get("text") and text is None:
                text = part["text"]

    if text:
        raise GeminiError(f"No image was generated. Model response: {text}")
    raise GeminiError("No image was generated.")


async def generate_image_edit(
    image_data: bytes,
    prompt_text: str,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Tuple[bytes, str]:
    """
    Ask Gemini to edit `image_data` following `prompt_text`.
    Returns (image bytes, mime type) of the first generated image.
    """
    url = f"{settings.gemini_api_base.rstrip('/')}/models/{settings.gemini_model}:generateContent"
    timeout = httpx.Timeout(settings.gemini_timeout_sec, connect=10.0)
    async with httpx.AsyncClient(timeout=timeout, headers=_headers(), transport=transport) as client:
        try:
            r = await client.post(url, json=_payload(image_data, prompt_text))
        except httpx.HTTPError as e:
            log.warning("gemini request error: %s", e)
            raise GeminiError(f"Gemini request failed: {e}") from e
        if r.status_code >= 300:
            raise GeminiError(_error_message(r))
        try:
            data = r.json()
        except ValueError as e:
            raise GeminiError("Gemini returned a non-JSON response") from e
        return _extract_image(data)
