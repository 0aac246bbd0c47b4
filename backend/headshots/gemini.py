import logging
from typing import Any, Dict, Optional, Tuple

import requests

from . import config
from .errors import EmptyResultError, TransportError

logger = logging.getLogger("headshot_studio.gemini")


class GeminiClient:
    """Thin wrapper over the ``generateContent`` REST call."""

    def __init__(
        self,
        api_key: str = config.GEMINI_API_KEY,
        image_endpoint: str = config.GEMINI_IMAGE_ENDPOINT,
        text_endpoint: str = config.GEMINI_TEXT_ENDPOINT,
        timeout: Optional[float] = config.GEMINI_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.image_endpoint = image_endpoint
        self.text_endpoint = text_endpoint
        self.timeout = timeout
        self.session = session or requests.Session()

    def generate_image(self, prompt: str, image_b64: str, mime_type: str = "image/jpeg") -> Optional[Tuple[str, str]]:
        """Return ``(base64, mime_type)`` of the first image part, or None."""
        payload = {
            "contents": [{
                "parts": [
                    {"text": prompt},
                    {"inlineData": {"mimeType": mime_type, "data": image_b64}},
                ]
            }],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }
        data = self._call(self.image_endpoint, payload, "API Error")
        for cand in data.get("candidates") or []:
            for p in (cand.get("content") or {}).get("parts") or []:
                inline = p.get("inlineData")
                if inline and inline.get("data"):
                    return inline["data"], inline.get("mimeType") or "image/png"
        logger.warning("No image part in model response")
        return None

    def generate_text(self, prompt: str, json_output: bool = False) -> str:
        payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
        if json_output:
            payload["generationConfig"] = {"responseMimeType": "application/json"}
        data = self._call(self.text_endpoint, payload, "Gemini API Error")
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            text = None
        if not text:
            raise EmptyResultError("The model returned no text")
        return text

    def _call(self, endpoint: str, payload: Dict[str, Any], label: str) -> Dict[str, Any]:
        if not self.api_key:
            logger.error("GEMINI_API_KEY not set")
            raise TransportError(f"{label}: GEMINI_API_KEY not set")
        try:
            resp = self.session.post(
                endpoint,
                headers={
                    "Content-Type": "application/json",
                    "X-goog-api-key": self.api_key,
                },
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.exception("Upstream request error: %s", e)
            raise TransportError(f"Upstream error: {e}")

        if resp.status_code != 200:
            logger.error("Upstream non-200 status=%s body=%s", resp.status_code, resp.text[:400])
            raise TransportError(f"{label}: {_error_message(resp)}", status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            logger.exception("Failed to parse upstream response: %s", e)
            raise TransportError(f"{label}: malformed response body")
        if not isinstance(data, dict):
            logger.error("Upstream body is not a JSON object: %s", resp.text[:400])
            raise TransportError(f"{label}: malformed response body")
        return data


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return "Unknown error"
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("message") or "Unknown error"
    return "Unknown error"
