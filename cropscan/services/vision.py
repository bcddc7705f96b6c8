"""
Vision Diagnostic Service
Sends a crop photo to a hosted multimodal model (OpenAI chat completions)
with a fixed instruction prompt and parses the structured JSON diagnosis.
"""
import json
import logging
import os
from typing import Any, Dict, Optional

import httpx

from ..agents.validator import parse_analysis_result
from ..errors import ConfigurationError, InputError, UpstreamError
from ..models import AnalysisResult

logger = logging.getLogger(__name__)

OPENAI_DEFAULT_URL = "https://api.openai.com/v1/chat/completions"
OPENAI_DEFAULT_MODEL = "gpt-4o"
DEFAULT_MAX_TOKENS = 1500
# Low temperature keeps diagnostic wording consistent between scans
DEFAULT_TEMPERATURE = 0.2


def get_openai_api_key() -> str:
    """Get OpenAI API key from environment."""
    return os.getenv("OPENAI_API_KEY", "").strip()


def get_openai_api_url() -> str:
    return os.getenv("OPENAI_API_URL", OPENAI_DEFAULT_URL)


def get_openai_model() -> str:
    return os.getenv("OPENAI_MODEL", OPENAI_DEFAULT_MODEL)


def get_openai_timeout() -> float:
    return float(os.getenv("OPENAI_TIMEOUT_SECONDS", "60"))


SYSTEM_PROMPT = """
You are an expert agricultural plant pathologist helping smallholder farmers. Analyze the provided crop image and RETURN ONLY ONE STRICT JSON OBJECT (parsable by json.loads()). Do NOT output any explanation, commentary, or markdown.

Required keys:
- `diseaseName` (string): common name of the disease or pest, or "Healthy" when no disease is visible.
- `confidence` (number): 0-100, how certain you are of the diagnosis.
- `cropType` (string): the crop shown in the image, e.g. "Tomato", "Maize".
- `severity` (string): exactly one of "Mild", "Moderate", "Severe".
- `symptoms` (array of short strings): visible symptoms, at least one.
- `treatment` (string): short, actionable treatment advice, never empty.
- `prevention` (array of short strings): prevention measures, at least one.

Keep all farmer-facing text short and in plain language. Use a conservative `confidence` when image quality is poor.
"""

USER_PROMPT = "Analyze this crop image for diseases and return the diagnosis as the JSON object described."


def build_payload(image_data_url: str, model: str, max_tokens: int, temperature: float) -> Dict[str, Any]:
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT.strip()},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": USER_PROMPT},
                    {"type": "image_url", "image_url": {"url": image_data_url, "detail": "high"}},
                ],
            },
        ],
        "max_tokens": max_tokens,
        "temperature": temperature,
        "response_format": {"type": "json_object"},
    }


def _strip_code_fences(content: str) -> str:
    txt = (content or "").strip()
    if txt.startswith("```json"):
        txt = txt[7:]
    if txt.startswith("```"):
        txt = txt[3:]
    if txt.endswith("```"):
        txt = txt[:-3]
    return txt.strip()


def _extract_content(response: Any) -> str:
    if not isinstance(response, dict):
        return ""
    choices = response.get("choices") or []
    if not choices:
        return ""
    message = choices[0].get("message") or {}
    return message.get("content") or ""


def parse_openai_response(response: Dict[str, Any]) -> AnalysisResult:
    """Turn a chat-completions response body into a validated AnalysisResult."""
    content = _extract_content(response)
    if not content.strip():
        raise UpstreamError("No content in OpenAI response")

    try:
        parsed = json.loads(_strip_code_fences(content))
    except json.JSONDecodeError as e:
        raise UpstreamError("Failed to parse AI response as JSON", details=str(e))

    return parse_analysis_result(parsed)


def analyze_crop_image(
    image_data_url: str,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    temperature: float = DEFAULT_TEMPERATURE,
    client: Optional[httpx.Client] = None,
) -> AnalysisResult:
    """Diagnose a crop image with the hosted vision model.

    Raises InputError for a missing/non data-URL image, ConfigurationError
    when no credential is configured and UpstreamError for every failure of
    the inference call itself. Nothing is retried.
    """
    if not image_data_url:
        raise InputError("Image data is required")
    if not image_data_url.startswith("data:image/"):
        raise InputError("Invalid image format. Must be a base64 data URL.")

    api_key = api_key or get_openai_api_key()
    if not api_key:
        raise ConfigurationError("OPENAI_API_KEY not configured")

    payload = build_payload(image_data_url, model or get_openai_model(), max_tokens, temperature)
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    logger.info("[Vision] requesting diagnosis model=%s image_chars=%d", payload["model"], len(image_data_url))
    owns_client = client is None
    if owns_client:
        client = httpx.Client(timeout=get_openai_timeout())
    try:
        response = client.post(get_openai_api_url(), json=payload, headers=headers)
    except httpx.HTTPError as e:
        raise UpstreamError("Network error", details=str(e))
    finally:
        if owns_client:
            client.close()

    if response.status_code < 200 or response.status_code >= 300:
        raise UpstreamError(
            f"OpenAI API request failed with status {response.status_code}",
            details=response.text,
        )

    try:
        body = response.json()
    except ValueError as e:
        raise UpstreamError("Invalid response from OpenAI API", details=str(e))

    return parse_openai_response(body)
