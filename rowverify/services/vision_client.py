# rowverify/services/vision_client.py
"""
Vision oracle client — asks an external multimodal model (Anthropic Messages API)
to read the distance off a rowing machine display photo.

Endpoint: POST {VISION_API_URL}  (image as base64 + fixed instruction prompt)
Returns:  VisionResult — always. Timeouts, HTTP errors, rate limits and
          unparseable answers all come back as success=False, confidence 0,
          concerns=["AI verification failed"], so a flaky oracle degrades the
          submission to human review instead of failing it.
"""

import asyncio
import base64
import math
import re
from dataclasses import dataclass, field
from typing import Optional
import httpx
from rowverify.config import settings
from rowverify.utils.json_parser import extract_json_object, get_nested, safe_parse_json
from rowverify.utils.logger import get_logger

logger = get_logger(__name__)

FAILED_CONCERN = "AI verification failed"

_NUMBER_RE = re.compile(r"-?\d[\d,\s]*(?:\.\d+)?")

VERIFY_PROMPT = """You are verifying a rowing machine display photo. The user claims: {claimed} meters.

Respond in this EXACT JSON format only:
{{
  "isRowingMachineDisplay": true/false,
  "displayType": "Concept2 PM5" or "WaterRower" or "Generic" or "Unknown" or "Not a rowing machine",
  "extractedMeters": number or null,
  "matchesClaimed": true/false,
  "overallConfidence": 0-100,
  "concerns": ["short concern", ...],
  "reasoning": "Brief explanation"
}}

Look for the main distance display (usually the largest number, 3-5 digits).
Respond ONLY with the JSON object. No prose, no markdown."""

EXTRACT_PROMPT = """You are analyzing a rowing machine display photo. Extract the distance in meters shown on the display.

Respond in this EXACT JSON format only:
{
  "isRowingMachineDisplay": true/false,
  "displayType": "Concept2 PM5" or "WaterRower" or "Generic" or "Unknown" or "Not a rowing machine",
  "extractedMeters": number or null,
  "overallConfidence": 0-100,
  "concerns": ["short concern", ...],
  "reasoning": "Brief explanation"
}

Look for the main distance display (usually the largest number, 3-5 digits).
Respond ONLY with the JSON object. No prose, no markdown."""


@dataclass
class VisionResult:
    success: bool
    is_plausible_display: Optional[bool] = None
    display_type: Optional[str] = None
    extracted_value: Optional[float] = None
    matches_claimed: Optional[bool] = None
    value_difference: Optional[float] = None
    confidence: float = 0
    concerns: list[str] = field(default_factory=list)
    reasoning: Optional[str] = None
    error: Optional[str] = None    # diagnostic when success is False


def failed_result(message: str) -> VisionResult:
    return VisionResult(success=False, confidence=0, concerns=[FAILED_CONCERN],
                        reasoning=message, error=message)


def build_prompt(claimed_meters: Optional[float]) -> str:
    """Verification prompt when a claim is given, extraction prompt otherwise."""
    if not claimed_meters:
        return EXTRACT_PROMPT
    claimed = int(claimed_meters) if float(claimed_meters).is_integer() else claimed_meters
    return VERIFY_PROMPT.format(claimed=claimed)


def guess_media_type(image_bytes: bytes) -> str:
    if image_bytes.startswith(b"\x89PNG"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    if image_bytes.startswith(b"GIF8"):
        return "image/gif"
    return settings.VISION_MEDIA_TYPE


# ── Field coercion (every field optional at the parse boundary) ─────────────

def _to_bool(value) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes"):
            return True
        if lowered in ("false", "no"):
            return False
    return None


def _to_number(value) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    number = None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        match = _NUMBER_RE.search(value)
        if match:
            try:
                number = float(re.sub(r"[,\s]", "", match.group(0)))
            except ValueError:
                return None
    # json.loads accepts NaN and Infinity literals
    if number is None or not math.isfinite(number):
        return None
    return number


def _to_confidence(value) -> float:
    number = _to_number(value)
    if number is None:
        return 0
    return max(0.0, min(100.0, number))


def _to_concerns(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(c) for c in value if c is not None and str(c).strip()]
    return [str(value)]


def parse_vision_response(text: str, claimed_meters: Optional[float]) -> VisionResult:
    """Turn raw oracle text into a VisionResult. Never raises."""
    data = extract_json_object(text)
    if data is None:
        snippet = (text or "")[:120].replace("\n", " ")
        logger.warning(f"[VISION] Could not parse oracle response: {snippet!r}")
        return failed_result("Could not parse AI response")

    extracted = _to_number(data.get("extractedMeters"))
    difference = None
    if extracted is not None and claimed_meters:
        difference = abs(claimed_meters - extracted)

    return VisionResult(
        success=True,
        is_plausible_display=_to_bool(data.get("isRowingMachineDisplay")),
        display_type=str(data["displayType"]) if data.get("displayType") is not None else None,
        extracted_value=extracted,
        matches_claimed=_to_bool(data.get("matchesClaimed")),
        value_difference=difference,
        confidence=_to_confidence(data.get("overallConfidence")),
        concerns=_to_concerns(data.get("concerns")),
        reasoning=str(data["reasoning"]) if data.get("reasoning") is not None else None,
    )


def _response_text(body) -> Optional[str]:
    """Concatenate the text blocks of a Messages API response body."""
    if not isinstance(body, dict) or not isinstance(body.get("content"), list):
        return None
    parts = [
        block.get("text", "")
        for block in body["content"]
        if isinstance(block, dict) and block.get("type") == "text"
    ]
    return "".join(parts) if parts else None


async def _call_oracle(client: httpx.AsyncClient, image_bytes: bytes, prompt: str) -> httpx.Response:
    payload = {
        "model": settings.VISION_MODEL,
        "max_tokens": settings.VISION_MAX_TOKENS,
        "messages": [
            {
                "role": "user",
                "content": [
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": guess_media_type(image_bytes),
                            "data": base64.b64encode(image_bytes).decode("ascii"),
                        },
                    },
                    {"type": "text", "text": prompt},
                ],
            }
        ],
    }
    headers = {
        "x-api-key": settings.ANTHROPIC_API_KEY or "",
        "anthropic-version": settings.ANTHROPIC_VERSION,
        "content-type": "application/json",
    }
    return await client.post(settings.VISION_API_URL, json=payload, headers=headers)


async def verify_with_vision(image_bytes: bytes, claimed_meters: Optional[float],
                             client: Optional[httpx.AsyncClient] = None) -> VisionResult:
    """
    Send the image and claim to the oracle and parse its answer.
    Pass claimed_meters=None for extraction mode.
    """
    if not settings.VISION_ENABLED:
        logger.error("[VISION] ANTHROPIC_API_KEY not configured")
        return failed_result("API key not configured")

    prompt = build_prompt(claimed_meters)
    timeout = settings.VISION_TIMEOUT_SECONDS

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as own_client:
                response = await asyncio.wait_for(_call_oracle(own_client, image_bytes, prompt), timeout)
        else:
            response = await asyncio.wait_for(_call_oracle(client, image_bytes, prompt), timeout)
    except asyncio.TimeoutError:
        logger.warning(f"[VISION] Oracle call exceeded {timeout}s")
        return failed_result("AI verification timed out")
    except httpx.TimeoutException:
        logger.warning(f"[VISION] Oracle call timed out ({timeout}s)")
        return failed_result("AI verification timed out")
    except httpx.HTTPError as e:
        logger.error(f"[VISION] Transport error: {e}")
        return failed_result(f"AI service unreachable: {e.__class__.__name__}")
    except Exception as e:
        logger.error(f"[VISION] Unexpected oracle error: {e}", exc_info=True)
        return failed_result("AI verification error")

    if response.status_code != 200:
        detail = get_nested(safe_parse_json(response.content) or {}, "error", "message") or response.text[:200]
        logger.error(f"[VISION] API error {response.status_code}: {detail}")
        return failed_result(f"API error: {response.status_code}")

    try:
        body = response.json()
    except ValueError:
        logger.error("[VISION] Oracle returned a non-JSON envelope")
        return failed_result("Malformed AI service response")

    text = _response_text(body)
    if text is None:
        logger.error("[VISION] Oracle response had no text content")
        return failed_result("Empty AI response")

    result = parse_vision_response(text, claimed_meters)
    if result.success:
        logger.info(
            f"[VISION] display={result.is_plausible_display} type={result.display_type} "
            f"extracted={result.extracted_value} matches={result.matches_claimed} "
            f"confidence={result.confidence}"
        )
    return result
