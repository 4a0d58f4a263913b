"""Inference client - one chat-completions call per tool payload, with classified failures."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

import httpx

from app.core import config
from app.core.contracts import FailureKind
from app.llm.prompts import build_messages

logger = logging.getLogger("wellwell.llm.inference")


class InferenceError(Exception):
    """Base class for every classified inference failure."""

    kind: FailureKind = FailureKind.unknown


class InferenceNetworkError(InferenceError):
    """Raised when the endpoint is unreachable or not configured."""

    kind = FailureKind.network


class InferenceRateLimited(InferenceError):
    """Raised on HTTP 429."""

    kind = FailureKind.rate_limited


class InferenceQuotaExceeded(InferenceError):
    """Raised on HTTP 402 (AI usage limit reached)."""

    kind = FailureKind.quota_exceeded


class InferenceTimeout(InferenceError):
    """Raised when the caller's maximum wait expires."""

    kind = FailureKind.timeout


class InferenceUnknownFailure(InferenceError):
    """Raised for any other status, or an empty / unparsable response."""

    kind = FailureKind.unknown


def _parse_json(raw: str) -> dict | None:
    """Best-effort JSON parse from LLM output."""
    cleaned = re.sub(r"```(?:json)?\s*", "", raw).strip().rstrip("`")
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        match = re.search(r"\{.*\}", cleaned, re.DOTALL)
        if not match:
            return None
        try:
            parsed = json.loads(match.group())
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, dict) else None


class InferenceClient:
    """Calls an OpenAI-compatible ``/chat/completions`` endpoint in JSON mode."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (config.WW_INFERENCE_URL if base_url is None else base_url).rstrip("/")
        self.api_key = config.WW_INFERENCE_API_KEY if api_key is None else api_key
        self.model = model or config.WW_INFERENCE_MODEL
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def ping(self) -> bool:
        """Return True if the endpoint answers its model listing."""
        if not self.configured:
            return False
        try:
            async with self._client(5.0) as client:
                r = await client.get(
                    f"{self.base_url}/models",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                return r.status_code == 200
        except httpx.HTTPError:
            return False

    async def invoke(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Send one tool payload and return the parsed JSON analysis.

        Raises an InferenceError subclass on every failure.
        """
        if not self.configured:
            raise InferenceNetworkError("inference endpoint not configured")

        body = {
            "model": self.model,
            "messages": build_messages(payload),
            "response_format": {"type": "json_object"},
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            async with self._client(config.WW_INFERENCE_TIMEOUT) as client:
                r = await client.post(f"{self.base_url}/chat/completions", json=body, headers=headers)
        except httpx.TimeoutException as exc:
            raise InferenceTimeout(f"inference timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise InferenceNetworkError(f"inference transport error: {exc}") from exc

        logger.info("Inference response status=%d type=%s", r.status_code, payload.get("type"))

        if r.status_code == 429:
            raise InferenceRateLimited("rate limit exceeded")
        if r.status_code == 402:
            raise InferenceQuotaExceeded("AI usage limit reached")
        if r.status_code >= 400:
            raise InferenceUnknownFailure(f"inference failed with HTTP {r.status_code}")

        try:
            data = r.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise InferenceUnknownFailure("malformed completion envelope") from exc
        if not content:
            raise InferenceUnknownFailure("empty AI response")

        parsed = _parse_json(content)
        if parsed is None:
            raise InferenceUnknownFailure("invalid AI response format")
        # Some gateways wrap the analysis as {"success": ..., "analysis": {...}}
        if isinstance(parsed.get("analysis"), dict):
            return parsed["analysis"]
        return parsed
