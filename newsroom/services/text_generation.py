"""
Client for the external text-generation service.

Goes through the Anthropic SDK: one request per call, SDK retries off.
Retrying is left to the next pipeline run re-selecting the item.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import json
import logging
import re
import time

import anthropic

from newsroom.core.config import Settings, get_settings
from newsroom.core.errors import UpstreamFailure

logger = logging.getLogger(__name__)

JSON_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.I)


@dataclass
class GeneratedText:
    """Structured reply from the generation service."""
    title: str
    content: str
    summary: str = ""
    confidence: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class TextGenerationClient:
    """Async client for the text-generation API."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[anthropic.AsyncAnthropic] = None):
        self.settings = settings or get_settings()
        self._client = client
        self._logger = logging.getLogger(f"{__name__}.TextGenerationClient")

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(
                api_key=self.settings.generation_api_key or None,
                base_url=self.settings.generation_base_url,
                timeout=self.settings.generation_timeout_seconds,
                max_retries=0,
            )
        return self._client

    async def generate(self, prompt: str) -> GeneratedText:
        """
        Send one prompt and parse the JSON article it returns.

        Raises:
            UpstreamFailure: API error, transport error or unusable reply
        """
        start_time = time.time()
        try:
            response = await self.client.messages.create(
                model=self.settings.generation_model,
                max_tokens=self.settings.generation_max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIStatusError as e:
            raise UpstreamFailure(f"Generation service returned {e.status_code}: {str(e)[:200]}") from e
        except anthropic.APIError as e:
            raise UpstreamFailure(f"Generation request failed: {type(e).__name__}: {e}") from e

        generated = parse_generated_text(reply_text(response))
        self._logger.debug(f"[GENERATE] Reply parsed in {time.time() - start_time:.2f}s")
        return generated


def reply_text(response: Any) -> str:
    """
    Join the text blocks of a Messages reply.

    Raises:
        UpstreamFailure: reply has no usable content list
    """
    try:
        return "".join(
            block.text
            for block in response.content
            if getattr(block, "type", None) == "text"
        )
    except (AttributeError, TypeError) as e:
        raise UpstreamFailure(f"Generation reply has unexpected shape: {e}") from e


def parse_generated_text(text: str) -> GeneratedText:
    """
    Parse the model's JSON reply, tolerating a ```json fence.

    Raises:
        UpstreamFailure: reply is not a JSON object with title and content
    """
    cleaned = JSON_FENCE.sub("", (text or "").strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise UpstreamFailure(f"Generation reply is not JSON: {e}") from e

    if not isinstance(data, dict) or not data.get("title") or not data.get("content"):
        raise UpstreamFailure("Generation reply is missing title or content")

    confidence = data.get("confidence")
    try:
        confidence = float(confidence) if confidence is not None else None
    except (TypeError, ValueError):
        confidence = None

    return GeneratedText(
        title=str(data["title"]).strip(),
        content=str(data["content"]).strip(),
        summary=str(data.get("summary") or "").strip(),
        confidence=confidence,
        metadata=data.get("metadata") if isinstance(data.get("metadata"), dict) else {},
    )
