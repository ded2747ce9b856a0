"""
Hand-off to the external newsletter sender.

The pipeline only signals that a scheduled send is due; rendering and
delivery happen on the other side of NEWSLETTER_URL.
"""
from typing import Optional
import logging

import httpx

from newsroom.core.config import Settings, get_settings
from newsroom.core.errors import UpstreamFailure

logger = logging.getLogger(__name__)


class NewsletterTrigger:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._logger = logging.getLogger(f"{__name__}.NewsletterTrigger")

    async def trigger(self) -> dict:
        url = self.settings.newsletter_url
        if not url:
            self._logger.info("[SCHEDULER] Newsletter endpoint not configured, skipping")
            return {"triggered": False, "reason": "NEWSLETTER_URL not set"}

        try:
            async with httpx.AsyncClient(timeout=self.settings.stage_timeout_seconds) as client:
                response = await client.post(url, json={"trigger": "scheduled"})
        except httpx.HTTPError as e:
            raise UpstreamFailure(f"Newsletter trigger failed: {type(e).__name__}: {e}") from e

        if not response.is_success:
            raise UpstreamFailure(f"Newsletter endpoint returned {response.status_code}")

        self._logger.info("[SCHEDULER] Newsletter send triggered")
        return {"triggered": True, "status_code": response.status_code}
