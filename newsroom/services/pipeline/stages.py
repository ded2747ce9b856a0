"""
Stage gateways: how the orchestrator reaches each pipeline stage.

LocalStageGateway calls the services in-process with a fresh DB session
per call. HttpStageGateway calls the stage endpoints of a deployed
instance. Both return the same response dicts as the HTTP API and raise
the shared PipelineError taxonomy.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import logging

import httpx

from newsroom.core.config import Settings, get_settings
from newsroom.core.errors import InvalidInput, NotFound, PipelineError, PreconditionFailed, UpstreamFailure
from newsroom.services.collectors.feed_collector import FeedCollector
from newsroom.services.processing.generator import ContentGenerator, GenerationRequest
from newsroom.services.processing.publisher import Publisher, PublishRequest
from newsroom.services.processing.scorer import RelevanceScorer
from newsroom.services.processing.validator import ValidationRequest, ValidationService

logger = logging.getLogger(__name__)


class StageGateway(ABC):
    """One method per stage; each call is independent and best-effort."""

    @abstractmethod
    async def collect(self, sources: Optional[List[str]] = None, limit: Optional[int] = None) -> Dict[str, Any]:
        """Returns {collected, sources, by_source, errors}."""

    @abstractmethod
    async def score(self) -> Dict[str, Any]:
        """Returns {processed, qualified, qualification_rate, items}."""

    @abstractmethod
    async def generate(
        self,
        raw_item_id: str,
        region: str,
        category: Optional[str] = None,
        force: bool = False,
    ) -> Dict[str, Any]:
        """Returns {content_id, title, confidence, ...}."""

    @abstractmethod
    async def validate(
        self,
        content_text: str,
        category: Optional[str] = None,
        title: Optional[str] = None,
        content_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Returns {confidence, approved, checks, flags}."""

    @abstractmethod
    async def publish(self, content_id: str, auto_publish: bool = False, segment: Optional[str] = None) -> Dict[str, Any]:
        """Returns the publication record."""


class LocalStageGateway(StageGateway):
    """Runs each stage in-process."""

    def __init__(
        self,
        session_factory,
        collector: FeedCollector,
        scorer: RelevanceScorer,
        generator: ContentGenerator,
        validation: ValidationService,
        publisher: Publisher,
    ):
        self.session_factory = session_factory
        self.collector = collector
        self.scorer = scorer
        self.generator = generator
        self.validation = validation
        self.publisher = publisher

    async def collect(self, sources=None, limit=None):
        report = await self.collector.collect(sources=sources, limit=limit)
        return report.to_dict()

    async def score(self):
        async with self.session_factory() as session:
            report = await self.scorer.score_pending(session)
        return report.to_dict()

    async def generate(self, raw_item_id, region, category=None, force=False):
        async with self.session_factory() as session:
            result = await self.generator.generate(
                GenerationRequest(raw_item_id=raw_item_id, region=region, category=category, force=force),
                session,
            )
        return result.to_dict()

    async def validate(self, content_text, category=None, title=None, content_id=None):
        async with self.session_factory() as session:
            return await self.validation.validate(
                ValidationRequest(content_text=content_text, category=category, title=title, content_id=content_id),
                session,
            )

    async def publish(self, content_id, auto_publish=False, segment=None):
        async with self.session_factory() as session:
            return await self.publisher.publish(
                PublishRequest(content_id=content_id, auto_publish=auto_publish, segment=segment),
                session,
            )


class HttpStageGateway(StageGateway):
    """Calls stage endpoints over HTTP; URLs come from settings."""

    STATUS_ERRORS = {
        400: InvalidInput,
        404: NotFound,
        409: PreconditionFailed,
    }

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self._transport = transport
        self._logger = logging.getLogger(f"{__name__}.HttpStageGateway")

    async def _post(self, url: str, json: Optional[dict] = None, params: Optional[dict] = None) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.stage_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(url, json=json, params=params)
        except httpx.HTTPError as e:
            raise UpstreamFailure(f"Stage call to {url} failed: {type(e).__name__}: {e}") from e

        if response.is_success:
            try:
                return response.json()
            except ValueError as e:
                raise UpstreamFailure(f"Stage {url} returned invalid JSON") from e

        detail = self._detail(response)
        error_cls = self.STATUS_ERRORS.get(response.status_code, UpstreamFailure)
        raise error_cls(f"{url} returned {response.status_code}: {detail}")

    @staticmethod
    def _detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(body, dict):
            return str(body.get("detail") or body.get("error") or body)[:200]
        return str(body)[:200]

    async def collect(self, sources=None, limit=None):
        params = {}
        if sources:
            params["sources"] = ",".join(sources)
        if limit:
            params["limit"] = limit
        return await self._post(self.settings.collector_url, params=params)

    async def score(self):
        return await self._post(self.settings.scorer_url)

    async def generate(self, raw_item_id, region, category=None, force=False):
        return await self._post(self.settings.generator_url, json={
            "raw_content_id": raw_item_id,
            "neighborhood": region,
            "category": category,
            "force": force,
        })

    async def validate(self, content_text, category=None, title=None, content_id=None):
        return await self._post(self.settings.validator_url, json={
            "content_text": content_text,
            "category": category,
            "title": title,
            "content_id": content_id,
        })

    async def publish(self, content_id, auto_publish=False, segment=None):
        return await self._post(self.settings.publisher_url, json={
            "content_id": content_id,
            "auto_publish": auto_publish,
            "neighborhood": segment,
        })


def build_stage_gateway(session_factory, ledger=None, settings: Optional[Settings] = None, text_client=None) -> StageGateway:
    """Gateway selected by STAGE_TRANSPORT ("local" or "http")."""
    settings = settings or get_settings()
    transport = settings.stage_transport.lower()
    if transport == "http":
        return HttpStageGateway(settings)
    if transport != "local":
        raise PipelineError(f"Unknown stage transport {settings.stage_transport!r}")
    return LocalStageGateway(
        session_factory=session_factory,
        collector=FeedCollector(session_factory, ledger=ledger, settings=settings),
        scorer=RelevanceScorer(settings=settings),
        generator=ContentGenerator(text_client=text_client, settings=settings),
        validation=ValidationService(settings=settings),
        publisher=Publisher(settings=settings),
    )
