"""
Article generation from qualifying raw items.

One request produces at most one call to the text-generation service.
Nothing is written unless that call succeeds.
"""
from dataclasses import dataclass
from typing import Optional
import logging

from sqlalchemy import select

from newsroom.core.config import Settings, get_settings
from newsroom.core.errors import InvalidInput, NotFound, PreconditionFailed
from newsroom.models.article import Article, ArticleStatus
from newsroom.models.news_item import RawItem
from newsroom.services.processing.scorer import infer_category
from newsroom.services.text_generation import TextGenerationClient

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """Transform this raw content into a polished local news article for {region}, Prague.

SOURCE CONTENT:
Title: {title}
Content: {body}
Category: {category}
Source: {source}

REQUIREMENTS:
- Write in Czech for residents of {region}
- Include specific neighborhood relevance and practical implications
- Professional journalism tone, 200-400 words
- Headline of at most 80 characters
- Lead paragraph with key facts, 2-3 body paragraphs, closing with local impact

Respond ONLY with valid JSON:
{{"title": "...", "content": "...", "summary": "2-sentence summary", "confidence": 0.0, "metadata": {{}}}}"""


@dataclass
class GenerationRequest:
    raw_item_id: Optional[str]
    region: Optional[str]
    category: Optional[str] = None
    force: bool = False


@dataclass
class GenerationResult:
    content_id: str
    title: str
    category: str
    region: str
    raw_item_id: str
    confidence: Optional[float] = None
    source_score: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "content_id": self.content_id,
            "title": self.title,
            "category": self.category,
            "neighborhood": self.region,
            "raw_content_id": self.raw_item_id,
            "confidence": self.confidence,
            "source_score": self.source_score,
            "status": ArticleStatus.GENERATED.value,
        }


class ContentGenerator:
    """Turns one RawItem into one Article with status `generated`."""

    def __init__(self, text_client=None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.text_client = text_client or TextGenerationClient(self.settings)
        self._logger = logging.getLogger(f"{__name__}.ContentGenerator")

    def build_prompt(self, item: RawItem, region: str, category: str) -> str:
        return PROMPT_TEMPLATE.format(
            region=region,
            title=item.title,
            body=item.body,
            category=category,
            source=(item.item_metadata or {}).get("source_name", item.source_id),
        )

    async def generate(self, request: GenerationRequest, db_session) -> GenerationResult:
        """
        Generate and persist an Article.

        Raises:
            InvalidInput: raw_item_id or region missing
            NotFound: no such RawItem
            PreconditionFailed: item below the qualification threshold or
                already generated (both bypassed by force)
            UpstreamFailure: the generation call failed
        """
        if not request.raw_item_id:
            raise InvalidInput("Missing required field: raw_content_id")
        if not request.region:
            raise InvalidInput("Missing required field: neighborhood")

        item = await db_session.get(RawItem, request.raw_item_id)
        if item is None:
            raise NotFound(f"Raw item {request.raw_item_id} not found", raw_content_id=request.raw_item_id)

        threshold = self.settings.qualification_threshold
        if not request.force and not item.is_qualified(threshold):
            raise PreconditionFailed(
                f"Raw item {item.id} score {item.relevance_score} below {threshold}",
                required_score=threshold,
            )

        if not request.force:
            existing = (await db_session.execute(
                select(Article.id).where(Article.raw_item_id == item.id).limit(1)
            )).scalar_one_or_none()
            if existing:
                raise PreconditionFailed(
                    f"Content already generated for raw item {item.id}",
                    existing_id=existing,
                )

        category = request.category or infer_category(f"{item.title} {item.body}", item.category_hint)
        prompt = self.build_prompt(item, request.region, category)

        self._logger.info(f"[GENERATE] Generating article for raw item {item.id} ({request.region}/{category})")
        generated = await self.text_client.generate(prompt)

        article = Article(
            raw_item_id=item.id,
            title=generated.title,
            body=generated.content,
            summary=generated.summary,
            category=category,
            region=request.region,
            status=ArticleStatus.GENERATED.value,
            article_metadata={
                **generated.metadata,
                "model_confidence": generated.confidence,
                "source_score": item.relevance_score,
            },
        )
        db_session.add(article)
        await db_session.commit()

        self._logger.info(f"[GENERATE] Article {article.id} created: {article.title[:60]!r}")
        return GenerationResult(
            content_id=article.id,
            title=article.title,
            category=category,
            region=request.region,
            raw_item_id=item.id,
            confidence=article.confidence,
            source_score=item.relevance_score,
        )
