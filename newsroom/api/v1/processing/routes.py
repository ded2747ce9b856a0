"""
Processing API routes: one endpoint per pipeline stage.

Provides endpoints for:
- POST /score - Score unscored raw items
- POST /generate - Generate an article from a raw item
- POST /validate - Validate article text
- POST /publish - Publish a validated article
"""
from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ....core.config import Settings, get_settings
from ....core.dependencies import raise_http
from ....core.errors import PipelineError, PreconditionFailed
from ....database import get_db
from ....services.processing import (
    ContentGenerator,
    GenerationRequest,
    Publisher,
    PublishRequest,
    RelevanceScorer,
    ValidationRequest,
    ValidationService,
)

router = APIRouter(tags=["processing"])
logger = logging.getLogger(__name__)


class GenerateRequestBody(BaseModel):
    raw_content_id: Optional[str] = None
    neighborhood: Optional[str] = None
    category: Optional[str] = None
    force: bool = False


class ValidateRequestBody(BaseModel):
    content_text: Optional[str] = None
    category: Optional[str] = None
    title: Optional[str] = None
    content_id: Optional[str] = None


class PublishRequestBody(BaseModel):
    content_id: Optional[str] = None
    auto_publish: bool = False
    neighborhood: Optional[str] = None


def get_scorer(settings: Settings = Depends(get_settings)) -> RelevanceScorer:
    return RelevanceScorer(settings=settings)


def get_generator(settings: Settings = Depends(get_settings)) -> ContentGenerator:
    return ContentGenerator(settings=settings)


def get_validation_service(settings: Settings = Depends(get_settings)) -> ValidationService:
    return ValidationService(settings=settings)


def get_publisher(settings: Settings = Depends(get_settings)) -> Publisher:
    return Publisher(settings=settings)


@router.post("/score")
async def score_items(
    scorer: RelevanceScorer = Depends(get_scorer),
    db: AsyncSession = Depends(get_db),
):
    logger.info("[PROCESSING] POST /score")
    try:
        report = await scorer.score_pending(db)
        return report.to_dict()
    except PipelineError as e:
        raise_http(e)
    except Exception as e:
        logger.error(f"[PROCESSING] Scoring failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Scoring failed: {str(e)}")


@router.post("/generate", status_code=201)
async def generate_article(
    body: GenerateRequestBody,
    generator: ContentGenerator = Depends(get_generator),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """400 without raw_content_id, 404 for unknown items, 409 if not eligible."""
    logger.info(f"[PROCESSING] POST /generate: raw_content_id={body.raw_content_id}")
    try:
        result = await generator.generate(
            GenerationRequest(
                raw_item_id=body.raw_content_id,
                region=body.neighborhood or settings.default_region,
                category=body.category,
                force=body.force,
            ),
            db,
        )
        return result.to_dict()
    except PipelineError as e:
        logger.warning(f"[PROCESSING] Generation refused: {e}")
        raise_http(e)
    except Exception as e:
        logger.error(f"[PROCESSING] Generation failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Content generation failed: {str(e)}")


@router.post("/validate")
async def validate_content(
    body: ValidateRequestBody,
    service: ValidationService = Depends(get_validation_service),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.validate(
            ValidationRequest(
                content_text=body.content_text,
                category=body.category,
                title=body.title,
                content_id=body.content_id,
            ),
            db,
        )
    except PipelineError as e:
        raise_http(e)
    except Exception as e:
        logger.error(f"[PROCESSING] Validation failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Content validation failed: {str(e)}")


@router.post("/publish")
async def publish_article(
    body: PublishRequestBody,
    publisher: Publisher = Depends(get_publisher),
    db: AsyncSession = Depends(get_db),
):
    """Not eligible is reported as 404, like a missing article."""
    logger.info(f"[PROCESSING] POST /publish: content_id={body.content_id}, auto={body.auto_publish}")
    try:
        return await publisher.publish(
            PublishRequest(content_id=body.content_id, auto_publish=body.auto_publish, segment=body.neighborhood),
            db,
        )
    except PreconditionFailed as e:
        raise_http(e, status_code=404)
    except PipelineError as e:
        raise_http(e)
    except Exception as e:
        logger.error(f"[PROCESSING] Publishing failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Publishing failed: {str(e)}")
