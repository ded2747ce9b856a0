"""
Content validation for generated articles.

Runs a fixed set of named checks over article text and turns them into a
confidence score. The checks are pure; ValidationService optionally
records the outcome on the Article row.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any
from datetime import datetime, timezone
import re
import logging

from sqlalchemy import select, update

from newsroom.core.config import Settings, get_settings
from newsroom.core.errors import InvalidInput, NotFound, PreconditionFailed
from newsroom.models.article import Article, ArticleStatus
from newsroom.services.collectors.config import CATEGORY_KEYWORDS, LOCAL_KEYWORDS

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of content validation."""
    confidence: float
    approved: bool
    checks: Dict[str, bool] = field(default_factory=dict)
    flags: List[str] = field(default_factory=list)
    quality_indicators: Dict[str, bool] = field(default_factory=dict)
    notes: List[str] = field(default_factory=list)

    def __repr__(self):
        status = "APPROVED" if self.approved else "REJECTED"
        return f"<ValidationResult({status}, confidence={self.confidence:.2f}, flags={len(self.flags)})>"

    def to_dict(self) -> dict:
        return {
            "confidence": round(self.confidence, 3),
            "approved": self.approved,
            "checks": self.checks,
            "flags": self.flags,
            "quality_indicators": self.quality_indicators,
            "notes": self.notes,
        }


class ContentValidator:
    """
    Validates generated article text.

    Checks:
    - Length within bounds
    - At least three sentences
    - No banned terms
    - No spam patterns
    - Not repetitive
    - Sane capitalization
    - Few URLs
    - Category/content coherence
    - Local context (Prague or a covered neighborhood)
    - Title length, when a title is given
    """

    MIN_LENGTH = 100
    MAX_LENGTH = 4000
    MIN_SENTENCES = 3
    MIN_TITLE_LENGTH = 10
    MAX_TITLE_LENGTH = 80

    MAX_CAPS_RATIO = 0.5
    MAX_URL_RATIO = 0.15
    MIN_UNIQUENESS = 0.3

    BASE_WEIGHT = 0.9
    QUALITY_BONUS = 0.02
    MAX_CONFIDENCE = 0.95
    BANNED_CAP = 0.3

    BANNED_PATTERNS = [
        re.compile(r'\b(viagra|cialis|casino|kasino|poker|betting|sázky)\b', re.I),
        re.compile(r'\blorem ipsum\b', re.I),
        re.compile(r'\b(as an ai|jako ai|jako jazykový model)\b', re.I),
        re.compile(r'\{\{.*?\}\}|\[(?:insert|vložte)[^\]]*\]', re.I),
    ]

    SPAM_PATTERNS = [
        re.compile(r'\b(buy now|click here|limited time|act now|free money)\b', re.I),
        re.compile(r'\b(winner|congratulations|you\'ve won)\b', re.I),
        re.compile(r'[A-ZÁČĎÉĚÍŇÓŘŠŤÚŮÝŽ]{20,}'),
    ]

    QUALITY_PATTERNS = {
        "specific_locations": re.compile(r'náměstí|ulice|park|stanice|zastávka', re.I),
        "time_relevance": re.compile(r'dnes|zítra|tento týden|aktuálně', re.I),
        "actionable_info": re.compile(r'doporučuje|můžete|sledujte|pozor', re.I),
        "contact_info": re.compile(r'telefon|e-?mail|web', re.I),
    }

    URL_PATTERN = re.compile(r'https?://\S+')
    SENTENCE_PATTERN = re.compile(r'[^.!?]+[.!?]')

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._logger = logging.getLogger(f"{__name__}.ContentValidator")

    def validate(self, text: Optional[str], category: Optional[str] = None, title: Optional[str] = None) -> ValidationResult:
        """
        Run every check and aggregate a confidence score.

        Raises:
            InvalidInput: if text is empty
        """
        if not text or not text.strip():
            raise InvalidInput("Missing required field: content_text")
        text = text.strip()

        banned = self._find_banned(text)
        checks = {
            "length_ok": self.MIN_LENGTH <= len(text) <= self.MAX_LENGTH,
            "proper_structure": len(self.SENTENCE_PATTERN.findall(text)) >= self.MIN_SENTENCES,
            "no_banned_terms": not banned,
            "no_spam": not any(p.search(text) for p in self.SPAM_PATTERNS),
            "not_repetitive": self._uniqueness(text) >= self.MIN_UNIQUENESS,
            "capitalization_ok": self._caps_ratio(text) <= self.MAX_CAPS_RATIO,
            "url_density_ok": self._url_ratio(text) <= self.MAX_URL_RATIO,
            "category_coherent": self._category_coherent(text, category),
            "local_context": any(kw in text.lower() for kw in LOCAL_KEYWORDS),
        }
        if title is not None:
            title = title.strip()
            checks["title_appropriate"] = self.MIN_TITLE_LENGTH <= len(title) <= self.MAX_TITLE_LENGTH

        quality = {name: bool(p.search(text)) for name, p in self.QUALITY_PATTERNS.items()}

        passed = sum(1 for ok in checks.values() if ok)
        confidence = (passed / len(checks)) * self.BASE_WEIGHT
        confidence += sum(1 for ok in quality.values() if ok) * self.QUALITY_BONUS
        confidence = min(confidence, self.MAX_CONFIDENCE)
        if banned:
            confidence = min(confidence, self.BANNED_CAP)

        flags = [name for name, ok in checks.items() if not ok]
        flags.extend(f"banned_term:{term}" for term in banned)

        result = ValidationResult(
            confidence=confidence,
            approved=confidence >= self.settings.validation_threshold,
            checks=checks,
            flags=flags,
            quality_indicators=quality,
            notes=self._notes(checks) if confidence < 0.6 else [],
        )
        if not result.approved:
            self._logger.debug(f"[VALIDATE] Below threshold: {result}")
        return result

    def _find_banned(self, text: str) -> List[str]:
        found = []
        for pattern in self.BANNED_PATTERNS:
            match = pattern.search(text)
            if match:
                found.append(match.group(0)[:30].lower())
        return found

    def _uniqueness(self, text: str) -> float:
        words = text.lower().split()
        if len(words) <= 10:
            return 1.0
        return len(set(words)) / len(words)

    def _caps_ratio(self, text: str) -> float:
        alpha = [c for c in text if c.isalpha()]
        if not alpha:
            return 0.0
        return sum(1 for c in alpha if c.isupper()) / len(alpha)

    def _url_ratio(self, text: str) -> float:
        url_chars = sum(len(u) for u in self.URL_PATTERN.findall(text))
        return url_chars / len(text)

    def _category_coherent(self, text: str, category: Optional[str]) -> bool:
        keywords = CATEGORY_KEYWORDS.get((category or "").lower())
        if not keywords:
            return True
        lowered = text.lower()
        return any(kw in lowered for kw in keywords)

    @staticmethod
    def _notes(checks: Dict[str, bool]) -> List[str]:
        hints = {
            "length_ok": "Content is too short or too long",
            "proper_structure": "Write at least three full sentences",
            "category_coherent": "Content does not match its category",
            "local_context": "Add specific local references",
            "not_repetitive": "Content repeats itself",
        }
        return [hint for name, hint in hints.items() if not checks.get(name, True)]


@dataclass
class ValidationRequest:
    content_text: Optional[str]
    category: Optional[str] = None
    title: Optional[str] = None
    content_id: Optional[str] = None


class ValidationService:
    """Validator plus persistence of the outcome on the Article, when one is named."""

    def __init__(self, validator: Optional[ContentValidator] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.validator = validator or ContentValidator(self.settings)
        self._logger = logging.getLogger(f"{__name__}.ValidationService")

    async def validate(self, request: ValidationRequest, db_session=None) -> Dict[str, Any]:
        result = self.validator.validate(request.content_text, request.category, request.title)
        response = result.to_dict()

        if request.content_id and db_session is not None:
            outcome = await db_session.execute(
                update(Article)
                .where(Article.id == request.content_id, Article.status == ArticleStatus.GENERATED.value)
                .values(
                    confidence=result.confidence,
                    validated_at=datetime.now(timezone.utc),
                    validation_flags=result.flags,
                )
                .execution_options(synchronize_session=False)
            )
            if outcome.rowcount == 0:
                await db_session.rollback()
                status = (await db_session.execute(
                    select(Article.status).where(Article.id == request.content_id)
                )).scalar_one_or_none()
                if status is None:
                    raise NotFound(f"Article {request.content_id} not found", content_id=request.content_id)
                raise PreconditionFailed(
                    f"Article {request.content_id} has status {status!r}, only generated articles are revalidated",
                    content_id=request.content_id,
                )
            await db_session.commit()
            response["content_id"] = request.content_id
            self._logger.info(
                f"[VALIDATE] Article {request.content_id}: confidence={result.confidence:.2f}, "
                f"approved={result.approved}"
            )

        return response
