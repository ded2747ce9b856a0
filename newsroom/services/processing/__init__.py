"""
Processing stages for collected items and generated articles:
- Relevance scoring of raw items
- Article generation through the text-generation service
- Content validation and confidence scoring
- Publishing to audience segments
"""
from .scorer import RelevanceScorer, RelevanceHeuristic, ScoringReport
from .generator import ContentGenerator, GenerationRequest, GenerationResult
from .validator import ContentValidator, ValidationResult, ValidationService, ValidationRequest
from .publisher import Publisher, PublishRequest

__all__ = [
    "RelevanceScorer",
    "RelevanceHeuristic",
    "ScoringReport",
    "ContentGenerator",
    "GenerationRequest",
    "GenerationResult",
    "ContentValidator",
    "ValidationResult",
    "ValidationService",
    "ValidationRequest",
    "Publisher",
    "PublishRequest",
]
