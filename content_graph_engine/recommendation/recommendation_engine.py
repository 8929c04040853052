"""
Recommendation Engine

Ranks content a learner could move on to from their current unit:
1. Tag overlap between the current unit and each candidate
2. Difficulty proximity
3. Explicit sequence and practice links
4. Review suggestions for completed content
"""

import logging
from typing import Iterable, List, Optional, Set, Tuple

from ..data.catalog import ContentCatalog
from ..data.graph_store import GraphStore
from ..data.schemas import (
    ContentDescriptor, Recommendation, RecommendationCategory,
    RecommendationReason, Relationship, RelationshipType
)
from ..errors import ValidationError

logger = logging.getLogger(__name__)


def tag_overlap(a: Set[str], b: Set[str]) -> float:
    """|A ∩ B| / max(|A|, |B|), case-insensitive; 0 when both are empty."""
    a = {t.lower() for t in a}
    b = {t.lower() for t in b}
    if not a and not b:
        return 0.0
    return len(a & b) / max(len(a), len(b))


def categorize(reasons: List[RecommendationReason]) -> RecommendationCategory:
    kinds = {r.kind for r in reasons}
    if "next-in-sequence" in kinds:
        return RecommendationCategory.NEXT_IN_SEQUENCE
    if "practice" in kinds:
        return RecommendationCategory.PRACTICE
    if "tag-overlap" not in kinds and "difficulty-match" in kinds:
        return RecommendationCategory.SIMILAR_DIFFICULTY
    return RecommendationCategory.RELATED_TOPIC


class RecommendationEngine:
    """
    Scores candidates against the learner's current unit.

    score = tag_weight * overlap + difficulty_weight * proximity
            + sequence_bonus (sequence link current -> candidate)
            + practice_bonus (practice link completed -> candidate)
    clamped to [0, 1].
    """

    def __init__(
        self,
        catalog: ContentCatalog,
        store: GraphStore,
        tag_weight: float = 0.4,
        difficulty_weight: float = 0.3,
        sequence_bonus: float = 0.9,
        practice_bonus: float = 0.5,
        max_difficulty_span: Optional[int] = None,
        min_score: float = 0.0,
        default_top_n: int = 5
    ):
        self.catalog = catalog
        self.store = store
        self.tag_weight = tag_weight
        self.difficulty_weight = difficulty_weight
        self.sequence_bonus = sequence_bonus
        self.practice_bonus = practice_bonus
        self.max_difficulty_span = max_difficulty_span
        self.min_score = min_score
        self.default_top_n = default_top_n

    def _span(self, catalog: ContentCatalog) -> int:
        if self.max_difficulty_span:
            return max(1, self.max_difficulty_span)
        return catalog.difficulty_span()

    def _similarity_reasons(
        self,
        source: ContentDescriptor,
        candidate: ContentDescriptor,
        span: int
    ) -> Tuple[float, List[RecommendationReason]]:
        score = 0.0
        reasons = []

        overlap = tag_overlap(source.tags, candidate.tags)
        if overlap > 0:
            weight = self.tag_weight * overlap
            score += weight
            shared = sorted({t.lower() for t in source.tags} & {t.lower() for t in candidate.tags})
            reasons.append(RecommendationReason(
                kind="tag-overlap",
                weight=weight,
                description=f"Shares topics with {source.title}: {', '.join(shared)}"
            ))

        proximity = max(0.0, 1.0 - abs(source.difficulty_rank - candidate.difficulty_rank) / span)
        if proximity > 0:
            weight = self.difficulty_weight * proximity
            score += weight
            reasons.append(RecommendationReason(
                kind="difficulty-match",
                weight=weight,
                description=f"Difficulty {candidate.difficulty_rank} is close to {source.difficulty_rank}"
            ))

        return score, reasons

    def generate_recommendations(
        self,
        completed: Iterable[str],
        current_id: Optional[str],
        catalog: Optional[ContentCatalog] = None,
        top_n: Optional[int] = None
    ) -> List[Recommendation]:
        """
        Rank next content for a learner positioned at `current_id`.

        Args:
            completed: ids the learner has finished
            current_id: the unit the learner is on; unknown or None yields []
            catalog: candidate pool (defaults to the engine's catalog)
            top_n: maximum number of results

        Returns:
            Recommendations sorted by score descending, ties by target id
        """
        catalog = catalog if catalog is not None else self.catalog
        top_n = self.default_top_n if top_n is None else top_n
        source = catalog.get(current_id) if current_id is not None else None
        if source is None and current_id is not None:
            source = self.catalog.get(current_id)
        if source is None:
            logger.debug(f"No recommendations for unknown source {current_id!r}")
            return []

        completed = set(completed)
        outgoing = self.store.get_outgoing_links(source.id)
        sequence_targets = {l.target_id for l in outgoing if l.type == RelationshipType.SEQUENCE}
        linked = {l.target_id for l in outgoing if l.type != RelationshipType.SEQUENCE}

        practice_targets = set()
        for completed_id in completed:
            for link in self.store.get_outgoing_links(completed_id):
                if link.type == RelationshipType.PRACTICE:
                    practice_targets.add(link.target_id)

        span = self._span(catalog)
        recommendations = []
        for candidate in catalog:
            if candidate.id == source.id or candidate.id in completed or candidate.id in linked:
                continue

            score, reasons = self._similarity_reasons(source, candidate, span)
            if candidate.id in sequence_targets:
                score += self.sequence_bonus
                reasons.append(RecommendationReason(
                    kind="next-in-sequence",
                    weight=self.sequence_bonus,
                    description=f"Logical next step after {source.title}"
                ))
            if candidate.id in practice_targets:
                score += self.practice_bonus
                reasons.append(RecommendationReason(
                    kind="practice",
                    weight=self.practice_bonus,
                    description="Practice exercises for mastered concepts"
                ))

            score = min(1.0, max(0.0, score))
            if not reasons or score < self.min_score:
                continue
            recommendations.append(Recommendation(
                source_id=source.id,
                target_id=candidate.id,
                category=categorize(reasons),
                score=score,
                reasons=reasons
            ))

        recommendations.sort(key=lambda r: (-r.score, r.target_id))
        return recommendations[:max(0, top_n)]

    def accept_recommendation(self, recommendation: Recommendation) -> Relationship:
        """
        Turn a recommendation into an automatic link.

        If an identical link already exists it is returned unchanged.
        """
        if recommendation.source_id is None:
            raise ValidationError("Recommendation has no source to link from", field="source_id")

        link_type = recommendation.relationship_type
        existing = self.store.find_link(recommendation.source_id, recommendation.target_id, link_type)
        if existing is not None:
            logger.info(f"Recommendation {recommendation.source_id} -> {recommendation.target_id} already linked")
            return existing

        return self.store.create_link(
            recommendation.source_id,
            recommendation.target_id,
            link_type,
            strength=recommendation.score,
            description=recommendation.reason,
            automatic=True
        )

    def generate_review_suggestions(self, completed: Iterable[str], limit: int = 3) -> List[Recommendation]:
        """Suggest completed units to revisit, hardest first."""
        completed = set(completed)
        candidates = [d for d in self.catalog if d.id in completed]
        candidates.sort(key=lambda d: (-d.difficulty_rank, d.id))

        suggestions = []
        for descriptor in candidates[:max(0, limit)]:
            suggestions.append(Recommendation(
                source_id=None,
                target_id=descriptor.id,
                category=RecommendationCategory.REVIEW,
                score=min(1.0, 0.4 + 0.1 * descriptor.difficulty_rank),
                reasons=[RecommendationReason(
                    kind="review",
                    weight=0.6,
                    description=f"Review {descriptor.title} to reinforce learning"
                )]
            ))
        return suggestions

    def suggest_links(self, min_score: float = 0.6, limit: int = 20) -> List[Recommendation]:
        """
        Suggest links between catalog pairs that are not linked either way.

        Pair score is the weighted tag/difficulty similarity normalized by
        the total weight, so identical descriptors score 1.
        """
        linked = set()
        for link in self.store.all_links():
            linked.add((link.source_id, link.target_id))
            linked.add((link.target_id, link.source_id))

        total_weight = self.tag_weight + self.difficulty_weight
        if total_weight <= 0:
            return []

        span = self._span(self.catalog)
        descriptors = list(self.catalog)
        suggestions = []
        for i, first in enumerate(descriptors):
            for second in descriptors[i + 1:]:
                if (first.id, second.id) in linked:
                    continue
                raw, reasons = self._similarity_reasons(first, second, span)
                score = min(1.0, raw / total_weight)
                if not reasons or score < min_score:
                    continue
                suggestions.append(Recommendation(
                    source_id=first.id,
                    target_id=second.id,
                    category=categorize(reasons),
                    score=score,
                    reasons=reasons
                ))

        suggestions.sort(key=lambda r: (-r.score, r.source_id, r.target_id))
        logger.info(f"Suggested {min(len(suggestions), limit)} links from {len(descriptors)} units")
        return suggestions[:max(0, limit)]
