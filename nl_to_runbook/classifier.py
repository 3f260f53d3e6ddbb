"""
Declarative intent classifier scoring queries against runbook keywords.
"""

import logging
from typing import List, Optional

from .definitions import UseCaseDefinition
from .registry import RunbookRegistry
from .types import UNKNOWN_TASK

logger = logging.getLogger(__name__)

KEYWORD_WEIGHT = 1.0
SYNONYM_WEIGHT = 0.5


def score_use_case(normalized_query: str, definition: UseCaseDefinition) -> float:
    """
    Score a lowercased, trimmed query against one definition.

    Each keyword contained in the query adds 1.0 and each synonym 0.5.
    A score under the definition's minConfidence counts as 0.
    """
    classification = definition.classification
    score = 0.0

    for keyword in classification.keywords:
        if keyword.lower() in normalized_query:
            score += KEYWORD_WEIGHT

    for alternates in classification.synonyms.values():
        for synonym in alternates:
            if synonym.lower() in normalized_query:
                score += SYNONYM_WEIGHT

    if classification.min_confidence is not None and score < classification.min_confidence:
        return 0.0
    return score


class RunbookClassifier:
    """Picks the registered runbook whose keywords best match a query."""

    def __init__(self, registry: RunbookRegistry):
        self.registry = registry

    def classify(self, query: Optional[str]) -> str:
        """
        Return the id of the best scoring runbook, or UNKNOWN.

        The highest score wins; ties go to the runbook loaded first.
        """
        snapshot = self.registry.snapshot
        if not self.registry.loading_enabled or not snapshot:
            logger.debug("Runbook classification disabled, returning UNKNOWN")
            return UNKNOWN_TASK

        normalized = (query or "").lower().strip()
        if not normalized:
            return UNKNOWN_TASK

        logger.debug(f"Classifying query: {query}")
        best_id, best_score = UNKNOWN_TASK, 0.0
        for definition in snapshot:
            score = score_use_case(normalized, definition)
            if score > 0:
                logger.debug(f"Use case {definition.id} scored: {score}")
            if score > best_score:
                best_id, best_score = definition.id, score

        if best_id == UNKNOWN_TASK:
            logger.warning(f"No matching use case found for query: {query}")
        else:
            logger.info(f"Classified as: {best_id} (score: {best_score})")
        return best_id

    def classify_multiple(self, query: Optional[str]) -> List[str]:
        """Ids of every runbook scoring above zero, in registry order."""
        snapshot = self.registry.snapshot
        if not self.registry.loading_enabled or not snapshot:
            return []

        normalized = (query or "").lower().strip()
        if not normalized:
            return []
        return [d.id for d in snapshot if score_use_case(normalized, d) > 0]
