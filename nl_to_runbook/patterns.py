"""
Heuristic intent classifier.

Keyword and regex rules for the case-management tasks. Works without any
runbook loaded and is used as a fallback when the declarative classifier
finds no match.
"""

import logging
import re
from typing import Dict, Optional

from .types import UNKNOWN_TASK, ClassificationResult

logger = logging.getLogger(__name__)


CANCEL_CASE = "CANCEL_CASE"
UPDATE_CASE_STATUS = "UPDATE_CASE_STATUS"

# CASE-2024-001 style prefixes are optional: 2025123P6732, case 2024123P6731
CASE_ID_PATTERN = re.compile(r'\b(?:case[-_\s]?)?([0-9]{4,}[Pp]?[0-9]+)\b', re.IGNORECASE)

STATUS_PATTERN = re.compile(
    r'\b(pending|accessioning?|grossing|embedding|cutting|staining|microscopy|microtomy|'
    r'pathologist[_\s]?review|rostering|under[_\s]?review|on[_\s]?hold|completed?|'
    r'cancell?ed|archived?|closed?)\b',
    re.IGNORECASE,
)

FILLER_PATTERN = re.compile(r'\b(please|kindly|can you|could you|would you|i want to|i need to)\b')
ARTICLE_PATTERN = re.compile(r'\b(a|an|the)\b')
CASE_ID_PHRASE_PATTERN = re.compile(r'\bcase\s*id\b')

CANCEL_KEYWORDS = ("cancel", "cancellation", "abort", "delete", "remove", "stop case", "terminate", "drop")
UPDATE_INTENT_KEYWORDS = ("update", "change status", "set status")
STATUS_UPDATE_PHRASES = (
    "update status", "change status", "set status", "mark status", "status to",
    "mark as", "move to", "transition to", "mark to",
)
ACTION_VERBS = ("set", "mark", "change", "move", "transition", "update", "to")
STATUS_WORDS = (
    "pending", "accession", "grossing", "embedding", "cutting", "staining", "microscopy",
    "microtomy", "pathologist", "rostering", "review", "hold", "completed", "cancelled",
    "cancel", "archived", "closed",
)


def normalize_query(query: str) -> str:
    """Lowercase and strip filler words and articles, collapse "case id"."""
    normalized = query.lower()
    normalized = FILLER_PATTERN.sub('', normalized)
    normalized = ARTICLE_PATTERN.sub(' ', normalized)
    normalized = CASE_ID_PHRASE_PATTERN.sub('case', normalized)
    return re.sub(r'\s+', ' ', normalized).strip()


def normalize_status(status: str) -> str:
    """
    Canonical underscore form of a status.

    Examples:
        normalize_status('Pathologist Review') -> 'pathologist_review'
        normalize_status('accession') -> 'accessioning'
        normalize_status('review') -> 'under_review'
        normalize_status('on hold') -> 'on_hold'
    """
    normalized = re.sub(r'\s+', '_', status.lower().replace('_', ' ').strip())

    if normalized.startswith('accession'):
        return 'accessioning'
    if 'pathologist' in normalized and 'review' in normalized:
        return 'pathologist_review'
    if 'review' in normalized:
        return 'under_review'
    if 'hold' in normalized:
        return 'on_hold'
    return normalized


def _contains_any(text: str, keywords) -> bool:
    return any(keyword in text for keyword in keywords)


def extract_case_id(query: str) -> Optional[str]:
    match = CASE_ID_PATTERN.search(query)
    return match.group(1) if match else None


def extract_status(query: str) -> Optional[str]:
    match = STATUS_PATTERN.search(query)
    return normalize_status(match.group(1)) if match else None


def classify_task(normalized_query: str, entities: Dict[str, str]) -> str:
    """Apply the ordered keyword rules to a normalized query."""
    if _contains_any(normalized_query, CANCEL_KEYWORDS):
        # "cancel" inside a status update ("set status to cancelled") is not a cancellation
        if not _contains_any(normalized_query, UPDATE_INTENT_KEYWORDS):
            return CANCEL_CASE

    if _contains_any(normalized_query, STATUS_UPDATE_PHRASES):
        return UPDATE_CASE_STATUS

    if _contains_any(normalized_query, STATUS_WORDS) and _contains_any(normalized_query, ACTION_VERBS):
        return UPDATE_CASE_STATUS

    if 'case_id' in entities and 'status' in entities:
        return UPDATE_CASE_STATUS

    return UNKNOWN_TASK


class PatternClassifier:
    """Rule-based classifier for cancellation and status-update requests."""

    def classify(self, query: Optional[str]) -> ClassificationResult:
        if not query or not query.strip():
            return ClassificationResult(task_id=UNKNOWN_TASK)

        logger.info(f"Classifying query: {query}")
        entities: Dict[str, str] = {}

        case_id = extract_case_id(query)
        if case_id:
            entities['case_id'] = case_id

        status = extract_status(query)
        if status:
            entities['status'] = status

        task_id = classify_task(normalize_query(query), entities)
        logger.info(f"Classified as {task_id} with entities: {entities}")
        return ClassificationResult(task_id=task_id, entities=entities)
