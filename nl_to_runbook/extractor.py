"""
Entity extraction from natural-language queries using runbook regex patterns.
"""

import logging
import re
from typing import Dict, Mapping, Optional

from .definitions import EntityConfig
from .patterns import normalize_status
from .types import ExtractionResult

logger = logging.getLogger(__name__)


# Normalizers an entity can select with its "normalize" option
NORMALIZERS = {
    "status": normalize_status,
}


def extract_entity(query: str, name: str, config: EntityConfig) -> Optional[str]:
    """
    Extract one entity.

    Patterns are tried in declaration order and matched case-insensitively.
    The first pattern that matches decides the outcome: its first capture
    group (or the whole match when the pattern has no group) is transformed,
    normalized and validated, and a validation failure ends extraction for
    this entity without trying later patterns. Malformed patterns are skipped.
    """
    normalizer = None
    if config.normalize:
        normalizer = NORMALIZERS.get(config.normalize.strip().lower())
        if normalizer is None:
            logger.warning(f"Unknown normalizer '{config.normalize}' for entity '{name}'")

    for pattern in config.patterns:
        try:
            match = re.search(pattern, query, re.IGNORECASE)
        except re.error as e:
            logger.warning(f"Skipping invalid pattern for entity '{name}': {pattern} ({e})")
            continue

        if not match:
            continue
        value = match.group(1) if match.re.groups else match.group(0)
        if value is None:
            continue

        value = config.transform.apply(value)
        if normalizer is not None:
            value = normalizer(value)

        if config.validation is not None:
            reason = config.validation.failure_reason(value, name)
            if reason is not None:
                logger.warning(f"Validation failed for entity '{name}': {reason}")
                return None

        return value

    return None


def extract_entities(query: Optional[str], entities: Optional[Mapping[str, EntityConfig]]) -> ExtractionResult:
    """
    Extract every configured entity from a query.

    Extraction is best-effort: entities that cannot be found are left out of
    the result, and required ones are listed in missing_required.
    """
    result = ExtractionResult()
    if not entities:
        return result

    query = query or ""
    for name, config in entities.items():
        value = extract_entity(query, name, config)
        if value is not None:
            result.entities[name] = value
            logger.debug(f"Extracted entity '{name}': {value}")
        elif config.required:
            result.missing_required.append(name)
            logger.warning(f"Required entity '{name}' not found in query: {query}")

    logger.debug(f"Extracted entities: {result.entities}")
    return result


def extract(query: Optional[str], entities: Optional[Mapping[str, EntityConfig]]) -> Dict[str, str]:
    """Extracted entity values keyed by entity name."""
    return extract_entities(query, entities).entities
