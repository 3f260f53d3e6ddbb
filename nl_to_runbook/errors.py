"""
Translation of technical failure messages into user-facing ones.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Pattern, Sequence, Tuple, Union

import yaml

from .types import ErrorCategory, TranslationResult

logger = logging.getLogger(__name__)


GENERIC_ERROR_MESSAGE = "An error occurred while processing your request."
UNMATCHED_ERROR_MESSAGE = "An unexpected error occurred while processing your request."


@dataclass(frozen=True)
class ErrorMapping:
    pattern: str
    user_message: str
    category: str


# Used only when the configured mapping file cannot be loaded
DEFAULT_ERROR_MAPPINGS = (
    ErrorMapping(
        r"Connection refused.*",
        "Unable to connect to the downstream service. The service may be unavailable.",
        ErrorCategory.CONNECTION_ERROR.value,
    ),
    ErrorMapping(
        r"NameResolutionError|Failed to resolve|Name or service not known",
        "The downstream service address could not be resolved. Please contact support.",
        ErrorCategory.CONNECTION_ERROR.value,
    ),
    ErrorMapping(
        r".*timeout.*",
        "The operation took too long to complete. Please try again.",
        ErrorCategory.TIMEOUT_ERROR.value,
    ),
    ErrorMapping(
        r".*",
        "An unexpected error occurred. Please contact support.",
        ErrorCategory.UNKNOWN_ERROR.value,
    ),
)


def load_error_mappings(path: Union[str, Path]) -> Optional[List[ErrorMapping]]:
    """
    Read errorMappings from a YAML file.

    Entries without a pattern or user message are skipped. Returns None if
    the file cannot be read or holds no usable mappings.
    """
    try:
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load error mappings from {path}: {e}")
        return None

    raw_mappings = data.get('errorMappings') if isinstance(data, dict) else None
    if not isinstance(raw_mappings, list):
        logger.error(f"No errorMappings list found in {path}")
        return None

    mappings = []
    for entry in raw_mappings:
        if not isinstance(entry, dict) or not entry.get('pattern') or not entry.get('userMessage'):
            logger.warning(f"Skipping malformed error mapping: {entry}")
            continue
        mappings.append(ErrorMapping(
            pattern=str(entry['pattern']),
            user_message=str(entry['userMessage']),
            category=str(entry.get('category') or ErrorCategory.UNKNOWN_ERROR.value),
        ))

    return mappings or None


class ErrorTranslator:
    """
    Ordered, first-match table of (pattern, user message, category).

    Patterns are matched case-insensitively anywhere in the message, so
    specific patterns must come before generic catch-alls.
    """

    def __init__(self, mappings: Optional[Sequence[ErrorMapping]] = None):
        if mappings is None:
            mappings = DEFAULT_ERROR_MAPPINGS
        self._table: List[Tuple[Pattern[str], ErrorMapping]] = []
        for mapping in mappings:
            try:
                self._table.append((re.compile(mapping.pattern, re.IGNORECASE), mapping))
            except re.error as e:
                logger.warning(f"Invalid regex pattern in error mappings: {mapping.pattern} ({e})")

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ErrorTranslator":
        mappings = load_error_mappings(path)
        if mappings is None:
            logger.error("Using default error message mappings")
            return cls()
        logger.info(f"Loaded {len(mappings)} error message mappings")
        return cls(mappings)

    def __len__(self) -> int:
        return len(self._table)

    def translate(self, technical_error: Optional[str]) -> TranslationResult:
        if not technical_error:
            return TranslationResult(
                user_message=GENERIC_ERROR_MESSAGE,
                technical_details=None,
                category=ErrorCategory.UNKNOWN_ERROR.value,
            )

        for pattern, mapping in self._table:
            if pattern.search(technical_error):
                logger.debug(f"Matched error pattern {mapping.pattern!r} for error: {technical_error}")
                return TranslationResult(
                    user_message=mapping.user_message,
                    technical_details=technical_error,
                    category=mapping.category,
                )

        return TranslationResult(
            user_message=UNMATCHED_ERROR_MESSAGE,
            technical_details=technical_error,
            category=ErrorCategory.UNKNOWN_ERROR.value,
        )
