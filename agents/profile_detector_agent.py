"""
Profile Detector Agent - Classifies price list text into a document profile
"""
import re
from dataclasses import dataclass
from typing import Optional, Pattern, Tuple

from schemas.product_schemas import ExtractionProfile
from utils.logger import logger


@dataclass(frozen=True)
class ProfileRule:
    """
    Predicate over (lower-cased text, lower-cased filename)

    A rule matches when any filename keyword is present, when at least
    ``min_token_hits`` content tokens appear, or when ``row_pattern`` finds
    a characteristic row.
    """
    profile: ExtractionProfile
    filename_keywords: Tuple[str, ...] = ()
    content_tokens: Tuple[str, ...] = ()
    min_token_hits: int = 2
    row_pattern: Optional[Pattern] = None

    def matches(self, text: str, filename: str) -> bool:
        if filename and any(keyword in filename for keyword in self.filename_keywords):
            return True
        if self.content_tokens:
            hits = sum(1 for token in self.content_tokens if token in text)
            if hits >= self.min_token_hits:
                return True
        if self.row_pattern is not None and self.row_pattern.search(text):
            return True
        return False


class ProfileDetectorAgent:
    """
    Agent responsible for picking the document profile

    Pure and deterministic: rules are tried in declaration order and the
    first match wins. More specific profiles are declared first; anything
    unmatched is GENERIC.
    """

    RULES = (
        ProfileRule(
            profile=ExtractionProfile.BATTERY_CATALOG,
            filename_keywords=("sermat", "bateria", "batería", "battery"),
            content_tokens=("bateria", "batería", "amper", "cca", "borne", "12v"),
            # numeric-dash code opening a line, currency price later on it
            row_pattern=re.compile(r"^\s*\d{1,3}-\d{2,3}[a-z]?\s.*\$\s*\d", re.MULTILINE),
        ),
        ProfileRule(
            profile=ExtractionProfile.ADDITIVE_CATALOG,
            filename_keywords=("aditivo", "additive", "lubricante"),
            content_tokens=("aditivo", "additive", "lubricante", "refrigerante", "limpia inyectores", "octanaje"),
            # fixed-width numeric code, a package size, then a currency price
            row_pattern=re.compile(
                r"^\s*\d{4,6}\s.*\b\d+(?:[.,]\d+)?\s?(?:ml|cc|lts?|gr|kg)\b.*\$\s*\d",
                re.MULTILINE,
            ),
        ),
    )

    def __init__(self):
        self.name = "ProfileDetectorAgent"

    def detect(self, text: str, filename_hint: Optional[str] = None) -> ExtractionProfile:
        """
        Detect the document profile

        Args:
            text: Raw price list text
            filename_hint: Optional original filename

        Returns:
            Matching profile, GENERIC when no rule applies
        """
        lowered_text = (text or "").lower()
        lowered_filename = (filename_hint or "").lower()

        for rule in self.RULES:
            if rule.matches(lowered_text, lowered_filename):
                logger.debug(f"{self.name}: matched profile", profile=rule.profile.value)
                return rule.profile

        return ExtractionProfile.GENERIC


# Agent instance
profile_detector_agent = ProfileDetectorAgent()
