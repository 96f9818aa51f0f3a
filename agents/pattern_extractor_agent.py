"""
Pattern Extractor Agent - Zero-cost extraction with per-profile line grammars
"""
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Pattern, Tuple

from config import settings
from schemas.product_schemas import DEFAULT_CATEGORY, ExtractionProfile, RawRecord
from utils.logger import logger
from utils.normalizer import OUT_OF_STOCK_PATTERN
from utils.price_parser import find_price


@dataclass(frozen=True)
class CodeGrammar:
    """Recognizer for "this line starts a product record"; ``pattern`` defines group ``code``"""
    name: str
    pattern: Pattern

    def match(self, line: str) -> Optional[re.Match]:
        return self.pattern.match(line)


@dataclass(frozen=True)
class ProfileGrammar:
    """Ordered code grammars plus profile-specific field enrichment"""
    profile: ExtractionProfile
    code_grammars: Tuple[CodeGrammar, ...]
    category: str = DEFAULT_CATEGORY
    enrich: Optional[Callable[[str], Dict[str, str]]] = None


_BATTERY_DETAILS = re.compile(
    r"^(?P<size>\d{2,3}x\d{2,3})\s+(?P<polarity>[A-Z])\b(?:\s+\d+){1,4}\s+(?P<application>\D.*)$",
    re.IGNORECASE,
)

_PACKAGE_CONTENT = re.compile(
    r"(?<![\w.,])(\d+(?:[.,]\d+)?\s?(?:ml|cc|lts?|l|grs?|g|kg))\b",
    re.IGNORECASE,
)


def battery_details(description: str) -> Dict[str, str]:
    """Split "12x45 D 38 56 350 Clio mio-palio" into its vehicle application"""
    match = _BATTERY_DETAILS.match(description)
    if not match:
        return {}
    return {"application": match.group("application").strip()}


def additive_details(description: str) -> Dict[str, str]:
    """Pull the package size ("250 ML", "1 LT") out of an additive description"""
    match = _PACKAGE_CONTENT.search(description)
    if not match:
        return {}
    return {"content": match.group(1).upper()}


PROFILE_GRAMMARS: Dict[ExtractionProfile, ProfileGrammar] = {
    ExtractionProfile.BATTERY_CATALOG: ProfileGrammar(
        profile=ExtractionProfile.BATTERY_CATALOG,
        code_grammars=(
            CodeGrammar("numeric_dash", re.compile(r"\s*(?P<code>\d{1,3}-\d{2,3}[A-Za-z]?)(?=\s|$)")),
            CodeGrammar("alpha_numeric", re.compile(r"\s*(?P<code>[A-Z]{1,4}\d{2,4}[A-Z]{0,2})(?=\s|$)")),
        ),
        category="Baterias",
        enrich=battery_details,
    ),
    ExtractionProfile.ADDITIVE_CATALOG: ProfileGrammar(
        profile=ExtractionProfile.ADDITIVE_CATALOG,
        code_grammars=(
            CodeGrammar("fixed_numeric", re.compile(r"\s*(?P<code>\d{4,6})(?=\s|$)")),
            CodeGrammar("alpha_dash", re.compile(r"\s*(?P<code>[A-Z]{2,4}-\d{2,5}[A-Z]?)(?=\s|$)")),
        ),
        category="Aditivos",
        enrich=additive_details,
    ),
    ExtractionProfile.GENERIC: ProfileGrammar(
        profile=ExtractionProfile.GENERIC,
        code_grammars=(
            CodeGrammar(
                "alphanumeric",
                re.compile(r"\s*(?P<code>(?=[A-Za-z\-./]*\d)[A-Za-z0-9][A-Za-z0-9\-./]{2,})(?=\s|$)"),
            ),
        ),
    ),
}


class PatternExtractorAgent:
    """
    Agent responsible for profile-specific pattern extraction

    A line opening with a recognized code starts a record. The price is the
    first currency-marked amount on that line or on the next
    ``lookahead`` lines. Records with neither a price nor an explicit
    out-of-stock marker are dropped: ambiguous rows are never guessed.
    """

    def __init__(self, lookahead: Optional[int] = None):
        self.name = "PatternExtractorAgent"
        self.lookahead = settings.PATTERN_LOOKAHEAD_LINES if lookahead is None else lookahead

    def _match_code(self, line: str, grammar: ProfileGrammar) -> Optional[re.Match]:
        for code_grammar in grammar.code_grammars:
            match = code_grammar.match(line)
            if match:
                return match
        return None

    def _scan_record(
        self,
        lines: List[str],
        start: int,
        code_match: re.Match,
        grammar: ProfileGrammar
    ) -> Tuple[Optional[RawRecord], int]:
        """
        Scan a record starting at ``lines[start]``

        Returns:
            Tuple of (record or None, index of the last line consumed)
        """
        fragments = []
        price_amount = None
        last = start
        stop = min(start + self.lookahead, len(lines) - 1)

        for index in range(start, stop + 1):
            line = lines[index]
            if index == start:
                line = line[code_match.end():]
            elif self._match_code(line, grammar):
                break

            last = index
            price_match = find_price(line, require_currency=True)
            if price_match:
                price_amount = price_match.group("amount")
                fragments.append(line[:price_match.start()])
                fragments.append(line[price_match.end():])
                break
            fragments.append(line)

        scanned = " ".join(fragments)
        out_of_stock = bool(OUT_OF_STOCK_PATTERN.search(scanned))
        if price_amount is None and not out_of_stock:
            return None, start

        description = " ".join(OUT_OF_STOCK_PATTERN.sub(" ", scanned).split())
        fields = grammar.enrich(description) if grammar.enrich else {}

        record = RawRecord(
            code=code_match.group("code"),
            description=description,
            price=price_amount if price_amount is not None else 0,
            stock=0 if out_of_stock else None,
            category=grammar.category,
            out_of_stock=out_of_stock,
            **fields,
        )
        return record, last

    def extract(self, text: str, profile: ExtractionProfile = ExtractionProfile.GENERIC) -> List[RawRecord]:
        """
        Extract raw records with the grammar of ``profile``

        Args:
            text: Raw price list text
            profile: Detected profile

        Returns:
            Raw records in document order (empty when nothing matched)
        """
        grammar = PROFILE_GRAMMARS.get(profile, PROFILE_GRAMMARS[ExtractionProfile.GENERIC])
        lines = [line.strip() for line in (text or "").splitlines() if line.strip()]

        records = []
        index = 0
        while index < len(lines):
            code_match = self._match_code(lines[index], grammar)
            if not code_match:
                index += 1
                continue

            record, last = self._scan_record(lines, index, code_match, grammar)
            if record is None:
                index += 1
                continue

            records.append(record)
            index = last + 1

        logger.debug(
            f"{self.name}: extraction complete",
            profile=profile.value,
            lines=len(lines),
            records=len(records)
        )
        return records


# Agent instance
pattern_extractor_agent = PatternExtractorAgent()
