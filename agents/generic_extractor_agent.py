"""
Generic Extractor Agent - Profile-agnostic row grammars
"""
import re
from dataclasses import dataclass
from typing import List, Optional, Pattern

from config import settings
from schemas.product_schemas import RawRecord
from utils.logger import logger
from utils.normalizer import OUT_OF_STOCK_PATTERN
from utils.price_parser import CURRENCY_MARKER, PRICE_PATTERN, parse_price

_CODE = r"(?P<code>(?=[A-Za-z\-./]*\d)[A-Za-z0-9][A-Za-z0-9\-./]*)"
_PRICE = rf"(?P<price>{CURRENCY_MARKER}?\s*\d[\d.,]*)"
_CURRENCY_PRICE = rf"(?P<price>{CURRENCY_MARKER}\s*\d[\d.,]*)"


@dataclass(frozen=True)
class RowGrammar:
    """One full-line row shape: CODE <description> <price> with a given delimiter"""
    name: str
    pattern: Pattern

    def parse(self, line: str, min_price: float) -> Optional[RawRecord]:
        match = self.pattern.match(line)
        if not match:
            return None

        price_token = match.group("price").strip()
        if not PRICE_PATTERN.fullmatch(price_token):
            return None
        price = parse_price(price_token)
        if price is None or price < min_price:
            return None

        description = match.group("description")
        return RawRecord(
            code=match.group("code"),
            description=OUT_OF_STOCK_PATTERN.sub(" ", description),
            price=price_token,
            out_of_stock=bool(OUT_OF_STOCK_PATTERN.search(description)),
        )


class GenericExtractorAgent:
    """
    Agent responsible for profile-agnostic fallback extraction

    Grammars are tried in order and the first one that matches at least one
    line is used for the whole document; grammars are never mixed.
    """

    GRAMMARS = (
        RowGrammar(
            "pipe_delimited",
            re.compile(rf"^\s*\|?\s*{_CODE}\s*\|\s*(?P<description>[^|]+?)\s*\|\s*{_PRICE}\s*\|?\s*$"),
        ),
        RowGrammar(
            "tab_delimited",
            re.compile(rf"^\s*{_CODE}[ ]*\t+\s*(?P<description>[^\t]+?)\s*\t+\s*{_PRICE}\s*$"),
        ),
        RowGrammar(
            "whitespace_columns",
            re.compile(rf"^\s*{_CODE}\s{{2,}}(?P<description>\S.*?)\s{{2,}}{_PRICE}\s*$"),
        ),
        RowGrammar(
            "single_space_currency",
            re.compile(rf"^\s*{_CODE}\s+(?P<description>\S.*?)\s+{_CURRENCY_PRICE}\s*$"),
        ),
    )

    def __init__(self, min_price: Optional[float] = None):
        self.name = "GenericExtractorAgent"
        self.min_price = settings.GENERIC_MIN_PRICE if min_price is None else min_price

    def _apply(self, grammar: RowGrammar, lines: List[str]) -> List[RawRecord]:
        records = []
        for line in lines:
            record = grammar.parse(line, self.min_price)
            if record is not None:
                records.append(record)
        return records

    def extract(self, text: str) -> List[RawRecord]:
        """
        Extract raw records with the first grammar that matches

        Args:
            text: Raw price list text

        Returns:
            Raw records (empty when no grammar matched)
        """
        lines = [line for line in (text or "").splitlines() if line.strip()]

        for grammar in self.GRAMMARS:
            records = self._apply(grammar, lines)
            if records:
                logger.debug(f"{self.name}: grammar selected", grammar=grammar.name, records=len(records))
                return records

        return []


# Agent instance
generic_extractor_agent = GenericExtractorAgent()
