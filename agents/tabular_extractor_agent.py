"""
Tabular Extractor Agent - Maps spreadsheet rows onto raw records
"""
import unicodedata
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from schemas.product_schemas import RawRecord
from utils.logger import logger
from utils.normalizer import has_out_of_stock_marker
from utils.price_parser import parse_price

Row = Any  # Mapping of header -> cell, or a plain sequence of cells

COLUMN_ALIASES: Dict[str, tuple] = {
    "code": ("CODIGO", "CODIGO BATERIA", "COD", "CODE", "SKU"),
    "description": ("DESCRIPCION", "TIPO", "APLICACIONES", "DESCRIPTION", "PRODUCTO"),
    "price": ("PRECIO", "PRECIO DE LISTA", "PRECIO LISTA", "PRICE"),
    "stock": ("STOCK", "EXISTENCIA", "CANTIDAD"),
    "unit": ("UNIDAD", "UN", "UNIT"),
    "category": ("CATEGORIA", "RUBRO", "CATEGORY"),
}


def normalize_header(header: Any) -> str:
    """Upper-case, accent-free, single-spaced header ("Código  Batería" -> "CODIGO BATERIA")"""
    decomposed = unicodedata.normalize("NFKD", str(header))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.upper().replace("_", " ").split())


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    try:
        return str(value).strip()
    except ValueError:
        return ""


def _price_cell(value: Any) -> Dict[str, Any]:
    """A "SIN STOCK" price cell means price 0 and stock 0"""
    if has_out_of_stock_marker(value):
        return {"price": 0, "stock": 0, "out_of_stock": True}
    return {"price": value}


def named_columns(row: Row) -> Optional[RawRecord]:
    if not isinstance(row, Mapping):
        return None

    by_header = {normalize_header(key): value for key, value in row.items()}
    fields = {}
    for field_name, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in by_header and _cell_text(by_header[alias]):
                fields[field_name] = by_header[alias]
                break

    if not _cell_text(fields.get("code")) or "price" not in fields:
        return None

    fields.update(_price_cell(fields["price"]))
    if "out_of_stock" not in fields:
        fields["out_of_stock"] = has_out_of_stock_marker(fields.get("stock"))
    return RawRecord(**fields)


def positional(row: Row) -> Optional[RawRecord]:
    if isinstance(row, Mapping):
        cells = list(row.values())
    elif isinstance(row, Sequence) and not isinstance(row, (str, bytes)):
        cells = list(row)
    else:
        return None

    cells = [cell for cell in cells if _cell_text(cell)]
    if len(cells) < 2:
        return None

    code, price = cells[0], cells[-1]
    if not has_out_of_stock_marker(price) and parse_price(price) is None:
        return None

    return RawRecord(
        code=code,
        description=" ".join(_cell_text(cell) for cell in cells[1:-1]),
        **_price_cell(price),
    )


@dataclass(frozen=True)
class ColumnGrammar:
    name: str
    parse: Callable[[Row], Optional[RawRecord]]


class TabularExtractorAgent:
    """
    Agent responsible for mapping pre-parsed spreadsheet rows

    Grammars are tried in order; the first one that yields at least one
    record is used for every row of the sheet.
    """

    GRAMMARS = (
        ColumnGrammar("named_columns", named_columns),
        ColumnGrammar("positional", positional),
    )

    def __init__(self):
        self.name = "TabularExtractorAgent"

    def extract(self, rows: List[Row]) -> List[RawRecord]:
        """
        Extract raw records from spreadsheet rows

        Args:
            rows: Row mappings (header -> cell) or cell sequences

        Returns:
            Raw records in row order (empty when no grammar applies)
        """
        for grammar in self.GRAMMARS:
            records = [record for record in map(grammar.parse, rows or []) if record is not None]
            if records:
                logger.debug(f"{self.name}: grammar selected", grammar=grammar.name, records=len(records))
                return records
        return []

    @staticmethod
    def flatten(rows: List[Row]) -> str:
        """Join each row's cells into one text line, for the text cascade"""
        lines = []
        for row in rows or []:
            if isinstance(row, Mapping):
                cells = row.values()
            elif isinstance(row, Sequence) and not isinstance(row, (str, bytes)):
                cells = row
            else:
                cells = [row]
            line = "  ".join(_cell_text(cell) for cell in cells if _cell_text(cell))
            if line:
                lines.append(line)
        return "\n".join(lines)


# Agent instance
tabular_extractor_agent = TabularExtractorAgent()
