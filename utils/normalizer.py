"""
Record normalization and validation

normalize() is total: every input shape yields a well-formed ProductRecord.
validate_record() decides afterwards whether that record may be emitted.
"""
import math
import re
from typing import Any, List, Mapping, Optional, Union

from schemas.product_schemas import (
    DEFAULT_CATEGORY,
    DEFAULT_STOCK,
    DEFAULT_UNIT,
    ProductRecord,
    RawRecord,
)
from utils.price_parser import parse_price

OUT_OF_STOCK_PATTERN = re.compile(
    r"\b(?:sin\s+stock|sin\s+existencia|agotado|out\s+of\s+stock|no\s+stock)\b",
    re.IGNORECASE,
)

_WHITESPACE = re.compile(r"\s+")
_NON_DIGIT = re.compile(r"\D")

RecordInput = Union[RawRecord, ProductRecord, Mapping[str, Any], None]


def has_out_of_stock_marker(value: Any) -> bool:
    """True when ``value`` carries an explicit "no stock" marker"""
    return isinstance(value, str) and bool(OUT_OF_STOCK_PATTERN.search(value))


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and not math.isfinite(value):
        return ""
    try:
        text = str(value)
    except ValueError:
        # int past the interpreter's str conversion limit
        return ""
    return _WHITESPACE.sub(" ", text).strip()


def _coerce_raw(raw: RecordInput) -> RawRecord:
    if isinstance(raw, RawRecord):
        return raw
    if isinstance(raw, ProductRecord):
        return RawRecord(**raw.model_dump())
    if isinstance(raw, Mapping):
        data = {name: raw.get(name) for name in RawRecord.model_fields if name != "out_of_stock"}
        flag = raw.get("out_of_stock")
        out_of_stock = flag if isinstance(flag, bool) else has_out_of_stock_marker(flag)
        return RawRecord(**data, out_of_stock=out_of_stock)
    return RawRecord()


def normalize_code(value: Any) -> str:
    return _clean_text(value).upper()


def _finite_float(value: Any) -> Optional[float]:
    """float(value), or None when it overflows or is not finite"""
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def normalize_price(value: Any) -> float:
    """Numbers pass through; strings are parsed; anything unparseable becomes 0"""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = _finite_float(value)
        return number if number is not None else 0.0
    parsed = parse_price(value)
    return parsed if parsed is not None else 0.0


def normalize_stock(value: Any, out_of_stock: bool = False) -> int:
    """
    Coerce stock to an integer

    An explicit out-of-stock signal forces 0. Missing or unparseable stock
    falls back to DEFAULT_STOCK: no information is not the same as none left.
    """
    if out_of_stock or has_out_of_stock_marker(value):
        return 0
    if isinstance(value, bool):
        return DEFAULT_STOCK
    if isinstance(value, (int, float)):
        number = _finite_float(value)
        if number is None:
            return DEFAULT_STOCK
        return math.floor(number)
    if isinstance(value, str):
        digits = _NON_DIGIT.sub("", value)
        if digits:
            try:
                return int(digits)
            except ValueError:
                # beyond the interpreter's int conversion limit
                return DEFAULT_STOCK
    return DEFAULT_STOCK


def _optional_text(value: Any) -> Optional[str]:
    cleaned = _clean_text(value)
    return cleaned or None


def normalize(raw: RecordInput) -> ProductRecord:
    """
    Normalize a raw record into its canonical form

    Args:
        raw: RawRecord, ProductRecord, plain mapping or None

    Returns:
        ProductRecord (possibly invalid, see validate_record)
    """
    record = _coerce_raw(raw)

    code = normalize_code(record.code)
    description = _clean_text(record.description)
    if not description:
        description = f"Producto {code}".strip()

    return ProductRecord(
        code=code,
        description=description,
        price=normalize_price(record.price),
        stock=normalize_stock(record.stock, record.out_of_stock),
        unit=_clean_text(record.unit).upper() or DEFAULT_UNIT,
        category=_clean_text(record.category) or DEFAULT_CATEGORY,
        application=_optional_text(record.application),
        content=_optional_text(record.content),
    )


def validate_record(record: ProductRecord) -> List[str]:
    """Return the reasons ``record`` must not be emitted (empty when valid)"""
    errors = []
    if not record.code:
        errors.append("empty code")
    if not math.isfinite(record.price) or record.price < 0:
        errors.append(f"invalid price {record.price}")
    if record.stock < 0:
        errors.append(f"invalid stock {record.stock}")
    return errors


def normalize_records(raw_records: List[RecordInput]) -> tuple[List[ProductRecord], int]:
    """
    Normalize and validate a batch

    Returns:
        Tuple of (valid records in input order, number of dropped records)
    """
    valid = []
    dropped = 0
    for raw in raw_records:
        record = normalize(raw)
        if validate_record(record):
            dropped += 1
            continue
        valid.append(record)
    return valid, dropped
