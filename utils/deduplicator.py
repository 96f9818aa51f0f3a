"""
Deterministic record deduplication

Records sharing (code, description), compared case-insensitively, collapse
into one. The survivor is the one with the highest price, on the heuristic
that a priced row is the more specific one; this is a tie-break, not a
correctness guarantee. Equal prices keep the first occurrence. The survivor
takes the position of the key's first occurrence.
"""
from typing import Dict, List

from schemas.product_schemas import ProductRecord

KEY_SEPARATOR = "\x1f"  # ASCII unit separator, never present in extracted text


def dedupe_key(record: ProductRecord) -> str:
    return f"{record.code.lower()}{KEY_SEPARATOR}{record.description.strip().lower()}"


def dedupe(records: List[ProductRecord]) -> List[ProductRecord]:
    """
    Collapse repeated records

    Args:
        records: Normalized records in extraction order

    Returns:
        New list with one record per key
    """
    slots: Dict[str, int] = {}
    survivors: List[ProductRecord] = []

    for record in records:
        key = dedupe_key(record)
        slot = slots.get(key)
        if slot is None:
            slots[key] = len(survivors)
            survivors.append(record)
        elif record.price > survivors[slot].price:
            survivors[slot] = record

    return survivors
