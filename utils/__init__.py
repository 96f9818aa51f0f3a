"""
Utility functions package
"""
from utils.logger import logger
from utils.retry_decorator import with_retry
from utils.llm_client import llm_client, LLMClient, LLMProvider
from utils.price_parser import parse_price, find_price
from utils.normalizer import normalize, normalize_records, validate_record
from utils.deduplicator import dedupe

__all__ = [
    "logger",
    "with_retry",
    "llm_client",
    "LLMClient",
    "LLMProvider",
    "parse_price",
    "find_price",
    "normalize",
    "normalize_records",
    "validate_record",
    "dedupe",
]
