"""
Pydantic schemas package
"""
from schemas.product_schemas import (
    DEFAULT_STOCK,
    DEFAULT_UNIT,
    DEFAULT_CATEGORY,
    ExtractionProfile,
    ExtractionMethod,
    ExtractionQuality,
    ExtractionStatus,
    RawRecord,
    ProductRecord,
    ModelProductRecord,
    ModelProductBatch,
    ChunkRequest,
    ChunkResponse,
    ExtractionMetadata,
    ExtractionResult,
)

__all__ = [
    "DEFAULT_STOCK",
    "DEFAULT_UNIT",
    "DEFAULT_CATEGORY",
    "ExtractionProfile",
    "ExtractionMethod",
    "ExtractionQuality",
    "ExtractionStatus",
    "RawRecord",
    "ProductRecord",
    "ModelProductRecord",
    "ModelProductBatch",
    "ChunkRequest",
    "ChunkResponse",
    "ExtractionMetadata",
    "ExtractionResult",
]
