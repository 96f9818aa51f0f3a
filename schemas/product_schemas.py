"""
Pydantic schemas for price list extraction
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Dict, List
from pydantic import BaseModel, ConfigDict, Field


# Output contract defaults
DEFAULT_STOCK = 100  # Stock assumed when the source says nothing about availability
DEFAULT_UNIT = "UN"
DEFAULT_CATEGORY = "General"


class ExtractionProfile(str, Enum):
    """Known document shapes, each paired with its own pattern extractor"""
    BATTERY_CATALOG = "battery_catalog"
    ADDITIVE_CATALOG = "additive_catalog"
    GENERIC = "generic"


class ExtractionMethod(str, Enum):
    """Cascade stage that produced a result (observability only)"""
    PROFILE_PATTERN = "profile_pattern"
    GENERIC_PATTERN = "generic_pattern"
    MODEL_ASSISTED = "model_assisted"
    TABULAR_COLUMNS = "tabular_columns"
    NONE = "none"


class ExtractionQuality(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ExtractionStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


# ==================== Record Schemas ====================

class RawRecord(BaseModel):
    """
    Un-normalized record as produced by an extraction stage.

    Field values keep whatever shape the source had ("$ 66.791", "12",
    "  un ", None); the normalizer turns them into a ProductRecord.
    """
    model_config = ConfigDict(extra="ignore")

    code: Any = None
    description: Any = None
    price: Any = None
    stock: Any = None
    unit: Any = None
    category: Any = None
    application: Any = None
    content: Any = None
    out_of_stock: bool = False  # Explicit "no stock" marker seen upstream


class ProductRecord(BaseModel):
    """Canonical, immutable product record"""
    model_config = ConfigDict(frozen=True)

    code: str
    description: str
    price: float
    stock: int
    unit: str = DEFAULT_UNIT
    category: str = DEFAULT_CATEGORY
    application: Optional[str] = None
    content: Optional[str] = None


class ModelProductRecord(BaseModel):
    """Shape the remote collaborator must return for each product"""
    code: str = Field(description="Product code exactly as printed, e.g. 12-45")
    description: str = Field(description="Product description without code or price")
    price: float = Field(description="Unit price as a plain number, 0 when unavailable")
    stock: int = Field(description="Units in stock, 0 when marked out of stock, 100 when not stated")
    unit: str = Field(description="Unit of measure code, UN when not stated")
    category: Optional[str] = None
    application: Optional[str] = Field(default=None, description="Usage or compatibility notes")
    content: Optional[str] = Field(default=None, description="Packaging size, volume or net weight")


class ModelProductBatch(BaseModel):
    """Array wrapper used as the strict output schema"""
    records: List[ModelProductRecord]


# ==================== Collaborator Contract ====================

class ChunkRequest(BaseModel):
    """One structured-extraction request for a bounded slice of text"""
    chunk_text: str
    chunk_index: int = Field(ge=1)  # 1-based
    chunk_total: int = Field(ge=1)
    filename_hint: str = ""
    output_schema: Dict[str, Any]


class ChunkResponse(BaseModel):
    """Schema-conformant collaborator response"""
    records: List[RawRecord] = Field(default_factory=list)
    provider: Optional[str] = None
    model: Optional[str] = None
    tokens_input: int = 0
    tokens_output: int = 0


# ==================== Pipeline Output ====================

class ExtractionMetadata(BaseModel):
    """Cost and observability figures for one extraction"""
    stages_attempted: List[str] = Field(default_factory=list)
    raw_record_count: int = 0
    dropped_record_count: int = 0
    chunks_total: int = 0
    chunks_succeeded: int = 0
    remote_calls: int = 0
    tokens_input: int = 0
    tokens_output: int = 0
    latency_ms: float = 0.0
    stage_timings: Dict[str, float] = Field(default_factory=dict)  # ms per cascade stage


class ExtractionResult(BaseModel):
    """Top-level output of the extraction cascade"""
    status: ExtractionStatus
    records: List[ProductRecord] = Field(default_factory=list)
    profile: ExtractionProfile = ExtractionProfile.GENERIC
    method: ExtractionMethod = ExtractionMethod.NONE
    quality: ExtractionQuality = ExtractionQuality.LOW
    error: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    request_id: str = ""
    metadata: ExtractionMetadata = Field(default_factory=ExtractionMetadata)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def success(self) -> bool:
        return self.status == ExtractionStatus.SUCCESS
