"""
LangGraph State Definition and request-scoped context
"""
import threading
from dataclasses import dataclass, field
from typing import TypedDict, Optional, Dict, List
from uuid import uuid4

from schemas.product_schemas import (
    ExtractionMethod,
    ExtractionProfile,
    ExtractionQuality,
    ProductRecord,
)


@dataclass
class UsageCounter:
    """Remote-call accounting for one request, owned by the caller"""
    remote_calls: int = 0
    failed_calls: int = 0
    tokens_input: int = 0
    tokens_output: int = 0

    def record(self, tokens_input: int = 0, tokens_output: int = 0, failed: bool = False) -> None:
        self.remote_calls += 1
        if failed:
            self.failed_calls += 1
        self.tokens_input += tokens_input
        self.tokens_output += tokens_output


@dataclass
class ExtractionContext:
    """
    Per-request context injected by the caller

    The request id exists for log correlation only. cancel() aborts the
    outstanding remote calls of this request and nothing else.
    """
    request_id: str = field(default_factory=lambda: uuid4().hex)
    usage: UsageCounter = field(default_factory=UsageCounter)
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


class ExtractionState(TypedDict):
    """
    State object passed between the cascade nodes

    Each stage reads the input fields and writes its outcome; the finalize
    node turns the state into an ExtractionResult.
    """
    # Input
    text: str
    filename_hint: str
    context: ExtractionContext

    # Detection
    profile: Optional[ExtractionProfile]

    # Cascade progress
    stages_attempted: List[str]
    records: List[ProductRecord]
    raw_record_count: int
    dropped_record_count: int
    method: ExtractionMethod
    quality: Optional[ExtractionQuality]

    # Remote stage accounting
    chunks_total: int
    chunks_succeeded: int

    # Error Handling
    errors: List[str]
    failure: Optional[str]

    # Timing
    start_time: float
    stage_timings: Dict[str, float]


class GraphConfig(TypedDict):
    """Configuration for cascade execution"""
    model_fallback_enabled: bool
