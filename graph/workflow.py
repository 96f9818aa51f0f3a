"""
LangGraph Workflow - Orchestrates the extraction cascade in a stateful graph
"""
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from langgraph.graph import StateGraph, END

from config import settings
from graph.state import ExtractionContext, ExtractionState, GraphConfig
from agents import (
    generic_extractor_agent,
    model_extractor_agent,
    pattern_extractor_agent,
    profile_detector_agent,
    tabular_extractor_agent,
)
from schemas.product_schemas import (
    ExtractionMetadata,
    ExtractionMethod,
    ExtractionProfile,
    ExtractionQuality,
    ExtractionResult,
    ExtractionStatus,
    RawRecord,
)
from utils.deduplicator import dedupe
from utils.logger import logger
from utils.normalizer import normalize_records

CANCELLED_ERROR = "extraction cancelled"


@dataclass
class StageOutput:
    """What a single cascade stage hands back before normalization"""
    raw_records: List[RawRecord] = field(default_factory=list)
    quality: ExtractionQuality = ExtractionQuality.LOW
    chunks_total: int = 0
    chunks_succeeded: int = 0
    errors: List[str] = field(default_factory=list)
    failure: Optional[str] = None


@dataclass(frozen=True)
class CascadeStage:
    name: str
    method: ExtractionMethod
    run: Callable[[ExtractionState], StageOutput]


# Stage functions look the agents up at call time so a swapped module
# attribute (tests, alternate collaborators) is honoured.

def _run_profile_pattern(state: ExtractionState) -> StageOutput:
    profile = state.get("profile") or ExtractionProfile.GENERIC
    return StageOutput(
        raw_records=pattern_extractor_agent.extract(state["text"], profile),
        quality=ExtractionQuality.HIGH,
    )


def _run_generic_pattern(state: ExtractionState) -> StageOutput:
    return StageOutput(
        raw_records=generic_extractor_agent.extract(state["text"]),
        quality=ExtractionQuality.MEDIUM,
    )


def _run_model_assisted(state: ExtractionState) -> StageOutput:
    context = state["context"]
    outcome = model_extractor_agent.extract(state["text"], state["filename_hint"], context)

    failure = None
    if outcome.cancelled:
        failure = CANCELLED_ERROR
    elif outcome.failed:
        failure = f"model-assisted extraction failed: 0 of {outcome.chunks_total} chunks succeeded"

    return StageOutput(
        raw_records=outcome.records,
        quality=outcome.quality,
        chunks_total=outcome.chunks_total,
        chunks_succeeded=outcome.chunks_succeeded,
        errors=list(outcome.errors),
        failure=failure,
    )


PROFILE_STAGE = CascadeStage("profile_pattern", ExtractionMethod.PROFILE_PATTERN, _run_profile_pattern)
GENERIC_STAGE = CascadeStage("generic_pattern", ExtractionMethod.GENERIC_PATTERN, _run_generic_pattern)
MODEL_STAGE = CascadeStage("model_assisted", ExtractionMethod.MODEL_ASSISTED, _run_model_assisted)


class ExtractionWorkflow:
    """
    LangGraph workflow for price list extraction

    Graph Flow:
    START → detect → profile_pattern → generic_pattern → model_assisted → finalize → END

    Each stage routes straight to finalize once it has produced at least one
    valid record (or failed terminally); otherwise the next, more expensive
    stage runs. The model stage is only wired in when fallback is enabled.
    """

    def __init__(self, config: GraphConfig = None):
        self.config = config or GraphConfig(
            model_fallback_enabled=settings.MODEL_FALLBACK_ENABLED
        )

        self.stages: List[CascadeStage] = [PROFILE_STAGE, GENERIC_STAGE]
        if self.config.get("model_fallback_enabled", True):
            self.stages.append(MODEL_STAGE)

        self.graph = self._build_graph()
        # No checkpointer: nothing survives between requests
        self.compiled_graph = self.graph.compile()

        logger.info(
            "ExtractionWorkflow initialized",
            stages=[stage.name for stage in self.stages]
        )

    def _initialize_state(self, text: str, filename_hint: str, context: ExtractionContext) -> ExtractionState:
        return ExtractionState(
            text=text,
            filename_hint=filename_hint,
            context=context,
            profile=None,
            stages_attempted=[],
            records=[],
            raw_record_count=0,
            dropped_record_count=0,
            method=ExtractionMethod.NONE,
            quality=None,
            chunks_total=0,
            chunks_succeeded=0,
            errors=[],
            failure=None,
            start_time=time.time(),
            stage_timings={}
        )

    # Node functions
    def _detect_node(self, state: ExtractionState) -> Dict[str, Any]:
        """Profile detection node"""
        profile = profile_detector_agent.detect(state["text"], state["filename_hint"])
        logger.info(
            "Workflow: profile detected",
            profile=profile.value,
            request_id=state["context"].request_id
        )
        return {"profile": profile}

    def _make_stage_node(self, stage: CascadeStage) -> Callable[[ExtractionState], Dict[str, Any]]:
        def stage_node(state: ExtractionState) -> Dict[str, Any]:
            context = state["context"]
            if context.cancelled:
                return {"failure": CANCELLED_ERROR}

            logger.info(f"Workflow: executing {stage.name} stage", request_id=context.request_id)
            start_time = time.time()

            output = stage.run(state)
            records, dropped = normalize_records(output.raw_records)

            timings = dict(state["stage_timings"])
            timings[stage.name] = (time.time() - start_time) * 1000

            updates: Dict[str, Any] = {
                "stages_attempted": state["stages_attempted"] + [stage.name],
                "raw_record_count": state["raw_record_count"] + len(output.raw_records),
                "dropped_record_count": state["dropped_record_count"] + dropped,
                "chunks_total": state["chunks_total"] + output.chunks_total,
                "chunks_succeeded": state["chunks_succeeded"] + output.chunks_succeeded,
                "errors": state["errors"] + output.errors,
                "stage_timings": timings,
            }

            if output.failure:
                updates["failure"] = output.failure
            elif records or output.chunks_succeeded:
                # A remote stage with at least one answered chunk is a
                # result even when the document holds no products.
                updates.update(records=records, method=stage.method, quality=output.quality)

            logger.info(
                f"Workflow: {stage.name} stage complete",
                raw_records=len(output.raw_records),
                valid_records=len(records),
                dropped=dropped,
                latency_ms=timings[stage.name],
                request_id=context.request_id
            )
            return updates

        return stage_node

    def _finalize_node(self, state: ExtractionState) -> Dict[str, Any]:
        """Deduplicate the winning stage's records"""
        records = dedupe(state["records"])
        if len(records) != len(state["records"]):
            logger.info(
                "Workflow: duplicates collapsed",
                before=len(state["records"]),
                after=len(records),
                request_id=state["context"].request_id
            )
        return {"records": records}

    # Conditional edge function
    def _route_after(self, position: int) -> Callable[[ExtractionState], str]:
        next_node = self.stages[position + 1].name if position + 1 < len(self.stages) else "finalize"

        def route(state: ExtractionState) -> str:
            if state["failure"] or state["method"] != ExtractionMethod.NONE:
                return "finalize"
            return next_node

        return route

    def _build_graph(self) -> StateGraph:
        """
        Build LangGraph state graph

        Returns:
            StateGraph instance
        """
        workflow = StateGraph(ExtractionState)

        workflow.add_node("detect", self._detect_node)
        for stage in self.stages:
            workflow.add_node(stage.name, self._make_stage_node(stage))
        workflow.add_node("finalize", self._finalize_node)

        workflow.set_entry_point("detect")
        workflow.add_edge("detect", self.stages[0].name)

        for position, stage in enumerate(self.stages):
            next_node = self.stages[position + 1].name if position + 1 < len(self.stages) else "finalize"
            targets = {"finalize": "finalize"}
            targets[next_node] = next_node
            workflow.add_conditional_edges(stage.name, self._route_after(position), targets)

        workflow.add_edge("finalize", END)

        logger.info("LangGraph workflow built successfully")
        return workflow

    # Result assembly
    def _metadata(self, state: Dict[str, Any], context: ExtractionContext, start_time: float) -> ExtractionMetadata:
        return ExtractionMetadata(
            stages_attempted=state.get("stages_attempted", []),
            raw_record_count=state.get("raw_record_count", 0),
            dropped_record_count=state.get("dropped_record_count", 0),
            chunks_total=state.get("chunks_total", 0),
            chunks_succeeded=state.get("chunks_succeeded", 0),
            remote_calls=context.usage.remote_calls,
            tokens_input=context.usage.tokens_input,
            tokens_output=context.usage.tokens_output,
            stage_timings=dict(state.get("stage_timings", {})),
            latency_ms=(time.time() - start_time) * 1000,
        )

    def _failed_result(
        self,
        error: str,
        context: ExtractionContext,
        start_time: float,
        state: Optional[Dict[str, Any]] = None
    ) -> ExtractionResult:
        state = state or {}
        return ExtractionResult(
            status=ExtractionStatus.FAILED,
            records=[],
            profile=state.get("profile") or ExtractionProfile.GENERIC,
            method=ExtractionMethod.NONE,
            quality=ExtractionQuality.LOW,
            error=error,
            errors=state.get("errors", []),
            request_id=context.request_id,
            metadata=self._metadata(state, context, start_time),
        )

    def _build_result(self, state: Dict[str, Any], context: ExtractionContext, start_time: float) -> ExtractionResult:
        if state.get("failure"):
            return self._failed_result(state["failure"], context, start_time, state)
        if state["method"] == ExtractionMethod.NONE:
            return self._failed_result("no records extracted", context, start_time, state)

        return ExtractionResult(
            status=ExtractionStatus.SUCCESS,
            records=state["records"],
            profile=state["profile"],
            method=state["method"],
            quality=state["quality"],
            errors=state["errors"],
            request_id=context.request_id,
            metadata=self._metadata(state, context, start_time),
        )

    def _run(
        self,
        text: str,
        filename_hint: Optional[str],
        context: Optional[ExtractionContext],
        start_time: float
    ) -> ExtractionResult:
        context = context or ExtractionContext()

        if len(text.strip()) < settings.MIN_TEXT_LENGTH:
            logger.warning(
                "Text too short for extraction",
                length=len(text.strip()),
                minimum=settings.MIN_TEXT_LENGTH,
                request_id=context.request_id
            )
            return self._failed_result(
                f"text too short: at least {settings.MIN_TEXT_LENGTH} characters required",
                context,
                start_time
            )

        try:
            initial_state = self._initialize_state(text, filename_hint or "", context)
            final_state = self.compiled_graph.invoke(initial_state)
            result = self._build_result(final_state, context, start_time)
        except Exception as e:
            logger.error(f"Extraction failed: {e}", exc_info=True, request_id=context.request_id)
            return self._failed_result(f"unexpected error: {e}", context, start_time)

        logger.info(
            "Extraction complete",
            status=result.status.value,
            method=result.method.value,
            profile=result.profile.value,
            records=len(result.records),
            quality=result.quality.value,
            latency_ms=result.metadata.latency_ms,
            request_id=context.request_id
        )
        return result

    def process(
        self,
        text: str,
        filename_hint: Optional[str] = None,
        context: Optional[ExtractionContext] = None
    ) -> ExtractionResult:
        """
        Run the extraction cascade over raw price list text

        Args:
            text: Text already extracted from the source document
            filename_hint: Original filename, used for profile detection
            context: Optional request-scoped context (request id, usage, cancellation)

        Returns:
            ExtractionResult; failures are reported through ``status``

        Raises:
            TypeError: If text is not a string or filename_hint is neither str nor None
        """
        if not isinstance(text, str):
            raise TypeError(f"text must be str, got {type(text).__name__}")
        if filename_hint is not None and not isinstance(filename_hint, str):
            raise TypeError(f"filename_hint must be str or None, got {type(filename_hint).__name__}")

        return self._run(text, filename_hint, context, time.time())

    def process_rows(
        self,
        rows: List[Any],
        filename_hint: Optional[str] = None,
        context: Optional[ExtractionContext] = None
    ) -> ExtractionResult:
        """
        Extract from spreadsheet rows, falling back to the text cascade

        Raises:
            TypeError: If rows is not a list or filename_hint is neither str nor None
        """
        if not isinstance(rows, list):
            raise TypeError(f"rows must be list, got {type(rows).__name__}")
        if filename_hint is not None and not isinstance(filename_hint, str):
            raise TypeError(f"filename_hint must be str or None, got {type(filename_hint).__name__}")

        context = context or ExtractionContext()
        start_time = time.time()

        try:
            raw_records = tabular_extractor_agent.extract(rows)
            records, dropped = normalize_records(raw_records)
        except Exception as e:
            logger.error(f"Tabular extraction failed: {e}", exc_info=True, request_id=context.request_id)
            records, dropped, raw_records = [], 0, []

        if records:
            state = {
                "stages_attempted": ["tabular_columns"],
                "raw_record_count": len(raw_records),
                "dropped_record_count": dropped,
            }
            logger.info(
                "Extraction complete",
                status=ExtractionStatus.SUCCESS.value,
                method=ExtractionMethod.TABULAR_COLUMNS.value,
                rows=len(rows),
                records=len(records),
                request_id=context.request_id
            )
            return ExtractionResult(
                status=ExtractionStatus.SUCCESS,
                records=dedupe(records),
                profile=profile_detector_agent.detect("", filename_hint),
                method=ExtractionMethod.TABULAR_COLUMNS,
                quality=ExtractionQuality.HIGH,
                request_id=context.request_id,
                metadata=self._metadata(state, context, start_time),
            )

        logger.info("No column mapping applied, falling back to text cascade", rows=len(rows), request_id=context.request_id)
        return self._run(tabular_extractor_agent.flatten(rows), filename_hint, context, start_time)


# Global workflow instance
workflow = ExtractionWorkflow()


def extract(
    text: str,
    filename_hint: Optional[str] = None,
    context: Optional[ExtractionContext] = None
) -> ExtractionResult:
    """Top-level entry point: raw text in, ExtractionResult out"""
    return workflow.process(text, filename_hint, context)


def extract_rows(
    rows: List[Any],
    filename_hint: Optional[str] = None,
    context: Optional[ExtractionContext] = None
) -> ExtractionResult:
    """Top-level entry point for pre-parsed spreadsheet rows"""
    return workflow.process_rows(rows, filename_hint, context)
