"""
Unit tests for the model-assisted extractor

Tests cover:
- Chunking (sequential, non-overlapping, bounded)
- Partial and total chunk failure
- Per-chunk timeouts and cancellation
- LLM collaborator prompt/response handling
"""
import json
import threading
import time
from unittest.mock import Mock

import pytest
from pydantic import ValidationError

from agents.model_extractor_agent import LLMStructuredCollaborator, ModelExtractorAgent, quality_for
from graph.state import ExtractionContext
from schemas.product_schemas import ChunkRequest, ChunkResponse, ExtractionQuality, RawRecord
from utils.llm_client import LLMProvider
from utils.normalizer import normalize


# ==================== Fixtures ====================

@pytest.fixture
def document_text():
    """Ten 20-character lines"""
    return "\n".join(f"line {i:02d} product row" for i in range(10)) + "\n"


def echo_collaborator(request: ChunkRequest) -> ChunkResponse:
    """One record per chunk, tagged with the chunk index"""
    return ChunkResponse(
        records=[RawRecord(code=f"C{request.chunk_index}", description="Producto", price="1.000")],
        provider="fake",
        tokens_input=10,
        tokens_output=5,
    )


def failing_chunks(*indexes):
    def collaborator(request: ChunkRequest) -> ChunkResponse:
        if request.chunk_index in indexes:
            raise RuntimeError("All configured LLM providers failed")
        return echo_collaborator(request)
    return collaborator


def make_agent(collaborator, **overrides):
    options = {"chunk_size": 50, "max_concurrency": 2, "chunk_timeout": 5.0}
    options.update(overrides)
    return ModelExtractorAgent(collaborator=collaborator, **options)


# ==================== Chunking ====================

def test_chunks_are_bounded_and_lossless(document_text):
    agent = make_agent(echo_collaborator)
    chunks = agent._chunk_text(document_text)

    assert len(chunks) > 1
    assert all(len(chunk) <= 50 for chunk in chunks)
    assert "".join(chunks) == document_text


def test_oversized_line_is_hard_split():
    agent = make_agent(echo_collaborator, chunk_size=10)
    chunks = agent._chunk_text("x" * 25)

    assert chunks == ["x" * 10, "x" * 10, "x" * 5]


def test_build_requests_numbers_chunks_from_one(document_text):
    requests = make_agent(echo_collaborator).build_requests(document_text, "lista.pdf")

    assert [request.chunk_index for request in requests] == list(range(1, len(requests) + 1))
    assert all(request.chunk_total == len(requests) for request in requests)
    assert all(request.filename_hint == "lista.pdf" for request in requests)
    assert "records" in requests[0].output_schema["properties"]


# ==================== Extraction ====================

def test_all_chunks_succeed(document_text):
    context = ExtractionContext()
    outcome = make_agent(echo_collaborator).extract(document_text, "lista.pdf", context)

    assert not outcome.failed
    assert outcome.chunks_succeeded == outcome.chunks_total
    assert outcome.quality == ExtractionQuality.HIGH
    # merged in chunk order regardless of completion order
    assert [record.code for record in outcome.records] == [f"C{i}" for i in range(1, outcome.chunks_total + 1)]
    assert context.usage.remote_calls == outcome.chunks_total
    assert context.usage.tokens_input == 10 * outcome.chunks_total


def test_partial_failure_is_skipped(document_text):
    context = ExtractionContext()
    outcome = make_agent(failing_chunks(2)).extract(document_text, "", context)

    assert not outcome.failed
    assert outcome.chunks_succeeded == outcome.chunks_total - 1
    assert "C2" not in [record.code for record in outcome.records]
    assert len(outcome.errors) == 1
    assert outcome.errors[0].startswith(f"chunk 2/{outcome.chunks_total}")
    assert context.usage.failed_calls == 1


def test_total_failure_reports_failed(document_text):
    agent = make_agent(failing_chunks(*range(1, 20)))
    outcome = agent.extract(document_text)

    assert outcome.failed
    assert outcome.records == []
    assert outcome.quality == ExtractionQuality.LOW
    assert len(outcome.errors) == outcome.chunks_total


def test_timed_out_chunk_is_a_failed_chunk(document_text):
    def slow_first_chunk(request):
        if request.chunk_index == 1:
            time.sleep(1.0)
        return echo_collaborator(request)

    outcome = make_agent(slow_first_chunk, chunk_timeout=0.2).extract(document_text)

    assert outcome.chunks_succeeded == outcome.chunks_total - 1
    assert "timed out" in outcome.errors[0]


def test_concurrency_is_bounded(document_text):
    lock = threading.Lock()
    in_flight = {"now": 0, "peak": 0}

    def tracking(request):
        with lock:
            in_flight["now"] += 1
            in_flight["peak"] = max(in_flight["peak"], in_flight["now"])
        time.sleep(0.05)
        with lock:
            in_flight["now"] -= 1
        return echo_collaborator(request)

    make_agent(tracking, max_concurrency=2).extract(document_text)

    assert in_flight["peak"] <= 2


def test_timed_out_calls_keep_their_concurrency_slot(document_text):
    """A call the extractor stopped waiting for is still running in its thread"""
    lock = threading.Lock()
    in_flight = {"now": 0, "peak": 0}

    def stuck(request):
        with lock:
            in_flight["now"] += 1
            in_flight["peak"] = max(in_flight["peak"], in_flight["now"])
        time.sleep(0.3)
        with lock:
            in_flight["now"] -= 1
        return echo_collaborator(request)

    agent = make_agent(stuck, chunk_size=20, max_concurrency=1, chunk_timeout=0.05)
    outcome = agent.extract(document_text[:60])

    assert outcome.chunks_total == 3
    assert outcome.chunks_succeeded == 0
    assert all("timed out" in error for error in outcome.errors)
    assert in_flight["peak"] == 1


def test_cancelled_context_aborts_chunks(document_text):
    collaborator = Mock(side_effect=echo_collaborator)
    context = ExtractionContext()
    context.cancel()

    outcome = make_agent(collaborator).extract(document_text, "", context)

    assert outcome.cancelled
    assert outcome.failed
    assert outcome.records == []
    collaborator.assert_not_called()


def test_cancel_mid_flight(document_text):
    context = ExtractionContext()

    def slow(request):
        context.cancel()
        time.sleep(0.3)
        return echo_collaborator(request)

    outcome = make_agent(slow, max_concurrency=1).extract(document_text, "", context)

    assert outcome.cancelled
    assert outcome.chunks_succeeded < outcome.chunks_total


def test_empty_text_makes_no_calls():
    collaborator = Mock()
    outcome = make_agent(collaborator).extract("   \n  ")

    assert outcome.failed
    collaborator.assert_not_called()


@pytest.mark.parametrize("succeeded, total, expected", [
    (4, 4, ExtractionQuality.HIGH),
    (3, 4, ExtractionQuality.MEDIUM),
    (2, 4, ExtractionQuality.LOW),
    (0, 0, ExtractionQuality.LOW),
])
def test_quality_for(succeeded, total, expected):
    assert quality_for(succeeded, total) == expected


# ==================== LLM Collaborator ====================

@pytest.fixture
def chunk_request():
    return ChunkRequest(
        chunk_text="12-45 12x45 D 38 56 350 Clio $ 66.791",
        chunk_index=2,
        chunk_total=3,
        filename_hint="sermat.pdf",
        output_schema={"type": "object"},
    )


def llm_response(content):
    return {
        "content": content,
        "provider": LLMProvider.GROQ,
        "model": "llama-3.3-70b-versatile",
        "latency": 0.4,
        "tokens": {"input": 120, "output": 40},
    }


def test_collaborator_parses_fenced_json(chunk_request):
    payload = {"records": [{"code": "12-45", "description": "Bateria 12x45", "price": "66.791", "stock": 100, "unit": "UN"}]}
    client = Mock()
    client.generate.return_value = llm_response(f"Here you go:\n```json\n{json.dumps(payload)}\n```")

    response = LLMStructuredCollaborator(client=client)(chunk_request)

    assert response.provider == "groq"
    assert response.tokens_input == 120
    # raw value kept so the price grammar reads thousands separators
    assert normalize(response.records[0]).price == 66791.0

    kwargs = client.generate.call_args.kwargs
    assert kwargs["json_mode"] is True
    assert "sermat.pdf" in kwargs["prompt"]
    assert "2 of 3" in kwargs["prompt"]


def test_collaborator_accepts_bare_array(chunk_request):
    client = Mock()
    client.generate.return_value = llm_response(
        '[{"code": "A1", "description": "Widget", "price": 10, "stock": 0, "unit": "UN"}]'
    )

    response = LLMStructuredCollaborator(client=client)(chunk_request)

    assert [record.code for record in response.records] == ["A1"]


def test_collaborator_rejects_schema_violation(chunk_request):
    client = Mock()
    client.generate.return_value = llm_response('{"records": [{"description": "no code"}]}')

    with pytest.raises(ValidationError):
        LLMStructuredCollaborator(client=client)(chunk_request)


def test_collaborator_rejects_non_json(chunk_request):
    client = Mock()
    client.generate.return_value = llm_response("I could not find any products.")

    with pytest.raises(ValueError):
        LLMStructuredCollaborator(client=client)(chunk_request)


def test_collaborator_error_becomes_chunk_failure(document_text):
    client = Mock()
    client.generate.side_effect = RuntimeError("No LLM provider configured")

    outcome = make_agent(LLMStructuredCollaborator(client=client)).extract(document_text)

    assert outcome.failed
    assert all("No LLM provider configured" in error for error in outcome.errors)
