"""
Model Extractor Agent - Chunked remote structured extraction (last cascade stage)
"""
import asyncio
import json
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from config import settings
from graph.state import ExtractionContext
from schemas.product_schemas import (
    ChunkRequest,
    ChunkResponse,
    ExtractionQuality,
    ModelProductBatch,
    RawRecord,
)
from utils.llm_client import llm_client
from utils.logger import logger

Collaborator = Callable[[ChunkRequest], ChunkResponse]

OUTPUT_SCHEMA: Dict[str, Any] = ModelProductBatch.model_json_schema()


class LLMStructuredCollaborator:
    """
    Structured-extraction collaborator backed by the LLM client

    Builds the prompt for one chunk, asks for a JSON object and validates it
    against the output schema. Any failure raises; the caller decides what a
    failed chunk means.
    """

    SYSTEM_PROMPT = "Price list extraction engine. Return one JSON object that matches the schema. Never invent products or prices."

    EXTRACTION_PROMPT_TEMPLATE = """Extract every product row from this price list fragment.

SOURCE FILE: {filename}
FRAGMENT: {chunk_index} of {chunk_total}

RULES:
- One record per product row; skip headers, totals and page furniture
- code: product code exactly as printed
- price: plain number; "66.791" means 66791 and "1.234,56" means 1234.56; 0 when the row says the product is unavailable
- stock: 0 when the row says SIN STOCK, AGOTADO or out of stock, otherwise 100
- unit: UN unless the row states another unit
- application: vehicle or usage compatibility, if present
- content: volume, net weight or pack size, if present

OUTPUT SCHEMA:
{output_schema}

FRAGMENT TEXT:
{chunk_text}

Return ONLY a JSON object of the form {{"records": [...]}}."""

    def __init__(self, client=None):
        self.client = client or llm_client

    def _parse_response(self, content: str) -> Any:
        """
        Parse the LLM response into JSON

        Raises:
            ValueError if no strategy yields valid JSON
        """
        content = (content or "").strip()

        try:
            return json.loads(content)
        except json.JSONDecodeError:
            pass

        if "```" in content:
            fence_start = content.find("```json")
            fence_start = fence_start + 7 if fence_start != -1 else content.find("```") + 3
            fence_end = content.find("```", fence_start)
            if fence_end != -1:
                try:
                    return json.loads(content[fence_start:fence_end].strip())
                except json.JSONDecodeError:
                    pass

        for opener, closer in (("{", "}"), ("[", "]")):
            start = content.find(opener)
            end = content.rfind(closer) + 1
            if start != -1 and end > start:
                try:
                    return json.loads(content[start:end])
                except json.JSONDecodeError:
                    continue

        raise ValueError(f"Could not parse JSON from response: {content[:200]}")

    def __call__(self, request: ChunkRequest) -> ChunkResponse:
        prompt = self.EXTRACTION_PROMPT_TEMPLATE.format(
            filename=request.filename_hint or "unknown",
            chunk_index=request.chunk_index,
            chunk_total=request.chunk_total,
            output_schema=json.dumps(request.output_schema),
            chunk_text=request.chunk_text,
        )

        response = self.client.generate(
            prompt=prompt,
            system_prompt=self.SYSTEM_PROMPT,
            max_tokens=settings.MODEL_MAX_TOKENS,
            temperature=settings.MODEL_TEMPERATURE,
            json_mode=True
        )

        payload = self._parse_response(response["content"])
        if isinstance(payload, list):
            payload = {"records": payload}
        if not isinstance(payload, dict) or "records" not in payload:
            raise ValueError("Response does not contain a records array")

        # Schema check only; raw values go downstream so the price grammar
        # reads "66.791" as 66791 rather than letting pydantic coerce it.
        ModelProductBatch.model_validate(payload)

        provider = response.get("provider")
        return ChunkResponse(
            records=[RawRecord.model_validate(item) for item in payload["records"]],
            provider=getattr(provider, "value", provider),
            model=response.get("model"),
            tokens_input=response.get("tokens", {}).get("input", 0),
            tokens_output=response.get("tokens", {}).get("output", 0),
        )


@dataclass
class ChunkOutcome:
    chunk_index: int
    records: List[RawRecord] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class ModelExtractionOutcome:
    """Merged result of every chunk of one document"""
    chunks_total: int = 0
    chunks_succeeded: int = 0
    records: List[RawRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def failed(self) -> bool:
        return self.cancelled or self.chunks_succeeded == 0

    @property
    def quality(self) -> ExtractionQuality:
        return quality_for(self.chunks_succeeded, self.chunks_total)


def quality_for(succeeded: int, total: int) -> ExtractionQuality:
    """high when every chunk succeeded, medium above half, low otherwise"""
    if total > 0 and succeeded == total:
        return ExtractionQuality.HIGH
    if succeeded * 2 > total:
        return ExtractionQuality.MEDIUM
    return ExtractionQuality.LOW


class ModelExtractorAgent:
    """
    Agent responsible for model-assisted extraction

    Splits the text into sequential, non-overlapping chunks, sends each one
    to the structured-extraction collaborator with at most
    ``max_concurrency`` calls in flight, and merges whatever comes back.
    A failed or timed-out chunk is logged and skipped.
    """

    CANCEL_POLL_INTERVAL = 0.05  # seconds

    def __init__(
        self,
        collaborator: Optional[Collaborator] = None,
        chunk_size: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        chunk_timeout: Optional[float] = None
    ):
        self.name = "ModelExtractorAgent"
        self.collaborator = collaborator or LLMStructuredCollaborator()
        self.chunk_size = chunk_size or settings.MODEL_CHUNK_SIZE
        self.max_concurrency = max_concurrency or settings.MODEL_MAX_CONCURRENCY
        self.chunk_timeout = chunk_timeout or settings.MODEL_CHUNK_TIMEOUT

    def _chunk_text(self, text: str) -> List[str]:
        """
        Split text into chunks of at most ``chunk_size`` characters

        Chunks break on line boundaries where possible; a single line longer
        than the budget is hard-split. Chunks never overlap.
        """
        chunks = []
        current = []
        current_length = 0

        for line in text.splitlines(keepends=True):
            while len(line) > self.chunk_size:
                if current:
                    chunks.append("".join(current))
                    current, current_length = [], 0
                chunks.append(line[:self.chunk_size])
                line = line[self.chunk_size:]

            if current and current_length + len(line) > self.chunk_size:
                chunks.append("".join(current))
                current, current_length = [], 0

            current.append(line)
            current_length += len(line)

        if current:
            chunks.append("".join(current))

        return [chunk for chunk in chunks if chunk.strip()]

    def build_requests(self, text: str, filename_hint: str = "") -> List[ChunkRequest]:
        chunks = self._chunk_text(text or "")
        return [
            ChunkRequest(
                chunk_text=chunk,
                chunk_index=index,
                chunk_total=len(chunks),
                filename_hint=filename_hint or "",
                output_schema=OUTPUT_SCHEMA,
            )
            for index, chunk in enumerate(chunks, 1)
        ]

    def _invoke(self, request: ChunkRequest) -> ChunkResponse:
        response = self.collaborator(request)
        if not isinstance(response, ChunkResponse):
            response = ChunkResponse.model_validate(response)
        return response

    def _submit(
        self,
        request: ChunkRequest,
        semaphore: asyncio.Semaphore,
        executor: ThreadPoolExecutor
    ) -> "asyncio.Future[ChunkResponse]":
        """
        Start the collaborator call for ``request`` in a worker thread

        The semaphore slot (already acquired) is released when the call
        really ends, not when the caller stops waiting for it: a timed-out
        call still counts against the concurrency cap until it returns.
        """
        loop = asyncio.get_running_loop()

        def release(_) -> None:
            try:
                loop.call_soon_threadsafe(semaphore.release)
            except RuntimeError:
                # loop already closed; nobody is left waiting for the slot
                return

        call = executor.submit(self._invoke, request)
        call.add_done_callback(release)
        return asyncio.wrap_future(call)

    async def _run_chunk(
        self,
        request: ChunkRequest,
        semaphore: asyncio.Semaphore,
        executor: ThreadPoolExecutor,
        context: ExtractionContext
    ) -> ChunkOutcome:
        label = f"{request.chunk_index}/{request.chunk_total}"

        await semaphore.acquire()
        if context.cancelled:
            semaphore.release()
            raise asyncio.CancelledError()

        start_time = time.time()
        try:
            response = await asyncio.wait_for(
                self._submit(request, semaphore, executor),
                timeout=self.chunk_timeout
            )
        except asyncio.TimeoutError:
            context.usage.record(failed=True)
            logger.warning(
                f"{self.name}: chunk timed out",
                chunk=label,
                timeout_s=self.chunk_timeout,
                request_id=context.request_id
            )
            return ChunkOutcome(request.chunk_index, error=f"chunk {label}: timed out after {self.chunk_timeout}s")
        except Exception as e:
            context.usage.record(failed=True)
            logger.warning(
                f"{self.name}: chunk failed",
                chunk=label,
                error=str(e),
                request_id=context.request_id
            )
            return ChunkOutcome(request.chunk_index, error=f"chunk {label}: {e}")

        context.usage.record(response.tokens_input, response.tokens_output)
        logger.info(
            f"{self.name}: chunk complete",
            chunk=label,
            records=len(response.records),
            latency_ms=(time.time() - start_time) * 1000,
            request_id=context.request_id
        )
        return ChunkOutcome(request.chunk_index, records=list(response.records))

    async def _watch_cancellation(self, context: ExtractionContext, tasks: List[asyncio.Task]) -> None:
        while not context.cancelled:
            await asyncio.sleep(self.CANCEL_POLL_INTERVAL)
        logger.warning(f"{self.name}: extraction cancelled", request_id=context.request_id)
        for task in tasks:
            task.cancel()

    async def aextract(
        self,
        text: str,
        filename_hint: str = "",
        context: Optional[ExtractionContext] = None
    ) -> ModelExtractionOutcome:
        """
        Extract raw records through the remote collaborator

        Args:
            text: Full document text
            filename_hint: Original filename passed through to the collaborator
            context: Request-scoped context (usage counter, cancellation)

        Returns:
            ModelExtractionOutcome with records merged in chunk order
        """
        context = context or ExtractionContext()
        requests = self.build_requests(text, filename_hint)
        outcome = ModelExtractionOutcome(chunks_total=len(requests))
        if not requests:
            outcome.errors.append("no text to send")
            return outcome

        logger.info(
            f"{self.name}: starting model extraction",
            chunks=len(requests),
            max_concurrency=self.max_concurrency,
            request_id=context.request_id
        )

        semaphore = asyncio.Semaphore(self.max_concurrency)
        executor = ThreadPoolExecutor(max_workers=len(requests), thread_name_prefix="chunk")
        tasks = [
            asyncio.create_task(self._run_chunk(request, semaphore, executor, context))
            for request in requests
        ]
        watcher = asyncio.create_task(self._watch_cancellation(context, tasks))

        try:
            results = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            watcher.cancel()
            # Abandoned calls finish in the background; nothing waits on them
            executor.shutdown(wait=False, cancel_futures=True)

        outcome.cancelled = context.cancelled
        for request, result in zip(requests, results):
            if isinstance(result, BaseException):
                outcome.errors.append(f"chunk {request.chunk_index}/{request.chunk_total}: cancelled")
            elif result.error:
                outcome.errors.append(result.error)
            else:
                outcome.chunks_succeeded += 1
                outcome.records.extend(result.records)

        logger.info(
            f"{self.name}: model extraction complete",
            chunks_total=outcome.chunks_total,
            chunks_succeeded=outcome.chunks_succeeded,
            records=len(outcome.records),
            quality=outcome.quality.value,
            request_id=context.request_id
        )
        return outcome

    def extract(
        self,
        text: str,
        filename_hint: str = "",
        context: Optional[ExtractionContext] = None
    ) -> ModelExtractionOutcome:
        """Synchronous wrapper around aextract(); must not be called from a running event loop"""
        return asyncio.run(self.aextract(text, filename_hint, context))


# Agent instance
model_extractor_agent = ModelExtractorAgent()
